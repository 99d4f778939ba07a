from __future__ import annotations

"""In-memory knowledge store for local testing and small datasets."""

import math
from dataclasses import dataclass, field
from typing import Iterable

from earthie.rag.types import KnowledgeChunk, RetrievalResult


@dataclass
class InMemoryKnowledgeStore:
    """Simple in-memory store with cosine similarity search."""
    chunks: list[KnowledgeChunk] = field(default_factory=list)

    def add_chunks(self, chunks: Iterable[KnowledgeChunk]) -> int:
        """Store pre-embedded chunks."""
        added = 0
        for chunk in chunks:
            self.chunks.append(chunk)
            added += 1
        return added

    def replace_all(self, chunks: Iterable[KnowledgeChunk]) -> int:
        """Drop every stored chunk and store the given ones instead."""
        self.chunks = []
        return self.add_chunks(chunks)

    def search(self, vector: list[float], threshold: float, limit: int) -> list[RetrievalResult]:
        """Return up to ``limit`` chunks whose similarity is above ``threshold``."""
        scored = [
            RetrievalResult(
                content=chunk.content,
                similarity=self._cosine_similarity(vector, chunk.embedding),
                source_file=chunk.source_file,
            )
            for chunk in self.chunks
        ]
        scored = [result for result in scored if result.similarity > threshold]
        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[:limit]

    def count(self) -> int:
        return len(self.chunks)

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Compute cosine similarity between two vectors."""
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)
