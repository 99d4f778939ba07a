from __future__ import annotations

"""Shared knowledge store protocol and errors."""

from typing import Iterable, Protocol

from earthie.rag.types import KnowledgeChunk, RetrievalResult


class RetrievalError(RuntimeError):
    """Raised when a knowledge store query or write fails."""
    pass


class StoreConfigError(RuntimeError):
    """Raised when knowledge store configuration is invalid."""
    pass


class KnowledgeStore(Protocol):
    """Protocol for persisted knowledge chunk stores."""

    def search(self, vector: list[float], threshold: float, limit: int) -> list[RetrievalResult]:
        """Return matching chunks ordered by the store's similarity ranking."""
        raise NotImplementedError

    def replace_all(self, chunks: Iterable[KnowledgeChunk]) -> int:
        """Replace the store contents, returning the number of chunks written."""
        raise NotImplementedError

    def count(self) -> int:
        """Return the number of stored chunks."""
        raise NotImplementedError
