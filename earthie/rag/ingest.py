from __future__ import annotations

"""Offline embedding of knowledge files into the knowledge store."""

import logging

from earthie.loaders.chunking import chunk_text
from earthie.loaders.knowledge import KnowledgeFile
from earthie.rag.embeddings import EmbeddingError, EmbeddingProvider
from earthie.rag.types import KnowledgeChunk
from earthie.vectorstore.base import KnowledgeStore

logger = logging.getLogger(__name__)


def build_knowledge_chunks(
    files: list[KnowledgeFile],
    embedder: EmbeddingProvider,
    chunk_size: int = 1000,
    overlap: int = 200,
    batch_size: int = 100,
) -> list[KnowledgeChunk]:
    """Chunk every file and embed the chunks in batches.

    An embedding failure aborts the whole run so a partial knowledge base is
    never written.
    """
    pending: list[tuple[str, int, str]] = []
    for knowledge_file in files:
        pieces = chunk_text(knowledge_file.content, chunk_size=chunk_size, overlap=overlap)
        logger.info(
            "knowledge_file_chunked",
            extra={"source_file": knowledge_file.source_file, "chunks": len(pieces)},
        )
        pending.extend(
            (knowledge_file.source_file, idx, piece) for idx, piece in enumerate(pieces)
        )

    batch_size = max(1, batch_size)
    chunks: list[KnowledgeChunk] = []
    for start in range(0, len(pending), batch_size):
        batch = pending[start : start + batch_size]
        logger.info("knowledge_batch_embedding", extra={"start": start, "size": len(batch)})
        vectors = embedder.embed_batch([content for _, _, content in batch])
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedder returned {len(vectors)} vectors for a batch of {len(batch)}"
            )
        for (source_file, idx, content), vector in zip(batch, vectors):
            chunks.append(
                KnowledgeChunk(
                    content=content,
                    source_file=source_file,
                    embedding=vector,
                    chunk_index=idx,
                )
            )
    return chunks


def rebuild_knowledge_base(store: KnowledgeStore, chunks: list[KnowledgeChunk]) -> int:
    """Replace the store contents; an empty chunk list leaves the store untouched."""
    if not chunks:
        logger.warning("knowledge_rebuild_skipped", extra={"reason": "no_chunks"})
        return 0
    written = store.replace_all(chunks)
    logger.info("knowledge_rebuild_complete", extra={"chunks": written})
    return written
