from __future__ import annotations

"""CLI utility to embed the knowledge files and rebuild the knowledge table."""

import argparse
import logging
import sys
from pathlib import Path

from earthie.app.dependencies import build_embedder, build_store
from earthie.app.settings import settings
from earthie.loaders.knowledge import discover_knowledge_files, load_knowledge_files
from earthie.rag.embeddings import EmbeddingConfigError, EmbeddingError
from earthie.rag.ingest import build_knowledge_chunks, rebuild_knowledge_base
from earthie.vectorstore.base import RetrievalError, StoreConfigError

logger = logging.getLogger("generate_embeddings")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chunk and embed knowledge files, then replace the knowledge table."
    )
    parser.add_argument(
        "--knowledge-dir",
        type=Path,
        default=settings.knowledge_dir,
        help="Directory holding the knowledge files.",
    )
    parser.add_argument(
        "--files",
        nargs="*",
        default=None,
        help="Specific file names inside the knowledge directory (default: all supported files).",
    )
    parser.add_argument("--chunk-size", type=int, default=settings.chunk_size)
    parser.add_argument("--chunk-overlap", type=int, default=settings.chunk_overlap)
    parser.add_argument("--batch-size", type=int, default=settings.embed_batch_size)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Embed the chunks but do not write them to the store.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the knowledge embedding job."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    paths = discover_knowledge_files(args.knowledge_dir, args.files)
    files = load_knowledge_files(paths)
    if not files:
        logger.warning("No knowledge files to process in %s", args.knowledge_dir)
        return 0
    logger.info("Loaded %d knowledge files", len(files))

    try:
        embedder = build_embedder()
        chunks = build_knowledge_chunks(
            files,
            embedder,
            chunk_size=args.chunk_size,
            overlap=args.chunk_overlap,
            batch_size=args.batch_size,
        )
    except (EmbeddingConfigError, EmbeddingError) as exc:
        logger.error("Embedding failed, knowledge table left unchanged: %s", exc)
        return 1
    logger.info("Generated %d embedded chunks", len(chunks))

    if args.dry_run:
        return 0
    try:
        written = rebuild_knowledge_base(build_store(), chunks)
    except (StoreConfigError, RetrievalError) as exc:
        logger.error("Writing knowledge chunks failed: %s", exc)
        return 1
    logger.info("Inserted %d knowledge chunks", written)
    return 0


if __name__ == "__main__":
    sys.exit(main())
