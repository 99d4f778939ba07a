from __future__ import annotations

"""Discovery and loading of knowledge base files."""

import logging
from dataclasses import dataclass
from pathlib import Path

from earthie.loaders.docx import DocxLoaderError, load_docx_file
from earthie.loaders.text import load_text_file

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".txt", ".md", ".json", ".csv"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {".docx"}


@dataclass(frozen=True)
class KnowledgeFile:
    """Loaded knowledge file contents."""
    source_file: str
    content: str


def discover_knowledge_files(directory: Path, names: list[str] | None = None) -> list[Path]:
    """List supported files in the knowledge directory, or the named ones in order."""
    if names:
        return [directory / name for name in names]
    if not directory.is_dir():
        logger.warning("knowledge_dir_missing", extra={"path": str(directory)})
        return []
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def load_knowledge_file(path: Path) -> KnowledgeFile | None:
    """Load one file; unsupported, unreadable or empty files are skipped."""
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        logger.warning("knowledge_file_unsupported", extra={"source_file": path.name})
        return None
    try:
        if suffix == ".docx":
            content = load_docx_file(path)
        else:
            content = load_text_file(path)
    except (OSError, DocxLoaderError) as exc:
        logger.warning(
            "knowledge_file_unreadable",
            extra={"source_file": path.name, "detail": str(exc)},
        )
        return None
    if not content.strip():
        logger.warning("knowledge_file_empty", extra={"source_file": path.name})
        return None
    return KnowledgeFile(source_file=path.name, content=content)


def load_knowledge_files(paths: list[Path]) -> list[KnowledgeFile]:
    files: list[KnowledgeFile] = []
    for path in paths:
        loaded = load_knowledge_file(path)
        if loaded is not None:
            files.append(loaded)
    return files
