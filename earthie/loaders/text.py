from __future__ import annotations

"""Plain text loader for .txt, .md, .json and .csv knowledge files."""

from pathlib import Path


def load_text_file(path: Path) -> str:
    """Read a UTF-8 text file, replacing undecodable bytes."""
    return load_text_bytes(path.read_bytes())


def load_text_bytes(data: bytes) -> str:
    """Decode text bytes."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")
