from __future__ import annotations

"""Character-window chunking for knowledge files."""


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """Split text into overlapping character-based chunks."""
    if not text.strip():
        return []
    if chunk_size <= 0:
        return [text.strip()]
    if overlap >= chunk_size or overlap < 0:
        overlap = max(0, chunk_size // 4)
    step = chunk_size - overlap

    chunks: list[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(length, start + chunk_size)
        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= length:
            break
        start += step
    return chunks
