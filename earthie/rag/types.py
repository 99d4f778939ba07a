from __future__ import annotations

"""Core data types for chat messages and knowledge retrieval."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChatMessage:
    """Single conversation turn supplied by the caller."""
    role: str
    content: str


@dataclass(frozen=True)
class KnowledgeChunk:
    """Embedded passage of a knowledge file."""
    content: str
    source_file: str
    embedding: list[float] = field(default_factory=list, repr=False)
    chunk_index: int = 0


@dataclass(frozen=True)
class RetrievalResult:
    """Knowledge passage matched by a similarity search."""
    content: str
    similarity: float
    source_file: str | None = None


@dataclass(frozen=True)
class CompletionRequest:
    """Assembled prompt handed to the completion client."""
    system_prompt: str
    messages: list[ChatMessage]
