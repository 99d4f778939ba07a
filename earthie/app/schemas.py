from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from earthie.rag.types import ChatMessage


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None


class StatsResponse(BaseModel):
    backend: str
    chunk_count: int
    embedding_dimension: int
    match_threshold: float
    match_count: int
