from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator

from earthie.rag.embeddings import EmbeddingError, EmbeddingProvider
from earthie.rag.llm import CompletionClient, CompletionError
from earthie.rag.prompt import SYSTEM_PROMPT, assemble_request
from earthie.rag.types import ChatMessage, CompletionRequest
from earthie.vectorstore.base import KnowledgeStore, RetrievalError

logger = logging.getLogger(__name__)


class ChatRequestError(ValueError):
    """Raised when the conversation cannot be answered as submitted."""
    pass


def validate_messages(messages: list[ChatMessage]) -> str:
    """Return the question from the last turn, which must be a non-empty user message."""
    if not messages:
        raise ChatRequestError("messages must contain at least one message")
    last = messages[-1]
    if last.role != "user":
        raise ChatRequestError("the last message must have role 'user'")
    question = last.content.strip()
    if not question:
        raise ChatRequestError("the last user message must not be empty")
    return question


async def _close(tokens: AsyncIterator[str]) -> None:
    aclose = getattr(tokens, "aclose", None)
    if aclose is not None:
        await aclose()


class PrimedStream:
    """Token stream whose first token was already pulled from the completer.

    Closing it closes the completer stream too, whether or not iteration started.
    """

    def __init__(self, first: str | None, tokens: AsyncIterator[str]) -> None:
        self._first = first
        self._tokens = tokens
        self._done = first is None

    def __aiter__(self) -> PrimedStream:
        return self

    async def __anext__(self) -> str:
        if self._done:
            raise StopAsyncIteration
        if self._first is not None:
            token, self._first = self._first, None
            return token
        try:
            return await self._tokens.__anext__()
        except BaseException:
            self._done = True
            await _close(self._tokens)
            raise

    async def aclose(self) -> None:
        self._done = True
        self._first = None
        await _close(self._tokens)


async def _prime(tokens: AsyncIterator[str]) -> PrimedStream:
    """Pull the first token now so connection errors surface before streaming starts."""
    try:
        first = await tokens.__anext__()
    except StopAsyncIteration:
        await _close(tokens)
        return PrimedStream(None, tokens)
    except BaseException:
        await _close(tokens)
        raise
    return PrimedStream(first, tokens)


@dataclass
class ChatPipeline:
    embedder: EmbeddingProvider
    store: KnowledgeStore
    completer: CompletionClient
    match_threshold: float = 0.5
    match_count: int = 20
    system_prompt: str = SYSTEM_PROMPT

    async def prepare(self, messages: list[ChatMessage]) -> CompletionRequest:
        """Embed the question, retrieve knowledge and assemble the completion request."""
        question = validate_messages(messages)
        vector = await asyncio.to_thread(self.embedder.embed, question)
        if not vector:
            raise EmbeddingError("Embedding service returned no vector")
        results = await asyncio.to_thread(
            self.store.search, vector, self.match_threshold, self.match_count
        )
        logger.info(
            "chat_retrieval_complete",
            extra={
                "results": len(results),
                "query_length": len(question),
                "top_similarity": results[0].similarity if results else None,
            },
        )
        return assemble_request(messages, results, system_prompt=self.system_prompt)

    async def start_stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Run the pipeline and return the completion token stream."""
        request = await self.prepare(messages)
        tokens = self.completer.stream(request.system_prompt, request.messages)
        return await _prime(tokens)


def failed_stage(exc: Exception) -> str:
    """Name the pipeline stage an error belongs to."""
    if isinstance(exc, EmbeddingError):
        return "embedding"
    if isinstance(exc, RetrievalError):
        return "retrieval"
    if isinstance(exc, CompletionError):
        return "completion"
    return "unknown"
