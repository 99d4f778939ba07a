from __future__ import annotations

"""Streaming completion clients for hosted LLMs."""

from dataclasses import dataclass, field
import json
from typing import Any, AsyncIterator, Protocol

import httpx

from earthie.rag.types import ChatMessage


class CompletionError(RuntimeError):
    """Raised when LLM requests fail or stream invalid data."""
    pass


class CompletionConfigError(RuntimeError):
    """Raised when completion client configuration is invalid."""
    pass


class CompletionClient(Protocol):
    """Protocol for streaming completion clients."""

    def stream(self, system_prompt: str, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Yield completion tokens for the conversation."""
        raise NotImplementedError


def to_gemini_contents(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Convert chat turns to Gemini content dicts, which call the assistant 'model'."""
    contents: list[dict[str, Any]] = []
    for message in messages:
        if not message.content.strip():
            continue
        role = "model" if message.role == "assistant" else "user"
        contents.append({"role": role, "parts": [message.content]})
    return contents


@dataclass(frozen=True)
class GeminiCompletionClient:
    """Completion client backed by Gemini generative models."""
    api_key: str
    model: str
    temperature: float
    max_tokens: int

    async def stream(self, system_prompt: str, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Stream a completion from Gemini."""
        try:
            import google.generativeai as genai
            from google.generativeai.types import HarmBlockThreshold, HarmCategory
        except ImportError as exc:
            raise CompletionError("google-generativeai is required for GeminiCompletionClient") from exc

        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(
            self.model,
            system_instruction=system_prompt,
            safety_settings={
                HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            },
        )
        try:
            response = await model.generate_content_async(
                to_gemini_contents(messages),
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                },
                stream=True,
            )
            async for chunk in response:
                text = _gemini_chunk_text(chunk)
                if text:
                    yield text
        except CompletionError:
            raise
        except Exception as exc:
            raise CompletionError(str(exc)) from exc


def _gemini_chunk_text(chunk: Any) -> str:
    """Return chunk text, treating blocked candidates as errors."""
    try:
        return chunk.text or ""
    except ValueError as exc:
        feedback = getattr(chunk, "prompt_feedback", None)
        reason = getattr(feedback, "block_reason", None)
        if reason:
            raise CompletionError(f"Request blocked: {reason}") from exc
        candidates = getattr(chunk, "candidates", None) or []
        finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
        if finish_reason is not None and getattr(finish_reason, "name", str(finish_reason)) in {
            "STOP",
            "MAX_TOKENS",
        }:
            return ""
        raise CompletionError(f"Response stopped without text: {finish_reason}") from exc


@dataclass(frozen=True)
class OpenAICompletionClient:
    """Completion client for OpenAI-compatible chat completion APIs."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def stream(self, system_prompt: str, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Stream a completion from the chat completions endpoint (SSE)."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                *({"role": m.role, "content": m.content} for m in messages),
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:") :].strip()
                        if data == "[DONE]":
                            break
                        token = _parse_openai_delta(data)
                        if token:
                            yield token
        except httpx.HTTPError as exc:
            raise CompletionError(str(exc)) from exc


def _parse_openai_delta(data: str) -> str:
    """Extract the delta content from one streamed chunk."""
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError as exc:
        raise CompletionError("Invalid OpenAI stream chunk") from exc
    if not isinstance(chunk, dict):
        raise CompletionError("Invalid OpenAI stream chunk")
    choices = chunk.get("choices") or []
    if not isinstance(choices, list):
        raise CompletionError("Invalid OpenAI stream chunk")
    if not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        raise CompletionError("Invalid OpenAI stream chunk")
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        raise CompletionError("Invalid OpenAI stream chunk")
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def build_completion_client(
    provider: str,
    *,
    api_key_gemini: str | None,
    api_key_openai: str | None,
    gemini_model: str | None,
    openai_base_url: str,
    openai_model: str | None,
    temperature: float,
    max_tokens: int,
    timeout: float,
) -> GeminiCompletionClient | OpenAICompletionClient:
    """Factory for completion clients based on provider."""
    normalized = provider.strip().lower()
    if normalized in {"gemini", "google"}:
        if not api_key_gemini:
            raise CompletionConfigError("GEMINI_API_KEY is required for Gemini provider")
        if not gemini_model:
            raise CompletionConfigError("GEMINI_CHAT_MODEL is required for Gemini provider")
        return GeminiCompletionClient(
            api_key=api_key_gemini,
            model=gemini_model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    if normalized == "openai":
        if not api_key_openai:
            raise CompletionConfigError("OPENAI_API_KEY is required for OpenAI provider")
        if not openai_model:
            raise CompletionConfigError("OPENAI_CHAT_MODEL is required for OpenAI provider")
        return OpenAICompletionClient(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise CompletionConfigError(f"Unsupported LLM provider: {provider}")
