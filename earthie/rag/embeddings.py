from __future__ import annotations

"""Embedding providers for query and knowledge vectors."""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for a search query."""
        raise NotImplementedError

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return embedding vectors for knowledge passages."""
        raise NotImplementedError


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate embedding vectors and coerce values to float."""
    if not vector:
        raise EmbeddingError("Embedding service returned an empty vector")
    if dimension > 0 and len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[digest[0] % self.dimension] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm:
            vector = [value / norm for value in vector]
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


_GEMINI_DIMENSIONS = {
    "models/text-embedding-004": 768,
    "models/embedding-001": 768,
}


def resolve_gemini_dimension(model: str) -> int | None:
    """Return the known output dimension for a Gemini embedding model."""
    name = model if model.startswith("models/") else f"models/{model}"
    return _GEMINI_DIMENSIONS.get(name)


@dataclass
class GeminiEmbedder:
    """Embedding provider using the Gemini embeddings API."""
    api_key: str
    model: str
    dimension: int
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate Gemini configuration and create a client."""
        if not self.api_key:
            raise EmbeddingConfigError("GEMINI_API_KEY is required for GeminiEmbedder")
        if not self.model:
            raise EmbeddingConfigError("GEMINI_EMBEDDING_MODEL is required for GeminiEmbedder")
        expected = resolve_gemini_dimension(self.model)
        if self.dimension <= 0:
            if expected is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for Gemini embeddings when model is unknown"
                )
            self.dimension = expected
        elif expected is not None and self.dimension != expected:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {expected} for model {self.model}"
            )
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise EmbeddingConfigError(
                "google-generativeai package is required for GeminiEmbedder"
            ) from exc
        genai.configure(api_key=self.api_key)
        self.client = genai

    def embed(self, text: str) -> list[float]:
        """Embed a search query using the Gemini embeddings API."""
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        result = self._request(text, task_type="retrieval_query")
        return validate_vector(list(result), self.dimension)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed knowledge passages in one request."""
        if not texts:
            return []
        result = self._request(texts, task_type="retrieval_document")
        vectors = list(result)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Gemini returned {len(vectors)} embeddings for {len(texts)} passages"
            )
        return [validate_vector(list(vector), self.dimension) for vector in vectors]

    def _request(self, content: str | list[str], task_type: str) -> Any:
        """Call embed_content and pull the embedding payload out of the response."""
        try:
            result = self.client.embed_content(
                model=self.model,
                content=content,
                task_type=task_type,
            )
        except Exception as exc:
            raise EmbeddingError(str(exc)) from exc
        embedding = None
        if isinstance(result, dict):
            embedding = result.get("embedding")
        if embedding is None:
            embedding = getattr(result, "embedding", None)
        if embedding is None:
            raise EmbeddingError("Gemini embedding response missing embedding vector")
        return embedding
