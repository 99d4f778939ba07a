from __future__ import annotations

"""Supabase (pgvector) knowledge store backed by the PostgREST API."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import httpx

from earthie.rag.types import KnowledgeChunk, RetrievalResult
from earthie.vectorstore.base import RetrievalError, StoreConfigError

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Connection settings for the Supabase REST endpoint."""
    url: str
    service_key: str
    table: str = "knowledge"
    match_function: str = "match_knowledge"
    timeout: float = 15.0


@dataclass
class SupabaseKnowledgeStore:
    """Knowledge store that queries pgvector through a Postgres RPC function."""
    config: SupabaseConfig
    transport: httpx.BaseTransport | None = None

    def __post_init__(self) -> None:
        """Validate connection settings."""
        if not self.config.url:
            raise StoreConfigError("SUPABASE_URL is required for SupabaseKnowledgeStore")
        if not self.config.service_key:
            raise StoreConfigError("SUPABASE_SERVICE_KEY is required for SupabaseKnowledgeStore")
        self.rest_url = f"{self.config.url.rstrip('/')}/rest/v1"

    def search(self, vector: list[float], threshold: float, limit: int) -> list[RetrievalResult]:
        """Run the similarity RPC and map rows to retrieval results."""
        payload = {
            "query_embedding": vector,
            "match_threshold": threshold,
            "match_count": limit,
        }
        response = self._request(
            "POST",
            f"/rpc/{self.config.match_function}",
            json=payload,
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise RetrievalError("Match response is not valid JSON") from exc
        if not isinstance(data, list):
            raise RetrievalError("Invalid match response: expected a list of rows")
        results: list[RetrievalResult] = []
        for row in data:
            if not isinstance(row, dict) or not isinstance(row.get("content"), str):
                raise RetrievalError("Invalid match response: row without content")
            similarity = row.get("similarity", 0.0)
            if not isinstance(similarity, (int, float)):
                raise RetrievalError("Invalid match response: non-numeric similarity")
            source_file = row.get("source_file")
            results.append(
                RetrievalResult(
                    content=row["content"],
                    similarity=float(similarity),
                    source_file=source_file if isinstance(source_file, str) else None,
                )
            )
        return results

    def replace_all(self, chunks: Iterable[KnowledgeChunk]) -> int:
        """Delete every knowledge row, then insert all new chunks in one request.

        PostgREST runs a bulk insert as a single statement, so a failed insert
        never leaves part of the new rows behind.
        """
        rows = [
            {
                "source_file": chunk.source_file,
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "embedding": chunk.embedding,
            }
            for chunk in chunks
        ]
        self._request(
            "DELETE",
            f"/{self.config.table}",
            params={"id": "neq.-1"},
            headers={"Prefer": "return=minimal"},
        )
        logger.info("knowledge_table_cleared", extra={"table": self.config.table})
        self._request(
            "POST",
            f"/{self.config.table}",
            json=rows,
            headers={"Prefer": "return=minimal"},
        )
        logger.info("knowledge_rows_inserted", extra={"table": self.config.table, "rows": len(rows)})
        return len(rows)

    def count(self) -> int:
        """Return the exact row count from the Content-Range header."""
        response = self._request(
            "HEAD",
            f"/{self.config.table}",
            params={"select": "id"},
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError as exc:
            raise RetrievalError(f"Invalid Content-Range header: {content_range!r}") from exc

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request, converting transport failures to RetrievalError."""
        request_headers = {
            "apikey": self.config.service_key,
            "Authorization": f"Bearer {self.config.service_key}",
        }
        if headers:
            request_headers.update(headers)
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self.transport) as client:
                response = client.request(
                    method,
                    f"{self.rest_url}{path}",
                    json=json,
                    params=params,
                    headers=request_headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RetrievalError(str(exc)) from exc
        return response
