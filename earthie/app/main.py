from __future__ import annotations

"""FastAPI application entrypoint for the Earthie knowledge chat service."""

import asyncio
import json
import logging
import uuid
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from earthie.app.dependencies import get_chat_pipeline, get_store
from earthie.app.metrics import metrics_middleware, metrics_response, record_stage_failure
from earthie.app.schemas import ChatRequest, ErrorResponse, StatsResponse
from earthie.app.settings import settings
from earthie.rag.embeddings import EmbeddingConfigError, EmbeddingError
from earthie.rag.llm import CompletionConfigError, CompletionError
from earthie.rag.pipeline import ChatPipeline, ChatRequestError, failed_stage
from earthie.vectorstore.base import RetrievalError, StoreConfigError

logger = logging.getLogger(__name__)

app = FastAPI(title="Earthie Knowledge Chat", version="0.1.0")


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _safe_error_message(exc: Exception) -> str:
    """Return a safe error type name for logs."""
    return type(exc).__name__


def _error_response(status_code: int, error: str, details: str | None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


@app.exception_handler(RequestValidationError)
async def invalid_body_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with the standard error shape."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    return _error_response(400, "Invalid request body", details or None)


async def config_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report missing or invalid service configuration."""
    logger.error(
        "service_misconfigured",
        extra={"request_id": _request_id(request), "detail": str(exc)},
    )
    return _error_response(500, "Service is not configured", str(exc))


for _config_error in (EmbeddingConfigError, CompletionConfigError, StoreConfigError):
    app.add_exception_handler(_config_error, config_error_handler)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check for uptime monitors."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse)
async def stats():
    """Return knowledge store size and retrieval settings."""
    try:
        chunk_count = await asyncio.to_thread(get_store().count)
    except RetrievalError as exc:
        logger.error("stats_failed", extra={"detail": _safe_error_message(exc)})
        return _error_response(500, "Failed to read knowledge store", str(exc))
    return StatsResponse(
        backend=settings.vectorstore_backend.lower().strip(),
        chunk_count=chunk_count,
        embedding_dimension=settings.embedding_dimension,
        match_threshold=settings.match_threshold,
        match_count=settings.match_count,
    )


async def _event_stream(tokens: AsyncIterator[str], request_id: str) -> AsyncIterator[str]:
    """Format completion tokens as server-sent events."""
    emitted = 0
    try:
        async for token in tokens:
            emitted += 1
            yield f"data: {json.dumps(token)}\n\n"
    except CompletionError as exc:
        record_stage_failure("completion")
        logger.error(
            "chat_stream_failed",
            extra={"request_id": request_id, "tokens": emitted, "detail": _safe_error_message(exc)},
        )
        payload = {"error": "Failed to generate response", "details": str(exc)}
        yield f"event: error\ndata: {json.dumps(payload)}\n\n"
        return
    finally:
        aclose = getattr(tokens, "aclose", None)
        if aclose is not None:
            await aclose()
    logger.info("chat_completed", extra={"request_id": request_id, "tokens": emitted})
    yield "data: [DONE]\n\n"


@app.post(
    "/chat",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    request: ChatRequest,
    http_request: Request,
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
):
    """Answer the latest user message with knowledge-grounded streaming output."""
    request_id = _request_id(http_request)
    messages = [message.to_message() for message in request.messages]
    try:
        tokens = await pipeline.start_stream(messages)
    except ChatRequestError as exc:
        logger.warning("chat_rejected", extra={"request_id": request_id, "detail": str(exc)})
        return _error_response(400, "Invalid chat request", str(exc))
    except (EmbeddingError, RetrievalError, CompletionError) as exc:
        stage = failed_stage(exc)
        record_stage_failure(stage)
        logger.error(
            "chat_stage_failed",
            extra={
                "request_id": request_id,
                "stage": stage,
                "detail": _safe_error_message(exc),
            },
        )
        return _error_response(500, "Failed to generate response", str(exc))
    return StreamingResponse(
        _event_stream(tokens, request_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
