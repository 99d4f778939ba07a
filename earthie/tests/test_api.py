from __future__ import annotations

import json

import httpx
import pytest

from earthie.app.dependencies import get_chat_pipeline, reset_pipeline_cache
from earthie.app.main import app
from earthie.app.settings import settings
from earthie.rag.embeddings import EmbeddingError
from earthie.rag.llm import CompletionError, OpenAICompletionClient
from earthie.rag.pipeline import ChatPipeline
from earthie.tests.fakes import RecordingCompleter, RecordingEmbedder, RecordingStore
from earthie.vectorstore.base import RetrievalError

pytestmark = pytest.mark.anyio


def get_client() -> httpx.AsyncClient:
    reset_pipeline_cache()
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def calls():
    log: list[str] = []
    yield log
    app.dependency_overrides.clear()


def install_pipeline(
    calls: list[str],
    contents: list[str] | None = None,
    embed_error: Exception | None = None,
    search_error: Exception | None = None,
    completer: RecordingCompleter | None = None,
) -> RecordingCompleter:
    completer = completer or RecordingCompleter(calls=calls)
    pipeline = ChatPipeline(
        embedder=RecordingEmbedder(calls=calls, error=embed_error),
        store=RecordingStore(calls=calls, contents=contents or [], error=search_error),
        completer=completer,
    )
    app.dependency_overrides[get_chat_pipeline] = lambda: pipeline
    return completer


def parse_events(body: str) -> list[str]:
    return [
        line[len("data: ") :]
        for line in body.split("\n")
        if line.startswith("data: ")
    ]


async def test_health_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["x-request-id"]


async def test_chat_streams_tokens(calls: list[str]) -> None:
    completer = install_pipeline(calls, contents=["Essence is the in-game currency..."])

    async with get_client() as client:
        response = await client.post(
            "/chat",
            json={"messages": [{"role": "user", "content": "What is Essence?"}]},
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_events(response.text)
    assert events[-1] == "[DONE]"
    assert "".join(json.loads(event) for event in events[:-1]) == "Essence is great."
    assert calls == ["embed", "search", "complete"]
    _, sent = completer.requests[0]
    assert "Essence is the in-game currency..." in sent[-1].content
    assert "What is Essence?" in sent[-1].content


async def test_chat_keeps_history(calls: list[str]) -> None:
    completer = install_pipeline(calls, contents=["Civilians walk your properties."])

    async with get_client() as client:
        response = await client.post(
            "/chat",
            json={
                "messages": [
                    {"role": "user", "content": "Hi Earthie"},
                    {"role": "assistant", "content": "Hi! Ask me about Earth2."},
                    {"role": "user", "content": "What do Civilians do?"},
                ]
            },
        )

    assert response.status_code == 200
    _, sent = completer.requests[0]
    assert [message.content for message in sent[:2]] == ["Hi Earthie", "Hi! Ask me about Earth2."]


@pytest.mark.parametrize(
    "body",
    [
        {"messages": []},
        {},
        {"messages": [{"role": "assistant", "content": "Hello!"}]},
        {"messages": [{"role": "user", "content": ""}]},
    ],
)
async def test_chat_rejects_invalid_conversation(calls: list[str], body: dict) -> None:
    install_pipeline(calls, contents=["unused"])

    async with get_client() as client:
        response = await client.post("/chat", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "Invalid chat request"
    assert payload["details"]
    assert calls == []


async def test_chat_rejects_malformed_body(calls: list[str]) -> None:
    install_pipeline(calls)

    async with get_client() as client:
        response = await client.post("/chat", json={"messages": "What is Essence?"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert calls == []


async def test_chat_embedding_failure_returns_500(calls: list[str]) -> None:
    install_pipeline(calls, embed_error=EmbeddingError("upstream error"))

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate response", "details": "upstream error"}
    assert calls == ["embed"]


async def test_chat_retrieval_failure_returns_500(calls: list[str]) -> None:
    install_pipeline(calls, search_error=RetrievalError("rpc failed"))

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 500
    assert response.json()["details"] == "rpc failed"
    assert calls == ["embed", "search"]


async def test_chat_completion_failure_returns_500(calls: list[str]) -> None:
    install_pipeline(
        calls,
        completer=RecordingCompleter(calls=calls, error=CompletionError("model unavailable")),
    )

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 500
    assert response.json()["details"] == "model unavailable"


async def test_chat_failure_mid_stream_emits_error_event(calls: list[str]) -> None:
    install_pipeline(
        calls,
        completer=RecordingCompleter(
            calls=calls,
            fail_after=1,
            fail_error=CompletionError("connection reset"),
        ),
    )

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 200
    assert "event: error" in response.text
    assert "[DONE]" not in response.text
    assert json.loads(parse_events(response.text)[0]) == "Essence "
    assert calls == ["embed", "search", "complete"]


def install_openai_upstream(calls: list[str], body: bytes) -> None:
    completer = OpenAICompletionClient(
        api_key="sk-test",
        base_url="https://llm.example/v1",
        model="gpt-test",
        temperature=0.7,
        max_tokens=256,
        timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body)),
    )
    pipeline = ChatPipeline(
        embedder=RecordingEmbedder(calls=calls),
        store=RecordingStore(calls=calls),
        completer=completer,
    )
    app.dependency_overrides[get_chat_pipeline] = lambda: pipeline


async def test_chat_malformed_upstream_chunk_returns_json_500(calls: list[str]) -> None:
    install_openai_upstream(calls, b'data: {"choices": ["oops"]}\n\ndata: [DONE]\n\n')

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to generate response",
        "details": "Invalid OpenAI stream chunk",
    }


async def test_chat_malformed_upstream_chunk_mid_stream_emits_error_event(
    calls: list[str],
) -> None:
    install_openai_upstream(
        calls,
        b'data: {"choices": [{"delta": {"content": "Essence "}}]}\n\n'
        b'data: {"choices": [{"delta": "oops"}]}\n\n'
        b"data: [DONE]\n\n",
    )

    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 200
    events = parse_events(response.text)
    assert json.loads(events[0]) == "Essence "
    assert json.loads(events[1])["details"] == "Invalid OpenAI stream chunk"
    assert "[DONE]" not in response.text


async def test_chat_without_configured_llm_returns_500() -> None:
    async with get_client() as client:
        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "What is Essence?"}]}
        )

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"] == "Service is not configured"
    assert "GEMINI_API_KEY" in payload["details"]


async def test_stats_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["backend"] == "memory"
    assert data["chunk_count"] == 0
    assert data["match_threshold"] == settings.match_threshold
    assert data["match_count"] == settings.match_count


async def test_metrics_endpoint() -> None:
    async with get_client() as client:
        await client.get("/health")
        response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
