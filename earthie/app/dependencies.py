from __future__ import annotations

from functools import lru_cache

from earthie.app.settings import settings
from earthie.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingProvider,
    GeminiEmbedder,
    HashEmbedder,
)
from earthie.rag.llm import CompletionClient, build_completion_client
from earthie.rag.pipeline import ChatPipeline
from earthie.vectorstore.base import KnowledgeStore, StoreConfigError
from earthie.vectorstore.inmemory import InMemoryKnowledgeStore
from earthie.vectorstore.supabase import SupabaseConfig, SupabaseKnowledgeStore


@lru_cache
def get_chat_pipeline() -> ChatPipeline:
    return ChatPipeline(
        embedder=get_embedder(),
        store=get_store(),
        completer=build_completer(),
        match_threshold=settings.match_threshold,
        match_count=settings.match_count,
    )


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder()


@lru_cache
def get_store() -> KnowledgeStore:
    return build_store()


def reset_pipeline_cache() -> None:
    get_chat_pipeline.cache_clear()
    get_embedder.cache_clear()
    get_store.cache_clear()


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider in {"gemini", "google"}:
        return GeminiEmbedder(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_embedding_model,
            dimension=settings.embedding_dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_store() -> KnowledgeStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "memory":
        return InMemoryKnowledgeStore()
    if backend == "supabase":
        config = SupabaseConfig(
            url=settings.supabase_url or "",
            service_key=settings.supabase_service_key or "",
            table=settings.supabase_table,
            match_function=settings.supabase_match_function,
            timeout=settings.supabase_timeout,
        )
        return SupabaseKnowledgeStore(config=config)
    raise StoreConfigError(f"Unsupported vector store backend: {backend}")


def build_completer() -> CompletionClient:
    return build_completion_client(
        settings.llm_provider,
        api_key_gemini=settings.gemini_api_key,
        api_key_openai=settings.openai_api_key,
        gemini_model=settings.gemini_chat_model,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )
