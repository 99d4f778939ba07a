from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}
    match_threshold: float = float(os.getenv("RAG_MATCH_THRESHOLD", "0.5"))
    match_count: int = int(os.getenv("RAG_MATCH_COUNT", "20"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "supabase")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "gemini")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "768"))
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_embedding_model: str = os.getenv("GEMINI_EMBEDDING_MODEL", "models/text-embedding-004")
    gemini_chat_model: str = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.0-flash")
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_service_key: str | None = os.getenv("SUPABASE_SERVICE_KEY")
    supabase_table: str = os.getenv("SUPABASE_TABLE", "knowledge")
    supabase_match_function: str = os.getenv("SUPABASE_MATCH_FUNCTION", "match_knowledge")
    supabase_timeout: float = float(os.getenv("SUPABASE_TIMEOUT", "15"))
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "gemini")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "8192"))
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    embed_batch_size: int = int(os.getenv("RAG_EMBED_BATCH_SIZE", "100"))
    knowledge_dir_raw: str = os.getenv("RAG_KNOWLEDGE_DIR", "")

    @property
    def knowledge_dir(self) -> Path:
        raw = os.getenv("RAG_KNOWLEDGE_DIR", self.knowledge_dir_raw).strip()
        if not raw:
            return PROJECT_ROOT / "knowledge"
        return Path(raw).expanduser()


settings = Settings()
