from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "0"))
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "30"))
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_embedding_model: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
    openai_chat_model: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4-turbo-preview")
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "memory")
    namespace: str = os.getenv("RAG_NAMESPACE", "workspace")
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_collection: str = os.getenv("MILVUS_COLLECTION", "workspace_assistant")
    milvus_timeout: float = float(os.getenv("MILVUS_TIMEOUT", "30"))
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "openai")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "500"))
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "100"))
    top_k: int = int(os.getenv("RAG_TOP_K", "5"))
    upsert_batch_size: int = int(os.getenv("RAG_UPSERT_BATCH_SIZE", "100"))
    embed_concurrency: int = int(os.getenv("RAG_EMBED_CONCURRENCY", "4"))
    workspace_db_uri: str = os.getenv("RAG_WORKSPACE_DB_URI", "sqlite:///./workspace.db")
    metadata_db_uri: str | None = os.getenv("RAG_METADATA_DB_URI")
    blob_backend: str = os.getenv("RAG_BLOB_BACKEND", "local")
    blob_root: str = os.getenv("RAG_BLOB_ROOT", "./blobs")
    object_store_endpoint_url: str | None = os.getenv("RAG_OBJECT_STORE_ENDPOINT_URL")
    object_store_region: str | None = os.getenv("RAG_OBJECT_STORE_REGION")
    object_store_access_key: str | None = os.getenv("RAG_OBJECT_STORE_ACCESS_KEY")
    object_store_secret_key: str | None = os.getenv("RAG_OBJECT_STORE_SECRET_KEY")
    object_store_session_token: str | None = os.getenv("RAG_OBJECT_STORE_SESSION_TOKEN")
    object_store_bucket: str | None = os.getenv("RAG_OBJECT_STORE_BUCKET")
    file_max_bytes: int = int(os.getenv("RAG_FILE_MAX_BYTES", "52428800"))
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}
    answerer_mode_raw: str = os.getenv("RAG_ANSWERER", "extractive")
    api_key_map_raw: str = os.getenv("RAG_API_KEY_MAP", "")
    allow_anonymous_raw: str = os.getenv("RAG_ALLOW_ANONYMOUS", "false")

    @property
    def answerer_mode(self) -> str:
        return os.getenv("RAG_ANSWERER", self.answerer_mode_raw).strip().lower()

    @property
    def allow_anonymous(self) -> bool:
        raw = os.getenv("RAG_ALLOW_ANONYMOUS", self.allow_anonymous_raw)
        return raw.strip().lower() in {"1", "true", "yes"}

    @property
    def api_key_map(self) -> dict[str, dict[str, str]]:
        """Map API keys to the workspace user they authenticate."""
        raw = os.getenv("RAG_API_KEY_MAP", self.api_key_map_raw).strip()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}
        result: dict[str, dict[str, str]] = {}
        for key, value in data.items():
            if not isinstance(key, str) or not isinstance(value, dict):
                continue
            user_id = value.get("user_id")
            user_name = value.get("user_name")
            if not isinstance(user_id, str) or not user_id:
                continue
            if not isinstance(user_name, str) or not user_name:
                user_name = user_id
            result[key] = {"user_id": user_id, "user_name": user_name}
        return result


settings = Settings()
