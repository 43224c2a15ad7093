from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from chatrag.app.settings import settings
from chatrag.loaders.object_store import BlobStore, LocalBlobStore, ObjectStoreConfig, S3BlobStore
from chatrag.metadata.store import IngestionLog
from chatrag.rag.answerer import Answerer, ExtractiveAnswerer
from chatrag.rag.embeddings import (
    EmbeddingClient,
    EmbeddingConfigError,
    HashEmbedder,
    OpenAIEmbedder,
)
from chatrag.rag.events import IngestionQueue
from chatrag.rag.ingestion import IngestionPipeline
from chatrag.rag.llm import LLMAnswerer, build_chat_model
from chatrag.rag.pipeline import AssistantPipeline
from chatrag.rag.retrieval import Retriever
from chatrag.vectorstore.base import VectorIndex
from chatrag.vectorstore.inmemory import InMemoryVectorIndex
from chatrag.vectorstore.milvus import MilvusConfig, MilvusVectorIndex
from chatrag.workspace.store import WorkspaceStore


@lru_cache
def get_embedder() -> EmbeddingClient:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension or 256)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
            base_url=settings.openai_base_url,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


@lru_cache
def get_vector_index() -> VectorIndex:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "milvus":
        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            dimension=get_embedder().dimension,
            timeout=settings.milvus_timeout,
        )
        return MilvusVectorIndex(config=config)
    return InMemoryVectorIndex()


@lru_cache
def get_ingestion_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        embedder=get_embedder(),
        index=get_vector_index(),
        namespace=settings.namespace,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        batch_size=settings.upsert_batch_size,
        max_concurrency=settings.embed_concurrency,
    )


@lru_cache
def get_retriever() -> Retriever:
    return Retriever(
        embedder=get_embedder(),
        index=get_vector_index(),
        namespace=settings.namespace,
        top_k=settings.top_k,
    )


@lru_cache
def get_answerer() -> Answerer:
    if settings.answerer_mode == "llm":
        model = build_chat_model(
            settings.llm_provider,
            api_key_openai=settings.openai_api_key,
            openai_base_url=settings.openai_base_url,
            openai_model=settings.openai_chat_model,
            ollama_base_url=settings.ollama_base_url,
            ollama_model=settings.ollama_model,
            timeout=settings.llm_timeout,
        )
        return LLMAnswerer(
            model=model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    return ExtractiveAnswerer()


@lru_cache
def get_assistant() -> AssistantPipeline:
    return AssistantPipeline(retriever=get_retriever(), answerer=get_answerer())


@lru_cache
def get_workspace_store() -> WorkspaceStore:
    return WorkspaceStore(settings.workspace_db_uri)


@lru_cache
def get_blob_store() -> BlobStore:
    if settings.blob_backend.lower().strip() == "s3":
        if not settings.object_store_bucket:
            raise ValueError("RAG_OBJECT_STORE_BUCKET is required for the s3 blob backend")
        return S3BlobStore(
            config=ObjectStoreConfig(
                bucket=settings.object_store_bucket,
                endpoint_url=settings.object_store_endpoint_url,
                region=settings.object_store_region,
                access_key=settings.object_store_access_key,
                secret_key=settings.object_store_secret_key,
                session_token=settings.object_store_session_token,
                max_bytes=settings.file_max_bytes,
            )
        )
    return LocalBlobStore(root=Path(settings.blob_root))


@lru_cache
def get_ingestion_log() -> IngestionLog | None:
    if not settings.metadata_db_uri:
        return None
    return IngestionLog(settings.metadata_db_uri)


@lru_cache
def get_ingestion_queue() -> IngestionQueue:
    from chatrag.app.ingestion import handle_record_created

    return IngestionQueue(handle_record_created)


def reset_pipeline_cache() -> None:
    for cached in (
        get_embedder,
        get_vector_index,
        get_ingestion_pipeline,
        get_retriever,
        get_answerer,
        get_assistant,
        get_workspace_store,
        get_blob_store,
        get_ingestion_log,
        get_ingestion_queue,
    ):
        cached.cache_clear()
