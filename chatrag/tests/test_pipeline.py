from __future__ import annotations

import pytest

from chatrag.rag.answerer import ExtractiveAnswerer
from chatrag.rag.embeddings import HashEmbedder
from chatrag.rag.errors import EmptyQueryError, GenerationError, IndexUnavailableError
from chatrag.rag.ingestion import IngestionPipeline
from chatrag.rag.llm import DEFAULT_REFUSAL
from chatrag.rag.pipeline import AssistantPipeline
from chatrag.rag.retrieval import Retriever
from chatrag.rag.types import AnswerResult, MessageRecord, RetrievedContext
from chatrag.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio


class FailingAnswerer:
    async def answer(self, query: str, context: RetrievedContext) -> AnswerResult:
        raise GenerationError("model unavailable")


class BrokenIndex(InMemoryVectorIndex):
    async def query(self, vector, top_k, namespace, filter=None):
        raise IndexUnavailableError("index offline")


def _pipeline(index=None, answerer=None) -> tuple[AssistantPipeline, IngestionPipeline]:
    embedder = HashEmbedder()
    index = index or InMemoryVectorIndex()
    retriever = Retriever(embedder=embedder, index=index, namespace="ws")
    ingestion = IngestionPipeline(embedder=embedder, index=index, namespace="ws")
    return AssistantPipeline(retriever=retriever, answerer=answerer or ExtractiveAnswerer()), ingestion


async def test_grounded_answer_from_message() -> None:
    assistant, ingestion = _pipeline()
    await ingestion.ingest_message(
        MessageRecord(
            id="m1",
            author_name="Alice",
            channel_name="general",
            created_at="2024-05-01T10:00:00+00:00",
            text_content="Launch is on Friday",
        )
    )

    result = await assistant.ask("When is the launch?")

    assert "Launch is on Friday" in result.answer_text
    assert result.sources[0].id == "m1"


async def test_no_context_refuses() -> None:
    assistant, _ = _pipeline()

    result = await assistant.ask("What is the travel policy?")

    assert result.answer_text == DEFAULT_REFUSAL
    assert result.sources == []


async def test_empty_query_tagged_with_embedding_stage() -> None:
    assistant, _ = _pipeline()

    with pytest.raises(EmptyQueryError) as excinfo:
        await assistant.ask("")

    assert excinfo.value.stage == "embedding"


async def test_index_failure_tagged_with_retrieving_stage() -> None:
    assistant, _ = _pipeline(index=BrokenIndex())

    with pytest.raises(IndexUnavailableError) as excinfo:
        await assistant.ask("When is the launch?")

    assert excinfo.value.stage == "retrieving"


async def test_generation_failure_tagged_with_generating_stage() -> None:
    assistant, _ = _pipeline(answerer=FailingAnswerer())

    with pytest.raises(GenerationError) as excinfo:
        await assistant.ask("When is the launch?")

    assert excinfo.value.stage == "generating"
