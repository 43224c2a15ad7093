from __future__ import annotations

import pytest

from chatrag.rag.embeddings import HashEmbedder
from chatrag.rag.errors import EmptyQueryError
from chatrag.rag.ingestion import IngestionPipeline
from chatrag.rag.retrieval import (
    NO_CONTEXT_PLACEHOLDER,
    Retriever,
    format_timestamp,
    render_context_line,
)
from chatrag.rag.types import DocumentMetadata, MessageMetadata, MessageRecord
from chatrag.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio


class RecordingEmbedder(HashEmbedder):
    def __init__(self) -> None:
        super().__init__(dimension=128)
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        return await super().embed(text)


def _message(message_id: str, text: str, author: str = "Alice") -> MessageRecord:
    return MessageRecord(
        id=message_id,
        author_name=author,
        channel_name="general",
        created_at="2024-05-01T10:00:00+00:00",
        text_content=text,
    )


async def _seeded() -> tuple[Retriever, RecordingEmbedder]:
    embedder = RecordingEmbedder()
    index = InMemoryVectorIndex()
    pipeline = IngestionPipeline(embedder=embedder, index=index, namespace="ws")
    await pipeline.ingest_message(_message("m1", "Launch is on Friday"))
    await pipeline.ingest_message(_message("m2", "Lunch menu has tacos", author="Bob"))
    await pipeline.ingest_message(_message("m3", "The office wifi password changed"))
    embedder.calls = 0
    return Retriever(embedder=embedder, index=index, namespace="ws", top_k=2), embedder


def test_message_line_has_provenance() -> None:
    line = render_context_line(
        MessageMetadata(
            content="Launch is on Friday",
            author_name="Alice",
            channel_name="general",
            created_at="2024-05-01T10:00:00Z",
            source_id="m1",
        )
    )

    assert line == "Message from Alice in #general at 2024-05-01 10:00 UTC:\nLaunch is on Friday"


def test_document_line_includes_page_when_known() -> None:
    line = render_context_line(
        DocumentMetadata(
            content="Budget is fixed.",
            author_name="Bob",
            channel_name="finance",
            created_at="2024-05-02T08:30:00+02:00",
            source_id="f1",
            file_name="budget.pdf",
            chunk_index=0,
            page_number=2,
        )
    )

    assert line.startswith(
        "Excerpt from budget.pdf (page 2) shared by Bob in #finance at 2024-05-02 06:30 UTC:"
    )
    assert line.endswith("\nBudget is fixed.")


def test_unparseable_timestamp_passes_through() -> None:
    assert format_timestamp("yesterday") == "yesterday"


async def test_retrieve_ranks_relevant_message_first() -> None:
    retriever, _ = await _seeded()

    context = await retriever.retrieve("When is the launch?")

    assert len(context.matches) == 2
    assert context.matches[0].id == "m1"
    assert context.context_block.startswith("Message from Alice in #general")
    assert "\n\n" in context.context_block


async def test_empty_index_yields_placeholder() -> None:
    retriever = Retriever(embedder=HashEmbedder(), index=InMemoryVectorIndex(), namespace="ws")

    context = await retriever.retrieve("anything at all")

    assert context.is_empty
    assert context.context_block == NO_CONTEXT_PLACEHOLDER


async def test_empty_query_makes_no_embedding_call() -> None:
    retriever, embedder = await _seeded()

    with pytest.raises(EmptyQueryError):
        await retriever.retrieve("   ")
    assert embedder.calls == 0


async def test_source_type_filter() -> None:
    retriever, _ = await _seeded()

    context = await retriever.retrieve("launch", source_type="document")

    assert context.matches == []
