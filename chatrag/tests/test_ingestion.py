from __future__ import annotations

from typing import Sequence

import pytest

from chatrag.loaders.text import PageText
from chatrag.rag.embeddings import HashEmbedder
from chatrag.rag.errors import (
    IndexUnavailableError,
    PartialBatchFailure,
    ProviderError,
    UnsupportedFormatError,
)
from chatrag.rag.ingestion import IngestionPipeline
from chatrag.rag.types import DocumentRecord, IndexEntry, MessageRecord
from chatrag.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio

NAMESPACE = "ws"


class CountingEmbedder(HashEmbedder):
    """Hash embedder that records calls and fails on marked text."""

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__(dimension=32)
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise ProviderError("provider timed out")
        return await super().embed(text)


class FlakyIndex(InMemoryVectorIndex):
    """In-memory index whose Nth upsert call fails."""

    def __init__(self, fail_on_call: int) -> None:
        super().__init__()
        self.fail_on_call = fail_on_call
        self.upsert_calls = 0

    async def upsert(self, entries: Sequence[IndexEntry], namespace: str) -> int:
        call = self.upsert_calls
        self.upsert_calls += 1
        if call == self.fail_on_call:
            raise IndexUnavailableError("index went away")
        return await super().upsert(entries, namespace)


def _pages(count: int):
    def extractor(data: bytes, file_name: str) -> list[PageText]:
        return [
            PageText(text=f"Section {i} of the launch plan.", page_number=i + 1)
            for i in range(count)
        ]

    return extractor


def _document(doc_id: str = "f1", file_name: str = "plan.pdf") -> DocumentRecord:
    return DocumentRecord(
        id=doc_id,
        file_name=file_name,
        author_name="Bob",
        channel_name="launch",
        created_at="2024-05-01T10:00:00+00:00",
        raw_bytes=b"%PDF",
    )


def _pipeline(embedder=None, index=None, **kwargs) -> IngestionPipeline:
    return IngestionPipeline(
        embedder=embedder or CountingEmbedder(),
        index=index or InMemoryVectorIndex(),
        namespace=NAMESPACE,
        **kwargs,
    )


async def test_message_ingest_uses_message_id() -> None:
    index = InMemoryVectorIndex()
    pipeline = _pipeline(index=index)
    record = MessageRecord(
        id="m1",
        author_name="Alice",
        channel_name="general",
        created_at="2024-05-01T10:00:00+00:00",
        text_content="Launch is on Friday",
    )

    report = await pipeline.ingest_message(record)

    assert report.chunks_processed == 1
    assert await index.list_ids("m1", NAMESPACE) == ["m1"]
    stored = index.namespaces[NAMESPACE]["m1"].metadata
    assert stored.source_type == "message"
    assert stored.author_name == "Alice"


async def test_empty_message_makes_no_provider_call() -> None:
    embedder = CountingEmbedder()
    index = InMemoryVectorIndex()
    pipeline = _pipeline(embedder=embedder, index=index)
    record = MessageRecord(
        id="m2",
        author_name="Alice",
        channel_name="general",
        created_at="2024-05-01T10:00:00+00:00",
        text_content="   ",
    )

    report = await pipeline.ingest_message(record)

    assert report.skipped
    assert embedder.calls == []
    assert index.count(NAMESPACE) == 0


async def test_document_chunks_get_deterministic_ids_and_pages() -> None:
    index = InMemoryVectorIndex()
    pipeline = _pipeline(index=index, extractor=_pages(3))

    report = await pipeline.ingest_document(_document())

    assert report.chunks_processed == 3
    assert await index.list_ids("f1-chunk-", NAMESPACE) == [
        "f1-chunk-0",
        "f1-chunk-1",
        "f1-chunk-2",
    ]
    metadata = index.namespaces[NAMESPACE]["f1-chunk-2"].metadata
    assert metadata.page_number == 3
    assert metadata.chunk_index == 2
    assert metadata.file_name == "plan.pdf"


async def test_reingest_is_idempotent() -> None:
    index = InMemoryVectorIndex()
    pipeline = _pipeline(index=index, extractor=_pages(4))

    await pipeline.ingest_document(_document())
    report = await pipeline.ingest_document(_document())

    assert report.chunks_processed == 4
    assert report.stale_removed == 0
    assert index.count(NAMESPACE) == 4


async def test_shorter_reingest_prunes_stale_chunks() -> None:
    index = InMemoryVectorIndex()
    await _pipeline(index=index, extractor=_pages(5)).ingest_document(_document())

    report = await _pipeline(index=index, extractor=_pages(2)).ingest_document(_document())

    assert report.stale_removed == 3
    assert await index.list_ids("f1-chunk-", NAMESPACE) == ["f1-chunk-0", "f1-chunk-1"]


async def test_embedding_failure_keeps_durable_prefix() -> None:
    index = InMemoryVectorIndex()
    embedder = CountingEmbedder(fail_on="Section 3 ")
    pipeline = _pipeline(embedder=embedder, index=index, extractor=_pages(5))

    with pytest.raises(PartialBatchFailure) as excinfo:
        await pipeline.ingest_document(_document())

    assert excinfo.value.chunks_written == 3
    assert isinstance(excinfo.value.cause, ProviderError)
    assert await index.list_ids("f1-chunk-", NAMESPACE) == [
        "f1-chunk-0",
        "f1-chunk-1",
        "f1-chunk-2",
    ]


async def test_embedding_failure_on_first_chunk_reraises_provider_error() -> None:
    index = InMemoryVectorIndex()
    embedder = CountingEmbedder(fail_on="Section 0 ")
    pipeline = _pipeline(embedder=embedder, index=index, extractor=_pages(3))

    with pytest.raises(ProviderError):
        await pipeline.ingest_document(_document())
    assert index.count(NAMESPACE) == 0


async def test_batch_failure_reports_written_count() -> None:
    index = FlakyIndex(fail_on_call=1)
    pipeline = _pipeline(index=index, extractor=_pages(5), batch_size=2)

    with pytest.raises(PartialBatchFailure) as excinfo:
        await pipeline.ingest_document(_document())

    assert excinfo.value.chunks_written == 2
    assert excinfo.value.failed_batch == 1
    assert await index.list_ids("f1-chunk-", NAMESPACE) == ["f1-chunk-0", "f1-chunk-1"]


async def test_first_batch_failure_reraises_index_error() -> None:
    index = FlakyIndex(fail_on_call=0)
    pipeline = _pipeline(index=index, extractor=_pages(3), batch_size=2)

    with pytest.raises(IndexUnavailableError):
        await pipeline.ingest_document(_document())


async def test_unsupported_format_writes_nothing() -> None:
    embedder = CountingEmbedder()
    index = InMemoryVectorIndex()
    pipeline = _pipeline(embedder=embedder, index=index)

    with pytest.raises(UnsupportedFormatError):
        await pipeline.ingest_document(_document(file_name="archive.zip"))

    assert embedder.calls == []
    assert index.count(NAMESPACE) == 0


async def test_text_document_is_chunked_across_size_limit() -> None:
    index = InMemoryVectorIndex()
    pipeline = _pipeline(index=index, chunk_size=200, chunk_overlap=20)
    record = DocumentRecord(
        id="notes",
        file_name="notes.md",
        author_name="Carol",
        channel_name="eng",
        created_at="2024-05-01T10:00:00+00:00",
        raw_bytes=("Deploys happen on Tuesdays. " * 30).encode("utf-8"),
    )

    report = await pipeline.ingest_document(record)

    assert report.chunks_processed > 1
    for entry in index.namespaces[NAMESPACE].values():
        assert len(entry.metadata.content) <= 200
        assert entry.metadata.page_number is None
