from __future__ import annotations

import pytest

from chatrag.rag.errors import IndexUnavailableError
from chatrag.rag.types import DocumentMetadata, IndexEntry, MessageMetadata
from chatrag.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio


def _message(entry_id: str, vector: list[float], content: str = "hi") -> IndexEntry:
    return IndexEntry(
        id=entry_id,
        vector=vector,
        metadata=MessageMetadata(
            content=content,
            author_name="Alice",
            channel_name="general",
            created_at="2024-05-01T10:00:00+00:00",
            source_id=entry_id,
        ),
    )


def _chunk(source_id: str, index: int, vector: list[float]) -> IndexEntry:
    return IndexEntry(
        id=f"{source_id}-chunk-{index}",
        vector=vector,
        metadata=DocumentMetadata(
            content=f"chunk {index}",
            author_name="Bob",
            channel_name="docs",
            created_at="2024-05-01T10:00:00+00:00",
            source_id=source_id,
            file_name="plan.txt",
            chunk_index=index,
        ),
    )


async def test_upsert_overwrites_and_query_ranks_by_similarity() -> None:
    index = InMemoryVectorIndex()
    await index.upsert([_message("m1", [1.0, 0.0]), _message("m2", [0.0, 1.0])], "ws")
    await index.upsert([_message("m1", [1.0, 0.0], content="edited")], "ws")

    matches = await index.query([0.9, 0.1], top_k=5, namespace="ws")

    assert index.count("ws") == 2
    assert [match.id for match in matches] == ["m1", "m2"]
    assert matches[0].metadata.content == "edited"
    assert matches[0].score > matches[1].score


async def test_query_respects_top_k_and_filter() -> None:
    index = InMemoryVectorIndex()
    await index.upsert(
        [_message("m1", [1.0, 0.0]), _chunk("f1", 0, [1.0, 0.0]), _chunk("f1", 1, [0.8, 0.2])],
        "ws",
    )

    top_one = await index.query([1.0, 0.0], top_k=1, namespace="ws")
    documents = await index.query(
        [1.0, 0.0], top_k=5, namespace="ws", filter={"source_type": "document"}
    )

    assert len(top_one) == 1
    assert {match.id for match in documents} == {"f1-chunk-0", "f1-chunk-1"}


async def test_namespaces_are_isolated() -> None:
    index = InMemoryVectorIndex()
    await index.upsert([_message("m1", [1.0, 0.0])], "alpha")

    assert await index.query([1.0, 0.0], top_k=5, namespace="beta") == []


async def test_dimension_mismatch_rejected() -> None:
    index = InMemoryVectorIndex()
    await index.upsert([_message("m1", [1.0, 0.0])], "ws")

    with pytest.raises(IndexUnavailableError):
        await index.upsert([_message("m2", [1.0, 0.0, 0.0])], "ws")
    with pytest.raises(IndexUnavailableError):
        await index.query([1.0, 0.0, 0.0], top_k=1, namespace="ws")


async def test_empty_namespace_is_unavailable() -> None:
    index = InMemoryVectorIndex()

    with pytest.raises(IndexUnavailableError):
        await index.upsert([_message("m1", [1.0])], "")


async def test_list_ids_and_delete_source() -> None:
    index = InMemoryVectorIndex()
    await index.upsert(
        [_chunk("f1", 0, [1.0, 0.0]), _chunk("f1", 1, [1.0, 0.0]), _chunk("f10", 0, [1.0, 0.0])],
        "ws",
    )

    assert await index.list_ids("f1-chunk-", "ws") == ["f1-chunk-0", "f1-chunk-1"]
    assert await index.delete_source("f1", "ws") == 2
    assert await index.list_ids("f1", "ws") == ["f10-chunk-0"]
    assert index.stats()["entry_count"] == 1
