from __future__ import annotations

"""Core data types for source records, index entries, and retrieval."""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Union

MESSAGE_SOURCE = "message"
DOCUMENT_SOURCE = "document"


@dataclass(frozen=True)
class MessageRecord:
    """Chat message made searchable as a single index entry."""
    id: str
    author_name: str
    channel_name: str
    created_at: str
    text_content: str
    is_reply: bool = False
    parent_id: str | None = None


@dataclass(frozen=True)
class DocumentRecord:
    """Uploaded file made searchable as a sequence of chunks."""
    id: str
    file_name: str
    author_name: str
    channel_name: str
    created_at: str
    raw_bytes: bytes = field(repr=False)


@dataclass(frozen=True)
class Chunk:
    """Transient slice of a document produced during ingestion."""
    source_id: str
    chunk_index: int
    text_content: str
    page_number: int | None = None

    @property
    def entry_id(self) -> str:
        return chunk_entry_id(self.source_id, self.chunk_index)


def chunk_id_prefix(source_id: str) -> str:
    return f"{source_id}-chunk-"


def chunk_entry_id(source_id: str, chunk_index: int) -> str:
    """Return the deterministic index id for a document chunk."""
    return f"{chunk_id_prefix(source_id)}{chunk_index}"


@dataclass(frozen=True)
class MessageMetadata:
    """Provenance stored alongside a message embedding."""
    content: str
    author_name: str
    channel_name: str
    created_at: str
    source_id: str
    is_reply: bool = False
    parent_id: str | None = None
    source_type: Literal["message"] = MESSAGE_SOURCE


@dataclass(frozen=True)
class DocumentMetadata:
    """Provenance stored alongside a document chunk embedding."""
    content: str
    author_name: str
    channel_name: str
    created_at: str
    source_id: str
    file_name: str
    chunk_index: int
    page_number: int | None = None
    source_type: Literal["document"] = DOCUMENT_SOURCE


Metadata = Union[MessageMetadata, DocumentMetadata]


def metadata_to_dict(metadata: Metadata) -> dict[str, Any]:
    """Flatten metadata into a JSON-compatible dict for the index."""
    return asdict(metadata)


def metadata_from_dict(payload: dict[str, Any]) -> Metadata:
    """Rebuild a metadata variant from its stored dict form."""
    source_type = payload.get("source_type")
    if source_type == MESSAGE_SOURCE:
        return MessageMetadata(
            content=str(payload.get("content", "")),
            author_name=str(payload.get("author_name", "")),
            channel_name=str(payload.get("channel_name", "")),
            created_at=str(payload.get("created_at", "")),
            source_id=str(payload.get("source_id", "")),
            is_reply=bool(payload.get("is_reply", False)),
            parent_id=payload.get("parent_id") or None,
        )
    if source_type == DOCUMENT_SOURCE:
        page_number = payload.get("page_number")
        return DocumentMetadata(
            content=str(payload.get("content", "")),
            author_name=str(payload.get("author_name", "")),
            channel_name=str(payload.get("channel_name", "")),
            created_at=str(payload.get("created_at", "")),
            source_id=str(payload.get("source_id", "")),
            file_name=str(payload.get("file_name", "")),
            chunk_index=int(payload.get("chunk_index", 0)),
            page_number=int(page_number) if page_number is not None else None,
        )
    raise ValueError(f"Unknown source_type in index metadata: {source_type!r}")


@dataclass(frozen=True)
class IndexEntry:
    """Unit stored in the vector index."""
    id: str
    vector: list[float] = field(repr=False)
    metadata: Metadata


@dataclass(frozen=True)
class QueryMatch:
    """Nearest-neighbour match with similarity score."""
    id: str
    score: float
    metadata: Metadata


@dataclass(frozen=True)
class RetrievedContext:
    """Matches for a query plus the rendered context block."""
    query: str
    matches: list[QueryMatch]
    context_block: str

    @property
    def is_empty(self) -> bool:
        return not self.matches


@dataclass(frozen=True)
class AnswerResult:
    """Grounded answer returned to the caller with its sources."""
    answer_text: str
    sources: list[QueryMatch]
