from __future__ import annotations

"""Ingestion of chat messages and uploaded documents into the vector index."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from chatrag.loaders.chunking import chunk_text
from chatrag.loaders.extract import extract_pages
from chatrag.loaders.text import PageText
from chatrag.rag.embeddings import EmbeddingClient
from chatrag.rag.errors import PartialBatchFailure, PipelineError
from chatrag.rag.types import (
    DOCUMENT_SOURCE,
    MESSAGE_SOURCE,
    Chunk,
    DocumentMetadata,
    DocumentRecord,
    IndexEntry,
    MessageMetadata,
    MessageRecord,
    chunk_id_prefix,
)
from chatrag.vectorstore.base import VectorIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of ingesting one source record."""
    source_id: str
    source_type: str
    chunks_processed: int
    entry_ids: list[str] = field(default_factory=list)
    stale_removed: int = 0
    skipped: bool = False


@dataclass
class IngestionPipeline:
    """Turn source records into index entries and upsert them."""
    embedder: EmbeddingClient
    index: VectorIndex
    namespace: str
    chunk_size: int = 1000
    chunk_overlap: int = 100
    batch_size: int = 100
    max_concurrency: int = 4
    extractor: Callable[[bytes, str], list[PageText]] = extract_pages

    async def ingest_message(self, record: MessageRecord) -> IngestionReport:
        """Embed a chat message and upsert it under its own id."""
        if not record.text_content or not record.text_content.strip():
            logger.info("message_ingest_skipped", extra={"source_id": record.id})
            return IngestionReport(
                source_id=record.id,
                source_type=MESSAGE_SOURCE,
                chunks_processed=0,
                skipped=True,
            )
        vector = await self.embedder.embed(record.text_content)
        entry = IndexEntry(
            id=record.id,
            vector=vector,
            metadata=MessageMetadata(
                content=record.text_content,
                author_name=record.author_name,
                channel_name=record.channel_name,
                created_at=record.created_at,
                source_id=record.id,
                is_reply=record.is_reply,
                parent_id=record.parent_id,
            ),
        )
        await self.index.upsert([entry], self.namespace)
        logger.info(
            "message_ingested",
            extra={"source_id": record.id, "channel": record.channel_name},
        )
        return IngestionReport(
            source_id=record.id,
            source_type=MESSAGE_SOURCE,
            chunks_processed=1,
            entry_ids=[entry.id],
        )

    def build_chunks(self, record: DocumentRecord) -> list[Chunk]:
        """Extract text from the document and split it into ordered chunks.

        Chunk indices run across pages so entry ids stay unique per document.
        Raises ``UnsupportedFormatError`` before anything touches the index.
        """
        pages = self.extractor(record.raw_bytes, record.file_name)
        chunks: list[Chunk] = []
        for page in pages:
            for piece in chunk_text(page.text, self.chunk_size, self.chunk_overlap):
                if not piece.text.strip():
                    continue
                chunks.append(
                    Chunk(
                        source_id=record.id,
                        chunk_index=len(chunks),
                        text_content=piece.text,
                        page_number=page.page_number,
                    )
                )
        return chunks

    async def ingest_document(self, record: DocumentRecord) -> IngestionReport:
        """Chunk, embed, and upsert a document in sequential batches.

        Embeddings run concurrently with bounded parallelism. Only the longest
        prefix of successfully embedded chunks is written, so the reported count
        always names a contiguous range ``0..n-1`` of durable chunk ids. When a
        failure follows at least one durable write, ``PartialBatchFailure`` is
        raised and earlier writes are kept.
        """
        chunks = self.build_chunks(record)
        if not chunks:
            logger.info(
                "document_ingest_skipped",
                extra={"source_id": record.id, "file_name": record.file_name},
            )
            return IngestionReport(
                source_id=record.id,
                source_type=DOCUMENT_SOURCE,
                chunks_processed=0,
                skipped=True,
            )

        vectors = await self._embed_chunks(chunks)
        entries: list[IndexEntry] = []
        embed_error: Exception | None = None
        for chunk, vector in zip(chunks, vectors):
            if isinstance(vector, Exception):
                embed_error = vector
                break
            entries.append(self._document_entry(record, chunk, vector))

        written = await self._upsert_batches(record, entries, embed_error)
        if embed_error is not None:
            self._raise_partial(record, written, None, embed_error)

        stale_removed = await self._prune_stale(record.id, {entry.id for entry in entries})
        logger.info(
            "document_ingested",
            extra={
                "source_id": record.id,
                "file_name": record.file_name,
                "chunks": written,
                "stale_removed": stale_removed,
            },
        )
        return IngestionReport(
            source_id=record.id,
            source_type=DOCUMENT_SOURCE,
            chunks_processed=written,
            entry_ids=[entry.id for entry in entries],
            stale_removed=stale_removed,
        )

    async def _embed_chunks(self, chunks: Sequence[Chunk]) -> list[list[float] | Exception]:
        semaphore = asyncio.Semaphore(max(1, self.max_concurrency))

        async def _embed(chunk: Chunk) -> list[float]:
            async with semaphore:
                return await self.embedder.embed(chunk.text_content)

        results = await asyncio.gather(
            *(_embed(chunk) for chunk in chunks), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        return list(results)

    async def _upsert_batches(
        self,
        record: DocumentRecord,
        entries: list[IndexEntry],
        embed_error: Exception | None,
    ) -> int:
        """Write entries in ordered batches and stop at the first failure."""
        written = 0
        step = max(1, self.batch_size)
        for batch_number, start in enumerate(range(0, len(entries), step)):
            batch = entries[start : start + step]
            try:
                await self.index.upsert(batch, self.namespace)
            except PipelineError as exc:
                self._raise_partial(record, written, batch_number, exc)
            written += len(batch)
        return written

    def _raise_partial(
        self,
        record: DocumentRecord,
        written: int,
        failed_batch: int | None,
        cause: Exception,
    ) -> None:
        logger.error(
            "document_ingest_failed",
            extra={
                "source_id": record.id,
                "chunks_written": written,
                "failed_batch": failed_batch,
                "detail": type(cause).__name__,
            },
        )
        if written == 0:
            raise cause
        where = f"batch {failed_batch}" if failed_batch is not None else "embedding"
        raise PartialBatchFailure(
            f"Document {record.id} ingestion stopped at {where} after "
            f"{written} chunks: {cause}",
            chunks_written=written,
            failed_batch=failed_batch,
            cause=cause,
        ) from cause

    async def _prune_stale(self, source_id: str, current_ids: set[str]) -> int:
        """Delete chunk entries left over from a longer earlier version."""
        existing = await self.index.list_ids(chunk_id_prefix(source_id), self.namespace)
        stale = [entry_id for entry_id in existing if entry_id not in current_ids]
        if not stale:
            return 0
        return await self.index.delete(stale, self.namespace)

    def _document_entry(
        self, record: DocumentRecord, chunk: Chunk, vector: list[float]
    ) -> IndexEntry:
        return IndexEntry(
            id=chunk.entry_id,
            vector=vector,
            metadata=DocumentMetadata(
                content=chunk.text_content,
                author_name=record.author_name,
                channel_name=record.channel_name,
                created_at=record.created_at,
                source_id=record.id,
                file_name=record.file_name,
                chunk_index=chunk.chunk_index,
                page_number=chunk.page_number,
            ),
        )
