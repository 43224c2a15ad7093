from __future__ import annotations

"""Bridge workspace records to the ingestion pipeline, with run logging and metrics."""

import logging
from dataclasses import replace
from typing import Any

from chatrag.app.dependencies import (
    get_blob_store,
    get_ingestion_log,
    get_ingestion_pipeline,
    get_workspace_store,
)
from chatrag.app.metrics import INDEX_ENTRIES_WRITTEN, INGESTION_FAILURES
from chatrag.metadata.store import IngestionRun
from chatrag.rag.errors import PartialBatchFailure
from chatrag.rag.events import RecordCreated
from chatrag.rag.ingestion import IngestionReport
from chatrag.rag.types import (
    DOCUMENT_SOURCE,
    MESSAGE_SOURCE,
    DocumentRecord,
    MessageRecord,
)
from chatrag.workspace.store import FileRow, MessageRow

logger = logging.getLogger(__name__)


def message_record(row: MessageRow) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        author_name=row.user_name,
        channel_name=row.channel_name,
        created_at=row.created_at,
        text_content=row.content,
        is_reply=bool(row.parent_message_id),
        parent_id=row.parent_message_id,
    )


def document_record(row: FileRow, raw_bytes: bytes) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        file_name=row.file_name,
        author_name=row.user_name,
        channel_name=row.channel_name,
        created_at=row.created_at,
        raw_bytes=raw_bytes,
    )


async def ingest_message_row(row: MessageRow, request_id: str | None = None) -> IngestionReport:
    """Embed and index one stored message."""
    run_id = _start_run(
        MESSAGE_SOURCE,
        row.id,
        f"#{row.channel_name}",
        request_id,
        extra={"channel_id": row.channel_id, "is_reply": bool(row.parent_message_id)},
    )
    try:
        report = await get_ingestion_pipeline().ingest_message(message_record(row))
    except Exception as exc:
        _fail_run(run_id, MESSAGE_SOURCE, exc, written=0)
        raise
    _complete_run(run_id, report)
    return report


async def ingest_file_row(row: FileRow, request_id: str | None = None) -> IngestionReport:
    """Download a stored file, then chunk, embed, and index it.

    A file deleted while its ingestion was in flight has its freshly written
    entries removed again, and the report comes back skipped.
    """
    run_id = _start_run(
        DOCUMENT_SOURCE,
        row.id,
        row.file_name,
        request_id,
        extra={
            "channel_id": row.channel_id,
            "file_name": row.file_name,
            "size_bytes": row.size_bytes,
            "storage_path": row.storage_path,
        },
    )
    pipeline = get_ingestion_pipeline()
    try:
        raw_bytes = get_blob_store().get(row.storage_path)
        report = await pipeline.ingest_document(document_record(row, raw_bytes))
        if get_workspace_store().get_file(row.id) is None:
            removed = await pipeline.index.delete_source(row.id, pipeline.namespace)
            logger.info(
                "ingestion_source_deleted",
                extra={"source_id": row.id, "request_id": request_id, "entries_removed": removed},
            )
            report = replace(report, chunks_processed=0, entry_ids=[], skipped=True)
    except PartialBatchFailure as exc:
        INDEX_ENTRIES_WRITTEN.labels(DOCUMENT_SOURCE).inc(exc.chunks_written)
        _fail_run(run_id, DOCUMENT_SOURCE, exc, written=exc.chunks_written)
        raise
    except Exception as exc:
        _fail_run(run_id, DOCUMENT_SOURCE, exc, written=0)
        raise
    _complete_run(run_id, report)
    return report


async def handle_record_created(event: RecordCreated) -> None:
    """Ingestion consumer for record-created events published by the API."""
    store = get_workspace_store()
    if event.source_type == MESSAGE_SOURCE:
        message = store.get_message(event.record_id)
        if message is None:
            logger.warning("ingestion_record_missing", extra={"record_id": event.record_id})
            return
        await ingest_message_row(message, event.request_id)
        return
    if event.source_type == DOCUMENT_SOURCE:
        stored = store.get_file(event.record_id)
        if stored is None:
            logger.warning("ingestion_record_missing", extra={"record_id": event.record_id})
            return
        await ingest_file_row(stored, event.request_id)
        return
    raise ValueError(f"Unknown source_type for ingestion: {event.source_type}")


def _start_run(
    source_type: str,
    source_id: str,
    source_name: str,
    request_id: str | None,
    extra: dict[str, Any] | None = None,
) -> str | None:
    log = get_ingestion_log()
    if log is None:
        return None
    return log.record_start(
        IngestionRun(
            source_type=source_type,
            source_id=source_id,
            source_name=source_name,
            request_id=request_id,
            extra=extra,
        )
    )


def _complete_run(run_id: str | None, report: IngestionReport) -> None:
    INDEX_ENTRIES_WRITTEN.labels(report.source_type).inc(report.chunks_processed)
    log = get_ingestion_log()
    if log is not None and run_id:
        log.record_complete(run_id, chunks_written=report.chunks_processed)


def _fail_run(run_id: str | None, source_type: str, exc: Exception, written: int) -> None:
    INGESTION_FAILURES.labels(source_type, type(exc).__name__).inc()
    log = get_ingestion_log()
    if log is not None and run_id:
        log.record_failure(run_id, error=str(exc), chunks_written=written)
