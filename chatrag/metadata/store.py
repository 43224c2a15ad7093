from __future__ import annotations

"""Ingestion run log persisted in a SQL database."""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text, create_engine


@dataclass(frozen=True)
class IngestionRun:
    """Ingestion metadata tracked for a single source record."""
    source_type: str
    source_id: str
    source_name: str
    status: str = "started"
    request_id: str | None = None
    extra: dict[str, Any] | None = None


class IngestionLog:
    """Record start, completion, and failure of each ingestion run."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the run log and ensure tables exist."""
        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "ingestion_runs",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("source_type", String(32), nullable=False),
            Column("source_id", String(256), nullable=False),
            Column("source_name", String(512), nullable=False),
            Column("request_id", String(64), nullable=True),
            Column("status", String(32), nullable=False),
            Column("chunks_written", Integer, nullable=True),
            Column("error", Text, nullable=True),
            Column("extra", Text, nullable=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("completed_at", DateTime(timezone=True), nullable=True),
        )
        self._metadata.create_all(self._engine)

    def record_start(self, run: IngestionRun) -> str:
        """Create a new run record and return its ID."""
        run_id = str(uuid.uuid4())
        extra = None
        if run.extra:
            extra = json.dumps(run.extra, ensure_ascii=True, default=str)
        with self._engine.begin() as conn:
            conn.execute(
                self._table.insert().values(
                    id=run_id,
                    source_type=run.source_type,
                    source_id=run.source_id,
                    source_name=run.source_name,
                    request_id=run.request_id,
                    status=run.status,
                    extra=extra,
                    created_at=datetime.now(timezone.utc),
                )
            )
        return run_id

    def record_complete(self, run_id: str, chunks_written: int) -> None:
        """Mark a run as completed with its written chunk count."""
        self._finish(run_id, status="completed", chunks_written=chunks_written, error=None)

    def record_failure(self, run_id: str, error: str, chunks_written: int = 0) -> None:
        """Mark a run as failed; a nonzero count means the run was partial."""
        status = "partial" if chunks_written else "failed"
        self._finish(run_id, status=status, chunks_written=chunks_written, error=error)

    def _finish(
        self, run_id: str, status: str, chunks_written: int, error: str | None
    ) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                self._table.update()
                .where(self._table.c.id == run_id)
                .values(
                    status=status,
                    chunks_written=chunks_written,
                    error=error,
                    completed_at=datetime.now(timezone.utc),
                )
            )
