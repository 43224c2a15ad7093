from __future__ import annotations

import json
import sqlite3

from chatrag.metadata.store import IngestionLog, IngestionRun


def _row(db_path, run_id: str):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(
            "SELECT status, chunks_written, error, extra FROM ingestion_runs WHERE id = ?",
            (run_id,),
        ).fetchone()
    finally:
        conn.close()


def test_ingestion_log_records_lifecycle(tmp_path) -> None:
    db_path = tmp_path / "runs.db"
    log = IngestionLog(f"sqlite:///{db_path}")
    run_id = log.record_start(
        IngestionRun(
            source_type="document",
            source_id="f1",
            source_name="plan.pdf",
            request_id="req-1",
            extra={"pages": 3},
        )
    )
    log.record_complete(run_id, chunks_written=7)

    status, written, error, extra = _row(db_path, run_id)
    assert (status, written, error) == ("completed", 7, None)
    assert json.loads(extra) == {"pages": 3}


def test_failure_status_depends_on_written_chunks(tmp_path) -> None:
    db_path = tmp_path / "runs.db"
    log = IngestionLog(f"sqlite:///{db_path}")
    failed = log.record_start(IngestionRun(source_type="message", source_id="m1", source_name="#general"))
    partial = log.record_start(IngestionRun(source_type="document", source_id="f1", source_name="plan.pdf"))

    log.record_failure(failed, error="provider timed out")
    log.record_failure(partial, error="index offline", chunks_written=3)

    assert _row(db_path, failed) == ("failed", 0, "provider timed out", None)
    assert _row(db_path, partial) == ("partial", 3, "index offline", None)
