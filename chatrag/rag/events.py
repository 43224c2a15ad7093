from __future__ import annotations

"""In-process hand-off of record-created events to the ingestion consumer."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordCreated:
    """A message or file was written (or rewritten) and should become searchable."""
    source_type: str
    record_id: str
    request_id: str | None = None


EventHandler = Callable[[RecordCreated], Awaitable[None]]


class IngestionQueue:
    """Queue consumed by a single background worker.

    Publishing never waits on ingestion, so a failed embedding cannot fail the
    write that produced the event. Failures are logged and counted.
    """

    def __init__(self, handler: EventHandler) -> None:
        self._handler = handler
        self._queue: asyncio.Queue[RecordCreated] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.processed = 0
        self.failed = 0

    def publish(self, event: RecordCreated) -> None:
        """Enqueue an event; must be called from a running event loop."""
        queue = self._ensure_worker()
        queue.put_nowait(event)
        logger.info(
            "ingestion_event_published",
            extra={
                "source_type": event.source_type,
                "record_id": event.record_id,
                "request_id": event.request_id,
            },
        )

    async def drain(self) -> None:
        """Wait until every published event has been handled."""
        if self._queue is None or self._loop is not asyncio.get_running_loop():
            return
        await self._queue.join()

    async def close(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def _ensure_worker(self) -> asyncio.Queue[RecordCreated]:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            # Queues and tasks are bound to one loop; start fresh on a new one.
            self._queue = asyncio.Queue()
            self._loop = loop
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    async def _run(self, queue: asyncio.Queue[RecordCreated]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._handler(event)
                self.processed += 1
            except Exception as exc:
                self.failed += 1
                logger.error(
                    "ingestion_event_failed",
                    extra={
                        "source_type": event.source_type,
                        "record_id": event.record_id,
                        "request_id": event.request_id,
                        "detail": type(exc).__name__,
                        "error": str(exc),
                    },
                )
            finally:
                queue.task_done()
