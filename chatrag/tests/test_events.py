from __future__ import annotations

import pytest

from chatrag.rag.events import IngestionQueue, RecordCreated

pytestmark = pytest.mark.anyio


async def test_queue_hands_events_to_handler_in_order() -> None:
    seen: list[str] = []

    async def handler(event: RecordCreated) -> None:
        seen.append(event.record_id)

    queue = IngestionQueue(handler)
    queue.publish(RecordCreated(source_type="message", record_id="m1"))
    queue.publish(RecordCreated(source_type="message", record_id="m2"))
    await queue.drain()
    await queue.close()

    assert seen == ["m1", "m2"]
    assert queue.processed == 2
    assert queue.failed == 0


async def test_handler_failure_is_counted_and_worker_survives() -> None:
    seen: list[str] = []

    async def handler(event: RecordCreated) -> None:
        if event.record_id == "bad":
            raise RuntimeError("embedding provider down")
        seen.append(event.record_id)

    queue = IngestionQueue(handler)
    queue.publish(RecordCreated(source_type="document", record_id="bad"))
    queue.publish(RecordCreated(source_type="document", record_id="good"))
    await queue.drain()
    await queue.close()

    assert seen == ["good"]
    assert queue.failed == 1
    assert queue.processed == 1


async def test_drain_without_events_returns() -> None:
    async def handler(event: RecordCreated) -> None:
        raise AssertionError("no events were published")

    queue = IngestionQueue(handler)
    await queue.drain()
    await queue.close()
