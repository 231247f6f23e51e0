"""Tests for the background complaint processor."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from nagarseva.errors import StoreError
from nagarseva.models.enums import NotificationType
from nagarseva.services import processor as processor_module
from nagarseva.services.notifications import InMemoryNotificationSink
from nagarseva.services.processor import ComplaintProcessor

from tests.factories import complaint_document


@pytest.fixture
async def seeded(store):
    await store.set("complaints", "p1", complaint_document("Water Leakage", "Mumbai", description="Pipe burst"))
    await store.set("complaints", "p2", complaint_document("Pothole", "Delhi"))
    await store.set("complaints", "p3", complaint_document("Stray Animals", "Pune"))
    await store.set("complaints", "done", complaint_document("Pothole", "Delhi", processed=True))
    return store


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def processor(seeded, enricher, sink) -> ComplaintProcessor:
    return ComplaintProcessor(seeded, seeded, enricher, sink)


class TestProcessBatch:
    async def test_processes_unprocessed_complaints(self, processor, seeded) -> None:
        processed = await processor.process_batch(await seeded.query("complaints"))
        assert {c.complaint_id for c in processed} == {"p1", "p2", "p3"}, "already processed docs are skipped"
        assert processor.processed_count == 3

    async def test_writes_audit_records(self, processor, seeded) -> None:
        await processor.process_batch(await seeded.query("complaints"))
        audits = await seeded.query("processed_complaints")
        assert len(audits) == 3
        record = next(doc.data for doc in audits if doc.data["complaint_id"] == "p1")
        assert record["department"] == "Water Supply Department"
        assert record["processed_at"] is not None

    async def test_marks_source_documents(self, processor, seeded) -> None:
        await processor.process_batch(await seeded.query("complaints"))
        for doc_id in ("p1", "p2", "p3"):
            doc = await seeded.get("complaints", doc_id)
            assert doc.data["processed"] is True, f"{doc_id} should be marked processed"
            assert "processed_at" in doc.data

    async def test_notifications(self, processor, seeded, sink) -> None:
        await processor.process_batch(await seeded.query("complaints"))
        new = sink.of_type(NotificationType.NEW_COMPLAINT)
        defaults = sink.of_type(NotificationType.DEFAULT_MAPPING)
        assert [n.complaint_id for n in new] == ["p1"], "only high-priority complaints notify as new"
        assert [n.complaint_id for n in defaults] == ["p3"], "default-mapped complaints need manual routing"

    async def test_in_flight_complaints_are_not_processed_twice(self, processor, seeded) -> None:
        docs = await seeded.query("complaints")
        first, second = await asyncio.gather(processor.process_batch(docs), processor.process_batch(docs))
        assert len(first) + len(second) == 3
        assert len(await seeded.query("processed_complaints")) == 3

    async def test_audit_failure_does_not_block_marker(self, seeded, enricher, sink) -> None:
        audit_store = MagicMock()
        audit_store.add = AsyncMock(side_effect=StoreError("audit store down"))
        processor = ComplaintProcessor(seeded, audit_store, enricher, sink)

        processed = await processor.process_batch(await seeded.query("complaints"))
        assert len(processed) == 3, "side-effect failures never roll back enrichment"
        assert (await seeded.get("complaints", "p1")).data["processed"] is True
        assert sink.of_type(NotificationType.NEW_COMPLAINT), "notifications still go out"

    async def test_on_processed_callback(self, seeded, enricher, sink) -> None:
        callback = AsyncMock()
        processor = ComplaintProcessor(seeded, seeded, enricher, sink, on_processed=callback)
        await processor.process_batch(await seeded.query("complaints"))
        callback.assert_awaited_once()
        assert len(callback.await_args.args[0]) == 3

    async def test_unparseable_document_is_skipped(self, processor, seeded, monkeypatch) -> None:
        parse = processor_module.complaint_from_snapshot

        def flaky_parse(doc):
            if doc.id == "p2":
                raise ValueError("corrupt document")
            return parse(doc)

        monkeypatch.setattr(processor_module, "complaint_from_snapshot", flaky_parse)
        processed = await processor.process_batch(await seeded.query("complaints"))
        assert {c.complaint_id for c in processed} == {"p1", "p3"}
        assert (await seeded.get("complaints", "p2")).data.get("processed") is None, "left for the next snapshot"
        assert processor._in_flight == set(), "nothing stays in flight after a parse failure"

        monkeypatch.setattr(processor_module, "complaint_from_snapshot", parse)
        retried = await processor.process_batch(await seeded.query("complaints"))
        assert [c.complaint_id for c in retried] == ["p2"]

    async def test_out_of_range_timestamp_is_processed(self, processor, seeded) -> None:
        micro = complaint_document("Pothole", "Delhi", created_at=1_760_000_000_000_000)
        await seeded.set("complaints", "micro", micro)
        processed = await processor.process_batch(await seeded.query("complaints"))
        assert "micro" in {c.complaint_id for c in processed}
        assert processor._in_flight == set()


class TestProcessorStream:
    async def test_start_processes_existing_and_new_complaints(self, processor, seeded) -> None:
        processor.start()
        assert processor.is_running

        for _ in range(50):
            if processor.processed_count >= 3:
                break
            await asyncio.sleep(0.01)
        assert processor.processed_count == 3

        await seeded.add("complaints", complaint_document("Garbage Collection", "Bangalore"))
        for _ in range(50):
            if processor.processed_count >= 4:
                break
            await asyncio.sleep(0.01)
        processor.stop()

        assert processor.processed_count == 4, "complaints submitted while running are picked up"
        assert processor.is_running is False

    async def test_stop_is_idempotent(self, processor) -> None:
        processor.stop()
        processor.start()
        processor.stop()
        processor.stop()
        assert processor.is_running is False
