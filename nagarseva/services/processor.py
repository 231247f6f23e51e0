"""Background processing of newly submitted complaints.

For each complaint that is not yet ``processed`` the processor

1. enriches it with the shared :class:`ComplaintEnricher`;
2. appends an audit record to ``processed_complaints``;
3. notifies staff about high-priority and default-mapped complaints;
4. sets ``processed=True`` and ``processed_at`` on the source document.

Steps 2-4 are independent and best-effort: a failed write is logged and
the remaining steps still run.  Two processor instances may race on the
same complaint; the marker write is idempotent and a duplicate
notification is tolerated.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from nagarseva.models.complaint import Complaint
from nagarseva.models.enriched import EnrichedComplaint
from nagarseva.models.enums import Priority
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.services.ingestion import complaint_from_snapshot
from nagarseva.services.notifications import (
    Notification,
    NotificationSink,
    default_mapping_notification,
    new_complaint_notification,
    publish_all,
)
from nagarseva.store.base import Document, DocumentStore, Watch

logger = structlog.get_logger(__name__)

ProcessedCallback = Callable[[list[EnrichedComplaint]], Awaitable[None]]


def audit_record(complaint: EnrichedComplaint, processed_at: datetime) -> dict[str, Any]:
    record = complaint.model_dump(mode="python")
    record["processed_at"] = processed_at
    return record


def notifications_for(complaint: EnrichedComplaint) -> list[Notification]:
    notices: list[Notification] = []
    if complaint.priority == Priority.HIGH:
        notices.append(new_complaint_notification(complaint))
    if complaint.is_default_mapping:
        notices.append(default_mapping_notification(complaint))
    return notices


class ComplaintProcessor:
    """Enriches unprocessed complaints and records the outcome.

    Parameters
    ----------
    source_store:
        Citizen-side store holding raw complaints; only the ``processed``
        marker is ever written there.
    audit_store:
        Operations store receiving ``processed_complaints`` records.
    enricher:
        Shared enrichment pipeline.
    sink:
        Receives staff notifications.
    on_processed:
        Optional callback invoked with each processed batch.
    """

    def __init__(
        self,
        source_store: DocumentStore,
        audit_store: DocumentStore,
        enricher: ComplaintEnricher,
        sink: NotificationSink,
        *,
        complaints_collection: str = "complaints",
        processed_collection: str = "processed_complaints",
        on_processed: ProcessedCallback | None = None,
    ) -> None:
        self._source = source_store
        self._audit = audit_store
        self._enricher = enricher
        self._sink = sink
        self._complaints_collection = complaints_collection
        self._processed_collection = processed_collection
        self._on_processed = on_processed
        self._in_flight: set[str] = set()
        self._watch: Watch | None = None
        self._processed_count = 0

    @property
    def is_running(self) -> bool:
        return self._watch is not None and self._watch.active

    @property
    def processed_count(self) -> int:
        return self._processed_count

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _write_audit(self, complaint: EnrichedComplaint, processed_at: datetime) -> bool:
        try:
            await self._audit.add(self._processed_collection, audit_record(complaint, processed_at))
            return True
        except Exception:
            logger.warning("processor.audit_write_failed", complaint_id=complaint.complaint_id, exc_info=True)
            return False

    async def _mark_processed(self, doc_id: str, processed_at: datetime) -> bool:
        try:
            await self._source.update(
                self._complaints_collection,
                doc_id,
                {"processed": True, "processed_at": processed_at},
            )
            return True
        except Exception:
            logger.warning("processor.mark_processed_failed", doc_id=doc_id, exc_info=True)
            return False

    async def _process_one(self, doc_id: str, complaint: Complaint) -> EnrichedComplaint:
        enriched = await self._enricher.enrich(complaint)
        processed_at = datetime.now(UTC)
        await self._write_audit(enriched, processed_at)
        await publish_all(self._sink, notifications_for(enriched))
        await self._mark_processed(doc_id, processed_at)
        logger.info(
            "processor.complaint_processed",
            complaint_id=enriched.complaint_id,
            department=enriched.department,
            priority=enriched.priority,
            is_default_mapping=enriched.is_default_mapping,
        )
        return enriched

    # ------------------------------------------------------------------
    # Batch / stream
    # ------------------------------------------------------------------

    async def process_batch(self, docs: Sequence[Document]) -> list[EnrichedComplaint]:
        """Process every unprocessed document in *docs* not already in flight."""
        todo: list[tuple[str, Complaint]] = []
        for doc in docs:
            if doc.data.get("processed") or doc.id in self._in_flight:
                continue
            try:
                complaint = complaint_from_snapshot(doc)
            except Exception:
                # Left unprocessed; retried on the next snapshot.
                logger.warning("processor.document_unparseable", doc_id=doc.id, exc_info=True)
                continue
            self._in_flight.add(doc.id)
            todo.append((doc.id, complaint))

        if not todo:
            return []

        try:
            processed = list(await asyncio.gather(*(self._process_one(doc_id, c) for doc_id, c in todo)))
        finally:
            for doc_id, _ in todo:
                self._in_flight.discard(doc_id)

        self._processed_count += len(processed)
        logger.info("processor.batch_processed", count=len(processed))
        if self._on_processed is not None:
            try:
                await self._on_processed(processed)
            except Exception:
                logger.error("processor.callback_failed", exc_info=True)
        return processed

    async def _on_snapshot(self, docs: list[Document]) -> None:
        try:
            await self.process_batch(docs)
        except Exception:
            logger.error("processor.snapshot_failed", exc_info=True)

    async def _on_error(self, exc: Exception) -> None:
        logger.error("processor.stream_failed", error=repr(exc))

    def start(self) -> None:
        """Watch the complaint collection.  Must be called from a running loop."""
        if self.is_running:
            return
        self._watch = self._source.watch(
            self._complaints_collection,
            self._on_snapshot,
            on_error=self._on_error,
        )
        logger.info("processor.started", collection=self._complaints_collection)

    def stop(self) -> None:
        if self._watch is None:
            return
        self._watch.close()
        self._watch = None
        logger.info("processor.stopped", processed=self._processed_count)
