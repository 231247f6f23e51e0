"""Enriched complaint read paths: one-shot fetch, live subscription,
statistics and attention queues.

All four go through the same :class:`ComplaintEnricher`, so a dashboard
polling ``fetch_enriched`` and one holding a subscription always agree on
a complaint's department, priority and SLA deadline.

Complaints are stored in two shapes whose city and creation-time fields
live at different paths, so every read issues one store query per shape
and merges the results, ordered by the parsed creation time.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nagarseva.errors import StoreError
from nagarseva.models.complaint import Complaint
from nagarseva.models.enriched import (
    AttentionQueues,
    ComplaintFilters,
    ComplaintStatistics,
    EnrichedComplaint,
    Pagination,
)
from nagarseva.models.enums import Priority, ProcessingStatus, SLAStatus
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.services.ingestion import (
    DOCUMENT_SHAPES,
    FLAT_SHAPE,
    DocumentShape,
    complaint_from_snapshot,
    document_created_at,
)
from nagarseva.services.sla import classify
from nagarseva.store.base import (
    Document,
    DocumentStore,
    ErrorCallback,
    FieldFilter,
    SnapshotCallback,
    Watch,
    get_field,
    sort_key,
)

logger = structlog.get_logger(__name__)

EnrichedCallback = Callable[[list[EnrichedComplaint]], Awaitable[None]]

# Pagination.order_by value meaning "the complaint's creation time".
CREATED_AT = "createdAt"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def store_filters(filters: ComplaintFilters | None, shape: DocumentShape = FLAT_SHAPE) -> list[FieldFilter]:
    """Predicates pushed down to the complaint collection for one document shape."""
    if filters is None:
        return []
    clauses: list[FieldFilter] = []
    for field in ("category", "city", "status", "department"):
        value = getattr(filters, field)
        if value:
            clauses.append(FieldFilter(shape.city if field == "city" else field, "==", value))
    if filters.date_from is not None:
        clauses.append(FieldFilter(shape.created_at, ">=", _aware(filters.date_from)))
    if filters.date_to is not None:
        clauses.append(FieldFilter(shape.created_at, "<=", _aware(filters.date_to)))
    return clauses


@dataclass(frozen=True, slots=True)
class ShapeQuery:
    shape: DocumentShape
    filters: tuple[FieldFilter, ...]
    order_by: str


def shape_queries(filters: ComplaintFilters | None, pagination: Pagination) -> list[ShapeQuery]:
    """One query per document shape; shapes that would issue identical queries share one."""
    queries: list[ShapeQuery] = []
    for shape in DOCUMENT_SHAPES:
        order_by = shape.created_at if pagination.order_by == CREATED_AT else pagination.order_by
        query = ShapeQuery(shape, tuple(store_filters(filters, shape)), order_by)
        if not any(q.filters == query.filters and q.order_by == query.order_by for q in queries):
            queries.append(query)
    return queries


def merge_documents(results: Sequence[Sequence[Document]], pagination: Pagination) -> list[Document]:
    """De-duplicate per-shape query results, order them and apply the limit.

    Documents without a value for the ordering field come last, as they do
    within a single store query.
    """
    unique: dict[str, Document] = {}
    for docs in results:
        for doc in docs:
            unique.setdefault(doc.id, doc)

    if pagination.order_by == CREATED_AT:
        keyed = [(doc, document_created_at(doc.data)) for doc in unique.values()]
        present = [(doc, key) for doc, key in keyed if key is not None]
        absent = [doc for doc, key in keyed if key is None]
        present.sort(key=lambda item: item[1], reverse=pagination.descending)
    else:
        keyed = [(doc, get_field(doc.data, pagination.order_by)) for doc in unique.values()]
        present = [(doc, value) for doc, value in keyed if value is not None]
        absent = [doc for doc, value in keyed if value is None]
        present.sort(key=lambda item: sort_key(item[1]), reverse=pagination.descending)

    return ([doc for doc, _ in present] + absent)[: pagination.limit]


def matches_enriched(complaint: EnrichedComplaint, filters: ComplaintFilters | None) -> bool:
    """Predicates that only make sense after enrichment, plus the date range
    re-checked against the parsed creation time."""
    if filters is None:
        return True
    if filters.date_from is not None and complaint.created_at < _aware(filters.date_from):
        return False
    if filters.date_to is not None and complaint.created_at > _aware(filters.date_to):
        return False
    if filters.assigned_department and filters.assigned_department.lower() not in complaint.department.lower():
        return False
    if filters.processing_status is not None and complaint.processing_status != filters.processing_status:
        return False
    if filters.priority is not None and complaint.priority != filters.priority:
        return False
    if filters.is_default_mapping is not None and complaint.is_default_mapping != filters.is_default_mapping:
        return False
    return True


def parse_document(doc: Document) -> Complaint:
    """Parse *doc*; an unreadable document becomes a bare complaint instead of failing the read."""
    try:
        return complaint_from_snapshot(doc)
    except Exception:
        logger.warning("orchestrator.document_unparseable", doc_id=doc.id, exc_info=True)
        return Complaint(complaint_id=doc.id)


class Subscription:
    """Cancellation handle returned by :meth:`EnrichedComplaintService.subscribe_enriched`.

    Calling it (or :meth:`close`) stops callbacks at once and releases the
    store watches.  Repeated calls are no-ops.
    """

    __slots__ = ("_active", "_watches")

    def __init__(self) -> None:
        self._active = True
        self._watches: list[Watch] = []

    @property
    def active(self) -> bool:
        return self._active

    def _attach(self, watch: Watch) -> None:
        self._watches.append(watch)
        if not self._active:
            watch.close()

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        for watch in self._watches:
            watch.close()
        logger.debug("orchestrator.unsubscribed")

    def __call__(self) -> None:
        self.close()


class EnrichedComplaintService:
    """Enriched views over the complaint collection.

    Parameters
    ----------
    store:
        Document store holding raw complaints.
    enricher:
        The shared enrichment pipeline.
    collection:
        Complaint collection name.
    statistics_limit / attention_limit:
        How many of the newest complaints statistics and attention queues scan.
    long_pending_days:
        Age after which a pending complaint lands in ``long_pending``.
    query_timeout_seconds / query_attempts:
        Per-query timeout and total attempts before a read fails with
        :class:`~nagarseva.errors.StoreError`.
    """

    def __init__(
        self,
        store: DocumentStore,
        enricher: ComplaintEnricher,
        *,
        collection: str = "complaints",
        statistics_limit: int = 1000,
        attention_limit: int = 500,
        long_pending_days: int = 7,
        query_timeout_seconds: float = 10.0,
        query_attempts: int = 2,
    ) -> None:
        self._store = store
        self._enricher = enricher
        self._collection = collection
        self._statistics_limit = statistics_limit
        self._attention_limit = attention_limit
        self._long_pending_days = long_pending_days
        self._query_timeout = query_timeout_seconds
        self._query_attempts = max(1, query_attempts)

    @property
    def enricher(self) -> ComplaintEnricher:
        return self._enricher

    async def _query(self, query: ShapeQuery, pagination: Pagination) -> list[Document]:
        """Run one shape query with timeout and bounded retries."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._query_attempts),
                wait=wait_exponential(multiplier=0.1, max=1.0),
                retry=retry_if_exception_type(Exception),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.wait_for(
                        self._store.query(
                            self._collection,
                            filters=query.filters,
                            order_by=query.order_by,
                            descending=pagination.descending,
                            limit=pagination.limit,
                        ),
                        timeout=self._query_timeout,
                    )
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(
                f"Complaint query ({query.shape.name} shape) on {self._collection!r} failed: {exc!r}",
                collection=self._collection,
            ) from exc
        return []  # pragma: no cover

    async def _enrich_documents(
        self,
        docs: Sequence[Document],
        filters: ComplaintFilters | None,
        now: datetime | None = None,
    ) -> list[EnrichedComplaint]:
        complaints = [parse_document(doc) for doc in docs]
        enriched = await self._enricher.enrich_many(complaints, now=now)
        return [c for c in enriched if matches_enriched(c, filters)]

    async def fetch_enriched(
        self,
        filters: ComplaintFilters | None = None,
        pagination: Pagination | None = None,
        *,
        now: datetime | None = None,
    ) -> list[EnrichedComplaint]:
        """Newest complaints matching *filters*, enriched as of *now*.

        Store failures and timeouts propagate as
        :class:`~nagarseva.errors.StoreError`.
        """
        pagination = pagination or Pagination()
        queries = shape_queries(filters, pagination)
        results = await asyncio.gather(*(self._query(q, pagination) for q in queries))
        docs = merge_documents(results, pagination)
        enriched = await self._enrich_documents(docs, filters, now)
        logger.info("orchestrator.fetched", fetched=len(docs), returned=len(enriched))
        return enriched

    def subscribe_enriched(
        self,
        filters: ComplaintFilters | None,
        callback: EnrichedCallback,
        pagination: Pagination | None = None,
    ) -> Subscription:
        """Deliver a fully enriched snapshot to *callback* on every change.

        Stream or enrichment failures deliver ``[]`` instead of raising.
        Must be called from a running event loop.
        """
        pagination = pagination or Pagination()
        subscription = Subscription()
        queries = shape_queries(filters, pagination)
        # Latest snapshot per shape query; nothing is delivered until each has reported.
        latest: list[list[Document] | None] = [None] * len(queries)
        lock = asyncio.Lock()

        async def deliver(payload: list[EnrichedComplaint]) -> None:
            if not subscription.active:
                return
            try:
                await callback(payload)
            except Exception:
                logger.error("orchestrator.subscriber_callback_failed", exc_info=True)

        async def publish() -> None:
            snapshots = [docs for docs in latest if docs is not None]
            if len(snapshots) < len(latest):
                return
            try:
                enriched = await self._enrich_documents(merge_documents(snapshots, pagination), filters)
            except Exception:
                logger.error("orchestrator.snapshot_enrichment_failed", exc_info=True)
                enriched = []
            await deliver(enriched)

        def handlers(index: int) -> tuple[SnapshotCallback, ErrorCallback]:
            async def on_snapshot(docs: list[Document]) -> None:
                async with lock:
                    if latest[index] == docs:
                        return
                    latest[index] = docs
                    await publish()

            async def on_error(exc: Exception) -> None:
                logger.error("orchestrator.stream_failed", shape=queries[index].shape.name, error=repr(exc))
                async with lock:
                    latest[index] = []
                    await deliver([])

            return on_snapshot, on_error

        for index, query in enumerate(queries):
            on_snapshot, on_error = handlers(index)
            watch = self._store.watch(
                self._collection,
                on_snapshot,
                filters=query.filters,
                order_by=query.order_by,
                descending=pagination.descending,
                limit=pagination.limit,
                on_error=on_error,
            )
            subscription._attach(watch)
        logger.info("orchestrator.subscribed", collection=self._collection, streams=len(queries))
        return subscription

    async def get_statistics(
        self,
        filters: ComplaintFilters | None = None,
        *,
        now: datetime | None = None,
    ) -> ComplaintStatistics:
        now = now or datetime.now(UTC)
        complaints = await self.fetch_enriched(filters, Pagination(limit=self._statistics_limit), now=now)

        by_category: Counter[str] = Counter()
        by_city: Counter[str] = Counter()
        by_status: Counter[str] = Counter()
        by_priority: Counter[str] = Counter()
        by_department: Counter[str] = Counter()
        by_processing_status: Counter[str] = Counter()
        sla: Counter[SLAStatus] = Counter()

        for c in complaints:
            by_category[c.effective_category] += 1
            by_city[c.effective_city] += 1
            by_status[c.status or "Unknown"] += 1
            by_priority[str(c.priority)] += 1
            by_department[c.department] += 1
            by_processing_status[str(c.processing_status)] += 1
            sla[classify(c, now, self._enricher.policy)] += 1

        return ComplaintStatistics(
            total=len(complaints),
            by_category=dict(by_category),
            by_city=dict(by_city),
            by_status=dict(by_status),
            by_priority=dict(by_priority),
            by_department=dict(by_department),
            by_processing_status=dict(by_processing_status),
            default_mapping_count=sum(1 for c in complaints if c.is_default_mapping),
            breach_count=sla[SLAStatus.BREACHED],
            warning_count=sla[SLAStatus.WARNING],
        )

    async def get_attention_queues(self, *, now: datetime | None = None) -> AttentionQueues:
        now = now or datetime.now(UTC)
        complaints = await self.fetch_enriched(None, Pagination(limit=self._attention_limit), now=now)
        queues = AttentionQueues()
        for c in complaints:
            pending = c.processing_status == ProcessingStatus.PENDING
            if classify(c, now, self._enricher.policy) == SLAStatus.BREACHED:
                queues.sla_breaches.append(c)
            if c.is_default_mapping:
                queues.default_mappings.append(c)
            if pending and c.priority == Priority.HIGH:
                queues.high_priority_pending.append(c)
            if pending and c.days_since_created > self._long_pending_days:
                queues.long_pending.append(c)

        logger.info(
            "orchestrator.attention_queues",
            sla_breaches=len(queues.sla_breaches),
            default_mappings=len(queues.default_mappings),
            high_priority_pending=len(queues.high_priority_pending),
            long_pending=len(queues.long_pending),
        )
        return queues
