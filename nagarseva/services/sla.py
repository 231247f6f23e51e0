"""SLA breach evaluation and monitoring.

Classification of one enriched complaint at instant *now*:

- **breached** -- ``now > sla_deadline_at`` and the complaint is not resolved.
- **warning** -- not breached, not resolved, and the deadline falls within
  the policy's warning window (24 hours by default).
- **ok** -- everything else, including every resolved complaint.

:class:`BreachTracker` turns repeated evaluations into *new* breach
signals: a complaint signals once when it enters ``breached`` and again
only after it has left that state and re-entered it.

:class:`SLAMonitor` drives the tracker in both consumption modes:

Polling
    ``start()`` runs a background ``asyncio`` task that loads the current
    enriched complaints every ``interval_seconds`` and evaluates them.

Streaming
    ``on_snapshot(complaints)`` evaluates a snapshot pushed by an
    enriched-complaint subscription.

New breaches are published to the :class:`NotificationSink`.  The monitor
never writes to complaints.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta

import structlog

from config.policy import DEFAULT_POLICY, EnrichmentPolicy
from nagarseva.models.enriched import EnrichedComplaint, SLAEvaluation
from nagarseva.models.enums import ProcessingStatus, SLAStatus
from nagarseva.services.notifications import NotificationSink, publish_all, sla_breach_notifications

logger = structlog.get_logger(__name__)

ComplaintLoader = Callable[[], Awaitable[list[EnrichedComplaint]]]


def classify(
    complaint: EnrichedComplaint,
    now: datetime,
    policy: EnrichmentPolicy = DEFAULT_POLICY,
) -> SLAStatus:
    if complaint.processing_status == ProcessingStatus.RESOLVED:
        return SLAStatus.OK
    if now > complaint.sla_deadline_at:
        return SLAStatus.BREACHED
    if complaint.sla_deadline_at - now <= timedelta(hours=policy.warning_window_hours):
        return SLAStatus.WARNING
    return SLAStatus.OK


def hours_left(complaint: EnrichedComplaint, now: datetime) -> int:
    """Whole hours until the deadline, rounded up; 0 once it has passed."""
    remaining = (complaint.sla_deadline_at - now).total_seconds() / 3600
    return max(0, math.ceil(remaining))


def evaluate(
    complaints: Iterable[EnrichedComplaint],
    now: datetime | None = None,
    policy: EnrichmentPolicy = DEFAULT_POLICY,
) -> list[SLAEvaluation]:
    now = now or datetime.now(UTC)
    return [
        SLAEvaluation(
            complaint_id=c.complaint_id,
            status=classify(c, now, policy),
            hours_left=hours_left(c, now),
            sla_deadline_at=c.sla_deadline_at,
            processing_status=c.processing_status,
        )
        for c in complaints
    ]


class BreachTracker:
    """Remembers which complaints are currently in a breach episode."""

    __slots__ = ("_breached",)

    def __init__(self) -> None:
        self._breached: set[str] = set()

    @property
    def breached_ids(self) -> frozenset[str]:
        return frozenset(self._breached)

    def observe(self, evaluations: Iterable[SLAEvaluation]) -> list[SLAEvaluation]:
        """Record *evaluations*; return those that just entered ``breached``.

        Complaints absent from *evaluations* keep their episode state, so a
        filtered or paginated snapshot does not re-trigger old breaches.
        """
        fresh: list[SLAEvaluation] = []
        for evaluation in evaluations:
            if evaluation.status == SLAStatus.BREACHED:
                if evaluation.complaint_id not in self._breached:
                    self._breached.add(evaluation.complaint_id)
                    fresh.append(evaluation)
            else:
                self._breached.discard(evaluation.complaint_id)
        return fresh

    def reset(self) -> None:
        self._breached.clear()


class SLAMonitor:
    """Publishes one breach (and escalation) notice per breach episode.

    Parameters
    ----------
    sink:
        Where breach and escalation notifications go.
    loader:
        Returns the current enriched complaints; required for polling mode only.
    interval_seconds:
        Polling period.
    policy:
        Supplies the warning window.
    """

    def __init__(
        self,
        sink: NotificationSink,
        *,
        loader: ComplaintLoader | None = None,
        interval_seconds: float = 60.0,
        policy: EnrichmentPolicy = DEFAULT_POLICY,
        tracker: BreachTracker | None = None,
    ) -> None:
        self._sink = sink
        self._loader = loader
        self._interval = interval_seconds
        self._policy = policy
        self._tracker = tracker or BreachTracker()
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._running = False
        self._last_check: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_check(self) -> datetime | None:
        return self._last_check

    @property
    def tracker(self) -> BreachTracker:
        return self._tracker

    async def check(
        self,
        complaints: Sequence[EnrichedComplaint],
        now: datetime | None = None,
    ) -> list[SLAEvaluation]:
        """Evaluate *complaints*, notify on new breaches, return those breaches."""
        now = now or datetime.now(UTC)
        by_id = {c.complaint_id: c for c in complaints}
        fresh = self._tracker.observe(evaluate(complaints, now, self._policy))
        self._last_check = now

        for evaluation in fresh:
            complaint = by_id[evaluation.complaint_id]
            logger.warning(
                "sla.breach_detected",
                complaint_id=complaint.complaint_id,
                department=complaint.department,
                deadline=complaint.sla_deadline_at.isoformat(),
            )
            await publish_all(self._sink, sla_breach_notifications(complaint))
        return fresh

    async def on_snapshot(self, complaints: list[EnrichedComplaint]) -> None:
        """Streaming entry point, shaped as a subscription callback."""
        try:
            await self.check(complaints)
        except Exception:
            logger.error("sla.snapshot_check_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._loader is None:
            raise ValueError("SLAMonitor needs a loader for polling mode")
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name="sla-monitor")

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        logger.info("sla.monitor_started", interval_seconds=self._interval)
        try:
            while self._running:
                await self._tick()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("sla.monitor_cancelled")
            raise
        finally:
            self._running = False
            logger.info("sla.monitor_stopped")

    async def _tick(self) -> None:
        assert self._loader is not None
        try:
            complaints = await self._loader()
            fresh = await self.check(complaints)
        except Exception:
            logger.error("sla.poll_failed", exc_info=True)
            return
        logger.debug("sla.poll_completed", evaluated=len(complaints), new_breaches=len(fresh))
