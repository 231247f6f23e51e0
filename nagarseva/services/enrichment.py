"""Complaint enrichment: department, priority, SLA deadline and workflow state.

For each complaint the enricher

1. resolves the owning department through the
   :class:`~nagarseva.services.department_mapping.DepartmentMappingResolver`;
2. infers a priority from emergency keywords in the description and the
   category's priority class;
3. sets the SLA deadline to ``created_at`` plus the priority's SLA hours,
   shortened for urgent departments (water, electricity, emergency);
4. derives the processing status from the reported status, falling back to
   ``assigned``/``pending`` depending on whether a real mapping was found;
5. computes ``days_since_created`` against *now*.

Enrichment is total.  If anything fails, a minimal record with the default
department and ``pending`` status is returned instead.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta, timezone
from typing import Final

import structlog

from config.policy import DEFAULT_POLICY, EnrichmentPolicy
from nagarseva.models.complaint import Complaint
from nagarseva.models.enriched import EnrichedComplaint
from nagarseva.models.enums import Priority, ProcessingStatus, normalize_status
from nagarseva.models.mapping import DepartmentMappingResult
from nagarseva.services.department_mapping import DepartmentMappingResolver

logger = structlog.get_logger(__name__)

IST: Final[timezone] = timezone(timedelta(hours=5, minutes=30), name="IST")
_DISPLAY_FORMAT: Final[str] = "%d %B %Y, %I:%M %p"
_SECONDS_PER_DAY: Final[int] = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def determine_priority(
    category: str,
    description: str,
    policy: EnrichmentPolicy = DEFAULT_POLICY,
) -> Priority:
    """``high`` on an emergency keyword or high-priority category, then
    ``medium`` for medium-priority categories, else ``low``."""
    text = (description or "").lower()
    key = (category or "").strip().lower()
    if any(keyword in text for keyword in policy.emergency_keywords):
        return Priority.HIGH
    if key in policy.high_priority_categories:
        return Priority.HIGH
    if key in policy.medium_priority_categories:
        return Priority.MEDIUM
    return Priority.LOW


def is_urgent_department(department: str, policy: EnrichmentPolicy = DEFAULT_POLICY) -> bool:
    lowered = (department or "").lower()
    return any(marker.lower() in lowered for marker in policy.urgent_department_markers)


def sla_hours(priority: Priority, department: str, policy: EnrichmentPolicy = DEFAULT_POLICY) -> int:
    hours = policy.sla_hours.get(str(priority), policy.sla_hours["low"])
    if is_urgent_department(department, policy):
        hours = max(hours - policy.urgent_reduction_hours, policy.minimum_sla_hours)
    return hours


def compute_sla_deadline(
    created_at: datetime,
    priority: Priority,
    department: str,
    policy: EnrichmentPolicy = DEFAULT_POLICY,
) -> datetime:
    return created_at + timedelta(hours=sla_hours(priority, department, policy))


def derive_processing_status(reported_status: str | None, is_default_mapping: bool) -> ProcessingStatus:
    """Map the reported status; unknown or absent statuses depend on the mapping."""
    status = normalize_status(reported_status)
    if status is not None:
        return status
    return ProcessingStatus.PENDING if is_default_mapping else ProcessingStatus.ASSIGNED


def days_since(created_at: datetime, now: datetime) -> int:
    return math.floor((now - created_at).total_seconds() / _SECONDS_PER_DAY)


def format_timestamp(value: datetime | None) -> str | None:
    """Render for Indian dashboards, e.g. ``"18 October 2026, 05:30 PM"``."""
    if value is None:
        return None
    return value.astimezone(IST).strftime(_DISPLAY_FORMAT)


# ---------------------------------------------------------------------------
# Enricher
# ---------------------------------------------------------------------------


class ComplaintEnricher:
    """Builds :class:`EnrichedComplaint` records.

    The single enrichment path shared by one-shot reads, subscriptions,
    statistics, attention queues and the complaint processor.
    """

    __slots__ = ("_policy", "_resolver")

    def __init__(
        self,
        resolver: DepartmentMappingResolver,
        policy: EnrichmentPolicy | None = None,
    ) -> None:
        self._resolver = resolver
        self._policy = policy or resolver.policy

    @property
    def policy(self) -> EnrichmentPolicy:
        return self._policy

    @property
    def resolver(self) -> DepartmentMappingResolver:
        return self._resolver

    def _build(
        self,
        complaint: Complaint,
        mapping: DepartmentMappingResult,
        priority: Priority,
        processing_status: ProcessingStatus,
        now: datetime,
    ) -> EnrichedComplaint:
        return EnrichedComplaint(
            **complaint.model_dump(),
            department=mapping.department,
            higher_authority=mapping.higher_authority,
            department_status=mapping.status,
            is_default_mapping=mapping.is_default,
            matched_criteria=mapping.matched_criteria,
            priority=priority,
            sla_deadline_at=compute_sla_deadline(complaint.created_at, priority, mapping.department, self._policy),
            processing_status=processing_status,
            days_since_created=days_since(complaint.created_at, now),
            formatted_created_at=format_timestamp(complaint.created_at) or "",
            formatted_updated_at=format_timestamp(complaint.updated_at),
        )

    async def enrich(self, complaint: Complaint, *, now: datetime | None = None) -> EnrichedComplaint:
        """Enrich one complaint.  Never raises."""
        now = now or datetime.now(UTC)
        try:
            mapping = await self._resolver.resolve(complaint)
            priority = determine_priority(complaint.effective_category, complaint.description, self._policy)
            status = derive_processing_status(complaint.status, mapping.is_default)
            return self._build(complaint, mapping, priority, status, now)
        except Exception:
            logger.error("enrichment.failed_using_minimal_record", complaint_id=complaint.complaint_id, exc_info=True)
            return self._minimal(complaint, now)

    def _minimal(self, complaint: Complaint, now: datetime) -> EnrichedComplaint:
        mapping = self._resolver.default_result(complaint.effective_category, complaint.effective_city)
        try:
            priority = determine_priority(complaint.effective_category, complaint.description, self._policy)
        except Exception:
            priority = Priority.LOW
        return self._build(complaint, mapping, priority, ProcessingStatus.PENDING, now)

    async def enrich_many(
        self,
        complaints: Iterable[Complaint],
        *,
        now: datetime | None = None,
    ) -> list[EnrichedComplaint]:
        """Enrich concurrently, preserving input order; one instant for the whole batch."""
        now = now or datetime.now(UTC)
        return list(await asyncio.gather(*(self.enrich(c, now=now) for c in complaints)))
