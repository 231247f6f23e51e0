"""Staff notifications: new complaints, default mappings, SLA breaches, escalations.

The core never stores notifications itself.  It publishes
:class:`Notification` objects to a :class:`NotificationSink`, an injected
collaborator.  Two sinks ship with the package:

* ``InMemoryNotificationSink`` -- process-local inbox with read tracking,
  used by the dashboard API and in tests.
* ``StoreNotificationSink`` -- appends each notification to the
  ``notifications`` collection of a document store.

Publishing is best-effort: callers log sink failures and carry on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Final, Protocol, runtime_checkable
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from nagarseva.models.enriched import EnrichedComplaint
from nagarseva.models.enums import NotificationType, Priority, ProcessingStatus
from nagarseva.store.base import DocumentStore

logger = structlog.get_logger(__name__)

# Complaint descriptions are cut to this length inside notification text.
_DESCRIPTION_PREVIEW: Final[int] = 100


class Notification(BaseModel):
    """A single message for department staff."""

    notification_id: str = Field(default_factory=lambda: uuid4().hex)
    type: NotificationType
    title: str
    message: str
    complaint_id: str | None = None
    department: str | None = None
    category: str | None = None
    city: str | None = None
    priority: Priority | None = None
    sla_deadline_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    read: bool = False


@runtime_checkable
class NotificationSink(Protocol):
    async def publish(self, notification: Notification) -> None: ...


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _preview(text: str) -> str:
    if len(text) <= _DESCRIPTION_PREVIEW:
        return text
    return f"{text[:_DESCRIPTION_PREVIEW]}..."


def _base(complaint: EnrichedComplaint) -> dict:
    return {
        "complaint_id": complaint.complaint_id,
        "department": complaint.department,
        "category": complaint.effective_category,
        "city": complaint.effective_city,
        "priority": complaint.priority,
        "sla_deadline_at": complaint.sla_deadline_at,
    }


def new_complaint_notification(complaint: EnrichedComplaint) -> Notification:
    return Notification(
        type=NotificationType.NEW_COMPLAINT,
        title=f"New {complaint.priority.capitalize()} Priority Complaint",
        message=(
            f"A new complaint has been assigned to {complaint.department}: "
            f"{_preview(complaint.description)}"
        ),
        **_base(complaint),
    )


def default_mapping_notification(complaint: EnrichedComplaint) -> Notification:
    return Notification(
        type=NotificationType.DEFAULT_MAPPING,
        title="Complaint Needs Manual Routing",
        message=(
            f"No department mapping exists for {complaint.effective_category} in "
            f"{complaint.effective_city}; complaint {complaint.complaint_id} was routed to "
            f"{complaint.department}."
        ),
        **_base(complaint),
    )


def sla_breach_notifications(complaint: EnrichedComplaint) -> list[Notification]:
    """Breach notice, plus an escalation notice unless already escalated."""
    notices = [
        Notification(
            type=NotificationType.SLA_BREACH,
            title="SLA Deadline Breached",
            message=(
                f"Complaint {complaint.complaint_id} ({complaint.effective_category}) has "
                f"exceeded its SLA deadline"
            ),
            **_base(complaint),
        )
    ]
    if complaint.processing_status != ProcessingStatus.ESCALATED:
        notices.append(
            Notification(
                type=NotificationType.ESCALATION,
                title="Complaint Escalated",
                message=(
                    f"Complaint {complaint.complaint_id} has been escalated to "
                    f"{complaint.higher_authority} due to SLA breach"
                ),
                **_base(complaint),
            )
        )
    return notices


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class InMemoryNotificationSink:
    """Newest-first inbox held in process memory."""

    __slots__ = ("_lock", "_max_size", "_notifications")

    def __init__(self, *, max_size: int = 1_000) -> None:
        self._notifications: list[Notification] = []
        self._max_size = max_size
        self._lock = asyncio.Lock()

    async def publish(self, notification: Notification) -> None:
        async with self._lock:
            self._notifications.insert(0, notification)
            del self._notifications[self._max_size :]

    @property
    def notifications(self) -> Sequence[Notification]:
        return tuple(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def of_type(self, notification_type: NotificationType) -> list[Notification]:
        return [n for n in self._notifications if n.type == notification_type]

    def mark_as_read(self, notification_id: str) -> bool:
        for index, notification in enumerate(self._notifications):
            if notification.notification_id == notification_id:
                self._notifications[index] = notification.model_copy(update={"read": True})
                return True
        return False

    def mark_all_as_read(self) -> None:
        self._notifications = [n.model_copy(update={"read": True}) for n in self._notifications]


class StoreNotificationSink:
    """Writes each notification as one document in *collection*."""

    __slots__ = ("_collection", "_store")

    def __init__(self, store: DocumentStore, *, collection: str = "notifications") -> None:
        self._store = store
        self._collection = collection

    async def publish(self, notification: Notification) -> None:
        data = notification.model_dump(mode="python")
        await self._store.add(self._collection, data)
        logger.debug(
            "notifications.stored",
            notification_type=notification.type,
            complaint_id=notification.complaint_id,
        )


async def publish_all(sink: NotificationSink, notifications: Sequence[Notification]) -> int:
    """Publish each notification independently; returns how many succeeded."""
    delivered = 0
    for notification in notifications:
        try:
            await sink.publish(notification)
            delivered += 1
        except Exception:
            logger.warning(
                "notifications.publish_failed",
                notification_type=notification.type,
                complaint_id=notification.complaint_id,
                exc_info=True,
            )
    return delivered
