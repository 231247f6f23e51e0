from __future__ import annotations

from enum import StrEnum
from typing import Final


class ProcessingStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class Priority(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SLAStatus(StrEnum):
    __slots__ = ()

    BREACHED = "breached"
    WARNING = "warning"
    OK = "ok"


class MappingStatus(StrEnum):
    __slots__ = ()

    ACTIVE = "active"
    INACTIVE = "inactive"


class NotificationType(StrEnum):
    __slots__ = ()

    NEW_COMPLAINT = "new_complaint"
    DEFAULT_MAPPING = "default_mapping"
    SLA_BREACH = "sla_breach"
    ESCALATION = "escalation"


# Every spelling of a workflow state seen in citizen-app and dashboard data.
# Keys are lower-cased with ``-``/``_`` folded to a single space.
_STATUS_ALIASES: Final[dict[str, ProcessingStatus]] = {
    "resolved": ProcessingStatus.RESOLVED,
    "closed": ProcessingStatus.RESOLVED,
    "in progress": ProcessingStatus.IN_PROGRESS,
    "escalated": ProcessingStatus.ESCALATED,
    "assigned": ProcessingStatus.ASSIGNED,
}


def normalize_status(raw: object) -> ProcessingStatus | None:
    """Map a free-text status (``"Open"``, ``"In Progress"``, ``"closed"``...)
    onto :class:`ProcessingStatus`.

    Returns *None* for absent or unrecognised values (including ``"Open"``,
    ``"New"`` and ``"pending"``); callers then fall back to the
    mapping-based default.
    """
    if not isinstance(raw, str):
        return None
    key = " ".join(raw.strip().lower().replace("_", " ").replace("-", " ").split())
    return _STATUS_ALIASES.get(key)


def normalize_priority(raw: object) -> Priority | None:
    """Map ``"High"``, ``"HIGH"``, ``"critical"``... onto :class:`Priority`."""
    if not isinstance(raw, str):
        return None
    key = raw.strip().lower()
    if key == "critical":
        return Priority.HIGH
    try:
        return Priority(key)
    except ValueError:
        return None
