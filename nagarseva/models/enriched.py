from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from nagarseva.models.complaint import Complaint
from nagarseva.models.enums import Priority, ProcessingStatus, SLAStatus
from nagarseva.models.mapping import MatchedCriteria


class EnrichedComplaint(Complaint):
    """A complaint joined with its department mapping and derived SLA state.

    Rebuilt on every read; ``days_since_created`` and the formatted
    timestamps depend on the instant of enrichment.
    """

    department: str
    higher_authority: str
    department_status: str = "active"
    is_default_mapping: bool
    matched_criteria: MatchedCriteria

    priority: Priority
    sla_deadline_at: datetime
    processing_status: ProcessingStatus
    days_since_created: int
    formatted_created_at: str
    formatted_updated_at: str | None = None


class ComplaintFilters(BaseModel):
    """Filters for the enriched read paths.

    The first group is pushed down to the complaint store as equality/range
    predicates on raw fields; the second group is applied after enrichment.
    """

    category: str | None = None
    city: str | None = None
    status: str | None = None
    department: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    assigned_department: str | None = None
    processing_status: ProcessingStatus | None = None
    priority: Priority | None = None
    is_default_mapping: bool | None = None


class Pagination(BaseModel):
    limit: int = Field(default=50, ge=1, le=1000)
    order_by: str = "createdAt"
    descending: bool = True


class SLAEvaluation(BaseModel):
    complaint_id: str
    status: SLAStatus
    hours_left: int
    sla_deadline_at: datetime
    processing_status: ProcessingStatus


class ComplaintStatistics(BaseModel):
    total: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_city: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    by_department: dict[str, int] = Field(default_factory=dict)
    by_processing_status: dict[str, int] = Field(default_factory=dict)
    default_mapping_count: int = 0
    breach_count: int = 0
    warning_count: int = 0


class AttentionQueues(BaseModel):
    sla_breaches: list[EnrichedComplaint] = Field(default_factory=list)
    default_mappings: list[EnrichedComplaint] = Field(default_factory=list)
    high_priority_pending: list[EnrichedComplaint] = Field(default_factory=list)
    long_pending: list[EnrichedComplaint] = Field(default_factory=list)
