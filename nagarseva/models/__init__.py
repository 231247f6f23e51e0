from nagarseva.models.complaint import (
    Complaint,
    Coordinates,
    ImageAnalysis,
    Submitter,
    generate_complaint_id,
)
from nagarseva.models.enriched import (
    AttentionQueues,
    ComplaintFilters,
    ComplaintStatistics,
    EnrichedComplaint,
    Pagination,
    SLAEvaluation,
)
from nagarseva.models.enums import (
    MappingStatus,
    NotificationType,
    Priority,
    ProcessingStatus,
    SLAStatus,
    normalize_priority,
    normalize_status,
)
from nagarseva.models.mapping import (
    DepartmentMapping,
    DepartmentMappingResult,
    MatchedCriteria,
)

__all__ = [
    "AttentionQueues",
    "Complaint",
    "ComplaintFilters",
    "ComplaintStatistics",
    "Coordinates",
    "DepartmentMapping",
    "DepartmentMappingResult",
    "EnrichedComplaint",
    "ImageAnalysis",
    "MappingStatus",
    "MatchedCriteria",
    "NotificationType",
    "Pagination",
    "Priority",
    "ProcessingStatus",
    "SLAEvaluation",
    "SLAStatus",
    "Submitter",
    "generate_complaint_id",
    "normalize_priority",
    "normalize_status",
]
