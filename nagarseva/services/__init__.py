"""NagarSeva service layer -- address parsing, department mapping, enrichment,
SLA monitoring, notifications and orchestration.

None of these modules import the Google client libraries, so ``import
nagarseva.services`` works with only the in-memory store available.
"""

from __future__ import annotations

from nagarseva.services.address_parser import ParsedAddress, extract_city, is_valid_city_name, normalize
from nagarseva.services.cache import InMemoryCacheBackend, MappingCache, RedisCacheBackend
from nagarseva.services.department_mapping import DepartmentMappingResolver
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.services.ingestion import complaint_from_document, complaint_from_snapshot
from nagarseva.services.notifications import (
    InMemoryNotificationSink,
    Notification,
    NotificationSink,
    StoreNotificationSink,
)
from nagarseva.services.orchestrator import EnrichedComplaintService, Subscription
from nagarseva.services.processor import ComplaintProcessor
from nagarseva.services.sla import BreachTracker, SLAMonitor, classify, evaluate

__all__ = [
    "BreachTracker",
    "ComplaintEnricher",
    "ComplaintProcessor",
    "DepartmentMappingResolver",
    "EnrichedComplaintService",
    "InMemoryCacheBackend",
    "InMemoryNotificationSink",
    "MappingCache",
    "Notification",
    "NotificationSink",
    "ParsedAddress",
    "RedisCacheBackend",
    "SLAMonitor",
    "StoreNotificationSink",
    "Subscription",
    "classify",
    "complaint_from_document",
    "complaint_from_snapshot",
    "evaluate",
    "extract_city",
    "is_valid_city_name",
    "normalize",
]
