"""Builders for complaints, enriched complaints and mapping rows."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from nagarseva.models.complaint import Complaint
from nagarseva.models.enriched import EnrichedComplaint
from nagarseva.models.enums import Priority, ProcessingStatus
from nagarseva.models.mapping import MatchedCriteria
from nagarseva.store.memory import InMemoryDocumentStore

T0 = datetime(2026, 10, 1, 6, 0, tzinfo=UTC)

MAPPING_ROWS: dict[str, dict[str, Any]] = {
    "m1": {
        "category": "Pothole",
        "city": "Delhi",
        "department": "Public Works Department (PWD)",
        "higher_authority": "Chief Engineer, PWD Delhi",
        "status": "active",
    },
    "m2": {
        "category": "Water Leakage",
        "city": "Mumbai",
        "department": "Water Supply Department",
        "higher_authority": "Hydraulic Engineer, BMC",
        "status": "active",
    },
    "m3": {
        "category": "Streetlight",
        "city": "Mumbai",
        "department": "Electricity Department",
        "status": "active",
    },
    "m4": {
        "category": "Garbage Collection",
        "city": "Bangalore",
        "department": "Solid Waste Management",
        "higher_authority": "Joint Commissioner (SWM), BBMP",
        "status": "active",
    },
}


def make_complaint(**overrides: Any) -> Complaint:
    data: dict[str, Any] = {
        "complaint_id": "C1",
        "category": "Pothole",
        "city": "Delhi",
        "description": "Large pothole near the bus stop",
        "created_at": T0,
    }
    data.update(overrides)
    return Complaint(**data)


def make_enriched(**overrides: Any) -> EnrichedComplaint:
    data: dict[str, Any] = {
        "complaint_id": "E1",
        "category": "Pothole",
        "city": "Delhi",
        "description": "Large pothole near the bus stop",
        "created_at": T0,
        "department": "Public Works Department (PWD)",
        "higher_authority": "Chief Engineer, PWD Delhi",
        "is_default_mapping": False,
        "matched_criteria": MatchedCriteria(category="Pothole", city="Delhi"),
        "priority": Priority.MEDIUM,
        "sla_deadline_at": T0 + timedelta(hours=48),
        "processing_status": ProcessingStatus.ASSIGNED,
        "days_since_created": 0,
        "formatted_created_at": "01 October 2026, 11:30 AM",
    }
    data.update(overrides)
    return EnrichedComplaint(**data)


def complaint_document(
    category: str,
    city: str,
    *,
    created_at: datetime = T0,
    description: str = "Please fix this",
    **extra: Any,
) -> dict[str, Any]:
    """A legacy flat complaint document as the citizen app stores it."""
    return {
        "category": category,
        "city": city,
        "description": description,
        "createdAt": created_at,
        "address": f"Main Road, {city}",
        "userId": "u-1",
        "userName": "Asha",
        **extra,
    }


async def seed_mappings(store: InMemoryDocumentStore, collection: str = "civic_issues") -> None:
    for doc_id, row in MAPPING_ROWS.items():
        await store.set(collection, doc_id, row)


