"""Ingestion boundary: raw complaint documents -> canonical :class:`Complaint`.

Two document shapes exist in the citizen store:

* **nested** (current mobile app): ``location.city``, ``location.pincode``,
  ``location.address``, ``location.coordinates.{lat,lng}``,
  ``user.{id,name,phone}``, ``timeline.{created,lastUpdated}``;
* **flat** (legacy): ``city``, ``pincode``, ``address``,
  ``latitude``/``longitude`` (or ``location.{lat,lng}``), ``userId``,
  ``userName``, ``userPhone``, ``createdAt``, ``updatedAt``.

Nested values win, flat values are the fallback, and a fixed default
applies when both are missing.  A missing city or pincode is recovered
from the address text before falling back to the ward or ``"Unknown"``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from nagarseva.models.complaint import (
    UNKNOWN,
    Complaint,
    Coordinates,
    ImageAnalysis,
    Submitter,
    generate_complaint_id,
)
from nagarseva.services.address_parser import UNKNOWN_CITY, normalize
from nagarseva.store.base import Document, get_field

logger = structlog.get_logger(__name__)

# Epoch values above this are milliseconds, not seconds (year ~2286 in seconds).
_MILLIS_THRESHOLD = 10_000_000_000


@dataclass(frozen=True, slots=True)
class DocumentShape:
    """Field paths that differ between the stored complaint shapes."""

    name: str
    city: str
    created_at: str


NESTED_SHAPE = DocumentShape(name="nested", city="location.city", created_at="timeline.created")
FLAT_SHAPE = DocumentShape(name="flat", city="city", created_at="createdAt")
DOCUMENT_SHAPES: tuple[DocumentShape, ...] = (NESTED_SHAPE, FLAT_SHAPE)


def _first(data: Mapping[str, Any], *paths: str) -> Any:
    """First present, non-empty value among *paths*."""
    for path in paths:
        value = get_field(data, path)
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def coerce_timestamp(value: Any) -> datetime | None:
    """Convert the timestamp encodings found in complaint documents to aware UTC.

    Accepts ``datetime`` (including Firestore's ``DatetimeWithNanoseconds``),
    ISO-8601 strings, epoch seconds or milliseconds, and serialised
    ``{"seconds"|"_seconds": ..., "nanoseconds": ...}`` maps.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, int | float):
            seconds = value / 1000 if value > _MILLIS_THRESHOLD else value
            return datetime.fromtimestamp(seconds, UTC)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
        if isinstance(value, Mapping):
            seconds = value.get("seconds", value.get("_seconds"))
            if seconds is None:
                return None
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, UTC)
        to_datetime = getattr(value, "to_datetime", None)
        if callable(to_datetime):
            return coerce_timestamp(to_datetime())
    except (TypeError, ValueError, OverflowError, OSError):
        # Out-of-range epochs (e.g. microseconds) and malformed maps.
        return None
    return None


def document_created_at(data: Mapping[str, Any]) -> datetime | None:
    """Creation instant of a raw document of either shape, if it has one."""
    return coerce_timestamp(_first(data, NESTED_SHAPE.created_at, FLAT_SHAPE.created_at))


def _image_analysis(data: Mapping[str, Any]) -> ImageAnalysis | None:
    raw = data.get("imageAnalysis")
    if not isinstance(raw, Mapping):
        return None
    return ImageAnalysis(
        detected_city=_optional_text(raw.get("detectedCity")),
        detected_category=_optional_text(raw.get("detectedCategory")),
        confidence=_number(raw["confidence"]) if raw.get("confidence") is not None else None,
    )


def complaint_from_document(doc_id: str | None, data: Mapping[str, Any]) -> Complaint:
    """Parse one raw complaint document (either shape) into a :class:`Complaint`."""
    address = _first(data, "location.address", "address")
    parsed = normalize(address) if isinstance(address, str) else None

    city = _first(data, NESTED_SHAPE.city, FLAT_SHAPE.city)
    if not city and parsed is not None and parsed.city != UNKNOWN_CITY:
        city = parsed.city
    city = _text(city or data.get("ward"), UNKNOWN)

    pincode = _first(data, "location.pincode", "pincode")
    if not pincode and parsed is not None:
        pincode = parsed.pincode
    category = _text(data.get("category"), UNKNOWN)

    complaint_id = _text(_first(data, "complaintId") or doc_id, "")
    if not complaint_id:
        complaint_id = generate_complaint_id(category, city)

    created_at = document_created_at(data)
    if created_at is None:
        logger.debug("ingestion.missing_created_at", complaint_id=complaint_id)
        created_at = datetime.now(UTC)

    images = data.get("images")
    image_url = data.get("imageUrl") or (images[0] if isinstance(images, list) and images else "")

    return Complaint(
        complaint_id=complaint_id,
        category=category,
        city=city,
        pincode=_text(pincode, UNKNOWN),
        description=_text(data.get("description"), "No description provided"),
        created_at=created_at,
        updated_at=coerce_timestamp(_first(data, "timeline.lastUpdated", "updatedAt")),
        submitter=Submitter(
            id=_text(_first(data, "user.id", "userId"), UNKNOWN),
            name=_text(_first(data, "user.name", "userName"), "Anonymous"),
            phone=_text(_first(data, "user.phone", "userPhone"), "Not provided"),
        ),
        coordinates=Coordinates(
            lat=_number(_first(data, "location.coordinates.lat", "location.lat", "latitude")),
            lng=_number(_first(data, "location.coordinates.lng", "location.lng", "longitude")),
        ),
        image_url=str(image_url),
        address=_text(address, "Address not provided"),
        ward=_text(data.get("ward") or data.get("city"), UNKNOWN),
        status=_optional_text(data.get("status")),
        reported_priority=_optional_text(data.get("priority")),
        reported_department=_optional_text(data.get("department")),
        image_analysis=_image_analysis(data),
        processed=bool(data.get("processed", False)),
    )


def complaint_from_snapshot(doc: Document) -> Complaint:
    return complaint_from_document(doc.id, doc.data)

