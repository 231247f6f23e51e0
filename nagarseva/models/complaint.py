"""Canonical citizen complaint record.

The citizen app has written complaints in two shapes over time (flat
legacy documents and nested ``location``/``user``/``timeline`` documents).
Both are parsed into :class:`Complaint` at the ingestion boundary by
:func:`nagarseva.services.ingestion.complaint_from_document`; nothing
downstream ever sees the raw shapes.
"""

from __future__ import annotations

import random
import time
from datetime import UTC, datetime

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"


class Submitter(BaseModel):
    id: str = UNKNOWN
    name: str = "Anonymous"
    phone: str = "Not provided"


class Coordinates(BaseModel):
    lat: float = 0.0
    lng: float = 0.0


class ImageAnalysis(BaseModel):
    """Detections produced by the citizen app's photo classifier."""

    detected_city: str | None = None
    detected_category: str | None = None
    confidence: float | None = None


class Complaint(BaseModel):
    """A citizen-submitted civic issue, normalised to one shape."""

    model_config = {"frozen": True}

    complaint_id: str
    category: str = UNKNOWN
    city: str = UNKNOWN
    pincode: str = UNKNOWN
    description: str = "No description provided"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None
    submitter: Submitter = Field(default_factory=Submitter)
    coordinates: Coordinates = Field(default_factory=Coordinates)
    image_url: str = ""
    address: str = "Address not provided"
    ward: str = UNKNOWN

    # Values as reported by the citizen app / dashboard, un-normalised.
    status: str | None = None
    reported_priority: str | None = None
    reported_department: str | None = None

    image_analysis: ImageAnalysis | None = None
    processed: bool = False

    @property
    def effective_category(self) -> str:
        """Category used for resolution; the photo classifier wins when present."""
        if self.image_analysis and self.image_analysis.detected_category:
            return self.image_analysis.detected_category
        return self.category

    @property
    def effective_city(self) -> str:
        if self.image_analysis and self.image_analysis.detected_city:
            return self.image_analysis.detected_city
        return self.city


def generate_complaint_id(category: str, city: str) -> str:
    """Build an id such as ``POTMUM1760781234567042``.

    Three-letter category and city codes, epoch milliseconds, and three
    random digits.
    """
    category_code = (category or "UNK")[:3].upper()
    city_code = (city or "UNK")[:3].upper()
    millis = int(time.time() * 1000)
    suffix = f"{random.randint(0, 999):03d}"
    return f"{category_code}{city_code}{millis}{suffix}"
