"""Enrichment policy table: priority rules, SLA hours and the default department.

None of these values come from a published municipal policy; they are
operational defaults.  Deployments that need different SLA windows or
keyword lists construct their own :class:`EnrichmentPolicy` and inject it
into the resolver and enricher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

__all__ = [
    "DEFAULT_POLICY",
    "EnrichmentPolicy",
]


@dataclass(frozen=True, slots=True)
class EnrichmentPolicy:
    """Immutable policy consumed by the resolver, enricher and SLA evaluator."""

    default_department: str = "General Grievances"
    """Department assigned when no mapping row matches (or lookup fails)."""

    authority_prefix: str = "Municipal Commissioner / Executive Officer - "
    """Prefix joined with the department name to form the escalation authority."""

    emergency_keywords: tuple[str, ...] = ("urgent", "emergency", "danger", "immediate", "critical")
    high_priority_categories: frozenset[str] = frozenset({"water leakage", "streetlight", "emergency"})
    medium_priority_categories: frozenset[str] = frozenset({"pothole", "garbage collection"})

    sla_hours: dict[str, int] = field(
        default_factory=lambda: {"high": 24, "medium": 48, "low": 72},
    )
    urgent_department_markers: tuple[str, ...] = ("Water", "Electricity", "Emergency")
    urgent_reduction_hours: int = 12
    minimum_sla_hours: int = 12

    warning_window_hours: int = 24
    """Unbreached complaints due within this window are classified ``warning``."""

    def default_authority(self, department: str | None = None) -> str:
        return f"{self.authority_prefix}{department or self.default_department}"


DEFAULT_POLICY: Final[EnrichmentPolicy] = EnrichmentPolicy()
