"""Exception hierarchy for NagarSeva.

Only the store and resolver raise these; the enrichment and orchestration
layers catch them and degrade to default records instead of propagating.
"""

from __future__ import annotations


class NagarSevaError(Exception):
    """Base class for all NagarSeva errors."""


class StoreError(NagarSevaError):
    """A document-store read, write or watch failed."""

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        super().__init__(message)
        self.collection = collection


class MappingLookupError(NagarSevaError):
    """A department mapping lookup failed after exhausting retries."""
