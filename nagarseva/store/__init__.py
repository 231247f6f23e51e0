"""Document-store layer.

The Firestore backend is not imported here so that ``import
nagarseva.store`` works without the Google client libraries loaded; import
:mod:`nagarseva.store.firestore` explicitly when it is configured.
"""

from __future__ import annotations

from nagarseva.store.base import Document, DocumentStore, FieldFilter, Watch, get_field, sort_key
from nagarseva.store.memory import InMemoryDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "FieldFilter",
    "InMemoryDocumentStore",
    "Watch",
    "get_field",
    "sort_key",
]
