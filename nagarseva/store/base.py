"""Document-store contract used by every NagarSeva component.

The complaint and mapping collections live in a cloud document database.
The core only needs equality/range queries, single-document writes and a
change-stream ("watch") that emits full snapshots, so that is all this
protocol exposes.  :class:`~nagarseva.store.memory.InMemoryDocumentStore`
and :class:`~nagarseva.store.firestore.FirestoreDocumentStore` implement it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, runtime_checkable

FilterOp = Literal["==", ">=", "<="]


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    data: dict[str, Any]


@dataclass(frozen=True, slots=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any


SnapshotCallback = Callable[[list[Document]], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


@runtime_checkable
class Watch(Protocol):
    """Handle on a live change-stream.  ``close()`` may be called repeatedly."""

    @property
    def active(self) -> bool: ...

    def close(self) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Async document store interface."""

    async def query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]: ...

    async def get(self, collection: str, doc_id: str) -> Document | None: ...

    async def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None: ...

    async def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None: ...

    def watch(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Watch: ...


_MISSING = object()


def get_field(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted *path* (``"location.coordinates.lat"``) from nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def sort_key(value: Any) -> tuple[int, Any]:
    """Total order over the mixed value types found in legacy documents.

    Values of different types are ranked the way Firestore orders them
    (booleans, numbers, timestamps, strings, then anything else), so a
    collection mixing epoch numbers, datetimes and ISO strings still sorts.
    """
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, int | float):
        return (1, value)
    if isinstance(value, datetime):
        return (2, value if value.tzinfo is not None else value.replace(tzinfo=UTC))
    if isinstance(value, str):
        return (3, value)
    return (4, repr(value))
