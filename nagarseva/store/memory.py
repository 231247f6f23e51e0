"""Process-local document store.

Backs development mode and the test-suite.  Query semantics follow the
cloud store closely enough for the core: equality and range predicates on
dotted field paths, single-field ordering with ``None`` values last (mixed
value types are ranked by type, as Firestore does), and change-stream
watches that deliver a fresh full snapshot after every write to the
watched collection.
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import uuid4

import structlog

from nagarseva.errors import StoreError
from nagarseva.store.base import (
    Document,
    ErrorCallback,
    FieldFilter,
    SnapshotCallback,
    get_field,
    sort_key,
)

logger = structlog.get_logger(__name__)


def _matches(data: Mapping[str, Any], flt: FieldFilter) -> bool:
    value = get_field(data, flt.field)
    if flt.op == "==":
        return value == flt.value
    if value is None:
        return False
    try:
        if flt.op == ">=":
            return value >= flt.value
        if flt.op == "<=":
            return value <= flt.value
    except TypeError:
        return False
    raise StoreError(f"Unsupported filter operator: {flt.op!r}")


class _MemoryWatch:
    """Change-stream registration on an :class:`InMemoryDocumentStore`."""

    __slots__ = (
        "_active",
        "_callback",
        "_collection",
        "_lock",
        "_loop",
        "_on_error",
        "_params",
        "_store",
        "_tasks",
    )

    def __init__(
        self,
        store: InMemoryDocumentStore,
        collection: str,
        callback: SnapshotCallback,
        params: dict[str, Any],
        on_error: ErrorCallback | None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._callback = callback
        self._params = params
        self._on_error = on_error
        self._active = True
        self._loop = asyncio.get_running_loop()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._detach(self._collection, self)

    def schedule(self) -> None:
        if not self._active:
            return
        task = self._loop.create_task(self._emit())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _emit(self) -> None:
        # Snapshots are delivered one at a time, in write order.
        async with self._lock:
            if not self._active:
                return
            try:
                docs = self._store._run_query(self._collection, **self._params)
                await self._callback(docs)
            except Exception as exc:
                if self._on_error is None:
                    logger.error("memory_store.watch_callback_failed", collection=self._collection, exc_info=True)
                    return
                await self._on_error(exc)


class InMemoryDocumentStore:
    """Dict-of-dicts document store with snapshot watches."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._watches: dict[str, list[_MemoryWatch]] = defaultdict(list)

    # -- Queries -----------------------------------------------------------

    def _run_query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        rows = [
            (doc_id, data)
            for doc_id, data in self._collections.get(collection, {}).items()
            if all(_matches(data, flt) for flt in filters)
        ]

        if order_by is not None:
            present = [row for row in rows if get_field(row[1], order_by) is not None]
            absent = [row for row in rows if get_field(row[1], order_by) is None]
            present.sort(key=lambda row: sort_key(get_field(row[1], order_by)), reverse=descending)
            rows = present + absent

        if limit is not None:
            rows = rows[:limit]
        return [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    async def query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        return self._run_query(
            collection,
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    # -- Writes ------------------------------------------------------------

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        self._collections[collection][doc_id] = copy.deepcopy(dict(data))
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._collections[collection][doc_id] = copy.deepcopy(dict(data))
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        existing = self._collections.get(collection, {}).get(doc_id)
        if existing is None:
            raise StoreError(f"No document {doc_id!r} in {collection!r}", collection=collection)
        existing.update(copy.deepcopy(dict(data)))
        self._notify(collection)

    # -- Watches -----------------------------------------------------------

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
    ) -> _MemoryWatch:
        """Register *callback* for snapshots of *collection*.

        Must be called from a running event loop.  The first snapshot is
        scheduled immediately; later ones follow each write.
        """
        handle = _MemoryWatch(
            self,
            collection,
            callback,
            {
                "filters": tuple(filters),
                "order_by": order_by,
                "descending": descending,
                "limit": limit,
            },
            on_error,
        )
        self._watches[collection].append(handle)
        handle.schedule()
        return handle

    def _detach(self, collection: str, handle: _MemoryWatch) -> None:
        watches = self._watches.get(collection, [])
        if handle in watches:
            watches.remove(handle)

    def _notify(self, collection: str) -> None:
        for handle in list(self._watches.get(collection, [])):
            handle.schedule()

    @property
    def watch_count(self) -> int:
        return sum(len(w) for w in self._watches.values())

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
