"""Google Cloud Firestore implementation of the document-store contract.

Reads and writes go through the async client.  The async client has no
``on_snapshot`` support, so watches use a lazily created sync client whose
listener thread hands each snapshot back to the event loop with
:func:`asyncio.run_coroutine_threadsafe`; a per-watch lock delivers them
one at a time, in arrival order.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from nagarseva.errors import StoreError
from nagarseva.store.base import (
    Document,
    ErrorCallback,
    FieldFilter,
    SnapshotCallback,
)

logger = structlog.get_logger(__name__)


class _FirestoreWatch:
    """Listener registration whose snapshots reach the event loop one at a time, in order."""

    __slots__ = ("_active", "_callback", "_collection", "_listener", "_lock", "_loop", "_on_error")

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        collection: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        self._active = True
        self._listener: Any = None
        self._loop = loop
        self._collection = collection
        self._callback = callback
        self._on_error = on_error
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._listener is not None:
            try:
                self._listener.unsubscribe()
            except Exception:
                logger.warning("firestore_store.unsubscribe_failed", exc_info=True)

    async def _deliver(self, docs: list[Document], error: Exception | None) -> None:
        async with self._lock:
            if not self._active:
                return
            if error is None:
                try:
                    await self._callback(docs)
                    return
                except Exception as exc:
                    error = exc
            if self._on_error is None:
                logger.error("firestore_store.watch_callback_failed", collection=self._collection, error=repr(error))
                return
            await self._on_error(error)

    def _log_outcome(self, future: concurrent.futures.Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("firestore_store.delivery_failed", collection=self._collection, error=repr(exc))

    def submit(self, docs: list[Document], error: Exception | None = None) -> None:
        """Hand a snapshot (or a failure) to the loop; called from the listener thread."""
        if not self._active:
            return
        future = asyncio.run_coroutine_threadsafe(self._deliver(docs, error), self._loop)
        future.add_done_callback(self._log_outcome)


class FirestoreDocumentStore:
    """Firestore-backed store for one database of one GCP project."""

    __slots__ = ("_client", "_database", "_firestore", "_project", "_sync_client")

    def __init__(self, *, project: str | None = None, database: str = "(default)") -> None:
        from google.cloud import firestore

        self._firestore = firestore
        self._project = project or None
        self._database = database
        self._client = firestore.AsyncClient(project=self._project, database=database)
        self._sync_client: Any = None

    # -- Internal helpers ------------------------------------------------------

    def _build_query(
        self,
        base: Any,
        filters: Sequence[FieldFilter],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> Any:
        from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter

        query = base
        for flt in filters:
            query = query.where(filter=FirestoreFieldFilter(flt.field, flt.op, flt.value))
        if order_by is not None:
            direction = self._firestore.Query.DESCENDING if descending else self._firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    # -- DocumentStore interface -----------------------------------------------

    async def query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self._build_query(self._client.collection(collection), filters, order_by, descending, limit)
        try:
            snapshots = await query.get()
        except Exception as exc:
            raise StoreError(f"Query on {collection!r} failed: {exc}", collection=collection) from exc
        return [Document(id=snap.id, data=snap.to_dict() or {}) for snap in snapshots]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        try:
            snap = await self._client.collection(collection).document(doc_id).get()
        except Exception as exc:
            raise StoreError(f"Read of {collection}/{doc_id} failed: {exc}", collection=collection) from exc
        if not snap.exists:
            return None
        return Document(id=snap.id, data=snap.to_dict() or {})

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        try:
            _, ref = await self._client.collection(collection).add(dict(data))
        except Exception as exc:
            raise StoreError(f"Insert into {collection!r} failed: {exc}", collection=collection) from exc
        return ref.id

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        try:
            await self._client.collection(collection).document(doc_id).set(dict(data))
        except Exception as exc:
            raise StoreError(f"Write of {collection}/{doc_id} failed: {exc}", collection=collection) from exc

    async def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        try:
            await self._client.collection(collection).document(doc_id).update(dict(data))
        except Exception as exc:
            raise StoreError(f"Update of {collection}/{doc_id} failed: {exc}", collection=collection) from exc

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
    ) -> _FirestoreWatch:
        loop = asyncio.get_running_loop()
        if self._sync_client is None:
            self._sync_client = self._firestore.Client(project=self._project, database=self._database)

        query = self._build_query(self._sync_client.collection(collection), filters, order_by, descending, limit)
        handle = _FirestoreWatch(loop, collection, callback, on_error)

        def _on_snapshot(snapshots: list[Any], _changes: Any, _read_time: Any) -> None:
            # Runs on the Firestore listener thread.
            try:
                docs = [Document(id=snap.id, data=snap.to_dict() or {}) for snap in snapshots]
            except Exception as exc:
                handle.submit([], exc)
                return
            handle.submit(docs)

        try:
            handle._listener = query.on_snapshot(_on_snapshot)
        except Exception as exc:
            raise StoreError(f"Watch on {collection!r} failed: {exc}", collection=collection) from exc
        return handle

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        result = self._client.close()
        if inspect.isawaitable(result):
            await result
        if self._sync_client is not None:
            self._sync_client.close()
