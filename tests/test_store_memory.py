"""Tests for the in-memory document store."""

from __future__ import annotations

import asyncio

import pytest

from nagarseva.errors import StoreError
from nagarseva.store import Document, FieldFilter, InMemoryDocumentStore
from nagarseva.store.base import get_field


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
async def populated() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    await store.set("complaints", "a", {"city": "Pune", "createdAt": 3, "location": {"city": "Pune"}})
    await store.set("complaints", "b", {"city": "Delhi", "createdAt": 1})
    await store.set("complaints", "c", {"city": "Pune", "createdAt": 2})
    await store.set("complaints", "d", {"city": "Pune"})
    return store


class TestGetField:
    def test_dotted_path(self) -> None:
        assert get_field({"a": {"b": {"c": 1}}}, "a.b.c") == 1

    def test_missing_path(self) -> None:
        assert get_field({"a": 1}, "a.b", default="x") == "x"


class TestQuery:
    async def test_equality_filter(self, populated) -> None:
        docs = await populated.query("complaints", filters=[FieldFilter("city", "==", "Pune")])
        assert {d.id for d in docs} == {"a", "c", "d"}

    async def test_range_filters_skip_missing_fields(self, populated) -> None:
        docs = await populated.query(
            "complaints",
            filters=[FieldFilter("createdAt", ">=", 2), FieldFilter("createdAt", "<=", 3)],
        )
        assert {d.id for d in docs} == {"a", "c"}, "documents without the field never match a range"

    async def test_nested_field_filter(self, populated) -> None:
        docs = await populated.query("complaints", filters=[FieldFilter("location.city", "==", "Pune")])
        assert [d.id for d in docs] == ["a"]

    async def test_ordering_puts_missing_values_last(self, populated) -> None:
        asc = await populated.query("complaints", order_by="createdAt")
        desc = await populated.query("complaints", order_by="createdAt", descending=True)
        assert [d.id for d in asc] == ["b", "c", "a", "d"]
        assert [d.id for d in desc] == ["a", "c", "b", "d"]

    async def test_limit(self, populated) -> None:
        docs = await populated.query("complaints", order_by="createdAt", limit=2)
        assert [d.id for d in docs] == ["b", "c"]

    async def test_unknown_collection_is_empty(self, populated) -> None:
        assert await populated.query("nothing") == []

    async def test_mixed_types_are_ranked_by_type(self, populated) -> None:
        await populated.set("complaints", "e", {"createdAt": "yesterday"})
        await populated.set("complaints", "f", {"createdAt": True})
        docs = await populated.query("complaints", order_by="createdAt")
        assert [d.id for d in docs] == ["f", "b", "c", "a", "e", "d"], "booleans, numbers, then strings"

    async def test_results_are_copies(self, populated) -> None:
        doc = await populated.get("complaints", "a")
        doc.data["location"]["city"] = "Mumbai"
        assert (await populated.get("complaints", "a")).data["location"]["city"] == "Pune"


class TestWrites:
    async def test_add_returns_new_id(self) -> None:
        store = InMemoryDocumentStore()
        doc_id = await store.add("complaints", {"city": "Delhi"})
        assert await store.get("complaints", doc_id) == Document(id=doc_id, data={"city": "Delhi"})
        assert store.count("complaints") == 1

    async def test_update_merges(self, populated) -> None:
        await populated.update("complaints", "b", {"processed": True})
        data = (await populated.get("complaints", "b")).data
        assert data == {"city": "Delhi", "createdAt": 1, "processed": True}

    async def test_update_missing_document_raises(self, populated) -> None:
        with pytest.raises(StoreError):
            await populated.update("complaints", "zzz", {"processed": True})

    async def test_get_missing(self, populated) -> None:
        assert await populated.get("complaints", "zzz") is None


class TestWatch:
    async def test_initial_snapshot_and_updates(self, populated) -> None:
        snapshots: list[list[str]] = []

        async def on_snapshot(docs: list[Document]) -> None:
            snapshots.append([d.id for d in docs])

        handle = populated.watch(
            "complaints",
            on_snapshot,
            filters=[FieldFilter("city", "==", "Delhi")],
        )
        await _settle()
        await populated.set("complaints", "x", {"city": "Delhi", "createdAt": 9})
        await _settle()
        handle.close()

        assert snapshots[0] == ["b"], "first snapshot is delivered on registration"
        assert sorted(snapshots[-1]) == ["b", "x"], "writes trigger a fresh full snapshot"

    async def test_close_is_idempotent_and_stops_delivery(self, populated) -> None:
        calls = 0

        async def on_snapshot(docs: list[Document]) -> None:
            nonlocal calls
            calls += 1

        handle = populated.watch("complaints", on_snapshot)
        await _settle()
        assert populated.watch_count == 1
        handle.close()
        handle.close()
        assert handle.active is False
        assert populated.watch_count == 0

        await populated.set("complaints", "y", {"city": "Delhi"})
        await _settle()
        assert calls == 1, "no snapshots after close"

    async def test_errors_go_to_on_error(self, populated) -> None:
        errors: list[Exception] = []

        async def on_snapshot(docs: list[Document]) -> None:
            raise RuntimeError("boom")

        async def on_error(exc: Exception) -> None:
            errors.append(exc)

        handle = populated.watch("complaints", on_snapshot, on_error=on_error)
        await _settle()
        handle.close()
        assert len(errors) == 1 and isinstance(errors[0], RuntimeError)
