"""Tests for the mapping cache (in-memory LRU + Redis failover)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from nagarseva.models.mapping import DepartmentMappingResult, MatchedCriteria
from nagarseva.services.cache import InMemoryCacheBackend, MappingCache, mapping_key


def _result(department: str = "Water Supply Department") -> DepartmentMappingResult:
    return DepartmentMappingResult(
        department=department,
        higher_authority="Hydraulic Engineer",
        is_default=False,
        matched_criteria=MatchedCriteria(category="Water Leakage", city="Mumbai"),
    )


# -----------------------------------------------------------------------
# InMemoryCacheBackend tests
# -----------------------------------------------------------------------


class TestInMemoryCacheBackend:
    async def test_get_set_basic(self) -> None:
        cache = InMemoryCacheBackend(max_size=100)
        await cache.set("key1", b"value1")
        assert await cache.get("key1") == b"value1", "get should return the value that was set"

    async def test_get_missing_key_returns_none(self) -> None:
        cache = InMemoryCacheBackend(max_size=100)
        assert await cache.get("nonexistent") is None

    async def test_delete_removes_key(self) -> None:
        cache = InMemoryCacheBackend(max_size=100)
        await cache.set("key1", b"value1")
        await cache.delete("key1")
        assert await cache.get("key1") is None, "get should return None after delete"

    async def test_lru_eviction(self) -> None:
        """When max_size is reached, the least-recently-used entry should be evicted."""
        cache = InMemoryCacheBackend(max_size=3)
        await cache.set("a", b"1")
        await cache.set("b", b"2")
        await cache.set("c", b"3")
        await cache.get("a")  # promote 'a'
        await cache.set("d", b"4")
        assert cache.size == 3, "size should remain at max_size after eviction"
        assert await cache.get("b") is None, "LRU entry 'b' should have been evicted"
        assert await cache.get("a") == b"1", "recently read entry should survive"

    async def test_ttl_expiry(self) -> None:
        cache = InMemoryCacheBackend(max_size=10)
        await cache.set("short", b"x", ttl_seconds=0)
        await asyncio.sleep(0.01)
        assert await cache.get("short") is None, "expired entries should not be returned"

    async def test_clear(self) -> None:
        cache = InMemoryCacheBackend(max_size=10)
        await cache.set("a", b"1")
        await cache.clear()
        assert cache.size == 0


# -----------------------------------------------------------------------
# MappingCache tests
# -----------------------------------------------------------------------


class TestMappingCache:
    def test_key_is_stable_and_pair_specific(self) -> None:
        assert mapping_key("Pothole", "Delhi") == mapping_key("Pothole", "Delhi")
        assert mapping_key("Pothole", "Delhi") != mapping_key("Pothole", "Mumbai")
        assert mapping_key("Pothole", "Delhi").startswith("mapping:")

    async def test_round_trip(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        await cache.set("Water Leakage", "Mumbai", _result())
        assert await cache.get("Water Leakage", "Mumbai") == _result()
        assert await cache.get("Water Leakage", "Pune") is None

    async def test_invalidate(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        await cache.set("Water Leakage", "Mumbai", _result())
        await cache.invalidate("Water Leakage", "Mumbai")
        assert await cache.get("Water Leakage", "Mumbai") is None

    async def test_redis_used_when_available(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        redis = MagicMock()
        redis.ping = AsyncMock(return_value=True)
        redis.set = AsyncMock()
        redis.get = AsyncMock(return_value=None)
        cache._redis = redis

        await cache.set("Pothole", "Delhi", _result())
        redis.set.assert_awaited_once()
        assert redis.set.await_args.kwargs["ttl_seconds"] == 60

    async def test_redis_failure_falls_back_to_memory(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        redis = MagicMock()
        redis.ping = AsyncMock(return_value=True)
        redis.set = AsyncMock(side_effect=ConnectionError("redis gone"))
        redis.get = AsyncMock(side_effect=ConnectionError("redis gone"))
        cache._redis = redis

        await cache.set("Pothole", "Delhi", _result("Roads"))
        assert (await cache.get("Pothole", "Delhi")).department == "Roads", (
            "writes after a Redis failure should land in the in-memory cache"
        )

    async def test_unreachable_redis_uses_memory(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        redis = MagicMock()
        redis.ping = AsyncMock(return_value=False)
        redis.get = AsyncMock()
        cache._redis = redis

        await cache.set("Pothole", "Delhi", _result())
        assert await cache.get("Pothole", "Delhi") == _result()
        redis.get.assert_not_awaited()

    async def test_corrupt_entry_is_a_miss(self) -> None:
        cache = MappingCache(ttl_seconds=60)
        await cache._fallback.set(f"nagarseva:{mapping_key('Pothole', 'Delhi')}", b"{not json")
        assert await cache.get("Pothole", "Delhi") is None
