"""Department-mapping cache with Redis primary and in-memory TTL fallback.

The mapping table is read on every enrichment but edited only rarely by
administrators, so resolved (category, city) pairs are memoised for a short
TTL.  If Redis is not configured or stops answering, lookups silently
degrade to a process-local cache; a cache failure never fails a resolution.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import time
from collections import OrderedDict
from typing import Protocol, runtime_checkable

import orjson
import structlog

from nagarseva.models.mapping import DepartmentMappingResult

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


@runtime_checkable
class CacheBackend(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisCacheBackend:
    """``redis.asyncio`` backend with a connection pool."""

    __slots__ = ("_pool", "_redis")

    def __init__(self, url: str, *, max_connections: int = 20) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()


class _Entry:
    __slots__ = ("expires_at", "value")

    def __init__(self, value: bytes, ttl_seconds: int | None) -> None:
        self.value = value
        self.expires_at: float | None = (time.monotonic() + ttl_seconds) if ttl_seconds is not None else None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at


class InMemoryCacheBackend:
    """Bounded LRU with lazy TTL eviction."""

    __slots__ = ("_data", "_lock", "_max_size")

    def __init__(self, *, max_size: int = 5_000) -> None:
        self._max_size = max_size
        self._data: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.expired:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._data.pop(key, None)
            while len(self._data) >= self._max_size:
                self._data.popitem(last=False)
            self._data[key] = _Entry(value, ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

    @property
    def size(self) -> int:
        return len(self._data)


# ---------------------------------------------------------------------------
# MappingCache  --  public API
# ---------------------------------------------------------------------------


def mapping_key(category: str, city: str) -> str:
    """Stable cache key for a (category, city) pair."""
    digest = hashlib.sha256(f"{category}\x1f{city}".encode()).hexdigest()[:16]
    return f"mapping:{digest}"


class MappingCache:
    """Caches :class:`DepartmentMappingResult` per (category, city).

    Parameters
    ----------
    redis_url:
        Redis connection string.  *None* or ``""`` uses the in-memory cache only.
    ttl_seconds:
        Lifetime of each cached resolution.
    namespace:
        Prefix for every key, so several resolvers can share one Redis.
    """

    __slots__ = ("_fallback", "_namespace", "_redis", "_redis_available", "_redis_checked", "_ttl")

    def __init__(
        self,
        *,
        redis_url: str | None = None,
        ttl_seconds: int = 300,
        namespace: str = "nagarseva:",
        inmemory_max_size: int = 5_000,
    ) -> None:
        self._ttl = ttl_seconds
        self._namespace = namespace
        self._fallback = InMemoryCacheBackend(max_size=inmemory_max_size)
        self._redis: RedisCacheBackend | None = None
        self._redis_available = False
        self._redis_checked = False

        if redis_url:
            try:
                self._redis = RedisCacheBackend(redis_url)
            except Exception:
                logger.warning("mapping_cache.redis_init_failed", redis_url=redis_url)
                self._redis = None

    async def _backend(self) -> CacheBackend:
        if self._redis is not None and not self._redis_checked:
            self._redis_checked = True
            self._redis_available = await self._redis.ping()
            if self._redis_available:
                logger.info("mapping_cache.redis_connected")
            else:
                logger.warning("mapping_cache.redis_unavailable_using_inmemory")
        if self._redis_available and self._redis is not None:
            return self._redis
        return self._fallback

    async def _call(self, method: str, key: str, *args: object, **kwargs: object) -> object:
        backend = await self._backend()
        if backend is self._redis:
            try:
                return await getattr(backend, method)(key, *args, **kwargs)
            except Exception:
                logger.warning("mapping_cache.redis_op_failed", method=method)
                self._redis_available = False
        return await getattr(self._fallback, method)(key, *args, **kwargs)

    async def get(self, category: str, city: str) -> DepartmentMappingResult | None:
        raw = await self._call("get", f"{self._namespace}{mapping_key(category, city)}")
        if not isinstance(raw, bytes | bytearray):
            return None
        try:
            return DepartmentMappingResult.model_validate(orjson.loads(raw))
        except ValueError:
            return None

    async def set(self, category: str, city: str, result: DepartmentMappingResult) -> None:
        raw = orjson.dumps(result.model_dump(mode="json"))
        await self._call("set", f"{self._namespace}{mapping_key(category, city)}", raw, ttl_seconds=self._ttl)

    async def invalidate(self, category: str, city: str) -> None:
        await self._call("delete", f"{self._namespace}{mapping_key(category, city)}")

    async def close(self) -> None:
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
