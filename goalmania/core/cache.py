"""
Response cache backends
In-memory TTL/LRU cache with an optional Redis backend, injected into handlers
"""

import redis.asyncio as redis
from collections import OrderedDict
from typing import Optional, Any, Dict, Protocol, Union
from datetime import timedelta
import asyncio
import json
import logging
import time

from .config import settings

logger = logging.getLogger(__name__)


def make_key(prefix: str, *parts: Any) -> str:
    """Build a cache key such as ``products:serie-a:2``"""
    return ":".join([prefix, *(str(part) for part in parts if part is not None)])


def _seconds(expire: Optional[Union[int, timedelta]]) -> Optional[int]:
    if isinstance(expire, timedelta):
        return int(expire.total_seconds())
    return expire


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any, expire: Optional[Union[int, timedelta]] = None) -> bool: ...
    async def delete(self, key: str) -> bool: ...
    async def delete_prefix(self, prefix: str) -> int: ...
    async def clear(self) -> None: ...
    async def stats(self) -> Dict[str, Any]: ...


class MemoryCache:
    """
    Process-local cache with strict TTL and LRU eviction.

    Entries past their expiry are never returned. When ``max_entries`` is
    reached, expired entries are swept first and then the least recently
    used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: int = 300,
        clock=time.monotonic,
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        ttl = _seconds(expire) or self.default_ttl
        async with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = (value, self._clock() + ttl)
            if len(self._entries) > self.max_entries:
                self._evict()
        return True

    def _evict(self) -> None:
        now = self._clock()
        for stale in [k for k, (_, exp) in self._entries.items() if now >= exp]:
            del self._entries[stale]
            self.evictions += 1
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.evictions += 1

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def stats(self) -> Dict[str, Any]:
        return {
            "backend": "memory",
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class RedisCache:
    """Redis cache; values stored as JSON with SETEX expiry"""

    def __init__(self, url: str, default_ttl: int = 300, namespace: str = "goalmania"):
        self.url = url
        self.default_ttl = default_ttl
        self.namespace = namespace
        self.redis_client: Optional[redis.Redis] = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def connect(self):
        """Initialize Redis connection"""
        self.redis_client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS
        )
        await self.redis_client.ping()
        logger.info("Redis connection established")

    async def disconnect(self):
        if self.redis_client:
            await self.redis_client.aclose()
            logger.info("Redis connection closed")

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.redis_client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Cache get error: {e}")
            return None
        return json.loads(value) if value is not None else None

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        ttl = _seconds(expire) or self.default_ttl
        try:
            return bool(await self.redis_client.setex(self._key(key), ttl, json.dumps(value, default=str)))
        except redis.RedisError as e:
            logger.warning(f"Cache set error: {e}")
            return False

    async def delete(self, key: str) -> bool:
        return bool(await self.redis_client.delete(self._key(key)))

    async def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        async for key in self.redis_client.scan_iter(match=f"{self._key(prefix)}*"):
            deleted += await self.redis_client.delete(key)
        return deleted

    async def clear(self) -> None:
        await self.delete_prefix("")

    async def stats(self) -> Dict[str, Any]:
        info = await self.redis_client.info("stats")
        return {
            "backend": "redis",
            "hits": info.get("keyspace_hits"),
            "misses": info.get("keyspace_misses"),
            "evictions": info.get("evicted_keys"),
        }


_cache: Optional[CacheBackend] = None


def build_cache() -> CacheBackend:
    if settings.CACHE_BACKEND == "redis":
        return RedisCache(settings.REDIS_URL, default_ttl=settings.CACHE_DEFAULT_TTL)
    return MemoryCache(
        max_entries=settings.CACHE_MAX_ENTRIES,
        default_ttl=settings.CACHE_DEFAULT_TTL,
    )


def get_cache() -> CacheBackend:
    """FastAPI dependency returning the application cache"""
    global _cache
    if _cache is None:
        _cache = build_cache()
    return _cache
