"""
Cache stores - pluggable key/value backends with TTL semantics.

Backends:
- MemoryCacheStore: in-process dict with oldest-first eviction
- RedisCacheStore: shared store on redis.asyncio

Both keep values as JSON so they stay interchangeable. Backend failures are
raised as CacheConnectionError / CacheSerializationError, never reported as
a miss; deciding whether to degrade is the CacheManager's job.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

import redis.asyncio as redis_asyncio
from loguru import logger
from redis.exceptions import RedisError

from actorsync.services.errors import CacheConnectionError, CacheSerializationError

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    """A single cache entry with metadata."""

    key: str
    value: Any
    stored_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_expired(self, now: float) -> bool:
        """Check if entry is past its TTL."""
        return now >= self.expires_at


def encode_value(key: str, value: Any) -> str:
    """Serialize a cache value to JSON."""
    try:
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Cannot encode value for '{key}': {e}") from e


def decode_value(key: str, payload: str | bytes) -> Any:
    """Deserialize a JSON cache payload."""
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Cannot decode value for '{key}': {e}") from e


class CacheStore(ABC):
    """Key/value backend contract shared by every cache implementation."""

    name: str = "cache"

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None on a miss."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        ...

    async def exists(self, key: str) -> bool:
        """Whether a live (unexpired) entry is stored under ``key``."""
        return await self.get(key) is not None

    async def get_many(self, keys: list[str]) -> dict[str, CacheEntry]:
        """Return the live entries among ``keys``; misses are simply absent."""
        found: dict[str, CacheEntry] = {}
        for key in keys:
            entry = await self.get(key)
            if entry is not None:
                found[key] = entry
        return found

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """List the live keys starting with ``prefix``."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a single key. Returns True if something was removed."""
        ...

    @abstractmethod
    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``. Returns the count."""
        ...

    @abstractmethod
    async def healthy(self) -> bool:
        """Check whether the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class MemoryCacheStore(CacheStore):
    """
    In-process cache store.

    Entries are kept serialized so no caller can mutate a cached value. When
    full, expired entries are purged first, then the oldest entry is evicted.
    """

    name = "memory"

    def __init__(self, max_entries: int = 1000, clock: Clock = time.time):
        self._entries: dict[str, tuple[str, float, float]] = {}
        self._max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()
        self.evictions = 0

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            raw = self._entries.get(key)
            if raw is None:
                return None
            payload, stored_at, ttl = raw
            if self._clock() >= stored_at + ttl:
                del self._entries[key]
                return None
        return CacheEntry(
            key=key,
            value=decode_value(key, payload),
            stored_at=stored_at,
            ttl=ttl,
        )

    async def set(self, key: str, value: Any, ttl: float) -> None:
        payload = encode_value(key, value)
        async with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._purge_expired_locked()
                if len(self._entries) >= self._max_entries:
                    self._evict_oldest_locked()
            self._entries[key] = (payload, self._clock(), float(ttl))

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def keys(self, prefix: str) -> list[str]:
        async with self._lock:
            now = self._clock()
            return [
                k
                for k, (_, stored_at, ttl) in self._entries.items()
                if k.startswith(prefix) and now < stored_at + ttl
            ]

    async def delete_by_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def healthy(self) -> bool:
        return True

    async def purge_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            return self._purge_expired_locked()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [
            k for k, (_, stored_at, ttl) in self._entries.items() if now >= stored_at + ttl
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _evict_oldest_locked(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
        del self._entries[oldest_key]
        self.evictions += 1
        logger.debug(f"[MemoryCacheStore] EVICT: {oldest_key[:50]}")


class RedisCacheStore(CacheStore):
    """
    Redis-backed cache store shared across processes.

    Each entry is a JSON envelope ``{"value", "stored_at", "ttl"}`` written
    with a Redis expiry equal to the TTL. The envelope timestamp is checked
    on read as well, so clock skew between Redis and us never serves an
    expired value.
    """

    name = "redis"

    def __init__(
        self,
        client: Any,
        namespace: str = "actorsync",
        clock: Clock = time.time,
    ):
        self._client = client
        self._namespace = namespace
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, namespace: str = "actorsync", socket_timeout: float = 1.0) -> "RedisCacheStore":
        client = redis_asyncio.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, namespace=namespace)

    def _full_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._client.get(self._full_key(key))
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis GET failed for '{key}': {e}") from e
        return self._unwrap(key, raw)

    async def get_many(self, keys: list[str]) -> dict[str, CacheEntry]:
        if not keys:
            return {}
        try:
            raws = await self._client.mget([self._full_key(key) for key in keys])
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis MGET failed for {len(keys)} keys: {e}") from e

        found: dict[str, CacheEntry] = {}
        for key, raw in zip(keys, raws):
            entry = self._unwrap(key, raw)
            if entry is not None:
                found[key] = entry
        return found

    def _unwrap(self, key: str, raw: str | bytes | None) -> CacheEntry | None:
        """Decode a stored envelope; None for a missing or expired entry."""
        if raw is None:
            return None

        envelope = decode_value(key, raw)
        try:
            entry = CacheEntry(
                key=key,
                value=envelope["value"],
                stored_at=float(envelope["stored_at"]),
                ttl=float(envelope["ttl"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheSerializationError(f"Corrupt cache envelope for '{key}': {e}") from e

        if entry.is_expired(self._clock()):
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: float) -> None:
        envelope = {"value": value, "stored_at": self._clock(), "ttl": float(ttl)}
        payload = encode_value(key, envelope)
        try:
            await self._client.set(
                self._full_key(key), payload, px=max(1, int(ttl * 1000))
            )
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis SET failed for '{key}': {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(self._full_key(key)))
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis DEL failed for '{key}': {e}") from e

    async def keys(self, prefix: str) -> list[str]:
        pattern = _escape_glob(self._full_key(prefix)) + "*"
        strip = len(self._namespace) + 1
        found: list[str] = []
        try:
            async for redis_key in self._client.scan_iter(match=pattern, count=500):
                if isinstance(redis_key, bytes):
                    redis_key = redis_key.decode("utf-8")
                found.append(redis_key[strip:])
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis key scan failed for '{prefix}': {e}") from e
        return found

    async def delete_by_prefix(self, prefix: str) -> int:
        pattern = _escape_glob(self._full_key(prefix)) + "*"
        deleted = 0
        try:
            batch: list[Any] = []
            async for redis_key in self._client.scan_iter(match=pattern, count=500):
                batch.append(redis_key)
                if len(batch) >= 500:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
        except (RedisError, OSError) as e:
            raise CacheConnectionError(f"Redis prefix delete failed for '{prefix}': {e}") from e
        return int(deleted)

    async def healthy(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"[RedisCacheStore] health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()


def _escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters."""
    for ch in ("\\", "*", "?", "[", "]"):
        text = text.replace(ch, "\\" + ch)
    return text
