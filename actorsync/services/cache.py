"""
CacheManager - get-or-compute over a pluggable CacheStore.

Features:
- Deterministic keys via CacheKeyBuilder
- TTL per call; an entry is never served past its TTL
- Concurrent misses for one key coalesce onto a single computation
- Batch reads that compute only the missing entries
- Backend failures degrade to compute-without-cache (unless fail_closed)
- Prefix and pair invalidation for dropping every entry of one subject
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from loguru import logger

from actorsync.services.cache_keys import CacheKeyBuilder
from actorsync.services.cache_store import CacheEntry, CacheStore, MemoryCacheStore
from actorsync.services.deduplicator import RequestDeduplicator
from actorsync.services.errors import CacheConnectionError, CacheError

T = TypeVar("T")


class CacheManager:
    """
    Async cache manager.

    Usage:
        cache = CacheManager(MemoryCacheStore())

        credits = await cache.fetch(
            "person",
            [287, "credits"],
            ttl=timedelta(minutes=10),
            compute=lambda: client_call(),
        )

        await cache.invalidate(cache.key_builder.prefix("person", 287))
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        key_builder: CacheKeyBuilder | None = None,
        default_ttl: timedelta = timedelta(minutes=5),
        store_timeout: float = 0.5,
        fail_closed: bool = False,
        debug: bool = False,
    ):
        self.store = store or MemoryCacheStore()
        self.key_builder = key_builder or CacheKeyBuilder()
        self._default_ttl = default_ttl
        self._store_timeout = store_timeout
        self._fail_closed = fail_closed
        self._debug = debug
        self._deduplicator = RequestDeduplicator(debug=debug)
        self._stats = CacheStats()

    async def fetch(
        self,
        operation: str,
        args: list[Any] | tuple[Any, ...],
        ttl: timedelta | float | None,
        compute: Callable[[], Awaitable[T]],
        *,
        pair: bool = False,
    ) -> T:
        """
        Return the cached value for ``operation(args)``, computing it on a miss.

        Args:
            operation: Logical operation name, first component of the key
            args: Operation arguments; with ``pair=True`` the first two are
                subject ids whose order does not matter
            ttl: Lifetime of a freshly computed value
            compute: Async function producing the value on a miss

        Raises:
            Whatever ``compute`` raises; nothing is cached in that case.
            CacheError only when the manager is configured to fail closed.
        """
        if pair:
            key = self.key_builder.build_pair_key(operation, args[0], args[1], *args[2:])
        else:
            key = self.key_builder.build_key(operation, args)
        return await self.fetch_key(key, ttl, compute)

    async def fetch_key(
        self,
        key: str,
        ttl: timedelta | float | None,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """get-or-compute for an already built key."""
        try:
            entry = await self._store_call(self.store.get(key))
        except CacheError as e:
            self._on_store_error("GET", key, e)
        else:
            if entry is not None:
                self._stats.hits += 1
                self._log(f"HIT: {key[:80]}")
                return entry.value

        self._stats.misses += 1
        self._log(f"MISS: {key[:80]}")

        async def compute_and_store() -> T:
            value = await compute()
            await self._write_back(key, value, ttl)
            return value

        return await self._deduplicator.dedupe(key, compute_and_store)

    async def get(self, operation: str, args: list[Any] | tuple[Any, ...]) -> Any | None:
        """Peek at a cached value without computing. Cache errors read as a miss."""
        key = self.key_builder.build_key(operation, args)
        try:
            entry = await self._store_call(self.store.get(key))
        except CacheError as e:
            self._on_store_error("GET", key, e)
            return None
        return entry.value if entry is not None else None

    async def get_many(
        self, operation: str, args_list: Sequence[list[Any] | tuple[Any, ...]]
    ) -> list[Any | None]:
        """Peek at several cached values in one store round trip, aligned with ``args_list``."""
        keys = [self.key_builder.build_key(operation, args) for args in args_list]
        entries = await self._read_many(keys)
        return [entries[key].value if key in entries else None for key in keys]

    async def fetch_many(
        self,
        operation: str,
        args_list: Sequence[list[Any] | tuple[Any, ...]],
        ttl: timedelta | float | None,
        compute_missing: Callable[[list[Any]], Awaitable[Sequence[T]]],
    ) -> list[T]:
        """
        Batch get-or-compute.

        Hits are served from one store read. ``compute_missing`` is called
        once with the args of every miss (duplicates folded, request order
        kept) and must return one value per args, in the same order. Each
        computed value is written back under its own key.

        Returns:
            One value per entry of ``args_list``
        """
        keys = [self.key_builder.build_key(operation, args) for args in args_list]
        entries = await self._read_many(keys)
        values: dict[str, Any] = {key: entry.value for key, entry in entries.items()}

        missing: dict[str, Any] = {}
        for key, args in zip(keys, args_list):
            if key not in values and key not in missing:
                missing[key] = args

        hits = sum(1 for key in keys if key in values)
        self._stats.hits += hits
        self._stats.misses += len(keys) - hits
        self._log(f"BATCH: {hits}/{len(keys)} hits for {operation}")

        if missing:
            computed = list(await compute_missing(list(missing.values())))
            if len(computed) != len(missing):
                raise ValueError(
                    f"compute_missing returned {len(computed)} values "
                    f"for {len(missing)} missing entries"
                )
            for key, value in zip(missing, computed):
                values[key] = value
                await self._write_back(key, value, ttl)

        return [values[key] for key in keys]

    async def delete(self, operation: str, args: list[Any] | tuple[Any, ...]) -> bool:
        """Delete a single cached value."""
        key = self.key_builder.build_key(operation, args)
        try:
            return await self._store_call(self.store.delete(key))
        except CacheError as e:
            self._on_store_error("DELETE", key, e)
            return False

    async def invalidate(self, prefix: str) -> int:
        """
        Invalidate all keys starting with ``prefix``.

        Returns:
            Number of entries invalidated
        """
        try:
            count = await self._store_call(self.store.delete_by_prefix(prefix))
        except CacheError as e:
            self._on_store_error("INVALIDATE", prefix, e)
            return 0
        if count:
            self._log(f"INVALIDATE: {count} entries with prefix '{prefix}'")
        return count

    async def invalidate_pairs(self, operation: str, member: Any, *extra: Any) -> int:
        """
        Invalidate every pair entry of ``operation`` that holds ``member`` on
        either side (see CacheKeyBuilder.build_pair_key).

        Returns:
            Number of entries invalidated
        """
        head = self.key_builder.prefix(operation)
        count = 0
        try:
            keys = await self._store_call(self.store.keys(head))
            for key in keys:
                if self.key_builder.pair_key_mentions(key, operation, member, *extra):
                    if await self._store_call(self.store.delete(key)):
                        count += 1
        except CacheError as e:
            self._on_store_error("INVALIDATE", head, e)
            return count
        if count:
            self._log(f"INVALIDATE: {count} {operation} entries holding {member}")
        return count

    async def healthy(self) -> bool:
        """Check if the backing store is responsive."""
        try:
            return await self._store_call(self.store.healthy())
        except CacheError:
            return False

    async def close(self) -> None:
        await self._deduplicator.cancel_all()
        await self.store.close()

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        dedup = self._deduplicator.get_stats()
        self._stats.coalesced = dedup.deduplicated
        self._stats.in_flight = dedup.in_flight
        self._stats.coalesce_rate = dedup.dedup_rate
        return self._stats

    async def _read_many(self, keys: list[str]) -> dict[str, CacheEntry]:
        unique = list(dict.fromkeys(keys))
        if not unique:
            return {}
        try:
            return await self._store_call(self.store.get_many(unique))
        except CacheError as e:
            self._on_store_error("MGET", f"{len(unique)} keys", e)
            return {}

    async def _write_back(self, key: str, value: Any, ttl: timedelta | float | None) -> None:
        seconds = _ttl_seconds(ttl if ttl is not None else self._default_ttl)
        try:
            await self._store_call(self.store.set(key, value, seconds))
        except CacheError as e:
            self._on_store_error("SET", key, e)
        else:
            self._log(f"SET: {key[:80]} (TTL: {seconds}s)")

    async def _store_call(self, awaitable: Awaitable[T]) -> T:
        """Run a store operation under the store timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._store_timeout)
        except asyncio.TimeoutError as e:
            raise CacheConnectionError(
                f"{self.store.name} cache did not answer within {self._store_timeout}s"
            ) from e

    def _on_store_error(self, op: str, key: str, error: CacheError) -> None:
        self._stats.errors += 1
        if self._fail_closed:
            raise error
        logger.warning(f"[CacheManager] {op} failed for {key[:80]}, continuing without cache: {error}")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


def _ttl_seconds(ttl: timedelta | float) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    coalesced: int = 0
    in_flight: int = 0
    coalesce_rate: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "coalesced": self.coalesced,
            "in_flight": self.in_flight,
            "coalesce_rate": f"{self.coalesce_rate:.2%}",
            "hit_rate": f"{self.hit_rate:.2%}",
        }
