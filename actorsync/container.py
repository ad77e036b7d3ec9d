"""
Composition root - wires settings into one set of shared service objects.

Everything process-wide (the circuit breaker, the cache, the HTTP client) is
created here once and passed down by reference.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from actorsync.comparison.engine import ComparisonEngine
from actorsync.datasource.tmdb import TMDBSource
from actorsync.services.cache import CacheManager
from actorsync.services.cache_store import CacheStore, MemoryCacheStore, RedisCacheStore
from actorsync.services.circuit_breaker import CircuitBreaker
from actorsync.services.client import ResilientClient
from actorsync.settings import Settings, global_settings


@dataclass
class ServiceContainer:
    """Everything a caller needs to serve comparison queries."""

    settings: Settings
    cache: CacheManager
    breaker: CircuitBreaker
    client: ResilientClient
    source: TMDBSource
    engine: ComparisonEngine

    async def close(self) -> None:
        await self.client.close()
        await self.cache.close()
        logger.debug("ServiceContainer closed")

    async def __aenter__(self) -> "ServiceContainer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def build_cache_store(settings: Settings) -> CacheStore:
    """Pick the cache backend named by the settings."""
    if settings.cache_backend == "redis":
        logger.info(f"Using Redis cache at {settings.redis_url}")
        return RedisCacheStore.from_url(
            settings.redis_url,
            namespace=settings.cache_prefix,
            socket_timeout=settings.cache_store_timeout,
        )
    return MemoryCacheStore(max_entries=settings.cache_max_entries)


def build_container(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    cache_store: CacheStore | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ServiceContainer:
    """Build the service graph; tests inject the transport, store, clock and sleep."""
    settings = settings or global_settings

    cache = CacheManager(
        store=cache_store or build_cache_store(settings),
        default_ttl=settings.ttl("credits"),
        store_timeout=settings.cache_store_timeout,
        fail_closed=settings.cache_fail_closed,
        debug=settings.debug,
    )
    breaker = CircuitBreaker(
        TMDBSource.SERVICE_ID,
        config=settings.circuit_breaker_config(),
        clock=clock,
    )
    client = ResilientClient(
        TMDBSource.SERVICE_ID,
        settings.tmdb_base_url,
        cache=cache,
        breaker=breaker,
        api_key=settings.tmdb_api_key,
        retry=settings.retry_policy(),
        timeout=settings.request_timeout,
        default_ttl=settings.ttl("credits"),
        http_client=http_client,
        sleep=sleep,
        debug=settings.debug,
    )
    source = TMDBSource(
        client,
        credits_ttl=settings.ttl("credits"),
        search_ttl=settings.ttl("search"),
    )
    engine = ComparisonEngine(
        source,
        cache=cache,
        comparison_ttl=settings.ttl("comparison"),
    )

    if not source.is_configured():
        logger.warning("TMDB_API_KEY is not set; upstream calls will be refused")

    return ServiceContainer(
        settings=settings,
        cache=cache,
        breaker=breaker,
        client=client,
        source=source,
        engine=engine,
    )
