"""
ResilientClient - async HTTP client for one upstream API with resilience patterns.

Combines:
- CacheManager for response caching (a hit skips everything below)
- CircuitBreaker gating every attempt
- Bounded retry with exponential backoff, jitter and Retry-After support
- A per-attempt timeout
"""

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from actorsync.services.cache import CacheManager
from actorsync.services.circuit_breaker import CircuitBreaker, Permit
from actorsync.services.errors import (
    AuthFailureError,
    CircuitOpenError,
    ErrorKind,
    ServiceError,
    UnknownServiceError,
    classify_error,
    classify_response,
)
from actorsync.services.retry import RetryPolicy

Sleep = Callable[[float], Awaitable[Any]]


class ResilientClient:
    """
    HTTP client with caching, circuit breaker and retry for a single service.

    Usage:
        client = ResilientClient(
            service_id="tmdb-api",
            base_url="https://api.themoviedb.org/3",
            api_key=settings.tmdb_api_key,
            cache=CacheManager(MemoryCacheStore()),
            breaker=CircuitBreaker("tmdb-api"),
        )

        data = await client.call(
            "person/287",
            {"append_to_response": "movie_credits"},
            operation="person",
            args=[287, "credits"],
            ttl=timedelta(minutes=10),
        )
    """

    def __init__(
        self,
        service_id: str,
        base_url: str,
        *,
        cache: CacheManager,
        breaker: CircuitBreaker,
        api_key: str = "",
        retry: RetryPolicy | None = None,
        timeout: float = 10.0,
        default_ttl: timedelta = timedelta(minutes=5),
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        debug: bool = False,
    ):
        self.service_id = service_id
        self._base_url = base_url
        self._cache = cache
        self._breaker = breaker
        self._api_key = api_key
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._default_ttl = default_ttl
        self._sleep = sleep
        self._debug = debug

        # Injected clients belong to the caller
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={"Accept": "application/json", "User-Agent": "actorsync/1.0"},
                follow_redirects=True,
            )
        return self._http_client

    async def call(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        *,
        operation: str | None = None,
        args: list[Any] | None = None,
        ttl: timedelta | None = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """
        GET ``endpoint`` through cache, circuit breaker and retry.

        Args:
            endpoint: Path relative to the base URL, e.g. "person/287"
            params: Query parameters (the API key is added separately)
            operation: Cache operation name; defaults to "api"
            args: Cache key arguments; default derives from endpoint and params
            ttl: Override cache TTL
            use_cache: Set False to always go upstream

        Returns:
            Decoded JSON object

        Raises:
            CircuitOpenError: If the circuit breaker refuses the call
            ServiceError: Typed upstream failure after retries (if any)
        """
        if not self._api_key:
            raise AuthFailureError(
                f"No API key configured for service '{self.service_id}'",
                service_id=self.service_id,
            )

        query = dict(params or {})

        async def compute() -> dict[str, Any]:
            return await self._call_upstream(endpoint, query)

        if not use_cache:
            return await compute()

        if operation is None:
            operation = "api"
            args = [
                endpoint.strip("/"),
                *(f"{k}={v}" for k, v in sorted(query.items())),
            ]

        return await self._cache.fetch(
            operation, args or [], ttl or self._default_ttl, compute
        )

    async def _call_upstream(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """Run the attempt loop for one cache miss."""
        attempt = 0
        while True:
            attempt += 1

            permit = self._breaker.allow()
            if permit is None:
                retry_after = self._breaker.retry_after()
                logger.warning(
                    f"Circuit open for {self.service_id}, rejecting {endpoint} "
                    f"(retry in {retry_after:.1f}s)"
                )
                raise CircuitOpenError(self.service_id, retry_after)

            try:
                data = await self._execute_request(endpoint, params)
            except asyncio.CancelledError:
                # Neither a success nor a failure
                self._breaker.release(permit)
                raise
            except Exception as exc:
                error = classify_error(exc, self.service_id, self._timeout)
                self._record_outcome(error, permit)

                delay = None
                if error.retryable:
                    delay = self._retry.delay_for(
                        attempt, getattr(error, "retry_after", None)
                    )

                if delay is None:
                    self._log_terminal(endpoint, attempt, error)
                    if error is exc:
                        raise
                    raise error from exc

                logger.warning(
                    f"{self.service_id} {endpoint} attempt {attempt}/"
                    f"{self._retry.max_attempts} failed ({error.kind.value}: {error}), "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                continue

            self._breaker.record_success(permit)
            return data

    async def _execute_request(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """Execute a single HTTP attempt."""
        client = await self._get_http_client()
        query = {**params, "api_key": self._api_key}

        self._log(f"GET {endpoint} params={sorted(params)}")
        response = await asyncio.wait_for(
            client.get(endpoint, params=query, timeout=self._timeout),
            timeout=self._timeout,
        )

        error = classify_response(response, self.service_id)
        if error is not None:
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise UnknownServiceError(
                f"Malformed JSON from {endpoint}: {e}", service_id=self.service_id
            ) from e

        if not isinstance(data, dict):
            raise UnknownServiceError(
                f"Unexpected payload type from {endpoint}: {type(data).__name__}",
                service_id=self.service_id,
            )
        return data

    def _record_outcome(self, error: ServiceError, permit: Permit) -> None:
        if error.kind.counts_as_failure:
            self._breaker.record_failure(permit)
        else:
            # The dependency answered; the resource just is not there
            self._breaker.record_success(permit)

    def _log_terminal(self, endpoint: str, attempt: int, error: ServiceError) -> None:
        if error.kind == ErrorKind.UNKNOWN:
            logger.exception(
                f"{self.service_id} {endpoint} failed with an unclassified error "
                f"after {attempt} attempt(s): {error}"
            )
        elif error.kind == ErrorKind.NOT_FOUND:
            logger.info(f"{self.service_id} {endpoint}: not found")
        else:
            logger.error(
                f"{self.service_id} {endpoint} failed after {attempt} attempt(s): "
                f"{error.kind.value}: {error}"
            )

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
        self._http_client = None
        self._owns_http_client = True
        logger.debug(f"ResilientClient '{self.service_id}' closed")

    async def __aenter__(self) -> "ResilientClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of the cache and circuit breaker."""
        return {
            "service_id": self.service_id,
            "cache": self._cache.get_stats().to_dict(),
            "circuit_breaker": self._breaker.get_status(),
        }

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[ResilientClient:{self.service_id}] {message}")
