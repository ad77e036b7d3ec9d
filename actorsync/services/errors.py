"""
Service layer exceptions and the shared error classifier.

Every failure that leaves the service layer is a ServiceError tagged with an
ErrorKind. Raw transport failures are turned into typed errors by
classify_error / classify_response, which the client applies by composition.
"""

import asyncio
import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Failure taxonomy surfaced to callers."""

    VALIDATION = "validation"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"
    NOT_FOUND = "not_found"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CIRCUIT_OPEN = "circuit_open"
    CACHE = "cache"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """Whether another attempt can reasonably succeed."""
        return self in _TRANSIENT_KINDS

    @property
    def counts_as_failure(self) -> bool:
        """Whether an attempt ending this way counts against the breaker."""
        return self in _BREAKER_FAILURE_KINDS


_TRANSIENT_KINDS = frozenset(
    {ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.SERVICE_UNAVAILABLE}
)

_BREAKER_FAILURE_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMITED,
        ErrorKind.AUTH_FAILURE,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.UNKNOWN,
    }
)


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind.is_transient


class ValidationError(ServiceError):
    """Missing or malformed subject identifier."""

    kind = ErrorKind.VALIDATION


class CacheError(ServiceError):
    """Cache operation failed."""

    kind = ErrorKind.CACHE


class CacheConnectionError(CacheError):
    """Cache backend unreachable or too slow."""

    pass


class CacheSerializationError(CacheError):
    """Value could not be encoded for, or decoded from, the cache backend."""

    pass


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RateLimitError(ServiceError):
    """Rate limit exceeded."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id)


class AuthFailureError(ServiceError):
    """Upstream rejected our credentials."""

    kind = ErrorKind.AUTH_FAILURE


class NotFoundError(ServiceError):
    """Requested resource does not exist upstream."""

    kind = ErrorKind.NOT_FOUND


class ServiceUnavailableError(ServiceError):
    """Service is temporarily unavailable."""

    kind = ErrorKind.SERVICE_UNAVAILABLE


class UnknownServiceError(ServiceError):
    """Anything the classifier could not place."""

    kind = ErrorKind.UNKNOWN


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given as seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_response(response: httpx.Response, service_id: str) -> ServiceError | None:
    """Map an HTTP response to a typed error, or None for 2xx/3xx."""
    status = response.status_code
    if status < 400:
        return None

    if status in (401, 403):
        return AuthFailureError(
            f"HTTP {status}: credentials rejected", service_id=service_id
        )
    if status == 404:
        return NotFoundError("HTTP 404: resource not found", service_id=service_id)
    if status == 429:
        return RateLimitError(
            service_id, parse_retry_after(response.headers.get("Retry-After"))
        )
    if status >= 500:
        return ServiceUnavailableError(f"HTTP {status}", service_id=service_id)

    return UnknownServiceError(
        f"HTTP {status}: {response.text[:200]}", service_id=service_id
    )


def classify_error(exc: BaseException, service_id: str, timeout: float = 0.0) -> ServiceError:
    """Turn any raw failure from an upstream attempt into a typed ServiceError."""
    if isinstance(exc, ServiceError):
        return exc

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return RequestTimeoutError(service_id, timeout)

    if isinstance(exc, httpx.HTTPStatusError):
        classified = classify_response(exc.response, service_id)
        if classified is not None:
            return classified

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ServiceUnavailableError(
            f"Connection failed: {exc}", service_id=service_id
        )

    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        return UnknownServiceError(
            f"Malformed response: {exc}", service_id=service_id
        )

    return UnknownServiceError(
        f"{type(exc).__name__}: {exc}", service_id=service_id
    )
