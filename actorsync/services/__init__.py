"""
Service layer infrastructure - resilience patterns for upstream API calls.

Provides:
- CacheKeyBuilder: Deterministic cache keys
- CacheStore: Memory and Redis backends behind one interface
- CacheManager: get-or-compute with TTL and request coalescing
- CircuitBreaker: Sheds load while a dependency is failing
- RetryPolicy: Bounded exponential backoff with jitter
- ResilientClient: Unified client combining all patterns
"""

from actorsync.services.errors import (
    AuthFailureError,
    CacheConnectionError,
    CacheError,
    CacheSerializationError,
    CircuitOpenError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
    UnknownServiceError,
    ValidationError,
    classify_error,
    classify_response,
)
from actorsync.services.cache_keys import CacheKeyBuilder
from actorsync.services.cache_store import (
    CacheEntry,
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
)
from actorsync.services.cache import CacheManager, CacheStats
from actorsync.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    Permit,
)
from actorsync.services.deduplicator import RequestDeduplicator
from actorsync.services.retry import RetryPolicy
from actorsync.services.client import ResilientClient

__all__ = [
    # Errors
    "ErrorKind",
    "ServiceError",
    "ValidationError",
    "CacheError",
    "CacheConnectionError",
    "CacheSerializationError",
    "CircuitOpenError",
    "RequestTimeoutError",
    "RateLimitError",
    "AuthFailureError",
    "NotFoundError",
    "ServiceUnavailableError",
    "UnknownServiceError",
    "classify_error",
    "classify_response",
    # Cache
    "CacheKeyBuilder",
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "CacheManager",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "Permit",
    # Deduplicator
    "RequestDeduplicator",
    # Client
    "RetryPolicy",
    "ResilientClient",
]
