import os
from datetime import timedelta
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from actorsync.services.circuit_breaker import CircuitBreakerConfig
from actorsync.services.retry import RetryPolicy

load_dotenv()


class Settings(BaseModel):
    # TMDB Configuration
    tmdb_api_key: str = Field(default="", alias="TMDB_API_KEY")
    tmdb_base_url: str = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_BASE_URL"
    )

    # Cache Configuration
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory", alias="CACHE_BACKEND"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    cache_prefix: str = Field(default="actorsync", alias="CACHE_PREFIX")
    cache_max_entries: int = Field(default=1000, alias="CACHE_MAX_ENTRIES")
    cache_store_timeout: float = Field(default=0.5, alias="CACHE_STORE_TIMEOUT")
    cache_fail_closed: bool = Field(default=False, alias="CACHE_FAIL_CLOSED")

    # Cache TTLs (seconds)
    ttl_credits: float = Field(default=600, alias="CACHE_TTL_CREDITS")
    ttl_search: float = Field(default=300, alias="CACHE_TTL_SEARCH")
    ttl_comparison: float = Field(default=900, alias="CACHE_TTL_COMPARISON")

    # Circuit Breaker Configuration
    circuit_failure_threshold: int = Field(default=5, alias="CIRCUIT_FAILURE_THRESHOLD")
    circuit_window: float = Field(default=60, alias="CIRCUIT_WINDOW")
    circuit_cooldown: float = Field(default=60, alias="CIRCUIT_COOLDOWN")
    circuit_success_threshold: int = Field(default=1, alias="CIRCUIT_SUCCESS_THRESHOLD")
    circuit_half_open_max_calls: int = Field(
        default=1, alias="CIRCUIT_HALF_OPEN_MAX_CALLS"
    )

    # Retry Configuration (max_retries counts every attempt, the first included)
    max_retries: int = Field(default=3, ge=1, alias="MAX_RETRIES")
    request_timeout: float = Field(default=10.0, alias="REQUEST_TIMEOUT")
    backoff_base: float = Field(default=0.5, alias="BACKOFF_BASE")
    backoff_multiplier: float = Field(default=2.0, alias="BACKOFF_MULTIPLIER")
    backoff_max: float = Field(default=10.0, alias="BACKOFF_MAX")
    backoff_jitter: float = Field(default=0.25, ge=0, le=1, alias="BACKOFF_JITTER")
    max_retry_after: float = Field(default=30.0, alias="MAX_RETRY_AFTER")

    debug: bool = Field(default=False, alias="ACTORSYNC_DEBUG")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and .env)."""
        return cls.model_validate(dict(os.environ))

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.circuit_failure_threshold,
            window=timedelta(seconds=self.circuit_window),
            cooldown=timedelta(seconds=self.circuit_cooldown),
            half_open_max_calls=self.circuit_half_open_max_calls,
            success_threshold=self.circuit_success_threshold,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=self.backoff_base,
            multiplier=self.backoff_multiplier,
            max_delay=self.backoff_max,
            jitter=self.backoff_jitter,
            max_retry_after=self.max_retry_after,
        )

    def ttl(self, name: str) -> timedelta:
        """TTL policy by name: credits, search or comparison."""
        return timedelta(seconds=getattr(self, f"ttl_{name}"))


global_settings = Settings.from_env()
