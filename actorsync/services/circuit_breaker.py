"""
CircuitBreaker - Prevents cascading failures by stopping requests to failing services.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is failing, requests are blocked
- HALF_OPEN: Testing if service has recovered

Transitions:
- CLOSED → OPEN: failure_threshold failures inside the sliding window
- OPEN → HALF_OPEN: first allow() after the cooldown has elapsed
- HALF_OPEN → CLOSED: success_threshold consecutive trial successes
- HALF_OPEN → OPEN: any trial failure

Every transition starts a new generation. allow() hands out a Permit stamped
with the current generation, and outcomes reported with a permit from an
older generation are ignored: a slow call admitted before the circuit opened
must not close it again or free a half-open trial slot.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass(frozen=True)
class Permit:
    """Permission for one call, valid for the generation that issued it."""

    generation: int
    trial: bool = False


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    window: timedelta = timedelta(seconds=60)  # Failures older than this are forgotten
    cooldown: timedelta = timedelta(seconds=60)  # Time before half-open
    half_open_max_calls: int = 1  # Trial calls allowed in flight while half-open
    success_threshold: int = 1  # Successes needed to close from half-open


class CircuitBreaker:
    """
    Circuit breaker for a single upstream dependency.

    One instance is shared by every caller of that dependency. All state
    changes happen under a lock, so it is safe from any thread or task.

    Usage:
        cb = CircuitBreaker("tmdb-api")

        permit = cb.allow()
        if permit is None:
            raise CircuitOpenError("tmdb-api", cb.retry_after())

        try:
            result = await make_request()
        except asyncio.CancelledError:
            cb.release(permit)
            raise
        except Exception:
            cb.record_failure(permit)
            raise
        cb.record_success(permit)
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._success_count = 0
        self._last_failure_at: float | None = None
        self._opened_at: float | None = None
        self._trials_in_flight = 0
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state. Reading it never causes a transition."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        """Failures currently inside the sliding window."""
        with self._lock:
            self._prune_failures(self._clock())
            return len(self._failures)

    def allow(self) -> Permit | None:
        """Ask permission for one call. None means refused; a half-open permit is a trial."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return Permit(self._generation)

            now = self._clock()
            if self._state == CircuitState.OPEN:
                if self._opened_at is not None and now - self._opened_at >= self._cooldown:
                    self._transition(CircuitState.HALF_OPEN)
                    self._success_count = 0
                    self._trials_in_flight = 0
                else:
                    return None

            # HALF_OPEN
            if self._trials_in_flight < self.config.half_open_max_calls:
                self._trials_in_flight += 1
                return Permit(self._generation, trial=True)
            return None

    def record_success(self, permit: Permit | None = None) -> None:
        """Record a successful call."""
        with self._lock:
            if not self._accepts(permit):
                return
            if self._state == CircuitState.HALF_OPEN:
                self._trials_in_flight = max(0, self._trials_in_flight - 1)
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._close()
            elif self._state == CircuitState.CLOSED:
                self._failures.clear()

    def record_failure(self, permit: Permit | None = None) -> None:
        """Record a failed call."""
        with self._lock:
            if not self._accepts(permit):
                return
            now = self._clock()
            self._last_failure_at = now

            if self._state == CircuitState.HALF_OPEN:
                self._trials_in_flight = max(0, self._trials_in_flight - 1)
                self._open(now, reason="trial call failed")
            elif self._state == CircuitState.CLOSED:
                self._failures.append(now)
                self._prune_failures(now)
                if len(self._failures) >= self.config.failure_threshold:
                    self._open(
                        now,
                        reason=f"{len(self._failures)} failures within "
                        f"{self.config.window.total_seconds():.0f}s",
                    )

    def release(self, permit: Permit) -> None:
        """Give back a trial permit for a call that ended without an outcome (e.g. cancelled)."""
        with self._lock:
            if permit.trial and permit.generation == self._generation:
                self._trials_in_flight = max(0, self._trials_in_flight - 1)

    def retry_after(self) -> float:
        """Seconds until a trial call will be allowed; 0 unless open."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            remaining = self._opened_at + self._cooldown - self._clock()
            return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        with self._lock:
            now = self._clock()
            self._prune_failures(now)
            return {
                "service_id": self.service_id,
                "state": self._state.value,
                "failure_count": len(self._failures),
                "success_count": self._success_count,
                "last_failure_ago": (
                    round(now - self._last_failure_at, 3)
                    if self._last_failure_at is not None
                    else None
                ),
                "opened_ago": (
                    round(now - self._opened_at, 3)
                    if self._opened_at is not None
                    else None
                ),
                "failure_threshold": self.config.failure_threshold,
                "generation": self._generation,
            }

    @property
    def _cooldown(self) -> float:
        return self.config.cooldown.total_seconds()

    def _accepts(self, permit: Permit | None) -> bool:
        # Without a permit only a closed circuit takes the outcome
        if permit is None:
            return self._state == CircuitState.CLOSED
        if permit.generation != self._generation:
            logger.debug(
                f"Circuit breaker '{self.service_id}' ignoring outcome from "
                f"generation {permit.generation} (now {self._generation})"
            )
            return False
        return True

    def _prune_failures(self, now: float) -> None:
        horizon = now - self.config.window.total_seconds()
        while self._failures and self._failures[0] <= horizon:
            self._failures.popleft()

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        logger.info(
            f"Circuit breaker '{self.service_id}' {old_state.value} -> {new_state.value}"
        )

    def _open(self, now: float, reason: str) -> None:
        """Transition to OPEN state."""
        self._transition(CircuitState.OPEN)
        self._opened_at = now
        self._success_count = 0
        self._trials_in_flight = 0
        logger.warning(f"Circuit breaker '{self.service_id}' OPENED: {reason}")

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._transition(CircuitState.CLOSED)
        self._failures.clear()
        self._success_count = 0
        self._opened_at = None
        self._trials_in_flight = 0
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")
