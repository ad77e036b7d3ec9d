"""
RequestDeduplicator - Coalesces concurrent computations for the same key.

When multiple callers miss the cache for the same key simultaneously,
only one computation runs and every caller receives its result (or error).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async computations.

    Waiters are shielded from each other: a cancelled caller detaches from
    the shared task, and the task itself is only cancelled when its last
    waiter goes away.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_data(key: str):
            return await dedup.dedupe(key, lambda: compute(key))
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._waiters: dict[asyncio.Task[Any], int] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute request with deduplication.

        If a computation with the same key is already in flight,
        wait for and return its result instead of starting a new one.

        Args:
            key: Unique identifier for this computation
            request_fn: Async function to execute if no duplicate exists

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None and not task.done():
                self._stats.deduplicated += 1
                self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
            else:
                self._stats.total += 1
                self._log(f"NEW: Starting request: {key[:50]}...")
                task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
                self._in_flight[key] = task
            self._waiters[task] = self._waiters.get(task, 0) + 1

        cancelled = False
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            remaining = self._detach(task)
            if cancelled and remaining == 0 and not task.done():
                self._log(f"CANCEL: Last waiter gone: {key[:50]}...")
                task.cancel()

    def _detach(self, task: asyncio.Task[Any]) -> int:
        """Drop one waiter from ``task``; returns how many remain."""
        remaining = self._waiters.get(task, 0) - 1
        if remaining <= 0:
            self._waiters.pop(task, None)
            return 0
        self._waiters[task] = remaining
        return remaining

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            async with self._lock:
                if self._in_flight.get(key) is asyncio.current_task():
                    self._in_flight.pop(key, None)
                self._log(f"DONE: Request completed: {key[:50]}...")

    async def cancel_all(self) -> int:
        """Cancel all in-flight computations."""
        async with self._lock:
            count = len(self._in_flight)
            for task in self._in_flight.values():
                task.cancel()
            self._in_flight.clear()
            self._waiters.clear()
            if count:
                self._log(f"CANCEL_ALL: {count} requests cancelled")
            return count

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


@dataclass
class DeduplicatorStats:
    """Coalescing counters."""

    total: int = 0  # Computations actually started
    deduplicated: int = 0  # Callers that joined an existing one
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total
