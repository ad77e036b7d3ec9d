"""
Retry policy - bounded exponential backoff with jitter.

The policy only computes delays; the client owns the loop and the sleep
function, so tests can swap in a recording sleep and a seeded random source.
"""

import random
from dataclasses import dataclass, field


@dataclass
class RetryPolicy:
    """
    Backoff schedule for transient upstream failures.

    Attributes:
        max_attempts: Total attempts per call, including the first one
        base_delay: Delay before the second attempt, in seconds
        multiplier: Growth factor between consecutive delays
        max_delay: Cap for a computed delay
        jitter: Relative jitter, e.g. 0.25 spreads each delay by ±25%
        max_retry_after: Longest server-provided Retry-After we are willing to wait
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.25
    max_retry_after: float = 30.0
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 1 + self.rng.uniform(-self.jitter, self.jitter)
        return max(0.0, min(delay, self.max_delay))

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float | None:
        """
        Delay before the next attempt, or None when we should stop retrying.

        A server hint wins over the schedule unless it exceeds max_retry_after,
        in which case waiting would block too long and the caller gives up.
        """
        if attempt >= self.max_attempts:
            return None
        if retry_after is not None:
            if retry_after > self.max_retry_after:
                return None
            return retry_after
        return self.backoff(attempt)
