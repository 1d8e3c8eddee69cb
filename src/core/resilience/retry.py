"""
Retry primitives: jittered exponential backoff and per-call retry state.

Backoff for attempt n (1-indexed, the attempt that just failed):

    nominal = min(max_delay, base_delay * exponential_base ** (n - 1))
    delay   = nominal * uniform(1 - jitter, 1 + jitter)

A server-provided retry-after hint raises the delay, never lowers it.
RetryState tracks one logical call (all attempts plus sleeps) against a
wall-clock budget and is never shared between calls.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 16.0
    exponential_base: float = 2.0

    # Symmetric multiplicative jitter (0.2 means +/-20%)
    jitter: float = 0.2

    # Wall-clock budget for one logical call, including sleeps
    budget_seconds: float = 60.0

    # If True, a server retry-after hint can lengthen the delay
    respect_retry_after: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        self.jitter = float(self.jitter)
        self.budget_seconds = float(self.budget_seconds)
        self.respect_retry_after = (
            self.respect_retry_after
            if isinstance(self.respect_retry_after, bool)
            else str(self.respect_retry_after).lower() in ("1", "true", "yes")
        )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    def nominal_delay(self, attempt: int) -> float:
        """Un-jittered exponential delay for a 1-indexed attempt, capped at max_delay."""
        exponent = max(attempt - 1, 0)
        return min(self.max_delay, self.base_delay * (self.exponential_base**exponent))

    def get_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Calculate the sleep before the next attempt.

        Args:
            attempt: 1-indexed number of the attempt that just failed
            retry_after: Optional server hint in seconds

        Returns:
            Delay in seconds, never negative
        """
        nominal = self.nominal_delay(attempt)
        factor = random.uniform(1 - self.jitter, 1 + self.jitter)
        delay = max(0.0, nominal * factor)

        if self.respect_retry_after and retry_after:
            delay = max(delay, retry_after)

        return delay


@dataclass
class RetryState:
    """State of one logical call across all of its attempts."""

    budget_ms: int
    clock: Callable[[], float] = time.monotonic
    attempt: int = 0
    total_delay: float = 0.0
    started_at: float = field(init=False)

    def __post_init__(self):
        self.started_at = self.clock()

    @property
    def elapsed_ms(self) -> float:
        return (self.clock() - self.started_at) * 1000

    @property
    def budget_exhausted(self) -> bool:
        return self.elapsed_ms > self.budget_ms

    def begin_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def record_delay(self, delay: float) -> None:
        self.total_delay += delay


__all__ = [
    "RetryConfig",
    "RetryState",
]
