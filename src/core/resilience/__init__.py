"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff with symmetric jitter and a retry budget
    - RetryState: Per-call attempt counter and wall-clock budget tracking
"""

from .retry import (
    RetryConfig,
    RetryState,
)

__all__ = [
    "RetryConfig",
    "RetryState",
]
