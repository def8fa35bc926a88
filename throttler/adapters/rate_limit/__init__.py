"""Rate limiting adapters.

This package keeps per-key accounting behind a small abstraction so the
in-memory limiter can later be replaced by Redis or another shared store
without changing the HTTP layer.
"""

from throttler.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from throttler.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttler.adapters.rate_limit.registry import ThrottleEntry, ThrottleRegistry
from throttler.adapters.rate_limit.sweeper import RegistrySweeper

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
    "RegistrySweeper",
    "ThrottleEntry",
    "ThrottleRegistry",
]
