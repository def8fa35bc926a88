"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every read-modify-write runs under the registry lock.
- Windows start at a key's first request, not on aligned clock boundaries.
  A key can therefore be admitted up to twice the limit across a window
  boundary (the limit just before reset, the limit again right after).
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from throttler.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from throttler.adapters.rate_limit.registry import ThrottleEntry, ThrottleRegistry
from throttler.adapters.rate_limit.sweeper import RegistrySweeper

logger = logging.getLogger(__name__)


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per key in a fixed window.

    Rejected requests are counted too, so a caller that keeps retrying during
    a blocked window stays blocked until the window ends.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_ms: int,
        clock: Callable[[], float] = time.time,
        registry: ThrottleRegistry | None = None,
        sweep_interval_seconds: float | None = None,
        name: str = "rate-limit",
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of admitted requests per window.
            window_ms: Size of the window in milliseconds.
            clock: Time source function returning UNIX time in seconds.
            registry: State to count into; a private one is created if omitted.
            sweep_interval_seconds: Period of the background sweep. ``None``
                leaves sweeping to explicit ``sweep()`` calls.
            name: Label used in logs and for the sweeper thread.

        Raises:
            ValueError: If limit or window_ms are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self.name = name
        self._limit = limit
        self._window_ms = window_ms
        self._clock = clock
        self._registry = registry if registry is not None else ThrottleRegistry()
        self._sweeper: RegistrySweeper | None = None

        if sweep_interval_seconds is not None:
            self._sweeper = RegistrySweeper(
                self.sweep,
                interval_seconds=sweep_interval_seconds,
                name=name,
            )
            self._sweeper.start()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def registry(self) -> ThrottleRegistry:
        return self._registry

    @property
    def sweeper(self) -> RegistrySweeper | None:
        return self._sweeper

    def _build_allowed_result(self, *, remaining: int, reset_at: float) -> RateLimitResult:
        """Build a RateLimitResult for an allowed request."""
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=max(0, remaining),
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, *, now: float, reset_at: float) -> RateLimitResult:
        """Build a RateLimitResult for a blocked request."""
        retry_after = max(0, int(math.ceil(reset_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=retry_after,
        )

    def consume(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it may proceed.

        A missing entry, or one whose window already ended, starts a new
        window with this request as its first. Otherwise the count is
        incremented and compared with the limit.

        Args:
            key: Unique identifier for rate limiting.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._registry.lock:
            now = self._clock()
            entry = self._registry.get(key)

            if entry is None or entry.is_expired(now):
                entry = ThrottleEntry(
                    key=key,
                    count=1,
                    window_reset_at=now + self._window_ms / 1000,
                )
                self._registry.put(entry)
                return self._build_allowed_result(
                    remaining=self._limit - 1,
                    reset_at=entry.window_reset_at,
                )

            entry.count += 1
            if entry.count > self._limit:
                return self._build_blocked_result(now=now, reset_at=entry.window_reset_at)

            return self._build_allowed_result(
                remaining=self._limit - entry.count,
                reset_at=entry.window_reset_at,
            )

    def sweep(self) -> int:
        """Remove every entry whose window has ended.

        Returns:
            Number of entries removed.
        """
        with self._registry.lock:
            removed = self._registry.purge_expired(self._clock())
            remaining_entries = len(self._registry)

        logger.debug(
            "rate_limit.sweep",
            extra={"limiter": self.name, "removed": removed, "entries": remaining_entries},
        )
        return removed

    def close(self) -> None:
        """Stop the background sweeper if one is running."""
        if self._sweeper is not None:
            self._sweeper.stop()
