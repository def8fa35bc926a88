"""Background garbage collection for rate limit state.

The sweep only bounds memory. A stale entry is treated as a fresh window on
its next access, so missing a cycle never changes a decision.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RegistrySweeper:
    """Run a sweep callable every ``interval_seconds`` on a daemon thread.

    Attributes:
        interval_seconds: Delay between two sweep cycles.
        name: Label used for the thread name and in logs.
    """

    def __init__(
        self,
        sweep: Callable[[], int],
        *,
        interval_seconds: float,
        name: str = "rate-limit",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self.interval_seconds = interval_seconds
        self.name = name
        self._sweep = sweep
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweep thread. Calling it twice is harmless."""

        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name=f"{self.name}-sweeper",
                daemon=True,
            )
            self._thread.start()

        logger.debug(
            "rate_limit.sweeper_started",
            extra={"limiter": self.name, "interval_s": self.interval_seconds},
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to exit and wait for it."""

        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()

        if thread is not None:
            thread.join(timeout)
            logger.debug("rate_limit.sweeper_stopped", extra={"limiter": self.name})

    def run_once(self) -> int:
        """Run one sweep cycle in the calling thread."""

        return self._sweep()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("rate_limit.sweep_failed", extra={"limiter": self.name})
