"""Per-key counting records for fixed-window rate limiting."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass
class ThrottleEntry:
    """Counting record for one key.

    Attributes:
        key: Caller identity the requests are grouped under.
        count: Requests seen in the current window (admitted and rejected).
        window_reset_at: UNIX time in seconds at which the window ends.
    """

    key: str
    count: int
    window_reset_at: float

    def is_expired(self, now: float) -> bool:
        return self.window_reset_at < now


class ThrottleRegistry:
    """Mapping from key to ThrottleEntry guarded by a single lock.

    Callers that read and then write an entry must hold ``lock`` for the
    whole sequence; the individual methods take it as well so the registry
    stays consistent when used on its own.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._entries: dict[str, ThrottleEntry] = {}

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self.lock:
            return key in self._entries

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"ThrottleRegistry(size={len(self)})"

    def get(self, key: str) -> ThrottleEntry | None:
        with self.lock:
            return self._entries.get(key)

    def put(self, entry: ThrottleEntry) -> None:
        with self.lock:
            self._entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        with self.lock:
            return self._entries.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self.lock:
            return list(self._entries)

    def purge_expired(self, now: float) -> int:
        """Delete every entry whose window ended before ``now``.

        Args:
            now: UNIX time in seconds.

        Returns:
            Number of entries removed.
        """
        with self.lock:
            expired_keys = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]
            return len(expired_keys)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()
