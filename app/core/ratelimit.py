"""
Per-client request counter with a fixed window.

One RateLimiter is built at app creation and kept on app.state; handlers
reach it through the request, never through a module global.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class RateLimitEntry:
    client_key: str
    window_start: float
    count: int


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_purge = clock()

    def hit(self, client_key: str) -> bool:
        """Count one request for client_key. Returns False when over the limit."""
        now = self._clock()
        with self._lock:
            if now - self._last_purge >= self.window_seconds:
                self._purge_locked(now)

            entry = self._entries.get(client_key)
            if entry is None or now - entry.window_start >= self.window_seconds:
                entry = RateLimitEntry(client_key=client_key, window_start=now, count=0)
                self._entries[client_key] = entry

            entry.count += 1
            return entry.count <= self.max_requests

    def retry_after(self, client_key: str) -> float:
        """Seconds until client_key's window resets (0 if unknown)."""
        with self._lock:
            entry = self._entries.get(client_key)
            if entry is None:
                return 0.0
            return max(0.0, entry.window_start + self.window_seconds - self._clock())

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._entries[key]
        self._last_purge = now
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
