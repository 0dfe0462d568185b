"""
Fixed-window request rate limiting.

Window state lives in an injectable store so the limiter can run against a
per-process map in development and tests, or a shared cache when the API is
deployed as several instances.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from studybuddy.core.errors import RateLimited


@dataclass
class RateWindow:
    """Request count for one caller inside the current window."""

    count: int
    reset_at: float


class RateLimitStore(Protocol):
    """Storage backend for rate limit windows."""

    def get(self, key: str) -> RateWindow | None: ...

    def set(self, key: str, window: RateWindow) -> None: ...

    def purge(self, now: float) -> int: ...


class InMemoryRateLimitStore:
    """Process-local window map. Expired windows are dropped by ``purge``."""

    def __init__(self) -> None:
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> RateWindow | None:
        with self._lock:
            return self._windows.get(key)

    def set(self, key: str, window: RateWindow) -> None:
        with self._lock:
            self._windows[key] = window

    def purge(self, now: float) -> int:
        """Drop windows whose reset time has passed."""
        with self._lock:
            expired = [k for k, w in self._windows.items() if now > w.reset_at]
            for key in expired:
                del self._windows[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiter:
    """
    Allow ``limit`` requests per caller per ``window_seconds``.

    The first request opens a window; requests beyond the quota fail fast with
    RateLimited until the window resets. Expired windows are purged from the
    store at most once per window length.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock
        self._next_purge: float | None = None

    def allow(self, key: str) -> bool:
        """Record a request for ``key``; return False when over quota."""
        now = self.clock()
        if self._next_purge is None or now >= self._next_purge:
            removed = self.store.purge(now)
            if removed:
                logger.debug("Purged {} expired rate limit windows", removed)
            self._next_purge = now + self.window_seconds
        window = self.store.get(key)

        if window is None or now > window.reset_at:
            self.store.set(key, RateWindow(count=1, reset_at=now + self.window_seconds))
            return True

        if window.count >= self.limit:
            return False

        self.store.set(key, RateWindow(count=window.count + 1, reset_at=window.reset_at))
        return True

    def check(self, key: str) -> None:
        """Like allow(), but raise RateLimited when over quota."""
        if not self.allow(key):
            logger.warning("Rate limit exceeded for {}", key)
            raise RateLimited()
