"""Request pacing and caching for the Jira client.

Both components are plain objects constructed with their limits and passed
into ``JiraClient``; nothing here is module-level state. Clock and sleep
functions are injectable so tests run instantly.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class RateLimiter:
    """Pace outgoing calls in fixed-size chunks.

    Every call waits until at least ``min_interval`` seconds have passed
    since the previous one. After every ``chunk_size`` calls an extra
    ``chunk_delay`` pause is inserted.

    Args:
        min_interval: Minimum seconds between two calls.
        chunk_size: Number of calls per chunk.
        chunk_delay: Pause in seconds between chunks.
        clock: Monotonic clock, defaults to ``time.monotonic``.
        sleep: Sleep function, defaults to ``time.sleep``.
    """

    def __init__(
        self,
        min_interval: float = 0.1,
        chunk_size: int = 10,
        chunk_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.min_interval = min_interval
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None
        self._calls = 0

    @property
    def calls(self) -> int:
        """Number of calls admitted so far."""
        return self._calls

    def acquire(self) -> None:
        """Block until the next call is allowed."""
        with self._lock:
            if self._calls and self._calls % self.chunk_size == 0:
                logger.debug(
                    "Chunk of %d requests done, pausing %.2fs",
                    self.chunk_size,
                    self.chunk_delay,
                )
                self._sleep(self.chunk_delay)
            if self._last_call is not None:
                wait = self.min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    self._sleep(wait)
            self._last_call = self._clock()
            self._calls += 1


class TTLCache:
    """Small key/value cache whose entries expire after ``ttl`` seconds.

    Args:
        ttl: Lifetime of an entry in seconds. ``0`` disables caching.
        clock: Monotonic clock, defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
