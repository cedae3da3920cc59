"""Run lock registry and cancellation token for sync runs."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from jira_sync_mcp.errors import SyncCancelledError


class RunLockRegistry:
    """Per-project run locks.

    One registry is shared by reference between every engine that may
    sync the same project; a second ``try_acquire`` for a project already
    running returns False instead of blocking.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()

    def try_acquire(self, project_id: str) -> bool:
        with self._lock:
            if project_id in self._running:
                return False
            self._running.add(project_id)
            return True

    def release(self, project_id: str) -> None:
        with self._lock:
            self._running.discard(project_id)

    def is_running(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._running


class CancelToken:
    """Cooperative cancellation checked between items.

    Args:
        timeout: Seconds after which the token counts as cancelled, or
            None for no deadline.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._event = threading.Event()
        self.deadline = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    def raise_if_cancelled(self) -> None:
        """Raise ``SyncCancelledError`` once cancelled or past the deadline."""
        if self._event.is_set():
            raise SyncCancelledError("Sync cancelled")
        if self.deadline is not None and self._clock() >= self.deadline:
            raise SyncCancelledError("Sync cancelled: run timeout exceeded")
