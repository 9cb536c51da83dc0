"""
Sliding-window rate limiter for Obsidian MCP Gateway.

Tracks, per client key, the instants of accepted requests within a trailing
window. Entries are pruned lazily on each check; there is no background sweep.
"""

import threading
import time
from collections import deque
from typing import Callable

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Per-client sliding window rate limiter.

    Each client key has its own lock, so checks for distinct clients never
    wait on each other. The registry lock is held only to create a key's
    lock and window.
    """

    def __init__(self, window: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _slot(self, client_id: str) -> tuple[threading.Lock, deque[float]]:
        with self._registry_lock:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = self._locks[client_id] = threading.Lock()
                self._windows[client_id] = deque()
            return lock, self._windows[client_id]

    def allow(self, client_id: str, limit: int) -> bool:
        """Record a request for client_id if it fits in the window.

        A rejected attempt is not recorded, so it does not extend the wait.

        Args:
            client_id: Client key (the resolved client IP)
            limit: Maximum accepted requests per window

        Returns:
            True if the request is accepted
        """
        lock, timestamps = self._slot(client_id)
        with lock:
            now = self._clock()
            cutoff = now - self.window
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= limit:
                return False

            timestamps.append(now)
            return True

    def count(self, client_id: str) -> int:
        """Return the number of requests currently recorded for client_id."""
        with self._registry_lock:
            lock = self._locks.get(client_id)
            timestamps = self._windows.get(client_id)
        if lock is None:
            return 0
        with lock:
            return len(timestamps)

    def reset(self) -> None:
        with self._registry_lock:
            self._windows.clear()
            self._locks.clear()
