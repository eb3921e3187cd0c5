"""
Request throttling for the HTTP surface.

A 6-digit code has a million values, so /authorize is limited per client
and per account and /register per client. Hits are kept in a sliding
window per key.
"""

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

# Idle keys are swept after this many checks.
SWEEP_EVERY = 1024


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: float = 0.0

    @property
    def retry_after_header(self) -> str:
        """Whole seconds for an HTTP Retry-After header."""
        return str(max(1, math.ceil(self.retry_after)))


class RateLimiter:
    """Sliding-window limiter keyed by client or account id. Thread-safe."""

    def __init__(self, rpm: int, window_seconds: float = 60, clock: Callable[[], float] = time.time):
        self.limit = max(1, rpm)
        self.window = window_seconds
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._checks = 0

    def _expire(self, hits: Deque[float], now: float) -> None:
        horizon = now - self.window
        while hits and hits[0] <= horizon:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        for key in list(self._windows):
            self._expire(self._windows[key], now)
            if not self._windows[key]:
                del self._windows[key]

    def check(self, key: str) -> RateLimitResult:
        """Record a hit for key unless the key is already at its limit."""
        now = self._clock()
        with self._lock:
            self._checks += 1
            if self._checks % SWEEP_EVERY == 0:
                self._sweep(now)

            hits = self._windows.setdefault(key, deque())
            self._expire(hits, now)
            if len(hits) >= self.limit:
                return RateLimitResult(False, 0, hits[0] + self.window - now)
            hits.append(now)
            return RateLimitResult(True, self.limit - len(hits))

