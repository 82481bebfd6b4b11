"""Per-domain sliding-window rate limiter. Admission decision only, never blocks."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

WINDOW_SEC = 1.0


class RateLimiter:
    """Allow at most ``requests_per_second`` admissions per domain in any 1s window."""

    __slots__ = ("_rps", "_clock", "_lock", "_request_times")

    def __init__(self, requests_per_second: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._rps = requests_per_second
        self._clock = clock
        self._lock = threading.Lock()
        self._request_times: dict[str, deque[float]] = {}

    @property
    def requests_per_second(self) -> int:
        return self._rps

    def allow(self, domain: str) -> bool:
        now = self._clock()
        with self._lock:
            times = self._request_times.get(domain)
            if times is None:
                times = self._request_times[domain] = deque()
            # Timestamps are appended in order, so expired ones sit at the left.
            while times and now - times[0] >= WINDOW_SEC:
                times.popleft()
            if len(times) < self._rps:
                times.append(now)
                return True
            return False

    def reset(self) -> None:
        with self._lock:
            self._request_times.clear()

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {
                "domains": list(self._request_times),
                "total_requests": sum(len(t) for t in self._request_times.values()),
            }
