"""Sliding-window request limiter keyed by client address."""

from __future__ import annotations

import threading
import time
import weakref
from collections.abc import Callable
from datetime import timedelta


def _seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _cleanup_loop(
    limiter_ref: weakref.ReferenceType[RateLimiter],
    interval: float,
    stop: threading.Event,
) -> None:
    while not stop.wait(interval):
        limiter = limiter_ref()
        if limiter is None:
            return
        limiter.cleanup()
        del limiter


class RateLimiter:
    """Allows at most ``limit`` requests per address within ``window`` seconds."""

    def __init__(
        self,
        limit: int,
        window: float | timedelta,
        *,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float | timedelta | None = 60.0,
    ) -> None:
        self.limit = limit
        self.window = _seconds(window)
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, list[float]] = {}
        if cleanup_interval is not None:
            stop = threading.Event()
            weakref.finalize(self, stop.set)
            thread = threading.Thread(
                target=_cleanup_loop,
                args=(weakref.ref(self), _seconds(cleanup_interval), stop),
                name="rate-limiter-cleanup",
                daemon=True,
            )
            thread.start()

    def _recent(self, times: list[float], now: float) -> list[float]:
        window_start = now - self.window
        return [t for t in times if t > window_start]

    def is_allowed(self, ip: str) -> bool:
        """Record a request from ``ip`` and report whether it fits the limit."""
        with self._lock:
            now = self._clock()
            recent = self._recent(self._requests.get(ip, []), now)
            if len(recent) >= self.limit:
                self._requests[ip] = recent
                return False
            recent.append(now)
            self._requests[ip] = recent
            return True

    def get_remaining_requests(self, ip: str) -> int:
        """Return how many more requests ``ip`` may make in the current window."""
        with self._lock:
            times = self._requests.get(ip)
            if times is None:
                return self.limit
            return self.limit - len(self._recent(times, self._clock()))

    def cleanup(self) -> None:
        """Forget expired requests and addresses with nothing left in the window."""
        with self._lock:
            now = self._clock()
            for ip in list(self._requests):
                recent = self._recent(self._requests[ip], now)
                if recent:
                    self._requests[ip] = recent
                else:
                    del self._requests[ip]

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)