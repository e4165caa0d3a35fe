"""Cached application health report."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _trim_fraction(whole: int, fraction: int, digits: int) -> str:
    if not fraction:
        return str(whole)
    return f"{whole}.{fraction:0{digits}d}".rstrip("0")


def _format_duration(seconds: float) -> str:
    """Render a duration in the h/m/s notation, e.g. ``1h2m3.5s``."""
    ns = round(seconds * 1_000_000_000)
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns == 0:
        return "0s"
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return sign + _trim_fraction(*divmod(ns, 1_000), 3) + "µs"
    if ns < 1_000_000_000:
        return sign + _trim_fraction(*divmod(ns, 1_000_000), 6) + "ms"
    hours, rest = divmod(ns, 3_600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    secs = _trim_fraction(*divmod(rest, 1_000_000_000), 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return sign + secs


@dataclass
class HealthStatus:
    """The body of a health report."""

    status: str = "ok"
    last_checked: datetime = field(default_factory=_now)
    uptime: str = "0s"
    version: str = "1.0.0"

    def to_dict(self) -> dict[str, str]:
        return {
            "status": self.status,
            "last_checked": self.last_checked.isoformat(),
            "uptime": self.uptime,
            "version": self.version,
        }


class HealthMonitor:
    """Produces a JSON health report, reusing it for ``cache_duration`` seconds."""

    def __init__(
        self,
        version: str = "1.0.0",
        cache_duration: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cache_duration = cache_duration
        self._lock = threading.Lock()
        self._started = clock()
        self._status = HealthStatus(version=version)
        self._cached: bytes | None = None
        self._cached_at = 0.0

    def check(self) -> bytes:
        """Return the current health report as JSON bytes."""
        with self._lock:
            now = self._clock()
            if self._cached is not None and now - self._cached_at < self._cache_duration:
                return self._cached
            self._status.uptime = _format_duration(now - self._started)
            self._status.last_checked = _now()
            self._cached = json.dumps(self._status.to_dict()).encode("utf-8")
            self._cached_at = now
            return self._cached

    def update_status(self, status: str) -> None:
        """Change the reported status and drop the cached report."""
        with self._lock:
            self._status.status = status
            self._status.last_checked = _now()
            self._cached = None

    def set_version(self, version: str) -> None:
        """Change the reported version and drop the cached report."""
        with self._lock:
            self._status.version = version
            self._cached = None