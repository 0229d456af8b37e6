"""Per-identity rate limiting for chat requests.

Each identity (usually a client IP) gets two independent fixed windows, one
per minute and one per hour. Windows are reset lazily when touched after they
expire and swept periodically so idle identities do not accumulate.
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from school_explorer.logging import get_logger

log = get_logger("school_explorer.limits.rate_limiter")

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0


@dataclass
class RateWindow:
    """Request count for one identity within one window."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_in: int
    error: str | None = None


class RateLimiter:
    """Minute and hour rate limiter keyed by identity.

    All operations are synchronous and never suspend, so a plain
    ``threading.Lock`` serialises them for both threads and coroutines.
    """

    def __init__(
        self,
        per_minute: int = 10,
        per_hour: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            per_minute: Maximum accepted requests per identity per minute.
            per_hour: Maximum accepted requests per identity per hour.
            clock: Source of the current time in epoch seconds.
        """
        self._per_minute = per_minute
        self._per_hour = per_hour
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    @property
    def per_minute(self) -> int:
        return self._per_minute

    @property
    def per_hour(self) -> int:
        return self._per_hour

    def check_rate_limit(self, identity: str) -> RateLimitResult:
        """Check whether an identity may make another request.

        Does not count the request; call :meth:`record_request` once the
        request is accepted, or use :meth:`acquire` to do both atomically.

        Args:
            identity: Caller identity (IP address or user id).

        Returns:
            A :class:`RateLimitResult`.
        """
        with self._lock:
            return self._check_locked(identity, self._clock())

    def record_request(self, identity: str) -> None:
        """Count an accepted request against both windows."""
        with self._lock:
            self._record_locked(identity, self._clock())

    def acquire(self, identity: str) -> RateLimitResult:
        """Check and, if allowed, record a request in one exclusive section."""
        with self._lock:
            now = self._clock()
            result = self._check_locked(identity, now)
            if result.allowed:
                self._record_locked(identity, now)
            return result

    def get_headers(self, identity: str) -> dict[str, str]:
        """Build ``X-RateLimit-*`` response headers from the minute window."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(_key(identity, "minute"))
            if window is not None and now >= window.reset_at:
                window = None

            if window is None:
                remaining = self._per_minute
                reset_at = now + MINUTE_SECONDS
            else:
                remaining = max(0, self._per_minute - window.count)
                reset_at = window.reset_at

        return {
            "X-RateLimit-Limit": str(self._per_minute),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(math.ceil(reset_at)),
        }

    def cleanup(self) -> int:
        """Remove every expired window.

        Returns:
            Number of windows removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]

        if expired:
            log.debug("rate_windows_swept", removed=len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float = 300.0) -> None:
        """Sweep expired windows every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _check_locked(self, identity: str, now: float) -> RateLimitResult:
        minute = self._live_window(_key(identity, "minute"), now)
        if minute is not None and minute.count >= self._per_minute:
            log.warning("rate_limited", identity=identity, window="minute")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_in=math.ceil(minute.reset_at - now),
                error="Too many requests. Please wait a moment before trying again.",
            )

        hour = self._live_window(_key(identity, "hour"), now)
        if hour is not None and hour.count >= self._per_hour:
            log.warning("rate_limited", identity=identity, window="hour")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_in=math.ceil(hour.reset_at - now),
                error="Hourly limit reached. Please try again later.",
            )

        minute_remaining = self._per_minute - (minute.count if minute else 0) - 1
        hour_remaining = self._per_hour - (hour.count if hour else 0) - 1
        return RateLimitResult(
            allowed=True,
            remaining=min(minute_remaining, hour_remaining),
            reset_in=int(MINUTE_SECONDS),
        )

    def _record_locked(self, identity: str, now: float) -> None:
        for granularity, duration in (("minute", MINUTE_SECONDS), ("hour", HOUR_SECONDS)):
            key = _key(identity, granularity)
            window = self._live_window(key, now)
            if window is None:
                self._windows[key] = RateWindow(count=1, reset_at=now + duration)
            else:
                window.count += 1

    def _live_window(self, key: str, now: float) -> RateWindow | None:
        """Return the window for ``key``, deleting it first if it has expired."""
        window = self._windows.get(key)
        if window is not None and now >= window.reset_at:
            del self._windows[key]
            return None
        return window


def _key(identity: str, granularity: str) -> str:
    return f"{identity}:{granularity}"
