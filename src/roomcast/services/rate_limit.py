"""Fixed-window admission control."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from roomcast.core.settings import settings

_CLEANUP_EVERY = 200


@dataclass
class _Bucket:
    count: int
    reset_at: float


class RateLimiter:
    """Counts requests per identity inside fixed windows.

    Buckets for identities that went quiet are purged every few hundred
    calls so the map does not grow without bound.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._calls = 0
        self._lock = Lock()

    def allow(self, identity: str) -> bool:
        """Return True and count the request if ``identity`` is under its quota."""
        now = self._clock()
        with self._lock:
            self._calls += 1
            if self._calls % _CLEANUP_EVERY == 0:
                self._purge(now)

            bucket = self._buckets.get(identity)
            if bucket is None or now > bucket.reset_at:
                self._buckets[identity] = _Bucket(count=1, reset_at=now + self.window_seconds)
                return True
            if bucket.count >= self.max_requests:
                return False
            bucket.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._calls = 0

    def _purge(self, now: float) -> None:
        expired = [key for key, bucket in self._buckets.items() if now > bucket.reset_at]
        for key in expired:
            del self._buckets[key]


_LOGIN_LIMITER = RateLimiter(settings.login_rate_limit, settings.rate_limit_window_seconds)
_AI_LIMITER = RateLimiter(settings.ai_rate_limit, settings.rate_limit_window_seconds)


def get_login_rate_limiter() -> RateLimiter:
    """Return the limiter consulted before login."""
    return _LOGIN_LIMITER


def get_ai_rate_limiter() -> RateLimiter:
    """Return the limiter consulted before AI sends."""
    return _AI_LIMITER
