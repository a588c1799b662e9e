"""
Fixed-window rate limiting per API credential.

State is in memory for the life of the process and reset lazily on read.
"""

import hashlib
import time
from dataclasses import dataclass
from typing import Callable

from core.config import (
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_STALE_SECONDS,
    RATE_LIMIT_WINDOW_SECONDS,
)
from core.errors import RateLimited


@dataclass
class RateLimitWindow:
    """Admission count for one credential within the current window."""

    credential_key: str
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds, per the injected clock


def credential_key(api_key: str) -> str:
    """Digest used in place of the raw key for maps, logs and cache keys."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


class RateLimiter:
    """
    Admission gate shared by all outbound calls made with one credential.

    Denied calls get a result with allowed=False rather than an exception;
    use acquire() when the RateLimited error form is wanted.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, RateLimitWindow] = {}

    def check(self, api_key: str) -> RateLimitResult:
        key = credential_key(api_key)
        now = self.clock()
        window = self._windows.get(key)

        if window is None or now >= window.reset_at:
            window = RateLimitWindow(key, 1, now + self.window_seconds)
            self._windows[key] = window
            return RateLimitResult(True, self.max_requests - 1, window.reset_at)

        if window.count >= self.max_requests:
            return RateLimitResult(False, 0, window.reset_at)

        window.count += 1
        return RateLimitResult(True, self.max_requests - window.count, window.reset_at)

    def acquire(self, api_key: str) -> RateLimitResult:
        """Like check(), but raises RateLimited when the window is exhausted."""
        result = self.check(api_key)
        if not result.allowed:
            raise RateLimited(result.reset_at)
        return result

    def window_for(self, api_key: str) -> RateLimitWindow | None:
        return self._windows.get(credential_key(api_key))

    def sweep(self, stale_seconds: float = RATE_LIMIT_STALE_SECONDS) -> int:
        """Drop windows that expired more than `stale_seconds` ago."""
        now = self.clock()
        stale = [k for k, w in self._windows.items() if now >= w.reset_at + stale_seconds]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._windows)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the process-wide limiter (lazy initialization)."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
