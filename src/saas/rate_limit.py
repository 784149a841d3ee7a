"""Fixed-window request throttle for write endpoints.

One bucket per opaque key (typically ``"{route}:{client_ip}"``). Buckets
reset at discrete window boundaries, so bursts of up to ``2 * limit`` are
possible across a boundary. State is process-local: every serving instance
keeps its own counters.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.core.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_SWEEP_EVERY,
    RATE_LIMIT_WINDOW_MS,
)
from src.core.logging import get_logger

log = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateBucket:
    count: int
    reset_at: int  # epoch milliseconds


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds


def retry_after_seconds(result: RateLimitResult, now_ms: int | None = None) -> int:
    """Seconds until the window resets, for the ``Retry-After`` header."""
    now = _now_ms() if now_ms is None else now_ms
    return max(1, math.ceil((result.reset_at - now) / 1000))


class RateLimiter:
    """Thread-safe fixed-window limiter. Policy-free: limits come from callers."""

    def __init__(
        self,
        window_ms: int = RATE_LIMIT_WINDOW_MS,
        default_limit: int = RATE_LIMIT_DEFAULT,
        clock: Callable[[], int] = _now_ms,
        sweep_every: int = RATE_LIMIT_SWEEP_EVERY,
    ) -> None:
        self._window_ms = window_ms
        self._default_limit = default_limit
        self._clock = clock
        self._sweep_every = sweep_every
        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()
        self._calls_since_sweep = 0

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def now_ms(self) -> int:
        return self._clock()

    def consume(self, key: str, limit: int | None = None) -> RateLimitResult:
        """Count one request against ``key`` and report whether it may proceed."""
        limit = self._default_limit if limit is None else limit
        now = self._clock()

        with self._lock:
            self._calls_since_sweep += 1
            if self._calls_since_sweep >= self._sweep_every:
                self._sweep_locked(now)

            bucket = self._buckets.get(key)
            if bucket is None or bucket.reset_at < now:
                reset_at = now + self._window_ms
                self._buckets[key] = RateBucket(count=1, reset_at=reset_at)
                return RateLimitResult(allowed=True, remaining=limit - 1, reset_at=reset_at)

            if bucket.count >= limit:
                log.debug("rate_limit_denied", key=key, limit=limit)
                return RateLimitResult(allowed=False, remaining=0, reset_at=bucket.reset_at)

            bucket.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=limit - bucket.count,
                reset_at=bucket.reset_at,
            )

    def sweep(self) -> int:
        """Drop every bucket whose window has already passed. Returns the count removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: int) -> int:
        expired = [key for key, bucket in self._buckets.items() if bucket.reset_at < now]
        for key in expired:
            del self._buckets[key]
        self._calls_since_sweep = 0
        if expired:
            log.debug("rate_limit_swept", removed=len(expired), remaining=len(self._buckets))
        return len(expired)

    def __len__(self) -> int:
        return len(self._buckets)

    def reset(self) -> None:
        """Forget all buckets (for testing or admin override)."""
        with self._lock:
            self._buckets.clear()
            self._calls_since_sweep = 0
