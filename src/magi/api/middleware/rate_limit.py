"""
Rate limiting -- sliding-window log per caller identity.

A request is admitted iff fewer than `limit` requests from the same key
were admitted inside the trailing window. Pruning, counting and recording
happen in one store call under a lock, so concurrent admission checks
cannot undercount.

Every checked request gets X-RateLimit-Limit / -Remaining / -Reset headers
(Reset is the epoch second at which the oldest counted request leaves the
window).

Failure policy: if the store itself errors, the limiter fails open and
admits the request (logged as a warning). fail_open=False turns this into
a 503 instead.

Configuration via environment (see config.GatewaySettings):
  RATE_LIMIT_PER_MINUTE=50
  RATE_LIMIT_WINDOW_SECONDS=60
  RATE_LIMIT_FAIL_OPEN=true
  TRUST_FORWARDED_FOR=false
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

from fastapi import Request

from ..errors import RateLimiterUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 10_000


@dataclass(frozen=True)
class WindowState:
    """Store answer for one hit: admitted or not, and the window after it."""

    admitted: bool
    count: int
    oldest: float | None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


@runtime_checkable
class RateLimitStore(Protocol):
    """Counter backend. hit() must prune, count and record atomically."""

    async def hit(self, key: str, now: float, window_seconds: float, limit: int) -> WindowState: ...


class InMemoryRateLimitStore:
    """
    Process-local sliding-window log.

    For multiple replicas, implement RateLimitStore on a shared backend
    with an atomic script or transaction.
    """

    def __init__(self, max_keys: int = DEFAULT_MAX_KEYS):
        self._log: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._max_keys = max_keys

    async def hit(self, key: str, now: float, window_seconds: float, limit: int) -> WindowState:
        async with self._lock:
            if len(self._log) >= self._max_keys and key not in self._log:
                self._sweep(now, window_seconds)
            timestamps = self._log.setdefault(key, deque())
            cutoff = now - window_seconds
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            admitted = len(timestamps) < limit
            if admitted:
                timestamps.append(now)
            return WindowState(
                admitted=admitted,
                count=len(timestamps),
                oldest=timestamps[0] if timestamps else None,
            )

    def _sweep(self, now: float, window_seconds: float) -> None:
        cutoff = now - window_seconds
        stale = [k for k, ts in self._log.items() if not ts or ts[-1] <= cutoff]
        for k in stale:
            del self._log[k]
        logger.debug(f"[RateLimit] Swept {len(stale)} idle keys")


class SlidingWindowRateLimiter:
    """
    Usage:
        limiter = SlidingWindowRateLimiter(limit=50, window_seconds=60)
        result = await limiter.check(client_ip)
        if not result.allowed: ...  # 429 with result.headers()
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        limit: int = 50,
        window_seconds: float = 60.0,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._store = store or InMemoryRateLimitStore()
        self._limit = limit
        self._window = window_seconds
        self._fail_open = fail_open
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    async def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        try:
            state = await self._store.hit(key, now, self._window, self._limit)
        except Exception as e:
            if not self._fail_open:
                logger.error(f"[RateLimit] Store error, failing closed: {e}")
                raise RateLimiterUnavailable() from e
            logger.warning(f"[RateLimit] Store error, failing open for {key}: {e}")
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit,
                reset_at=now + self._window,
                degraded=True,
            )

        reset_at = state.oldest + self._window if state.oldest is not None else now + self._window
        if not state.admitted:
            logger.warning(f"[RateLimit] Client {key} exceeded {self._limit}/{self._window:.0f}s")
        return RateLimitResult(
            allowed=state.admitted,
            limit=self._limit,
            remaining=max(0, self._limit - state.count),
            reset_at=reset_at,
        )


def client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    """Caller key for rate limiting: client IP, optionally from X-Forwarded-For."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"
