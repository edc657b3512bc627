import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int
    remaining: int


@dataclass
class _Bucket:
    count: int
    reset_at: float


class RateLimitBuckets:
    """Fixed-window request counters keyed by caller.

    One instance is created with the application and shared by reference
    with the handlers that need it.
    """

    def __init__(self, clock: Callable[[], float] = lambda: time.time() * 1000) -> None:
        self.clock = clock
        self.buckets: dict[str, _Bucket] = {}

    def _prune(self, now: float) -> None:
        for key in [k for k, b in self.buckets.items() if b.reset_at <= now]:
            del self.buckets[key]

    def take(self, key: str, max_requests: int, window_ms: int) -> RateLimitDecision:
        now = self.clock()
        self._prune(now)
        current = self.buckets.get(key)
        if current is None:
            self.buckets[key] = _Bucket(count=1, reset_at=now + window_ms)
            return RateLimitDecision(
                allowed=True,
                retry_after_seconds=math.ceil(window_ms / 1000),
                remaining=max(0, max_requests - 1),
            )

        current.count += 1
        retry_after = max(1, math.ceil((current.reset_at - now) / 1000))
        if current.count > max_requests:
            return RateLimitDecision(allowed=False, retry_after_seconds=retry_after, remaining=0)
        return RateLimitDecision(
            allowed=True,
            retry_after_seconds=retry_after,
            remaining=max(0, max_requests - current.count),
        )


class RateLimiter:
    """HTTP middleware rejecting clients above ``limit`` requests per window."""

    def __init__(self, buckets: RateLimitBuckets, limit: int = 60, window_ms: int = 60_000) -> None:
        self.buckets = buckets
        self.limit = limit
        self.window_ms = window_ms

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        decision = self.buckets.take(ip, self.limit, self.window_ms)
        if not decision.allowed:
            return Response(
                "rate limit exceeded",
                status_code=429,
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )
        return await call_next(request)
