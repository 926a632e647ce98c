"""Fixed-window request counting per client identifier.

The limiter itself holds no counts; it asks an injected :class:`WindowCounter`
to increment a key that embeds the window index. Redis backs the counter in
production, an in-process dict in development and tests.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

from crm.core.config import Settings
from crm.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

Clock = Callable[[], float]


class CounterUnavailableError(RuntimeError):
    """The backing store could not be reached."""


class WindowCounter(Protocol):
    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and return the new count; the key expires after ``ttl_seconds``."""


class InMemoryWindowCounter:
    """Process-local counter; expired windows are evicted on every call."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}

    async def increment(self, key: str, ttl_seconds: int) -> int:
        now = self._clock()
        self._evict(now)
        count, expires_at = self._entries.get(key, (0, now + ttl_seconds))
        count += 1
        self._entries[key] = (count, expires_at)
        return count

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class RedisWindowCounter:
    """Counter shared by every worker through Redis INCR + EXPIRE."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def increment(self, key: str, ttl_seconds: int) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl_seconds)
                results = await pipe.execute()
        except redis.RedisError as e:
            raise CounterUnavailableError(str(e)) from e
        return int(results[0])


@dataclass(frozen=True)
class RateLimitPolicy:
    scope: str
    limit: int
    window_seconds: int
    message: str = "Too many requests. Please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class FixedWindowRateLimiter:
    def __init__(self, counter: WindowCounter, clock: Clock = time.time) -> None:
        self.counter = counter
        self._clock = clock

    async def check(self, policy: RateLimitPolicy, identifier: str) -> RateLimitDecision:
        now = self._clock()
        window = int(now // policy.window_seconds)
        reset_at = (window + 1) * policy.window_seconds
        retry_after = max(1, math.ceil(reset_at - now))
        key = f"ratelimit:{policy.scope}:{identifier}:{window}"

        try:
            count = await self.counter.increment(key, policy.window_seconds)
        except CounterUnavailableError as e:
            # Fail open when the store is down.
            logger.error("rate_limit.counter_unavailable", scope=policy.scope, error=str(e))
            return RateLimitDecision(
                allowed=True,
                limit=policy.limit,
                remaining=policy.limit,
                reset_at=reset_at,
                retry_after=retry_after,
            )

        allowed = count <= policy.limit
        if not allowed:
            logger.warning(
                "rate_limit.exceeded",
                scope=policy.scope,
                client_id=identifier[:50],
                count=count,
                retry_after=retry_after,
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_at=reset_at,
            retry_after=retry_after,
        )


def api_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        scope="api",
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_period,
        message="Too many API requests. Please try again later.",
    )


def csv_import_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        scope="csv_import",
        limit=settings.rate_limit_import_requests,
        window_seconds=settings.rate_limit_import_period,
        message="Too many CSV import attempts. Please try again later.",
    )


async def build_rate_limiter(settings: Settings, redis_client: Optional[redis.Redis] = None) -> FixedWindowRateLimiter:
    if settings.rate_limit_backend == "redis":
        if redis_client is None:
            from crm.services.redis import get_redis_client

            redis_client = await get_redis_client()
        return FixedWindowRateLimiter(RedisWindowCounter(redis_client))
    return FixedWindowRateLimiter(InMemoryWindowCounter())
