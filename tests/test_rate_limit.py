import pytest
from unittest.mock import AsyncMock, MagicMock

import redis.asyncio as redis

from crm.core.config import Settings
from crm.services.rate_limit import (
    CounterUnavailableError,
    FixedWindowRateLimiter,
    InMemoryWindowCounter,
    RateLimitPolicy,
    RedisWindowCounter,
    api_policy,
    build_rate_limiter,
    csv_import_policy,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenCounter:
    async def increment(self, key: str, ttl_seconds: int) -> int:
        raise CounterUnavailableError("connection refused")


POLICY = RateLimitPolicy(scope="test", limit=3, window_seconds=60)


@pytest.mark.asyncio
async def test_requests_within_limit_are_allowed():
    clock = FakeClock(600.0)
    limiter = FixedWindowRateLimiter(InMemoryWindowCounter(clock), clock)

    decisions = [await limiter.check(POLICY, "user:a") for _ in range(3)]

    assert all(decision.allowed for decision in decisions)
    assert [decision.remaining for decision in decisions] == [2, 1, 0]
    assert decisions[0].reset_at == 660
    assert decisions[0].headers()["X-RateLimit-Limit"] == "3"


@pytest.mark.asyncio
async def test_request_over_limit_is_rejected_with_retry_after():
    clock = FakeClock(610.0)
    limiter = FixedWindowRateLimiter(InMemoryWindowCounter(clock), clock)
    for _ in range(3):
        await limiter.check(POLICY, "user:a")

    decision = await limiter.check(POLICY, "user:a")

    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.retry_after == 50


@pytest.mark.asyncio
async def test_clients_and_scopes_are_counted_separately():
    clock = FakeClock(600.0)
    limiter = FixedWindowRateLimiter(InMemoryWindowCounter(clock), clock)
    other_scope = RateLimitPolicy(scope="other", limit=1, window_seconds=60)
    for _ in range(3):
        await limiter.check(POLICY, "user:a")

    assert (await limiter.check(POLICY, "user:b")).allowed
    assert (await limiter.check(other_scope, "user:a")).allowed


@pytest.mark.asyncio
async def test_new_window_resets_count():
    clock = FakeClock(600.0)
    counter = InMemoryWindowCounter(clock)
    limiter = FixedWindowRateLimiter(counter, clock)
    for _ in range(4):
        await limiter.check(POLICY, "user:a")

    clock.now = 661.0
    decision = await limiter.check(POLICY, "user:a")

    assert decision.allowed
    assert decision.remaining == 2
    # The previous window's key was evicted.
    assert len(counter) == 1


@pytest.mark.asyncio
async def test_unavailable_counter_fails_open():
    limiter = FixedWindowRateLimiter(BrokenCounter(), FakeClock())

    decision = await limiter.check(POLICY, "user:a")

    assert decision.allowed
    assert decision.remaining == POLICY.limit


@pytest.mark.asyncio
async def test_redis_counter_uses_incr_and_expire():
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[4, True])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    client = MagicMock()
    client.pipeline.return_value = pipe

    count = await RedisWindowCounter(client).increment("ratelimit:api:user:a:10", 900)

    assert count == 4
    pipe.incr.assert_called_once_with("ratelimit:api:user:a:10")
    pipe.expire.assert_called_once_with("ratelimit:api:user:a:10", 900)


@pytest.mark.asyncio
async def test_redis_errors_become_counter_unavailable():
    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=redis.ConnectionError("down"))
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    client = MagicMock()
    client.pipeline.return_value = pipe

    with pytest.raises(CounterUnavailableError):
        await RedisWindowCounter(client).increment("key", 60)


def test_policies_follow_settings():
    settings = Settings(RATE_LIMIT_REQUESTS=5, RATE_LIMIT_IMPORT_REQUESTS=2, RATE_LIMIT_IMPORT_PERIOD=60)

    assert api_policy(settings).limit == 5
    assert api_policy(settings).window_seconds == 900
    assert csv_import_policy(settings).limit == 2
    assert csv_import_policy(settings).window_seconds == 60


@pytest.mark.asyncio
async def test_build_rate_limiter_backends():
    memory = await build_rate_limiter(Settings(RATE_LIMIT_BACKEND="memory"))
    shared = await build_rate_limiter(Settings(RATE_LIMIT_BACKEND="redis"), redis_client=MagicMock())

    assert isinstance(memory.counter, InMemoryWindowCounter)
    assert isinstance(shared.counter, RedisWindowCounter)
