from __future__ import annotations

from typing import Callable

from fastapi import Request, Response

from crm.core.config import Settings, settings
from crm.core.exceptions import RateLimitError
from crm.services.rate_limit import FixedWindowRateLimiter, RateLimitPolicy, api_policy, csv_import_policy


def get_client_id(request: Request) -> str:
    """Get unique client identifier."""
    user_id = request.headers.get(settings.user_id_header)
    if user_id and user_id.strip():
        return f"user:{user_id.strip()}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Use the first IP in X-Forwarded-For
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return f"ip:{real_ip.strip()}"

    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimit:
    """Route dependency enforcing one rate limit policy per client."""

    def __init__(self, policy_factory: Callable[[Settings], RateLimitPolicy]) -> None:
        self.policy_factory = policy_factory

    async def __call__(self, request: Request, response: Response) -> None:
        if not settings.rate_limit_enabled:
            return

        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        policy = self.policy_factory(settings)
        decision = await limiter.check(policy, get_client_id(request))

        if not decision.allowed:
            raise RateLimitError(
                message=policy.message,
                code="rate_limited",
                retry_after=decision.retry_after,
                details={
                    "limit": decision.limit,
                    "period": policy.window_seconds,
                    "retry_after": decision.retry_after,
                },
                headers={**decision.headers(), "Retry-After": str(decision.retry_after)},
            )

        response.headers.update(decision.headers())


api_rate_limit = RateLimit(api_policy)
csv_import_rate_limit = RateLimit(csv_import_policy)
