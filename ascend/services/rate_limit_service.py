"""Sliding window rate limiting for HTTP endpoints.

Limits are tracked in Redis. When Redis is unavailable or errors, requests
are allowed (fail open) so an outage of the limiter never locks users out.
"""

import logging
import math
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from ..config import settings
from .redis_service import redis_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Number of requests allowed per window (seconds)."""

    requests: int
    window: int


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp when the window frees up


RATE_LIMITS = {
    "auth": RateLimitConfig(settings.rate_limit_auth_requests, settings.rate_limit_auth_window),
    "global": RateLimitConfig(settings.rate_limit_global_requests, settings.rate_limit_global_window),
}


async def check_rate_limit(key: str, config: RateLimitConfig) -> RateLimitResult:
    """
    Check and record a request against a rate limit.

    Args:
        key: Identifier such as "auth:1.2.3.4"
        config: Allowed requests per window

    Returns:
        RateLimitResult: ``success`` is False when the limit is exceeded
    """
    fail_open = RateLimitResult(
        success=True,
        limit=config.requests,
        remaining=config.requests,
        reset=math.ceil(time.time()) + config.window,
    )
    if not redis_service.is_connected:
        return fail_open

    try:
        allowed, count, oldest = await redis_service.sliding_window_hit(
            f"ratelimit:{key}", config.requests, config.window
        )
    except Exception as e:
        logger.error(f"Rate limit check failed for {key}: {e}")
        return fail_open

    reset = math.ceil(oldest + config.window)
    if not allowed:
        logger.warning(f"Rate limit exceeded: key={key}, count={count}, limit={config.requests}")
        return RateLimitResult(success=False, limit=config.requests, remaining=0, reset=reset)

    return RateLimitResult(
        success=True,
        limit=config.requests,
        remaining=config.requests - (count + 1),
        reset=reset,
    )


def rate_limit(name: str):
    """
    Build a FastAPI dependency enforcing the named limit per client IP.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    """
    config = RATE_LIMITS[name]

    async def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        result = await check_rate_limit(f"{name}:{client_ip}", config)
        if not result.success:
            retry_after = max(1, result.reset - math.ceil(time.time()))
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(result.reset),
                },
            )

    return dependency
