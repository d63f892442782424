"""Tests for Redis-backed rate limiting."""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from ascend.services.rate_limit_service import RateLimitConfig, check_rate_limit
from ascend.services.redis_service import redis_service


def fake_redis(count: int, oldest: float | None = None) -> MagicMock:
    client = MagicMock()
    client.zremrangebyscore = AsyncMock()
    client.zcard = AsyncMock(return_value=count)
    client.zrange = AsyncMock(return_value=[("hit", oldest)] if oldest is not None else [])
    client.zadd = AsyncMock()
    client.expire = AsyncMock()
    return client


@pytest.mark.asyncio
class TestSlidingWindow:
    """Tests for RedisService.sliding_window_hit."""

    async def test_hit_recorded_below_limit(self):
        client = fake_redis(count=2, oldest=1000.0)

        with patch.object(redis_service, "_redis", client):
            allowed, count, oldest = await redis_service.sliding_window_hit("ratelimit:k", 5, 60)

        assert (allowed, count, oldest) == (True, 2, 1000.0)
        client.zadd.assert_awaited_once()
        client.expire.assert_awaited_once_with("ratelimit:k", 120)

    async def test_full_window_rejects_without_recording(self):
        client = fake_redis(count=5, oldest=1000.0)

        with patch.object(redis_service, "_redis", client):
            allowed, _, _ = await redis_service.sliding_window_hit("ratelimit:k", 5, 60)

        assert allowed is False
        client.zadd.assert_not_awaited()


@pytest.mark.asyncio
class TestCheckRateLimit:
    """Tests for check_rate_limit."""

    async def test_fails_open_without_redis(self):
        with patch.object(redis_service, "_redis", None):
            result = await check_rate_limit("auth:1.2.3.4", RateLimitConfig(5, 300))

        assert result.success is True
        assert result.remaining == 5

    async def test_fails_open_on_redis_error(self):
        client = fake_redis(count=0)
        client.zcard = AsyncMock(side_effect=ConnectionError("gone"))

        with patch.object(redis_service, "_redis", client):
            result = await check_rate_limit("auth:1.2.3.4", RateLimitConfig(5, 300))

        assert result.success is True

    async def test_remaining_counts_this_hit(self):
        with patch.object(redis_service, "_redis", fake_redis(count=3, oldest=time.time())):
            result = await check_rate_limit("auth:1.2.3.4", RateLimitConfig(5, 300))

        assert result.success is True
        assert result.remaining == 1

    async def test_login_returns_429_when_exhausted(self, client: AsyncClient):
        with patch.object(redis_service, "_redis", fake_redis(count=5, oldest=time.time())):
            response = await client.post(
                "/auth/login", data={"username": "test@example.com", "password": "whatever1A"},
            )

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"
