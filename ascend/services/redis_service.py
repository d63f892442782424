"""Redis access for the change feed and rate limiting.

- Pub/Sub: change events published by one Uvicorn worker reach
  WebSocket clients connected to the others
- Sorted sets: sliding window counters for rate limits and room presence

Redis is optional in single-worker deployments: callers check
``is_connected`` and degrade gracefully when it is not.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from ..config import settings

logger = logging.getLogger(__name__)


class RedisService:
    """Shared async Redis client with a pub/sub router and rate limit counters."""

    def __init__(self) -> None:
        self._redis: Optional[aioredis.Redis] = None
        self._pubsub: Optional[PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._handlers: dict[str, list[Callable]] = {}
        self._running = False

    async def connect(self) -> None:
        """Initialize Redis connection with connection pooling."""
        self._redis = aioredis.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            retry_on_timeout=settings.redis_retry_on_timeout,
            decode_responses=True,
        )
        await self._redis.ping()
        logger.info("Redis connected successfully")

    async def disconnect(self) -> None:
        """Close Redis connection and cleanup resources."""
        self._running = False
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        logger.info("Redis disconnected")

    @property
    def client(self) -> aioredis.Redis:
        """Get Redis client instance."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    # =========================================================================
    # Pub/Sub Methods
    # =========================================================================

    async def subscribe(self, channel: str, handler: Callable) -> None:
        """
        Subscribe to a channel with a message handler.

        Args:
            channel: The channel name to subscribe to
            handler: Async function called with the decoded message dict
        """
        if channel not in self._handlers:
            self._handlers[channel] = []
            if self._pubsub:
                await self._pubsub.subscribe(channel)
        self._handlers[channel].append(handler)
        logger.debug(f"Subscribed to channel: {channel}")

    async def publish(self, channel: str, message: dict) -> int:
        """
        Publish a message to a channel.

        Returns:
            Number of subscribers that received the message
        """
        return await self.client.publish(channel, json.dumps(message, default=str))

    async def start_listening(self) -> None:
        """Start the pub/sub listener background task."""
        if self._running and self._listener_task is not None:
            logger.debug("Pub/sub listener already running")
            return

        self._pubsub = self.client.pubsub()
        self._running = True

        for channel in self._handlers.keys():
            await self._pubsub.subscribe(channel)

        self._listener_task = asyncio.create_task(self._listen_loop())
        logger.info("Redis pub/sub listener started")

    async def _listen_loop(self) -> None:
        """Background task to receive and route pub/sub messages."""
        while self._running:
            try:
                if self._pubsub is None:
                    break
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message and message["type"] == "message":
                    channel = message["channel"]
                    data = json.loads(message["data"])

                    for handler in self._handlers.get(channel, []):
                        try:
                            await handler(data)
                        except Exception as e:
                            logger.error(f"Handler error on {channel}: {e}")
            except asyncio.CancelledError:
                break
            except Exception as e:
                if self._running:
                    logger.error(f"Pub/sub listener error: {e}")
                    await asyncio.sleep(1)
                else:
                    break

    # =========================================================================
    # Rate Limiting Methods
    # =========================================================================

    async def sliding_window_hit(
        self,
        key: str,
        limit: int,
        window: int,
    ) -> tuple[bool, int, float]:
        """
        Record a hit in a sliding window backed by a sorted set.

        Requests older than ``window`` seconds are discarded first. When the
        window is already full the hit is not recorded.

        Args:
            key: The rate limit key (e.g. "ratelimit:auth:1.2.3.4")
            limit: Maximum allowed requests in the window
            window: Window size in seconds

        Returns:
            Tuple of (allowed, count_before_this_hit, oldest_hit_timestamp)
        """
        now = time.time()
        await self.client.zremrangebyscore(key, 0, now - window)
        count = await self.client.zcard(key)
        oldest = await self.client.zrange(key, 0, 0, withscores=True)
        oldest_ts = float(oldest[0][1]) if oldest else now

        if count >= limit:
            return False, count, oldest_ts

        await self.client.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        await self.client.expire(key, window * 2)
        return True, count, oldest_ts

    # =========================================================================
    # Presence Methods (Sorted Sets)
    # =========================================================================

    async def presence_set(self, room_id: str, user_id: str, timestamp: float) -> None:
        """Score a user's presence in a room by their last heartbeat."""
        await self.client.zadd(f"presence:{room_id}", {user_id: timestamp})

    async def presence_remove(self, room_id: str, user_id: str) -> None:
        await self.client.zrem(f"presence:{room_id}", user_id)

    async def presence_get_room(self, room_id: str, since: float = 0) -> list[tuple[str, float]]:
        """
        Users in a room with a heartbeat at or after ``since``.

        Returns:
            List of (user_id, last_heartbeat_timestamp)
        """
        return await self.client.zrangebyscore(
            f"presence:{room_id}",
            min=since,
            max="+inf",
            withscores=True,
        )

    async def presence_cleanup(self, room_id: str, cutoff: float) -> int:
        """
        Remove presence entries older than cutoff.

        Returns:
            Number of entries removed
        """
        return await self.client.zremrangebyscore(f"presence:{room_id}", min="-inf", max=cutoff)

    async def scan_keys(self, pattern: str, count: int = 100) -> list[str]:
        """Iterate keys matching pattern with SCAN (does not block Redis like KEYS)."""
        result: list[str] = []
        cursor = 0
        while True:
            cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=count)
            result.extend(keys)
            if cursor == 0:
                break
        return result

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> dict[str, Any]:
        """Get Redis connection status and basic stats."""
        try:
            if not self.is_connected:
                return {"status": "disconnected"}

            info = await self.client.info("memory")
            return {
                "status": "healthy",
                "used_memory_human": info.get("used_memory_human", "unknown"),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}


# Global singleton instance
redis_service = RedisService()


__all__ = [
    "RedisService",
    "redis_service",
]
