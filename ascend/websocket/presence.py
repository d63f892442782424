"""Presence tracking: who is viewing a project or task right now.

Clients send a ``presence`` heartbeat for ``project:<id>`` or ``task:<id>``
every HEARTBEAT_INTERVAL seconds while the page is open. A viewer drops out
once their last heartbeat is older than PRESENCE_TTL, when they leave the
room, or when their last connection closes.

With Redis connected the state is shared across Uvicorn workers:
- sorted set ``presence:<room>``: user_id scored by last heartbeat
- hash ``presence_data:<room>``: user_id -> JSON profile
- set ``user_rooms:<user>``: reverse index for leave_all

Without Redis the same state lives in process memory.

Stale Redis entries are swept by the ARQ worker (see ascend/worker.py).
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from ..database import async_session_maker
from ..models.user import User
from ..services.redis_service import redis_service

logger = logging.getLogger(__name__)

# A viewer is stale after missing one heartbeat plus jitter
PRESENCE_TTL = 30
HEARTBEAT_INTERVAL = 15

PRESENCE_ROOM_TYPES = ("project", "task")


@dataclass
class UserPresence:
    """One viewer of a room."""

    user_id: str
    display_name: str
    avatar_url: Optional[str] = None
    email: Optional[str] = None
    last_active: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "email": self.email,
            "last_active": datetime.utcfromtimestamp(self.last_active).isoformat(),
        }


def is_presence_room(room_id: str) -> bool:
    return ":" in room_id and room_id.split(":", 1)[0] in PRESENCE_ROOM_TYPES


def sort_viewers(users: list[dict[str, Any]], current_user_id: Optional[str] = None) -> list[dict[str, Any]]:
    """Current user first, then by display name."""
    return sorted(
        users,
        key=lambda u: (u["user_id"] != current_user_id, (u.get("display_name") or "").lower()),
    )


async def load_profile(user_id: UUID) -> dict[str, Optional[str]]:
    """Display fields for a viewer; falls back to the email when no name is set."""
    async with async_session_maker() as db:
        user = await db.get(User, user_id)
    if user is None:
        return {"display_name": "Unknown", "avatar_url": None, "email": None}
    return {
        "display_name": user.display_name or user.email,
        "avatar_url": user.avatar_url,
        "email": user.email,
    }


class PresenceManager:
    """
    Redis-backed presence with an in-memory fallback.

    One entry per user per room: several tabs of the same user refresh the
    same entry.
    """

    _PRESENCE_PREFIX = "presence:"
    _USER_DATA_PREFIX = "presence_data:"
    _USER_ROOMS_PREFIX = "user_rooms:"

    def __init__(self) -> None:
        # room_id -> user_id -> presence
        self._local_presence: dict[str, dict[str, UserPresence]] = {}
        self._local_user_rooms: dict[str, set[str]] = {}
        # Created lazily so the module can be imported outside a loop
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def clear(self) -> None:
        self._local_presence.clear()
        self._local_user_rooms.clear()
        self._lock = None

    async def heartbeat(
        self,
        room_id: str,
        user_id: str,
        display_name: str,
        avatar_url: Optional[str] = None,
        email: Optional[str] = None,
    ) -> None:
        """Record that a user is viewing a room now."""
        now = time.time()

        if redis_service.is_connected:
            try:
                await redis_service.presence_set(room_id, user_id, now)
                await redis_service.client.hset(
                    f"{self._USER_DATA_PREFIX}{room_id}",
                    user_id,
                    json.dumps({"display_name": display_name, "avatar_url": avatar_url, "email": email}),
                )
                await redis_service.client.sadd(f"{self._USER_ROOMS_PREFIX}{user_id}", room_id)
                return
            except Exception as e:
                logger.error(f"Redis heartbeat error, using local presence: {e}")

        async with self._get_lock():
            self._local_presence.setdefault(room_id, {})[user_id] = UserPresence(
                user_id=user_id,
                display_name=display_name,
                avatar_url=avatar_url,
                email=email,
                last_active=now,
            )
            self._local_user_rooms.setdefault(user_id, set()).add(room_id)

    async def leave(self, room_id: str, user_id: str) -> None:
        """Remove a user from one room."""
        if redis_service.is_connected:
            try:
                await redis_service.presence_remove(room_id, user_id)
                await redis_service.client.hdel(f"{self._USER_DATA_PREFIX}{room_id}", user_id)
                await redis_service.client.srem(f"{self._USER_ROOMS_PREFIX}{user_id}", room_id)
            except Exception as e:
                logger.error(f"Redis leave error: {e}")

        async with self._get_lock():
            users = self._local_presence.get(room_id)
            if users is not None:
                users.pop(user_id, None)
                if not users:
                    del self._local_presence[room_id]
            rooms = self._local_user_rooms.get(user_id)
            if rooms is not None:
                rooms.discard(room_id)
                if not rooms:
                    del self._local_user_rooms[user_id]

    async def leave_all(self, user_id: str) -> list[str]:
        """
        Remove a user from every room.

        Returns:
            Room IDs the user was removed from
        """
        rooms_left: set[str] = set()

        if redis_service.is_connected:
            try:
                room_ids = await redis_service.client.smembers(f"{self._USER_ROOMS_PREFIX}{user_id}")
                if room_ids:
                    pipe = redis_service.client.pipeline(transaction=False)
                    for room_id in room_ids:
                        pipe.zrem(f"{self._PRESENCE_PREFIX}{room_id}", user_id)
                        pipe.hdel(f"{self._USER_DATA_PREFIX}{room_id}", user_id)
                    pipe.delete(f"{self._USER_ROOMS_PREFIX}{user_id}")
                    await pipe.execute()
                    rooms_left.update(room_ids)
            except Exception as e:
                logger.error(f"Redis leave_all error: {e}")

        async with self._get_lock():
            for room_id in self._local_user_rooms.pop(user_id, set()):
                users = self._local_presence.get(room_id)
                if users is not None and users.pop(user_id, None) is not None:
                    rooms_left.add(room_id)
                    if not users:
                        del self._local_presence[room_id]

        return sorted(rooms_left)

    async def get_presence(self, room_id: str) -> list[dict[str, Any]]:
        """
        Active viewers of a room, sorted by display name.

        Entries older than PRESENCE_TTL are left out.
        """
        cutoff = time.time() - PRESENCE_TTL

        if redis_service.is_connected:
            try:
                entries = await redis_service.presence_get_room(room_id, cutoff)
                if not entries:
                    return []
                user_ids = [user_id for user_id, _ in entries]
                values = await redis_service.client.hmget(f"{self._USER_DATA_PREFIX}{room_id}", *user_ids)
                viewers = []
                for (user_id, score), raw in zip(entries, values):
                    profile = json.loads(raw) if raw else {}
                    viewers.append(
                        UserPresence(
                            user_id=user_id,
                            display_name=profile.get("display_name") or "Unknown",
                            avatar_url=profile.get("avatar_url"),
                            email=profile.get("email"),
                            last_active=score,
                        ).to_dict()
                    )
                return sort_viewers(viewers)
            except Exception as e:
                logger.error(f"Redis get_presence error: {e}")
                return []

        async with self._get_lock():
            users = self._local_presence.get(room_id, {})
            return sort_viewers([p.to_dict() for p in users.values() if p.last_active > cutoff])

    async def is_present(self, room_id: str, user_id: str) -> bool:
        viewers = await self.get_presence(room_id)
        return any(v["user_id"] == user_id for v in viewers)


# Global singleton instance
presence_manager = PresenceManager()


__all__ = [
    "HEARTBEAT_INTERVAL",
    "PRESENCE_TTL",
    "PresenceManager",
    "UserPresence",
    "is_presence_room",
    "load_profile",
    "presence_manager",
    "sort_viewers",
]
