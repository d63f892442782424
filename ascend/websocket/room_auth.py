"""Room authorization for WebSocket connections.

Validates that users have access to rooms they attempt to join.

Room ID formats:
- project:{uuid} - Project change feed (creator or project member)
- user:{uuid} - Personal feed (only the user themself)
- task:{uuid} - Task viewers, for presence (anyone who can see the task)

Results for project and task rooms are cached with a TTL so reconnect storms do not
hammer the database. Membership changes invalidate the affected entries.
"""

import asyncio
import logging
import time
from typing import Optional
from uuid import UUID

from ..database import async_session_maker
from ..models.project import Project
from ..models.task import Task
from ..services.permission_service import PermissionService

logger = logging.getLogger(__name__)

# ============================================================================
# Auth Result Caching
# ============================================================================
# (user_id, room_id) -> (result, expires_at)

_auth_cache: dict[tuple[str, str], tuple[bool, float]] = {}
_AUTH_CACHE_TTL = 300
_AUTH_CACHE_MAX_SIZE = 50000
_cache_lock = asyncio.Lock()


def _get_cached_auth(user_id: UUID, room_id: str) -> Optional[bool]:
    """Cached result if present and fresh, else None."""
    cache_key = (str(user_id), room_id)
    cached = _auth_cache.get(cache_key)
    if cached is None:
        return None
    result, expires_at = cached
    if time.time() > expires_at:
        _auth_cache.pop(cache_key, None)
        return None
    return result


async def _set_cached_auth(user_id: UUID, room_id: str, result: bool) -> None:
    if len(_auth_cache) >= _AUTH_CACHE_MAX_SIZE:
        async with _cache_lock:
            # Evict the half closest to expiry
            ordered = sorted(_auth_cache.items(), key=lambda item: item[1][1])
            for key, _ in ordered[: len(ordered) // 2]:
                _auth_cache.pop(key, None)

    _auth_cache[(str(user_id), room_id)] = (result, time.time() + _AUTH_CACHE_TTL)


def invalidate_user_cache(user_id: UUID) -> None:
    """Drop cached results for a user (call on membership changes)."""
    user_id_str = str(user_id)
    for key in [k for k in _auth_cache if k[0] == user_id_str]:
        _auth_cache.pop(key, None)


def invalidate_room_cache(room_id: str) -> None:
    """Drop cached results for a room (call when a project is deleted)."""
    for key in [k for k in _auth_cache if k[1] == room_id]:
        _auth_cache.pop(key, None)


def clear_cache() -> None:
    _auth_cache.clear()


async def check_room_access(user_id: UUID, room_id: str) -> bool:
    """
    Check if a user has access to a specific room.

    Args:
        user_id: The user's UUID
        room_id: The room identifier

    Returns:
        bool: True if user has access, False otherwise
    """
    if not room_id or ":" not in room_id:
        logger.warning(f"[Room Auth] DENIED - invalid room format: {room_id}")
        return False

    room_type, resource_id_str = room_id.split(":", 1)
    try:
        resource_id = UUID(resource_id_str)
    except ValueError:
        logger.warning(f"[Room Auth] DENIED - invalid room ID format: {room_id}")
        return False

    if room_type == "user":
        return resource_id == user_id

    if room_type not in ("project", "task"):
        logger.warning(f"[Room Auth] DENIED - unknown room type: {room_type}")
        return False

    cached = _get_cached_auth(user_id, room_id)
    if cached is not None:
        return cached

    try:
        if room_type == "project":
            result = await _check_project_access(user_id, resource_id)
        else:
            result = await _check_task_access(user_id, resource_id)
    except Exception as e:
        logger.error(f"[Room Auth] ERROR checking room access: {e}")
        return False

    await _set_cached_auth(user_id, room_id, result)
    return result


async def _check_project_access(user_id: UUID, project_id: UUID) -> bool:
    async with async_session_maker() as db:
        project = await db.get(Project, project_id)
        if project is None:
            return False
        return await PermissionService(db).can_view_project(user_id, project)


async def _check_task_access(user_id: UUID, task_id: UUID) -> bool:
    async with async_session_maker() as db:
        task = await db.get(Task, task_id)
        if task is None:
            return False
        return await PermissionService(db).can_view_task(user_id, task)
