"""Change-feed publishing and incoming message routing.

Every committed mutation is announced as a ``db_change`` message::

    {
        "type": "db_change",
        "data": {
            "table": "tasks",
            "event": "UPDATE",
            "new": {...},          # row after the change (None for DELETE)
            "old": {...},          # row before the change (None for INSERT)
            "project_id": "...",   # None for personal rows
            "timestamp": "...",
        },
    }

Project-scoped rows go to ``project:<id>``; personal rows (standalone
tasks, notifications, time entries) go to ``user:<id>`` rooms.

Viewers of a project or task send ``presence`` heartbeats; the room gets a
``presence_update`` with the current viewer list after each change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect

from .manager import ConnectionManager, MessageType, WebSocketConnection, manager
from .presence import PresenceManager, is_presence_room, load_profile, presence_manager

logger = logging.getLogger(__name__)

RoomAuthorizer = Callable[[UUID, str], Awaitable[bool]]

# Columns never sent over the wire
_PRIVATE_COLUMNS = {"password_hash"}


class ChangeEvent(str, Enum):
    """Kind of row change."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class BroadcastResult:
    """Result of a broadcast operation."""

    rooms: list[str]
    recipients: int
    message_type: str


def get_project_room(project_id: UUID | str) -> str:
    """Room ID for a project: 'project:{uuid}'."""
    return f"project:{project_id}"


def get_user_room(user_id: UUID | str) -> str:
    """Room ID for a user's personal feed: 'user:{uuid}'."""
    return f"user:{user_id}"


def serialize_row(row: Any) -> Optional[dict[str, Any]]:
    """
    Convert an ORM row (or dict) to a JSON-safe dict of its columns.

    Returns None for None so callers can pass missing old/new rows through.
    """
    if row is None:
        return None
    if isinstance(row, dict):
        data = dict(row)
    else:
        data = {
            attr.key: getattr(row, attr.key)
            for attr in inspect(row).mapper.column_attrs
        }
    for column in _PRIVATE_COLUMNS:
        data.pop(column, None)
    return jsonable_encoder(data)


def build_change_message(
    table: str,
    event: ChangeEvent,
    new: Any = None,
    old: Any = None,
    project_id: Optional[UUID | str] = None,
) -> dict[str, Any]:
    return {
        "type": MessageType.DB_CHANGE.value,
        "data": {
            "table": table,
            "event": event.value,
            "new": serialize_row(new),
            "old": serialize_row(old),
            "project_id": str(project_id) if project_id else None,
            "timestamp": datetime.utcnow().isoformat(),
        },
    }


async def publish_change(
    table: str,
    event: ChangeEvent,
    *,
    new: Any = None,
    old: Any = None,
    project_id: Optional[UUID | str] = None,
    user_ids: Iterable[Optional[UUID]] = (),
    connection_manager: Optional[ConnectionManager] = None,
) -> BroadcastResult:
    """
    Announce a row change to the project room and/or personal rooms.

    Args:
        table: Table name, e.g. "tasks"
        event: INSERT, UPDATE or DELETE
        new: Row after the change
        old: Row before the change (a snapshot dict works)
        project_id: Project whose room receives the event
        user_ids: Users whose personal rooms receive the event (None entries ignored)
        connection_manager: Optional custom manager (defaults to global)

    Returns:
        BroadcastResult: rooms targeted and local recipients
    """
    mgr = connection_manager or manager
    message = build_change_message(table, event, new=new, old=old, project_id=project_id)

    rooms: list[str] = []
    if project_id:
        rooms.append(get_project_room(project_id))
    for user_id in user_ids:
        if user_id is not None:
            room = get_user_room(user_id)
            if room not in rooms:
                rooms.append(room)

    recipients = 0
    for room_id in rooms:
        recipients += await mgr.broadcast_to_room(room_id, message)

    logger.debug(f"Change published: {table} {event.value} rooms={rooms} recipients={recipients}")
    return BroadcastResult(rooms=rooms, recipients=recipients, message_type=MessageType.DB_CHANGE.value)


async def handle_notification(
    notification: Any,
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """
    Push a new notification to its recipient's personal room.

    Sends a ``notification`` message for immediate display and a
    ``db_change`` INSERT so cached notification lists refresh.

    Returns:
        int: Number of local connections that received the notification
    """
    mgr = connection_manager or manager
    payload = serialize_row(notification)
    user_id = payload["user_id"]

    recipients = await mgr.broadcast_to_user(
        UUID(str(user_id)),
        {"type": MessageType.NOTIFICATION.value, "data": payload},
    )
    await publish_change(
        "notifications",
        ChangeEvent.INSERT,
        new=payload,
        user_ids=[UUID(str(user_id))],
        connection_manager=mgr,
    )

    logger.info(
        f"Notification sent: user_id={user_id}, type={payload.get('type')}, "
        f"recipients={recipients}"
    )
    return recipients


# =============================================================================
# Presence (ephemeral, not stored in the database)
# =============================================================================


async def broadcast_presence(
    room_id: str,
    connection_manager: Optional[ConnectionManager] = None,
    presence: Optional[PresenceManager] = None,
) -> BroadcastResult:
    """Send the current viewer list of a room to everyone in it."""
    mgr = connection_manager or manager
    pm = presence or presence_manager

    users = await pm.get_presence(room_id)
    recipients = await mgr.broadcast_to_room(
        room_id,
        {
            "type": MessageType.PRESENCE_UPDATE.value,
            "data": {"room_id": room_id, "users": users},
        },
    )
    return BroadcastResult(
        rooms=[room_id],
        recipients=recipients,
        message_type=MessageType.PRESENCE_UPDATE.value,
    )


async def handle_presence_heartbeat(
    connection: WebSocketConnection,
    room_id: str,
    connection_manager: Optional[ConnectionManager] = None,
    presence: Optional[PresenceManager] = None,
) -> BroadcastResult:
    """
    Refresh a viewer and push the new list to the room.

    The connection joins the room first if it has not already, so the
    sender receives the update too. The viewer's profile is loaded once
    per connection.
    """
    mgr = connection_manager or manager
    pm = presence or presence_manager

    if room_id not in connection.rooms:
        await mgr.join_room(connection, room_id)

    if connection.profile is None:
        try:
            connection.profile = await load_profile(connection.user_id)
        except Exception as e:
            logger.error(f"Presence profile lookup failed for user {connection.user_id}: {e}")
            return BroadcastResult(rooms=[], recipients=0, message_type=MessageType.PRESENCE_UPDATE.value)

    await pm.heartbeat(room_id, str(connection.user_id), **connection.profile)
    return await broadcast_presence(room_id, mgr, pm)


async def handle_presence_leave(
    user_id: UUID,
    room_id: str,
    connection_manager: Optional[ConnectionManager] = None,
    presence: Optional[PresenceManager] = None,
) -> bool:
    """
    Drop a viewer after a leave_room, unless another of their tabs is
    still in the room.

    Returns:
        bool: True if the viewer was removed
    """
    mgr = connection_manager or manager
    pm = presence or presence_manager

    if user_id in mgr.get_room_users(room_id):
        return False
    await pm.leave(room_id, str(user_id))
    await broadcast_presence(room_id, mgr, pm)
    return True


async def handle_presence_disconnect(
    connection: WebSocketConnection,
    connection_manager: Optional[ConnectionManager] = None,
    presence: Optional[PresenceManager] = None,
) -> list[str]:
    """
    Clean up presence after a connection closed.

    When it was the user's last connection on this worker the user leaves
    every room; otherwise only the rooms no other tab is still in.

    Returns:
        Room IDs the user was removed from
    """
    mgr = connection_manager or manager
    pm = presence or presence_manager

    if mgr.get_user_connections_count(connection.user_id) > 0:
        return [
            room_id
            for room_id in sorted(connection.rooms)
            if is_presence_room(room_id)
            and await handle_presence_leave(connection.user_id, room_id, mgr, pm)
        ]

    rooms_left = await pm.leave_all(str(connection.user_id))
    for room_id in rooms_left:
        await broadcast_presence(room_id, mgr, pm)
    return rooms_left


# =============================================================================
# Incoming messages
# =============================================================================


def _room_id_of(data: dict[str, Any]) -> Optional[str]:
    payload = data.get("data")
    if not isinstance(payload, dict):
        return None
    room_id = payload.get("room_id")
    return room_id if isinstance(room_id, str) and room_id else None


async def _send_error(
    mgr: ConnectionManager,
    connection: WebSocketConnection,
    error: str,
    message: str,
) -> None:
    await mgr.send_personal(
        connection,
        {"type": MessageType.ERROR.value, "data": {"error": error, "message": message}},
    )


async def route_incoming_message(
    connection: WebSocketConnection,
    data: Any,
    connection_manager: Optional[ConnectionManager] = None,
    room_authorizer: Optional[RoomAuthorizer] = None,
    presence: Optional[PresenceManager] = None,
) -> None:
    """
    Route incoming WebSocket messages.

    Join and presence requests are checked with ``room_authorizer`` before
    anything else sees them; denied requests get an UNAUTHORIZED error.
    Messages that are not JSON objects get an INVALID_MESSAGE error.

    Args:
        connection: The connection that sent the message
        data: The decoded message
        connection_manager: Optional custom manager (defaults to global)
        room_authorizer: Optional async callable(user_id, room_id) -> bool
        presence: Optional custom presence manager (defaults to global)
    """
    mgr = connection_manager or manager

    if not isinstance(data, dict):
        logger.warning(f"Ignoring non-object message from user {connection.user_id}")
        await _send_error(mgr, connection, "INVALID_MESSAGE", "Message must be a JSON object")
        return

    message_type = data.get("type")
    room_id = _room_id_of(data)

    logger.debug(f"Routing message: user={connection.user_id}, type={message_type}")

    if message_type in (MessageType.JOIN_ROOM.value, MessageType.PRESENCE.value):
        if room_id and room_authorizer and not await room_authorizer(connection.user_id, room_id):
            logger.warning(f"Room access denied: user={connection.user_id}, room={room_id}")
            await _send_error(mgr, connection, "UNAUTHORIZED", f"Access denied to room: {room_id}")
            return

    if message_type == MessageType.PRESENCE.value:
        if room_id is None or not is_presence_room(room_id):
            await _send_error(
                mgr, connection, "INVALID_ROOM", "Presence is tracked for project and task rooms only",
            )
            return
        await handle_presence_heartbeat(connection, room_id, mgr, presence)
        return

    await mgr.handle_message(connection, data)

    if message_type == MessageType.LEAVE_ROOM.value and room_id and is_presence_room(room_id):
        await handle_presence_leave(connection.user_id, room_id, mgr, presence)
