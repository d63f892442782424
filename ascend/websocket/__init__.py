"""WebSocket module for the realtime change feed and presence."""

from .handlers import (
    BroadcastResult,
    ChangeEvent,
    broadcast_presence,
    build_change_message,
    get_project_room,
    get_user_room,
    handle_notification,
    handle_presence_disconnect,
    handle_presence_heartbeat,
    handle_presence_leave,
    publish_change,
    route_incoming_message,
    serialize_row,
)
from .manager import (
    ConnectionManager,
    MessageType,
    WebSocketConnection,
    manager,
)
from .presence import HEARTBEAT_INTERVAL, PRESENCE_TTL, PresenceManager, presence_manager
from .room_auth import check_room_access, invalidate_room_cache, invalidate_user_cache

__all__ = [
    # Manager
    "ConnectionManager",
    "MessageType",
    "WebSocketConnection",
    "manager",
    # Handlers
    "BroadcastResult",
    "ChangeEvent",
    "broadcast_presence",
    "build_change_message",
    "get_project_room",
    "get_user_room",
    "handle_notification",
    "handle_presence_disconnect",
    "handle_presence_heartbeat",
    "handle_presence_leave",
    "publish_change",
    "route_incoming_message",
    "serialize_row",
    # Presence
    "HEARTBEAT_INTERVAL",
    "PRESENCE_TTL",
    "PresenceManager",
    "presence_manager",
    # Room authorization
    "check_room_access",
    "invalidate_room_cache",
    "invalidate_user_cache",
]
