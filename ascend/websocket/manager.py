"""WebSocket connection manager with room-based support and Redis pub/sub.

This module provides WebSocket connection management with:
- Room-based connection grouping for targeted broadcasts
- Redis pub/sub for cross-worker message delivery
- User tracking for direct messaging
- Graceful disconnect handling
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from fastapi import WebSocket

from ..config import settings
from ..services.redis_service import redis_service

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """WebSocket message types."""

    # Connection events
    CONNECTED = "connected"
    ERROR = "error"

    # Room events
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"

    # Row change feed (insert/update/delete on a table)
    DB_CHANGE = "db_change"

    # Notification events
    NOTIFICATION = "notification"

    # Presence: client heartbeat in, viewer list out
    PRESENCE = "presence"
    PRESENCE_UPDATE = "presence_update"

    # Ping/pong for keepalive
    PING = "ping"
    PONG = "pong"


@dataclass
class WebSocketConnection:
    """Represents a WebSocket connection with user context."""

    websocket: WebSocket
    user_id: UUID
    connected_at: datetime = field(default_factory=datetime.utcnow)
    rooms: set[str] = field(default_factory=set)
    # Display fields for presence, loaded on first heartbeat
    profile: Optional[dict[str, Any]] = None

    def __hash__(self) -> int:
        return id(self.websocket)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WebSocketConnection):
            return False
        return id(self.websocket) == id(other.websocket)


class ConnectionManager:
    """
    WebSocket connection manager with room-based support and Redis pub/sub.

    Rooms are named ``project:<uuid>`` and ``user:<uuid>``. With Redis
    connected, broadcasts go through pub/sub so every worker delivers to
    its own local connections; without Redis delivery is local only.
    """

    # Redis pub/sub channels
    _BROADCAST_CHANNEL = "ws:broadcast"
    _USER_CHANNEL = "ws:user"

    def __init__(self) -> None:
        # room_id -> connections
        self._rooms: dict[str, set[WebSocketConnection]] = {}
        # websocket -> connection object
        self._connections: dict[WebSocket, WebSocketConnection] = {}
        # user_id -> connections (for user-targeted messages)
        self._user_connections: dict[UUID, set[WebSocketConnection]] = {}
        self._lock = asyncio.Lock()
        self._redis_initialized = False

    async def initialize_redis(self) -> None:
        """Set up Redis pub/sub handlers for cross-worker messaging."""
        if self._redis_initialized:
            return

        await redis_service.subscribe(self._BROADCAST_CHANNEL, self._handle_redis_broadcast)
        await redis_service.subscribe(self._USER_CHANNEL, self._handle_redis_user_message)
        self._redis_initialized = True
        logger.info("ConnectionManager Redis pub/sub initialized")

    async def _handle_redis_broadcast(self, data: dict) -> None:
        """Deliver a room broadcast published by any worker to local connections."""
        room_id = data.get("room_id")
        message = data.get("message")
        if not room_id or not message:
            return
        await self._send_many(self._rooms.get(room_id, set()).copy(), message)

    async def _handle_redis_user_message(self, data: dict) -> None:
        """Deliver a user-targeted message published by any worker."""
        message = data.get("message")
        try:
            user_id = UUID(data.get("user_id") or "")
        except ValueError:
            return
        if not message:
            return
        await self._send_many(self._user_connections.get(user_id, set()).copy(), message)

    @property
    def total_connections(self) -> int:
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        return len(self._rooms)

    def get_room_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, set()))

    def get_user_connections_count(self, user_id: UUID) -> int:
        return len(self._user_connections.get(user_id, set()))

    async def connect(
        self,
        websocket: WebSocket,
        user_id: UUID,
    ) -> Optional[WebSocketConnection]:
        """
        Accept a WebSocket connection and register it.

        The connection joins its own ``user:<id>`` room right away.

        Returns:
            WebSocketConnection: The connection wrapper object, or None if rejected
        """
        current_connections = len(self._user_connections.get(user_id, set()))
        if current_connections >= settings.ws_max_connections_per_user:
            logger.warning(
                f"Connection limit reached for user {user_id}: "
                f"{current_connections}/{settings.ws_max_connections_per_user}"
            )
            await websocket.close(code=4029, reason="Too many connections")
            return None

        await websocket.accept()

        connection = WebSocketConnection(websocket=websocket, user_id=user_id)
        user_room = f"user:{user_id}"

        async with self._lock:
            self._connections[websocket] = connection
            self._user_connections.setdefault(user_id, set()).add(connection)
            self._rooms.setdefault(user_room, set()).add(connection)
            connection.rooms.add(user_room)

        logger.info(
            f"WebSocket connected: user={user_id}, "
            f"total_connections={self.total_connections}"
        )

        await self.send_personal(
            connection,
            {
                "type": MessageType.CONNECTED.value,
                "data": {
                    "user_id": str(user_id),
                    "connected_at": connection.connected_at.isoformat(),
                    "rooms": sorted(connection.rooms),
                },
            },
        )
        return connection

    async def disconnect(self, websocket: WebSocket) -> None:
        """Disconnect a WebSocket and clean up all associated resources."""
        async with self._lock:
            connection = self._connections.pop(websocket, None)
            if connection is None:
                return

            user_conns = self._user_connections.get(connection.user_id)
            if user_conns is not None:
                user_conns.discard(connection)
                if not user_conns:
                    del self._user_connections[connection.user_id]

            for room_id in list(connection.rooms):
                members = self._rooms.get(room_id)
                if members is not None:
                    members.discard(connection)
                    if not members:
                        del self._rooms[room_id]

        logger.info(
            f"WebSocket disconnected: user={connection.user_id}, "
            f"total_connections={self.total_connections}"
        )

    async def join_room(self, connection: WebSocketConnection, room_id: str) -> None:
        """Add a connection to a room and confirm to the client."""
        async with self._lock:
            self._rooms.setdefault(room_id, set()).add(connection)
            connection.rooms.add(room_id)

        logger.debug(f"User {connection.user_id} joined room {room_id}")
        await self.send_personal(
            connection,
            {
                "type": MessageType.ROOM_JOINED.value,
                "data": {"room_id": room_id, "user_count": self.get_room_count(room_id)},
            },
        )

    async def leave_room(self, connection: WebSocketConnection, room_id: str) -> None:
        """Remove a connection from a room and confirm to the client."""
        async with self._lock:
            members = self._rooms.get(room_id)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room_id]
            connection.rooms.discard(room_id)

        logger.debug(f"User {connection.user_id} left room {room_id}")
        await self.send_personal(
            connection,
            {"type": MessageType.ROOM_LEFT.value, "data": {"room_id": room_id}},
        )

    async def send_personal(
        self,
        connection: WebSocketConnection,
        message: dict[str, Any],
    ) -> bool:
        """
        Send a message to a specific connection.

        Returns:
            bool: True if sent successfully, False otherwise
        """
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send failed for user {connection.user_id}: {e}")
            return False

    async def _send_many(self, connections: set[WebSocketConnection], message: dict[str, Any]) -> int:
        if not connections:
            return 0
        results = await asyncio.gather(
            *(self.send_personal(conn, message) for conn in connections),
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)

    async def broadcast_to_room(
        self,
        room_id: str,
        message: dict[str, Any],
    ) -> int:
        """
        Broadcast a message to all connections in a room (across all workers).

        Returns:
            int: Number of local connections in the room (or successful local sends
            when Redis is not connected)
        """
        if redis_service.is_connected:
            try:
                await redis_service.publish(
                    self._BROADCAST_CHANNEL,
                    {"room_id": room_id, "message": message},
                )
                return len(self._rooms.get(room_id, []))
            except Exception as e:
                logger.warning(f"Redis publish failed, delivering locally: {e}")

        sent = await self._send_many(self._rooms.get(room_id, set()).copy(), message)
        logger.debug(f"Broadcast to room {room_id}: {sent} successful")
        return sent

    async def broadcast_to_user(
        self,
        user_id: UUID,
        message: dict[str, Any],
    ) -> int:
        """Broadcast a message to every connection of one user (across all workers)."""
        if redis_service.is_connected:
            try:
                await redis_service.publish(
                    self._USER_CHANNEL,
                    {"user_id": str(user_id), "message": message},
                )
                return len(self._user_connections.get(user_id, []))
            except Exception as e:
                logger.warning(f"Redis publish failed, delivering locally: {e}")

        return await self._send_many(self._user_connections.get(user_id, set()).copy(), message)

    async def handle_message(
        self,
        connection: WebSocketConnection,
        data: dict[str, Any],
    ) -> None:
        """Handle ping, join_room and leave_room messages."""
        message_type = data.get("type")
        payload = data.get("data")
        if not isinstance(payload, dict):
            payload = {}

        if message_type == MessageType.PING.value:
            await self.send_personal(connection, {"type": MessageType.PONG.value, "data": {}})

        elif message_type == MessageType.JOIN_ROOM.value:
            room_id = payload.get("room_id")
            if room_id:
                await self.join_room(connection, room_id)

        elif message_type == MessageType.LEAVE_ROOM.value:
            room_id = payload.get("room_id")
            if room_id:
                await self.leave_room(connection, room_id)

        elif message_type == MessageType.PONG.value:
            pass

        else:
            logger.debug(f"Unhandled message type: {message_type} from user {connection.user_id}")

    def get_room_users(self, room_id: str) -> list[UUID]:
        """Unique user IDs with a connection in the room."""
        return list({conn.user_id for conn in self._rooms.get(room_id, set())})


# Global singleton instance
manager = ConnectionManager()
