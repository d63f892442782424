"""
Realtime cache sync.

Consumes ``db_change`` events from the server WebSocket and keeps a
``QueryCache`` in step with them:

- tasks and comments: INSERT replaces a cached row with the same id (the
  optimistic copy, keeping its joined project or author) or invalidates
  the list; UPDATE shallow-merges by id; DELETE filters the row out.
- notifications, time entries, notes, documents, members and projects:
  invalidate the affected keys.
- any event carrying a project id also invalidates that project's
  activity feed.

Events are applied in arrival order; the last one received wins.

``presence_update`` messages keep the viewer list of each project or task
room in ``RealtimeSync.presence``.
"""

import asyncio
import json
import logging
from typing import Any, Iterable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from .query_cache import (
    QueryCache,
    QueryKey,
    activity_keys,
    comment_keys,
    notification_keys,
    project_keys,
    task_keys,
    time_entry_keys,
)

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 2.0  # seconds, doubled per failed attempt
MAX_RECONNECT_DELAY = 30.0
HEARTBEAT_INTERVAL = 15.0  # presence heartbeat per viewed room


def _merge_by_id(rows: Optional[list[dict]], record: dict) -> Optional[list[dict]]:
    if rows is None:
        return rows
    return [{**row, **record} if row.get("id") == record.get("id") else row for row in rows]


def _without_id(rows: Optional[list[dict]], row_id: Any) -> Optional[list[dict]]:
    if rows is None:
        return rows
    return [row for row in rows if row.get("id") != row_id]


class RealtimeSync:
    """Applies server change events to a query cache for one user."""

    def __init__(self, cache: QueryCache, user_id: str):
        self.cache = cache
        self.user_id = str(user_id)
        # room_id -> viewers, current user first
        self.presence: dict[str, list[dict[str, Any]]] = {}

    def apply(self, message: dict[str, Any]) -> None:
        """Apply one WebSocket message. Other message types are ignored."""
        data = message.get("data")
        if not isinstance(data, dict):
            return
        if message.get("type") == "presence_update":
            self._apply_presence(data)
            return
        if message.get("type") != "db_change":
            return
        table = data.get("table")
        event = data.get("event")
        new = data.get("new") or {}
        old = data.get("old") or {}
        project_id = data.get("project_id")

        logger.debug(f"Realtime {table} {event} id={new.get('id') or old.get('id')}")

        if table == "tasks":
            self._apply_task(event, new, old)
        elif table == "comments":
            row = new or old
            if row.get("task_id"):
                self._apply_to_list(comment_keys.task_comments(row["task_id"]), event, new, old, "author")
            if row.get("project_id"):
                self._apply_to_list(comment_keys.project_comments(row["project_id"]), event, new, old, "author")
        elif table == "notifications":
            self.cache.invalidate(notification_keys.list(self.user_id))
            self.cache.invalidate(notification_keys.unread_count(self.user_id))
        elif table == "time_entries":
            row = new or old
            self.cache.invalidate(time_entry_keys.active_timer(self.user_id))
            if row.get("entity_type") and row.get("entity_id"):
                self.cache.invalidate(time_entry_keys.list(row["entity_type"], row["entity_id"]))
                self.cache.invalidate(time_entry_keys.total_time(row["entity_type"], row["entity_id"]))
        elif table in ("notes", "note_tasks") and project_id:
            self.cache.invalidate(project_keys.notes(project_id))
        elif table == "project_documents" and project_id:
            self.cache.invalidate(project_keys.documents(project_id))
        elif table == "project_members" and project_id:
            self.cache.invalidate(project_keys.members(project_id))
        elif table == "projects":
            self.cache.invalidate(project_keys.lists())
            if project_id:
                self.cache.invalidate(project_keys.detail(project_id))

        if project_id:
            self.cache.invalidate(activity_keys.project_activity(project_id))

    def _apply_to_list(self, list_key: QueryKey, event: str, new: dict, old: dict, joined: str) -> None:
        """Patch one cached list; ``joined`` names the field the server row lacks."""
        if event == "INSERT":
            cached = self.cache.get(list_key)
            if cached is not None and any(row.get("id") == new.get("id") for row in cached):
                # Server copy of an optimistic insert
                self.cache.set_query_data(
                    list_key,
                    lambda rows: [
                        {**new, joined: row.get(joined)} if row.get("id") == new.get("id") else row
                        for row in rows
                    ],
                )
            else:
                self.cache.invalidate(list_key)
        elif event == "UPDATE":
            self.cache.set_query_data(list_key, lambda rows: _merge_by_id(rows, new))
        elif event == "DELETE":
            deleted_id = old.get("id")
            self.cache.set_query_data(list_key, lambda rows: _without_id(rows, deleted_id))

    def _apply_task(self, event: str, new: dict, old: dict) -> None:
        self._apply_to_list(task_keys.list(self.user_id), event, new, old, "project")

        if event == "UPDATE" and new.get("id") and task_keys.detail(new["id"]) in self.cache:
            self.cache.set_query_data(
                task_keys.detail(new["id"]),
                lambda row: {**row, **new} if row else row,
            )
        elif event == "DELETE" and old.get("id"):
            self.cache.remove(task_keys.detail(old["id"]))

    def _apply_presence(self, data: dict[str, Any]) -> None:
        room_id = data.get("room_id")
        users = data.get("users")
        if not room_id or not isinstance(users, list):
            return
        self.presence[room_id] = sorted(
            users,
            key=lambda u: (u.get("user_id") != self.user_id, (u.get("display_name") or "").lower()),
        )

    def viewers(self, room_id: str) -> list[dict[str, Any]]:
        """Who else is looking at a project or task room, as last reported."""
        return [u for u in self.presence.get(room_id, []) if u.get("user_id") != self.user_id]

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def handle_raw(self, websocket: Any, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON realtime message")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring realtime message that is not an object: {type(message).__name__}")
            return

        if message.get("type") == "ping":
            await websocket.send(json.dumps({"type": "pong", "data": {}}))
        elif message.get("type") == "error":
            logger.warning(f"Realtime error from server: {message.get('data')}")
        else:
            self.apply(message)

    @staticmethod
    async def _close_on_stop(websocket: Any, stop: asyncio.Event) -> None:
        await stop.wait()
        await websocket.close()

    @staticmethod
    async def _send_heartbeats(websocket: Any, rooms: list[str]) -> None:
        while rooms:
            for room_id in rooms:
                await websocket.send(json.dumps({"type": "presence", "data": {"room_id": room_id}}))
            await asyncio.sleep(HEARTBEAT_INTERVAL)

    async def run(
        self,
        url: str,
        token: str,
        project_ids: Iterable[str] = (),
        stop: Optional[asyncio.Event] = None,
        presence_rooms: Iterable[str] = (),
    ) -> None:
        """
        Follow the change feed until ``stop`` is set.

        Joins each ``project:<id>`` room after connecting (the personal
        ``user:<id>`` room is joined by the server) and sends a presence
        heartbeat every HEARTBEAT_INTERVAL seconds for each of
        ``presence_rooms`` (``project:<id>`` or ``task:<id>``). Reconnects
        with backoff when the connection drops or cannot be opened.
        """
        rooms = [f"project:{pid}" for pid in project_ids]
        viewed = list(presence_rooms)
        stop = stop or asyncio.Event()
        delay = RECONNECT_DELAY
        separator = "&" if "?" in url else "?"

        while not stop.is_set():
            try:
                async with websockets.connect(f"{url}{separator}token={token}") as websocket:
                    logger.info(f"Realtime connected, joining {len(rooms)} project rooms")
                    delay = RECONNECT_DELAY
                    for room_id in rooms:
                        await websocket.send(json.dumps({"type": "join_room", "data": {"room_id": room_id}}))
                    background = [
                        asyncio.create_task(self._close_on_stop(websocket, stop)),
                        asyncio.create_task(self._send_heartbeats(websocket, viewed)),
                    ]
                    try:
                        async for raw in websocket:
                            await self.handle_raw(websocket, raw)
                    finally:
                        for task in background:
                            task.cancel()
                        await asyncio.gather(*background, return_exceptions=True)
            except (ConnectionClosed, InvalidHandshake, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Realtime connection lost: {e}")

            if stop.is_set():
                break
            logger.info(f"Reconnecting in {delay:.1f}s")
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = min(delay * 2, MAX_RECONNECT_DELAY)
