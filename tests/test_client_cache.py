"""Tests for the client query cache and realtime cache sync."""

import asyncio
import json
import socket
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from ascend.client.query_cache import (
    QueryCache,
    activity_keys,
    comment_keys,
    notification_keys,
    project_keys,
    task_keys,
    time_entry_keys,
)
from ascend.client import realtime
from ascend.client.realtime import RealtimeSync

USER_ID = "u-1"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(stale_time=30, gc_time=300, clock=clock)


def change(table, event, new=None, old=None, project_id=None):
    return {
        "type": "db_change",
        "data": {
            "table": table,
            "event": event,
            "new": new or {},
            "old": old or {},
            "project_id": project_id,
            "timestamp": "2026-03-01T10:00:00",
        },
    }


class TestKeyFactories:
    """Keys nest from general to specific."""

    def test_task_keys(self):
        assert task_keys.list("u") == ("tasks", "list", "u")
        assert task_keys.detail("t")[: len(task_keys.all)] == task_keys.all

    def test_project_sub_keys_nest_under_detail(self):
        detail = project_keys.detail("p")
        for key in (project_keys.notes("p"), project_keys.documents("p"), project_keys.members("p")):
            assert key[: len(detail)] == detail

    def test_other_keys(self):
        assert comment_keys.task_comments("t") == ("comments", "list", "task", "t")
        assert notification_keys.unread_count("u") == ("notifications", "unread-count", "u")
        assert activity_keys.project_activity("p") == ("activity", "list", "project", "p")
        assert time_entry_keys.total_time("task", "t") == ("time-entries", "total", "task", "t")


@pytest.mark.asyncio
class TestQueryCache:
    """Tests for QueryCache freshness and garbage collection."""

    async def test_fresh_data_is_served_from_cache(self, cache, clock):
        fetcher = AsyncMock(side_effect=[["a"], ["b"]])

        assert await cache.fetch(("tasks",), fetcher) == ["a"]
        clock.advance(29)
        assert await cache.fetch(("tasks",), fetcher) == ["a"]
        assert fetcher.await_count == 1

        clock.advance(1)
        assert await cache.fetch(("tasks",), fetcher) == ["b"]

    async def test_per_call_stale_time(self, cache, clock):
        fetcher = AsyncMock(side_effect=[1, 2])
        await cache.fetch(("x",), fetcher)
        clock.advance(5)

        assert await cache.fetch(("x",), fetcher, stale_time=5) == 2

    async def test_invalidate_by_prefix(self, cache):
        cache.set(task_keys.list("u"), [])
        cache.set(task_keys.detail("t"), {})
        cache.set(project_keys.lists(), [])

        assert cache.invalidate(task_keys.all) == 2
        assert cache.is_stale(task_keys.list("u"))
        assert not cache.is_stale(project_keys.lists())

        fetcher = AsyncMock(return_value=["fresh"])
        assert await cache.fetch(task_keys.list("u"), fetcher) == ["fresh"]
        assert not cache.is_stale(task_keys.list("u"))

    def test_missing_key_is_stale(self, cache):
        assert cache.is_stale(("nothing",))
        assert cache.get(("nothing",)) is None

    def test_gc_drops_unused_entries(self, cache, clock):
        cache.set(("old",), 1)
        clock.advance(200)
        cache.set(("new",), 2)
        clock.advance(100)

        assert cache.gc() == 1
        assert ("old",) not in cache
        assert ("new",) in cache

    def test_reads_keep_entries_alive(self, cache, clock):
        cache.set(("kept",), 1)
        clock.advance(299)
        cache.get(("kept",))
        clock.advance(299)

        assert cache.gc() == 0

    def test_set_query_data(self, cache, clock):
        assert cache.set_query_data(("missing",), lambda rows: rows) is None
        assert ("missing",) not in cache

        cache.set(("rows",), [1])
        clock.advance(40)
        cache.set_query_data(("rows",), lambda rows: rows + [2])

        assert cache.get(("rows",)) == [1, 2]
        assert cache.is_stale(("rows",))


class TestRealtimeTasks:
    """Task change events patch the cached task list."""

    def test_insert_replaces_optimistic_copy(self, cache):
        cache.set(task_keys.list(USER_ID), [
            {"id": "t1", "title": "Draft", "project": {"title": "P"}},
            {"id": "t2", "title": "Other"},
        ])
        sync = RealtimeSync(cache, USER_ID)

        sync.apply(change("tasks", "INSERT", new={"id": "t1", "title": "Saved"}))

        rows = cache.get(task_keys.list(USER_ID))
        assert rows[0] == {"id": "t1", "title": "Saved", "project": {"title": "P"}}
        assert not cache.is_stale(task_keys.list(USER_ID))

    def test_unknown_insert_invalidates(self, cache):
        cache.set(task_keys.list(USER_ID), [])

        RealtimeSync(cache, USER_ID).apply(change("tasks", "INSERT", new={"id": "t9"}))

        assert cache.is_stale(task_keys.list(USER_ID))

    def test_update_merges_list_and_detail(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1", "title": "A", "status": "todo"}])
        cache.set(task_keys.detail("t1"), {"id": "t1", "title": "A", "status": "todo"})

        RealtimeSync(cache, USER_ID).apply(change("tasks", "UPDATE", new={"id": "t1", "status": "done"}))

        assert cache.get(task_keys.list(USER_ID)) == [{"id": "t1", "title": "A", "status": "done"}]
        assert cache.get(task_keys.detail("t1"))["status"] == "done"

    def test_update_without_cached_list_is_noop(self, cache):
        RealtimeSync(cache, USER_ID).apply(change("tasks", "UPDATE", new={"id": "t1"}))

        assert task_keys.list(USER_ID) not in cache

    def test_delete_filters_row(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}, {"id": "t2"}])
        cache.set(task_keys.detail("t1"), {"id": "t1"})

        RealtimeSync(cache, USER_ID).apply(change("tasks", "DELETE", old={"id": "t1"}))

        assert cache.get(task_keys.list(USER_ID)) == [{"id": "t2"}]
        assert task_keys.detail("t1") not in cache

    def test_last_event_wins(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1", "title": "A"}])
        sync = RealtimeSync(cache, USER_ID)

        sync.apply(change("tasks", "UPDATE", new={"id": "t1", "title": "B"}))
        sync.apply(change("tasks", "UPDATE", new={"id": "t1", "title": "C"}))

        assert cache.get(task_keys.list(USER_ID)) == [{"id": "t1", "title": "C"}]


class TestRealtimeInvalidation:
    """Other tables invalidate the matching queries."""

    def test_notifications(self, cache):
        cache.set(notification_keys.list(USER_ID), [])
        cache.set(notification_keys.unread_count(USER_ID), 0)

        RealtimeSync(cache, USER_ID).apply(change("notifications", "INSERT", new={"id": "n"}))

        assert cache.is_stale(notification_keys.list(USER_ID))
        assert cache.is_stale(notification_keys.unread_count(USER_ID))

    def test_time_entries(self, cache):
        cache.set(time_entry_keys.active_timer(USER_ID), None)
        cache.set(time_entry_keys.total_time("task", "t1"), 60)

        RealtimeSync(cache, USER_ID).apply(change(
            "time_entries", "UPDATE", new={"id": "e", "entity_type": "task", "entity_id": "t1"},
        ))

        assert cache.is_stale(time_entry_keys.active_timer(USER_ID))
        assert cache.is_stale(time_entry_keys.total_time("task", "t1"))

    def test_project_scoped_tables(self, cache):
        for key in (project_keys.notes("p1"), project_keys.documents("p1"),
                    project_keys.members("p1"), activity_keys.project_activity("p1")):
            cache.set(key, [])
        sync = RealtimeSync(cache, USER_ID)

        sync.apply(change("notes", "INSERT", new={"id": "n"}, project_id="p1"))
        assert cache.is_stale(project_keys.notes("p1"))
        assert cache.is_stale(activity_keys.project_activity("p1"))
        assert not cache.is_stale(project_keys.documents("p1"))

        sync.apply(change("project_documents", "DELETE", old={"id": "d"}, project_id="p1"))
        sync.apply(change("project_members", "INSERT", new={"id": "m"}, project_id="p1"))
        assert cache.is_stale(project_keys.documents("p1"))
        assert cache.is_stale(project_keys.members("p1"))

    def test_projects(self, cache):
        cache.set(project_keys.list(USER_ID), [])
        cache.set(project_keys.detail("p1"), {})
        cache.set(project_keys.detail("p2"), {})

        RealtimeSync(cache, USER_ID).apply(change("projects", "UPDATE", new={"id": "p1"}, project_id="p1"))

        assert cache.is_stale(project_keys.list(USER_ID))
        assert cache.is_stale(project_keys.detail("p1"))
        assert not cache.is_stale(project_keys.detail("p2"))

    def test_non_change_messages_ignored(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}])

        RealtimeSync(cache, USER_ID).apply({"type": "pong", "data": {}})

        assert not cache.is_stale(task_keys.list(USER_ID))


class TestRealtimeComments:
    """Comment events patch the cached comment lists in place."""

    def test_insert_replaces_optimistic_copy_and_keeps_author(self, cache):
        cache.set(comment_keys.task_comments("t1"), [
            {"id": "c1", "content": "Draft", "author": {"display_name": "Amy"}},
        ])

        RealtimeSync(cache, USER_ID).apply(change(
            "comments", "INSERT", new={"id": "c1", "task_id": "t1", "content": "Saved"},
        ))

        assert cache.get(comment_keys.task_comments("t1")) == [
            {"id": "c1", "task_id": "t1", "content": "Saved", "author": {"display_name": "Amy"}},
        ]
        assert not cache.is_stale(comment_keys.task_comments("t1"))

    def test_unknown_insert_invalidates_only_its_list(self, cache):
        cache.set(comment_keys.task_comments("t1"), [])
        cache.set(comment_keys.task_comments("t2"), [])

        RealtimeSync(cache, USER_ID).apply(change("comments", "INSERT", new={"id": "c", "task_id": "t1"}))

        assert cache.is_stale(comment_keys.task_comments("t1"))
        assert not cache.is_stale(comment_keys.task_comments("t2"))

    def test_update_merges_project_comment(self, cache):
        cache.set(comment_keys.project_comments("p1"), [
            {"id": "c1", "content": "Old", "author": {"display_name": "Amy"}},
            {"id": "c2", "content": "Other"},
        ])

        RealtimeSync(cache, USER_ID).apply(change(
            "comments", "UPDATE", new={"id": "c1", "project_id": "p1", "content": "Edited"}, project_id="p1",
        ))

        rows = cache.get(comment_keys.project_comments("p1"))
        assert rows[0] == {"id": "c1", "project_id": "p1", "content": "Edited", "author": {"display_name": "Amy"}}
        assert rows[1] == {"id": "c2", "content": "Other"}
        assert not cache.is_stale(comment_keys.project_comments("p1"))

    def test_delete_filters_row(self, cache):
        cache.set(comment_keys.task_comments("t1"), [{"id": "c1"}, {"id": "c2"}])

        RealtimeSync(cache, USER_ID).apply(change("comments", "DELETE", old={"id": "c1", "task_id": "t1"}))

        assert cache.get(comment_keys.task_comments("t1")) == [{"id": "c2"}]

    def test_uncached_list_left_alone(self, cache):
        RealtimeSync(cache, USER_ID).apply(change("comments", "UPDATE", new={"id": "c1", "task_id": "t1"}))

        assert comment_keys.task_comments("t1") not in cache


class TestRealtimePresence:
    """Viewer lists from presence_update messages."""

    def test_viewers_sorted_and_exclude_current_user(self, cache):
        sync = RealtimeSync(cache, USER_ID)

        sync.apply({"type": "presence_update", "data": {"room_id": "task:t1", "users": [
            {"user_id": "u-3", "display_name": "zoe"},
            {"user_id": USER_ID, "display_name": "Me"},
            {"user_id": "u-2", "display_name": "Bob"},
        ]}})

        assert [u["user_id"] for u in sync.presence["task:t1"]] == [USER_ID, "u-2", "u-3"]
        assert [u["user_id"] for u in sync.viewers("task:t1")] == ["u-2", "u-3"]
        assert sync.viewers("task:other") == []

    def test_malformed_presence_ignored(self, cache):
        sync = RealtimeSync(cache, USER_ID)

        sync.apply({"type": "presence_update", "data": {"room_id": "task:t1", "users": "nobody"}})
        sync.apply({"type": "presence_update", "data": ["task:t1"]})

        assert sync.presence == {}


@pytest.mark.asyncio
class TestRealtimeTransport:
    """Tests for raw message handling."""

    async def test_ping_answered_with_pong(self, cache):
        websocket = AsyncMock()

        await RealtimeSync(cache, USER_ID).handle_raw(websocket, json.dumps({"type": "ping", "data": {}}))

        websocket.send.assert_awaited_once_with(json.dumps({"type": "pong", "data": {}}))

    async def test_invalid_json_ignored(self, cache):
        websocket = AsyncMock()

        await RealtimeSync(cache, USER_ID).handle_raw(websocket, "not json")

        websocket.send.assert_not_awaited()

    async def test_change_applied(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}])
        websocket = AsyncMock()

        await RealtimeSync(cache, USER_ID).handle_raw(
            websocket, json.dumps(change("tasks", "DELETE", old={"id": "t1"})),
        )

        assert cache.get(task_keys.list(USER_ID)) == []

    @pytest.mark.parametrize("raw", ["[1, 2]", '"ping"', "42", "null"])
    async def test_non_object_message_ignored(self, cache, raw):
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}])
        websocket = AsyncMock()

        await RealtimeSync(cache, USER_ID).handle_raw(websocket, raw)

        websocket.send.assert_not_awaited()
        assert cache.get(task_keys.list(USER_ID)) == [{"id": "t1"}]

    async def test_non_object_payload_ignored(self, cache):
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}])

        await RealtimeSync(cache, USER_ID).handle_raw(AsyncMock(), json.dumps({"type": "db_change", "data": [1]}))

        assert cache.get(task_keys.list(USER_ID)) == [{"id": "t1"}]


async def wait_until(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not met in time"
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def feed_server():
    """
    In-process WebSocket server standing in for /ws.

    Records each handshake path and every frame received. The first
    ``drop`` connections are closed right after the handshake; later ones
    get ``greeting`` frames and stay open.
    """
    state = {"paths": [], "received": [], "drop": 0, "greeting": []}

    async def handler(connection):
        state["paths"].append(connection.request.path)
        if len(state["paths"]) <= state["drop"]:
            await connection.close()
            return
        for message in state["greeting"]:
            await connection.send(json.dumps(message))
        async for raw in connection:
            state["received"].append((len(state["paths"]), json.loads(raw)))

    async with serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/ws", state


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
class TestRealtimeRun:
    """RealtimeSync.run against a live WebSocket server."""

    async def test_token_rooms_changes_and_stop(self, cache, feed_server):
        url, state = feed_server
        state["greeting"] = [change("tasks", "DELETE", old={"id": "t1"})]
        cache.set(task_keys.list(USER_ID), [{"id": "t1"}, {"id": "t2"}])
        stop = asyncio.Event()

        run = asyncio.create_task(RealtimeSync(cache, USER_ID).run(
            url, "tok", project_ids=["p1", "p2"], stop=stop, presence_rooms=["task:t9"],
        ))
        await wait_until(lambda: len(state["received"]) >= 3)
        await wait_until(lambda: cache.get(task_keys.list(USER_ID)) == [{"id": "t2"}])

        stop.set()
        await asyncio.wait_for(run, timeout=3)

        assert state["paths"] == ["/ws?token=tok"]
        assert [frame for _, frame in state["received"][:3]] == [
            {"type": "join_room", "data": {"room_id": "project:p1"}},
            {"type": "join_room", "data": {"room_id": "project:p2"}},
            {"type": "presence", "data": {"room_id": "task:t9"}},
        ]

    async def test_reconnects_after_drop(self, cache, feed_server, monkeypatch):
        monkeypatch.setattr(realtime, "RECONNECT_DELAY", 0.05)
        url, state = feed_server
        state["drop"] = 1
        stop = asyncio.Event()

        run = asyncio.create_task(RealtimeSync(cache, USER_ID).run(
            f"{url}?v=1", "tok", project_ids=["p1"], stop=stop,
        ))
        await wait_until(lambda: any(conn == 2 for conn, _ in state["received"]))

        stop.set()
        await asyncio.wait_for(run, timeout=3)

        assert state["paths"] == ["/ws?v=1&token=tok", "/ws?v=1&token=tok"]
        assert state["received"] == [(2, {"type": "join_room", "data": {"room_id": "project:p1"}})]

    async def test_stop_during_backoff(self, cache, monkeypatch):
        monkeypatch.setattr(realtime, "RECONNECT_DELAY", 10.0)
        stop = asyncio.Event()

        run = asyncio.create_task(RealtimeSync(cache, USER_ID).run(
            f"ws://127.0.0.1:{_unused_port()}/ws", "tok", stop=stop,
        ))
        await asyncio.sleep(0.2)
        assert not run.done()

        stop.set()
        await asyncio.wait_for(run, timeout=1)

