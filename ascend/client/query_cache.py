"""
Client-side query cache keyed by hierarchical tuples.

Keys read from general to specific, e.g. ``("tasks", "list", user_id)``,
so invalidating ``("tasks",)`` marks every task query stale.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..config import settings

logger = logging.getLogger(__name__)

QueryKey = tuple


# =============================================================================
# Key factories
# =============================================================================


class task_keys:
    all = ("tasks",)

    @staticmethod
    def lists() -> QueryKey:
        return (*task_keys.all, "list")

    @staticmethod
    def list(user_id: str) -> QueryKey:
        return (*task_keys.lists(), str(user_id))

    @staticmethod
    def detail(task_id: str) -> QueryKey:
        return (*task_keys.all, "detail", str(task_id))


class project_keys:
    all = ("projects",)

    @staticmethod
    def lists() -> QueryKey:
        return (*project_keys.all, "list")

    @staticmethod
    def list(user_id: str) -> QueryKey:
        return (*project_keys.lists(), str(user_id))

    @staticmethod
    def detail(project_id: str) -> QueryKey:
        return (*project_keys.all, "detail", str(project_id))

    @staticmethod
    def notes(project_id: str) -> QueryKey:
        return (*project_keys.detail(project_id), "notes")

    @staticmethod
    def documents(project_id: str) -> QueryKey:
        return (*project_keys.detail(project_id), "documents")

    @staticmethod
    def members(project_id: str) -> QueryKey:
        return (*project_keys.detail(project_id), "members")


class comment_keys:
    all = ("comments",)

    @staticmethod
    def lists() -> QueryKey:
        return (*comment_keys.all, "list")

    @staticmethod
    def task_comments(task_id: str) -> QueryKey:
        return (*comment_keys.lists(), "task", str(task_id))

    @staticmethod
    def project_comments(project_id: str) -> QueryKey:
        return (*comment_keys.lists(), "project", str(project_id))


class notification_keys:
    all = ("notifications",)

    @staticmethod
    def list(user_id: str) -> QueryKey:
        return (*notification_keys.all, "list", str(user_id))

    @staticmethod
    def unread_count(user_id: str) -> QueryKey:
        return (*notification_keys.all, "unread-count", str(user_id))


class activity_keys:
    all = ("activity",)

    @staticmethod
    def lists() -> QueryKey:
        return (*activity_keys.all, "list")

    @staticmethod
    def project_activity(project_id: str) -> QueryKey:
        return (*activity_keys.lists(), "project", str(project_id))


class time_entry_keys:
    all = ("time-entries",)

    @staticmethod
    def lists() -> QueryKey:
        return (*time_entry_keys.all, "list")

    @staticmethod
    def list(entity_type: str, entity_id: str) -> QueryKey:
        return (*time_entry_keys.lists(), entity_type, str(entity_id))

    @staticmethod
    def active_timer(user_id: str) -> QueryKey:
        return (*time_entry_keys.all, "active", str(user_id))

    @staticmethod
    def total_time(entity_type: str, entity_id: str) -> QueryKey:
        return (*time_entry_keys.all, "total", entity_type, str(entity_id))


# =============================================================================
# Cache
# =============================================================================


@dataclass
class CacheEntry:
    data: Any
    updated_at: float
    last_used: float
    stale: bool = False


class QueryCache:
    """
    Stale-while-fresh cache of query results.

    An entry is served without refetching while it is younger than its
    stale time and has not been invalidated. Entries untouched for
    ``gc_time`` seconds are dropped by ``gc()``.
    """

    def __init__(
        self,
        stale_time: Optional[float] = None,
        gc_time: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_time = settings.client_stale_seconds if stale_time is None else stale_time
        self.gc_time = settings.client_gc_seconds if gc_time is None else gc_time
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return tuple(key) in self._entries

    def get(self, key: QueryKey) -> Any:
        entry = self._entries.get(tuple(key))
        if entry is None:
            return None
        entry.last_used = self._clock()
        return entry.data

    def is_stale(self, key: QueryKey, stale_time: Optional[float] = None) -> bool:
        entry = self._entries.get(tuple(key))
        if entry is None:
            return True
        limit = self.stale_time if stale_time is None else stale_time
        return entry.stale or self._clock() - entry.updated_at >= limit

    async def fetch(
        self,
        key: QueryKey,
        fn: Callable[[], Awaitable[Any]],
        stale_time: Optional[float] = None,
    ) -> Any:
        """Return cached data while fresh, otherwise call ``fn`` and store its result."""
        key = tuple(key)
        if not self.is_stale(key, stale_time):
            return self.get(key)
        logger.debug(f"Fetching query {key}")
        data = await fn()
        self.set(key, data)
        return data

    def set(self, key: QueryKey, data: Any) -> None:
        now = self._clock()
        self._entries[tuple(key)] = CacheEntry(data=data, updated_at=now, last_used=now)

    def set_query_data(self, key: QueryKey, updater: Callable[[Any], Any]) -> Any:
        """
        Replace cached data with ``updater(current)``.

        ``current`` is None when nothing is cached. Freshness is left
        unchanged for existing entries. Returns the new data.
        """
        key = tuple(key)
        entry = self._entries.get(key)
        new_data = updater(entry.data if entry is not None else None)
        if entry is None:
            if new_data is not None:
                self.set(key, new_data)
        else:
            entry.data = new_data
            entry.last_used = self._clock()
        return new_data

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every key starting with ``prefix`` stale; returns how many."""
        prefix = tuple(prefix)
        count = 0
        for key, entry in self._entries.items():
            if key[: len(prefix)] == prefix:
                entry.stale = True
                count += 1
        if count:
            logger.debug(f"Invalidated {count} queries under {prefix}")
        return count

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(tuple(key), None)

    def gc(self) -> int:
        """Drop entries unused for longer than ``gc_time``."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.last_used >= self.gc_time]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
