"""
Optimistic updates over a local list of records.

The local list changes before the server confirms. If the remote call
fails the list goes back to exactly what it was before the change.
Concurrent edits are last write wins.
"""

import copy
import itertools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

Record = dict[str, Any]


class OptimisticList(Generic[T]):
    """A list of records with snapshot-based rollback."""

    def __init__(self, items: Optional[list[T]] = None):
        self.items: list[T] = list(items or [])
        self._snapshots: dict[int, list[T]] = {}
        self._tokens = itertools.count(1)

    def apply(self, mutator: Callable[[list[T]], Optional[list[T]]]) -> int:
        """
        Snapshot the current items, then mutate them.

        ``mutator`` may edit the list in place or return a new one.
        Returns a token for ``rollback`` / ``commit``.
        """
        token = next(self._tokens)
        self._snapshots[token] = copy.deepcopy(self.items)
        result = mutator(self.items)
        if result is not None:
            self.items = result
        return token

    def rollback(self, token: int) -> None:
        """Restore the items captured when ``token`` was issued."""
        snapshot = self._snapshots.pop(token, None)
        if snapshot is not None:
            self.items = snapshot

    def commit(self, token: int) -> None:
        self._snapshots.pop(token, None)

    @property
    def pending(self) -> int:
        return len(self._snapshots)

    # Record helpers, keyed on "id"

    def insert(self, record: T, at_start: bool = False) -> int:
        return self.apply(lambda items: [record, *items] if at_start else [*items, record])

    def update(self, record_id: Any, changes: Record) -> int:
        return self.apply(
            lambda items: [{**item, **changes} if item["id"] == record_id else item for item in items]
        )

    def remove(self, record_id: Any) -> int:
        return self.apply(lambda items: [item for item in items if item["id"] != record_id])


@asynccontextmanager
async def optimistic(
    target: OptimisticList,
    mutator: Callable[[list], Optional[list]],
) -> AsyncIterator[int]:
    """
    Apply ``mutator`` for the duration of the block.

    Usage:
        async with optimistic(tasks, lambda items: ...):
            await client.update_task(task_id, status="done")

    Commits on a clean exit; rolls back and re-raises on error.
    """
    token = target.apply(mutator)
    try:
        yield token
    except BaseException:
        target.rollback(token)
        raise
    else:
        target.commit(token)
