"""
Mutation queue for writes made while the connection is recovering.

An in-memory FIFO. ``process_queue`` walks the pending items once, in
order, one at a time. Failed items stay queued until their retry budget is
spent, then they are dropped and the user is told.

Nothing is persisted: a restart loses pending mutations.
"""

import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..config import settings
from .notifier import get_notifier

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]
Listener = Callable[[list["PendingMutation"]], None]

# Recovery statuses in which writes are deferred
QUEUEING_STATUSES = frozenset({"recovering", "degraded"})


@dataclass
class PendingMutation:
    id: str
    operation: Operation
    description: Optional[str] = None
    on_success: Optional[Callable[[Any], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    retries: int = 0
    max_retries: int = 3
    created_at: float = field(default_factory=time.time)


def _mutation_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"mutation_{int(time.time() * 1000)}_{suffix}"


class MutationQueue:
    """FIFO of deferred write operations with bounded retries."""

    def __init__(self):
        self._queue: list[PendingMutation] = []
        self._processing = False
        self._listeners: list[Listener] = []

    def enqueue(
        self,
        operation: Operation,
        on_success: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        description: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> str:
        """Append a mutation and return its id."""
        mutation = PendingMutation(
            id=_mutation_id(),
            operation=operation,
            description=description,
            on_success=on_success,
            on_error=on_error,
            max_retries=settings.client_mutation_max_retries if max_retries is None else max_retries,
        )
        self._queue.append(mutation)
        logger.info(f"Mutation queued: {mutation.id} ({description or 'no description'}), "
                    f"queue length {len(self._queue)}")
        self._notify_listeners()
        return mutation.id

    async def process_queue(self) -> None:
        """
        Run every pending mutation once, in queue order.

        Items that fail below their retry limit stay for the next pass.
        Does nothing if a pass is already running or the queue is empty.
        """
        if self._processing or not self._queue:
            return

        self._processing = True
        logger.info(f"Processing mutation queue ({len(self._queue)} pending)")

        try:
            for mutation in list(self._queue):
                try:
                    result = await mutation.operation()
                    self.remove(mutation.id, notify=False)
                    logger.debug(f"Mutation succeeded: {mutation.id}")
                    if mutation.on_success is not None:
                        mutation.on_success(result)
                except Exception as e:
                    mutation.retries += 1
                    logger.warning(
                        f"Mutation failed: {mutation.id} "
                        f"(attempt {mutation.retries}/{mutation.max_retries}): {e}"
                    )
                    if mutation.retries >= mutation.max_retries:
                        self.remove(mutation.id, notify=False)
                        logger.error(f"Mutation dropped after {mutation.retries} attempts: {mutation.id}")
                        if mutation.on_error is not None:
                            mutation.on_error(e)
                        if mutation.description:
                            get_notifier().error(f"Failed to save: {mutation.description}")
                        else:
                            get_notifier().error("Failed to save changes")
        finally:
            self._processing = False
            self._notify_listeners()

    def remove(self, mutation_id: str, notify: bool = True) -> bool:
        before = len(self._queue)
        self._queue = [m for m in self._queue if m.id != mutation_id]
        removed = len(self._queue) != before
        if removed and notify:
            self._notify_listeners()
        return removed

    def clear(self) -> None:
        self._queue = []
        self._notify_listeners()

    @property
    def length(self) -> int:
        return len(self._queue)

    def has_pending(self) -> bool:
        return bool(self._queue)

    def is_queued(self, mutation_id: str) -> bool:
        return any(m.id == mutation_id for m in self._queue)

    def snapshot(self) -> list[PendingMutation]:
        return list(self._queue)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.snapshot())
            except Exception as e:
                logger.error(f"Mutation queue listener failed: {e}")


def should_queue(status: str) -> bool:
    """True while the connection is recovering or degraded."""
    return status in QUEUEING_STATUSES


# Global instance shared by the client toolkit
mutation_queue = MutationQueue()
