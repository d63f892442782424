"""
Run a write now, or defer it while the connection is recovering.

``QueuedMutation.mutate`` applies the optimistic update first in both
cases, so the UI never waits on the network.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from .mutation_queue import MutationQueue, should_queue
from .notifier import get_notifier
from .recovery import RecoveryState

logger = logging.getLogger(__name__)

# Returned by mutate() when the write was deferred
QUEUED = "queued"


class QueuedMutation:
    def __init__(
        self,
        mutation_fn: Callable[..., Awaitable[Any]],
        recovery: RecoveryState,
        *,
        queue: Optional[MutationQueue] = None,
        description: Optional[str] = None,
        optimistic_update: Optional[Callable[..., None]] = None,
        rollback: Optional[Callable[..., None]] = None,
        on_success: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        max_retries: Optional[int] = None,
    ):
        self.mutation_fn = mutation_fn
        self.recovery = recovery
        self.queue = queue or recovery.queue
        self.description = description
        self.optimistic_update = optimistic_update
        self.rollback = rollback
        self.on_success = on_success
        self.on_error = on_error
        self.max_retries = max_retries

    async def mutate(self, *args: Any) -> Any:
        """
        Apply the optimistic update, then run or queue ``mutation_fn(*args)``.

        Returns:
            The mutation result, or ``QUEUED`` when deferred.

        Raises:
            Whatever ``mutation_fn`` raised, after rolling back, when run
            immediately.
        """
        if self.optimistic_update is not None:
            self.optimistic_update(*args)

        if should_queue(self.recovery.status.value):
            def queued_error(error: Exception) -> None:
                if self.rollback is not None:
                    self.rollback(*args)
                if self.on_error is not None:
                    self.on_error(error)

            self.queue.enqueue(
                lambda: self.mutation_fn(*args),
                on_success=self.on_success,
                on_error=queued_error,
                description=self.description,
                max_retries=self.max_retries,
            )
            if self.description:
                get_notifier().info(f"{self.description} - will save when connection restores")
            else:
                get_notifier().info("Change queued - will save when connection restores")
            return QUEUED

        try:
            result = await self.mutation_fn(*args)
        except Exception as e:
            logger.warning(f"Mutation failed, rolling back: {e}")
            if self.rollback is not None:
                self.rollback(*args)
            if self.on_error is not None:
                self.on_error(e)
            raise

        if self.on_success is not None:
            self.on_success(result)
        return result
