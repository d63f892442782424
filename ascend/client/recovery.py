"""Connection recovery state shared by the client toolkit."""

import logging
from enum import Enum
from typing import Callable, Optional

from .mutation_queue import MutationQueue, mutation_queue

logger = logging.getLogger(__name__)


class RecoveryStatus(str, Enum):
    IDLE = "idle"
    RECOVERING = "recovering"
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class RecoveryState:
    """
    Tracks whether the connection can be trusted for writes.

    Refresh subscribers are called when a refresh is requested (after a
    reconnect, for example). Turning healthy drains the mutation queue.
    """

    def __init__(self, queue: Optional[MutationQueue] = None):
        self.status = RecoveryStatus.IDLE
        self.queue = queue or mutation_queue
        self._refresh_subscribers: list[Callable[[], None]] = []

    @property
    def connection_healthy(self) -> bool:
        return self.status in (RecoveryStatus.IDLE, RecoveryStatus.HEALTHY)

    async def set_status(self, status: RecoveryStatus) -> None:
        previous = self.status
        self.status = RecoveryStatus(status)
        if previous != self.status:
            logger.info(f"Recovery status: {previous.value} -> {self.status.value}")
        if self.status == RecoveryStatus.HEALTHY and self.queue.has_pending():
            await self.queue.process_queue()

    def subscribe_refresh(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._refresh_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._refresh_subscribers:
                self._refresh_subscribers.remove(callback)

        return unsubscribe

    async def request_recovery(self) -> None:
        """Mark recovering, signal refresh subscribers, then mark healthy."""
        await self.set_status(RecoveryStatus.RECOVERING)
        logger.info(f"Emitting refresh signal to {len(self._refresh_subscribers)} subscribers")
        for callback in list(self._refresh_subscribers):
            try:
                callback()
            except Exception as e:
                logger.error(f"Refresh subscriber failed: {e}")
        await self.set_status(RecoveryStatus.HEALTHY)
