"""Async client toolkit: API access, optimistic updates, queued writes and realtime cache sync."""

from .api import AscendAPIError, AscendClient
from .mutation_queue import MutationQueue, PendingMutation, mutation_queue, should_queue
from .notifier import Notifier, get_notifier, set_notifier
from .optimistic import OptimisticList, optimistic
from .query_cache import (
    QueryCache,
    activity_keys,
    comment_keys,
    notification_keys,
    project_keys,
    task_keys,
    time_entry_keys,
)
from .queued_mutation import QUEUED, QueuedMutation
from .realtime import RealtimeSync
from .recovery import RecoveryState, RecoveryStatus
from .timeouts import TIMEOUTS, TimeoutError, with_retry, with_timeout

__all__ = [
    "AscendAPIError",
    "AscendClient",
    "MutationQueue",
    "PendingMutation",
    "mutation_queue",
    "should_queue",
    "Notifier",
    "get_notifier",
    "set_notifier",
    "OptimisticList",
    "optimistic",
    "QueryCache",
    "activity_keys",
    "comment_keys",
    "notification_keys",
    "project_keys",
    "task_keys",
    "time_entry_keys",
    "QUEUED",
    "QueuedMutation",
    "RealtimeSync",
    "RecoveryState",
    "RecoveryStatus",
    "TIMEOUTS",
    "TimeoutError",
    "with_retry",
    "with_timeout",
]
