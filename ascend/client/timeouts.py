"""
Timeout and retry helpers for client calls.

Stale connections after a laptop sleeps or a network switch otherwise
leave requests hanging; every remote call made by the toolkit goes
through ``with_timeout``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Milliseconds per operation type
TIMEOUTS = {
    "health_check": 3000,
    "auth_session": 5000,
    "auth_refresh": 8000,
    "data_query": 10000,
    "mutation": 15000,
}


class TimeoutError(asyncio.TimeoutError):
    """Raised when a wrapped call exceeds its time budget."""

    def __init__(self, message: str, timeout_ms: int):
        super().__init__(message)
        self.timeout_ms = timeout_ms


async def with_timeout(
    awaitable: Awaitable[T],
    ms: int,
    message: Optional[str] = None,
) -> T:
    """
    Await ``awaitable`` for at most ``ms`` milliseconds.

    Raises:
        TimeoutError: with ``timeout_ms`` set; the default message is
            "Request timed out after {ms}ms".
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=ms / 1000)
    except asyncio.TimeoutError as e:
        if isinstance(e, TimeoutError):
            raise
        raise TimeoutError(message or f"Request timed out after {ms}ms", ms) from None


def is_timeout_error(error: BaseException) -> bool:
    return isinstance(error, TimeoutError)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
) -> T:
    """
    Call ``fn`` until it succeeds, at most ``max_retries + 1`` times.

    Delay doubles after each failure (base, 2*base, 4*base, ...). The last
    error is re-raised once attempts run out.
    """
    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as e:
            delay = base_delay_ms * (2 ** attempt)
            logger.debug(f"Attempt {attempt + 1} failed ({e}), retrying in {delay}ms")
            await asyncio.sleep(delay / 1000)
    return await fn()
