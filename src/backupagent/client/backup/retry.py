"""Retry logic with exponential backoff and cooperative cancellation.

This module provides:
- retry_with_backoff: Await an operation with bounded exponential backoff
- wait_or_cancel: Sleep that ends early when a cancel event is set
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from backupagent.client.backup.types import UploadCancelledError

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 60.0  # seconds


async def wait_or_cancel(delay: float, cancel_event: asyncio.Event | None = None) -> None:
    """Sleep for delay seconds unless cancellation is requested first.

    Args:
        delay: Seconds to wait.
        cancel_event: Optional event that interrupts the wait when set.

    Raises:
        UploadCancelledError: If cancel_event is set before the delay elapses.
    """
    if cancel_event is None:
        await asyncio.sleep(delay)
        return

    if cancel_event.is_set():
        raise UploadCancelledError("Cancelled during retry backoff")

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return
    raise UploadCancelledError("Cancelled during retry backoff")


async def retry_with_backoff(
    func: Callable[[], Awaitable[Any]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    cancel_event: asyncio.Event | None = None,
) -> Any:
    """Await an operation with exponential backoff retry.

    After failed attempt ``k`` (zero based) the next attempt starts
    ``base_delay * 2**k`` seconds later, capped at max_delay.

    Args:
        func: Coroutine function to execute.
        max_attempts: Total number of attempts (at least 1).
        base_delay: Delay after the first failure in seconds.
        max_delay: Maximum delay between attempts in seconds.
        retryable_exceptions: Tuple of exception types to retry on.
        cancel_event: Optional event; when set, no further attempt is made
            and any backoff wait ends immediately.

    Returns:
        Result of the operation.

    Raises:
        UploadCancelledError: If cancellation was requested.
        The last exception unchanged if all attempts fail.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(max_attempts):
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError("Cancelled before retry attempt")

        try:
            return await func()
        except UploadCancelledError:
            raise
        except retryable_exceptions as e:
            if attempt == max_attempts - 1:
                logger.error(f"All {max_attempts} attempts failed: {e}")
                raise

            delay = min(base_delay * 2**attempt, max_delay)
            logger.warning(
                f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await wait_or_cancel(delay, cancel_event)

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")
