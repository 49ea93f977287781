"""
Async helpers shared by the ensemble service and the screenshot worker.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_result(task: asyncio.Task):
    """Consume the outcome of an abandoned task so it is never reported as unhandled"""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned task finished with error: {error!r}")


async def race_with_timeout(
    awaitable: Awaitable[T], timeout: float, label: Optional[str] = None
) -> T:
    """
    Wait for an awaitable or a timer, whichever finishes first.

    When the timer wins the awaitable is abandoned, not cancelled: it may
    still complete in the background but its result is ignored.

    Raises:
        asyncio.TimeoutError: If the timer finishes first
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_discard_result)
    raise asyncio.TimeoutError(f"{label or 'operation'} timed out after {timeout}s")
