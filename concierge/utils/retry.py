from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from ..errors import ConcurrentModification

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, scale: float = 1.0
) -> float:
    """Compute exponential backoff with jitter."""
    delay = scale * base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(
    attempt: int, base: float = 1.5, jitter: float = 0.5, scale: float = 1.0
) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base=base, jitter=jitter, scale=scale)
    await asyncio.sleep(delay)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 0.05,
    jitter: float = 0.05,
) -> T:
    """Re-issue ``operation`` while it fails with ``ConcurrentModification``.

    Waits ``delay``, then twice that, and so on between attempts.
    ``operation`` must reload whatever state it depends on, since each retry
    runs against the instance as the winning writer left it.
    """
    for attempt in range(attempts):
        try:
            return await operation()
        except ConcurrentModification as exc:
            if attempt == attempts - 1:
                raise
            logger.info(
                f"Concurrent modification of workflow {exc.workflow_id}, "
                f"retrying ({attempt + 1}/{attempts})"
            )
            await schedule_retry(attempt, base=2, jitter=jitter, scale=delay)
    raise ValueError("attempts must be at least 1")
