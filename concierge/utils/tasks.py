"""Background task helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

_background_tasks: Set["asyncio.Task[Any]"] = set()


def fire_and_forget(coro: Coroutine[Any, Any, Any], description: str) -> "asyncio.Task[Any]":
    """Run ``coro`` in the background; failures are logged and dropped."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)

    def _done(t: "asyncio.Task[Any]") -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.warning(f"Background task '{description}' failed: {exc}")

    task.add_done_callback(_done)
    return task


async def drain_background_tasks() -> None:
    """Wait for outstanding background tasks (used on shutdown and in tests)."""
    loop = asyncio.get_running_loop()
    pending = [t for t in _background_tasks if t.get_loop() is loop]
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
