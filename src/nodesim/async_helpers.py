from __future__ import annotations

"""Utility helpers for scheduling asyncio coroutines safely."""

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger(__name__)

# Strong references so scheduled handler tasks are not garbage collected mid-flight.
_background_tasks: Set[asyncio.Task[Any]] = set()


def schedule_coroutine(coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> Optional[asyncio.Task[Any]]:
    """
    Schedule ``coro`` on the running loop and keep a reference until it finishes.

    Returns None (and closes the coroutine) when no loop is running, since
    there is nothing to drive it.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("No running event loop; dropping coroutine %s", name or coro)
        coro.close()
        return None

    task = loop.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


def _on_task_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)
