"""
Background task helpers
Detached asyncio tasks with their own error reporting
"""
import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

# Strong references so the event loop does not garbage-collect running tasks
_background_tasks: Set[asyncio.Task] = set()


def _on_task_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.info(f"🛑 Background task {task.get_name()} cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error(
            f"❌ Background task {task.get_name()} failed: {error}",
            exc_info=(type(error), error, error.__traceback__)
        )


def spawn_detached(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """
    Run a coroutine in the background without awaiting it.

    Failures are logged and never propagate to the caller.

    Args:
        coro: Coroutine to run
        name: Task name used in log lines

    Returns:
        The created task
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


def pending_background_tasks() -> Set[asyncio.Task]:
    return set(_background_tasks)
