"""
Background task utilities for async operations
"""
from typing import Any, Awaitable, Callable, Optional, TypeVar
from functools import partial
import asyncio
from concurrent.futures import ThreadPoolExecutor

from app.core.logging_config import logger

T = TypeVar("T")

# Thread pool executor for blocking collaborator calls
_executor = ThreadPoolExecutor(max_workers=10, thread_name_prefix="collaborator")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking function (e.g. a requests call) off the event loop
    
    Usage:
        data = await run_blocking(session.get, url, timeout=10)
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, partial(func, *args, **kwargs))


def _log_task_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} crashed: {exc!r}", exc_info=exc)


def spawn(coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task:
    """
    Schedule a coroutine on the running loop and log it if it crashes
    
    Args:
        coro: Coroutine to run
        name: Task name used in logs
    """
    task = asyncio.ensure_future(coro)
    if name:
        task.set_name(name)
    task.add_done_callback(_log_task_result)
    return task


async def cancel_task(task: Optional[asyncio.Task]) -> None:
    """Cancel a task and wait for it to unwind. Never cancels the calling task."""
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
