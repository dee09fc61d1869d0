import asyncio
import logging
import os
from asyncio import Task
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Coroutine, Optional, Set

_SHARED_EXECUTOR: Optional[ThreadPoolExecutor] = None


def shared_executor() -> ThreadPoolExecutor:
    """
    Returns the thread pool used for blocking work: compositor requests and
    /proc reads. Created on first use.
    """
    global _SHARED_EXECUTOR
    if _SHARED_EXECUTOR is None:
        _SHARED_EXECUTOR = ThreadPoolExecutor(
            max_workers=(os.cpu_count() or 1) + 4,
            thread_name_prefix="NiriTaskbarWorker",
        )
    return _SHARED_EXECUTOR


def shutdown_shared_executor() -> None:
    global _SHARED_EXECUTOR
    if _SHARED_EXECUTOR is not None:
        _SHARED_EXECUTOR.shutdown(wait=False, cancel_futures=True)
        _SHARED_EXECUTOR = None


class ConcurrencyHelper:
    """
    Tracks the background tasks of one component and runs blocking calls on
    the shared executor, so everything can be cancelled together on shutdown.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._running_tasks: Set[Task] = set()

    async def run_in_thread(self, func: Callable, *args) -> Any:
        """Awaits a blocking function executed on the shared thread pool."""
        self.logger.debug(f"Scheduling function {func.__name__} in background thread.")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(shared_executor(), func, *args)

    def run_in_async_task(
        self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None
    ) -> Task:
        """
        Schedules a coroutine as a tracked task. A task that dies with an
        exception is logged rather than silently discarded.
        """
        task = asyncio.create_task(coro, name=name)
        self._running_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: Task) -> None:
        self._running_tasks.discard(task)
        if task.cancelled():
            self.logger.debug(f"Task {task.get_name()} cancelled.")
            return
        exception = task.exception()
        if exception:
            self.logger.error(
                f"Task {task.get_name()} failed: {exception}", exc_info=exception
            )

    async def cleanup_tasks(self) -> None:
        """Cancels every tracked task and waits for them to finish."""
        tasks = [task for task in self._running_tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.debug("Concurrent tasks cleanup complete.")
