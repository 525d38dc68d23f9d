"""In-process delayed task runner.

Runs an async callable after a delay as a background asyncio task. Used for
fire-and-forget work that must not block the caller: manual bot dispatch
(zero delay) and vendor teardown after the post-meeting grace period.

Jobs live only in this process. Anything that must survive a restart needs
its own recovery path (see BotScheduler.resume_pending_teardowns).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class TaskScheduler(Protocol):
    """Anything that can run a coroutine function later."""

    def schedule(
        self,
        delay_seconds: float,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        name: str | None = None,
    ) -> Any: ...


class DelayedTaskRunner:
    """Schedules coroutine functions on the running event loop.

    Failures inside a job are logged and never propagate to the scheduler.
    Pending jobs are tracked so shutdown() can cancel them.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def schedule(
        self,
        delay_seconds: float,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        name: str | None = None,
    ) -> asyncio.Task:
        """Run ``fn(*args)`` after ``delay_seconds``.

        Args:
            delay_seconds: Seconds to wait before running. 0 runs on the next loop turn.
            fn: Async callable.
            *args: Positional arguments for fn.
            name: Task name for logs.

        Returns:
            The asyncio.Task wrapping the delayed job.
        """
        job_name = name or getattr(fn, "__name__", "job")

        async def _run() -> None:
            try:
                if delay_seconds > 0:
                    await asyncio.sleep(delay_seconds)
                await fn(*args)
            except asyncio.CancelledError:
                logger.info("tasks.job_cancelled", job=job_name)
                raise
            except Exception:
                logger.exception("tasks.job_failed", job=job_name)

        task = asyncio.create_task(_run(), name=job_name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug("tasks.job_scheduled", job=job_name, delay_seconds=delay_seconds)
        return task

    async def wait_idle(self) -> None:
        """Wait until every pending job, including ones they schedule, has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all pending jobs and wait for them to settle."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("tasks.runner_shutdown", cancelled=len(tasks))
