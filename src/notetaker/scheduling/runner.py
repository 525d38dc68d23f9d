"""Background loops for the bot scheduler and the auto-posting pipeline.

Task functions are defined separately from the loop driver so tests and the
run_tick script can call them directly. Each task runs in its own asyncio
loop, so an iteration never overlaps the previous one of the same task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.notetaker.config import Settings

logger = structlog.get_logger(__name__)

TaskFn = Callable[[], Awaitable[Any]]


def setup_notetaker_tasks(bot_scheduler, auto_posting_pipeline=None) -> dict[str, TaskFn]:
    """Build the periodic task functions.

    Task definitions:
    1. dispatch_bots: Dispatch bots for events entering their join window
    2. poll_transcripts: Capture transcripts and schedule teardowns
    3. process_auto_posting: Generate follow-up emails and social posts
       (only when a pipeline is configured)

    Args:
        bot_scheduler: BotScheduler instance.
        auto_posting_pipeline: AutoPostingPipeline instance, or None.

    Returns:
        Dict mapping task name to async callable.
    """

    async def dispatch_bots_task():
        """Dispatch due bots -- runs every BOT_DISPATCH_INTERVAL_SECONDS."""
        return await bot_scheduler.dispatch_due_bots()

    async def poll_transcripts_task():
        """Poll vendors for transcripts -- runs every TRANSCRIPT_POLL_INTERVAL_SECONDS."""
        return await bot_scheduler.poll_transcripts()

    tasks: dict[str, TaskFn] = {
        "dispatch_bots": dispatch_bots_task,
        "poll_transcripts": poll_transcripts_task,
    }

    if auto_posting_pipeline is not None:

        async def process_auto_posting_task():
            """Generate and publish content for transcribed events."""
            return await auto_posting_pipeline.process_pending()

        tasks["process_auto_posting"] = process_auto_posting_task

    return tasks


def task_intervals(settings: Settings) -> dict[str, int]:
    """Interval in seconds per task name."""
    return {
        "dispatch_bots": settings.BOT_DISPATCH_INTERVAL_SECONDS,
        "poll_transcripts": settings.TRANSCRIPT_POLL_INTERVAL_SECONDS,
        "process_auto_posting": settings.AUTO_POSTING_INTERVAL_SECONDS,
    }


async def run_periodic(name: str, fn: TaskFn, interval: float) -> None:
    """Call ``fn`` every ``interval`` seconds until cancelled.

    The first call happens immediately. Errors are logged and the loop
    carries on with the next iteration.
    """
    while True:
        try:
            await fn()
        except asyncio.CancelledError:
            logger.info("scheduler.task_cancelled", task=name)
            raise
        except Exception:
            logger.exception("scheduler.task_loop_error", task=name)
        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("scheduler.task_cancelled", task=name)
            raise


def start_scheduler_background(
    tasks: dict[str, TaskFn],
    app_state: Any,
    intervals: dict[str, int],
) -> list[asyncio.Task]:
    """Start each task as a background asyncio loop.

    Args:
        tasks: Dict mapping task name to async callable (from setup_notetaker_tasks).
        app_state: FastAPI app.state object for storing task references.
        intervals: Seconds between iterations per task name.

    Returns:
        The created background tasks.
    """
    background_tasks: list[asyncio.Task] = []

    for task_name, task_fn in tasks.items():
        interval = intervals.get(task_name, 60)
        bg_task = asyncio.create_task(
            run_periodic(task_name, task_fn, interval),
            name=f"notetaker_scheduler_{task_name}",
        )
        background_tasks.append(bg_task)

    # Store task references on app_state for cleanup during shutdown
    app_state.scheduler_tasks = background_tasks

    logger.info(
        "scheduler.background_tasks_started",
        task_count=len(background_tasks),
        tasks=list(tasks.keys()),
    )
    return background_tasks


async def stop_scheduler_background(app_state: Any) -> None:
    """Cancel the loops started by start_scheduler_background."""
    tasks: list[asyncio.Task] = getattr(app_state, "scheduler_tasks", None) or []
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    app_state.scheduler_tasks = []
    logger.info("scheduler.background_tasks_stopped", task_count=len(tasks))
