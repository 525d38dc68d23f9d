#!/usr/bin/env python3
"""Run one scheduler pass from the command line.

Usage:
    uv run python scripts/run_tick.py                    # dispatch + poll + auto-post
    uv run python scripts/run_tick.py --task dispatch
    uv run python scripts/run_tick.py --task poll --provider recall

Uses DATABASE_URL and vendor keys from environment or .env file. Teardowns
scheduled during the pass are persisted and picked up by the next server
start (resume_pending_teardowns) unless --wait-teardowns is given.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import timedelta

# Ensure project root is on sys.path so we can import src.notetaker
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

TASK_CHOICES = ("dispatch", "poll", "auto-post", "all")


async def run(task: str, provider: str | None, wait_teardowns: bool) -> None:
    from src.notetaker.api.middleware.logging import configure_structlog
    from src.notetaker.bots.router import BotServiceRouter, create_provider_adapter
    from src.notetaker.config import BotProvider, get_settings, read_active_provider
    from src.notetaker.content.generation import ContentGenerator
    from src.notetaker.content.pipeline import AutoPostingPipeline
    from src.notetaker.content.publishing import SocialPublisher
    from src.notetaker.content.repository import ContentRepository
    from src.notetaker.core.database import close_db, get_session
    from src.notetaker.core.tasks import DelayedTaskRunner
    from src.notetaker.events.repository import EventRepository
    from src.notetaker.scheduling.loop import BotScheduler

    configure_structlog()
    settings = get_settings()

    events = EventRepository(session_factory=get_session)
    task_runner = DelayedTaskRunner()
    bot_router = BotServiceRouter(
        store=events,
        task_runner=task_runner,
        active_provider=BotProvider(provider) if provider else read_active_provider,
        adapter_factory=lambda p: create_provider_adapter(p, settings),
        bot_name=settings.BOT_NAME,
    )
    scheduler = BotScheduler(
        store=events,
        router=bot_router,
        task_runner=task_runner,
        teardown_delay_seconds=settings.BOT_TEARDOWN_DELAY_SECONDS,
        default_join_minutes=settings.DEFAULT_BOT_JOIN_MINUTES_BEFORE,
        poll_lookback=timedelta(hours=settings.TRANSCRIPT_POLL_LOOKBACK_HOURS),
    )

    try:
        if task in ("dispatch", "all"):
            dispatched = await scheduler.dispatch_due_bots()
            print(f"Dispatch pass: {dispatched} event(s) attempted")

        if task in ("poll", "all"):
            polled = await scheduler.poll_transcripts()
            print(f"Poll pass: {polled} event(s) polled")

        if task in ("auto-post", "all"):
            pipeline = AutoPostingPipeline(
                event_store=events,
                content_store=ContentRepository(session_factory=get_session),
                generator=ContentGenerator(settings),
                publisher=SocialPublisher(
                    linkedin_api_url=settings.LINKEDIN_API_URL,
                    facebook_graph_url=settings.FACEBOOK_GRAPH_URL,
                ),
            )
            summary = await pipeline.process_pending()
            print(
                f"Auto-posting pass: {summary.events} event(s), "
                f"{summary.emails_generated} email(s), {summary.posts_generated} post(s), "
                f"{summary.posts_published} published, {summary.posts_failed} failed"
            )

        pending = task_runner.pending_count
        if pending and wait_teardowns:
            print(
                f"Waiting for {pending} teardown(s) "
                f"({settings.BOT_TEARDOWN_DELAY_SECONDS}s delay)..."
            )
            await task_runner.wait_idle()
        elif pending:
            print(f"{pending} teardown(s) scheduled; they resume on next server start")
    finally:
        await task_runner.shutdown()
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one notetaker scheduler pass")
    parser.add_argument("--task", choices=TASK_CHOICES, default="all", help="Which pass to run")
    parser.add_argument(
        "--provider",
        choices=["recall", "meeting_baas"],
        default=None,
        help="Override BOT_PROVIDER for new dispatches",
    )
    parser.add_argument(
        "--wait-teardowns",
        action="store_true",
        help="Keep running until scheduled teardowns have executed",
    )
    args = parser.parse_args()

    asyncio.run(run(args.task, args.provider, args.wait_teardowns))


if __name__ == "__main__":
    main()
