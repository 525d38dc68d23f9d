"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan wiring for the repositories, bot router, scheduler and auto-posting
pipeline, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.notetaker.config import get_settings, read_active_provider
from src.notetaker.core.database import close_db, get_session, init_db
from src.notetaker.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.notetaker.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.notetaker.api.v1.router import router as v1_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, wire services, start background loops."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Repositories and task runner ────────────────────────────────────
    # Each phase has its own try/except so one failure leaves the others
    # usable; endpoints answer 503 for whatever is missing.

    try:
        from src.notetaker.content.repository import ContentRepository
        from src.notetaker.core.tasks import DelayedTaskRunner
        from src.notetaker.events.repository import EventRepository

        app.state.event_repository = EventRepository(session_factory=get_session)
        app.state.content_repository = ContentRepository(session_factory=get_session)
        app.state.task_runner = DelayedTaskRunner()
        log.info("notetaker.repositories_initialized")
    except Exception:
        log.warning("notetaker.repositories_init_failed", exc_info=True)
        app.state.event_repository = None
        app.state.content_repository = None
        app.state.task_runner = None

    # ── Bot router and scheduler ────────────────────────────────────────
    # Vendor keys are checked on first use, so a missing key only fails
    # the dispatches that need it.

    try:
        from src.notetaker.bots.router import BotServiceRouter, create_provider_adapter
        from src.notetaker.scheduling.loop import BotScheduler

        bot_router = BotServiceRouter(
            store=app.state.event_repository,
            task_runner=app.state.task_runner,
            active_provider=read_active_provider,
            adapter_factory=lambda provider: create_provider_adapter(provider, settings),
            bot_name=settings.BOT_NAME,
        )
        bot_scheduler = BotScheduler(
            store=app.state.event_repository,
            router=bot_router,
            task_runner=app.state.task_runner,
            teardown_delay_seconds=settings.BOT_TEARDOWN_DELAY_SECONDS,
            default_join_minutes=settings.DEFAULT_BOT_JOIN_MINUTES_BEFORE,
            poll_lookback=timedelta(hours=settings.TRANSCRIPT_POLL_LOOKBACK_HOURS),
        )
        app.state.bot_router = bot_router
        app.state.bot_scheduler = bot_scheduler
        log.info("notetaker.bot_scheduler_initialized", provider=read_active_provider().value)
    except Exception:
        log.warning("notetaker.bot_scheduler_init_failed", exc_info=True)
        app.state.bot_router = None
        app.state.bot_scheduler = None

    # ── Teardown recovery ───────────────────────────────────────────────
    # A failed recovery query leaves the scheduler running; affected bots
    # are torn down on the next restart.

    if app.state.bot_scheduler is not None:
        try:
            await app.state.bot_scheduler.resume_pending_teardowns()
        except Exception:
            log.warning("notetaker.teardown_recovery_failed", exc_info=True)

    # ── Auto-posting pipeline ───────────────────────────────────────────

    try:
        from src.notetaker.content.generation import ContentGenerator
        from src.notetaker.content.pipeline import AutoPostingPipeline
        from src.notetaker.content.publishing import SocialPublisher

        app.state.auto_posting_pipeline = AutoPostingPipeline(
            event_store=app.state.event_repository,
            content_store=app.state.content_repository,
            generator=ContentGenerator(settings),
            publisher=SocialPublisher(
                linkedin_api_url=settings.LINKEDIN_API_URL,
                facebook_graph_url=settings.FACEBOOK_GRAPH_URL,
            ),
        )
        log.info("notetaker.auto_posting_initialized")
    except Exception:
        log.warning("notetaker.auto_posting_init_failed", exc_info=True)
        app.state.auto_posting_pipeline = None

    # ── Background loops ────────────────────────────────────────────────

    if settings.SCHEDULER_ENABLED and app.state.bot_scheduler is not None:
        try:
            from src.notetaker.scheduling.runner import (
                setup_notetaker_tasks,
                start_scheduler_background,
                task_intervals,
            )

            tasks = setup_notetaker_tasks(
                app.state.bot_scheduler,
                app.state.auto_posting_pipeline,
            )
            start_scheduler_background(tasks, app.state, task_intervals(settings))
        except Exception:
            log.warning("notetaker.scheduler_start_failed", exc_info=True)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    from src.notetaker.scheduling.runner import stop_scheduler_background

    await stop_scheduler_background(app.state)

    task_runner = getattr(app.state, "task_runner", None)
    if task_runner is not None:
        await task_runner.shutdown()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Meeting Notetaker API",
        version="0.1.0",
        description="Calendar-driven meeting bots, transcripts and follow-up content",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
