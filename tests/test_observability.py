"""Unit tests for observability: metrics, request logging and Sentry init.

Tests cover:
- Bot lifecycle counters incremented by the router and scheduler
- Vendor response counters from raise_for_vendor_status
- track_llm_call success and error accounting
- /metrics exposition and X-Request-ID propagation through create_app()
- Lifespan wiring surviving a failed teardown recovery
- init_sentry sample rate per environment
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from src.notetaker.config import BotProvider, Settings
from src.notetaker.core.errors import VendorError, raise_for_vendor_status
from src.notetaker.core.monitoring import init_sentry, track_llm_call


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


# ── Bot Lifecycle Metrics ────────────────────────────────────────────────────


class TestBotMetrics:
    """Counters move with the bot lifecycle."""

    @pytest.mark.asyncio
    async def test_dispatch_counter(self, bot_router, event_repo, make_event):
        labels = {"provider": "meeting_baas", "outcome": "success"}
        before = _sample("notetaker_bot_dispatches_total", labels)
        event = event_repo.add(make_event())

        await bot_router.dispatch_for_event(event.id)

        assert _sample("notetaker_bot_dispatches_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_transcript_counter_labels_source(self, scheduler, event_repo, make_event):
        labels = {"provider": "recall", "source": "webhook"}
        before = _sample("notetaker_transcripts_recorded_total", labels)
        event = event_repo.add(make_event(bot_provider=BotProvider.RECALL, bot_id="r-1"))

        await scheduler.record_transcript(event.id, "[]", source="webhook")
        await scheduler.record_transcript(event.id, "[]", source="webhook")

        assert _sample("notetaker_transcripts_recorded_total", labels) == before + 1

    def test_vendor_responses_grouped_by_status_class(self):
        labels = {"vendor": "recall", "status_class": "5xx"}
        before = _sample("notetaker_vendor_responses_total", labels)
        response = httpx.Response(503, request=httpx.Request("GET", "https://recall.test/bot/b1/"))

        with pytest.raises(VendorError):
            raise_for_vendor_status("recall", response)

        assert _sample("notetaker_vendor_responses_total", labels) == before + 1


# ── LLM Metrics ──────────────────────────────────────────────────────────────


class TestTrackLlmCall:
    """Tests for the track_llm_call context manager."""

    @pytest.mark.asyncio
    async def test_success_records_tokens(self):
        model = "test/model-success"

        async with track_llm_call(model, "social_post") as usage:
            usage["prompt_tokens"] = 12
            usage["completion_tokens"] = 4

        labels = {"model": model, "purpose": "social_post", "status": "success"}
        assert _sample("notetaker_llm_requests_total", labels) == 1
        assert _sample("notetaker_llm_tokens_total", {"model": model, "token_type": "prompt"}) == 12
        assert _sample("notetaker_llm_tokens_total", {"model": model, "token_type": "completion"}) == 4

    @pytest.mark.asyncio
    async def test_error_is_recorded_and_reraised(self):
        model = "test/model-error"

        with pytest.raises(RuntimeError):
            async with track_llm_call(model, "follow_up_email"):
                raise RuntimeError("rate limited")

        labels = {"model": model, "purpose": "follow_up_email", "status": "error"}
        assert _sample("notetaker_llm_requests_total", labels) == 1


# ── Application Wiring ───────────────────────────────────────────────────────


class TestAppObservability:
    """create_app() exposes /metrics and tags responses with a request id."""

    @pytest.mark.asyncio
    async def test_metrics_and_request_id(self):
        from src.notetaker.main import create_app

        app = create_app()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            health = await ac.get("/health", headers={"X-Request-ID": "req-123"})
            await ac.get("/events")
            metrics = await ac.get("/metrics")

        assert health.status_code == 200
        assert health.headers["X-Request-ID"] == "req-123"
        assert metrics.status_code == 200
        assert "notetaker_bot_dispatches_total" in metrics.text
        assert 'method="GET",endpoint="/events",status_code="401"' in metrics.text
        assert 'endpoint="/health"' not in metrics.text

    @pytest.mark.asyncio
    async def test_failed_teardown_recovery_keeps_scheduler(self):
        from fastapi import FastAPI

        from src.notetaker.main import lifespan

        app = FastAPI()
        settings = Settings(_env_file=None, SCHEDULER_ENABLED=False)
        with (
            patch("src.notetaker.main.get_settings", return_value=settings),
            patch("src.notetaker.main.init_db", AsyncMock()),
            patch("src.notetaker.main.close_db", AsyncMock()),
            patch(
                "src.notetaker.scheduling.loop.BotScheduler.resume_pending_teardowns",
                AsyncMock(side_effect=RuntimeError("database unavailable")),
            ) as resume,
        ):
            async with lifespan(app):
                assert app.state.bot_scheduler is not None
                assert app.state.bot_router is not None
                assert app.state.auto_posting_pipeline is not None

        resume.assert_awaited_once()


# ── Sentry ───────────────────────────────────────────────────────────────────


class TestInitSentry:
    @pytest.mark.parametrize("environment, rate", [("production", 0.1), ("development", 1.0)])
    def test_sample_rate_per_environment(self, environment, rate):
        with patch("src.notetaker.core.monitoring.sentry_sdk.init") as mock_init:
            init_sentry(dsn="https://key@sentry.example.com/1", environment=environment)

        assert mock_init.call_args.kwargs["traces_sample_rate"] == rate
        assert mock_init.call_args.kwargs["environment"] == environment
