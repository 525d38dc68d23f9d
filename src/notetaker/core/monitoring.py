"""Prometheus metrics and Sentry setup.

Every metric the service exports is declared here so /metrics has one
source of truth. Bot lifecycle counters are driven by the router and the
scheduler, content counters by the auto-posting pipeline, vendor counters
by ``core.errors.raise_for_vendor_status``.
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from prometheus_client import REGISTRY, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP ─────────────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "API requests by route pattern and status",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "API request latency by route pattern",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# ── Bot Lifecycle ────────────────────────────────────────────────────────────

bot_dispatches_total = Counter(
    "notetaker_bot_dispatches_total",
    "Bot dispatch attempts (success, duplicate, error)",
    ["provider", "outcome"],
)

transcripts_recorded_total = Counter(
    "notetaker_transcripts_recorded_total",
    "Transcripts persisted, by provider and whether a poll or webhook found them",
    ["provider", "source"],
)

bot_teardowns_total = Counter(
    "notetaker_bot_teardowns_total",
    "Vendor bot teardown attempts",
    ["provider", "outcome"],
)

scheduler_tick_duration_seconds = Histogram(
    "notetaker_scheduler_tick_duration_seconds",
    "Wall time of one dispatch or poll pass",
    ["task"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

vendor_responses_total = Counter(
    "notetaker_vendor_responses_total",
    "Responses from meeting-bot and social vendors by status class",
    ["vendor", "status_class"],
)

# ── Content ──────────────────────────────────────────────────────────────────

social_posts_total = Counter(
    "notetaker_social_posts_total",
    "Social posts by platform and the status they reached",
    ["platform", "status"],
)

follow_up_emails_total = Counter(
    "notetaker_follow_up_emails_total",
    "Follow-up emails generated",
)

llm_requests_total = Counter(
    "notetaker_llm_requests_total",
    "LLM completions by purpose and outcome",
    ["model", "purpose", "status"],
)

llm_request_duration_seconds = Histogram(
    "notetaker_llm_request_duration_seconds",
    "LLM completion latency",
    ["model", "purpose"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

llm_tokens_total = Counter(
    "notetaker_llm_tokens_total",
    "Tokens consumed by generated content",
    ["model", "token_type"],
)


def record_vendor_response(vendor: str, status_code: int) -> None:
    vendor_responses_total.labels(vendor=vendor, status_class=f"{status_code // 100}xx").inc()


@asynccontextmanager
async def track_llm_call(model: str, purpose: str) -> AsyncGenerator[dict[str, Any], None]:
    """Time one completion and count its tokens.

    The caller fills ``prompt_tokens`` / ``completion_tokens`` on the yielded
    dict once the response arrives. Exceptions are counted and re-raised.
    """
    usage: dict[str, Any] = {"prompt_tokens": 0, "completion_tokens": 0}
    started = time.perf_counter()
    outcome = "success"
    try:
        yield usage
    except Exception:
        outcome = "error"
        raise
    finally:
        llm_requests_total.labels(model=model, purpose=purpose, status=outcome).inc()
        llm_request_duration_seconds.labels(model=model, purpose=purpose).observe(
            time.perf_counter() - started
        )
        for token_type in ("prompt", "completion"):
            count = usage.get(f"{token_type}_tokens") or 0
            if count:
                llm_tokens_total.labels(model=model, token_type=token_type).inc(count)


# ── Middleware and Exposition ────────────────────────────────────────────────

# Scrapes and probes would dominate the request counters
_UNMETERED_PATHS = frozenset({"/metrics", "/health", "/health/ready"})


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts and times API requests, labelled by route pattern."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _UNMETERED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # Routing has run by now; unmatched paths collapse into one label
        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        http_requests_total.labels(
            method=request.method, endpoint=endpoint, status_code=str(response.status_code)
        ).inc()
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(
            elapsed
        )
        return response


def get_metrics_response() -> Response:
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


def init_sentry(dsn: str, environment: str) -> None:
    """Sentry with the Starlette/FastAPI integrations; full tracing outside production."""
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1 if environment == "production" else 1.0,
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )
