"""structlog configuration and per-request access logging.

The request id (incoming ``X-Request-ID`` or a fresh UUID) and the caller's
user id are bound to structlog contextvars for the lifetime of the request,
so every log line emitted while handling it (repository calls, vendor
requests, manual dispatches) carries them. Background loops run outside
any request and log without those keys.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.notetaker.config import Environment, get_settings
from src.notetaker.core.security import bearer_token, user_id_from_token

logger = structlog.get_logger(__name__)

# Per-request vendor and LLM chatter drowns out the lifecycle events
_QUIET_LOGGERS = ("httpx", "httpcore", "LiteLLM", "LiteLLM Router")


def configure_structlog() -> None:
    """JSON lines in production, console rendering everywhere else."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _caller(request: Request) -> str | None:
    token = bearer_token(request)
    if token is None:
        return None
    try:
        return user_id_from_token(token)
    except HTTPException:
        # The auth dependency rejects it; the access log just omits the id
        return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request context and logs one ``http.request`` line per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, user_id=_caller(request))
        started = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http.request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
            raise

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        if response.status_code >= 500:
            emit = logger.error
        elif response.status_code >= 400:
            emit = logger.warning
        else:
            emit = logger.info
        emit(
            "http.request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=elapsed_ms,
        )
        structlog.contextvars.clear_contextvars()
        return response
