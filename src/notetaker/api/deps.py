"""FastAPI dependencies for authentication and app.state services.

Services are built once in the application lifespan and stored on
app.state. A missing service means its startup phase failed, which the
endpoints report as 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.notetaker.core.errors import (
    AuthorizationError,
    ConfigurationError,
    InvalidStateError,
    NotetakerError,
    NotFoundError,
    VendorError,
)
from src.notetaker.core.security import bearer_token, user_id_from_token


async def get_current_user_id(request: Request) -> str:
    """Extract the caller's user id from the Bearer JWT.

    Raises:
        HTTPException(401): If no valid token is provided.
    """
    token = bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id_from_token(token)


# Alias for cleaner endpoint signatures
require_auth = Depends(get_current_user_id)


# ── app.state Helpers ────────────────────────────────────────────────────────


def _from_state(request: Request, attr: str, label: str) -> Any:
    service = getattr(request.app.state, attr, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_event_repository(request: Request) -> Any:
    """Retrieve EventRepository from app.state, 503 if not available."""
    return _from_state(request, "event_repository", "Event repository")


def get_content_repository(request: Request) -> Any:
    """Retrieve ContentRepository from app.state, 503 if not available."""
    return _from_state(request, "content_repository", "Content repository")


def get_bot_router(request: Request) -> Any:
    """Retrieve BotServiceRouter from app.state, 503 if not available."""
    return _from_state(request, "bot_router", "Bot service router")


def get_bot_scheduler(request: Request) -> Any:
    """Retrieve BotScheduler from app.state, 503 if not available."""
    return _from_state(request, "bot_scheduler", "Bot scheduler")


def get_auto_posting_pipeline(request: Request) -> Any:
    """Retrieve AutoPostingPipeline from app.state, 503 if not available."""
    return _from_state(request, "auto_posting_pipeline", "Auto-posting pipeline")


# ── Error Mapping ────────────────────────────────────────────────────────────


def to_http_exception(exc: NotetakerError) -> HTTPException:
    """Translate a domain error into the HTTP status the API reports."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, AuthorizationError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, InvalidStateError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ConfigurationError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, VendorError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))
