"""Endpoints for generated posts, social connections and automations.

Posting is manual here unless a connection has ``auto_post`` set, in which
case the auto-posting pipeline publishes drafts as soon as they exist.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from src.notetaker.api.deps import (
    get_auto_posting_pipeline,
    get_content_repository,
    get_current_user_id,
    to_http_exception,
)
from src.notetaker.content.schemas import (
    Automation,
    AutomationCreate,
    AutomationUpdate,
    GeneratedPost,
    SocialConnection,
    SocialConnectionCreate,
    SocialPlatform,
)
from src.notetaker.core.errors import NotetakerError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["content"])


# ── Posts ────────────────────────────────────────────────────────────────────


@router.post("/posts/{post_id}/publish", response_model=GeneratedPost)
async def publish_post(
    post_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> GeneratedPost:
    """Publish one of the caller's draft posts to its platform.

    A platform rejection marks the post failed and answers 502.
    """
    pipeline = get_auto_posting_pipeline(request)
    try:
        return await pipeline.publish_post(post_id, user_id)
    except NotetakerError as exc:
        raise to_http_exception(exc) from exc


# ── Social Connections ───────────────────────────────────────────────────────


class ConnectionResponse(BaseModel):
    """A connection without its tokens."""

    id: str
    platform: SocialPlatform
    profile_name: str | None = None
    page_name: str | None = None
    expires_at: datetime | None = None
    auto_post: bool


def _connection_to_response(c: SocialConnection) -> ConnectionResponse:
    return ConnectionResponse(
        id=c.id,
        platform=c.platform,
        profile_name=c.profile_name,
        page_name=c.page_name,
        expires_at=c.expires_at,
        auto_post=c.auto_post,
    )


@router.get("/connections", response_model=list[ConnectionResponse])
async def list_connections(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[ConnectionResponse]:
    repo = get_content_repository(request)
    return [_connection_to_response(c) for c in await repo.list_connections(user_id)]


@router.put("/connections/{platform}", response_model=ConnectionResponse)
async def save_connection(
    platform: SocialPlatform,
    body: SocialConnectionCreate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> ConnectionResponse:
    """Store tokens from the platform's OAuth callback."""
    repo = get_content_repository(request)
    connection = await repo.upsert_connection(user_id, platform, body)
    return _connection_to_response(connection)


@router.delete("/connections/{platform}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    platform: SocialPlatform,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> None:
    repo = get_content_repository(request)
    if not await repo.delete_connection(user_id, platform):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {platform.value} connection",
        )


# ── Automations ──────────────────────────────────────────────────────────────


async def _get_owned_automation(repo, automation_id: str, user_id: str) -> Automation:
    automation = await repo.get_automation(automation_id)
    if automation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Automation not found: {automation_id}",
        )
    if automation.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Automation belongs to another user",
        )
    return automation


@router.get("/automations", response_model=list[Automation])
async def list_automations(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[Automation]:
    repo = get_content_repository(request)
    return await repo.list_automations(user_id)


@router.post("/automations", response_model=Automation, status_code=status.HTTP_201_CREATED)
async def create_automation(
    body: AutomationCreate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Automation:
    repo = get_content_repository(request)
    automation = await repo.create_automation(user_id, body)
    logger.info("content.automation_created", automation_id=automation.id, user_id=user_id)
    return automation


@router.patch("/automations/{automation_id}", response_model=Automation)
async def update_automation(
    automation_id: str,
    body: AutomationUpdate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Automation:
    repo = get_content_repository(request)
    await _get_owned_automation(repo, automation_id, user_id)
    updated = await repo.update_automation(automation_id, body)
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Automation not found: {automation_id}",
        )
    return updated


@router.delete("/automations/{automation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_automation(
    automation_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> None:
    repo = get_content_repository(request)
    await _get_owned_automation(repo, automation_id, user_id)
    await repo.delete_automation(automation_id)
