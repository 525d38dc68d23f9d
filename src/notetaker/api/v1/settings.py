"""Per-user bot settings endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from src.notetaker.api.deps import get_current_user_id, get_event_repository
from src.notetaker.events.schemas import UserBotSettings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


class BotSettingsUpdate(BaseModel):
    """Lead time is bounded here; the scheduler itself accepts any integer."""

    bot_join_minutes_before: int = Field(ge=0, le=60)


@router.get("/bot", response_model=UserBotSettings)
async def get_bot_settings(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> UserBotSettings:
    repo = get_event_repository(request)
    return await repo.get_user_bot_settings(user_id)


@router.put("/bot", response_model=UserBotSettings)
async def update_bot_settings(
    body: BotSettingsUpdate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> UserBotSettings:
    """Set how many minutes before start the bot joins (0-60)."""
    repo = get_event_repository(request)
    settings = await repo.upsert_user_bot_settings(user_id, body.bot_join_minutes_before)
    logger.info(
        "settings.bot_updated",
        user_id=user_id,
        bot_join_minutes_before=body.bot_join_minutes_before,
    )
    return settings
