"""Content repository -- async persistence for emails, posts, connections, automations.

Same session_factory pattern as EventRepository. Post status changes are
conditional on the post still being a draft, so posted/failed are terminal.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.notetaker.content.models import (
    AutomationModel,
    FollowUpEmailModel,
    GeneratedPostModel,
    SocialConnectionModel,
)
from src.notetaker.content.schemas import (
    Automation,
    AutomationCreate,
    AutomationUpdate,
    FollowUpEmail,
    GeneratedPost,
    PostStatus,
    SocialConnection,
    SocialConnectionCreate,
    SocialPlatform,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_uuid(value: str | None) -> uuid.UUID | None:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _model_to_connection(model: SocialConnectionModel) -> SocialConnection:
    return SocialConnection(
        id=str(model.id),
        user_id=model.user_id,
        platform=SocialPlatform(model.platform),
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expires_at=model.expires_at,
        profile_id=model.profile_id,
        profile_name=model.profile_name,
        page_id=model.page_id,
        page_access_token=model.page_access_token,
        page_name=model.page_name,
        auto_post=bool(model.auto_post),
    )


def _model_to_automation(model: AutomationModel) -> Automation:
    return Automation(
        id=str(model.id),
        user_id=model.user_id,
        name=model.name,
        type=model.type,
        platform=model.platform,
        description=model.description,
        example=model.example,
        is_active=bool(model.is_active),
    )


def _model_to_post(model: GeneratedPostModel) -> GeneratedPost:
    return GeneratedPost(
        id=str(model.id),
        event_id=str(model.event_id),
        user_id=model.user_id,
        automation_id=str(model.automation_id) if model.automation_id else None,
        platform=SocialPlatform(model.platform),
        content=model.content,
        status=PostStatus(model.status),
        posted_at=model.posted_at,
        platform_post_id=model.platform_post_id,
        created_at=model.created_at,
    )


def _model_to_email(model: FollowUpEmailModel) -> FollowUpEmail:
    return FollowUpEmail(
        id=str(model.id),
        event_id=str(model.event_id),
        user_id=model.user_id,
        content=model.content,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class ContentRepository:
    """Async persistence for generated content and its inputs.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Follow-up Emails ─────────────────────────────────────────────────

    async def get_follow_up_email(self, event_id: str) -> FollowUpEmail | None:
        event_uuid = _parse_uuid(event_id)
        if event_uuid is None:
            return None
        async for session in self._session_factory():
            stmt = select(FollowUpEmailModel).where(FollowUpEmailModel.event_id == event_uuid)
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_email(model) if model else None

    async def save_follow_up_email(
        self, event_id: str, user_id: str, content: str
    ) -> FollowUpEmail:
        """Create or replace the event's follow-up email."""
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = select(FollowUpEmailModel).where(FollowUpEmailModel.event_id == event_uuid)
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                model = FollowUpEmailModel(event_id=event_uuid, user_id=user_id, content=content)
                session.add(model)
            else:
                model.content = content
            await session.commit()
            await session.refresh(model)
            return _model_to_email(model)

    # ── Generated Posts ──────────────────────────────────────────────────

    async def list_posts_for_event(self, event_id: str) -> list[GeneratedPost]:
        event_uuid = _parse_uuid(event_id)
        if event_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(GeneratedPostModel)
                .where(GeneratedPostModel.event_id == event_uuid)
                .order_by(GeneratedPostModel.created_at)
            )
            return [_model_to_post(m) for m in (await session.execute(stmt)).scalars().all()]

    async def get_post(self, post_id: str) -> GeneratedPost | None:
        post_uuid = _parse_uuid(post_id)
        if post_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(GeneratedPostModel, post_uuid)
            return _model_to_post(model) if model else None

    async def save_generated_post(
        self,
        event_id: str,
        user_id: str,
        platform: SocialPlatform,
        content: str,
        automation_id: str | None = None,
    ) -> GeneratedPost:
        """Insert a new draft post."""
        async for session in self._session_factory():
            model = GeneratedPostModel(
                event_id=_parse_uuid(event_id),
                user_id=user_id,
                automation_id=_parse_uuid(automation_id),
                platform=platform.value,
                content=content,
                status=PostStatus.DRAFT.value,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_post(model)

    async def mark_post_posted(
        self, post_id: str, platform_post_id: str, posted_at: datetime
    ) -> bool:
        """draft -> posted. Returns False if the post was not a draft."""
        async for session in self._session_factory():
            stmt = (
                update(GeneratedPostModel)
                .where(
                    GeneratedPostModel.id == _parse_uuid(post_id),
                    GeneratedPostModel.status == PostStatus.DRAFT.value,
                )
                .values(
                    status=PostStatus.POSTED.value,
                    posted_at=posted_at,
                    platform_post_id=platform_post_id,
                )
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def mark_post_failed(self, post_id: str) -> bool:
        """draft -> failed. Returns False if the post was not a draft."""
        async for session in self._session_factory():
            stmt = (
                update(GeneratedPostModel)
                .where(
                    GeneratedPostModel.id == _parse_uuid(post_id),
                    GeneratedPostModel.status == PostStatus.DRAFT.value,
                )
                .values(status=PostStatus.FAILED.value)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    # ── Social Connections ───────────────────────────────────────────────

    async def list_connections(self, user_id: str) -> list[SocialConnection]:
        async for session in self._session_factory():
            stmt = select(SocialConnectionModel).where(SocialConnectionModel.user_id == user_id)
            return [
                _model_to_connection(m) for m in (await session.execute(stmt)).scalars().all()
            ]

    async def get_connection(
        self, user_id: str, platform: SocialPlatform
    ) -> SocialConnection | None:
        async for session in self._session_factory():
            stmt = select(SocialConnectionModel).where(
                SocialConnectionModel.user_id == user_id,
                SocialConnectionModel.platform == platform.value,
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_connection(model) if model else None

    async def upsert_connection(
        self, user_id: str, platform: SocialPlatform, data: SocialConnectionCreate
    ) -> SocialConnection:
        """Create or replace the user's connection for a platform."""
        async for session in self._session_factory():
            stmt = select(SocialConnectionModel).where(
                SocialConnectionModel.user_id == user_id,
                SocialConnectionModel.platform == platform.value,
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                model = SocialConnectionModel(user_id=user_id, platform=platform.value)
                session.add(model)
            for key, value in data.model_dump().items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            logger.info("content.connection_saved", user_id=user_id, platform=platform.value)
            return _model_to_connection(model)

    async def delete_connection(self, user_id: str, platform: SocialPlatform) -> bool:
        async for session in self._session_factory():
            stmt = delete(SocialConnectionModel).where(
                SocialConnectionModel.user_id == user_id,
                SocialConnectionModel.platform == platform.value,
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0

    # ── Automations ──────────────────────────────────────────────────────

    async def list_automations(self, user_id: str) -> list[Automation]:
        async for session in self._session_factory():
            stmt = (
                select(AutomationModel)
                .where(AutomationModel.user_id == user_id)
                .order_by(AutomationModel.created_at)
            )
            return [
                _model_to_automation(m) for m in (await session.execute(stmt)).scalars().all()
            ]

    async def get_automation(self, automation_id: str) -> Automation | None:
        automation_uuid = _parse_uuid(automation_id)
        if automation_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(AutomationModel, automation_uuid)
            return _model_to_automation(model) if model else None

    async def create_automation(self, user_id: str, data: AutomationCreate) -> Automation:
        async for session in self._session_factory():
            model = AutomationModel(user_id=user_id, **data.model_dump())
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_automation(model)

    async def update_automation(
        self, automation_id: str, data: AutomationUpdate
    ) -> Automation | None:
        automation_uuid = _parse_uuid(automation_id)
        if automation_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(AutomationModel, automation_uuid)
            if model is None:
                return None
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_automation(model)

    async def delete_automation(self, automation_id: str) -> bool:
        async for session in self._session_factory():
            stmt = delete(AutomationModel).where(
                AutomationModel.id == _parse_uuid(automation_id)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0
