"""Event repository -- async persistence for calendar events and bot settings.

Provides EventRepository with the session_factory callable pattern.
Converts between SQLAlchemy models and Pydantic schemas.

The three write-once facts on an event are guarded by conditional UPDATEs
so concurrent writers (a scheduler tick racing a webhook) cannot overwrite
each other:
- bot_provider/bot_id: only while bot_id IS NULL
- transcription: only while transcription IS NULL
- teardown_scheduled_at: only while teardown_scheduled_at IS NULL
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.notetaker.config import BotProvider
from src.notetaker.core.errors import NotFoundError
from src.notetaker.events.models import MeetingEventModel, UserSettingsModel
from src.notetaker.events.schemas import (
    BOT_STATUS_DELETED,
    BOT_STATUS_FAILED,
    BOT_STATUS_TEARDOWN_SCHEDULED,
    BOT_STATUS_TRANSCRIBED,
    CalendarEventData,
    CalendarSyncResult,
    MeetingEvent,
    UserBotSettings,
)

logger = structlog.get_logger(__name__)

# Columns patch_event() may touch. Bot fields and transcription have their
# own conditional writers below.
_PATCHABLE_FIELDS = frozenset({
    "title",
    "description",
    "start_time",
    "end_time",
    "attendees",
    "meeting_link",
    "notetaker_requested",
    "bot_status",
})


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _model_to_event(model: MeetingEventModel) -> MeetingEvent:
    """Convert MeetingEventModel to MeetingEvent schema."""
    return MeetingEvent(
        id=str(model.id),
        user_id=model.user_id,
        calendar_id=model.calendar_id,
        google_event_id=model.google_event_id,
        title=model.title,
        description=model.description,
        start_time=model.start_time,
        end_time=model.end_time,
        attendees=list(model.attendees_data or []),
        meeting_link=model.meeting_link,
        notetaker_requested=bool(model.notetaker_requested),
        bot_provider=BotProvider(model.bot_provider) if model.bot_provider else None,
        bot_id=model.bot_id,
        bot_status=model.bot_status,
        transcription=model.transcription,
        teardown_scheduled_at=model.teardown_scheduled_at,
        bot_deleted_at=model.bot_deleted_at,
        updated=model.updated,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class EventRepository:
    """Async persistence for events and per-user bot settings.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_event(self, event_id: str) -> MeetingEvent | None:
        """Get an event by internal id. Unknown or malformed ids return None."""
        event_uuid = _parse_uuid(event_id)
        if event_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(MeetingEventModel, event_uuid)
            return _model_to_event(model) if model else None

    async def get_event_by_bot_id(self, bot_id: str) -> MeetingEvent | None:
        """Get the event a vendor bot was dispatched for (webhook lookup)."""
        async for session in self._session_factory():
            stmt = select(MeetingEventModel).where(MeetingEventModel.bot_id == bot_id)
            result = await session.execute(stmt)
            model = result.scalars().first()
            return _model_to_event(model) if model else None

    async def list_events_for_user(
        self, user_id: str, limit: int = 100
    ) -> list[MeetingEvent]:
        """List a user's events ordered by start time."""
        async for session in self._session_factory():
            stmt = (
                select(MeetingEventModel)
                .where(MeetingEventModel.user_id == user_id)
                .order_by(MeetingEventModel.start_time)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [_model_to_event(m) for m in result.scalars().all()]

    async def list_events_needing_bot_dispatch(self, now: datetime) -> list[MeetingEvent]:
        """Events the user wants recorded that have no bot and have not started."""
        async for session in self._session_factory():
            stmt = (
                select(MeetingEventModel)
                .where(
                    MeetingEventModel.notetaker_requested.is_(True),
                    MeetingEventModel.bot_id.is_(None),
                    MeetingEventModel.start_time > now,
                )
                .order_by(MeetingEventModel.start_time)
            )
            result = await session.execute(stmt)
            return [_model_to_event(m) for m in result.scalars().all()]

    async def list_events_needing_transcript_poll(
        self, now: datetime, lookback: timedelta = timedelta(hours=24)
    ) -> list[MeetingEvent]:
        """Started events with a bot whose teardown has not been scheduled yet.

        Events that ended more than ``lookback`` ago are no longer polled.
        """
        async for session in self._session_factory():
            stmt = (
                select(MeetingEventModel)
                .where(
                    MeetingEventModel.bot_id.is_not(None),
                    MeetingEventModel.start_time <= now,
                    MeetingEventModel.end_time >= now - lookback,
                    MeetingEventModel.teardown_scheduled_at.is_(None),
                )
                .order_by(MeetingEventModel.end_time)
            )
            result = await session.execute(stmt)
            return [_model_to_event(m) for m in result.scalars().all()]

    async def list_transcribed_events_ended_before(
        self, now: datetime, limit: int = 200
    ) -> list[MeetingEvent]:
        """Ended events that have a stored transcript (auto-posting candidates)."""
        async for session in self._session_factory():
            stmt = (
                select(MeetingEventModel)
                .where(
                    MeetingEventModel.end_time <= now,
                    MeetingEventModel.transcription.is_not(None),
                )
                .order_by(MeetingEventModel.end_time.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [_model_to_event(m) for m in result.scalars().all()]

    async def list_events_pending_teardown(self) -> list[MeetingEvent]:
        """Events whose teardown was scheduled but never completed."""
        async for session in self._session_factory():
            stmt = select(MeetingEventModel).where(
                MeetingEventModel.teardown_scheduled_at.is_not(None),
                MeetingEventModel.bot_deleted_at.is_(None),
            )
            result = await session.execute(stmt)
            return [_model_to_event(m) for m in result.scalars().all()]

    # ── Writes ───────────────────────────────────────────────────────────

    async def patch_event(self, event_id: str, **fields: Any) -> MeetingEvent:
        """Update plain event fields.

        Raises:
            NotFoundError: If the event does not exist.
            ValueError: If a field is not patchable.
        """
        unknown = set(fields) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not patchable: {sorted(unknown)}")

        values = dict(fields)
        if "attendees" in values:
            values["attendees_data"] = list(values.pop("attendees") or [])

        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            model = await session.get(MeetingEventModel, event_uuid) if event_uuid else None
            if model is None:
                raise NotFoundError(f"Event {event_id} not found")
            for key, value in values.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_event(model)

    async def set_notetaker_requested(self, event_id: str, requested: bool) -> MeetingEvent:
        return await self.patch_event(event_id, notetaker_requested=requested)

    async def update_bot_status(self, event_id: str, bot_status: str) -> None:
        """Mirror a vendor status onto the event.

        ``failed`` is terminal: later vendor statuses never overwrite it.
        """
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = (
                update(MeetingEventModel)
                .where(
                    MeetingEventModel.id == event_uuid,
                    or_(
                        MeetingEventModel.bot_status.is_(None),
                        MeetingEventModel.bot_status != BOT_STATUS_FAILED,
                    ),
                )
                .values(bot_status=bot_status)
            )
            await session.execute(stmt)
            await session.commit()

    async def record_bot_dispatch(
        self,
        event_id: str,
        provider: BotProvider,
        bot_id: str,
        bot_status: str,
    ) -> bool:
        """Attach a dispatched bot to the event if none is attached yet.

        Returns:
            True if this call attached the bot, False if another bot already was.
        """
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = (
                update(MeetingEventModel)
                .where(
                    MeetingEventModel.id == event_uuid,
                    MeetingEventModel.bot_id.is_(None),
                )
                .values(
                    bot_provider=provider.value,
                    bot_id=bot_id,
                    bot_status=bot_status,
                )
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def record_transcript_if_absent(self, event_id: str, transcript: str) -> bool:
        """Store the transcript unless one is already stored (first writer wins).

        Returns:
            True if this call stored the transcript.
        """
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = (
                update(MeetingEventModel)
                .where(
                    MeetingEventModel.id == event_uuid,
                    MeetingEventModel.transcription.is_(None),
                )
                .values(transcription=transcript, bot_status=BOT_STATUS_TRANSCRIBED)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def mark_teardown_scheduled(self, event_id: str, at: datetime) -> bool:
        """Claim the teardown for an event. Only the first caller gets True."""
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = (
                update(MeetingEventModel)
                .where(
                    MeetingEventModel.id == event_uuid,
                    MeetingEventModel.teardown_scheduled_at.is_(None),
                )
                .values(teardown_scheduled_at=at, bot_status=BOT_STATUS_TEARDOWN_SCHEDULED)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def mark_bot_deleted(self, event_id: str, at: datetime) -> None:
        event_uuid = _parse_uuid(event_id)
        async for session in self._session_factory():
            stmt = (
                update(MeetingEventModel)
                .where(MeetingEventModel.id == event_uuid)
                .values(bot_deleted_at=at, bot_status=BOT_STATUS_DELETED)
            )
            await session.execute(stmt)
            await session.commit()

    # ── Calendar Sync ────────────────────────────────────────────────────

    async def sync_calendar_events(
        self,
        calendar_id: str,
        user_id: str,
        events: list[CalendarEventData],
    ) -> CalendarSyncResult:
        """Reconcile stored events for a calendar with the upstream list.

        New events are inserted, events whose ``updated`` marker changed are
        refreshed (bot fields and transcript untouched), and events missing
        upstream are deleted.
        """
        result = CalendarSyncResult()
        async for session in self._session_factory():
            # Calendar ids such as "primary" repeat across users
            stmt = select(MeetingEventModel).where(
                MeetingEventModel.user_id == user_id,
                MeetingEventModel.calendar_id == calendar_id,
            )
            existing = {
                m.google_event_id: m
                for m in (await session.execute(stmt)).scalars().all()
            }

            seen: set[str] = set()
            for data in events:
                seen.add(data.google_event_id)
                model = existing.get(data.google_event_id)
                if model is None:
                    session.add(
                        MeetingEventModel(
                            user_id=user_id,
                            calendar_id=calendar_id,
                            google_event_id=data.google_event_id,
                            title=data.title,
                            description=data.description,
                            start_time=data.start_time,
                            end_time=data.end_time,
                            attendees_data=list(data.attendees),
                            meeting_link=data.meeting_link,
                            updated=data.updated,
                        )
                    )
                    result.inserted += 1
                elif model.updated != data.updated:
                    model.title = data.title
                    model.description = data.description
                    model.start_time = data.start_time
                    model.end_time = data.end_time
                    model.attendees_data = list(data.attendees)
                    model.meeting_link = data.meeting_link
                    model.updated = data.updated
                    result.updated += 1

            stale_ids = [m.id for gid, m in existing.items() if gid not in seen]
            if stale_ids:
                await session.execute(
                    delete(MeetingEventModel).where(MeetingEventModel.id.in_(stale_ids))
                )
                result.deleted = len(stale_ids)

            await session.commit()

        logger.info(
            "events.calendar_synced",
            calendar_id=calendar_id,
            user_id=user_id,
            inserted=result.inserted,
            updated=result.updated,
            deleted=result.deleted,
        )
        return result

    # ── User Bot Settings ────────────────────────────────────────────────

    async def get_user_bot_settings(self, user_id: str) -> UserBotSettings:
        """Read a user's settings, falling back to defaults when no row exists."""
        async for session in self._session_factory():
            model = await session.get(UserSettingsModel, user_id)
            if model is None:
                return UserBotSettings(user_id=user_id)
            return UserBotSettings(
                user_id=user_id,
                bot_join_minutes_before=model.bot_join_minutes_before,
            )

    async def upsert_user_bot_settings(
        self, user_id: str, bot_join_minutes_before: int
    ) -> UserBotSettings:
        """Create or update a user's settings row."""
        async for session in self._session_factory():
            model = await session.get(UserSettingsModel, user_id)
            if model is None:
                model = UserSettingsModel(
                    user_id=user_id,
                    bot_join_minutes_before=bot_join_minutes_before,
                )
                session.add(model)
            else:
                model.bot_join_minutes_before = bot_join_minutes_before
            await session.commit()
            return UserBotSettings(
                user_id=user_id,
                bot_join_minutes_before=bot_join_minutes_before,
            )
