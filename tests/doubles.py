"""In-memory test doubles shared across test modules.

- InMemoryEventRepository / InMemoryContentRepository with the same
  conditional-write semantics as the SQL repositories
- RecordingTaskRunner that records schedule() calls instead of sleeping
- FakeBotAdapter with scripted vendor responses
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from src.notetaker.bots.base import BotProviderAdapter, DispatchResult, TranscriptData
from src.notetaker.config import BotProvider
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
from src.notetaker.core.errors import NotFoundError
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

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ── Event Store Double ───────────────────────────────────────────────────────


class InMemoryEventRepository:
    """In-memory EventRepository for testing without database."""

    def __init__(self) -> None:
        self._events: dict[str, MeetingEvent] = {}
        self._settings: dict[str, UserBotSettings] = {}

    def add(self, event: MeetingEvent) -> MeetingEvent:
        self._events[event.id] = event
        return event

    def _update(self, event_id: str, **fields: Any) -> MeetingEvent:
        event = self._events[event_id].model_copy(update=fields)
        self._events[event_id] = event
        return event

    async def get_event(self, event_id: str) -> MeetingEvent | None:
        return self._events.get(event_id)

    async def get_event_by_bot_id(self, bot_id: str) -> MeetingEvent | None:
        for event in self._events.values():
            if event.bot_id == bot_id:
                return event
        return None

    async def list_events_for_user(self, user_id: str, limit: int = 100) -> list[MeetingEvent]:
        events = [e for e in self._events.values() if e.user_id == user_id]
        return sorted(events, key=lambda e: e.start_time)[:limit]

    async def list_events_needing_bot_dispatch(self, now: datetime) -> list[MeetingEvent]:
        return [
            e for e in self._events.values()
            if e.notetaker_requested and e.bot_id is None and e.start_time > now
        ]

    async def list_events_needing_transcript_poll(
        self, now: datetime, lookback: timedelta = timedelta(hours=24)
    ) -> list[MeetingEvent]:
        return [
            e for e in self._events.values()
            if e.bot_id is not None
            and e.start_time <= now
            and e.end_time >= now - lookback
            and e.teardown_scheduled_at is None
        ]

    async def list_transcribed_events_ended_before(
        self, now: datetime, limit: int = 200
    ) -> list[MeetingEvent]:
        return [
            e for e in self._events.values()
            if e.end_time <= now and e.transcription is not None
        ][:limit]

    async def list_events_pending_teardown(self) -> list[MeetingEvent]:
        return [
            e for e in self._events.values()
            if e.teardown_scheduled_at is not None and e.bot_deleted_at is None
        ]

    async def patch_event(self, event_id: str, **fields: Any) -> MeetingEvent:
        if event_id not in self._events:
            raise NotFoundError(f"Event {event_id} not found")
        return self._update(event_id, **fields)

    async def set_notetaker_requested(self, event_id: str, requested: bool) -> MeetingEvent:
        return await self.patch_event(event_id, notetaker_requested=requested)

    async def update_bot_status(self, event_id: str, bot_status: str) -> None:
        current = self._events.get(event_id)
        if current is not None and current.bot_status != BOT_STATUS_FAILED:
            self._update(event_id, bot_status=bot_status)

    async def record_bot_dispatch(
        self, event_id: str, provider: BotProvider, bot_id: str, bot_status: str
    ) -> bool:
        event = self._events.get(event_id)
        if event is None or event.bot_id is not None:
            return False
        self._update(event_id, bot_provider=provider, bot_id=bot_id, bot_status=bot_status)
        return True

    async def record_transcript_if_absent(self, event_id: str, transcript: str) -> bool:
        event = self._events.get(event_id)
        if event is None or event.transcription is not None:
            return False
        self._update(event_id, transcription=transcript, bot_status=BOT_STATUS_TRANSCRIBED)
        return True

    async def mark_teardown_scheduled(self, event_id: str, at: datetime) -> bool:
        event = self._events.get(event_id)
        if event is None or event.teardown_scheduled_at is not None:
            return False
        self._update(
            event_id, teardown_scheduled_at=at, bot_status=BOT_STATUS_TEARDOWN_SCHEDULED
        )
        return True

    async def mark_bot_deleted(self, event_id: str, at: datetime) -> None:
        if event_id in self._events:
            self._update(event_id, bot_deleted_at=at, bot_status=BOT_STATUS_DELETED)

    async def sync_calendar_events(
        self, calendar_id: str, user_id: str, events: list[CalendarEventData]
    ) -> CalendarSyncResult:
        result = CalendarSyncResult()
        existing = {
            e.google_event_id: e
            for e in self._events.values()
            if e.user_id == user_id and e.calendar_id == calendar_id
        }
        seen = set()
        for data in events:
            seen.add(data.google_event_id)
            current = existing.get(data.google_event_id)
            fields = data.model_dump()
            if current is None:
                self.add(
                    MeetingEvent(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        calendar_id=calendar_id,
                        **fields,
                    )
                )
                result.inserted += 1
            elif current.updated != data.updated:
                self._update(current.id, **fields)
                result.updated += 1
        for gid, event in existing.items():
            if gid not in seen:
                del self._events[event.id]
                result.deleted += 1
        return result

    async def get_user_bot_settings(self, user_id: str) -> UserBotSettings:
        return self._settings.get(user_id) or UserBotSettings(user_id=user_id)

    async def upsert_user_bot_settings(
        self, user_id: str, bot_join_minutes_before: int
    ) -> UserBotSettings:
        settings = UserBotSettings(
            user_id=user_id, bot_join_minutes_before=bot_join_minutes_before
        )
        self._settings[user_id] = settings
        return settings


# ── Content Store Double ─────────────────────────────────────────────────────


class InMemoryContentRepository:
    """In-memory ContentRepository for testing without database."""

    def __init__(self) -> None:
        self.emails: dict[str, FollowUpEmail] = {}
        self.posts: dict[str, GeneratedPost] = {}
        self.connections: dict[tuple[str, SocialPlatform], SocialConnection] = {}
        self.automations: dict[str, Automation] = {}

    async def get_follow_up_email(self, event_id: str) -> FollowUpEmail | None:
        return self.emails.get(event_id)

    async def save_follow_up_email(self, event_id: str, user_id: str, content: str) -> FollowUpEmail:
        existing = self.emails.get(event_id)
        email = FollowUpEmail(
            id=existing.id if existing else str(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            content=content,
        )
        self.emails[event_id] = email
        return email

    async def list_posts_for_event(self, event_id: str) -> list[GeneratedPost]:
        return [p for p in self.posts.values() if p.event_id == event_id]

    async def get_post(self, post_id: str) -> GeneratedPost | None:
        return self.posts.get(post_id)

    async def save_generated_post(
        self,
        event_id: str,
        user_id: str,
        platform: SocialPlatform,
        content: str,
        automation_id: str | None = None,
    ) -> GeneratedPost:
        post = GeneratedPost(
            id=str(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            automation_id=automation_id,
            platform=platform,
            content=content,
        )
        self.posts[post.id] = post
        return post

    async def mark_post_posted(
        self, post_id: str, platform_post_id: str, posted_at: datetime
    ) -> bool:
        post = self.posts.get(post_id)
        if post is None or post.status is not PostStatus.DRAFT:
            return False
        self.posts[post_id] = post.model_copy(
            update={
                "status": PostStatus.POSTED,
                "platform_post_id": platform_post_id,
                "posted_at": posted_at,
            }
        )
        return True

    async def mark_post_failed(self, post_id: str) -> bool:
        post = self.posts.get(post_id)
        if post is None or post.status is not PostStatus.DRAFT:
            return False
        self.posts[post_id] = post.model_copy(update={"status": PostStatus.FAILED})
        return True

    async def list_connections(self, user_id: str) -> list[SocialConnection]:
        return [c for (uid, _), c in self.connections.items() if uid == user_id]

    async def get_connection(
        self, user_id: str, platform: SocialPlatform
    ) -> SocialConnection | None:
        return self.connections.get((user_id, platform))

    async def upsert_connection(
        self, user_id: str, platform: SocialPlatform, data: SocialConnectionCreate
    ) -> SocialConnection:
        existing = self.connections.get((user_id, platform))
        connection = SocialConnection(
            id=existing.id if existing else str(uuid.uuid4()),
            user_id=user_id,
            platform=platform,
            **data.model_dump(),
        )
        self.connections[(user_id, platform)] = connection
        return connection

    async def delete_connection(self, user_id: str, platform: SocialPlatform) -> bool:
        return self.connections.pop((user_id, platform), None) is not None

    async def list_automations(self, user_id: str) -> list[Automation]:
        return [a for a in self.automations.values() if a.user_id == user_id]

    async def get_automation(self, automation_id: str) -> Automation | None:
        return self.automations.get(automation_id)

    async def create_automation(self, user_id: str, data: AutomationCreate) -> Automation:
        automation = Automation(id=str(uuid.uuid4()), user_id=user_id, **data.model_dump())
        self.automations[automation.id] = automation
        return automation

    async def update_automation(
        self, automation_id: str, data: AutomationUpdate
    ) -> Automation | None:
        automation = self.automations.get(automation_id)
        if automation is None:
            return None
        updated = automation.model_copy(update=data.model_dump(exclude_unset=True))
        self.automations[automation_id] = updated
        return updated

    async def delete_automation(self, automation_id: str) -> bool:
        return self.automations.pop(automation_id, None) is not None


# ── Task Runner Double ───────────────────────────────────────────────────────


class RecordingTaskRunner:
    """Records schedule() calls; run_pending() executes them in order."""

    def __init__(self) -> None:
        self.scheduled: list[dict[str, Any]] = []

    def schedule(self, delay_seconds, fn, *args, name=None):
        self.scheduled.append(
            {"delay": delay_seconds, "fn": fn, "args": args, "name": name}
        )

    async def run_pending(self) -> None:
        jobs, self.scheduled = self.scheduled, []
        for job in jobs:
            await job["fn"](*job["args"])


# ── Bot Vendor Double ────────────────────────────────────────────────────────


class FakeBotAdapter(BotProviderAdapter):
    """Scripted vendor: records calls and returns configured data."""

    def __init__(self, name: str = "meeting_baas") -> None:
        self.name = name
        self.dispatch_calls: list[tuple[str, str]] = []
        self.teardown_calls: list[str] = []
        self.transcript_calls: list[str] = []
        self.status = "in_call_recording"
        self.transcript_data = TranscriptData(status="in_call_recording")
        self.dispatch_error: Exception | None = None
        self.teardown_error: Exception | None = None

    async def dispatch(self, meeting_url: str, display_name: str) -> DispatchResult:
        if self.dispatch_error is not None:
            raise self.dispatch_error
        self.dispatch_calls.append((meeting_url, display_name))
        return DispatchResult(
            bot_id=f"{self.name}-bot-{len(self.dispatch_calls)}",
            status="pending",
        )

    async def fetch_status(self, bot_id: str) -> str:
        return self.status

    async def fetch_transcript_data(self, bot_id: str) -> TranscriptData:
        self.transcript_calls.append(bot_id)
        return self.transcript_data

    async def teardown(self, bot_id: str) -> None:
        if self.teardown_error is not None:
            raise self.teardown_error
        self.teardown_calls.append(bot_id)
