"""Pydantic v2 schemas for calendar events and per-user bot settings.

MeetingEvent is the unit every other subsystem works on: the bot scheduler
reads and conditionally updates its bot fields, and the auto-posting
pipeline reads its transcript.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.notetaker.config import BotProvider


# ── Bot Status Values ────────────────────────────────────────────────────────
# bot_status also carries raw vendor codes (e.g. "in_call_recording"); these
# are the values this service writes itself.

BOT_STATUS_PENDING = "pending"
BOT_STATUS_IN_MEETING = "in_meeting"
BOT_STATUS_TRANSCRIBED = "transcribed"
BOT_STATUS_TEARDOWN_SCHEDULED = "teardown_scheduled"
BOT_STATUS_DELETED = "deleted"
BOT_STATUS_FAILED = "failed"


# ── Enums ────────────────────────────────────────────────────────────────────


class BotLifecycleState(str, Enum):
    """Lifecycle of the notetaker bot attached to an event."""

    NO_BOT = "no_bot"
    DISPATCHED = "dispatched"
    IN_MEETING = "in_meeting"
    TRANSCRIBED = "transcribed"
    TORN_DOWN = "torn_down"


class MeetingPlatform(str, Enum):
    """Video platform inferred from a meeting link."""

    ZOOM = "zoom"
    GOOGLE_MEET = "google-meet"
    MICROSOFT_TEAMS = "microsoft-teams"
    UNKNOWN = "unknown"


def detect_meeting_platform(meeting_link: str | None) -> MeetingPlatform:
    """Infer the video platform from a meeting URL."""
    if not meeting_link:
        return MeetingPlatform.UNKNOWN
    link = meeting_link.lower()
    if "zoom.us" in link or "zoom.com" in link:
        return MeetingPlatform.ZOOM
    if "teams.microsoft.com" in link or "teams.live.com" in link:
        return MeetingPlatform.MICROSOFT_TEAMS
    if "meet.google.com" in link or "meet.app" in link:
        return MeetingPlatform.GOOGLE_MEET
    return MeetingPlatform.UNKNOWN


# ── Event Models ─────────────────────────────────────────────────────────────


class MeetingEvent(BaseModel):
    """A calendar event with its notetaker bot state."""

    id: str
    user_id: str
    calendar_id: str | None = None
    google_event_id: str
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    attendees: list[str] = Field(default_factory=list)
    meeting_link: str | None = None
    notetaker_requested: bool = False
    bot_provider: BotProvider | None = None
    bot_id: str | None = None
    bot_status: str | None = None
    transcription: str | None = None
    teardown_scheduled_at: datetime | None = None
    bot_deleted_at: datetime | None = None
    updated: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def bot_state(self) -> BotLifecycleState:
        if self.bot_id is None:
            return BotLifecycleState.NO_BOT
        if self.bot_deleted_at is not None:
            return BotLifecycleState.TORN_DOWN
        if self.transcription is not None:
            return BotLifecycleState.TRANSCRIBED
        if self.bot_status in (None, BOT_STATUS_PENDING):
            return BotLifecycleState.DISPATCHED
        return BotLifecycleState.IN_MEETING

    @property
    def meeting_platform(self) -> MeetingPlatform:
        return detect_meeting_platform(self.meeting_link)


class CalendarEventData(BaseModel):
    """One upstream calendar event as delivered by calendar sync."""

    google_event_id: str
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    attendees: list[str] = Field(default_factory=list)
    meeting_link: str | None = None
    updated: str


class CalendarSyncResult(BaseModel):
    """Counts from one calendar sync pass."""

    inserted: int = 0
    updated: int = 0
    deleted: int = 0


# ── User Settings ────────────────────────────────────────────────────────────


class UserBotSettings(BaseModel):
    """Per-user bot preferences. Read with defaults when no row exists."""

    user_id: str
    bot_join_minutes_before: int = 5
