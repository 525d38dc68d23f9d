"""Event store persistence models.

- MeetingEventModel: Calendar events plus notetaker bot state and transcript
- UserSettingsModel: Per-user bot preferences (lazily created on first write)

No foreign key constraints; referential integrity is enforced by the
repositories.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.notetaker.core.database import Base


class MeetingEventModel(Base):
    """Calendar event synced from Google Calendar.

    bot_provider/bot_id are written together once on first dispatch and the
    transcription column is written at most once; both via conditional
    UPDATEs in EventRepository.
    """

    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "calendar_id",
            "google_event_id",
            name="uq_event_user_calendar_google_event",
        ),
        Index("ix_events_dispatch", "notetaker_requested", "start_time"),
        Index("ix_events_bot_id", "bot_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    calendar_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    google_event_id: Mapped[str] = mapped_column(String(300), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attendees_data: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    meeting_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    notetaker_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    bot_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bot_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bot_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transcription: Mapped[str | None] = mapped_column(Text, nullable=True)
    teardown_scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    bot_deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class UserSettingsModel(Base):
    """Per-user bot preferences."""

    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    bot_join_minutes_before: Mapped[int] = mapped_column(
        Integer, default=5, server_default=text("5")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
