"""Initial notetaker schema: events, user settings and generated content.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates:
- events: Calendar events with notetaker bot state and transcript
- user_settings: Per-user bot lead time
- social_media_connections: OAuth tokens per user and platform
- automations: User-defined post generation instructions
- generated_posts: Posts generated from transcripts
- follow_up_emails: One follow-up email per event

No foreign key constraints (referential integrity via repositories).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── events table ─────────────────────────────────────────────────────

    op.create_table(
        "events",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(200), nullable=False),
        sa.Column("calendar_id", sa.String(200), nullable=True),
        sa.Column("google_event_id", sa.String(300), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "attendees_data",
            sa.JSON(),
            server_default=sa.text("'[]'::json"),
            nullable=False,
        ),
        sa.Column("meeting_link", sa.String(1000), nullable=True),
        sa.Column(
            "notetaker_requested",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("bot_provider", sa.String(50), nullable=True),
        sa.Column("bot_id", sa.String(200), nullable=True),
        sa.Column("bot_status", sa.String(100), nullable=True),
        sa.Column("transcription", sa.Text(), nullable=True),
        sa.Column("teardown_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bot_deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated", sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "calendar_id",
            "google_event_id",
            name="uq_event_user_calendar_google_event",
        ),
    )
    op.create_index("ix_events_user_id", "events", ["user_id"])
    op.create_index("ix_events_dispatch", "events", ["notetaker_requested", "start_time"])
    op.create_index("ix_events_bot_id", "events", ["bot_id"])

    # ── user_settings table ──────────────────────────────────────────────

    op.create_table(
        "user_settings",
        sa.Column("user_id", sa.String(200), primary_key=True),
        sa.Column(
            "bot_join_minutes_before",
            sa.Integer(),
            server_default=sa.text("5"),
            nullable=False,
        ),
        *_timestamps(),
    )

    # ── social_media_connections table ───────────────────────────────────

    op.create_table(
        "social_media_connections",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(200), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("profile_id", sa.String(200), nullable=True),
        sa.Column("profile_name", sa.String(300), nullable=True),
        sa.Column("page_id", sa.String(200), nullable=True),
        sa.Column("page_access_token", sa.Text(), nullable=True),
        sa.Column("page_name", sa.String(300), nullable=True),
        sa.Column(
            "auto_post",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "platform", name="uq_connection_user_platform"),
    )
    op.create_index(
        "ix_social_media_connections_user_id", "social_media_connections", ["user_id"]
    )

    # ── automations table ────────────────────────────────────────────────

    op.create_table(
        "automations",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(200), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("platform", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("example", sa.Text(), nullable=True),
        sa.Column(
            "is_active",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_automations_user_id", "automations", ["user_id"])

    # ── generated_posts table ────────────────────────────────────────────

    op.create_table(
        "generated_posts",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("event_id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(200), nullable=False),
        sa.Column("automation_id", UUID(as_uuid=True), nullable=True),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'draft'"),
            nullable=False,
        ),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("platform_post_id", sa.String(300), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_generated_posts_event_id", "generated_posts", ["event_id"])

    # ── follow_up_emails table ───────────────────────────────────────────

    op.create_table(
        "follow_up_emails",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("event_id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("event_id", name="uq_follow_up_email_event"),
    )


def downgrade() -> None:
    op.drop_table("follow_up_emails")
    op.drop_index("ix_generated_posts_event_id", table_name="generated_posts")
    op.drop_table("generated_posts")
    op.drop_index("ix_automations_user_id", table_name="automations")
    op.drop_table("automations")
    op.drop_index(
        "ix_social_media_connections_user_id", table_name="social_media_connections"
    )
    op.drop_table("social_media_connections")
    op.drop_table("user_settings")
    op.drop_index("ix_events_bot_id", table_name="events")
    op.drop_index("ix_events_dispatch", table_name="events")
    op.drop_index("ix_events_user_id", table_name="events")
    op.drop_table("events")
