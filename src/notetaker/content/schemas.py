"""Pydantic v2 schemas for generated content, social connections and automations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.notetaker.events.schemas import MeetingEvent


# ── Enums ────────────────────────────────────────────────────────────────────


class SocialPlatform(str, Enum):
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


class PostStatus(str, Enum):
    """Generated post lifecycle. posted and failed are terminal."""

    DRAFT = "draft"
    POSTED = "posted"
    FAILED = "failed"


# ── Social Connections ───────────────────────────────────────────────────────


class SocialConnectionCreate(BaseModel):
    """Tokens and profile info captured by the platform OAuth callback."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    profile_id: str | None = None
    profile_name: str | None = None
    page_id: str | None = None
    page_access_token: str | None = None
    page_name: str | None = None
    auto_post: bool = False


class SocialConnection(SocialConnectionCreate):
    id: str
    user_id: str
    platform: SocialPlatform


# ── Automations ──────────────────────────────────────────────────────────────


class AutomationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: str = "Generate post"
    platform: str = Field(description="Target label, e.g. 'LinkedIn post'")
    description: str = Field(description="Instructions for the generated post")
    example: str | None = None
    is_active: bool = True


class AutomationUpdate(BaseModel):
    name: str | None = None
    type: str | None = None
    platform: str | None = None
    description: str | None = None
    example: str | None = None
    is_active: bool | None = None


class Automation(AutomationCreate):
    id: str
    user_id: str

    def matches(self, platform: SocialPlatform) -> bool:
        """Active automations match when their platform label names the platform."""
        return self.is_active and platform.value in self.platform.lower()

    def target_platform(self) -> SocialPlatform:
        """Platform a manually generated post is drafted for; Facebook unless LinkedIn is named."""
        if SocialPlatform.LINKEDIN.value in self.platform.lower():
            return SocialPlatform.LINKEDIN
        return SocialPlatform.FACEBOOK


# ── Generated Content ────────────────────────────────────────────────────────


class FollowUpEmail(BaseModel):
    id: str
    event_id: str
    user_id: str
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GeneratedPost(BaseModel):
    id: str
    event_id: str
    user_id: str
    automation_id: str | None = None
    platform: SocialPlatform
    content: str
    status: PostStatus = PostStatus.DRAFT
    posted_at: datetime | None = None
    platform_post_id: str | None = None
    created_at: datetime | None = None


# ── Pipeline Work Items ──────────────────────────────────────────────────────


class AutoPostingWorkItem(BaseModel):
    """An ended, transcribed event and the content it still lacks."""

    event: MeetingEvent
    needs_follow_up_email: bool
    needs_social_media_posts: bool
    connections: list[SocialConnection] = Field(default_factory=list)


class AutoPostingSummary(BaseModel):
    """Counts from one pipeline pass."""

    events: int = 0
    emails_generated: int = 0
    posts_generated: int = 0
    posts_published: int = 0
    posts_failed: int = 0
