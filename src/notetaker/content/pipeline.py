"""Auto-posting pipeline: follow-up emails and social posts from transcripts.

Runs after the scheduling loop has stored a transcript. The "needs
processing" checks read existing content, so a second pass over an event
that was already processed generates nothing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog

from src.notetaker.content.generation import ContentGenerator
from src.notetaker.content.prompts import (
    AUTOMATION_POST_SYSTEM_PROMPT,
    FOLLOW_UP_EMAIL_SYSTEM_PROMPT,
    build_automation_post_prompt,
    build_default_post_prompt,
    build_follow_up_email_prompt,
    default_post_system_prompt,
)
from src.notetaker.content.publishing import SocialPublisher
from src.notetaker.content.repository import ContentRepository
from src.notetaker.content.schemas import (
    Automation,
    AutoPostingSummary,
    AutoPostingWorkItem,
    FollowUpEmail,
    GeneratedPost,
    PostStatus,
    SocialConnection,
    SocialPlatform,
)
from src.notetaker.core.errors import (
    AuthorizationError,
    ConfigurationError,
    InvalidStateError,
    NotFoundError,
)
from src.notetaker.core.monitoring import follow_up_emails_total, social_posts_total
from src.notetaker.events.repository import EventRepository
from src.notetaker.events.schemas import MeetingEvent
from src.notetaker.events.transcript import parse_transcript_text

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutoPostingPipeline:
    """Generates and optionally publishes content for transcribed meetings.

    Args:
        event_store: Source of ended, transcribed events.
        content_store: Emails, posts, connections and automations.
        generator: LLM text generation.
        publisher: Social platform publishing.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        event_store: EventRepository,
        content_store: ContentRepository,
        generator: ContentGenerator,
        publisher: SocialPublisher,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._events = event_store
        self._content = content_store
        self._generator = generator
        self._publisher = publisher
        self._clock = clock

    # ── Selection ────────────────────────────────────────────────────────

    async def find_events_needing_processing(
        self, now: datetime | None = None
    ) -> list[AutoPostingWorkItem]:
        """Ended, transcribed events that still lack an email or any posts.

        An event needs social posts only if it has none yet and the user has
        at least one connected platform.
        """
        now = now or self._clock()
        events = await self._events.list_transcribed_events_ended_before(now)

        items: list[AutoPostingWorkItem] = []
        connections_by_user: dict[str, list[SocialConnection]] = {}
        for event in events:
            if event.user_id not in connections_by_user:
                connections_by_user[event.user_id] = await self._content.list_connections(
                    event.user_id
                )
            connections = connections_by_user[event.user_id]

            email = await self._content.get_follow_up_email(event.id)
            posts = await self._content.list_posts_for_event(event.id)

            needs_email = email is None
            needs_posts = not posts and bool(connections)
            if not needs_email and not needs_posts:
                continue

            items.append(
                AutoPostingWorkItem(
                    event=event,
                    needs_follow_up_email=needs_email,
                    needs_social_media_posts=needs_posts,
                    connections=connections,
                )
            )
        return items

    # ── Processing ───────────────────────────────────────────────────────

    async def process_pending(self, now: datetime | None = None) -> AutoPostingSummary:
        """One pipeline pass. Failures are isolated per event and per platform."""
        items = await self.find_events_needing_processing(now)
        summary = AutoPostingSummary()

        for item in items:
            summary.events += 1
            try:
                await self.process_event(item, summary)
            except Exception:
                logger.exception("auto_posting.event_failed", event_id=item.event.id)

        if items:
            logger.info("auto_posting.pass_complete", **summary.model_dump())
        return summary

    async def process_event(
        self, item: AutoPostingWorkItem, summary: AutoPostingSummary | None = None
    ) -> None:
        summary = summary if summary is not None else AutoPostingSummary()
        event = item.event
        transcript_text = parse_transcript_text(event.transcription)

        if item.needs_follow_up_email:
            try:
                await self._write_follow_up_email(event, transcript_text)
                summary.emails_generated += 1
            except Exception:
                logger.exception("auto_posting.email_failed", event_id=event.id)

        if not (item.needs_social_media_posts and item.connections):
            return

        automations = await self._content.list_automations(event.user_id)
        for connection in item.connections:
            try:
                post = await self._generate_post(event, transcript_text, connection, automations)
                summary.posts_generated += 1
            except Exception:
                logger.exception(
                    "auto_posting.post_generation_failed",
                    event_id=event.id,
                    platform=connection.platform.value,
                )
                continue

            if not connection.auto_post:
                continue
            if await self._publish(post, connection):
                summary.posts_published += 1
            else:
                summary.posts_failed += 1

    async def _generate_post(
        self,
        event: MeetingEvent,
        transcript_text: str,
        connection: SocialConnection,
        automations: list[Automation],
    ) -> GeneratedPost:
        platform = connection.platform
        automation = next((a for a in automations if a.matches(platform)), None)
        return await self._draft_post(event, transcript_text, platform, automation)

    async def _write_follow_up_email(
        self, event: MeetingEvent, transcript_text: str
    ) -> FollowUpEmail:
        content = await self._generator.generate(
            build_follow_up_email_prompt(event, transcript_text),
            system_prompt=FOLLOW_UP_EMAIL_SYSTEM_PROMPT,
            purpose="follow_up_email",
        )
        email = await self._content.save_follow_up_email(event.id, event.user_id, content)
        follow_up_emails_total.inc()
        logger.info("auto_posting.email_generated", event_id=event.id)
        return email

    async def _draft_post(
        self,
        event: MeetingEvent,
        transcript_text: str,
        platform: SocialPlatform,
        automation: Automation | None,
    ) -> GeneratedPost:
        if automation is not None:
            content = await self._generator.generate(
                build_automation_post_prompt(event, transcript_text, automation),
                system_prompt=AUTOMATION_POST_SYSTEM_PROMPT,
                purpose="automation_post",
            )
        else:
            content = await self._generator.generate(
                build_default_post_prompt(event, transcript_text, platform),
                system_prompt=default_post_system_prompt(platform),
                purpose="social_post",
            )

        post = await self._content.save_generated_post(
            event.id,
            event.user_id,
            platform,
            content,
            automation_id=automation.id if automation else None,
        )
        social_posts_total.labels(platform=platform.value, status=PostStatus.DRAFT.value).inc()
        logger.info(
            "auto_posting.post_generated",
            event_id=event.id,
            post_id=post.id,
            platform=platform.value,
            automation_id=post.automation_id,
        )
        return post

    async def _publish(self, post: GeneratedPost, connection: SocialConnection) -> bool:
        """Publish a draft and record the outcome. Never raises."""
        try:
            platform_post_id = await self._publisher.publish(post.content, connection)
        except Exception:
            logger.exception(
                "auto_posting.publish_failed",
                post_id=post.id,
                platform=post.platform.value,
            )
            await self._content.mark_post_failed(post.id)
            social_posts_total.labels(
                platform=post.platform.value, status=PostStatus.FAILED.value
            ).inc()
            return False

        await self._content.mark_post_posted(post.id, platform_post_id, self._clock())
        social_posts_total.labels(
            platform=post.platform.value, status=PostStatus.POSTED.value
        ).inc()
        logger.info(
            "auto_posting.post_published",
            post_id=post.id,
            platform=post.platform.value,
            platform_post_id=platform_post_id,
        )
        return True

    # ── On-demand Generation ─────────────────────────────────────────────

    async def _owned_transcribed_event(self, event_id: str, user_id: str) -> MeetingEvent:
        event = await self._events.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        if event.user_id != user_id:
            raise AuthorizationError("Event belongs to another user")
        if event.transcription is None:
            raise InvalidStateError(f"Event {event_id} has no transcript yet")
        return event

    async def generate_follow_up_email(self, event_id: str, user_id: str) -> FollowUpEmail:
        """Create or replace the follow-up email for one of the caller's events.

        Raises:
            NotFoundError: Unknown event.
            AuthorizationError: The event belongs to another user.
            InvalidStateError: The event has no transcript.
        """
        event = await self._owned_transcribed_event(event_id, user_id)
        return await self._write_follow_up_email(event, parse_transcript_text(event.transcription))

    async def generate_post_from_automation(
        self, event_id: str, automation_id: str, user_id: str
    ) -> GeneratedPost:
        """Draft a new post for the caller's event following one of their automations.

        The post targets the platform the automation names and is always
        saved as a draft, even when an earlier draft exists.

        Raises:
            NotFoundError: Unknown event or automation.
            AuthorizationError: The event or automation belongs to another user.
            InvalidStateError: The event has no transcript.
        """
        event = await self._owned_transcribed_event(event_id, user_id)
        automation = await self._content.get_automation(automation_id)
        if automation is None:
            raise NotFoundError(f"Automation {automation_id} not found")
        if automation.user_id != user_id:
            raise AuthorizationError("Automation belongs to another user")

        return await self._draft_post(
            event,
            parse_transcript_text(event.transcription),
            automation.target_platform(),
            automation,
        )

    # ── Manual Publish ───────────────────────────────────────────────────

    async def publish_post(self, post_id: str, user_id: str) -> GeneratedPost:
        """Publish one of the caller's draft posts.

        Raises:
            NotFoundError: Unknown post.
            AuthorizationError: The post belongs to another user.
            InvalidStateError: The post is already posted or failed.
            ConfigurationError: The user has no connection for the platform.
            VendorError: The platform rejected the post (post is marked failed).
        """
        post = await self._content.get_post(post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        if post.user_id != user_id:
            raise AuthorizationError("Post belongs to another user")
        if post.status is not PostStatus.DRAFT:
            raise InvalidStateError(f"Post {post_id} is already {post.status.value}")

        connection = await self._content.get_connection(user_id, post.platform)
        if connection is None:
            raise ConfigurationError(f"No {post.platform.value} connection for this user")

        try:
            platform_post_id = await self._publisher.publish(post.content, connection)
        except Exception:
            await self._content.mark_post_failed(post.id)
            social_posts_total.labels(
                platform=post.platform.value, status=PostStatus.FAILED.value
            ).inc()
            logger.warning("auto_posting.manual_publish_failed", post_id=post.id)
            raise

        posted_at = self._clock()
        await self._content.mark_post_posted(post.id, platform_post_id, posted_at)
        social_posts_total.labels(
            platform=post.platform.value, status=PostStatus.POSTED.value
        ).inc()
        logger.info("auto_posting.post_published", post_id=post.id, manual=True)
        return post.model_copy(
            update={
                "status": PostStatus.POSTED,
                "platform_post_id": platform_post_id,
                "posted_at": posted_at,
            }
        )
