"""REST endpoints for calendar events and their notetaker bots.

All endpoints require a Bearer JWT; the ``sub`` claim must own the event.
Manual dispatch is queued and answered with 202 before the vendor call.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.notetaker.api.deps import (
    get_auto_posting_pipeline,
    get_bot_router,
    get_bot_scheduler,
    get_content_repository,
    get_current_user_id,
    get_event_repository,
    to_http_exception,
)
from src.notetaker.content.schemas import GeneratedPost
from src.notetaker.core.errors import NotetakerError
from src.notetaker.events.schemas import CalendarEventData, CalendarSyncResult, MeetingEvent
from src.notetaker.events.transcript import parse_transcript_text

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["events"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class EventResponse(BaseModel):
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    attendees: list[str] = Field(default_factory=list)
    meeting_link: str | None = None
    meeting_platform: str
    notetaker_requested: bool
    bot_provider: str | None = None
    bot_id: str | None = None
    bot_status: str | None = None
    bot_state: str
    has_transcript: bool


class NotetakerToggleRequest(BaseModel):
    notetaker_requested: bool


class TranscriptResponse(BaseModel):
    event_id: str
    text: str


class PostResponse(BaseModel):
    id: str
    platform: str
    content: str
    status: str
    automation_id: str | None = None
    posted_at: datetime | None = None
    platform_post_id: str | None = None


class EventContentResponse(BaseModel):
    event_id: str
    follow_up_email: str | None = None
    posts: list[PostResponse] = Field(default_factory=list)


class FollowUpEmailResponse(BaseModel):
    event_id: str
    content: str


class GeneratePostRequest(BaseModel):
    automation_id: str


class CalendarSyncRequest(BaseModel):
    events: list[CalendarEventData]


def _event_to_response(e: MeetingEvent) -> EventResponse:
    return EventResponse(
        id=e.id,
        title=e.title,
        start_time=e.start_time,
        end_time=e.end_time,
        attendees=e.attendees,
        meeting_link=e.meeting_link,
        meeting_platform=e.meeting_platform.value,
        notetaker_requested=e.notetaker_requested,
        bot_provider=e.bot_provider.value if e.bot_provider else None,
        bot_id=e.bot_id,
        bot_status=e.bot_status,
        bot_state=e.bot_state.value,
        has_transcript=e.transcription is not None,
    )


def _post_to_response(p: GeneratedPost) -> PostResponse:
    return PostResponse(
        id=p.id,
        platform=p.platform.value,
        content=p.content,
        status=p.status.value,
        automation_id=p.automation_id,
        posted_at=p.posted_at,
        platform_post_id=p.platform_post_id,
    )


async def _get_owned_event(repo, event_id: str, user_id: str) -> MeetingEvent:
    event = await repo.get_event(event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event not found: {event_id}",
        )
    if event.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Event belongs to another user",
        )
    return event


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/events", response_model=list[EventResponse])
async def list_events(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[EventResponse]:
    """List the caller's events ordered by start time."""
    repo = get_event_repository(request)
    events = await repo.list_events_for_user(user_id)
    return [_event_to_response(e) for e in events]


@router.post("/events/{event_id}/notetaker", response_model=EventResponse)
async def toggle_notetaker(
    event_id: str,
    body: NotetakerToggleRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> EventResponse:
    """Ask for (or cancel) a notetaker bot on an event.

    Cancelling does not recall a bot that was already dispatched.
    """
    repo = get_event_repository(request)
    await _get_owned_event(repo, event_id, user_id)
    event = await repo.set_notetaker_requested(event_id, body.notetaker_requested)
    logger.info(
        "events.notetaker_toggled",
        event_id=event_id,
        notetaker_requested=body.notetaker_requested,
    )
    return _event_to_response(event)


@router.post("/events/{event_id}/bot", status_code=status.HTTP_202_ACCEPTED)
async def dispatch_bot(
    event_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> dict:
    """Queue an immediate bot dispatch for the caller's event."""
    bot_router = get_bot_router(request)
    try:
        return await bot_router.request_manual_dispatch(event_id, user_id)
    except NotetakerError as exc:
        raise to_http_exception(exc) from exc


@router.get("/events/{event_id}/transcript", response_model=TranscriptResponse)
async def get_transcript(
    event_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> TranscriptResponse:
    """Readable transcript text ("Speaker: words" per line)."""
    repo = get_event_repository(request)
    event = await _get_owned_event(repo, event_id, user_id)
    if event.transcription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No transcript yet for event {event_id}",
        )
    return TranscriptResponse(event_id=event.id, text=parse_transcript_text(event.transcription))


@router.get("/events/{event_id}/content", response_model=EventContentResponse)
async def get_event_content(
    event_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> EventContentResponse:
    """Follow-up email and generated posts for an event."""
    repo = get_event_repository(request)
    content_repo = get_content_repository(request)
    event = await _get_owned_event(repo, event_id, user_id)

    email = await content_repo.get_follow_up_email(event.id)
    posts = await content_repo.list_posts_for_event(event.id)
    return EventContentResponse(
        event_id=event.id,
        follow_up_email=email.content if email else None,
        posts=[_post_to_response(p) for p in posts],
    )


@router.post("/events/{event_id}/transcript/retrieve", response_model=EventResponse)
async def retrieve_transcript(
    event_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> EventResponse:
    """Ask the bot's vendor for the transcript now instead of waiting for a tick."""
    scheduler = get_bot_scheduler(request)
    try:
        event = await scheduler.retrieve_transcript(event_id, user_id)
    except NotetakerError as exc:
        raise to_http_exception(exc) from exc
    return _event_to_response(event)


@router.post("/events/{event_id}/follow-up-email", response_model=FollowUpEmailResponse)
async def generate_follow_up_email(
    event_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> FollowUpEmailResponse:
    """Generate the follow-up email, replacing any earlier one."""
    pipeline = get_auto_posting_pipeline(request)
    try:
        email = await pipeline.generate_follow_up_email(event_id, user_id)
    except NotetakerError as exc:
        raise to_http_exception(exc) from exc
    return FollowUpEmailResponse(event_id=email.event_id, content=email.content)


@router.post(
    "/events/{event_id}/posts",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_post(
    event_id: str,
    body: GeneratePostRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> PostResponse:
    """Draft a post for the event from one of the caller's automations."""
    pipeline = get_auto_posting_pipeline(request)
    try:
        post = await pipeline.generate_post_from_automation(
            event_id, body.automation_id, user_id
        )
    except NotetakerError as exc:
        raise to_http_exception(exc) from exc
    return _post_to_response(post)


@router.post("/calendars/{calendar_id}/sync", response_model=CalendarSyncResult)
async def sync_calendar(
    calendar_id: str,
    body: CalendarSyncRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> CalendarSyncResult:
    """Reconcile stored events with the calendar's current event list."""
    repo = get_event_repository(request)
    return await repo.sync_calendar_events(calendar_id, user_id, body.events)
