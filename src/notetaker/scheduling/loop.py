"""BotScheduler -- moves events through the notetaker bot lifecycle.

Each tick:
1. Dispatch: events with the notetaker requested and no bot get a bot once
   ``now`` enters the join window ``[start - lead, start)``.
2. Poll: started events with a bot are checked for a transcript. The first
   transcript returned is stored; later ones are dropped.
3. Teardown: once the vendor reports the meeting ended and a transcript is
   stored, vendor data deletion is scheduled after a grace delay.

Failures are isolated per event: one bad event is logged and the tick moves
on. Nothing is retried inside a tick; the next tick picks the event up again.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog

from src.notetaker.config import BotProvider
from src.notetaker.core.errors import AuthorizationError, InvalidStateError, NotFoundError
from src.notetaker.core.monitoring import (
    bot_teardowns_total,
    scheduler_tick_duration_seconds,
    transcripts_recorded_total,
)
from src.notetaker.events.schemas import MeetingEvent

if TYPE_CHECKING:
    from src.notetaker.bots.router import BotServiceRouter
    from src.notetaker.core.tasks import TaskScheduler
    from src.notetaker.events.repository import EventRepository

logger = structlog.get_logger(__name__)

DEFAULT_JOIN_MINUTES_BEFORE = 5
DEFAULT_TEARDOWN_DELAY_SECONDS = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_join_minutes(configured: int | None, default: int = DEFAULT_JOIN_MINUTES_BEFORE) -> int:
    """Lead time to use for dispatch. Unset, zero and negative values mean the default."""
    if not configured or configured < 0:
        return default
    return configured


def is_within_join_window(
    start_time: datetime, now: datetime, join_minutes_before: int
) -> bool:
    """True iff ``start - lead <= now < start``."""
    join_time = start_time - timedelta(minutes=join_minutes_before)
    return join_time <= now < start_time


class BotScheduler:
    """Drives dispatch, transcript capture and teardown for all events.

    Args:
        store: Event repository.
        router: BotServiceRouter for vendor calls.
        task_runner: Runs the delayed teardown jobs.
        teardown_delay_seconds: Grace period between "ended with transcript"
            and vendor data deletion.
        default_join_minutes: Lead time when the user has none configured.
        poll_lookback: How long after an event's end it keeps being polled.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: EventRepository,
        router: BotServiceRouter,
        task_runner: TaskScheduler,
        teardown_delay_seconds: float = DEFAULT_TEARDOWN_DELAY_SECONDS,
        default_join_minutes: int = DEFAULT_JOIN_MINUTES_BEFORE,
        poll_lookback: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._router = router
        self._task_runner = task_runner
        self._teardown_delay_seconds = teardown_delay_seconds
        self._default_join_minutes = default_join_minutes
        self._poll_lookback = poll_lookback
        self._clock = clock

    # ── Tick ─────────────────────────────────────────────────────────────

    async def run_tick(self, now: datetime | None = None) -> dict[str, int]:
        """Run one dispatch pass followed by one poll pass."""
        now = now or self._clock()
        dispatched = await self.dispatch_due_bots(now)
        polled = await self.poll_transcripts(now)
        return {"dispatched": dispatched, "polled": polled}

    # ── Dispatch ─────────────────────────────────────────────────────────

    async def dispatch_due_bots(self, now: datetime | None = None) -> int:
        """Dispatch bots for events whose join window has opened.

        Returns:
            Number of events a dispatch was attempted for.
        """
        now = now or self._clock()
        started = time.perf_counter()
        events = await self._store.list_events_needing_bot_dispatch(now)
        join_minutes_by_user: dict[str, int] = {}
        attempted = 0

        for event in events:
            try:
                if event.bot_id is not None:
                    continue
                if event.user_id not in join_minutes_by_user:
                    user_settings = await self._store.get_user_bot_settings(event.user_id)
                    join_minutes_by_user[event.user_id] = effective_join_minutes(
                        user_settings.bot_join_minutes_before,
                        self._default_join_minutes,
                    )
                lead = join_minutes_by_user[event.user_id]
                if not is_within_join_window(event.start_time, now, lead):
                    continue

                attempted += 1
                await self._router.dispatch_for_event(event.id)
            except Exception:
                logger.exception(
                    "scheduler.dispatch_failed",
                    event_id=event.id,
                    user_id=event.user_id,
                )

        scheduler_tick_duration_seconds.labels(task="dispatch").observe(
            time.perf_counter() - started
        )
        logger.info(
            "scheduler.dispatch_pass_complete",
            candidates=len(events),
            attempted=attempted,
        )
        return attempted

    # ── Poll ─────────────────────────────────────────────────────────────

    async def poll_transcripts(self, now: datetime | None = None) -> int:
        """Check every started event with a bot for a transcript.

        Returns:
            Number of events polled without error.
        """
        now = now or self._clock()
        started = time.perf_counter()
        events = await self._store.list_events_needing_transcript_poll(
            now, lookback=self._poll_lookback
        )
        polled = 0

        for event in events:
            try:
                await self.process_event_poll(event)
                polled += 1
            except Exception:
                logger.exception(
                    "scheduler.poll_failed",
                    event_id=event.id,
                    bot_id=event.bot_id,
                )

        scheduler_tick_duration_seconds.labels(task="poll").observe(
            time.perf_counter() - started
        )
        logger.info("scheduler.poll_pass_complete", candidates=len(events), polled=polled)
        return polled

    async def process_event_poll(self, event: MeetingEvent) -> None:
        """Poll the vendor once for ``event`` and apply what it reports."""
        if not event.bot_id:
            return
        data = await self._router.fetch_transcript_data(
            event.bot_id, provider=event.bot_provider
        )

        if event.transcription is None:
            if data.transcript:
                await self.record_transcript(event.id, data.transcript, source="poll")
            elif data.status and data.status != event.bot_status:
                await self._store.update_bot_status(event.id, data.status)

        if data.has_ended:
            await self.schedule_teardown(event.id)

    async def record_transcript(
        self, event_id: str, transcript: str, source: str = "poll"
    ) -> bool:
        """Store a transcript if the event has none yet.

        Shared by polling and webhook deliveries so both follow the same
        first-writer-wins rule.
        """
        stored = await self._store.record_transcript_if_absent(event_id, transcript)
        if stored:
            event = await self._store.get_event(event_id)
            provider = event.bot_provider.value if event and event.bot_provider else "unknown"
            transcripts_recorded_total.labels(provider=provider, source=source).inc()
            logger.info("bot.transcript_recorded", event_id=event_id, source=source)
        else:
            logger.info("bot.transcript_already_recorded", event_id=event_id, source=source)
        return stored

    async def retrieve_transcript(self, event_id: str, user_id: str) -> MeetingEvent:
        """Poll once, on request, for one of the caller's events.

        Same path as a tick, so a transcript stored meanwhile by a poll or a
        webhook is kept. Returns the event as stored afterwards.

        Raises:
            NotFoundError: Unknown event.
            AuthorizationError: The event belongs to another user.
            InvalidStateError: No bot was dispatched, or its data was deleted.
            VendorError: The vendor refused the request.
        """
        event = await self._store.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        if event.user_id != user_id:
            raise AuthorizationError("Event belongs to another user")
        if event.transcription is not None:
            return event
        if not event.bot_id:
            raise InvalidStateError(f"No bot was dispatched for event {event_id}")
        if event.bot_deleted_at is not None:
            raise InvalidStateError(f"Bot data for event {event_id} was already deleted")

        await self.process_event_poll(event)
        logger.info("bot.transcript_retrieval_requested", event_id=event_id, bot_id=event.bot_id)
        return await self._store.get_event(event_id) or event

    # ── Teardown ─────────────────────────────────────────────────────────

    async def schedule_teardown(self, event_id: str) -> bool:
        """Schedule vendor data deletion if the transcript is safely stored.

        Re-reads the event so a transcript recorded earlier in this tick is
        seen. Returns True if a teardown job was queued by this call.
        """
        event = await self._store.get_event(event_id)
        if event is None or not event.bot_id:
            return False
        if event.transcription is None:
            logger.info(
                "bot.teardown_deferred_no_transcript",
                event_id=event_id,
                bot_id=event.bot_id,
            )
            return False

        claimed = await self._store.mark_teardown_scheduled(event_id, self._clock())
        if not claimed:
            return False

        self._task_runner.schedule(
            self._teardown_delay_seconds,
            self.teardown_bot,
            event.id,
            event.bot_id,
            event.bot_provider,
            name=f"bot_teardown_{event.id}",
        )
        logger.info(
            "bot.teardown_scheduled",
            event_id=event.id,
            bot_id=event.bot_id,
            delay_seconds=self._teardown_delay_seconds,
        )
        return True

    async def teardown_bot(
        self, event_id: str, bot_id: str, provider: BotProvider | None
    ) -> None:
        """Delayed job: delete vendor data for a bot whose transcript is stored.

        Best effort. Vendor failures are logged and not retried.
        """
        event = await self._store.get_event(event_id)
        if event is None or event.transcription is None:
            logger.info("bot.teardown_skipped", event_id=event_id, bot_id=bot_id)
            return

        provider_label = provider.value if provider else "unknown"
        try:
            await self._router.teardown(bot_id, provider=provider)
        except Exception:
            bot_teardowns_total.labels(provider=provider_label, outcome="error").inc()
            logger.exception("bot.teardown_failed", event_id=event_id, bot_id=bot_id)
            return

        await self._store.mark_bot_deleted(event_id, self._clock())
        bot_teardowns_total.labels(provider=provider_label, outcome="success").inc()
        logger.info("bot.torn_down", event_id=event_id, bot_id=bot_id)

    async def resume_pending_teardowns(self) -> int:
        """Re-queue teardowns whose in-process timer was lost to a restart."""
        events = await self._store.list_events_pending_teardown()
        for event in events:
            elapsed = (self._clock() - event.teardown_scheduled_at).total_seconds()
            self._task_runner.schedule(
                max(self._teardown_delay_seconds - elapsed, 0),
                self.teardown_bot,
                event.id,
                event.bot_id,
                event.bot_provider,
                name=f"bot_teardown_{event.id}",
            )
        if events:
            logger.info("bot.teardowns_resumed", count=len(events))
        return len(events)

    # ── Webhooks ─────────────────────────────────────────────────────────

    async def handle_vendor_event(
        self, bot_id: str, status: str | None, ended: bool = False
    ) -> bool:
        """Apply a vendor webhook delivery for ``bot_id``.

        Mirrors the status and, when the vendor says the call ended, runs the
        same poll step a tick would. Returns False for unknown bots.
        """
        event = await self._store.get_event_by_bot_id(bot_id)
        if event is None:
            logger.warning("bot.webhook_unknown_bot", bot_id=bot_id, status=status)
            return False

        if status and event.transcription is None and event.teardown_scheduled_at is None:
            await self._store.update_bot_status(event.id, status)

        if ended and event.teardown_scheduled_at is None:
            refreshed = await self._store.get_event(event.id) or event
            await self.process_event_poll(refreshed)

        logger.info(
            "bot.webhook_applied",
            event_id=event.id,
            bot_id=bot_id,
            status=status,
            ended=ended,
        )
        return True
