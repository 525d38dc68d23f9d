"""BotServiceRouter -- vendor selection and the single-event dispatch transition.

New dispatches go to the active provider, which is re-evaluated on every
call so a configuration switch applies from the next tick. Status,
transcript and teardown calls go to the provider stored on the event,
which never changes after the first dispatch.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from src.notetaker.bots.base import BotProviderAdapter, DispatchResult, TranscriptData
from src.notetaker.bots.meeting_baas_client import MeetingBaasAdapter
from src.notetaker.bots.recall_client import RecallAdapter
from src.notetaker.config import BotProvider, Settings
from src.notetaker.core.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
)
from src.notetaker.core.monitoring import bot_dispatches_total
from src.notetaker.events.schemas import MeetingEvent

if TYPE_CHECKING:
    from src.notetaker.core.tasks import TaskScheduler
    from src.notetaker.events.repository import EventRepository

logger = structlog.get_logger(__name__)


def create_provider_adapter(provider: BotProvider, settings: Settings) -> BotProviderAdapter:
    """Build the adapter for a provider from settings.

    Credentials are not validated here; adapters raise ConfigurationError on
    first use.
    """
    if provider is BotProvider.RECALL:
        return RecallAdapter(
            api_key=settings.RECALL_API_KEY,
            region=settings.RECALL_API_REGION,
        )
    if provider is BotProvider.MEETING_BAAS:
        return MeetingBaasAdapter(
            api_key=settings.MEETING_BAAS_API_KEY,
            base_url=settings.MEETING_BAAS_BASE_URL,
        )
    raise ValueError(f"Unsupported bot provider: {provider!r}")


class BotServiceRouter:
    """Routes bot operations to the right vendor adapter.

    Args:
        store: Event repository.
        task_runner: Runs manual dispatches in the background.
        active_provider: Provider for new dispatches, or a zero-arg callable
            returning it (evaluated per dispatch).
        adapter_factory: Builds an adapter for a provider on first use.
        bot_name: Prefix of the bot's display name in meetings.
    """

    def __init__(
        self,
        store: EventRepository,
        task_runner: TaskScheduler,
        active_provider: BotProvider | Callable[[], BotProvider],
        adapter_factory: Callable[[BotProvider], BotProviderAdapter],
        bot_name: str = "Notetaker",
    ) -> None:
        self._store = store
        self._task_runner = task_runner
        self._active_provider = active_provider
        self._adapter_factory = adapter_factory
        self._bot_name = bot_name
        self._adapters: dict[BotProvider, BotProviderAdapter] = {}

    # ── Provider Selection ───────────────────────────────────────────────

    @property
    def active_provider(self) -> BotProvider:
        if callable(self._active_provider):
            return self._active_provider()
        return self._active_provider

    def adapter_for(self, provider: BotProvider | None = None) -> BotProviderAdapter:
        """Adapter for ``provider``, or for the active provider when None."""
        provider = provider or self.active_provider
        adapter = self._adapters.get(provider)
        if adapter is None:
            adapter = self._adapter_factory(provider)
            self._adapters[provider] = adapter
        return adapter

    # ── Adapter Contract ─────────────────────────────────────────────────

    async def dispatch(
        self,
        meeting_url: str,
        display_name: str,
        provider: BotProvider | None = None,
    ) -> DispatchResult:
        return await self.adapter_for(provider).dispatch(meeting_url, display_name)

    async def fetch_status(self, bot_id: str, provider: BotProvider | None = None) -> str:
        return await self.adapter_for(provider).fetch_status(bot_id)

    async def fetch_transcript_data(
        self, bot_id: str, provider: BotProvider | None = None
    ) -> TranscriptData:
        return await self.adapter_for(provider).fetch_transcript_data(bot_id)

    async def teardown(self, bot_id: str, provider: BotProvider | None = None) -> None:
        await self.adapter_for(provider).teardown(bot_id)

    # ── Event-level Operations ───────────────────────────────────────────

    def display_name_for(self, event: MeetingEvent) -> str:
        return f"{self._bot_name} for {event.title}"

    async def dispatch_for_event(self, event_id: str) -> MeetingEvent:
        """Send a bot to an event's meeting, or refresh status if one is there.

        Raises:
            NotFoundError: Unknown event.
            InvalidStateError: No meeting link, or notetaker not requested.
            ConfigurationError / VendorError: From the adapter.
        """
        event = await self._store.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        if not event.meeting_link:
            raise InvalidStateError(f"Event {event_id} does not have a meeting link")
        if not event.notetaker_requested:
            raise InvalidStateError(f"Notetaker not requested for event {event_id}")

        if event.bot_id:
            status = await self.fetch_status(event.bot_id, provider=event.bot_provider)
            # Statuses written after capture are ours; don't overwrite them with vendor codes
            if event.transcription is None and event.teardown_scheduled_at is None:
                await self._store.update_bot_status(event.id, status)
            logger.info(
                "bot.status_refreshed",
                event_id=event.id,
                bot_id=event.bot_id,
                provider=event.bot_provider.value if event.bot_provider else None,
                status=status,
            )
            return await self._store.get_event(event.id) or event

        provider = self.active_provider
        try:
            result = await self.dispatch(
                event.meeting_link,
                self.display_name_for(event),
                provider=provider,
            )
        except Exception:
            bot_dispatches_total.labels(provider=provider.value, outcome="error").inc()
            raise

        attached = await self._store.record_bot_dispatch(
            event.id, provider, result.bot_id, result.status
        )
        if not attached:
            # Another dispatch won the race; this vendor bot is not tracked
            bot_dispatches_total.labels(provider=provider.value, outcome="duplicate").inc()
            logger.warning(
                "bot.dispatch_lost_race",
                event_id=event.id,
                provider=provider.value,
                orphan_bot_id=result.bot_id,
            )
        else:
            bot_dispatches_total.labels(provider=provider.value, outcome="success").inc()
            logger.info(
                "bot.dispatched",
                event_id=event.id,
                provider=provider.value,
                bot_id=result.bot_id,
                status=result.status,
            )
        return await self._store.get_event(event.id) or event

    async def request_manual_dispatch(self, event_id: str, caller_id: str) -> dict[str, Any]:
        """Queue an immediate dispatch on behalf of the event's owner.

        Returns as soon as the job is queued; vendor errors surface in logs.

        Raises:
            NotFoundError: Unknown event.
            AuthorizationError: Caller does not own the event.
        """
        event = await self._store.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        if event.user_id != caller_id:
            raise AuthorizationError("Not authorized to dispatch a bot for this event")

        self._task_runner.schedule(
            0,
            self.dispatch_for_event,
            event.id,
            name=f"manual_dispatch_{event.id}",
        )
        logger.info("bot.manual_dispatch_queued", event_id=event.id, caller_id=caller_id)
        return {"success": True}
