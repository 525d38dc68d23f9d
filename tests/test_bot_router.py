"""Tests for BotServiceRouter: provider selection and per-event dispatch.

Uses InMemoryEventRepository, FakeBotAdapter and RecordingTaskRunner from
tests.doubles. Covers:
- Active provider chosen per dispatch; stored provider used afterwards
- dispatch_for_event preconditions and state written on success
- A lost dispatch race attaches nothing
- Manual dispatch authorization and zero-delay queueing
- create_provider_adapter wiring from Settings
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.notetaker.bots.meeting_baas_client import MeetingBaasAdapter
from src.notetaker.bots.recall_client import RecallAdapter
from src.notetaker.bots.router import BotServiceRouter, create_provider_adapter
from src.notetaker.config import BotProvider, Settings
from src.notetaker.core.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    VendorError,
)
from tests.doubles import OTHER_USER_ID, USER_ID, FakeBotAdapter


# ── Provider Selection ──────────────────────────────────────────────────────


class TestProviderSelection:
    """Tests for active vs stored provider routing."""

    def test_adapter_for_defaults_to_active_provider(self, bot_router, adapters):
        assert bot_router.adapter_for() is adapters[BotProvider.MEETING_BAAS]
        assert bot_router.adapter_for(BotProvider.RECALL) is adapters[BotProvider.RECALL]

    def test_adapters_built_once_per_provider(self, event_repo, task_runner):
        built: list[BotProvider] = []

        def factory(provider: BotProvider) -> FakeBotAdapter:
            built.append(provider)
            return FakeBotAdapter(provider.value)

        router = BotServiceRouter(
            store=event_repo,
            task_runner=task_runner,
            active_provider=BotProvider.RECALL,
            adapter_factory=factory,
        )
        router.adapter_for()
        router.adapter_for()
        router.adapter_for(BotProvider.MEETING_BAAS)

        assert built == [BotProvider.RECALL, BotProvider.MEETING_BAAS]

    @pytest.mark.asyncio
    async def test_provider_switch_applies_to_next_dispatch(
        self, event_repo, task_runner, adapters, make_event
    ):
        current = {"provider": BotProvider.RECALL}
        router = BotServiceRouter(
            store=event_repo,
            task_runner=task_runner,
            active_provider=lambda: current["provider"],
            adapter_factory=lambda p: adapters[p],
        )
        first = event_repo.add(make_event())
        second = event_repo.add(make_event())

        await router.dispatch_for_event(first.id)
        current["provider"] = BotProvider.MEETING_BAAS
        await router.dispatch_for_event(second.id)

        assert (await event_repo.get_event(first.id)).bot_provider is BotProvider.RECALL
        assert (await event_repo.get_event(second.id)).bot_provider is BotProvider.MEETING_BAAS
        assert len(adapters[BotProvider.RECALL].dispatch_calls) == 1
        assert len(adapters[BotProvider.MEETING_BAAS].dispatch_calls) == 1

    @pytest.mark.asyncio
    async def test_stored_provider_used_after_switch(self, bot_router, event_repo, adapters, make_event):
        """A Recall bot keeps talking to Recall when Meeting BaaS is active."""
        event = event_repo.add(
            make_event(bot_provider=BotProvider.RECALL, bot_id="recall-bot-1", bot_status="pending")
        )
        adapters[BotProvider.RECALL].status = "in_call_recording"

        refreshed = await bot_router.dispatch_for_event(event.id)

        assert refreshed.bot_status == "in_call_recording"
        assert refreshed.bot_provider is BotProvider.RECALL
        assert adapters[BotProvider.MEETING_BAAS].dispatch_calls == []
        assert adapters[BotProvider.RECALL].dispatch_calls == []


# ── dispatch_for_event ──────────────────────────────────────────────────────


class TestDispatchForEvent:
    """Tests for the single-event dispatch transition."""

    @pytest.mark.asyncio
    async def test_dispatch_records_bot(self, bot_router, event_repo, adapters, make_event):
        event = event_repo.add(make_event(title="Quarterly Review"))

        result = await bot_router.dispatch_for_event(event.id)

        assert result.bot_id == "meeting_baas-bot-1"
        assert result.bot_provider is BotProvider.MEETING_BAAS
        assert result.bot_status == "pending"
        assert adapters[BotProvider.MEETING_BAAS].dispatch_calls == [
            ("https://meet.google.com/abc-defg-hij", "Notetaker for Quarterly Review"),
        ]

    @pytest.mark.asyncio
    async def test_unknown_event_raises_not_found(self, bot_router):
        with pytest.raises(NotFoundError):
            await bot_router.dispatch_for_event("missing")

    @pytest.mark.asyncio
    async def test_missing_meeting_link_raises(self, bot_router, event_repo, adapters, make_event):
        event = event_repo.add(make_event(meeting_link=None))

        with pytest.raises(InvalidStateError, match="meeting link"):
            await bot_router.dispatch_for_event(event.id)

        assert adapters[BotProvider.MEETING_BAAS].dispatch_calls == []

    @pytest.mark.asyncio
    async def test_notetaker_not_requested_raises(self, bot_router, event_repo, make_event):
        event = event_repo.add(make_event(notetaker_requested=False))

        with pytest.raises(InvalidStateError, match="not requested"):
            await bot_router.dispatch_for_event(event.id)

    @pytest.mark.asyncio
    async def test_vendor_error_propagates_and_leaves_event_unchanged(
        self, bot_router, event_repo, adapters, make_event
    ):
        event = event_repo.add(make_event())
        adapters[BotProvider.MEETING_BAAS].dispatch_error = VendorError("meeting_baas", 500, "boom")

        with pytest.raises(VendorError):
            await bot_router.dispatch_for_event(event.id)

        stored = await event_repo.get_event(event.id)
        assert stored.bot_id is None
        assert stored.bot_provider is None

    @pytest.mark.asyncio
    async def test_lost_race_does_not_attach_bot(self, bot_router, event_repo, make_event):
        event = event_repo.add(make_event())

        with patch.object(
            event_repo, "record_bot_dispatch", new_callable=AsyncMock, return_value=False
        ):
            result = await bot_router.dispatch_for_event(event.id)

        assert result.bot_id is None

    @pytest.mark.asyncio
    async def test_status_refresh_does_not_overwrite_transcribed(
        self, bot_router, event_repo, adapters, make_event
    ):
        event = event_repo.add(
            make_event(
                bot_provider=BotProvider.MEETING_BAAS,
                bot_id="mb-1",
                bot_status="transcribed",
                transcription="[]",
            )
        )
        adapters[BotProvider.MEETING_BAAS].status = "ended"

        result = await bot_router.dispatch_for_event(event.id)

        assert result.bot_status == "transcribed"


# ── Manual Dispatch ─────────────────────────────────────────────────────────


class TestManualDispatch:
    """Tests for request_manual_dispatch."""

    @pytest.mark.asyncio
    async def test_queues_immediate_dispatch(self, bot_router, event_repo, task_runner, make_event):
        event = event_repo.add(make_event())

        result = await bot_router.request_manual_dispatch(event.id, USER_ID)

        assert result == {"success": True}
        assert len(task_runner.scheduled) == 1
        job = task_runner.scheduled[0]
        assert job["delay"] == 0
        assert job["fn"] == bot_router.dispatch_for_event
        assert job["args"] == (event.id,)
        # Nothing dispatched until the job runs
        assert (await event_repo.get_event(event.id)).bot_id is None

        await task_runner.run_pending()

        assert (await event_repo.get_event(event.id)).bot_id == "meeting_baas-bot-1"

    @pytest.mark.asyncio
    async def test_other_user_is_rejected(self, bot_router, event_repo, task_runner, make_event):
        event = event_repo.add(make_event())

        with pytest.raises(AuthorizationError):
            await bot_router.request_manual_dispatch(event.id, OTHER_USER_ID)

        assert task_runner.scheduled == []

    @pytest.mark.asyncio
    async def test_unknown_event_is_not_found(self, bot_router):
        with pytest.raises(NotFoundError):
            await bot_router.request_manual_dispatch("missing", USER_ID)


# ── Adapter Factory ─────────────────────────────────────────────────────────


class TestCreateProviderAdapter:
    """Tests for building adapters from settings."""

    def test_builds_recall_adapter(self):
        settings = Settings(_env_file=None, RECALL_API_KEY="rk", RECALL_API_REGION="eu-central-1")

        adapter = create_provider_adapter(BotProvider.RECALL, settings)

        assert isinstance(adapter, RecallAdapter)
        assert adapter.name == "recall"

    def test_builds_meeting_baas_adapter(self):
        settings = Settings(_env_file=None, MEETING_BAAS_API_KEY="mk")

        adapter = create_provider_adapter(BotProvider.MEETING_BAAS, settings)

        assert isinstance(adapter, MeetingBaasAdapter)
        assert adapter.name == "meeting_baas"

    def test_missing_key_does_not_fail_construction(self):
        settings = Settings(_env_file=None, RECALL_API_KEY="")

        assert isinstance(create_provider_adapter(BotProvider.RECALL, settings), RecallAdapter)
