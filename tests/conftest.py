"""Shared fixtures: in-memory stores, fake vendors and a fixed clock."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any

import pytest

from src.notetaker.bots.router import BotServiceRouter
from src.notetaker.config import BotProvider
from src.notetaker.events.schemas import MeetingEvent
from src.notetaker.scheduling.loop import BotScheduler
from tests.doubles import (
    NOW,
    USER_ID,
    FakeBotAdapter,
    InMemoryContentRepository,
    InMemoryEventRepository,
    RecordingTaskRunner,
)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def make_event():
    """Factory for MeetingEvent with sensible defaults around NOW."""

    def _make(**overrides: Any) -> MeetingEvent:
        fields: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "user_id": USER_ID,
            "calendar_id": "primary",
            "google_event_id": f"g-{uuid.uuid4().hex[:8]}",
            "title": "Quarterly Review",
            "start_time": NOW + timedelta(hours=1),
            "end_time": NOW + timedelta(hours=2),
            "attendees": ["ana@example.com", "ben@example.com"],
            "meeting_link": "https://meet.google.com/abc-defg-hij",
            "notetaker_requested": True,
            "updated": "1",
        }
        fields.update(overrides)
        return MeetingEvent(**fields)

    return _make


@pytest.fixture
def event_repo() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def content_repo() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def task_runner() -> RecordingTaskRunner:
    return RecordingTaskRunner()


@pytest.fixture
def adapters() -> dict[BotProvider, FakeBotAdapter]:
    return {
        BotProvider.RECALL: FakeBotAdapter("recall"),
        BotProvider.MEETING_BAAS: FakeBotAdapter("meeting_baas"),
    }


@pytest.fixture
def bot_router(event_repo, task_runner, adapters) -> BotServiceRouter:
    return BotServiceRouter(
        store=event_repo,
        task_runner=task_runner,
        active_provider=BotProvider.MEETING_BAAS,
        adapter_factory=lambda provider: adapters[provider],
        bot_name="Notetaker",
    )


@pytest.fixture
def scheduler(event_repo, bot_router, task_runner) -> BotScheduler:
    return BotScheduler(
        store=event_repo,
        router=bot_router,
        task_runner=task_runner,
        teardown_delay_seconds=300,
        default_join_minutes=5,
        clock=lambda: NOW,
    )
