"""Bot provider adapter abstract base class and shared HTTP helpers.

Every meeting bot vendor implements BotProviderAdapter. Vendor payloads
stay inside the adapter: callers only see DispatchResult and TranscriptData.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.notetaker.core.errors import VendorError


# ── Result Models ───────────────────────────────────────────────────────────


class DispatchResult(BaseModel):
    """Outcome of a successful bot dispatch."""

    bot_id: str
    status: str


class TranscriptData(BaseModel):
    """What a vendor currently knows about a bot's meeting.

    transcript is the serialized canonical payload, or None when the vendor
    has nothing yet. status is the vendor's latest status code, when known.
    """

    transcript: str | None = None
    has_ended: bool = False
    status: str | None = None


# ── Retry Policy ────────────────────────────────────────────────────────────


def _is_transient(exc: BaseException) -> bool:
    """Retry server-side failures and network faults, never 4xx."""
    if isinstance(exc, VendorError):
        return exc.status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


vendor_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


# ── Adapter Contract ────────────────────────────────────────────────────────


class BotProviderAdapter(ABC):
    """Abstract interface for a meeting bot vendor.

    Missing credentials surface as ConfigurationError on the first call, not
    at construction, so an unused vendor never blocks startup.

    Methods:
        dispatch: Send a bot to a meeting URL.
        fetch_status: Latest vendor status code for a bot.
        fetch_transcript_data: Transcript (if any) and whether the meeting ended.
        teardown: Delete the vendor's bot data.
    """

    name: str

    @abstractmethod
    async def dispatch(self, meeting_url: str, display_name: str) -> DispatchResult:
        """Send a bot to the meeting, return its vendor id and initial status."""
        ...

    @abstractmethod
    async def fetch_status(self, bot_id: str) -> str:
        """Return the vendor's latest status code for the bot."""
        ...

    @abstractmethod
    async def fetch_transcript_data(self, bot_id: str) -> TranscriptData:
        """Return the transcript so far and whether the meeting has ended."""
        ...

    @abstractmethod
    async def teardown(self, bot_id: str) -> None:
        """Delete the vendor-side recording and transcript data."""
        ...
