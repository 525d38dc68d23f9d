"""Meeting BaaS bot adapter.

Bots are created with Gladia speech-to-text. Meeting BaaS has no separate
status endpoint: everything comes from GET /bots/meeting_data, where a
non-null ``bot.ended_at`` means the meeting is over.
"""

from __future__ import annotations

import httpx
import structlog

from src.notetaker.bots.base import (
    BotProviderAdapter,
    DispatchResult,
    TranscriptData,
    vendor_retry,
)
from src.notetaker.core.errors import ConfigurationError, raise_for_vendor_status
from src.notetaker.events.schemas import BOT_STATUS_IN_MEETING
from src.notetaker.events.transcript import (
    TranscriptSegment,
    TranscriptWord,
    serialize_transcript,
)

logger = structlog.get_logger(__name__)

STATUS_ENDED = "ended"


def _normalize_transcript(transcripts: list[dict]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for item in transcripts:
        if not isinstance(item, dict):
            continue
        words = [
            TranscriptWord(
                text=str(w.get("text", "")),
                start_time=w.get("start_time"),
                end_time=w.get("end_time"),
            )
            for w in item.get("words") or []
            if isinstance(w, dict) and w.get("text")
        ]
        if not words:
            continue
        segments.append(
            TranscriptSegment(
                speaker=item.get("speaker"),
                start_time=item.get("start_time"),
                words=words,
            )
        )
    return segments


class MeetingBaasAdapter(BotProviderAdapter):
    """Meeting BaaS implementation of BotProviderAdapter.

    Args:
        api_key: Meeting BaaS API key. May be empty; checked on first call.
        base_url: API root (default: https://api.meetingbaas.com).
    """

    name = "meeting_baas"

    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0

    def __init__(self, api_key: str, base_url: str = "https://api.meetingbaas.com") -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def _client(self, timeout: float) -> httpx.AsyncClient:
        if not self._api_key:
            raise ConfigurationError("MEETING_BAAS_API_KEY is not set")
        return httpx.AsyncClient(
            headers={
                "x-meeting-baas-api-key": self._api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @vendor_retry
    async def dispatch(self, meeting_url: str, display_name: str) -> DispatchResult:
        """POST /bots -- the bot joins immediately."""
        payload = {
            "meeting_url": meeting_url,
            "bot_name": display_name,
            "reserved": False,
            "speech_to_text": {"provider": "Gladia"},
        }
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/bots", json=payload)
        raise_for_vendor_status(self.name, response)

        result = DispatchResult(
            bot_id=str(response.json()["bot_id"]),
            status=BOT_STATUS_IN_MEETING,
        )
        logger.info("meeting_baas.bot_created", bot_id=result.bot_id)
        return result

    @vendor_retry
    async def get_meeting_data(self, bot_id: str, include_transcripts: bool = True) -> dict:
        """GET /bots/meeting_data -- bot metadata and transcripts so far."""
        params = {
            "bot_id": bot_id,
            "include_transcripts": "true" if include_transcripts else "false",
        }
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{self._base_url}/bots/meeting_data", params=params)
        raise_for_vendor_status(self.name, response)
        return response.json()

    async def fetch_status(self, bot_id: str) -> str:
        data = await self.get_meeting_data(bot_id, include_transcripts=False)
        bot = (data.get("bot_data") or {}).get("bot") or {}
        return STATUS_ENDED if bot.get("ended_at") else BOT_STATUS_IN_MEETING

    async def fetch_transcript_data(self, bot_id: str) -> TranscriptData:
        data = await self.get_meeting_data(bot_id)
        bot_data = data.get("bot_data") or {}
        bot = bot_data.get("bot") or {}
        transcripts = bot_data.get("transcripts") or []

        has_ended = bot.get("ended_at") is not None
        transcript = serialize_transcript(
            _normalize_transcript(transcripts if isinstance(transcripts, list) else [])
        )
        logger.info(
            "meeting_baas.transcript_checked",
            bot_id=bot_id,
            has_ended=has_ended,
            has_transcript=transcript is not None,
        )
        return TranscriptData(
            transcript=transcript,
            has_ended=has_ended,
            status=STATUS_ENDED if has_ended else BOT_STATUS_IN_MEETING,
        )

    @vendor_retry
    async def teardown(self, bot_id: str) -> None:
        """POST /bots/{bot_id}/delete_data -- remove recording and transcript."""
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/bots/{bot_id}/delete_data")
        raise_for_vendor_status(self.name, response)
        logger.info("meeting_baas.bot_data_deleted", bot_id=bot_id)
