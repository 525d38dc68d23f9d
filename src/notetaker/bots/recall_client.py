"""Recall.ai bot adapter.

Async wrapper over the Recall.ai REST API with retry on transient failures
(tenacity, 3 attempts, exponential backoff 1-10s). Bots join with
meeting-captions transcription; transcripts are normalized to the canonical
segment payload before they leave this module.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.notetaker.bots.base import (
    BotProviderAdapter,
    DispatchResult,
    TranscriptData,
    vendor_retry,
)
from src.notetaker.core.errors import (
    ConfigurationError,
    VendorError,
    raise_for_vendor_status,
)
from src.notetaker.events.schemas import BOT_STATUS_PENDING
from src.notetaker.events.transcript import (
    TranscriptSegment,
    TranscriptWord,
    serialize_transcript,
)

logger = structlog.get_logger(__name__)

# Status codes after which the bot has left the call for good
ENDED_STATUS_CODES = frozenset({"call_ended", "done", "analysis_done", "fatal"})


def _timestamp(value: Any) -> float | None:
    """Recall timestamps are either seconds or {"relative": seconds, ...}."""
    if isinstance(value, dict):
        value = value.get("relative")
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _normalize_transcript(entries: list[dict]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        speaker = entry.get("speaker")
        if isinstance(entry.get("participant"), dict):
            speaker = speaker or entry["participant"].get("name")
        words = [
            TranscriptWord(
                text=str(w.get("text", "")),
                start_time=_timestamp(w.get("start_timestamp")),
                end_time=_timestamp(w.get("end_timestamp")),
            )
            for w in entry.get("words") or []
            if isinstance(w, dict) and w.get("text")
        ]
        if not words:
            continue
        segments.append(
            TranscriptSegment(speaker=speaker, start_time=words[0].start_time, words=words)
        )
    return segments


class RecallAdapter(BotProviderAdapter):
    """Recall.ai implementation of BotProviderAdapter.

    Args:
        api_key: Recall.ai API token. May be empty; checked on first call.
        region: Recall.ai region (default: us-west-2).
    """

    name = "recall"

    # Timeouts per operation type
    TIMEOUT_MUTATE = 30.0  # create/delete operations
    TIMEOUT_READ = 10.0    # get/status operations

    def __init__(self, api_key: str, region: str = "us-west-2") -> None:
        self._api_key = api_key
        self._base_url = f"https://{region}.recall.ai/api/v1"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        if not self._api_key:
            raise ConfigurationError("RECALL_API_KEY is not set")
        return httpx.AsyncClient(
            headers={
                "Authorization": f"Token {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @vendor_retry
    async def dispatch(self, meeting_url: str, display_name: str) -> DispatchResult:
        """Create a bot that joins ``meeting_url`` and records captions.

        POST /bot/
        """
        payload = {
            "meeting_url": meeting_url,
            "bot_name": display_name,
            "recording_config": {
                "transcript": {"provider": {"meeting_captions": {}}},
            },
        }
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/bot/", json=payload)
        raise_for_vendor_status(self.name, response)

        data = response.json()
        status_changes = data.get("status_changes") or []
        status = data.get("status") or (
            status_changes[-1].get("code") if status_changes else None
        )
        result = DispatchResult(bot_id=str(data["id"]), status=status or BOT_STATUS_PENDING)
        logger.info("recall.bot_created", bot_id=result.bot_id, status=result.status)
        return result

    @vendor_retry
    async def get_bot(self, bot_id: str) -> dict:
        """GET /bot/{bot_id}/ -- full bot state including status_changes."""
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{self._base_url}/bot/{bot_id}/")
        raise_for_vendor_status(self.name, response)
        return response.json()

    async def fetch_status(self, bot_id: str) -> str:
        """Latest status code from status_changes[-1].code, or 'unknown'."""
        bot_data = await self.get_bot(bot_id)
        status_changes = bot_data.get("status_changes") or []
        if not status_changes:
            return "unknown"
        current_status = status_changes[-1].get("code", "unknown")
        logger.debug("recall.bot_status", bot_id=bot_id, status=current_status)
        return current_status

    @vendor_retry
    async def get_transcript(self, bot_id: str) -> list[dict]:
        """GET /bot/{bot_id}/transcript/ -- per-speaker transcript entries."""
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{self._base_url}/bot/{bot_id}/transcript/")
        raise_for_vendor_status(self.name, response)
        data = response.json()
        return data if isinstance(data, list) else []

    async def fetch_transcript_data(self, bot_id: str) -> TranscriptData:
        status = await self.fetch_status(bot_id)
        has_ended = status in ENDED_STATUS_CODES

        try:
            entries = await self.get_transcript(bot_id)
        except VendorError as exc:
            if exc.status_code >= 500:
                raise
            # Recall answers 4xx while the transcript is not available yet
            logger.info(
                "recall.transcript_unavailable",
                bot_id=bot_id,
                status=status,
                status_code=exc.status_code,
            )
            entries = []

        transcript = serialize_transcript(_normalize_transcript(entries))
        logger.info(
            "recall.transcript_checked",
            bot_id=bot_id,
            status=status,
            has_ended=has_ended,
            has_transcript=transcript is not None,
        )
        return TranscriptData(transcript=transcript, has_ended=has_ended, status=status)

    @vendor_retry
    async def teardown(self, bot_id: str) -> None:
        """Delete the bot's recording and transcript media.

        POST /bot/{bot_id}/delete_media/
        """
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/bot/{bot_id}/delete_media/")
        raise_for_vendor_status(self.name, response)
        logger.info("recall.bot_media_deleted", bot_id=bot_id)
