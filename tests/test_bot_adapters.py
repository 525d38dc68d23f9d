"""Unit tests for the Recall.ai and Meeting BaaS bot adapters.

All HTTP is mocked at the httpx.AsyncClient method level. Covers:
- Request construction for dispatch, status, transcript and teardown
- Transcript normalization into the shared segment payload
- Retry on 5xx, no retry on 4xx, give-up after three attempts
- ConfigurationError when the vendor key is missing
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.notetaker.bots.meeting_baas_client import STATUS_ENDED, MeetingBaasAdapter
from src.notetaker.bots.recall_client import RecallAdapter
from src.notetaker.core.errors import ConfigurationError, VendorError
from src.notetaker.events.transcript import parse_transcript_text


def _response(status_code: int, method: str = "GET", **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code,
        request=httpx.Request(method, "https://test.com"),
        **kwargs,
    )


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def recall():
    """RecallAdapter with test API key."""
    return RecallAdapter(api_key="test-recall-key", region="us-west-2")


@pytest.fixture
def meeting_baas():
    """MeetingBaasAdapter with test API key."""
    return MeetingBaasAdapter(api_key="test-mb-key")


# ── Recall.ai ───────────────────────────────────────────────────────────────


class TestRecallAdapter:
    """Tests for the Recall.ai adapter."""

    @pytest.mark.asyncio
    async def test_dispatch_builds_correct_request(self, recall):
        """dispatch POSTs to /bot/ with display name and caption transcription."""
        mock_response = _response(201, "POST", json={"id": "bot-abc", "status_changes": []})

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            result = await recall.dispatch(
                "https://meet.google.com/abc-defg-hij", "Notetaker for Standup"
            )

        assert result.bot_id == "bot-abc"
        assert result.status == "pending"
        url = mock_post.call_args.args[0]
        payload = mock_post.call_args.kwargs["json"]
        assert url == "https://us-west-2.recall.ai/api/v1/bot/"
        assert payload["meeting_url"] == "https://meet.google.com/abc-defg-hij"
        assert payload["bot_name"] == "Notetaker for Standup"
        assert "meeting_captions" in payload["recording_config"]["transcript"]["provider"]

    @pytest.mark.asyncio
    async def test_region_changes_base_url(self):
        adapter = RecallAdapter(api_key="k", region="eu-central-1")
        mock_response = _response(200, "POST", json={"id": "bot-eu"})

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            await adapter.dispatch("https://zoom.us/j/1", "Bot")

        assert mock_post.call_args.args[0].startswith("https://eu-central-1.recall.ai/api/v1/")

    @pytest.mark.asyncio
    async def test_fetch_status_extracts_latest(self, recall):
        """fetch_status returns status_changes[-1].code."""
        mock_response = _response(
            200,
            json={
                "id": "bot-abc",
                "status_changes": [
                    {"code": "ready"},
                    {"code": "joining_call"},
                    {"code": "in_call_recording"},
                ],
            },
        )

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response):
            status = await recall.fetch_status("bot-abc")

        assert status == "in_call_recording"

    @pytest.mark.asyncio
    async def test_fetch_status_without_changes_is_unknown(self, recall):
        mock_response = _response(200, json={"id": "bot-abc", "status_changes": []})

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response):
            status = await recall.fetch_status("bot-abc")

        assert status == "unknown"

    @pytest.mark.asyncio
    async def test_fetch_transcript_data_normalizes_and_detects_end(self, recall):
        """A 'done' bot with transcript entries yields a stored-shape transcript."""
        bot_response = _response(
            200, json={"id": "bot-abc", "status_changes": [{"code": "done"}]}
        )
        transcript_response = _response(
            200,
            json=[
                {
                    "participant": {"name": "Ana"},
                    "words": [
                        {
                            "text": "hello",
                            "start_timestamp": {"relative": 1.5},
                            "end_timestamp": {"relative": 1.9},
                        },
                        {"text": "team", "start_timestamp": 2.0, "end_timestamp": 2.3},
                    ],
                },
            ],
        )

        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=[bot_response, transcript_response],
        ) as mock_get:
            data = await recall.fetch_transcript_data("bot-abc")

        assert data.has_ended is True
        assert data.status == "done"
        assert parse_transcript_text(data.transcript) == "Ana: hello team"
        stored = json.loads(data.transcript)
        assert stored[0]["start_time"] == 1.5
        assert mock_get.call_args.args[0].endswith("/bot/bot-abc/transcript/")

    @pytest.mark.asyncio
    async def test_transcript_not_ready_is_empty_not_error(self, recall):
        """A 4xx from the transcript endpoint means no transcript yet."""
        bot_response = _response(
            200, json={"id": "bot-abc", "status_changes": [{"code": "in_call_recording"}]}
        )
        not_ready = _response(400, json={"detail": "not ready"})

        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=[bot_response, not_ready],
        ):
            data = await recall.fetch_transcript_data("bot-abc")

        assert data.transcript is None
        assert data.has_ended is False
        assert data.status == "in_call_recording"

    @pytest.mark.asyncio
    async def test_teardown_deletes_media(self, recall):
        mock_response = _response(200, "POST", json={})

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            await recall.teardown("bot-abc")

        assert mock_post.call_args.args[0] == (
            "https://us-west-2.recall.ai/api/v1/bot/bot-abc/delete_media/"
        )

    @pytest.mark.asyncio
    async def test_retry_on_transient_failure(self, recall):
        """A 503 is retried and the second attempt succeeds."""
        success = _response(200, json={"id": "bot-abc", "status_changes": [{"code": "ready"}]})

        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=[_response(503), success],
        ) as mock_get:
            result = await recall.get_bot("bot-abc")

        assert result["id"] == "bot-abc"
        assert mock_get.call_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_on_client_error(self, recall):
        """A 4xx is raised immediately as VendorError."""
        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            return_value=_response(400, "POST", text="invalid meeting_url"),
        ) as mock_post:
            with pytest.raises(VendorError) as exc_info:
                await recall.dispatch("not-a-url", "Bot")

        assert exc_info.value.status_code == 400
        assert exc_info.value.vendor == "recall"
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, recall):
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            return_value=_response(502),
        ) as mock_get:
            with pytest.raises(VendorError):
                await recall.fetch_status("bot-abc")

        assert mock_get.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_on_connect_error(self, recall):
        success = _response(200, "POST", json={"id": "bot-abc"})

        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            side_effect=[httpx.ConnectError("connection refused"), success],
        ):
            result = await recall.dispatch("https://zoom.us/j/1", "Bot")

        assert result.bot_id == "bot-abc"

    @pytest.mark.asyncio
    async def test_missing_key_raises_configuration_error(self):
        adapter = RecallAdapter(api_key="")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(ConfigurationError):
                await adapter.dispatch("https://zoom.us/j/1", "Bot")

        mock_post.assert_not_called()


# ── Meeting BaaS ────────────────────────────────────────────────────────────


class TestMeetingBaasAdapter:
    """Tests for the Meeting BaaS adapter."""

    @pytest.mark.asyncio
    async def test_dispatch_builds_correct_request(self, meeting_baas):
        mock_response = _response(200, "POST", json={"bot_id": "mb-123"})

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            result = await meeting_baas.dispatch(
                "https://zoom.us/j/987", "Notetaker for Planning"
            )

        assert result.bot_id == "mb-123"
        assert result.status == "in_meeting"
        assert mock_post.call_args.args[0] == "https://api.meetingbaas.com/bots"
        payload = mock_post.call_args.kwargs["json"]
        assert payload["meeting_url"] == "https://zoom.us/j/987"
        assert payload["bot_name"] == "Notetaker for Planning"
        assert payload["reserved"] is False
        assert payload["speech_to_text"] == {"provider": "Gladia"}

    @pytest.mark.asyncio
    async def test_fetch_transcript_data_ended_meeting(self, meeting_baas):
        mock_response = _response(
            200,
            json={
                "bot_data": {
                    "bot": {"ended_at": "2026-03-02T16:01:00Z"},
                    "transcripts": [
                        {
                            "speaker": "Ben",
                            "start_time": 0.5,
                            "words": [
                                {"text": "hi", "start_time": 0.5, "end_time": 0.8},
                                {"text": "there", "start_time": 0.9, "end_time": 1.2},
                            ],
                        },
                    ],
                },
            },
        )

        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response
        ) as mock_get:
            data = await meeting_baas.fetch_transcript_data("mb-123")

        assert data.has_ended is True
        assert data.status == STATUS_ENDED
        assert parse_transcript_text(data.transcript) == "Ben: hi there"
        assert mock_get.call_args.args[0] == "https://api.meetingbaas.com/bots/meeting_data"
        assert mock_get.call_args.kwargs["params"] == {
            "bot_id": "mb-123",
            "include_transcripts": "true",
        }

    @pytest.mark.asyncio
    async def test_fetch_transcript_data_in_progress(self, meeting_baas):
        mock_response = _response(
            200, json={"bot_data": {"bot": {"ended_at": None}, "transcripts": []}}
        )

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response):
            data = await meeting_baas.fetch_transcript_data("mb-123")

        assert data.transcript is None
        assert data.has_ended is False
        assert data.status == "in_meeting"

    @pytest.mark.asyncio
    async def test_fetch_status_skips_transcripts(self, meeting_baas):
        mock_response = _response(200, json={"bot_data": {"bot": {"ended_at": None}}})

        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response
        ) as mock_get:
            status = await meeting_baas.fetch_status("mb-123")

        assert status == "in_meeting"
        assert mock_get.call_args.kwargs["params"]["include_transcripts"] == "false"

    @pytest.mark.asyncio
    async def test_teardown_deletes_data(self, meeting_baas):
        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            return_value=_response(200, "POST", json={"ok": True}),
        ) as mock_post:
            await meeting_baas.teardown("mb-123")

        assert mock_post.call_args.args[0] == "https://api.meetingbaas.com/bots/mb-123/delete_data"

    @pytest.mark.asyncio
    async def test_retry_on_server_error(self, meeting_baas):
        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            side_effect=[
                _response(500, "POST"),
                _response(200, "POST", json={"bot_id": "mb-9"}),
            ],
        ) as mock_post:
            result = await meeting_baas.dispatch("https://zoom.us/j/1", "Bot")

        assert result.bot_id == "mb-9"
        assert mock_post.call_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_on_unauthorized(self, meeting_baas):
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            return_value=_response(401, text="bad key"),
        ) as mock_get:
            with pytest.raises(VendorError) as exc_info:
                await meeting_baas.fetch_transcript_data("mb-123")

        assert exc_info.value.status_code == 401
        assert mock_get.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_raises_configuration_error(self):
        adapter = MeetingBaasAdapter(api_key="")

        with pytest.raises(ConfigurationError):
            await adapter.teardown("mb-123")
