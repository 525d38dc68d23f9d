"""Serialized transcript payload stored on events.

Both bot vendors are normalized to the same JSON shape before storage:

    [{"speaker": "Ana", "start_time": 12.4,
      "words": [{"text": "hello", "start_time": 12.4, "end_time": 12.7}]}]

Stored payloads are treated as untrusted when read back: older rows may
hold another vendor's raw shape or plain text, so parse_transcript_text()
degrades to the raw string instead of raising.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field


class TranscriptWord(BaseModel):
    text: str
    start_time: float | None = None
    end_time: float | None = None


class TranscriptSegment(BaseModel):
    """One speaker turn."""

    speaker: str | None = None
    start_time: float | None = None
    words: list[TranscriptWord] = Field(default_factory=list)


def serialize_transcript(segments: list[TranscriptSegment]) -> str | None:
    """Serialize segments for storage. Returns None when there is nothing to store."""
    if not segments:
        return None
    return json.dumps([s.model_dump(mode="json") for s in segments])


def _segment_line(item: Any) -> str:
    if not isinstance(item, dict):
        return ""
    words = item.get("words") or []
    if not isinstance(words, list):
        return ""
    text = " ".join(
        str(w.get("text") or "") if isinstance(w, dict) else str(w)
        for w in words
    ).strip()
    if not text:
        return ""
    return f"{item.get('speaker') or 'Speaker'}: {text}"


def parse_transcript_text(raw: str | None) -> str:
    """Render a stored transcript payload as ``Speaker: text`` lines.

    Never raises. A JSON array is rendered per speaker turn; a JSON object
    yields its ``text`` or ``transcript`` field; anything else (plain text,
    malformed JSON, other JSON scalars) comes back unchanged.
    """
    if not raw:
        return ""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        return raw

    if isinstance(data, list):
        lines = [_segment_line(item) for item in data]
        return "\n".join(line for line in lines if line)
    if isinstance(data, dict):
        for key in ("text", "transcript"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return raw
