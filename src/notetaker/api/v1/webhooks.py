"""Vendor webhook receivers for Recall.ai and Meeting BaaS.

Both always answer 200 {"status": "ok"} so vendors never retry a delivery
we could not use; polling picks up anything a dropped webhook would have
told us. Deliveries are applied through BotScheduler.handle_vendor_event,
which shares the transcript and teardown path with the poll loop.

Webhooks do not use JWT auth. When a shared token is configured the
request must carry it, otherwise the delivery is ignored.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request

from src.notetaker.bots.meeting_baas_client import STATUS_ENDED
from src.notetaker.bots.recall_client import ENDED_STATUS_CODES
from src.notetaker.config import Settings, get_settings
from src.notetaker.core.security import webhook_token_matches
from src.notetaker.events.schemas import BOT_STATUS_FAILED

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

MEETING_BAAS_ENDED_EVENTS = frozenset({"complete", "failed"})


def _parse_recall_payload(payload: dict[str, Any]) -> tuple[str, str | None]:
    """Bot id and status code from either Recall webhook shape.

    Older deliveries carry ``data.bot_id`` and ``data.status.code``; newer
    ones carry ``data.bot.id`` and ``data.data.code``.
    """
    data = payload.get("data") or {}
    bot_id = data.get("bot_id") or (data.get("bot") or {}).get("id") or payload.get("bot_id")
    status_obj = data.get("status") or data.get("data") or {}
    code = status_obj.get("code") if isinstance(status_obj, dict) else None
    return str(bot_id or ""), code


def _parse_meeting_baas_payload(payload: dict[str, Any]) -> tuple[str, str | None, bool]:
    event_type = payload.get("event", "")
    data = payload.get("data") or {}
    bot_id = str(data.get("bot_id") or "")
    if event_type in MEETING_BAAS_ENDED_EVENTS:
        return bot_id, BOT_STATUS_FAILED if event_type == "failed" else STATUS_ENDED, True
    status_obj = data.get("status") or {}
    code = status_obj.get("code") if isinstance(status_obj, dict) else None
    return bot_id, code, False


async def _read_json(request: Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except Exception:
        return None
    return payload if isinstance(payload, dict) else None


async def _apply(
    request: Request, vendor: str, bot_id: str, status: str | None, ended: bool
) -> None:
    scheduler = getattr(request.app.state, "bot_scheduler", None)
    if scheduler is None or not bot_id:
        return
    try:
        await scheduler.handle_vendor_event(bot_id, status, ended=ended)
    except Exception:
        logger.warning(
            "webhook.handler_error",
            vendor=vendor,
            bot_id=bot_id,
            status=status,
            exc_info=True,
        )


@router.post("/recall")
async def recall_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict:
    """Recall.ai bot status deliveries."""
    payload = await _read_json(request)
    if payload is None:
        return {"status": "ok"}

    bot_id, code = _parse_recall_payload(payload)
    presented = request.headers.get("X-Recall-Token")
    if not webhook_token_matches(settings.RECALL_WEBHOOK_TOKEN, presented):
        logger.warning("webhook.invalid_token", vendor="recall", bot_id=bot_id)
        return {"status": "ok"}

    ended = code in ENDED_STATUS_CODES
    await _apply(request, "recall", bot_id, code, ended)
    return {"status": "ok"}


@router.post("/meeting-baas")
async def meeting_baas_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict:
    """Meeting BaaS deliveries: status changes plus ``complete`` / ``failed``."""
    payload = await _read_json(request)
    if payload is None:
        return {"status": "ok"}

    bot_id, code, ended = _parse_meeting_baas_payload(payload)
    presented = request.headers.get("x-meeting-baas-api-key")
    if not webhook_token_matches(settings.MEETING_BAAS_WEBHOOK_TOKEN, presented):
        logger.warning("webhook.invalid_token", vendor="meeting_baas", bot_id=bot_id)
        return {"status": "ok"}

    await _apply(request, "meeting_baas", bot_id, code, ended)
    return {"status": "ok"}
