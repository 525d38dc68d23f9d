"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.notetaker.api.v1 import content, events, health, settings, webhooks

router = APIRouter()

router.include_router(health.router)
router.include_router(events.router)
router.include_router(settings.router)
router.include_router(content.router)
router.include_router(webhooks.router)
