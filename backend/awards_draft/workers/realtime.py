"""Realtime worker: fans ceremony events out to draft rooms over Redis pub/sub."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as aioredis
from sqlalchemy import select

from awards_draft.celery_app import celery
from awards_draft.config import settings
from awards_draft.db import async_session_factory
from awards_draft.models.draft import Draft
from awards_draft.models.league import Season

logger = logging.getLogger(__name__)


def draft_channel(draft_id: int) -> str:
    return f"{settings.REALTIME_CHANNEL_PREFIX}:{draft_id}"


def build_message(event_type: str, draft_id: int, payload: dict[str, Any]) -> str:
    return json.dumps(
        {"event": event_type, "draft_id": draft_id, "payload": payload},
        ensure_ascii=False,
        sort_keys=True,
        default=str,
    )


@celery.task(name="awards_draft.workers.realtime.fan_out_ceremony_event")
def fan_out_ceremony_event(ceremony_id: int, event_type: str, payload: dict[str, Any]) -> int:
    """Publish one event to every draft room of the ceremony; returns rooms reached."""
    return asyncio.run(_async_fan_out(ceremony_id, event_type, payload))


async def _list_draft_ids(ceremony_id: int) -> list[int]:
    async with async_session_factory() as session:
        rows = await session.execute(
            select(Draft.id)
            .join(Season, Season.id == Draft.season_id)
            .where(Season.ceremony_id == ceremony_id)
            .order_by(Draft.id)
        )
        return [int(draft_id) for draft_id in rows.scalars().all()]


async def _async_fan_out(ceremony_id: int, event_type: str, payload: dict[str, Any]) -> int:
    draft_ids = await _list_draft_ids(ceremony_id)
    if not draft_ids:
        logger.info("No draft rooms for ceremony %s; %s dropped", ceremony_id, event_type)
        return 0

    client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        for draft_id in draft_ids:
            await client.publish(draft_channel(draft_id), build_message(event_type, draft_id, payload))
    finally:
        await client.aclose()
    logger.info(
        "Realtime event fanned out",
        extra={"event_type": event_type, "ceremony_id": ceremony_id, "rooms": len(draft_ids)},
    )
    return len(draft_ids)
