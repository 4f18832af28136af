"""Realtime ceremony notifications.

Events are handed to Celery strictly after the business transaction commits;
the `workers.realtime` task fans each one out to every draft room of the
ceremony. Broker failures are logged and swallowed so a committed change is
never reported as failed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from kombu.exceptions import KombuError

from awards_draft.celery_app import celery
from awards_draft.config import settings
from awards_draft.metrics import REALTIME_EVENTS_DISPATCHED_TOTAL

logger = logging.getLogger(__name__)

CEREMONY_WINNERS_UPDATED = "ceremony:winners.updated"
CEREMONY_FINALIZED = "ceremony:finalized"
CEREMONY_PUBLISHED = "ceremony:published"
CEREMONY_LOCKED = "ceremony:locked"

FAN_OUT_TASK = "awards_draft.workers.realtime.fan_out_ceremony_event"


class RealtimeNotifier:
    def __init__(self, celery_app=None) -> None:
        self._celery = celery_app or celery

    def emit(self, event_type: str, *, ceremony_id: int, payload: dict[str, Any]) -> None:
        body = {
            "ceremony_id": ceremony_id,
            **payload,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._celery.send_task(
                FAN_OUT_TASK,
                args=[ceremony_id, event_type, body],
                queue=settings.REALTIME_QUEUE,
            )
        except (KombuError, OSError) as exc:
            REALTIME_EVENTS_DISPATCHED_TOTAL.labels(event_type=event_type, outcome="error").inc()
            logger.error(
                "Realtime dispatch failed: %s",
                exc,
                extra={"event_type": event_type, "ceremony_id": ceremony_id},
            )
            return
        REALTIME_EVENTS_DISPATCHED_TOTAL.labels(event_type=event_type, outcome="sent").inc()

    def winners_updated(
        self, *, ceremony_id: int, category_edition_id: int, nomination_ids: list[int]
    ) -> None:
        self.emit(
            CEREMONY_WINNERS_UPDATED,
            ceremony_id=ceremony_id,
            payload={"category_edition_id": category_edition_id, "nomination_ids": nomination_ids},
        )

    def finalized(self, *, ceremony_id: int) -> None:
        self.emit(CEREMONY_FINALIZED, ceremony_id=ceremony_id, payload={"status": "COMPLETE"})

    def published(self, *, ceremony_id: int) -> None:
        self.emit(CEREMONY_PUBLISHED, ceremony_id=ceremony_id, payload={"status": "PUBLISHED"})

    def locked(self, *, ceremony_id: int, draft_locked_at: datetime | None) -> None:
        self.emit(
            CEREMONY_LOCKED,
            ceremony_id=ceremony_id,
            payload={
                "status": "LOCKED",
                "draft_locked_at": draft_locked_at.isoformat() if draft_locked_at else None,
            },
        )
