from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from kombu.exceptions import OperationalError

from awards_draft.config import settings
from awards_draft.realtime import (
    CEREMONY_LOCKED,
    CEREMONY_WINNERS_UPDATED,
    FAN_OUT_TASK,
    RealtimeNotifier,
)
from awards_draft.workers.realtime import build_message, draft_channel


class FakeCelery:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, list, str]] = []

    def send_task(self, name, args=None, queue=None):
        if self.fail:
            raise OperationalError("broker unreachable")
        self.sent.append((name, args, queue))


def test_winners_updated_is_sent_to_fan_out_task() -> None:
    broker = FakeCelery()
    RealtimeNotifier(celery_app=broker).winners_updated(
        ceremony_id=4, category_edition_id=9, nomination_ids=[31, 32]
    )

    (name, args, queue), = broker.sent
    assert name == FAN_OUT_TASK
    assert queue == settings.REALTIME_QUEUE
    ceremony_id, event_type, body = args
    assert (ceremony_id, event_type) == (4, CEREMONY_WINNERS_UPDATED)
    assert body["category_edition_id"] == 9
    assert body["nomination_ids"] == [31, 32]
    assert body["ceremony_id"] == 4
    assert "created_at" in body


def test_locked_serializes_timestamp() -> None:
    broker = FakeCelery()
    locked_at = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)
    RealtimeNotifier(celery_app=broker).locked(ceremony_id=2, draft_locked_at=locked_at)

    _, (_, event_type, body), _ = broker.sent[0]
    assert event_type == CEREMONY_LOCKED
    assert body["draft_locked_at"] == locked_at.isoformat()


def test_broker_failure_is_logged_not_raised(caplog) -> None:
    notifier = RealtimeNotifier(celery_app=FakeCelery(fail=True))
    with caplog.at_level(logging.ERROR, logger="awards_draft.realtime"):
        notifier.finalized(ceremony_id=1)
    assert any("Realtime dispatch failed" in r.message for r in caplog.records)


def test_draft_channel_and_message_shape() -> None:
    assert draft_channel(12) == f"{settings.REALTIME_CHANNEL_PREFIX}:12"
    message = json.loads(build_message("ceremony:finalized", 12, {"status": "COMPLETE"}))
    assert message == {
        "event": "ceremony:finalized",
        "draft_id": 12,
        "payload": {"status": "COMPLETE"},
    }
