"""Celery application — RabbitMQ broker, Redis result backend.

Only the realtime fan-out runs here; the API never waits on it.
"""
from __future__ import annotations

from celery import Celery, signals
from kombu import Exchange, Queue

from awards_draft.config import settings
from awards_draft.logging_config import setup_logging
from awards_draft.observability import setup_opentelemetry

celery = Celery(
    "awards_draft",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
)

# Best-effort OTel bootstrap for worker process imports.
setup_opentelemetry(process="worker")


@signals.setup_logging.connect
def _worker_logging(**kwargs) -> None:
    """Keep Celery from installing its own handlers; the worker logs JSON too."""
    setup_logging(process="worker")


# ── Exchanges & Queues ──
exchange = Exchange("awards_draft", type="direct")

# Stale room updates are worthless; expired or rejected events go to dead_letter.
realtime_queue = Queue(
    settings.REALTIME_QUEUE,
    exchange,
    routing_key=settings.REALTIME_QUEUE,
    queue_arguments={
        "x-message-ttl": settings.REALTIME_MESSAGE_TTL_MS,
        "x-dead-letter-exchange": "awards_draft",
        "x-dead-letter-routing-key": "dead_letter",
    },
)
dead_letter_queue = Queue("dead_letter", exchange, routing_key="dead_letter")

celery.conf.update(
    accept_content=["json"],
    task_serializer="json",
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A fan-out may run twice after a worker crash; rooms tolerate duplicates.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    task_queues=(realtime_queue, dead_letter_queue),
    task_default_queue=settings.REALTIME_QUEUE,
    task_default_exchange="awards_draft",
    task_default_routing_key=settings.REALTIME_QUEUE,
    task_routes={
        "awards_draft.workers.realtime.fan_out_ceremony_event": {"queue": settings.REALTIME_QUEUE},
    },
)

celery.autodiscover_tasks(["awards_draft.workers"], related_name="realtime", force=True)
