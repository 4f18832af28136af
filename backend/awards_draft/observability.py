"""Optional OpenTelemetry tracing.

The SDK and instrumentation packages live in the `otel` extra; without them
every call here logs once and does nothing.
"""
from __future__ import annotations

import logging
from typing import Callable

from awards_draft.config import settings

logger = logging.getLogger(__name__)


def _instrument_fastapi(app) -> None:
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)


def _instrument_sqlalchemy(app) -> None:
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    from awards_draft.db import engine

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def _instrument_httpx(app) -> None:
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()


def _instrument_celery(app) -> None:
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()


# (name, needs the FastAPI app, hook)
_INSTRUMENTATIONS: tuple[tuple[str, bool, Callable], ...] = (
    ("fastapi", True, _instrument_fastapi),
    ("sqlalchemy", False, _instrument_sqlalchemy),
    ("httpx", False, _instrument_httpx),
    ("celery", False, _instrument_celery),
)


def setup_opentelemetry(app=None, *, process: str = "api") -> bool:
    """Install a tracer provider and whatever instrumentations are importable.

    Returns True when tracing was installed by this call.
    """
    if not settings.OTEL_ENABLED:
        return False
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError as exc:
        logger.info("OpenTelemetry disabled (packages missing): %s", exc)
        return False

    if trace.get_tracer_provider().__class__.__name__ != "ProxyTracerProvider":
        return False

    provider = TracerProvider(
        resource=Resource.create({"service.name": f"{settings.OTEL_SERVICE_NAME}-{process}"})
    )
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    for name, needs_app, hook in _INSTRUMENTATIONS:
        if needs_app and app is None:
            continue
        try:
            hook(app)
        except ImportError as exc:
            logger.info("%s OTel instrumentation unavailable: %s", name, exc)
    return True
