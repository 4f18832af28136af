"""JSON structured logging for the API and the realtime worker."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from awards_draft.config import settings

# Loggers that drown out business events at INFO.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "kombu": logging.WARNING,
    "celery": logging.INFO,
}


def build_formatter(process: str) -> JsonFormatter:
    """One JSON object per record; `process` tags API vs worker output."""
    return JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": "awards-draft", "process": process, "env": settings.APP_ENV},
    )


def setup_logging(process: str = "api", level: str | None = None) -> None:
    """Replace root handlers with a single stdout JSON handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(process))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level or settings.APP_LOG_LEVEL)

    for name, logger_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)
    # SQL echo only helps while developing against a local database.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.APP_ENV == "development" else logging.WARNING
    )
