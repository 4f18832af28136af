"""FastAPI application — health, metrics, CORS, error rendering and the admin/draft APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import JSONResponse, PlainTextResponse, Response

from awards_draft.api.admin import router as admin_router
from awards_draft.api.drafts import router as drafts_router
from awards_draft.config import settings
from awards_draft.errors import AppError, InternalError, ValidationFailed
from awards_draft.logging_config import setup_logging
from awards_draft.observability import setup_opentelemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — setup / teardown."""
    setup_logging()
    setup_opentelemetry(app)
    logger.info("Awards draft API starting", extra={"env": settings.APP_ENV})
    yield
    logger.info("Awards draft API shutting down")


app = FastAPI(
    title="Awards Draft",
    version="0.1.0",
    description="Ceremony lifecycle, nomination ledger and draft pick arbitration",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ──
def _error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message, extra={"code": exc.code, "path": request.url.path})
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    return _error_response(ValidationFailed("Invalid request", fields=fields))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "method": request.method,
            "path": request.url.path,
            "actor_user_id": request.headers.get("x-user-id"),
        },
    )
    return _error_response(InternalError("Unexpected error"))


app.include_router(admin_router)
app.include_router(drafts_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "awards-draft"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
