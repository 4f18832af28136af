"""Async SQLAlchemy engine, session factory and declarative base."""
from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from awards_draft.config import settings

# Deterministic names for unnamed constraints, so migrations diff cleanly.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def build_engine(url: str | None = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    options: dict = {"echo": settings.APP_ENV == "development", "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows handed back by services stay readable after their transaction commits.
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base used by all ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    # Server-side timestamps are fetched during flush so rows stay readable after commit.
    __mapper_args__ = {"eager_defaults": True}


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency — the factory each service opens its transaction from."""
    return async_session_factory
