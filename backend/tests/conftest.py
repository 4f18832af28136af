from __future__ import annotations

from typing import Any, AsyncGenerator, Iterable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import awards_draft.models  # noqa: F401  (registers every table on Base.metadata)
from awards_draft.active_ceremony import ActiveCeremonyConfig
from awards_draft.audit import AuditWriter
from awards_draft.db import Base
from awards_draft.hydration import HydrationOutcome, MetadataHydrator, PersonProfile
from awards_draft.realtime import RealtimeNotifier


class RecordingAudit(AuditWriter):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory)
        self.records: list[dict[str, Any]] = []

    @property
    def actions(self) -> list[str]:
        return [r["action"] for r in self.records]

    async def record(self, **kwargs: Any) -> None:
        self.records.append(kwargs)
        await super().record(**kwargs)


class RecordingNotifier(RealtimeNotifier):
    def __init__(self) -> None:
        super().__init__(celery_app=object())
        self.events: list[tuple[str, int, dict[str, Any]]] = []

    @property
    def event_types(self) -> list[str]:
        return [e[0] for e in self.events]

    def emit(self, event_type: str, *, ceremony_id: int, payload: dict[str, Any]) -> None:
        self.events.append((event_type, ceremony_id, payload))


class FakeHydrator(MetadataHydrator):
    """Answers from a fixed profile table; any other id comes back as a warning."""

    def __init__(self, profiles: Iterable[PersonProfile] = ()) -> None:
        self.profiles = {p.tmdb_id: p for p in profiles}
        self.calls: list[list[int]] = []

    async def lookup_people(self, tmdb_ids: Iterable[int]) -> HydrationOutcome:
        ids = [int(t) for t in tmdb_ids]
        self.calls.append(ids)
        outcome = HydrationOutcome()
        for tmdb_id in ids:
            if tmdb_id in self.profiles:
                outcome.profiles[tmdb_id] = self.profiles[tmdb_id]
            else:
                outcome.warnings.append(f"Could not load TMDB profile for person {tmdb_id}")
        return outcome


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'awards.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def audit(session_factory) -> RecordingAudit:
    return RecordingAudit(session_factory)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def hydrator() -> FakeHydrator:
    return FakeHydrator(
        [
            PersonProfile(
                tmdb_id=500,
                name="Emma Stone",
                profile_path="/emma.jpg",
                profile_url="https://image.tmdb.org/t/p/w185/emma.jpg",
            )
        ]
    )


@pytest.fixture
def active_config(session_factory) -> ActiveCeremonyConfig:
    return ActiveCeremonyConfig(session_factory)
