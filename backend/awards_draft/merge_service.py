"""Canonical entity merges.

A merge runs an ordered pipeline of steps per duplicate, one step per
referencing table. Every step is idempotent and returns the number of rows it
touched, so adding a new referencing table means adding a step, not editing
the orchestration. The whole pipeline runs in a single transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft.audit import AuditWriter
from awards_draft.core.text_normalize import normalize_ids, normalize_title
from awards_draft.errors import Conflict, ErrorCode, NotFound, ValidationFailed
from awards_draft.metrics import ENTITY_MERGES_TOTAL, MERGE_ROWS_TOTAL
from awards_draft.models.catalog import Film, FilmCredit, Performance, Person, Song
from awards_draft.models.nomination import Nomination, NominationContributor

logger = logging.getLogger(__name__)

StepFn = Callable[[AsyncSession, int, int], Awaitable[int]]


@dataclass(slots=True, frozen=True)
class MergeStep:
    name: str
    run: StepFn


@dataclass(slots=True)
class MergeResult:
    entity: str
    canonical_id: int
    duplicate_ids: list[int]
    counts: dict[str, int] = field(default_factory=dict)


async def run_pipeline(
    session: AsyncSession,
    steps: Sequence[MergeStep],
    *,
    entity: str,
    canonical_id: int,
    duplicate_ids: Sequence[int],
) -> dict[str, int]:
    counts = {step.name: 0 for step in steps}
    for duplicate_id in duplicate_ids:
        for step in steps:
            touched = int(await step.run(session, canonical_id, duplicate_id) or 0)
            counts[step.name] += touched
            if touched:
                MERGE_ROWS_TOTAL.labels(entity=entity, step=step.name).inc(touched)
    return counts


async def _bulk(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return int(result.rowcount or 0)


async def _collapse_performances(
    session: AsyncSession, pairs: Iterable[tuple[int, int]]
) -> int:
    """Point nominations at the surviving performance, then drop the loser.

    `pairs` are `(duplicate_performance_id, surviving_performance_id)`.
    """
    resolved = 0
    for duplicate_perf_id, surviving_perf_id in pairs:
        await _bulk(
            session,
            update(Nomination)
            .where(Nomination.performance_id == duplicate_perf_id)
            .values(performance_id=surviving_perf_id),
        )
        await _bulk(session, delete(Performance).where(Performance.id == duplicate_perf_id))
        resolved += 1
    return resolved


# ── Film steps ──

async def _repoint_film_nominations(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session,
        update(Nomination).where(Nomination.film_id == duplicate_id).values(film_id=canonical_id),
    )


async def _repoint_film_songs(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session, update(Song).where(Song.film_id == duplicate_id).values(film_id=canonical_id)
    )


async def _resolve_film_performance_collisions(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    canonical_by_person = dict(
        (
            await session.execute(
                select(Performance.person_id, Performance.id).where(Performance.film_id == canonical_id)
            )
        ).all()
    )
    duplicates = (
        await session.execute(
            select(Performance.id, Performance.person_id).where(Performance.film_id == duplicate_id)
        )
    ).all()
    pairs = [
        (perf_id, canonical_by_person[person_id])
        for perf_id, person_id in duplicates
        if person_id in canonical_by_person
    ]
    return await _collapse_performances(session, pairs)


async def _repoint_film_performances(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session,
        update(Performance).where(Performance.film_id == duplicate_id).values(film_id=canonical_id),
    )


async def _delete_film_credit_conflicts(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    canonical_credit_ids = select(FilmCredit.tmdb_credit_id).where(
        FilmCredit.film_id == canonical_id, FilmCredit.tmdb_credit_id.is_not(None)
    )
    return await _bulk(
        session,
        delete(FilmCredit).where(
            FilmCredit.film_id == duplicate_id,
            FilmCredit.tmdb_credit_id.in_(canonical_credit_ids),
        ),
    )


async def _repoint_film_credits(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session,
        update(FilmCredit).where(FilmCredit.film_id == duplicate_id).values(film_id=canonical_id),
    )


async def _delete_duplicate_film(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    duplicate = await session.get(Film, duplicate_id)
    if duplicate is None:
        return 0
    canonical = await session.get(Film, canonical_id)
    carry_tmdb = duplicate.tmdb_id if canonical is not None and canonical.tmdb_id is None else None
    if canonical is not None and canonical.release_year is None:
        canonical.release_year = duplicate.release_year
    await session.delete(duplicate)
    await session.flush()
    if carry_tmdb is not None:
        canonical.tmdb_id = carry_tmdb
        await session.flush()
    return 1


FILM_MERGE_STEPS: tuple[MergeStep, ...] = (
    MergeStep("nominations_repointed", _repoint_film_nominations),
    MergeStep("songs_repointed", _repoint_film_songs),
    MergeStep("performance_collisions_resolved", _resolve_film_performance_collisions),
    MergeStep("performances_repointed", _repoint_film_performances),
    MergeStep("film_credit_conflicts_deleted", _delete_film_credit_conflicts),
    MergeStep("film_credits_repointed", _repoint_film_credits),
    MergeStep("films_deleted", _delete_duplicate_film),
)


# ── Person steps ──

async def _delete_contributor_collisions(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    canonical_nominations = select(NominationContributor.nomination_id).where(
        NominationContributor.person_id == canonical_id
    )
    return await _bulk(
        session,
        delete(NominationContributor).where(
            NominationContributor.person_id == duplicate_id,
            NominationContributor.nomination_id.in_(canonical_nominations),
        ),
    )


async def _repoint_contributors(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session,
        update(NominationContributor)
        .where(NominationContributor.person_id == duplicate_id)
        .values(person_id=canonical_id),
    )


async def _resolve_person_performance_collisions(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    canonical_by_film = dict(
        (
            await session.execute(
                select(Performance.film_id, Performance.id).where(Performance.person_id == canonical_id)
            )
        ).all()
    )
    duplicates = (
        await session.execute(
            select(Performance.id, Performance.film_id).where(Performance.person_id == duplicate_id)
        )
    ).all()
    pairs = [
        (perf_id, canonical_by_film[film_id])
        for perf_id, film_id in duplicates
        if film_id in canonical_by_film
    ]
    return await _collapse_performances(session, pairs)


async def _repoint_person_performances(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    return await _bulk(
        session,
        update(Performance)
        .where(Performance.person_id == duplicate_id)
        .values(person_id=canonical_id),
    )


async def _delete_person_credit_conflicts(
    session: AsyncSession, canonical_id: int, duplicate_id: int
) -> int:
    canonical_credit_ids = select(FilmCredit.tmdb_credit_id).where(
        FilmCredit.person_id == canonical_id, FilmCredit.tmdb_credit_id.is_not(None)
    )
    return await _bulk(
        session,
        delete(FilmCredit).where(
            FilmCredit.person_id == duplicate_id,
            FilmCredit.tmdb_credit_id.in_(canonical_credit_ids),
        ),
    )


async def _repoint_person_credits(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    return await _bulk(
        session,
        update(FilmCredit).where(FilmCredit.person_id == duplicate_id).values(person_id=canonical_id),
    )


async def _carry_over_tmdb_link(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    canonical = await session.get(Person, canonical_id)
    duplicate = await session.get(Person, duplicate_id)
    if canonical is None or duplicate is None:
        return 0
    if canonical.tmdb_id is not None or duplicate.tmdb_id is None:
        return 0
    tmdb_id = duplicate.tmdb_id
    profile = (duplicate.profile_path, duplicate.profile_url, duplicate.external_ids)
    # The unique key on person.tmdb_id forbids holding it twice, even briefly.
    duplicate.tmdb_id = None
    await session.flush()
    canonical.tmdb_id = tmdb_id
    canonical.profile_path = canonical.profile_path or profile[0]
    canonical.profile_url = canonical.profile_url or profile[1]
    canonical.external_ids = canonical.external_ids or profile[2]
    await session.flush()
    return 1


async def _delete_duplicate_person(session: AsyncSession, canonical_id: int, duplicate_id: int) -> int:
    duplicate = await session.get(Person, duplicate_id)
    if duplicate is None:
        return 0
    await session.delete(duplicate)
    await session.flush()
    return 1


PERSON_MERGE_STEPS: tuple[MergeStep, ...] = (
    MergeStep("contributor_collisions_deleted", _delete_contributor_collisions),
    MergeStep("contributors_repointed", _repoint_contributors),
    MergeStep("performance_collisions_resolved", _resolve_person_performance_collisions),
    MergeStep("performances_repointed", _repoint_person_performances),
    MergeStep("film_credit_conflicts_deleted", _delete_person_credit_conflicts),
    MergeStep("film_credits_repointed", _repoint_person_credits),
    MergeStep("tmdb_links_carried_over", _carry_over_tmdb_link),
    MergeStep("people_deleted", _delete_duplicate_person),
)


def _duplicate_ids(canonical_id: int, duplicate_ids: Iterable[int | str]) -> list[int]:
    ids = [i for i in normalize_ids(duplicate_ids) if i != int(canonical_id)]
    if not ids:
        raise ValidationFailed("No valid duplicate_ids provided", fields=["duplicate_ids"])
    return ids


class EntityMergeEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditWriter,
        film_steps: Sequence[MergeStep] = FILM_MERGE_STEPS,
        person_steps: Sequence[MergeStep] = PERSON_MERGE_STEPS,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._film_steps = tuple(film_steps)
        self._person_steps = tuple(person_steps)

    async def merge_films(
        self,
        canonical_id: int,
        duplicate_ids: Iterable[int | str],
        *,
        actor_user_id: int | None = None,
    ) -> MergeResult:
        ids = _duplicate_ids(canonical_id, duplicate_ids)

        async with self._session_factory() as session, session.begin():
            canonical = (
                await session.execute(select(Film).where(Film.id == canonical_id).with_for_update())
            ).scalar_one_or_none()
            if canonical is None:
                raise NotFound("Canonical film not found", {"film_id": canonical_id})
            duplicates = (
                await session.execute(
                    select(Film).where(Film.id.in_(ids)).order_by(Film.id).with_for_update()
                )
            ).scalars().all()
            missing = sorted(set(ids) - {f.id for f in duplicates})
            if missing:
                raise NotFound("One or more duplicate films not found", {"missing_ids": missing})

            key = normalize_title(canonical.title)
            mismatched = [f.id for f in duplicates if normalize_title(f.title) != key]
            if mismatched:
                raise ValidationFailed(
                    "Duplicate films must have the same normalized title as the canonical film",
                    fields=["duplicate_ids"],
                    details={"mismatched_ids": mismatched},
                )

            counts = await run_pipeline(
                session,
                self._film_steps,
                entity="film",
                canonical_id=canonical.id,
                duplicate_ids=ids,
            )

        ENTITY_MERGES_TOTAL.labels(entity="film").inc(len(ids))
        logger.info(
            "Films merged",
            extra={"canonical_id": canonical_id, "duplicate_ids": ids, "counts": counts},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="merge_films",
            target_type="film",
            target_id=canonical_id,
            meta={"duplicate_ids": ids, "counts": counts},
        )
        return MergeResult(entity="film", canonical_id=canonical_id, duplicate_ids=ids, counts=counts)

    async def merge_people(
        self,
        canonical_id: int,
        duplicate_ids: Iterable[int | str],
        *,
        actor_user_id: int | None = None,
    ) -> MergeResult:
        ids = _duplicate_ids(canonical_id, duplicate_ids)

        async with self._session_factory() as session, session.begin():
            canonical = (
                await session.execute(select(Person).where(Person.id == canonical_id).with_for_update())
            ).scalar_one_or_none()
            if canonical is None:
                raise NotFound("Canonical person not found", {"person_id": canonical_id})
            duplicates = (
                await session.execute(
                    select(Person).where(Person.id.in_(ids)).order_by(Person.id).with_for_update()
                )
            ).scalars().all()
            missing = sorted(set(ids) - {p.id for p in duplicates})
            if missing:
                raise NotFound("One or more duplicate people not found", {"missing_ids": missing})

            selected = [canonical, *duplicates]
            linked = [p for p in selected if p.tmdb_id is not None]
            if len({p.tmdb_id for p in linked}) > 1:
                raise Conflict(
                    ErrorCode.PERSON_MERGE_LINK_CONFLICT,
                    "Multiple selected people are linked to different TMDB ids. Unlink before merging.",
                    {
                        "linked_people": [
                            {"id": p.id, "full_name": p.full_name, "tmdb_id": p.tmdb_id}
                            for p in linked
                        ]
                    },
                )

            key = normalize_title(canonical.full_name)
            mismatched = [p.id for p in duplicates if normalize_title(p.full_name) != key]
            if mismatched:
                raise ValidationFailed(
                    "Duplicate people must have the same normalized name as the canonical person",
                    fields=["duplicate_ids"],
                    details={"mismatched_ids": mismatched},
                )

            counts = await run_pipeline(
                session,
                self._person_steps,
                entity="person",
                canonical_id=canonical.id,
                duplicate_ids=ids,
            )

        ENTITY_MERGES_TOTAL.labels(entity="person").inc(len(ids))
        logger.info(
            "People merged",
            extra={"canonical_id": canonical_id, "duplicate_ids": ids, "counts": counts},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="merge_people",
            target_type="person",
            target_id=canonical_id,
            meta={"duplicate_ids": ids, "counts": counts},
        )
        return MergeResult(entity="person", canonical_id=canonical_id, duplicate_ids=ids, counts=counts)
