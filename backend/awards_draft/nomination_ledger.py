"""Nomination integrity ledger.

Structural edits (create, delete, reorder, contributors) are only possible
while the ceremony is still DRAFT and no league has started drafting against
it. Status changes (revoke / replace / restore) are allowed at any ceremony
status, but each one writes exactly one `nomination_change_audit` row in the
same transaction as the status update.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft import ceremony_state
from awards_draft.audit import AuditWriter
from awards_draft.config import settings
from awards_draft.core.text_normalize import normalize_ids
from awards_draft.draft_lock import any_draft_started, load_ceremony_for_update
from awards_draft.errors import Conflict, ErrorCode, NotFound, ValidationFailed
from awards_draft.hydration import MetadataHydrator, PersonProfile
from awards_draft.metrics import NOMINATION_STATUS_CHANGES_TOTAL
from awards_draft.models.catalog import Film, Performance, Person, Song
from awards_draft.models.ceremony import CategoryEdition, Ceremony, UnitKind
from awards_draft.models.nomination import (
    ChangeImpact,
    ChangeOrigin,
    Nomination,
    NominationAction,
    NominationChangeAudit,
    NominationContributor,
    NominationStatus,
)

logger = logging.getLogger(__name__)

ACTION_TARGET_STATUS: dict[NominationAction, NominationStatus] = {
    NominationAction.REVOKE: NominationStatus.REVOKED,
    NominationAction.REPLACE: NominationStatus.REPLACED,
    NominationAction.RESTORE: NominationStatus.ACTIVE,
}

NOMINATION_TRANSITIONS: dict[NominationStatus, frozenset[NominationStatus]] = {
    NominationStatus.ACTIVE: frozenset({NominationStatus.REVOKED, NominationStatus.REPLACED}),
    NominationStatus.REVOKED: frozenset({NominationStatus.ACTIVE}),
    NominationStatus.REPLACED: frozenset({NominationStatus.ACTIVE}),
}


@dataclass(slots=True)
class ContributorInput:
    full_name: str | None = None
    person_id: int | None = None
    tmdb_id: int | None = None
    role_label: str | None = None


@dataclass(slots=True)
class NominationResult:
    nomination: Nomination
    contributors: list[NominationContributor] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ContributorResult:
    contributor: NominationContributor
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StatusChangeResult:
    nomination: Nomination
    audit: NominationChangeAudit


def _enum_value(enum_cls, raw, field_name: str):
    try:
        return enum_cls(str(getattr(raw, "value", raw) or "").upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailed(f"{field_name} must be one of {allowed}", fields=[field_name]) from None


def _nomination_status(value) -> NominationStatus:
    raw = str(getattr(value, "value", value))
    if raw.startswith("NominationStatus."):
        raw = raw.split(".", 1)[1]
    return NominationStatus(raw)


def assert_nomination_transition(current, target: NominationStatus) -> None:
    src = _nomination_status(current)
    if target not in NOMINATION_TRANSITIONS[src]:
        raise Conflict(
            ErrorCode.NOMINATION_INVALID_TRANSITION,
            f"Nomination cannot move from {src.value} to {target.value}",
            {"from_status": src.value, "to_status": target.value},
        )


def _validate_contributors(contributors: Iterable[ContributorInput]) -> list[ContributorInput]:
    out: list[ContributorInput] = []
    for index, contributor in enumerate(contributors):
        if contributor.person_id is None and not (contributor.full_name or "").strip():
            raise ValidationFailed(
                "Each contributor needs a person_id or a full_name",
                fields=[f"contributors[{index}].full_name"],
            )
        out.append(contributor)
    return out


def _tmdb_ids_to_hydrate(contributors: Sequence[ContributorInput]) -> list[int]:
    return [int(c.tmdb_id) for c in contributors if c.person_id is None and c.tmdb_id]


async def purge_nominations(session: AsyncSession, nomination_ids: Sequence[int]) -> int:
    """Delete nominations with their contributors and change history.

    Songs and performances left without any nomination are removed as well.
    Returns the number of nominations deleted.
    """
    ids = list(nomination_ids)
    if not ids:
        return 0

    units = (
        await session.execute(
            select(Nomination.song_id, Nomination.performance_id).where(Nomination.id.in_(ids))
        )
    ).all()
    song_ids = {song_id for song_id, _ in units if song_id is not None}
    performance_ids = {perf_id for _, perf_id in units if perf_id is not None}

    for stmt in (
        delete(NominationContributor).where(NominationContributor.nomination_id.in_(ids)),
        delete(NominationChangeAudit).where(
            or_(
                NominationChangeAudit.nomination_id.in_(ids),
                NominationChangeAudit.replacement_nomination_id.in_(ids),
            )
        ),
        update(Nomination).where(Nomination.id.in_(ids)).values(replaced_by_nomination_id=None),
    ):
        await session.execute(stmt.execution_options(synchronize_session=False))
    deleted = await session.execute(
        delete(Nomination).where(Nomination.id.in_(ids)).execution_options(synchronize_session=False)
    )

    if song_ids:
        still_used = set(
            (
                await session.execute(
                    select(Nomination.song_id).where(Nomination.song_id.in_(song_ids))
                )
            ).scalars().all()
        )
        orphaned = song_ids - still_used
        if orphaned:
            await session.execute(
                delete(Song).where(Song.id.in_(orphaned)).execution_options(synchronize_session=False)
            )
    if performance_ids:
        still_used = set(
            (
                await session.execute(
                    select(Nomination.performance_id).where(
                        Nomination.performance_id.in_(performance_ids)
                    )
                )
            ).scalars().all()
        )
        orphaned = performance_ids - still_used
        if orphaned:
            await session.execute(
                delete(Performance)
                .where(Performance.id.in_(orphaned))
                .execution_options(synchronize_session=False)
            )
    return int(deleted.rowcount or 0)


async def assert_structure_editable(session: AsyncSession, ceremony_id: int) -> Ceremony:
    """Row-lock the ceremony and refuse structural edits once drafting has begun."""
    ceremony = await load_ceremony_for_update(session, ceremony_id)
    ceremony_state.assert_draft(
        ceremony.status, "Nominations can only be edited while the ceremony is in DRAFT"
    )
    if await any_draft_started(session, ceremony.id):
        raise Conflict(
            ErrorCode.DRAFTS_LOCKED,
            "Nominations are locked because a draft has already started for this ceremony",
        )
    return ceremony


class NominationIntegrityLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditWriter,
        hydrator: MetadataHydrator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._hydrator = hydrator or MetadataHydrator()

    # ── Structural edits ──

    async def create_nomination(
        self,
        ceremony_id: int,
        category_edition_id: int,
        *,
        film_id: int | None = None,
        film_title: str | None = None,
        song_title: str | None = None,
        contributors: Iterable[ContributorInput] = (),
        actor_user_id: int | None = None,
    ) -> NominationResult:
        film_title = (film_title or "").strip() or None
        song_title = (song_title or "").strip() or None
        if film_id is None and film_title is None:
            raise ValidationFailed("film_id or film_title is required", fields=["film_id", "film_title"])
        people = _validate_contributors(contributors)

        # Phase one: external lookups, outside the transaction.
        hydration = await self._hydrator.lookup_people(_tmdb_ids_to_hydrate(people))

        async with self._session_factory() as session, session.begin():
            await assert_structure_editable(session, ceremony_id)
            category = await self._category_of(session, ceremony_id, category_edition_id)
            unit_kind = UnitKind(str(getattr(category.unit_kind, "value", category.unit_kind)))
            if unit_kind == UnitKind.SONG and song_title is None:
                raise ValidationFailed("song_title is required for song categories", fields=["song_title"])
            if unit_kind == UnitKind.PERFORMANCE and not people:
                raise ValidationFailed(
                    "Performance categories need at least one contributor", fields=["contributors"]
                )

            film = await self._resolve_film(session, film_id, film_title)
            persons = [
                await self._resolve_person(session, c, hydration.profiles) for c in people
            ]

            nomination = Nomination(
                category_edition_id=category.id,
                status=NominationStatus.ACTIVE,
                sort_order=await self._next_sort_order(
                    session, Nomination.sort_order, Nomination.category_edition_id == category.id
                ),
            )
            if unit_kind == UnitKind.SONG:
                song = Song(title=song_title, film_id=film.id)
                session.add(song)
                await session.flush()
                nomination.song_id = song.id
            elif unit_kind == UnitKind.PERFORMANCE:
                nomination.performance_id = (
                    await self._resolve_performance(session, film.id, persons[0].id)
                ).id
            else:
                nomination.film_id = film.id
            session.add(nomination)
            await session.flush()

            rows = [
                NominationContributor(
                    nomination_id=nomination.id,
                    person_id=person.id,
                    role_label=(c.role_label or "").strip() or None,
                    sort_order=index,
                )
                for index, (c, person) in enumerate(zip(people, persons))
            ]
            session.add_all(rows)
            await session.flush()

        logger.info(
            "Nomination created",
            extra={"nomination_id": nomination.id, "category_edition_id": category_edition_id},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="create_nomination_manual",
            target_type="nomination",
            target_id=nomination.id,
            meta={"ceremony_id": ceremony_id, "category_edition_id": category_edition_id},
        )
        return NominationResult(nomination=nomination, contributors=rows, warnings=hydration.warnings)

    async def delete_nomination(self, nomination_id: int, *, actor_user_id: int | None = None) -> None:
        async with self._session_factory() as session, session.begin():
            nomination, ceremony_id = await self._nomination_with_ceremony(session, nomination_id)
            await assert_structure_editable(session, ceremony_id)

            dependants = (
                await session.execute(
                    select(Nomination.id).where(
                        Nomination.replaced_by_nomination_id == nomination.id,
                        Nomination.id != nomination.id,
                    )
                )
            ).scalars().all()
            if dependants:
                raise Conflict(
                    ErrorCode.NOMINATION_IS_REPLACEMENT,
                    "Nomination is the recorded replacement of other nominations",
                    {"nomination_ids": list(dependants)},
                )
            await purge_nominations(session, [nomination.id])

        logger.info("Nomination deleted", extra={"nomination_id": nomination_id})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="delete_nomination",
            target_type="nomination",
            target_id=nomination_id,
            meta={"ceremony_id": ceremony_id},
        )

    async def reorder_nominations(
        self,
        ceremony_id: int,
        category_edition_id: int,
        ordered_ids: Iterable[int],
        *,
        actor_user_id: int | None = None,
    ) -> list[int]:
        ids = normalize_ids(ordered_ids)
        if not ids:
            raise ValidationFailed("nomination_ids is required", fields=["nomination_ids"])

        async with self._session_factory() as session, session.begin():
            await assert_structure_editable(session, ceremony_id)
            category = await self._category_of(session, ceremony_id, category_edition_id)
            nominations = {
                n.id: n
                for n in (
                    await session.execute(
                        select(Nomination).where(
                            Nomination.id.in_(ids), Nomination.category_edition_id == category.id
                        )
                    )
                ).scalars().all()
            }
            foreign = [nid for nid in ids if nid not in nominations]
            if foreign:
                raise ValidationFailed(
                    "All nominations must belong to the category",
                    fields=["nomination_ids"],
                    details={"nomination_ids": foreign},
                )
            for index, nid in enumerate(ids):
                nominations[nid].sort_order = index
            await session.flush()

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="reorder_nominations",
            target_type="category_edition",
            target_id=category_edition_id,
            meta={"ceremony_id": ceremony_id, "nomination_ids": ids},
        )
        return ids

    async def add_contributor(
        self,
        nomination_id: int,
        contributor: ContributorInput,
        *,
        actor_user_id: int | None = None,
    ) -> ContributorResult:
        (contributor,) = _validate_contributors([contributor])
        hydration = await self._hydrator.lookup_people(_tmdb_ids_to_hydrate([contributor]))

        async with self._session_factory() as session, session.begin():
            nomination, ceremony_id = await self._nomination_with_ceremony(session, nomination_id)
            await assert_structure_editable(session, ceremony_id)
            person = await self._resolve_person(session, contributor, hydration.profiles)
            row = NominationContributor(
                nomination_id=nomination.id,
                person_id=person.id,
                role_label=(contributor.role_label or "").strip() or None,
                sort_order=await self._next_sort_order(
                    session,
                    NominationContributor.sort_order,
                    NominationContributor.nomination_id == nomination.id,
                ),
            )
            session.add(row)
            await session.flush()

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="add_nomination_contributor",
            target_type="nomination",
            target_id=nomination_id,
            meta={"person_id": row.person_id, "contributor_id": row.id},
        )
        return ContributorResult(contributor=row, warnings=hydration.warnings)

    async def remove_contributor(
        self,
        nomination_id: int,
        contributor_id: int,
        *,
        actor_user_id: int | None = None,
    ) -> None:
        async with self._session_factory() as session, session.begin():
            nomination, ceremony_id = await self._nomination_with_ceremony(session, nomination_id)
            await assert_structure_editable(session, ceremony_id)
            row = await session.get(NominationContributor, contributor_id)
            if row is None or row.nomination_id != nomination.id:
                raise NotFound(
                    "Contributor not found on nomination",
                    {"nomination_id": nomination_id, "contributor_id": contributor_id},
                )
            await session.delete(row)

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="remove_nomination_contributor",
            target_type="nomination",
            target_id=nomination_id,
            meta={"contributor_id": contributor_id},
        )

    # ── Status ledger ──

    async def change_status(
        self,
        nomination_id: int,
        *,
        action: NominationAction | str,
        origin: ChangeOrigin | str,
        impact: ChangeImpact | str,
        reason: str | None,
        replacement_nomination_id: int | None = None,
        actor_user_id: int | None = None,
    ) -> StatusChangeResult:
        action = _enum_value(NominationAction, action, "action")
        origin = _enum_value(ChangeOrigin, origin, "origin")
        impact = _enum_value(ChangeImpact, impact, "impact")
        clean_reason = (reason or "").strip()
        if len(clean_reason) < settings.NOMINATION_REASON_MIN_LENGTH:
            raise ValidationFailed(
                f"reason must be at least {settings.NOMINATION_REASON_MIN_LENGTH} characters",
                fields=["reason"],
            )
        if action == NominationAction.REPLACE:
            if replacement_nomination_id is None:
                raise ValidationFailed(
                    "replacement_nomination_id is required for REPLACE",
                    fields=["replacement_nomination_id"],
                )
            if int(replacement_nomination_id) == int(nomination_id):
                raise ValidationFailed(
                    "A nomination cannot replace itself", fields=["replacement_nomination_id"]
                )
        else:
            replacement_nomination_id = None

        target = ACTION_TARGET_STATUS[action]
        async with self._session_factory() as session, session.begin():
            nomination = (
                await session.execute(
                    select(Nomination).where(Nomination.id == nomination_id).with_for_update()
                )
            ).scalar_one_or_none()
            if nomination is None:
                raise NotFound("Nomination not found", {"nomination_id": nomination_id})

            if replacement_nomination_id is not None:
                replacement = await session.get(Nomination, int(replacement_nomination_id))
                if replacement is None:
                    raise NotFound(
                        "Replacement nomination not found",
                        {"replacement_nomination_id": replacement_nomination_id},
                    )
                if replacement.category_edition_id != nomination.category_edition_id:
                    # TODO: decide whether cross-category replacement should be rejected outright.
                    logger.warning(
                        "Replacement nomination is in a different category",
                        extra={
                            "nomination_id": nomination.id,
                            "replacement_nomination_id": replacement.id,
                            "category_edition_id": nomination.category_edition_id,
                            "replacement_category_edition_id": replacement.category_edition_id,
                        },
                    )

            assert_nomination_transition(nomination.status, target)
            nomination.status = target
            nomination.replaced_by_nomination_id = (
                int(replacement_nomination_id) if target == NominationStatus.REPLACED else None
            )
            audit_row = NominationChangeAudit(
                nomination_id=nomination.id,
                replacement_nomination_id=nomination.replaced_by_nomination_id,
                action=action,
                origin=origin,
                impact=impact,
                reason=clean_reason,
                created_by_user_id=actor_user_id,
            )
            session.add(audit_row)
            await session.flush()

        NOMINATION_STATUS_CHANGES_TOTAL.labels(action=action.value, impact=impact.value).inc()
        logger.info(
            "Nomination status changed",
            extra={"nomination_id": nomination_id, "action": action.value, "status": target.value},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="nomination_change",
            target_type="nomination",
            target_id=nomination_id,
            meta={
                "action": action.value,
                "origin": origin.value,
                "impact": impact.value,
                "replacement_nomination_id": audit_row.replacement_nomination_id,
            },
        )
        return StatusChangeResult(nomination=nomination, audit=audit_row)

    # ── Helpers ──

    @staticmethod
    async def _category_of(
        session: AsyncSession, ceremony_id: int, category_edition_id: int
    ) -> CategoryEdition:
        category = await session.get(CategoryEdition, category_edition_id)
        if category is None or category.ceremony_id != ceremony_id:
            raise NotFound(
                "Category edition not found in ceremony",
                {"ceremony_id": ceremony_id, "category_edition_id": category_edition_id},
            )
        return category

    @staticmethod
    async def _nomination_with_ceremony(
        session: AsyncSession, nomination_id: int
    ) -> tuple[Nomination, int]:
        row = (
            await session.execute(
                select(Nomination, CategoryEdition.ceremony_id)
                .join(CategoryEdition, CategoryEdition.id == Nomination.category_edition_id)
                .where(Nomination.id == nomination_id)
            )
        ).first()
        if row is None:
            raise NotFound("Nomination not found", {"nomination_id": nomination_id})
        return row[0], int(row[1])

    @staticmethod
    async def _next_sort_order(session: AsyncSession, column, criterion) -> int:
        current = (await session.execute(select(func.max(column)).where(criterion))).scalar()
        return 0 if current is None else int(current) + 1

    @staticmethod
    async def _resolve_film(session: AsyncSession, film_id: int | None, film_title: str | None) -> Film:
        if film_id is not None:
            film = await session.get(Film, film_id)
            if film is None:
                raise NotFound("Film not found", {"film_id": film_id})
            return film
        film = (
            await session.execute(select(Film).where(Film.title == film_title).order_by(Film.id).limit(1))
        ).scalar()
        if film is None:
            film = Film(title=film_title)
            session.add(film)
            await session.flush()
        return film

    @staticmethod
    async def _resolve_person(
        session: AsyncSession,
        contributor: ContributorInput,
        profiles: dict[int, PersonProfile],
    ) -> Person:
        if contributor.person_id is not None:
            person = await session.get(Person, contributor.person_id)
            if person is None:
                raise NotFound("Person not found", {"person_id": contributor.person_id})
            return person

        full_name = (contributor.full_name or "").strip()
        profile = profiles.get(int(contributor.tmdb_id)) if contributor.tmdb_id else None
        if contributor.tmdb_id:
            person = (
                await session.execute(select(Person).where(Person.tmdb_id == int(contributor.tmdb_id)))
            ).scalar()
            if person is not None:
                if profile is not None and not person.profile_path:
                    person.profile_path = profile.profile_path
                    person.profile_url = profile.profile_url
                return person

        person = Person(
            full_name=full_name,
            tmdb_id=int(contributor.tmdb_id) if contributor.tmdb_id else None,
            profile_path=profile.profile_path if profile else None,
            profile_url=profile.profile_url if profile else None,
            external_ids=profile.external_ids if profile else None,
        )
        session.add(person)
        await session.flush()
        return person

    @staticmethod
    async def _resolve_performance(session: AsyncSession, film_id: int, person_id: int) -> Performance:
        performance = (
            await session.execute(
                select(Performance).where(
                    Performance.film_id == film_id, Performance.person_id == person_id
                )
            )
        ).scalar()
        if performance is None:
            performance = Performance(film_id=film_id, person_id=person_id)
            session.add(performance)
            await session.flush()
        return performance
