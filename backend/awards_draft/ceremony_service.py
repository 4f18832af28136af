"""Ceremony lifecycle service.

Every operation runs in one transaction opened from the injected session
factory. Business rules are checked before the first write; the admin audit
record and any realtime notification follow strictly after commit.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft import ceremony_state
from awards_draft.active_ceremony import ActiveCeremonyConfig
from awards_draft.audit import AuditWriter
from awards_draft.core.text_normalize import normalize_ids
from awards_draft.draft_lock import lock_ceremony_drafts, load_ceremony_for_update
from awards_draft.errors import (
    SCHEMA_OUT_OF_DATE_SQLSTATES,
    Conflict,
    ErrorCode,
    NotFound,
    SchemaOutOfDate,
    ValidationFailed,
    sqlstate_of,
)
from awards_draft.metrics import CEREMONY_TRANSITIONS_TOTAL
from awards_draft.models.ceremony import CategoryEdition, Ceremony, CeremonyStatus, CeremonyWinner
from awards_draft.models.draft import Draft, DraftPick, DraftSeat
from awards_draft.models.league import Season, SeasonMember
from awards_draft.models.nomination import (
    Nomination,
    NominationChangeAudit,
    NominationContributor,
    NominationStatus,
)
from awards_draft.realtime import RealtimeNotifier

logger = logging.getLogger(__name__)

CEREMONY_CODE_RE = re.compile(r"^[a-z0-9-]+$")
MIN_YEAR = 1900
MAX_YEAR = 3000


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(slots=True, frozen=True)
class CeremonyPatch:
    """Partial ceremony update. Fields left as UNSET are not touched."""

    code: str | None = UNSET
    name: str | None = UNSET
    year: int | None = UNSET
    starts_at: datetime | None = UNSET

    def present_fields(self) -> list[tuple[str, Any]]:
        return [
            (f.name, getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        ]


@dataclass(slots=True)
class LockOutcome:
    ceremony: Ceremony
    draft_locked_at: datetime
    cancelled_drafts_count: int


@dataclass(slots=True)
class WinnersOutcome:
    ceremony_id: int
    category_edition_id: int
    winners: list[CeremonyWinner] = field(default_factory=list)
    draft_locked_at: datetime | None = None
    cancelled_drafts_count: int = 0


def validate_code(code: str | None) -> str:
    value = (code or "").strip()
    if not value:
        raise ValidationFailed("Ceremony code is required", fields=["code"])
    if not CEREMONY_CODE_RE.match(value):
        raise ValidationFailed(
            "Ceremony code must contain only lowercase letters, digits and dashes",
            fields=["code"],
        )
    return value


def validate_name(name: str | None) -> str:
    value = (name or "").strip()
    if not value:
        raise ValidationFailed("Ceremony name is required", fields=["name"])
    return value


def validate_year(year: int | None) -> int | None:
    if year is None:
        return None
    if not MIN_YEAR <= int(year) <= MAX_YEAR:
        raise ValidationFailed(
            f"Year must be between {MIN_YEAR} and {MAX_YEAR}", fields=["year"]
        )
    return int(year)


_FIELD_VALIDATORS = {
    "code": validate_code,
    "name": validate_name,
    "year": validate_year,
    "starts_at": lambda value: value,
}


def _record_transition(old: str, new: CeremonyStatus) -> None:
    CEREMONY_TRANSITIONS_TOTAL.labels(from_status=old, to_status=new.value).inc()


class CeremonyLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditWriter,
        notifier: RealtimeNotifier,
        active_config: ActiveCeremonyConfig,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._notifier = notifier
        self._active_config = active_config

    # ── Authoring ──

    async def create(
        self,
        *,
        code: str | None,
        name: str | None,
        year: int | None = None,
        starts_at: datetime | None = None,
        actor_user_id: int | None = None,
    ) -> Ceremony:
        clean_code = validate_code(code)
        clean_name = validate_name(name)
        clean_year = validate_year(year)

        try:
            async with self._session_factory() as session, session.begin():
                await self._assert_code_free(session, clean_code)
                ceremony = Ceremony(
                    code=clean_code,
                    name=clean_name,
                    year=clean_year,
                    starts_at=starts_at,
                    status=CeremonyStatus.DRAFT,
                )
                session.add(ceremony)
                await session.flush()
        except IntegrityError as exc:
            raise ValidationFailed("Ceremony code already exists", fields=["code"]) from exc

        logger.info("Ceremony created", extra={"ceremony_id": ceremony.id, "code": clean_code})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="create_ceremony",
            target_type="ceremony",
            target_id=ceremony.id,
            meta={"code": clean_code, "name": clean_name},
        )
        return ceremony

    async def update(
        self,
        ceremony_id: int,
        patch: CeremonyPatch,
        *,
        actor_user_id: int | None = None,
    ) -> Ceremony:
        present = patch.present_fields()
        if not present:
            raise ValidationFailed("No fields to update")
        cleaned = [(name, _FIELD_VALIDATORS[name](value)) for name, value in present]

        try:
            async with self._session_factory() as session, session.begin():
                ceremony = await load_ceremony_for_update(session, ceremony_id)
                ceremony_state.assert_not_archived(ceremony.status)
                for name, value in cleaned:
                    if name == "code" and value != ceremony.code:
                        await self._assert_code_free(session, value, exclude_id=ceremony.id)
                    setattr(ceremony, name, value)
                await session.flush()
        except IntegrityError as exc:
            raise ValidationFailed("Ceremony code already exists", fields=["code"]) from exc

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="update_ceremony",
            target_type="ceremony",
            target_id=ceremony_id,
            meta={"fields": [name for name, _ in cleaned]},
        )
        return ceremony

    # ── Lifecycle transitions ──

    async def publish(self, ceremony_id: int, *, actor_user_id: int | None = None) -> Ceremony:
        async with self._session_factory() as session, session.begin():
            ceremony = await load_ceremony_for_update(session, ceremony_id)
            ceremony_state.assert_draft(ceremony.status, "Only DRAFT ceremonies can be published")
            await self._assert_publishable(session, ceremony)

            old_status = ceremony_state.status_name(ceremony.status)
            ceremony_state.assert_transition(old_status, CeremonyStatus.PUBLISHED)
            ceremony.status = CeremonyStatus.PUBLISHED
            if ceremony.published_at is None:
                ceremony.published_at = datetime.now(timezone.utc)
            await session.flush()
            _record_transition(old_status, CeremonyStatus.PUBLISHED)

        logger.info("Ceremony published", extra={"ceremony_id": ceremony_id})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="publish_ceremony",
            target_type="ceremony",
            target_id=ceremony_id,
        )
        self._notifier.published(ceremony_id=ceremony_id)
        return ceremony

    async def lock(self, ceremony_id: int, *, actor_user_id: int | None = None) -> LockOutcome:
        async with self._session_factory() as session, session.begin():
            ceremony = await load_ceremony_for_update(session, ceremony_id)
            ceremony_state.assert_not_archived(ceremony.status)
            if ceremony_state.status_name(ceremony.status) not in {
                CeremonyStatus.PUBLISHED.value,
                CeremonyStatus.LOCKED.value,
            }:
                raise Conflict(
                    ErrorCode.CEREMONY_NOT_PUBLISHED,
                    "Ceremony must be published before it can be locked",
                    {"status": ceremony_state.status_name(ceremony.status)},
                )
            result = await lock_ceremony_drafts(session, ceremony, trigger="lock")

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="lock_ceremony",
            target_type="ceremony",
            target_id=ceremony_id,
            meta={
                "draft_locked_at": result.draft_locked_at.isoformat(),
                "cancelled_drafts": result.cancelled_drafts_count,
            },
        )
        self._notifier.locked(ceremony_id=ceremony_id, draft_locked_at=result.draft_locked_at)
        return LockOutcome(
            ceremony=ceremony,
            draft_locked_at=result.draft_locked_at,
            cancelled_drafts_count=result.cancelled_drafts_count,
        )

    async def archive(self, ceremony_id: int, *, actor_user_id: int | None = None) -> Ceremony:
        async with self._session_factory() as session, session.begin():
            ceremony = await load_ceremony_for_update(session, ceremony_id)
            ceremony_state.assert_not_archived(ceremony.status)
            old_status = ceremony_state.status_name(ceremony.status)
            if old_status != CeremonyStatus.LOCKED.value:
                raise Conflict(
                    ErrorCode.CEREMONY_NOT_LOCKED,
                    "Only LOCKED ceremonies can be archived",
                    {"status": old_status},
                )
            ceremony_state.assert_transition(old_status, CeremonyStatus.ARCHIVED)
            ceremony.status = CeremonyStatus.ARCHIVED
            if ceremony.archived_at is None:
                ceremony.archived_at = datetime.now(timezone.utc)
            await session.flush()
            _record_transition(old_status, CeremonyStatus.ARCHIVED)

        logger.info("Ceremony archived", extra={"ceremony_id": ceremony_id})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="archive_ceremony",
            target_type="ceremony",
            target_id=ceremony_id,
        )
        return ceremony

    async def finalize_winners(
        self, ceremony_id: int, *, actor_user_id: int | None = None
    ) -> Ceremony:
        async with self._session_factory() as session, session.begin():
            ceremony = await load_ceremony_for_update(session, ceremony_id)
            ceremony_state.assert_not_archived(ceremony.status)
            old_status = ceremony_state.status_name(ceremony.status)
            if old_status == CeremonyStatus.DRAFT.value:
                raise Conflict(
                    ErrorCode.CEREMONY_NOT_PUBLISHED,
                    "Ceremony must be published before finalizing winners",
                )
            if old_status != CeremonyStatus.LOCKED.value:
                raise Conflict(
                    ErrorCode.CEREMONY_NOT_LOCKED,
                    "Ceremony must be locked before finalizing winners",
                    {"status": old_status},
                )
            winner_count = (
                await session.execute(
                    select(func.count(CeremonyWinner.id)).where(
                        CeremonyWinner.ceremony_id == ceremony.id
                    )
                )
            ).scalar_one()
            if not winner_count:
                raise Conflict(ErrorCode.NO_WINNERS, "Enter at least one winner before finalizing")

            ceremony_state.assert_transition(old_status, CeremonyStatus.COMPLETE)
            ceremony.status = CeremonyStatus.COMPLETE
            try:
                await session.flush()
            except DBAPIError as exc:
                if sqlstate_of(exc) in SCHEMA_OUT_OF_DATE_SQLSTATES:
                    logger.error(
                        "Finalize rejected by schema: %s", exc, extra={"ceremony_id": ceremony_id}
                    )
                    raise SchemaOutOfDate() from exc
                raise
            _record_transition(old_status, CeremonyStatus.COMPLETE)

        logger.info("Ceremony winners finalized", extra={"ceremony_id": ceremony_id})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="finalize_winners",
            target_type="ceremony",
            target_id=ceremony_id,
            meta={"winner_count": int(winner_count)},
        )
        self._notifier.finalized(ceremony_id=ceremony_id)
        return ceremony

    async def set_winners(
        self,
        category_edition_id: int,
        nomination_ids: Iterable[int],
        *,
        actor_user_id: int | None = None,
    ) -> WinnersOutcome:
        """Replace the category's winner set; the first results entry locks drafting."""
        ids = normalize_ids(nomination_ids)
        if not ids:
            raise ValidationFailed("nomination_ids is required", fields=["nomination_ids"])

        async with self._session_factory() as session, session.begin():
            category = await session.get(CategoryEdition, category_edition_id)
            if category is None:
                raise NotFound("Category edition not found", {"category_edition_id": category_edition_id})

            found = set(
                (
                    await session.execute(
                        select(Nomination.id).where(
                            Nomination.id.in_(ids),
                            Nomination.category_edition_id == category.id,
                        )
                    )
                ).scalars().all()
            )
            foreign = [nid for nid in ids if nid not in found]
            if foreign:
                raise ValidationFailed(
                    "Nomination does not belong to category edition",
                    fields=["nomination_ids"],
                    details={"nomination_ids": foreign},
                )

            ceremony = await load_ceremony_for_update(session, category.ceremony_id)
            status = ceremony_state.status_name(ceremony.status)
            if status == CeremonyStatus.DRAFT.value:
                raise Conflict(
                    ErrorCode.CEREMONY_NOT_PUBLISHED,
                    "Ceremony must be published before entering winners",
                )
            if status == CeremonyStatus.ARCHIVED.value:
                raise Conflict(ErrorCode.CEREMONY_ARCHIVED, "Archived ceremonies are read-only")
            if status == CeremonyStatus.COMPLETE.value:
                raise Conflict(
                    ErrorCode.CEREMONY_COMPLETE,
                    "This ceremony has finalized winners and is read-only for results entry",
                )

            await session.execute(
                delete(CeremonyWinner)
                .where(CeremonyWinner.category_edition_id == category.id)
                .execution_options(synchronize_session=False)
            )
            winners = [
                CeremonyWinner(
                    ceremony_id=ceremony.id,
                    category_edition_id=category.id,
                    nomination_id=nid,
                )
                for nid in ids
            ]
            session.add_all(winners)
            await session.flush()

            outcome = WinnersOutcome(
                ceremony_id=ceremony.id,
                category_edition_id=category.id,
                winners=winners,
                draft_locked_at=ceremony.draft_locked_at,
            )
            if status != CeremonyStatus.LOCKED.value:
                lock_result = await lock_ceremony_drafts(session, ceremony, trigger="winners")
                outcome.draft_locked_at = lock_result.draft_locked_at
                outcome.cancelled_drafts_count = lock_result.cancelled_drafts_count

        logger.info(
            "Winners set",
            extra={
                "ceremony_id": outcome.ceremony_id,
                "category_edition_id": category_edition_id,
                "winner_count": len(ids),
                "cancelled_drafts": outcome.cancelled_drafts_count,
            },
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="winner_upsert",
            target_type="category_edition",
            target_id=category_edition_id,
            meta={
                "ceremony_id": outcome.ceremony_id,
                "nomination_ids": ids,
                "cancelled_drafts": outcome.cancelled_drafts_count,
            },
        )
        self._notifier.winners_updated(
            ceremony_id=outcome.ceremony_id,
            category_edition_id=category_edition_id,
            nomination_ids=ids,
        )
        return outcome

    # ── Removal ──

    async def delete(self, ceremony_id: int, *, actor_user_id: int | None = None) -> None:
        """Hard-delete a DRAFT ceremony together with everything hanging off it."""
        async with self._session_factory() as session, session.begin():
            ceremony = await load_ceremony_for_update(session, ceremony_id)
            ceremony_state.assert_draft(ceremony.status, "Only DRAFT ceremonies can be deleted")

            season_ids = select(Season.id).where(Season.ceremony_id == ceremony.id)
            draft_ids = select(Draft.id).where(Draft.season_id.in_(season_ids))
            category_ids = select(CategoryEdition.id).where(
                CategoryEdition.ceremony_id == ceremony.id
            )
            nomination_ids = list(
                (
                    await session.execute(
                        select(Nomination.id).where(Nomination.category_edition_id.in_(category_ids))
                    )
                ).scalars().all()
            )

            outside_refs = (
                await session.execute(
                    select(Nomination.id).where(
                        Nomination.replaced_by_nomination_id.in_(nomination_ids),
                        Nomination.id.not_in(nomination_ids),
                    )
                )
            ).scalars().all()
            if outside_refs:
                raise Conflict(
                    ErrorCode.NOMINATION_IS_REPLACEMENT,
                    "Nominations of this ceremony replace nominations elsewhere",
                    {"nomination_ids": list(outside_refs)},
                )

            steps = [
                delete(DraftPick).where(DraftPick.draft_id.in_(draft_ids)),
                delete(DraftSeat).where(DraftSeat.draft_id.in_(draft_ids)),
                delete(Draft).where(Draft.season_id.in_(season_ids)),
                delete(SeasonMember).where(SeasonMember.season_id.in_(season_ids)),
                delete(Season).where(Season.ceremony_id == ceremony.id),
                delete(CeremonyWinner).where(CeremonyWinner.ceremony_id == ceremony.id),
                delete(NominationContributor).where(
                    NominationContributor.nomination_id.in_(nomination_ids)
                ),
                delete(NominationChangeAudit).where(
                    or_(
                        NominationChangeAudit.nomination_id.in_(nomination_ids),
                        NominationChangeAudit.replacement_nomination_id.in_(nomination_ids),
                    )
                ),
                update(Nomination)
                .where(Nomination.id.in_(nomination_ids))
                .values(replaced_by_nomination_id=None),
                delete(Nomination).where(Nomination.id.in_(nomination_ids)),
                delete(CategoryEdition).where(CategoryEdition.ceremony_id == ceremony.id),
            ]
            for stmt in steps:
                await session.execute(stmt.execution_options(synchronize_session=False))

            if await self._active_config.get_active_ceremony_id(session) == ceremony.id:
                await self._active_config.set_active_ceremony_id(None, session=session)
            await session.delete(ceremony)

        logger.info("Ceremony deleted", extra={"ceremony_id": ceremony_id})
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="delete_ceremony",
            target_type="ceremony",
            target_id=ceremony_id,
        )

    # ── Helpers ──

    @staticmethod
    async def _assert_code_free(
        session: AsyncSession, code: str, *, exclude_id: int | None = None
    ) -> None:
        stmt = select(Ceremony.id).where(Ceremony.code == code)
        if exclude_id is not None:
            stmt = stmt.where(Ceremony.id != exclude_id)
        if (await session.execute(stmt.limit(1))).scalar() is not None:
            raise ValidationFailed("Ceremony code already exists", fields=["code"])

    @staticmethod
    async def _assert_publishable(session: AsyncSession, ceremony: Ceremony) -> None:
        if not (ceremony.code or "").strip() or not (ceremony.name or "").strip():
            raise Conflict(
                ErrorCode.CEREMONY_INCOMPLETE,
                "Ceremony needs a code and a name before publishing",
            )

        active_counts = (
            await session.execute(
                select(CategoryEdition.id, func.count(Nomination.id))
                .outerjoin(
                    Nomination,
                    (Nomination.category_edition_id == CategoryEdition.id)
                    & (Nomination.status == NominationStatus.ACTIVE.value),
                )
                .where(CategoryEdition.ceremony_id == ceremony.id)
                .group_by(CategoryEdition.id)
                .order_by(CategoryEdition.id)
            )
        ).all()
        if not active_counts:
            raise Conflict(
                ErrorCode.CEREMONY_INCOMPLETE,
                "Ceremony needs at least one category before publishing",
            )
        empty = [category_id for category_id, count in active_counts if not count]
        if empty:
            raise Conflict(
                ErrorCode.CEREMONY_INCOMPLETE,
                "Every category needs at least one active nomination before publishing",
                {"empty_category_edition_ids": empty},
            )
