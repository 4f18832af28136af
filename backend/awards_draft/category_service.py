"""Category editions of a ceremony: editable only while the ceremony is DRAFT."""
from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft import ceremony_state
from awards_draft.audit import AuditWriter
from awards_draft.draft_lock import any_draft_started, load_ceremony_for_update
from awards_draft.errors import Conflict, ErrorCode, NotFound, ValidationFailed
from awards_draft.models.ceremony import CategoryEdition, Ceremony, UnitKind
from awards_draft.models.nomination import Nomination, NominationStatus
from awards_draft.nomination_ledger import purge_nominations

logger = logging.getLogger(__name__)

_NOT_DRAFT_MESSAGE = "Categories can only be edited while the ceremony is in DRAFT"
_DRAFT_STARTED_MESSAGE = "Categories are locked because a draft has already started for this ceremony"


async def _active_nomination_count(session: AsyncSession, *criteria) -> int:
    return int(
        (
            await session.execute(
                select(func.count(Nomination.id))
                .join(CategoryEdition, CategoryEdition.id == Nomination.category_edition_id)
                .where(Nomination.status == NominationStatus.ACTIVE.value, *criteria)
            )
        ).scalar_one()
    )


async def _load_for_removal(session: AsyncSession, ceremony_id: int) -> Ceremony:
    """Lock the ceremony; removals are refused once any of its drafts has started."""
    ceremony = await load_ceremony_for_update(session, ceremony_id)
    ceremony_state.assert_draft(ceremony.status, _NOT_DRAFT_MESSAGE)
    if await any_draft_started(session, ceremony.id):
        raise Conflict(ErrorCode.DRAFTS_LOCKED, _DRAFT_STARTED_MESSAGE)
    return ceremony


async def _purge_categories(session: AsyncSession, *criteria) -> None:
    """Drop categories and whatever inactive nominations are still hanging off them."""
    nomination_ids = (
        await session.execute(
            select(Nomination.id)
            .join(CategoryEdition, CategoryEdition.id == Nomination.category_edition_id)
            .where(*criteria)
        )
    ).scalars().all()
    await purge_nominations(session, list(nomination_ids))
    await session.execute(
        delete(CategoryEdition).where(*criteria).execution_options(synchronize_session=False)
    )


class CategoryService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditWriter,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit

    async def add_category(
        self,
        ceremony_id: int,
        *,
        code: str | None,
        name: str | None,
        unit_kind: UnitKind | str = UnitKind.FILM,
        sort_index: int | None = None,
        actor_user_id: int | None = None,
    ) -> CategoryEdition:
        clean_code = (code or "").strip()
        clean_name = (name or "").strip()
        missing = [f for f, v in (("code", clean_code), ("name", clean_name)) if not v]
        if missing:
            raise ValidationFailed("Category code and name are required", fields=missing)
        try:
            kind = UnitKind(str(getattr(unit_kind, "value", unit_kind)).upper())
        except ValueError:
            raise ValidationFailed("Invalid unit_kind", fields=["unit_kind"]) from None
        if sort_index is not None and sort_index < 0:
            raise ValidationFailed("Invalid sort_index", fields=["sort_index"])

        try:
            async with self._session_factory() as session, session.begin():
                ceremony = await load_ceremony_for_update(session, ceremony_id)
                ceremony_state.assert_draft(ceremony.status, _NOT_DRAFT_MESSAGE)
                if sort_index is None:
                    current = (
                        await session.execute(
                            select(func.max(CategoryEdition.sort_index)).where(
                                CategoryEdition.ceremony_id == ceremony.id
                            )
                        )
                    ).scalar()
                    sort_index = 0 if current is None else int(current) + 1
                category = CategoryEdition(
                    ceremony_id=ceremony.id,
                    code=clean_code,
                    name=clean_name,
                    unit_kind=kind,
                    sort_index=sort_index,
                )
                session.add(category)
                await session.flush()
        except IntegrityError as exc:
            raise ValidationFailed("Category already exists in ceremony", fields=["code"]) from exc

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="add_ceremony_category",
            target_type="ceremony",
            target_id=ceremony_id,
            meta={"category_edition_id": category.id, "code": clean_code},
        )
        return category

    async def delete_category(
        self, category_edition_id: int, *, actor_user_id: int | None = None
    ) -> None:
        async with self._session_factory() as session, session.begin():
            category = await session.get(CategoryEdition, category_edition_id)
            if category is None:
                raise NotFound(
                    "Category edition not found", {"category_edition_id": category_edition_id}
                )
            ceremony = await _load_for_removal(session, category.ceremony_id)
            if await _active_nomination_count(session, CategoryEdition.id == category.id):
                raise Conflict(
                    ErrorCode.CATEGORY_HAS_NOMINEES,
                    "Cannot delete a category that still has active nominations",
                )
            ceremony_id = ceremony.id
            await _purge_categories(session, CategoryEdition.id == category.id)

        await self._audit.record(
            actor_user_id=actor_user_id,
            action="delete_category_edition",
            target_type="category_edition",
            target_id=category_edition_id,
            meta={"ceremony_id": ceremony_id},
        )

    async def clone_categories(
        self,
        target_ceremony_id: int,
        source_ceremony_id: int,
        *,
        actor_user_id: int | None = None,
    ) -> list[CategoryEdition]:
        """Replace the target's category set with copies of the source ceremony's."""
        if int(target_ceremony_id) == int(source_ceremony_id):
            raise ValidationFailed("Cannot clone from the same ceremony", fields=["from_ceremony_id"])

        async with self._session_factory() as session, session.begin():
            target = await _load_for_removal(session, target_ceremony_id)
            source = (
                await session.execute(
                    select(CategoryEdition)
                    .where(CategoryEdition.ceremony_id == source_ceremony_id)
                    .order_by(CategoryEdition.sort_index.asc(), CategoryEdition.id.asc())
                )
            ).scalars().all()
            if not source and await session.get(Ceremony, source_ceremony_id) is None:
                raise NotFound("Source ceremony not found", {"ceremony_id": source_ceremony_id})
            if await _active_nomination_count(session, CategoryEdition.ceremony_id == target.id):
                raise Conflict(
                    ErrorCode.CEREMONY_HAS_NOMINEES,
                    "Cannot clone categories after nominees exist. Remove nominees first.",
                )

            await _purge_categories(session, CategoryEdition.ceremony_id == target.id)
            clones = [
                CategoryEdition(
                    ceremony_id=target.id,
                    code=row.code,
                    name=row.name,
                    unit_kind=row.unit_kind,
                    sort_index=row.sort_index,
                )
                for row in source
            ]
            session.add_all(clones)
            await session.flush()

        logger.info(
            "Categories cloned",
            extra={"ceremony_id": target_ceremony_id, "from_ceremony_id": source_ceremony_id, "inserted": len(clones)},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="clone_ceremony_categories",
            target_type="ceremony",
            target_id=target_ceremony_id,
            meta={"from_ceremony_id": source_ceremony_id, "inserted": len(clones)},
        )
        return clones
