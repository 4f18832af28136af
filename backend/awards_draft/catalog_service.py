"""Catalog maintenance outside of merges: linking people to TMDB."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft.audit import AuditWriter
from awards_draft.errors import Conflict, ErrorCode, NotFound, ValidationFailed
from awards_draft.hydration import MetadataHydrator
from awards_draft.models.catalog import Person

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LinkResult:
    person: Person
    warnings: list[str] = field(default_factory=list)


def _already_linked(tmdb_id: int, holder: Person | None) -> Conflict:
    return Conflict(
        ErrorCode.TMDB_ID_ALREADY_LINKED,
        "That TMDB id is already linked to another person",
        {
            "tmdb_id": tmdb_id,
            "linked_person_id": holder.id if holder else None,
            "linked_person_name": holder.full_name if holder else None,
        },
    )


class CatalogService:
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

    async def _holder_of(self, tmdb_id: int, person_id: int) -> Person | None:
        async with self._session_factory() as session:
            return (
                await session.execute(
                    select(Person).where(Person.tmdb_id == tmdb_id, Person.id != person_id)
                )
            ).scalar_one_or_none()

    async def link_person_tmdb(
        self,
        person_id: int,
        tmdb_id: int | None,
        *,
        actor_user_id: int | None = None,
    ) -> LinkResult:
        """Attach (or with `tmdb_id=None` detach) a TMDB identity on a person."""
        if tmdb_id is not None and int(tmdb_id) <= 0:
            raise ValidationFailed("Invalid tmdb_id", fields=["tmdb_id"])

        warnings: list[str] = []
        profile = None
        if tmdb_id is not None:
            profile, warnings = await self._hydrator.lookup_person(int(tmdb_id))

        try:
            async with self._session_factory() as session, session.begin():
                person = (
                    await session.execute(
                        select(Person).where(Person.id == person_id).with_for_update()
                    )
                ).scalar_one_or_none()
                if person is None:
                    raise NotFound("Person not found", {"person_id": person_id})

                if tmdb_id is None:
                    person.tmdb_id = None
                    person.profile_path = None
                    person.profile_url = None
                    person.external_ids = None
                else:
                    holder = (
                        await session.execute(
                            select(Person).where(
                                Person.tmdb_id == int(tmdb_id), Person.id != person.id
                            )
                        )
                    ).scalar_one_or_none()
                    if holder is not None:
                        raise _already_linked(int(tmdb_id), holder)
                    person.tmdb_id = int(tmdb_id)
                    if profile is not None:
                        person.profile_path = profile.profile_path
                        person.profile_url = profile.profile_url
                        person.external_ids = profile.external_ids
                await session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent link of the same id.
            raise _already_linked(int(tmdb_id), await self._holder_of(int(tmdb_id), person_id)) from exc

        logger.info(
            "Person TMDB link updated",
            extra={"person_id": person_id, "tmdb_id": tmdb_id, "warnings": len(warnings)},
        )
        await self._audit.record(
            actor_user_id=actor_user_id,
            action="link_person_tmdb",
            target_type="person",
            target_id=person_id,
            meta={"tmdb_id": tmdb_id},
        )
        return LinkResult(person=person, warnings=warnings)
