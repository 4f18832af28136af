"""Active-ceremony configuration service.

The single `app_config` row names the ceremony the product currently points
at. Callers get this service injected; nothing reads the row directly.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft.errors import NotFound
from awards_draft.models.ceremony import AppConfig, Ceremony

logger = logging.getLogger(__name__)

APP_CONFIG_ROW_ID = 1


class ActiveCeremonyConfig:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_active_ceremony_id(self, session: AsyncSession | None = None) -> int | None:
        if session is None:
            async with self._session_factory() as own_session:
                return await self._read(own_session)
        return await self._read(session)

    async def set_active_ceremony_id(
        self,
        ceremony_id: int | None,
        *,
        session: AsyncSession | None = None,
    ) -> int | None:
        """Point the product at `ceremony_id` (or at nothing).

        Joins the caller's transaction when `session` is given, otherwise
        commits on its own.
        """
        if session is None:
            async with self._session_factory() as own_session, own_session.begin():
                return await self._write(own_session, ceremony_id)
        return await self._write(session, ceremony_id)

    @staticmethod
    async def _read(session: AsyncSession) -> int | None:
        return (
            await session.execute(
                select(AppConfig.active_ceremony_id).where(AppConfig.id == APP_CONFIG_ROW_ID)
            )
        ).scalar()

    @staticmethod
    async def _write(session: AsyncSession, ceremony_id: int | None) -> int | None:
        if ceremony_id is not None:
            exists = (
                await session.execute(select(Ceremony.id).where(Ceremony.id == ceremony_id))
            ).scalar()
            if exists is None:
                raise NotFound("Ceremony not found", {"ceremony_id": ceremony_id})

        row = await session.get(AppConfig, APP_CONFIG_ROW_ID, with_for_update=True)
        if row is None:
            row = AppConfig(id=APP_CONFIG_ROW_ID, active_ceremony_id=ceremony_id)
            session.add(row)
        else:
            row.active_ceremony_id = ceremony_id
        await session.flush()
        logger.info("Active ceremony set", extra={"ceremony_id": ceremony_id})
        return ceremony_id
