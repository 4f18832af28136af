"""Admin audit writer.

Each record is written in its own session after the business transaction has
committed; a failed write is logged and never changes the caller's outcome.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft.models.audit import AdminAudit

logger = logging.getLogger(__name__)


class AuditWriter:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        *,
        actor_user_id: int | None,
        action: str,
        target_type: str,
        target_id: int | None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    AdminAudit(
                        actor_user_id=actor_user_id,
                        action=action,
                        target_type=target_type,
                        target_id=target_id,
                        meta=meta,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Admin audit write failed",
                extra={"action": action, "target_type": target_type, "target_id": target_id},
            )
