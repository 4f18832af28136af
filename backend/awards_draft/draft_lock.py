"""Cascading draft lock.

Freezing a ceremony's results freezes every league draft against it. The
coordinator runs inside the caller's transaction so the lock timestamp, the
ceremony status and the draft cancellations commit (or roll back) together.
Concurrent callers serialise on the ceremony row and converge on one stored
`draft_locked_at`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from awards_draft import ceremony_state, draft_state
from awards_draft.errors import NotFound
from awards_draft.metrics import (
    CEREMONY_TRANSITIONS_TOTAL,
    DRAFT_LOCK_CASCADES_TOTAL,
    DRAFT_TRANSITIONS_TOTAL,
    DRAFTS_CANCELLED_TOTAL,
)
from awards_draft.models.ceremony import Ceremony, CeremonyStatus
from awards_draft.models.draft import Draft, DraftStatus
from awards_draft.models.league import Season

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DraftLockResult:
    ceremony_id: int
    draft_locked_at: datetime
    cancelled_drafts_count: int = 0
    cancelled_draft_ids: list[int] = field(default_factory=list)
    previous_status: str | None = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != CeremonyStatus.LOCKED.value


async def load_ceremony_for_update(session: AsyncSession, ceremony_id: int) -> Ceremony:
    """Row-lock the ceremony and refresh any identity-map copy from the store."""
    ceremony = (
        await session.execute(
            select(Ceremony)
            .where(Ceremony.id == ceremony_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if ceremony is None:
        raise NotFound("Ceremony not found", {"ceremony_id": ceremony_id})
    return ceremony


async def lock_ceremony_drafts(
    session: AsyncSession,
    ceremony: Ceremony,
    *,
    trigger: str,
) -> DraftLockResult:
    """Stamp `draft_locked_at` once, move the ceremony to LOCKED, cancel live drafts."""
    ceremony = await load_ceremony_for_update(session, ceremony.id)
    previous_status = ceremony_state.status_name(ceremony.status)

    if ceremony.draft_locked_at is None:
        await session.execute(
            update(Ceremony)
            .where(Ceremony.id == ceremony.id, Ceremony.draft_locked_at.is_(None))
            .values(draft_locked_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        # Whatever the store holds now wins, even if another writer got there first.
        await session.refresh(ceremony, attribute_names=["draft_locked_at"])

    if previous_status != CeremonyStatus.LOCKED.value:
        ceremony_state.assert_transition(previous_status, CeremonyStatus.LOCKED)
        ceremony.status = CeremonyStatus.LOCKED
        CEREMONY_TRANSITIONS_TOTAL.labels(
            from_status=previous_status, to_status=CeremonyStatus.LOCKED.value
        ).inc()

    cancelled_ids = await cancel_ceremony_drafts(session, ceremony.id)
    await session.flush()

    DRAFT_LOCK_CASCADES_TOTAL.labels(trigger=trigger).inc()
    logger.info(
        "Ceremony drafts locked",
        extra={
            "ceremony_id": ceremony.id,
            "trigger": trigger,
            "previous_status": previous_status,
            "cancelled_drafts": len(cancelled_ids),
        },
    )
    return DraftLockResult(
        ceremony_id=ceremony.id,
        draft_locked_at=ceremony.draft_locked_at,
        cancelled_drafts_count=len(cancelled_ids),
        cancelled_draft_ids=cancelled_ids,
        previous_status=previous_status,
    )


async def cancel_ceremony_drafts(session: AsyncSession, ceremony_id: int) -> list[int]:
    """Cancel every PENDING / IN_PROGRESS / PAUSED draft of the ceremony's seasons."""
    drafts = (
        await session.execute(
            select(Draft)
            .join(Season, Season.id == Draft.season_id)
            .where(
                Season.ceremony_id == ceremony_id,
                Draft.status.in_([s.value for s in draft_state.CANCELLABLE_STATUSES]),
            )
            .order_by(Draft.id)
            .with_for_update(of=Draft)
        )
    ).scalars().all()

    now = datetime.now(timezone.utc)
    cancelled: list[int] = []
    for draft in drafts:
        old_status = draft_state.status_name(draft.status)
        draft.status = draft_state.transition_draft(old_status, DraftStatus.CANCELLED)
        if draft.completed_at is None:
            draft.completed_at = now
        DRAFT_TRANSITIONS_TOTAL.labels(
            from_status=old_status, to_status=DraftStatus.CANCELLED.value
        ).inc()
        cancelled.append(draft.id)

    if cancelled:
        DRAFTS_CANCELLED_TOTAL.inc(len(cancelled))
    return cancelled


async def any_draft_started(session: AsyncSession, ceremony_id: int) -> bool:
    """True once any draft of the ceremony's seasons has left PENDING."""
    started = (
        await session.execute(
            select(Draft.id)
            .join(Season, Season.id == Draft.season_id)
            .where(Season.ceremony_id == ceremony_id, Draft.status != DraftStatus.PENDING.value)
            .limit(1)
        )
    ).scalar()
    return started is not None
