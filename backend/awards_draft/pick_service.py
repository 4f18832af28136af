"""Pick submission arbiter and draft run controls.

A pick is accepted only for the seat whose turn it is, at most once per
`(draft_id, request_id)`. The draft row is locked before any turn check, and
the unique keys on `draft_pick` back that up when two writers race anyway.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft import draft_state
from awards_draft.config import settings
from awards_draft.errors import AppError, Conflict, ErrorCode, Forbidden, NotFound, ValidationFailed
from awards_draft.metrics import (
    DRAFT_TRANSITIONS_TOTAL,
    PICK_SUBMIT_LATENCY_SECONDS,
    PICKS_SUBMITTED_TOTAL,
)
from awards_draft.models.ceremony import CategoryEdition, Ceremony
from awards_draft.models.draft import Draft, DraftOrderType, DraftPick, DraftSeat, DraftStatus
from awards_draft.models.league import (
    League,
    LeagueMember,
    LeagueRole,
    RemainderStrategy,
    Season,
    SeasonMember,
    SeasonStatus,
)
from awards_draft.models.nomination import Nomination, NominationStatus

logger = logging.getLogger(__name__)

COMMISSIONER_ROLES = frozenset({LeagueRole.OWNER.value, LeagueRole.CO_OWNER.value})


@dataclass(slots=True)
class PickOutcome:
    pick: DraftPick
    created: bool
    draft_status: str
    current_pick_number: int | None


@dataclass(slots=True)
class _DraftContext:
    draft: Draft
    season: Season
    league: League


def _validate_pick_input(nomination_id: int | None, request_id: str | None) -> str:
    if not nomination_id:
        raise ValidationFailed("Missing nomination_id", fields=["nomination_id"])
    clean = str(request_id or "").strip()
    if not clean:
        raise ValidationFailed("Missing request_id", fields=["request_id"])
    if len(clean) > settings.PICK_REQUEST_ID_MAX_LENGTH:
        raise ValidationFailed("request_id too long", fields=["request_id"])
    return clean


def _transition(draft: Draft, target: DraftStatus) -> None:
    old = draft_state.status_name(draft.status)
    draft.status = draft_state.transition_draft(old, target)
    DRAFT_TRANSITIONS_TOTAL.labels(from_status=old, to_status=target.value).inc()


async def find_pick_by_request(
    session: AsyncSession, draft_id: int, request_id: str
) -> DraftPick | None:
    return (
        await session.execute(
            select(DraftPick).where(DraftPick.draft_id == draft_id, DraftPick.request_id == request_id)
        )
    ).scalar_one_or_none()


class PickSubmissionArbiter:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Picks ──

    async def submit_pick(
        self,
        draft_id: int,
        *,
        requester_user_id: int,
        nomination_id: int | None,
        request_id: str | None,
    ) -> PickOutcome:
        clean_request_id = _validate_pick_input(nomination_id, request_id)
        with PICK_SUBMIT_LATENCY_SECONDS.time():
            try:
                outcome = await self._submit(
                    draft_id, int(requester_user_id), int(nomination_id), clean_request_id
                )
            except IntegrityError as exc:
                outcome = await self._resolve_unique_violation(
                    draft_id, int(nomination_id), clean_request_id, exc
                )
            except AppError as exc:
                replay = await self._replay(draft_id, clean_request_id)
                if replay is None:
                    PICKS_SUBMITTED_TOTAL.labels(outcome="rejected").inc()
                    logger.warning(
                        "Pick rejected: %s",
                        exc.code,
                        extra={"draft_id": draft_id, "user_id": requester_user_id, "request_id": clean_request_id},
                    )
                    raise
                outcome = replay

        if not outcome.created and int(outcome.pick.user_id) != int(requester_user_id):
            PICKS_SUBMITTED_TOTAL.labels(outcome="rejected").inc()
            logger.warning(
                "Pick replay refused: request_id belongs to another user",
                extra={"draft_id": draft_id, "user_id": requester_user_id, "request_id": clean_request_id},
            )
            raise Forbidden(
                ErrorCode.FORBIDDEN,
                "request_id was used by another member's pick",
                {"request_id": clean_request_id},
            )

        PICKS_SUBMITTED_TOTAL.labels(outcome="created" if outcome.created else "replayed").inc()
        return outcome

    async def _submit(
        self, draft_id: int, user_id: int, nomination_id: int, request_id: str
    ) -> PickOutcome:
        # Idempotent repeats are answered even if the draft has since completed.
        prior = await self._replay(draft_id, request_id)
        if prior is not None:
            return prior

        async with self._session_factory() as session, session.begin():
            ctx = await self._load_for_update(session, draft_id)
            draft, season = ctx.draft, ctx.season

            prior_pick = await find_pick_by_request(session, draft.id, request_id)
            if prior_pick is not None:
                return self._outcome(prior_pick, draft, created=False)

            status = draft_state.status_name(draft.status)
            if status == DraftStatus.PAUSED.value:
                raise Conflict(ErrorCode.DRAFT_PAUSED, "Draft is paused")
            if status != DraftStatus.IN_PROGRESS.value:
                raise Conflict(ErrorCode.DRAFT_NOT_IN_PROGRESS, "Draft is not in progress")
            if season.status == SeasonStatus.CANCELLED.value:
                raise Conflict(ErrorCode.SEASON_CANCELLED, "Season is cancelled")

            ceremony = await session.get(Ceremony, season.ceremony_id)
            if ceremony is not None and ceremony.draft_locked_at is not None:
                raise Conflict(ErrorCode.DRAFT_LOCKED, "Draft is locked after winners entry")

            seats = (
                await session.execute(
                    select(DraftSeat, LeagueMember.user_id)
                    .join(LeagueMember, LeagueMember.id == DraftSeat.league_member_id)
                    .where(DraftSeat.draft_id == draft.id)
                    .order_by(DraftSeat.seat_number)
                )
            ).all()
            if not seats:
                raise Conflict(ErrorCode.DRAFT_NOT_IN_PROGRESS, "No draft seats configured")

            pick_count = int(
                (
                    await session.execute(
                        select(func.count(DraftPick.id)).where(DraftPick.draft_id == draft.id)
                    )
                ).scalar_one()
            )
            total_picks = int(draft.total_picks or 0)
            if total_picks and pick_count >= total_picks:
                raise Conflict(ErrorCode.DRAFT_NOT_IN_PROGRESS, "Draft is completed")
            pick_number = int(draft.current_pick_number or pick_count + 1)

            nomination = (
                await session.execute(
                    select(Nomination)
                    .join(CategoryEdition, CategoryEdition.id == Nomination.category_edition_id)
                    .where(
                        Nomination.id == nomination_id,
                        CategoryEdition.ceremony_id == season.ceremony_id,
                    )
                )
            ).scalar_one_or_none()
            if nomination is None:
                raise NotFound("Nomination not found", {"nomination_id": nomination_id})
            if nomination.status != NominationStatus.ACTIVE.value:
                raise Conflict(
                    ErrorCode.NOMINATION_NOT_ACTIVE,
                    "Nomination is not active",
                    {"nomination_id": nomination_id, "status": str(nomination.status)},
                )
            already = (
                await session.execute(
                    select(DraftPick.id).where(
                        DraftPick.draft_id == draft.id, DraftPick.nomination_id == nomination_id
                    )
                )
            ).scalar()
            if already is not None:
                raise Conflict(ErrorCode.NOMINATION_ALREADY_PICKED, "Nomination already picked")

            slot = draft_state.seat_for_pick(
                pick_number, len(seats), draft.draft_order_type or DraftOrderType.SNAKE
            )
            seat, seat_user_id = next(
                (row[0], row[1]) for row in seats if row[0].seat_number == slot.seat_number
            )
            if int(seat_user_id) != user_id:
                raise Forbidden(
                    ErrorCode.NOT_ACTIVE_TURN,
                    "It is not your turn",
                    {"current_pick_number": pick_number, "seat_number": slot.seat_number},
                )

            now = datetime.now(timezone.utc)
            pick = DraftPick(
                draft_id=draft.id,
                pick_number=pick_number,
                round_number=slot.round_number,
                seat_number=slot.seat_number,
                league_member_id=seat.league_member_id,
                user_id=user_id,
                nomination_id=nomination_id,
                request_id=request_id,
                made_at=now,
            )
            session.add(pick)
            await session.flush()

            if total_picks and pick_number >= total_picks:
                _transition(draft, DraftStatus.COMPLETED)
                draft.completed_at = draft.completed_at or now
                draft.current_pick_number = None
            else:
                draft.current_pick_number = pick_number + 1
            await session.flush()

        logger.info(
            "Pick submitted",
            extra={
                "draft_id": draft_id,
                "pick_number": pick.pick_number,
                "seat_number": pick.seat_number,
                "nomination_id": nomination_id,
                "draft_status": draft_state.status_name(draft.status),
            },
        )
        return self._outcome(pick, draft, created=True)

    async def _replay(self, draft_id: int, request_id: str) -> PickOutcome | None:
        async with self._session_factory() as session:
            pick = await find_pick_by_request(session, draft_id, request_id)
            if pick is None:
                return None
            draft = await session.get(Draft, draft_id)
            return self._outcome(pick, draft, created=False)

    async def _resolve_unique_violation(
        self, draft_id: int, nomination_id: int, request_id: str, exc: IntegrityError
    ) -> PickOutcome:
        """A concurrent writer beat us to one of the draft_pick unique keys."""
        replay = await self._replay(draft_id, request_id)
        if replay is not None:
            return replay
        async with self._session_factory() as session:
            by_nomination = (
                await session.execute(
                    select(DraftPick.id).where(
                        DraftPick.draft_id == draft_id, DraftPick.nomination_id == nomination_id
                    )
                )
            ).scalar()
        PICKS_SUBMITTED_TOTAL.labels(outcome="rejected").inc()
        if by_nomination is not None:
            raise Conflict(ErrorCode.NOMINATION_ALREADY_PICKED, "Nomination already picked") from exc
        raise Forbidden(ErrorCode.NOT_ACTIVE_TURN, "It is not your turn") from exc

    @staticmethod
    def _outcome(pick: DraftPick, draft: Draft | None, *, created: bool) -> PickOutcome:
        return PickOutcome(
            pick=pick,
            created=created,
            draft_status=draft_state.status_name(draft.status) if draft else "",
            current_pick_number=draft.current_pick_number if draft else None,
        )

    # ── Run controls ──

    async def start_draft(
        self,
        draft_id: int,
        *,
        actor_user_id: int,
        seat_order: Sequence[int] | None = None,
    ) -> Draft:
        """Seat the season's members and open pick one.

        `seat_order` lists league member ids in seat order; without it seats
        are shuffled.
        """
        async with self._session_factory() as session, session.begin():
            ctx = await self._load_for_update(session, draft_id)
            draft, season, league = ctx.draft, ctx.season, ctx.league
            if season.status == SeasonStatus.CANCELLED.value:
                raise Conflict(ErrorCode.SEASON_CANCELLED, "Season is cancelled")
            ceremony = await session.get(Ceremony, season.ceremony_id)
            if ceremony is not None and ceremony.draft_locked_at is not None:
                raise Conflict(ErrorCode.DRAFT_LOCKED, "Draft is locked after winners entry")
            await self._assert_commissioner(session, league, actor_user_id)
            if draft_state.status_name(draft.status) != DraftStatus.PENDING.value:
                raise Conflict(ErrorCode.DRAFT_ALREADY_STARTED, "Draft already started")

            seat_count = await self._ensure_seats(session, draft, season, seat_order)

            active_nominations = int(
                (
                    await session.execute(
                        select(func.count(Nomination.id))
                        .join(CategoryEdition, CategoryEdition.id == Nomination.category_edition_id)
                        .where(
                            CategoryEdition.ceremony_id == season.ceremony_id,
                            Nomination.status == NominationStatus.ACTIVE.value,
                        )
                    )
                ).scalar_one()
            )
            picks_per_seat, total_picks = draft_state.compute_pick_budget(
                active_nominations,
                seat_count,
                full_pool=season.remainder_strategy == RemainderStrategy.FULL_POOL.value,
            )
            if picks_per_seat <= 0:
                raise AppError(
                    ErrorCode.PREREQ_INSUFFICIENT_NOMINATIONS,
                    "Not enough nominations for the number of participants",
                    {"active_nominations": active_nominations, "seats": seat_count},
                    status_code=400,
                )

            _transition(draft, DraftStatus.IN_PROGRESS)
            draft.started_at = draft.started_at or datetime.now(timezone.utc)
            draft.picks_per_seat = picks_per_seat
            draft.total_picks = total_picks
            draft.current_pick_number = draft.current_pick_number or 1
            await session.flush()

        logger.info(
            "Draft started",
            extra={"draft_id": draft_id, "seats": seat_count, "total_picks": total_picks},
        )
        return draft

    async def pause_draft(self, draft_id: int, *, actor_user_id: int) -> Draft:
        async with self._session_factory() as session, session.begin():
            ctx = await self._load_for_update(session, draft_id)
            await self._assert_commissioner(session, ctx.league, actor_user_id)
            status = draft_state.status_name(ctx.draft.status)
            if status == DraftStatus.PAUSED.value:
                raise Conflict(ErrorCode.DRAFT_ALREADY_PAUSED, "Draft already paused")
            if status != DraftStatus.IN_PROGRESS.value:
                raise Conflict(ErrorCode.DRAFT_NOT_IN_PROGRESS, "Draft is not in progress")
            _transition(ctx.draft, DraftStatus.PAUSED)
            await session.flush()
        logger.info("Draft paused", extra={"draft_id": draft_id})
        return ctx.draft

    async def resume_draft(self, draft_id: int, *, actor_user_id: int) -> Draft:
        async with self._session_factory() as session, session.begin():
            ctx = await self._load_for_update(session, draft_id)
            await self._assert_commissioner(session, ctx.league, actor_user_id)
            if draft_state.status_name(ctx.draft.status) != DraftStatus.PAUSED.value:
                raise Conflict(ErrorCode.DRAFT_NOT_PAUSED, "Draft is not paused")
            ceremony = await session.get(Ceremony, ctx.season.ceremony_id)
            if ceremony is not None and ceremony.draft_locked_at is not None:
                raise Conflict(ErrorCode.DRAFT_LOCKED, "Draft is locked after winners entry")
            _transition(ctx.draft, DraftStatus.IN_PROGRESS)
            await session.flush()
        logger.info("Draft resumed", extra={"draft_id": draft_id})
        return ctx.draft

    # ── Helpers ──

    @staticmethod
    async def _load_for_update(session: AsyncSession, draft_id: int) -> _DraftContext:
        draft = (
            await session.execute(
                select(Draft)
                .where(Draft.id == draft_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if draft is None:
            raise NotFound("Draft not found", {"draft_id": draft_id})
        season = await session.get(Season, draft.season_id)
        if season is None:
            raise NotFound("Season not found", {"season_id": draft.season_id})
        league = await session.get(League, season.league_id)
        if league is None:
            raise NotFound("League not found", {"league_id": season.league_id})
        return _DraftContext(draft=draft, season=season, league=league)

    @staticmethod
    async def _assert_commissioner(session: AsyncSession, league: League, user_id: int) -> None:
        if league.created_by_user_id == user_id:
            return
        role = (
            await session.execute(
                select(LeagueMember.role).where(
                    LeagueMember.league_id == league.id, LeagueMember.user_id == user_id
                )
            )
        ).scalar()
        if role is None or str(getattr(role, "value", role)) not in COMMISSIONER_ROLES:
            raise Forbidden(ErrorCode.FORBIDDEN, "Commissioner permission required")

    @staticmethod
    async def _ensure_seats(
        session: AsyncSession,
        draft: Draft,
        season: Season,
        seat_order: Sequence[int] | None,
    ) -> int:
        existing = int(
            (
                await session.execute(
                    select(func.count(DraftSeat.id)).where(DraftSeat.draft_id == draft.id)
                )
            ).scalar_one()
        )
        if existing:
            return existing

        member_ids = list(
            (
                await session.execute(
                    select(SeasonMember.league_member_id)
                    .where(SeasonMember.season_id == season.id)
                    .order_by(SeasonMember.id)
                )
            ).scalars().all()
        )
        if len(member_ids) < 2:
            raise Conflict(
                ErrorCode.NOT_ENOUGH_PARTICIPANTS,
                "At least 2 season participants are required to start the draft",
            )

        if seat_order is not None:
            ordered = [int(member_id) for member_id in seat_order]
            if sorted(ordered) != sorted(member_ids):
                raise ValidationFailed(
                    "seat_order must list every season participant exactly once",
                    fields=["seat_order"],
                )
        else:
            ordered = member_ids[:]
            random.shuffle(ordered)

        session.add_all(
            DraftSeat(draft_id=draft.id, seat_number=index, league_member_id=member_id)
            for index, member_id in enumerate(ordered, start=1)
        )
        await session.flush()
        return len(ordered)
