"""Draft, DraftSeat and DraftPick models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from awards_draft.db import Base


class DraftStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DraftOrderType(str, enum.Enum):
    SNAKE = "SNAKE"
    LINEAR = "LINEAR"


class Draft(Base):
    """One league-season's turn-based selection over nominations."""

    __tablename__ = "draft"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("season.id"), nullable=False, index=True
    )
    status: Mapped[DraftStatus] = mapped_column(
        String(32), default=DraftStatus.PENDING, nullable=False, index=True
    )
    draft_order_type: Mapped[DraftOrderType] = mapped_column(
        String(16), default=DraftOrderType.SNAKE, nullable=False
    )
    current_pick_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    picks_per_seat: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_picks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Draft id={self.id} status={self.status} pick={self.current_pick_number}>"


class DraftSeat(Base):
    """Fixed assignment of a rotation slot to a league member."""

    __tablename__ = "draft_seat"
    __table_args__ = (
        UniqueConstraint("draft_id", "seat_number", name="uq_draft_seat_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("draft.id"), nullable=False, index=True
    )
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)
    league_member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("league_member.id"), nullable=False
    )


class DraftPick(Base):
    """A committed selection. Immutable once written."""

    __tablename__ = "draft_pick"
    __table_args__ = (
        UniqueConstraint("draft_id", "request_id", name="uq_draft_pick_request"),
        UniqueConstraint("draft_id", "pick_number", name="uq_draft_pick_number"),
        UniqueConstraint("draft_id", "nomination_id", name="uq_draft_pick_nomination"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("draft.id"), nullable=False, index=True
    )
    pick_number: Mapped[int] = mapped_column(Integer, nullable=False)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)
    league_member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("league_member.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    nomination_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=False
    )
    request_id: Mapped[str] = mapped_column(String(128), nullable=False)
    made_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<DraftPick draft={self.draft_id} #{self.pick_number} nomination={self.nomination_id}>"
