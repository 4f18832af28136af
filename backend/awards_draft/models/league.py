"""League, LeagueMember, Season and SeasonMember models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from awards_draft.db import Base


class LeagueRole(str, enum.Enum):
    OWNER = "OWNER"
    CO_OWNER = "CO_OWNER"
    MEMBER = "MEMBER"


class SeasonStatus(str, enum.Enum):
    EXTANT = "EXTANT"
    CANCELLED = "CANCELLED"


class RemainderStrategy(str, enum.Enum):
    """What happens to nominations left over after an even split across seats."""

    UNDRAFTED = "UNDRAFTED"
    FULL_POOL = "FULL_POOL"


class League(Base):
    __tablename__ = "league"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    created_by_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class LeagueMember(Base):
    __tablename__ = "league_member"
    __table_args__ = (UniqueConstraint("league_id", "user_id", name="uq_league_member_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("league.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    role: Mapped[LeagueRole] = mapped_column(String(16), default=LeagueRole.MEMBER, nullable=False)


class Season(Base):
    """A league's participation in one ceremony."""

    __tablename__ = "season"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("league.id"), nullable=False, index=True
    )
    ceremony_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ceremony.id"), nullable=False, index=True
    )
    status: Mapped[SeasonStatus] = mapped_column(
        String(16), default=SeasonStatus.EXTANT, nullable=False
    )
    remainder_strategy: Mapped[RemainderStrategy] = mapped_column(
        String(16), default=RemainderStrategy.UNDRAFTED, nullable=False
    )


class SeasonMember(Base):
    __tablename__ = "season_member"
    __table_args__ = (
        UniqueConstraint("season_id", "league_member_id", name="uq_season_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("season.id"), nullable=False, index=True
    )
    league_member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("league_member.id"), nullable=False
    )
