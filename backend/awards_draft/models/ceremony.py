"""Ceremony, CategoryEdition, CeremonyWinner and AppConfig models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from awards_draft.db import Base


class CeremonyStatus(str, enum.Enum):
    """Lifecycle of the event being drafted against."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    LOCKED = "LOCKED"
    COMPLETE = "COMPLETE"
    ARCHIVED = "ARCHIVED"


class UnitKind(str, enum.Enum):
    """What a nomination in the category represents."""

    FILM = "FILM"
    SONG = "SONG"
    PERFORMANCE = "PERFORMANCE"


class Ceremony(Base):
    """An awards event. Owns categories and, once published, a frozen shape."""

    __tablename__ = "ceremony"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[CeremonyStatus] = mapped_column(
        String(32), default=CeremonyStatus.DRAFT, nullable=False, index=True
    )
    draft_locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Write-once"
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Ceremony id={self.id} code={self.code!r} status={self.status}>"


class CategoryEdition(Base):
    """One drafting category within a specific ceremony."""

    __tablename__ = "category_edition"
    __table_args__ = (
        UniqueConstraint("ceremony_id", "code", name="uq_category_edition_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ceremony_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ceremony.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    unit_kind: Mapped[UnitKind] = mapped_column(String(32), default=UnitKind.FILM, nullable=False)
    sort_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<CategoryEdition id={self.id} ceremony={self.ceremony_id} kind={self.unit_kind}>"


class CeremonyWinner(Base):
    """A nomination recorded as winning its category."""

    __tablename__ = "ceremony_winner"
    __table_args__ = (
        UniqueConstraint("category_edition_id", "nomination_id", name="uq_winner_category_nomination"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ceremony_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ceremony.id"), nullable=False, index=True
    )
    category_edition_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("category_edition.id"), nullable=False, index=True
    )
    nomination_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AppConfig(Base):
    """Single-row process-wide configuration (active ceremony selector)."""

    __tablename__ = "app_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    active_ceremony_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ceremony.id"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
