"""Nomination, NominationContributor and NominationChangeAudit models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from awards_draft.db import Base


class NominationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    REPLACED = "REPLACED"


class NominationAction(str, enum.Enum):
    REVOKE = "REVOKE"
    REPLACE = "REPLACE"
    RESTORE = "RESTORE"


class ChangeOrigin(str, enum.Enum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"


class ChangeImpact(str, enum.Enum):
    CONSEQUENTIAL = "CONSEQUENTIAL"
    BENIGN = "BENIGN"


class Nomination(Base):
    """A single candidate within a category edition."""

    __tablename__ = "nomination"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_edition_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("category_edition.id"), nullable=False, index=True
    )
    film_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("film.id"), nullable=True, index=True
    )
    song_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("song.id"), nullable=True, index=True
    )
    performance_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("performance.id"), nullable=True, index=True
    )
    status: Mapped[NominationStatus] = mapped_column(
        String(32), default=NominationStatus.ACTIVE, nullable=False
    )
    replaced_by_nomination_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=True,
        comment="Set only when status=REPLACED",
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Nomination id={self.id} category={self.category_edition_id} status={self.status}>"


class NominationContributor(Base):
    """A person credited on a nomination (performer, director, songwriter...)."""

    __tablename__ = "nomination_contributor"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nomination_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=False, index=True
    )
    person_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("person.id"), nullable=False, index=True
    )
    role_label: Mapped[str | None] = mapped_column(String(256), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class NominationChangeAudit(Base):
    """Append-only record of one nomination status change."""

    __tablename__ = "nomination_change_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nomination_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=False, index=True
    )
    replacement_nomination_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("nomination.id"), nullable=True
    )
    action: Mapped[NominationAction] = mapped_column(String(16), nullable=False)
    origin: Mapped[ChangeOrigin] = mapped_column(String(16), nullable=False)
    impact: Mapped[ChangeImpact] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<NominationChangeAudit nomination={self.nomination_id} action={self.action}>"
