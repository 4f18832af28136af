from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from awards_draft.models.ceremony import CeremonyStatus, UnitKind


class CeremonyCreate(BaseModel):
    code: str | None = None
    name: str | None = None
    year: int | None = None
    starts_at: datetime | None = None


class CeremonyUpdate(BaseModel):
    """Only the keys present in the request body are applied."""

    code: str | None = None
    name: str | None = None
    year: int | None = None
    starts_at: datetime | None = None


class CeremonyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    year: int | None = None
    starts_at: datetime | None = None
    status: CeremonyStatus
    draft_locked_at: datetime | None = None
    published_at: datetime | None = None
    archived_at: datetime | None = None


class LockOut(BaseModel):
    ceremony: CeremonyOut
    draft_locked_at: datetime
    cancelled_drafts_count: int


class WinnersIn(BaseModel):
    category_edition_id: int
    nomination_ids: list[int] = Field(default_factory=list)


class WinnerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ceremony_id: int
    category_edition_id: int
    nomination_id: int


class WinnersOut(BaseModel):
    ceremony_id: int
    category_edition_id: int
    winners: list[WinnerOut]
    draft_locked_at: datetime | None = None
    cancelled_drafts_count: int = 0


class ActiveCeremonyIn(BaseModel):
    ceremony_id: int | None = None


class ActiveCeremonyOut(BaseModel):
    ceremony_id: int | None = None


class CategoryCreate(BaseModel):
    code: str | None = None
    name: str | None = None
    unit_kind: str = UnitKind.FILM.value
    sort_index: int | None = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ceremony_id: int
    code: str
    name: str
    unit_kind: UnitKind
    sort_index: int


class CategoryCloneIn(BaseModel):
    from_ceremony_id: int
