from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from awards_draft.models.nomination import (
    ChangeImpact,
    ChangeOrigin,
    NominationAction,
    NominationStatus,
)


class ContributorIn(BaseModel):
    full_name: str | None = None
    person_id: int | None = None
    tmdb_id: int | None = None
    role_label: str | None = None


class NominationCreate(BaseModel):
    category_edition_id: int
    film_id: int | None = None
    film_title: str | None = None
    song_title: str | None = None
    contributors: list[ContributorIn] = Field(default_factory=list)


class NominationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_edition_id: int
    film_id: int | None = None
    song_id: int | None = None
    performance_id: int | None = None
    status: NominationStatus
    replaced_by_nomination_id: int | None = None
    sort_order: int


class ContributorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nomination_id: int
    person_id: int
    role_label: str | None = None
    sort_order: int


class NominationCreatedOut(BaseModel):
    nomination: NominationOut
    contributors: list[ContributorOut] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ContributorAddedOut(BaseModel):
    contributor: ContributorOut
    warnings: list[str] = Field(default_factory=list)


class ReorderIn(BaseModel):
    category_edition_id: int
    nomination_ids: list[int] = Field(default_factory=list)


class ReorderOut(BaseModel):
    category_edition_id: int
    nomination_ids: list[int]


class StatusChangeIn(BaseModel):
    # Plain strings so unknown values surface as VALIDATION_FAILED naming the field.
    action: str
    origin: str
    impact: str
    reason: str | None = None
    replacement_nomination_id: int | None = None


class ChangeAuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nomination_id: int
    replacement_nomination_id: int | None = None
    action: NominationAction
    origin: ChangeOrigin
    impact: ChangeImpact
    reason: str
    created_by_user_id: int | None = None
    created_at: datetime


class StatusChangeOut(BaseModel):
    nomination: NominationOut
    audit: ChangeAuditOut
