from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MergeIn(BaseModel):
    duplicate_ids: list[int] = Field(default_factory=list)


class MergeOut(BaseModel):
    entity: str
    canonical_id: int
    duplicate_ids: list[int]
    counts: dict[str, int]


class PersonLinkIn(BaseModel):
    tmdb_id: int | None = None


class PersonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    tmdb_id: int | None = None
    profile_path: str | None = None
    profile_url: str | None = None
    external_ids: dict[str, Any] | None = None


class PersonLinkOut(BaseModel):
    person: PersonOut
    warnings: list[str] = Field(default_factory=list)
