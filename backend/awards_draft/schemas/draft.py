from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from awards_draft.models.draft import DraftOrderType, DraftStatus


class StartDraftIn(BaseModel):
    seat_order: list[int] | None = None


class DraftOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    season_id: int
    status: DraftStatus
    draft_order_type: DraftOrderType
    current_pick_number: int | None = None
    picks_per_seat: int | None = None
    total_picks: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class PickIn(BaseModel):
    nomination_id: int | None = None
    request_id: str | None = None


class PickOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    draft_id: int
    pick_number: int
    round_number: int
    seat_number: int
    league_member_id: int
    user_id: int
    nomination_id: int
    request_id: str
    made_at: datetime


class PickSubmittedOut(BaseModel):
    pick: PickOut
    created: bool
    draft_status: DraftStatus
    current_pick_number: int | None = None
