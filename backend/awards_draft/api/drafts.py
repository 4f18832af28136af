"""Draft room API: commissioner controls and pick submission."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from awards_draft.api.deps import get_arbiter, require_user_id
from awards_draft.pick_service import PickSubmissionArbiter
from awards_draft.schemas.draft import DraftOut, PickIn, PickOut, PickSubmittedOut, StartDraftIn

router = APIRouter(prefix="/drafts", tags=["drafts"])


@router.post("/{draft_id}/start")
async def start_draft(
    draft_id: int,
    payload: StartDraftIn | None = None,
    arbiter: PickSubmissionArbiter = Depends(get_arbiter),
    user_id: int = Depends(require_user_id),
) -> DraftOut:
    seat_order = payload.seat_order if payload is not None else None
    draft = await arbiter.start_draft(draft_id, actor_user_id=user_id, seat_order=seat_order)
    return DraftOut.model_validate(draft)


@router.post("/{draft_id}/pause")
async def pause_draft(
    draft_id: int,
    arbiter: PickSubmissionArbiter = Depends(get_arbiter),
    user_id: int = Depends(require_user_id),
) -> DraftOut:
    return DraftOut.model_validate(await arbiter.pause_draft(draft_id, actor_user_id=user_id))


@router.post("/{draft_id}/resume")
async def resume_draft(
    draft_id: int,
    arbiter: PickSubmissionArbiter = Depends(get_arbiter),
    user_id: int = Depends(require_user_id),
) -> DraftOut:
    return DraftOut.model_validate(await arbiter.resume_draft(draft_id, actor_user_id=user_id))


@router.post("/{draft_id}/picks")
async def submit_pick(
    draft_id: int,
    payload: PickIn,
    response: Response,
    arbiter: PickSubmissionArbiter = Depends(get_arbiter),
    user_id: int = Depends(require_user_id),
) -> PickSubmittedOut:
    """201 for a new pick, 200 when the request id was already applied."""
    outcome = await arbiter.submit_pick(
        draft_id,
        requester_user_id=user_id,
        nomination_id=payload.nomination_id,
        request_id=payload.request_id,
    )
    response.status_code = status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK
    return PickSubmittedOut(
        pick=PickOut.model_validate(outcome.pick),
        created=outcome.created,
        draft_status=outcome.draft_status,
        current_pick_number=outcome.current_pick_number,
    )
