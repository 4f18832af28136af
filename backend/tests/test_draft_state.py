from __future__ import annotations

import pytest

from awards_draft import draft_state
from awards_draft.models.draft import DraftOrderType, DraftStatus


def test_transition_draft_allows_documented_edges() -> None:
    assert draft_state.transition_draft("PENDING", "IN_PROGRESS") == DraftStatus.IN_PROGRESS
    assert draft_state.transition_draft("IN_PROGRESS", "PAUSED") == DraftStatus.PAUSED
    assert draft_state.transition_draft("PAUSED", "IN_PROGRESS") == DraftStatus.IN_PROGRESS
    assert draft_state.transition_draft("IN_PROGRESS", "COMPLETED") == DraftStatus.COMPLETED
    for source in ("PENDING", "IN_PROGRESS", "PAUSED"):
        assert draft_state.transition_draft(source, "CANCELLED") == DraftStatus.CANCELLED


@pytest.mark.parametrize(
    ("current", "target", "code"),
    [
        ("PENDING", "PENDING", "SAME_STATE"),
        ("PENDING", "COMPLETED", "TRANSITION_NOT_ALLOWED"),
        ("PAUSED", "COMPLETED", "TRANSITION_NOT_ALLOWED"),
        ("COMPLETED", "IN_PROGRESS", "TRANSITION_NOT_ALLOWED"),
        ("CANCELLED", "PENDING", "TRANSITION_NOT_ALLOWED"),
        ("BOGUS", "PENDING", "UNKNOWN_STATE"),
        ("PENDING", "BOGUS", "UNKNOWN_STATE"),
    ],
)
def test_transition_draft_rejections_carry_codes(current, target, code) -> None:
    with pytest.raises(draft_state.DraftStateError) as exc:
        draft_state.transition_draft(current, target)
    assert exc.value.code == code


def test_snake_rotation_reverses_on_even_rounds() -> None:
    seats = [draft_state.seat_for_pick(n, 3).seat_number for n in range(1, 10)]
    assert seats == [1, 2, 3, 3, 2, 1, 1, 2, 3]


def test_linear_rotation_repeats_order() -> None:
    seats = [
        draft_state.seat_for_pick(n, 3, DraftOrderType.LINEAR).seat_number for n in range(1, 7)
    ]
    assert seats == [1, 2, 3, 1, 2, 3]


def test_seat_for_pick_reports_round_number() -> None:
    slot = draft_state.seat_for_pick(5, 2, "SNAKE")
    assert (slot.pick_number, slot.round_number, slot.seat_number) == (5, 3, 1)


def test_seat_for_pick_rejects_non_positive_inputs() -> None:
    with pytest.raises(ValueError):
        draft_state.seat_for_pick(0, 2)
    with pytest.raises(ValueError):
        draft_state.seat_for_pick(1, 0)


def test_compute_pick_budget_drops_remainder_unless_full_pool() -> None:
    assert draft_state.compute_pick_budget(7, 3) == (2, 6)
    assert draft_state.compute_pick_budget(7, 3, full_pool=True) == (2, 7)
    assert draft_state.compute_pick_budget(2, 3) == (0, 0)
    assert draft_state.compute_pick_budget(5, 0) == (0, 0)
