"""Draft status machine and seat rotation.

Everything here is pure; `pick_service` owns locking and persistence.
"""
from __future__ import annotations

from dataclasses import dataclass

from awards_draft.models.draft import DraftOrderType, DraftStatus

ALLOWED_TRANSITIONS: dict[DraftStatus, frozenset[DraftStatus]] = {
    DraftStatus.PENDING: frozenset({DraftStatus.IN_PROGRESS, DraftStatus.CANCELLED}),
    DraftStatus.IN_PROGRESS: frozenset(
        {DraftStatus.PAUSED, DraftStatus.COMPLETED, DraftStatus.CANCELLED}
    ),
    DraftStatus.PAUSED: frozenset({DraftStatus.IN_PROGRESS, DraftStatus.CANCELLED}),
    DraftStatus.COMPLETED: frozenset(),
    DraftStatus.CANCELLED: frozenset(),
}

# Statuses a ceremony lock cascade cancels.
CANCELLABLE_STATUSES: frozenset[DraftStatus] = frozenset(
    {DraftStatus.PENDING, DraftStatus.IN_PROGRESS, DraftStatus.PAUSED}
)


class DraftStateError(Exception):
    """Rejected draft status change.

    `code` is one of UNKNOWN_STATE, SAME_STATE, TRANSITION_NOT_ALLOWED.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


def status_name(value: DraftStatus | str) -> str:
    if isinstance(value, DraftStatus):
        return value.value
    raw = str(value)
    if raw.startswith("DraftStatus."):
        return raw.split(".", 1)[1]
    return raw


def _coerce(value: DraftStatus | str) -> DraftStatus:
    try:
        return DraftStatus(status_name(value))
    except ValueError:
        raise DraftStateError("UNKNOWN_STATE", f"Unknown draft status: {value!r}") from None


def transition_draft(current: DraftStatus | str, target: DraftStatus | str) -> DraftStatus:
    """Validate `current -> target` and return the target status."""
    src = _coerce(current)
    dst = _coerce(target)
    if src == dst:
        raise DraftStateError("SAME_STATE", f"Draft is already {src.value}")
    if dst not in ALLOWED_TRANSITIONS[src]:
        raise DraftStateError(
            "TRANSITION_NOT_ALLOWED", f"Draft cannot move from {src.value} to {dst.value}"
        )
    return dst


@dataclass(slots=True, frozen=True)
class TurnSlot:
    pick_number: int
    round_number: int
    seat_number: int


def seat_for_pick(
    pick_number: int,
    seat_count: int,
    order_type: DraftOrderType | str = DraftOrderType.SNAKE,
) -> TurnSlot:
    """Which seat owns `pick_number` (1-based).

    SNAKE ascends on odd rounds and descends on even rounds: with three seats
    picks 1..6 go to seats 1, 2, 3, 3, 2, 1. LINEAR repeats 1..n every round.
    """
    if seat_count <= 0:
        raise ValueError("seat_count must be positive")
    if pick_number <= 0:
        raise ValueError("pick_number must be positive")

    index = pick_number - 1
    round_number = index // seat_count + 1
    position = index % seat_count
    order = DraftOrderType(str(getattr(order_type, "value", order_type)))
    if order == DraftOrderType.SNAKE and round_number % 2 == 0:
        seat_number = seat_count - position
    else:
        seat_number = position + 1
    return TurnSlot(pick_number=pick_number, round_number=round_number, seat_number=seat_number)


def compute_pick_budget(
    active_nominations: int,
    seat_count: int,
    *,
    full_pool: bool = False,
) -> tuple[int, int]:
    """Return `(picks_per_seat, total_picks)` for a draft about to start.

    The even split drops the remainder unless the season drafts the full pool,
    in which case every nomination gets picked and the last round is short.
    """
    if seat_count <= 0:
        return 0, 0
    picks_per_seat = active_nominations // seat_count
    if picks_per_seat <= 0:
        return 0, 0
    total_picks = active_nominations if full_pool else picks_per_seat * seat_count
    return picks_per_seat, total_picks
