"""Ceremony lifecycle rules.

Pure functions over `CeremonyStatus`; persistence lives in `ceremony_service`.
"""
from __future__ import annotations

from awards_draft.errors import Conflict, ErrorCode
from awards_draft.models.ceremony import CeremonyStatus

ALLOWED_TRANSITIONS: dict[CeremonyStatus, frozenset[CeremonyStatus]] = {
    CeremonyStatus.DRAFT: frozenset({CeremonyStatus.PUBLISHED}),
    CeremonyStatus.PUBLISHED: frozenset({CeremonyStatus.LOCKED}),
    CeremonyStatus.LOCKED: frozenset({CeremonyStatus.COMPLETE, CeremonyStatus.ARCHIVED}),
    CeremonyStatus.COMPLETE: frozenset(),
    CeremonyStatus.ARCHIVED: frozenset(),
}


def status_name(value: CeremonyStatus | str) -> str:
    if isinstance(value, CeremonyStatus):
        return value.value
    raw = str(value)
    if raw.startswith("CeremonyStatus."):
        return raw.split(".", 1)[1]
    return raw


def coerce_status(value: CeremonyStatus | str) -> CeremonyStatus:
    return CeremonyStatus(status_name(value))


def can_transition(current: CeremonyStatus | str, target: CeremonyStatus | str) -> bool:
    return coerce_status(target) in ALLOWED_TRANSITIONS[coerce_status(current)]


def assert_transition(current: CeremonyStatus | str, target: CeremonyStatus | str) -> None:
    """Raise CEREMONY_INVALID_TRANSITION unless `current -> target` is an allowed edge."""
    if not can_transition(current, target):
        raise Conflict(
            ErrorCode.CEREMONY_INVALID_TRANSITION,
            f"Ceremony cannot move from {status_name(current)} to {status_name(target)}",
            {"from_status": status_name(current), "to_status": status_name(target)},
        )


def is_archived(status: CeremonyStatus | str) -> bool:
    return status_name(status) == CeremonyStatus.ARCHIVED.value


def is_draft(status: CeremonyStatus | str) -> bool:
    return status_name(status) == CeremonyStatus.DRAFT.value


def assert_not_archived(status: CeremonyStatus | str) -> None:
    if is_archived(status):
        raise Conflict(ErrorCode.CEREMONY_ARCHIVED, "Ceremony is archived and read-only")


def assert_draft(status: CeremonyStatus | str, message: str = "Ceremony is not in DRAFT") -> None:
    if not is_draft(status):
        raise Conflict(ErrorCode.CEREMONY_NOT_DRAFT, message, {"status": status_name(status)})
