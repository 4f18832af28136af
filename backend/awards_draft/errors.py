"""Typed application errors with stable machine-readable codes.

Every business-rule violation is raised as an `AppError` before any mutating
statement runs; the API layer renders it as
`{"error": {"code", "message", "details"}}` with the matching HTTP status.
"""
from __future__ import annotations

from typing import Any, Iterable


class ErrorCode:
    """Unique error codes for machine-readable error handling."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"

    CEREMONY_NOT_DRAFT = "CEREMONY_NOT_DRAFT"
    CEREMONY_ARCHIVED = "CEREMONY_ARCHIVED"
    CEREMONY_NOT_PUBLISHED = "CEREMONY_NOT_PUBLISHED"
    CEREMONY_NOT_LOCKED = "CEREMONY_NOT_LOCKED"
    CEREMONY_INCOMPLETE = "CEREMONY_INCOMPLETE"
    CEREMONY_COMPLETE = "CEREMONY_COMPLETE"
    CEREMONY_INVALID_TRANSITION = "CEREMONY_INVALID_TRANSITION"
    DRAFTS_LOCKED = "DRAFTS_LOCKED"
    CATEGORY_HAS_NOMINEES = "CATEGORY_HAS_NOMINEES"
    CEREMONY_HAS_NOMINEES = "CEREMONY_HAS_NOMINEES"
    NO_WINNERS = "NO_WINNERS"

    NOMINATION_INVALID_TRANSITION = "NOMINATION_INVALID_TRANSITION"
    NOMINATION_NOT_ACTIVE = "NOMINATION_NOT_ACTIVE"
    NOMINATION_ALREADY_PICKED = "NOMINATION_ALREADY_PICKED"
    NOMINATION_IS_REPLACEMENT = "NOMINATION_IS_REPLACEMENT"

    DRAFT_LOCKED = "DRAFT_LOCKED"
    DRAFT_PAUSED = "DRAFT_PAUSED"
    DRAFT_NOT_PAUSED = "DRAFT_NOT_PAUSED"
    DRAFT_ALREADY_PAUSED = "DRAFT_ALREADY_PAUSED"
    DRAFT_NOT_IN_PROGRESS = "DRAFT_NOT_IN_PROGRESS"
    DRAFT_ALREADY_STARTED = "DRAFT_ALREADY_STARTED"
    NOT_ACTIVE_TURN = "NOT_ACTIVE_TURN"
    NOT_ENOUGH_PARTICIPANTS = "NOT_ENOUGH_PARTICIPANTS"
    PREREQ_INSUFFICIENT_NOMINATIONS = "PREREQ_INSUFFICIENT_NOMINATIONS"
    SEASON_CANCELLED = "SEASON_CANCELLED"

    TMDB_ID_ALREADY_LINKED = "TMDB_ID_ALREADY_LINKED"
    PERSON_MERGE_LINK_CONFLICT = "PERSON_MERGE_LINK_CONFLICT"

    MIGRATION_REQUIRED = "MIGRATION_REQUIRED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Base application exception with consistent structure."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} status={self.status_code}>"


class ValidationFailed(AppError):
    status_code = 400

    def __init__(
        self,
        message: str,
        fields: Iterable[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if fields:
            merged["fields"] = list(fields)
        super().__init__(ErrorCode.VALIDATION_FAILED, message, merged or None)


class NotFound(AppError):
    status_code = 404

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.NOT_FOUND, message, details)


class Forbidden(AppError):
    status_code = 403


class Conflict(AppError):
    """409-class, user-recoverable: names the exact precondition violated."""

    status_code = 409


class SchemaOutOfDate(AppError):
    """The store rejected a transition its schema doesn't know about.

    Kept distinct from INTERNAL_ERROR so operators know to apply migrations.
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Database schema is out of date. Apply migrations and restart the API.",
    ) -> None:
        super().__init__(ErrorCode.MIGRATION_REQUIRED, message)


class InternalError(AppError):
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, details)


# SQLSTATEs meaning "the schema predates this code": check_violation, undefined_table.
SCHEMA_OUT_OF_DATE_SQLSTATES = frozenset({"23514", "42P01"})


def sqlstate_of(exc: BaseException) -> str | None:
    """Best-effort SQLSTATE of a wrapped DBAPI error (asyncpg / psycopg)."""
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None), exc):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None
