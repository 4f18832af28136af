"""Models package — re-export all ORM classes for Alembic auto-detection."""
from awards_draft.models.ceremony import AppConfig, CategoryEdition, Ceremony, CeremonyWinner  # noqa: F401
from awards_draft.models.catalog import Film, FilmCredit, Performance, Person, Song  # noqa: F401
from awards_draft.models.nomination import (  # noqa: F401
    Nomination,
    NominationChangeAudit,
    NominationContributor,
)
from awards_draft.models.league import League, LeagueMember, Season, SeasonMember  # noqa: F401
from awards_draft.models.draft import Draft, DraftPick, DraftSeat  # noqa: F401
from awards_draft.models.audit import AdminAudit  # noqa: F401
