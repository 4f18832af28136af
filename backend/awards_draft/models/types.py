"""Column types shared across models."""
from __future__ import annotations

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")
