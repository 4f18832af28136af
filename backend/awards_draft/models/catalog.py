"""Canonical catalog entities: Film, Person, Song, Performance, FilmCredit."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from awards_draft.db import Base
from awards_draft.models.types import JSONDocument


class Film(Base):
    __tablename__ = "film"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tmdb_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Film id={self.id} title={self.title!r}>"


class Person(Base):
    __tablename__ = "person"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    tmdb_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    external_ids: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    profile_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    profile_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Person id={self.id} name={self.full_name!r} tmdb={self.tmdb_id}>"


class Song(Base):
    __tablename__ = "song"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    film_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("film.id"), nullable=True, index=True
    )


class Performance(Base):
    """A person's performance in a film; (film_id, person_id) is the identity."""

    __tablename__ = "performance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    film_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("film.id"), nullable=False, index=True
    )
    person_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("person.id"), nullable=False, index=True
    )


class FilmCredit(Base):
    """Cast/crew credit imported from TMDB; `tmdb_credit_id` identifies it externally."""

    __tablename__ = "film_credit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    film_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("film.id"), nullable=False, index=True
    )
    person_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("person.id"), nullable=True, index=True
    )
    tmdb_credit_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    credit_type: Mapped[str] = mapped_column(String(16), default="cast", nullable=False)
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    job: Mapped[str | None] = mapped_column(String(128), nullable=True)
    character: Mapped[str | None] = mapped_column(String(256), nullable=True)
