from __future__ import annotations

import pytest

import factories as f
from awards_draft.errors import AppError, ErrorCode, NotFound, ValidationFailed
from awards_draft.merge_service import FILM_MERGE_STEPS, EntityMergeEngine, MergeStep
from awards_draft.models.catalog import Film, FilmCredit, Performance, Person, Song
from awards_draft.models.nomination import Nomination, NominationContributor


@pytest.fixture
def engine(session_factory, audit) -> EntityMergeEngine:
    return EntityMergeEngine(session_factory, audit=audit)


async def _category(session_factory):
    ceremony = await f.ceremony(session_factory)
    return await f.category(session_factory, ceremony.id)


# ── films ──

async def test_merge_films_repoints_every_reference_and_deletes_duplicate(
    engine, session_factory, audit
) -> None:
    category = await _category(session_factory)
    canonical = await f.film(session_factory, "Amélie")
    duplicate = await f.film(session_factory, "Amelie!", tmdb_id=194)
    actor = await f.person(session_factory, "Audrey Tautou")
    other_actor = await f.person(session_factory, "Mathieu Kassovitz")

    nomination = await f.nomination(session_factory, category.id, film_id=duplicate.id)
    song = await f.song(session_factory, "La Valse d'Amélie", duplicate.id)
    canonical_perf = await f.performance(session_factory, canonical.id, actor.id)
    colliding_perf = await f.performance(session_factory, duplicate.id, actor.id)
    moved_perf = await f.performance(session_factory, duplicate.id, other_actor.id)
    perf_nomination = await f.nomination(session_factory, category.id, performance_id=colliding_perf.id)
    await f.credit(session_factory, canonical.id, actor.id, "credit-1")
    conflicting = await f.credit(session_factory, duplicate.id, actor.id, "credit-1")
    moved_credit = await f.credit(session_factory, duplicate.id, other_actor.id, "credit-2")

    result = await engine.merge_films(canonical.id, [duplicate.id, str(duplicate.id), canonical.id], actor_user_id=9)

    assert result.duplicate_ids == [duplicate.id]
    assert result.counts == {
        "nominations_repointed": 1,
        "songs_repointed": 1,
        "performance_collisions_resolved": 1,
        "performances_repointed": 1,
        "film_credit_conflicts_deleted": 1,
        "film_credits_repointed": 1,
        "films_deleted": 1,
    }
    assert (await f.fetch(session_factory, Nomination, nomination.id)).film_id == canonical.id
    assert (await f.fetch(session_factory, Song, song.id)).film_id == canonical.id
    assert (await f.fetch(session_factory, Nomination, perf_nomination.id)).performance_id == canonical_perf.id
    assert await f.fetch(session_factory, Performance, colliding_perf.id) is None
    assert (await f.fetch(session_factory, Performance, moved_perf.id)).film_id == canonical.id
    assert await f.fetch(session_factory, FilmCredit, conflicting.id) is None
    assert (await f.fetch(session_factory, FilmCredit, moved_credit.id)).film_id == canonical.id
    assert await f.fetch(session_factory, Film, duplicate.id) is None
    assert (await f.fetch(session_factory, Film, canonical.id)).tmdb_id == 194
    assert audit.records[-1]["action"] == "merge_films"
    assert audit.records[-1]["meta"]["counts"] == result.counts


async def test_merge_films_title_mismatch_touches_nothing(engine, session_factory) -> None:
    category = await _category(session_factory)
    canonical = await f.film(session_factory, "Dune")
    same = await f.film(session_factory, "DUNE")
    different = await f.film(session_factory, "Dune: Part Two")
    nomination = await f.nomination(session_factory, category.id, film_id=same.id)

    with pytest.raises(ValidationFailed) as exc:
        await engine.merge_films(canonical.id, [same.id, different.id])

    assert exc.value.details["mismatched_ids"] == [different.id]
    assert (await f.fetch(session_factory, Nomination, nomination.id)).film_id == same.id
    assert await f.count(session_factory, Film) == 3


async def test_merge_films_id_validation(engine, session_factory) -> None:
    canonical = await f.film(session_factory, "Past Lives")

    with pytest.raises(ValidationFailed) as exc:
        await engine.merge_films(canonical.id, [canonical.id, "nope", -3])
    assert exc.value.details["fields"] == ["duplicate_ids"]

    with pytest.raises(NotFound):
        await engine.merge_films(9999, [canonical.id])

    with pytest.raises(NotFound) as exc:
        await engine.merge_films(canonical.id, [9998, 9999])
    assert exc.value.details == {"missing_ids": [9998, 9999]}


async def test_merge_films_runs_custom_step_pipeline(session_factory, audit) -> None:
    seen: list[tuple[int, int]] = []

    async def _record(session, canonical_id, duplicate_id):
        seen.append((canonical_id, duplicate_id))
        return 0

    engine = EntityMergeEngine(
        session_factory, audit=audit, film_steps=(MergeStep("observed", _record), *FILM_MERGE_STEPS)
    )
    canonical = await f.film(session_factory, "Anatomy of a Fall")
    a = await f.film(session_factory, "Anatomy of a Fall")
    b = await f.film(session_factory, "anatomy of a fall")

    result = await engine.merge_films(canonical.id, [b.id, a.id])
    assert seen == [(canonical.id, b.id), (canonical.id, a.id)]
    assert result.counts["observed"] == 0
    assert result.counts["films_deleted"] == 2


# ── people ──

async def test_merge_people_repoints_contributors_performances_and_credits(
    engine, session_factory, audit
) -> None:
    category = await _category(session_factory)
    canonical = await f.person(session_factory, "Cillian Murphy")
    duplicate = await f.person(session_factory, "Cillian  Murphy", tmdb_id=2037)
    film = await f.film(session_factory, "Oppenheimer")
    other_film = await f.film(session_factory, "Sunshine")

    shared_nom = await f.nomination(session_factory, category.id, film_id=film.id)
    own_nom = await f.nomination(session_factory, category.id, film_id=other_film.id)
    await f.contributor(session_factory, shared_nom.id, canonical.id)
    dup_on_shared = await f.contributor(session_factory, shared_nom.id, duplicate.id)
    dup_on_own = await f.contributor(session_factory, own_nom.id, duplicate.id)

    canonical_perf = await f.performance(session_factory, film.id, canonical.id)
    colliding_perf = await f.performance(session_factory, film.id, duplicate.id)
    moved_perf = await f.performance(session_factory, other_film.id, duplicate.id)
    perf_nom = await f.nomination(session_factory, category.id, performance_id=colliding_perf.id)
    await f.credit(session_factory, film.id, canonical.id, "c-1")
    conflicting = await f.credit(session_factory, film.id, duplicate.id, "c-1")
    moved_credit = await f.credit(session_factory, other_film.id, duplicate.id, "c-2")

    result = await engine.merge_people(canonical.id, [duplicate.id])

    assert result.counts == {
        "contributor_collisions_deleted": 1,
        "contributors_repointed": 1,
        "performance_collisions_resolved": 1,
        "performances_repointed": 1,
        "film_credit_conflicts_deleted": 1,
        "film_credits_repointed": 1,
        "tmdb_links_carried_over": 1,
        "people_deleted": 1,
    }
    assert await f.fetch(session_factory, NominationContributor, dup_on_shared.id) is None
    assert (await f.fetch(session_factory, NominationContributor, dup_on_own.id)).person_id == canonical.id
    assert (await f.fetch(session_factory, Nomination, perf_nom.id)).performance_id == canonical_perf.id
    assert (await f.fetch(session_factory, Performance, moved_perf.id)).person_id == canonical.id
    assert await f.fetch(session_factory, FilmCredit, conflicting.id) is None
    assert (await f.fetch(session_factory, FilmCredit, moved_credit.id)).person_id == canonical.id
    assert await f.fetch(session_factory, Person, duplicate.id) is None
    assert (await f.fetch(session_factory, Person, canonical.id)).tmdb_id == 2037
    assert audit.actions == ["merge_people"]


async def test_merge_people_with_two_tmdb_links_conflicts(engine, session_factory) -> None:
    canonical = await f.person(session_factory, "Greta Gerwig", tmdb_id=45400)
    duplicate = await f.person(session_factory, "Greta Gerwig", tmdb_id=99999)

    with pytest.raises(AppError) as exc:
        await engine.merge_people(canonical.id, [duplicate.id])

    assert exc.value.code == ErrorCode.PERSON_MERGE_LINK_CONFLICT
    assert exc.value.status_code == 409
    assert [p["id"] for p in exc.value.details["linked_people"]] == [canonical.id, duplicate.id]
    assert await f.fetch(session_factory, Person, duplicate.id) is not None


async def test_merge_people_name_mismatch(engine, session_factory) -> None:
    canonical = await f.person(session_factory, "Lily Gladstone")
    other = await f.person(session_factory, "Lily Collins")
    with pytest.raises(ValidationFailed):
        await engine.merge_people(canonical.id, [other.id])
    assert await f.count(session_factory, Person) == 2


async def test_merge_people_keeps_canonical_link(engine, session_factory) -> None:
    canonical = await f.person(session_factory, "Paul Giamatti", tmdb_id=13242)
    duplicate = await f.person(session_factory, "paul giamatti")
    result = await engine.merge_people(canonical.id, [duplicate.id])
    assert result.counts["tmdb_links_carried_over"] == 0
    assert (await f.fetch(session_factory, Person, canonical.id)).tmdb_id == 13242
