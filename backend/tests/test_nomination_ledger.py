from __future__ import annotations

import pytest

import factories as f
from awards_draft.errors import AppError, ErrorCode, NotFound, ValidationFailed
from awards_draft.models.catalog import Film, Performance, Person, Song
from awards_draft.models.ceremony import CeremonyStatus, UnitKind
from awards_draft.models.draft import DraftStatus
from awards_draft.models.nomination import (
    Nomination,
    NominationChangeAudit,
    NominationContributor,
    NominationStatus,
)
from awards_draft.nomination_ledger import ContributorInput, NominationIntegrityLedger


@pytest.fixture
def ledger(session_factory, audit, hydrator) -> NominationIntegrityLedger:
    return NominationIntegrityLedger(session_factory, audit=audit, hydrator=hydrator)


async def _change(ledger, nomination_id, action, **kwargs):
    params = {"origin": "INTERNAL", "impact": "BENIGN", "reason": "Academy correction"}
    params.update(kwargs)
    return await ledger.change_status(nomination_id, action=action, **params)


# ── create ──

async def test_create_film_nomination_by_title_reuses_existing_film(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    existing = await f.film(session_factory, "Oppenheimer")

    first = await ledger.create_nomination(ceremony.id, category.id, film_title="Oppenheimer")
    second = await ledger.create_nomination(ceremony.id, category.id, film_title="Poor Things")

    assert first.nomination.film_id == existing.id
    assert first.nomination.status == NominationStatus.ACTIVE
    assert (first.nomination.sort_order, second.nomination.sort_order) == (0, 1)
    assert await f.count(session_factory, Film) == 2


async def test_create_requires_film_reference(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    with pytest.raises(ValidationFailed) as exc:
        await ledger.create_nomination(ceremony.id, category.id, film_title="  ")
    assert exc.value.details["fields"] == ["film_id", "film_title"]
    with pytest.raises(NotFound):
        await ledger.create_nomination(ceremony.id, category.id, film_id=12345)


async def test_create_rejects_category_of_other_ceremony(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    other = await f.ceremony(session_factory, code="other")
    category = await f.category(session_factory, other.id)
    with pytest.raises(NotFound):
        await ledger.create_nomination(ceremony.id, category.id, film_title="Barbie")


async def test_create_song_nomination_requires_and_creates_song(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id, code="song", unit_kind=UnitKind.SONG)
    with pytest.raises(ValidationFailed) as exc:
        await ledger.create_nomination(ceremony.id, category.id, film_title="Barbie")
    assert exc.value.details["fields"] == ["song_title"]

    result = await ledger.create_nomination(
        ceremony.id, category.id, film_title="Barbie", song_title="What Was I Made For?"
    )
    song = await f.fetch(session_factory, Song, result.nomination.song_id)
    assert song.title == "What Was I Made For?"
    assert result.nomination.film_id is None


async def test_create_performance_nomination_hydrates_before_write(
    ledger, session_factory, hydrator
) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(
        session_factory, ceremony.id, code="actress", unit_kind=UnitKind.PERFORMANCE
    )
    with pytest.raises(ValidationFailed) as exc:
        await ledger.create_nomination(ceremony.id, category.id, film_title="Poor Things")
    assert exc.value.details["fields"] == ["contributors"]

    result = await ledger.create_nomination(
        ceremony.id,
        category.id,
        film_title="Poor Things",
        contributors=[
            ContributorInput(full_name="Emma Stone", tmdb_id=500, role_label="Bella Baxter"),
            ContributorInput(full_name="Unknown Person", tmdb_id=999),
        ],
    )

    assert result.warnings == ["Could not load TMDB profile for person 999"]
    assert [c.sort_order for c in result.contributors] == [0, 1]
    performance = await f.fetch(session_factory, Performance, result.nomination.performance_id)
    emma = await f.fetch(session_factory, Person, performance.person_id)
    assert emma.tmdb_id == 500
    assert emma.profile_path == "/emma.jpg"
    assert hydrator.calls == [[], [500, 999]]


async def test_create_blocked_outside_draft_and_after_draft_start(ledger, session_factory) -> None:
    published = await f.ceremony(session_factory, code="published", status=CeremonyStatus.PUBLISHED)
    pub_category = await f.category(session_factory, published.id)
    with pytest.raises(AppError) as exc:
        await ledger.create_nomination(published.id, pub_category.id, film_title="Barbie")
    assert exc.value.code == ErrorCode.CEREMONY_NOT_DRAFT

    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    await f.league_draft(session_factory, ceremony.id, draft_status=DraftStatus.IN_PROGRESS)
    with pytest.raises(AppError) as exc:
        await ledger.create_nomination(ceremony.id, category.id, film_title="Barbie")
    assert exc.value.code == ErrorCode.DRAFTS_LOCKED


# ── delete ──

async def test_delete_gating_checks_draft_status_before_drafts(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory, status=CeremonyStatus.PUBLISHED)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    await f.league_draft(session_factory, ceremony.id, draft_status=DraftStatus.IN_PROGRESS)
    with pytest.raises(AppError) as exc:
        await ledger.delete_nomination(nomination.id)
    assert exc.value.code == ErrorCode.CEREMONY_NOT_DRAFT


async def test_delete_blocked_once_a_draft_started(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    await f.league_draft(session_factory, ceremony.id, draft_status=DraftStatus.PAUSED)
    with pytest.raises(AppError) as exc:
        await ledger.delete_nomination(nomination.id)
    assert exc.value.code == ErrorCode.DRAFTS_LOCKED


async def test_delete_allowed_while_drafts_pending(ledger, session_factory, audit) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id, code="song", unit_kind=UnitKind.SONG)
    film = await f.film(session_factory, "Barbie")
    song = await f.song(session_factory, "I'm Just Ken", film.id)
    nomination = await f.nomination(session_factory, category.id, song_id=song.id)
    person = await f.person(session_factory, "Mark Ronson")
    await f.contributor(session_factory, nomination.id, person.id)
    await f.league_draft(session_factory, ceremony.id)

    await ledger.delete_nomination(nomination.id)

    assert await f.fetch(session_factory, Nomination, nomination.id) is None
    assert await f.fetch(session_factory, Song, song.id) is None
    assert await f.count(session_factory, NominationContributor) == 0
    assert await f.fetch(session_factory, Person, person.id) is not None
    assert audit.actions == ["delete_nomination"]


async def test_delete_removes_change_history_on_both_sides(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    old, new = await f.film_nominations(session_factory, category.id, 2)
    await _change(ledger, old.id, "REPLACE", replacement_nomination_id=new.id)
    await _change(ledger, old.id, "RESTORE")

    await ledger.delete_nomination(new.id)

    # Only the RESTORE row, which never referenced the deleted nomination, survives.
    assert await f.count(session_factory, NominationChangeAudit) == 1
    assert (
        await f.count(
            session_factory,
            NominationChangeAudit,
            NominationChangeAudit.replacement_nomination_id == new.id,
        )
        == 0
    )
    assert (await f.fetch(session_factory, Nomination, old.id)).status == NominationStatus.ACTIVE.value


async def test_delete_refuses_current_replacement(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    old, new = await f.film_nominations(session_factory, category.id, 2)
    await _change(ledger, old.id, "REPLACE", replacement_nomination_id=new.id)
    with pytest.raises(AppError) as exc:
        await ledger.delete_nomination(new.id)
    assert exc.value.code == ErrorCode.NOMINATION_IS_REPLACEMENT


# ── reorder ──

async def test_reorder_writes_index_as_sort_order(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    a, b, c = await f.film_nominations(session_factory, category.id, 3)

    assert await ledger.reorder_nominations(ceremony.id, category.id, [c.id, a.id, b.id]) == [c.id, a.id, b.id]
    orders = [(await f.fetch(session_factory, Nomination, n.id)).sort_order for n in (a, b, c)]
    assert orders == [1, 2, 0]


async def test_reorder_rejects_foreign_ids(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    other = await f.category(session_factory, ceremony.id, code="director")
    (mine,) = await f.film_nominations(session_factory, category.id, 1)
    (theirs,) = await f.film_nominations(session_factory, other.id, 1)
    with pytest.raises(ValidationFailed) as exc:
        await ledger.reorder_nominations(ceremony.id, category.id, [mine.id, theirs.id])
    assert exc.value.details["fields"] == ["nomination_ids"]


# ── contributors ──

async def test_add_and_remove_contributor(ledger, session_factory, audit) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    producer = await f.person(session_factory, "Emma Thomas")

    added = await ledger.add_contributor(nomination.id, ContributorInput(person_id=producer.id))
    again = await ledger.add_contributor(nomination.id, ContributorInput(full_name="Chris Nolan"))
    assert (added.contributor.sort_order, again.contributor.sort_order) == (0, 1)

    await ledger.remove_contributor(nomination.id, added.contributor.id)
    assert await f.count(session_factory, NominationContributor) == 1
    assert audit.actions == [
        "add_nomination_contributor",
        "add_nomination_contributor",
        "remove_nomination_contributor",
    ]


async def test_add_contributor_requires_name_or_person(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    with pytest.raises(ValidationFailed):
        await ledger.add_contributor(nomination.id, ContributorInput(full_name=" "))


async def test_remove_contributor_of_other_nomination_is_not_found(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    a, b = await f.film_nominations(session_factory, category.id, 2)
    person = await f.person(session_factory, "Someone")
    row = await f.contributor(session_factory, a.id, person.id)
    with pytest.raises(NotFound):
        await ledger.remove_contributor(b.id, row.id)


# ── status changes ──

async def test_revoke_and_restore_write_one_audit_row_each(ledger, session_factory, audit) -> None:
    ceremony = await f.ceremony(session_factory, status=CeremonyStatus.LOCKED)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)

    revoked = await _change(ledger, nomination.id, "revoke", impact="CONSEQUENTIAL", actor_user_id=3)
    assert revoked.nomination.status == NominationStatus.REVOKED
    assert revoked.audit.reason == "Academy correction"
    assert revoked.audit.created_by_user_id == 3

    restored = await _change(ledger, nomination.id, "RESTORE", origin="EXTERNAL")
    assert restored.nomination.status == NominationStatus.ACTIVE
    assert await f.count(session_factory, NominationChangeAudit) == 2
    assert audit.actions == ["nomination_change", "nomination_change"]


async def test_replace_sets_pointer_and_restore_clears_it(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory, status=CeremonyStatus.PUBLISHED)
    category = await f.category(session_factory, ceremony.id)
    old, new = await f.film_nominations(session_factory, category.id, 2)

    replaced = await _change(ledger, old.id, "REPLACE", replacement_nomination_id=new.id)
    assert replaced.nomination.replaced_by_nomination_id == new.id
    assert replaced.audit.replacement_nomination_id == new.id

    restored = await _change(ledger, old.id, "RESTORE", replacement_nomination_id=new.id)
    assert restored.nomination.replaced_by_nomination_id is None
    assert restored.audit.replacement_nomination_id is None


async def test_replace_across_categories_is_allowed(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    picture = await f.category(session_factory, ceremony.id)
    director = await f.category(session_factory, ceremony.id, code="director")
    (old,) = await f.film_nominations(session_factory, picture.id, 1)
    (new,) = await f.film_nominations(session_factory, director.id, 1)
    result = await _change(ledger, old.id, "REPLACE", replacement_nomination_id=new.id)
    assert result.nomination.status == NominationStatus.REPLACED


@pytest.mark.parametrize(
    ("kwargs", "field"),
    [
        ({"action": "DELETE"}, "action"),
        ({"action": "REVOKE", "origin": "ROGUE"}, "origin"),
        ({"action": "REVOKE", "impact": "HUGE"}, "impact"),
        ({"action": "REVOKE", "reason": " oops "}, "reason"),
        ({"action": "REPLACE"}, "replacement_nomination_id"),
    ],
)
async def test_change_status_validation(ledger, session_factory, kwargs, field) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    action = kwargs.pop("action")
    with pytest.raises(ValidationFailed) as exc:
        await _change(ledger, nomination.id, action, **kwargs)
    assert exc.value.details["fields"] == [field]


async def test_replace_with_itself_or_missing_replacement(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    with pytest.raises(ValidationFailed):
        await _change(ledger, nomination.id, "REPLACE", replacement_nomination_id=nomination.id)
    with pytest.raises(NotFound):
        await _change(ledger, nomination.id, "REPLACE", replacement_nomination_id=9999)


async def test_invalid_transition_leaves_no_audit_row(ledger, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    (nomination,) = await f.film_nominations(session_factory, category.id, 1)
    with pytest.raises(AppError) as exc:
        await _change(ledger, nomination.id, "RESTORE")
    assert exc.value.code == ErrorCode.NOMINATION_INVALID_TRANSITION

    await _change(ledger, nomination.id, "REVOKE")
    with pytest.raises(AppError) as exc:
        await _change(ledger, nomination.id, "REVOKE")
    assert exc.value.code == ErrorCode.NOMINATION_INVALID_TRANSITION
    assert await f.count(session_factory, NominationChangeAudit) == 1
