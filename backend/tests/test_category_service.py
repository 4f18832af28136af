from __future__ import annotations

import pytest
from sqlalchemy import update

import factories as f
from awards_draft.category_service import CategoryService
from awards_draft.errors import AppError, ErrorCode, NotFound, ValidationFailed
from awards_draft.models.ceremony import CategoryEdition, CeremonyStatus, UnitKind
from awards_draft.models.draft import DraftPick, DraftStatus
from awards_draft.models.nomination import Nomination, NominationStatus


@pytest.fixture
def categories(session_factory, audit) -> CategoryService:
    return CategoryService(session_factory, audit=audit)


async def test_add_category_appends_sort_index(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    first = await categories.add_category(ceremony.id, code="picture", name="Best Picture")
    second = await categories.add_category(
        ceremony.id, code="song", name="Original Song", unit_kind="song"
    )
    assert (first.sort_index, second.sort_index) == (0, 1)
    assert second.unit_kind == UnitKind.SONG


async def test_add_category_validates_input(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    with pytest.raises(ValidationFailed) as exc:
        await categories.add_category(ceremony.id, code="", name="")
    assert exc.value.details["fields"] == ["code", "name"]
    with pytest.raises(ValidationFailed) as exc:
        await categories.add_category(ceremony.id, code="x", name="X", unit_kind="PODCAST")
    assert exc.value.details["fields"] == ["unit_kind"]


async def test_add_category_duplicate_code(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    await categories.add_category(ceremony.id, code="picture", name="Best Picture")
    with pytest.raises(ValidationFailed) as exc:
        await categories.add_category(ceremony.id, code="picture", name="Best Picture")
    assert exc.value.details["fields"] == ["code"]


async def test_add_category_requires_draft(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory, status=CeremonyStatus.PUBLISHED)
    with pytest.raises(AppError) as exc:
        await categories.add_category(ceremony.id, code="picture", name="Best Picture")
    assert exc.value.code == ErrorCode.CEREMONY_NOT_DRAFT


async def test_delete_category_with_active_nominations_is_blocked(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    await f.film_nominations(session_factory, category.id, 1)
    with pytest.raises(AppError) as exc:
        await categories.delete_category(category.id)
    assert exc.value.code == ErrorCode.CATEGORY_HAS_NOMINEES


async def test_delete_category_removes_inactive_nominations(categories, session_factory, audit) -> None:
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    film = await f.film(session_factory, "Gone Film")
    await f.nomination(session_factory, category.id, film_id=film.id, status=NominationStatus.REVOKED)

    await categories.delete_category(category.id)

    assert await f.fetch(session_factory, CategoryEdition, category.id) is None
    assert await f.count(session_factory, Nomination) == 0
    assert audit.actions == ["delete_category_edition"]


async def test_delete_category_unknown(categories) -> None:
    with pytest.raises(NotFound):
        await categories.delete_category(404)


async def test_clone_categories_replaces_target_set(categories, session_factory) -> None:
    source = await f.ceremony(session_factory, code="oscars-2025")
    await f.category(session_factory, source.id, code="picture", sort_index=0)
    await f.category(
        session_factory, source.id, code="song", name="Song", unit_kind=UnitKind.SONG, sort_index=1
    )
    target = await f.ceremony(session_factory, code="oscars-2026")
    await f.category(session_factory, target.id, code="old")

    clones = await categories.clone_categories(target.id, source.id)

    assert [c.code for c in clones] == ["picture", "song"]
    assert all(c.ceremony_id == target.id for c in clones)
    assert await f.count(session_factory, CategoryEdition, CategoryEdition.ceremony_id == target.id) == 2


async def test_clone_categories_blocked_by_active_nominees(categories, session_factory) -> None:
    source = await f.ceremony(session_factory, code="oscars-2025")
    target = await f.ceremony(session_factory, code="oscars-2026")
    category = await f.category(session_factory, target.id)
    await f.film_nominations(session_factory, category.id, 1)
    with pytest.raises(AppError) as exc:
        await categories.clone_categories(target.id, source.id)
    assert exc.value.code == ErrorCode.CEREMONY_HAS_NOMINEES


async def test_clone_categories_from_itself_is_rejected(categories, session_factory) -> None:
    ceremony = await f.ceremony(session_factory)
    with pytest.raises(ValidationFailed) as exc:
        await categories.clone_categories(ceremony.id, ceremony.id)
    assert exc.value.details["fields"] == ["from_ceremony_id"]


async def _picked_draft_ceremony(session_factory):
    """DRAFT ceremony whose only draft is running and already holds a pick on a revoked row."""
    ceremony = await f.ceremony(session_factory)
    category = await f.category(session_factory, ceremony.id)
    rows = await f.film_nominations(session_factory, category.id, 1)
    setup = await f.league_draft(session_factory, ceremony.id, draft_status=DraftStatus.IN_PROGRESS)
    owner = setup.members[0]
    await f.add(
        session_factory,
        DraftPick(
            draft_id=setup.draft.id,
            pick_number=1,
            round_number=1,
            seat_number=1,
            league_member_id=owner.id,
            user_id=owner.user_id,
            nomination_id=rows[0].id,
            request_id="pick-1",
        ),
    )
    async with session_factory() as session, session.begin():
        await session.execute(
            update(Nomination)
            .where(Nomination.id == rows[0].id)
            .values(status=NominationStatus.REVOKED.value)
        )
    return ceremony, category


async def test_delete_category_refused_once_a_draft_has_started(categories, session_factory, audit) -> None:
    ceremony, category = await _picked_draft_ceremony(session_factory)

    with pytest.raises(AppError) as exc:
        await categories.delete_category(category.id)
    assert exc.value.code == ErrorCode.DRAFTS_LOCKED

    assert await f.fetch(session_factory, CategoryEdition, category.id) is not None
    assert await f.count(session_factory, Nomination) == 1
    assert await f.count(session_factory, DraftPick) == 1
    assert audit.actions == []


async def test_clone_categories_refused_once_a_draft_has_started(categories, session_factory) -> None:
    source = await f.ceremony(session_factory, code="oscars-2025")
    await f.category(session_factory, source.id, code="picture")
    target, category = await _picked_draft_ceremony(session_factory)

    with pytest.raises(AppError) as exc:
        await categories.clone_categories(target.id, source.id)
    assert exc.value.code == ErrorCode.DRAFTS_LOCKED

    assert await f.count(session_factory, CategoryEdition, CategoryEdition.ceremony_id == target.id) == 1
    assert await f.count(session_factory, Nomination) == 1
    assert await f.count(session_factory, DraftPick) == 1
