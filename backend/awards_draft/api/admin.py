"""Admin API: ceremony lifecycle, categories, nominations, winners and catalog."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from awards_draft.active_ceremony import ActiveCeremonyConfig
from awards_draft.api.deps import (
    get_active_config,
    get_actor_user_id,
    get_catalog_service,
    get_category_service,
    get_ledger,
    get_lifecycle,
    get_merge_engine,
)
from awards_draft.catalog_service import CatalogService
from awards_draft.category_service import CategoryService
from awards_draft.ceremony_service import CeremonyLifecycle, CeremonyPatch
from awards_draft.merge_service import EntityMergeEngine
from awards_draft.nomination_ledger import ContributorInput, NominationIntegrityLedger
from awards_draft.schemas.catalog import MergeIn, MergeOut, PersonLinkIn, PersonLinkOut, PersonOut
from awards_draft.schemas.ceremony import (
    ActiveCeremonyIn,
    ActiveCeremonyOut,
    CategoryCloneIn,
    CategoryCreate,
    CategoryOut,
    CeremonyCreate,
    CeremonyOut,
    CeremonyUpdate,
    LockOut,
    WinnerOut,
    WinnersIn,
    WinnersOut,
)
from awards_draft.schemas.nomination import (
    ChangeAuditOut,
    ContributorAddedOut,
    ContributorIn,
    ContributorOut,
    NominationCreate,
    NominationCreatedOut,
    NominationOut,
    ReorderIn,
    ReorderOut,
    StatusChangeIn,
    StatusChangeOut,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


def _contributor_input(payload: ContributorIn) -> ContributorInput:
    return ContributorInput(**payload.model_dump())


# ── Ceremonies ──

@router.post("/ceremonies", status_code=status.HTTP_201_CREATED)
async def create_ceremony(
    payload: CeremonyCreate,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CeremonyOut:
    ceremony = await lifecycle.create(**payload.model_dump(), actor_user_id=actor_user_id)
    return CeremonyOut.model_validate(ceremony)


@router.patch("/ceremonies/{ceremony_id}")
async def update_ceremony(
    ceremony_id: int,
    payload: CeremonyUpdate,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CeremonyOut:
    patch = CeremonyPatch(**payload.model_dump(include=payload.model_fields_set))
    ceremony = await lifecycle.update(ceremony_id, patch, actor_user_id=actor_user_id)
    return CeremonyOut.model_validate(ceremony)


@router.post("/ceremonies/{ceremony_id}/publish")
async def publish_ceremony(
    ceremony_id: int,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CeremonyOut:
    return CeremonyOut.model_validate(await lifecycle.publish(ceremony_id, actor_user_id=actor_user_id))


@router.post("/ceremonies/{ceremony_id}/lock")
async def lock_ceremony(
    ceremony_id: int,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> LockOut:
    outcome = await lifecycle.lock(ceremony_id, actor_user_id=actor_user_id)
    return LockOut(
        ceremony=CeremonyOut.model_validate(outcome.ceremony),
        draft_locked_at=outcome.draft_locked_at,
        cancelled_drafts_count=outcome.cancelled_drafts_count,
    )


@router.post("/ceremonies/{ceremony_id}/archive")
async def archive_ceremony(
    ceremony_id: int,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CeremonyOut:
    return CeremonyOut.model_validate(await lifecycle.archive(ceremony_id, actor_user_id=actor_user_id))


@router.post("/ceremonies/{ceremony_id}/finalize-winners")
async def finalize_winners(
    ceremony_id: int,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CeremonyOut:
    ceremony = await lifecycle.finalize_winners(ceremony_id, actor_user_id=actor_user_id)
    return CeremonyOut.model_validate(ceremony)


@router.delete("/ceremonies/{ceremony_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ceremony(
    ceremony_id: int,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> Response:
    await lifecycle.delete(ceremony_id, actor_user_id=actor_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/active-ceremony")
async def get_active_ceremony(
    config: ActiveCeremonyConfig = Depends(get_active_config),
) -> ActiveCeremonyOut:
    return ActiveCeremonyOut(ceremony_id=await config.get_active_ceremony_id())


@router.put("/active-ceremony")
async def set_active_ceremony(
    payload: ActiveCeremonyIn,
    config: ActiveCeremonyConfig = Depends(get_active_config),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> ActiveCeremonyOut:
    ceremony_id = await config.set_active_ceremony_id(payload.ceremony_id)
    logger.info(
        "Active ceremony set",
        extra={"ceremony_id": ceremony_id, "actor_user_id": actor_user_id},
    )
    return ActiveCeremonyOut(ceremony_id=ceremony_id)


# ── Categories ──

@router.post("/ceremonies/{ceremony_id}/categories", status_code=status.HTTP_201_CREATED)
async def add_category(
    ceremony_id: int,
    payload: CategoryCreate,
    categories: CategoryService = Depends(get_category_service),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> CategoryOut:
    category = await categories.add_category(
        ceremony_id, **payload.model_dump(), actor_user_id=actor_user_id
    )
    return CategoryOut.model_validate(category)


@router.delete("/category-editions/{category_edition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_edition_id: int,
    categories: CategoryService = Depends(get_category_service),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> Response:
    await categories.delete_category(category_edition_id, actor_user_id=actor_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/ceremonies/{ceremony_id}/categories/clone")
async def clone_categories(
    ceremony_id: int,
    payload: CategoryCloneIn,
    categories: CategoryService = Depends(get_category_service),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> list[CategoryOut]:
    clones = await categories.clone_categories(
        ceremony_id, payload.from_ceremony_id, actor_user_id=actor_user_id
    )
    return [CategoryOut.model_validate(c) for c in clones]


# ── Winners ──

@router.post("/winners")
async def set_winners(
    payload: WinnersIn,
    lifecycle: CeremonyLifecycle = Depends(get_lifecycle),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> WinnersOut:
    outcome = await lifecycle.set_winners(
        payload.category_edition_id, payload.nomination_ids, actor_user_id=actor_user_id
    )
    return WinnersOut(
        ceremony_id=outcome.ceremony_id,
        category_edition_id=outcome.category_edition_id,
        winners=[WinnerOut.model_validate(w) for w in outcome.winners],
        draft_locked_at=outcome.draft_locked_at,
        cancelled_drafts_count=outcome.cancelled_drafts_count,
    )


# ── Nominations ──

@router.post("/ceremonies/{ceremony_id}/nominations", status_code=status.HTTP_201_CREATED)
async def create_nomination(
    ceremony_id: int,
    payload: NominationCreate,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> NominationCreatedOut:
    result = await ledger.create_nomination(
        ceremony_id,
        payload.category_edition_id,
        film_id=payload.film_id,
        film_title=payload.film_title,
        song_title=payload.song_title,
        contributors=[_contributor_input(c) for c in payload.contributors],
        actor_user_id=actor_user_id,
    )
    return NominationCreatedOut(
        nomination=NominationOut.model_validate(result.nomination),
        contributors=[ContributorOut.model_validate(c) for c in result.contributors],
        warnings=result.warnings,
    )


@router.delete("/nominations/{nomination_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_nomination(
    nomination_id: int,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> Response:
    await ledger.delete_nomination(nomination_id, actor_user_id=actor_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/ceremonies/{ceremony_id}/nominations/reorder")
async def reorder_nominations(
    ceremony_id: int,
    payload: ReorderIn,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> ReorderOut:
    ordered = await ledger.reorder_nominations(
        ceremony_id,
        payload.category_edition_id,
        payload.nomination_ids,
        actor_user_id=actor_user_id,
    )
    return ReorderOut(category_edition_id=payload.category_edition_id, nomination_ids=ordered)


@router.post("/nominations/{nomination_id}/change")
async def change_nomination_status(
    nomination_id: int,
    payload: StatusChangeIn,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> StatusChangeOut:
    result = await ledger.change_status(
        nomination_id,
        action=payload.action,
        origin=payload.origin,
        impact=payload.impact,
        reason=payload.reason,
        replacement_nomination_id=payload.replacement_nomination_id,
        actor_user_id=actor_user_id,
    )
    return StatusChangeOut(
        nomination=NominationOut.model_validate(result.nomination),
        audit=ChangeAuditOut.model_validate(result.audit),
    )


@router.post("/nominations/{nomination_id}/contributors", status_code=status.HTTP_201_CREATED)
async def add_contributor(
    nomination_id: int,
    payload: ContributorIn,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> ContributorAddedOut:
    result = await ledger.add_contributor(
        nomination_id, _contributor_input(payload), actor_user_id=actor_user_id
    )
    return ContributorAddedOut(
        contributor=ContributorOut.model_validate(result.contributor),
        warnings=result.warnings,
    )


@router.delete(
    "/nominations/{nomination_id}/contributors/{contributor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_contributor(
    nomination_id: int,
    contributor_id: int,
    ledger: NominationIntegrityLedger = Depends(get_ledger),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> Response:
    await ledger.remove_contributor(nomination_id, contributor_id, actor_user_id=actor_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Catalog ──

@router.post("/films/{film_id}/merge")
async def merge_films(
    film_id: int,
    payload: MergeIn,
    engine: EntityMergeEngine = Depends(get_merge_engine),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> MergeOut:
    result = await engine.merge_films(film_id, payload.duplicate_ids, actor_user_id=actor_user_id)
    return MergeOut(
        entity=result.entity,
        canonical_id=result.canonical_id,
        duplicate_ids=result.duplicate_ids,
        counts=result.counts,
    )


@router.post("/people/{person_id}/merge")
async def merge_people(
    person_id: int,
    payload: MergeIn,
    engine: EntityMergeEngine = Depends(get_merge_engine),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> MergeOut:
    result = await engine.merge_people(person_id, payload.duplicate_ids, actor_user_id=actor_user_id)
    return MergeOut(
        entity=result.entity,
        canonical_id=result.canonical_id,
        duplicate_ids=result.duplicate_ids,
        counts=result.counts,
    )


@router.patch("/people/{person_id}")
async def link_person(
    person_id: int,
    payload: PersonLinkIn,
    catalog: CatalogService = Depends(get_catalog_service),
    actor_user_id: int | None = Depends(get_actor_user_id),
) -> PersonLinkOut:
    result = await catalog.link_person_tmdb(person_id, payload.tmdb_id, actor_user_id=actor_user_id)
    return PersonLinkOut(person=PersonOut.model_validate(result.person), warnings=result.warnings)
