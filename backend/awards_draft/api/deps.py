"""FastAPI dependencies: caller identity and per-request service wiring."""
from __future__ import annotations

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_draft.active_ceremony import ActiveCeremonyConfig
from awards_draft.audit import AuditWriter
from awards_draft.catalog_service import CatalogService
from awards_draft.category_service import CategoryService
from awards_draft.ceremony_service import CeremonyLifecycle
from awards_draft.db import get_session_factory
from awards_draft.errors import AppError, ErrorCode
from awards_draft.hydration import MetadataHydrator
from awards_draft.merge_service import EntityMergeEngine
from awards_draft.nomination_ledger import NominationIntegrityLedger
from awards_draft.pick_service import PickSubmissionArbiter
from awards_draft.realtime import RealtimeNotifier

SessionFactory = async_sessionmaker[AsyncSession]


def get_actor_user_id(x_user_id: int | None = Header(default=None, alias="X-User-Id")) -> int | None:
    """Authenticated user id forwarded by the gateway (optional on admin routes)."""
    return x_user_id


def require_user_id(x_user_id: int | None = Header(default=None, alias="X-User-Id")) -> int:
    if x_user_id is None:
        raise AppError(ErrorCode.UNAUTHORIZED, "X-User-Id header is required", status_code=401)
    return x_user_id


def get_notifier() -> RealtimeNotifier:
    return RealtimeNotifier()


def get_hydrator() -> MetadataHydrator:
    return MetadataHydrator()


def get_audit(session_factory: SessionFactory = Depends(get_session_factory)) -> AuditWriter:
    return AuditWriter(session_factory)


def get_active_config(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> ActiveCeremonyConfig:
    return ActiveCeremonyConfig(session_factory)


def get_lifecycle(
    session_factory: SessionFactory = Depends(get_session_factory),
    audit: AuditWriter = Depends(get_audit),
    notifier: RealtimeNotifier = Depends(get_notifier),
    active_config: ActiveCeremonyConfig = Depends(get_active_config),
) -> CeremonyLifecycle:
    return CeremonyLifecycle(
        session_factory, audit=audit, notifier=notifier, active_config=active_config
    )


def get_category_service(
    session_factory: SessionFactory = Depends(get_session_factory),
    audit: AuditWriter = Depends(get_audit),
) -> CategoryService:
    return CategoryService(session_factory, audit=audit)


def get_ledger(
    session_factory: SessionFactory = Depends(get_session_factory),
    audit: AuditWriter = Depends(get_audit),
    hydrator: MetadataHydrator = Depends(get_hydrator),
) -> NominationIntegrityLedger:
    return NominationIntegrityLedger(session_factory, audit=audit, hydrator=hydrator)


def get_merge_engine(
    session_factory: SessionFactory = Depends(get_session_factory),
    audit: AuditWriter = Depends(get_audit),
) -> EntityMergeEngine:
    return EntityMergeEngine(session_factory, audit=audit)


def get_catalog_service(
    session_factory: SessionFactory = Depends(get_session_factory),
    audit: AuditWriter = Depends(get_audit),
    hydrator: MetadataHydrator = Depends(get_hydrator),
) -> CatalogService:
    return CatalogService(session_factory, audit=audit, hydrator=hydrator)


def get_arbiter(session_factory: SessionFactory = Depends(get_session_factory)) -> PickSubmissionArbiter:
    return PickSubmissionArbiter(session_factory)
