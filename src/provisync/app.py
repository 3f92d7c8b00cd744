"""Application orchestration entry points."""

from __future__ import annotations

from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from provisync.adapters.sqlalchemy import SqlAlchemyEntityStore, session_factory, startup
from provisync.adapters.sqlalchemy.session import is_started
from provisync.adapters.supabase import SupabaseEntityStore
from provisync.config import get_reconciliation_config, get_supabase_config
from provisync.domain.model import AssignmentRole
from provisync.domain.reconciliation import AssignmentConsistencyService

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from provisync.config import ReconciliationConfig
    from provisync.domain.ports import EntityStore
    from provisync.domain.reconciliation import (
        AssignmentOutcome,
        CancellationToken,
        ReconcileResult,
        SystemHealthReport,
        TeamCreationOutcome,
        UnifiedAssignmentStatus,
    )

log = getLogger(__name__)


class Backend(StrEnum):
    SQLALCHEMY = "sqlalchemy"
    SUPABASE = "supabase"


def build_store(backend: Backend = Backend.SQLALCHEMY) -> EntityStore:
    """Return the entity store for ``backend``, initialising it if needed."""

    match backend:
        case Backend.SQLALCHEMY:
            if not is_started():
                startup()
            return SqlAlchemyEntityStore(session_factory())
        case Backend.SUPABASE:
            return SupabaseEntityStore(config=get_supabase_config())


def build_service(
    *,
    store: EntityStore | None = None,
    backend: Backend = Backend.SQLALCHEMY,
    config: ReconciliationConfig | None = None,
) -> AssignmentConsistencyService:
    effective_config = config or get_reconciliation_config()
    log.debug(
        "Building service: backend=%s, max_concurrency=%s, store_timeout=%ss",
        backend,
        effective_config.max_concurrency,
        effective_config.store_timeout_seconds,
    )
    return AssignmentConsistencyService(
        store or build_store(backend),
        max_concurrency=effective_config.max_concurrency,
        store_timeout_seconds=effective_config.store_timeout_seconds,
        location_cache_ttl_seconds=effective_config.location_cache_ttl_seconds,
    )


def get_unified_status(
    ap_user_id: UUID,
    *,
    service: AssignmentConsistencyService | None = None,
    backend: Backend = Backend.SQLALCHEMY,
) -> UnifiedAssignmentStatus:
    effective_service = service or build_service(backend=backend)
    return effective_service.get_unified_status(ap_user_id)


def get_system_health_report(
    *,
    service: AssignmentConsistencyService | None = None,
    backend: Backend = Backend.SQLALCHEMY,
) -> SystemHealthReport:
    effective_service = service or build_service(backend=backend)
    report = effective_service.get_system_health_report()
    log.info(
        "Health report: score=%d, issues=%d, critical=%d",
        report.overall_score,
        len(report.system_issues),
        len(report.critical_issues),
    )
    return report


def reconcile(
    *,
    deadline: datetime | None = None,
    cancel: CancellationToken | None = None,
    service: AssignmentConsistencyService | None = None,
    backend: Backend = Backend.SQLALCHEMY,
) -> ReconcileResult:
    """Run one reconciliation pass using the configured adapters."""

    effective_service = service or build_service(backend=backend)
    log.info("Starting reconciliation: backend=%s, deadline=%s", backend, deadline)
    return effective_service.reconcile(deadline=deadline, cancel=cancel)


def assign_ap_user(
    ap_user_id: UUID,
    location_id: UUID,
    *,
    is_primary: bool = False,
    role: AssignmentRole = AssignmentRole.PROVIDER,
    service: AssignmentConsistencyService | None = None,
    backend: Backend = Backend.SQLALCHEMY,
) -> AssignmentOutcome:
    effective_service = service or build_service(backend=backend)
    outcome = effective_service.assign_ap_user(
        ap_user_id, location_id, is_primary=is_primary, role=role
    )
    if outcome.follow_up_errors:
        log.warning(
            "Assigned AP user %s with %d follow-up errors",
            ap_user_id,
            len(outcome.follow_up_errors),
        )
    return outcome


def create_team(
    name: str,
    location_id: UUID,
    *,
    self_managed: bool = False,
    service: AssignmentConsistencyService | None = None,
    backend: Backend = Backend.SQLALCHEMY,
) -> TeamCreationOutcome:
    effective_service = service or build_service(backend=backend)
    return effective_service.create_team(name, location_id, self_managed=self_managed)
