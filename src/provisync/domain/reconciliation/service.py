"""Outward interface consumed by dashboards and admin tooling."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from provisync.domain.model import AssignmentRole, EntityType

from .cache import ExpiringValue
from .calls import DEFAULT_STORE_TIMEOUT_SECONDS, TimedStore
from .engine import DEFAULT_MAX_CONCURRENCY, ReconciliationEngine
from .errors import StoreError, UnknownAPUserError
from .health import UnreadableEntity, generate_health_report, unavailable_report
from .manual import assign_ap_user, create_team
from .policy import first_available
from .snapshot import (
    DEFAULT_LOCATION_CACHE_TTL_SECONDS,
    LocationDirectory,
    classify_team,
    classify_user,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from datetime import datetime
    from uuid import UUID

    from provisync.domain.model import APUser, Team
    from provisync.domain.ports.store import EntityStore

    from .contracts import TeamAudit, UnifiedAssignmentStatus
    from .engine import CancellationToken, ReconcileResult
    from .health import SystemHealthReport
    from .manual import AssignmentOutcome, TeamCreationOutcome
    from .policy import LocationSelector
    from .snapshot import LocationIndex

log = getLogger(__name__)


class AssignmentConsistencyService:
    """Read-path classification plus the repair path over one ``EntityStore``.

    The service owns the location directory cache; the reconciliation engine
    shares it and invalidates it around every run.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
        location_cache_ttl_seconds: float = DEFAULT_LOCATION_CACHE_TTL_SECONDS,
        selector: LocationSelector = first_available,
    ) -> None:
        self.store = store
        self.max_concurrency = max_concurrency
        self.store_timeout_seconds = store_timeout_seconds
        self.selector = selector
        self.directory = LocationDirectory(ExpiringValue(ttl_seconds=location_cache_ttl_seconds))
        self.engine = ReconciliationEngine(
            store,
            max_concurrency=max_concurrency,
            store_timeout_seconds=store_timeout_seconds,
            directory=self.directory,
            selector=selector,
        )

    # Sync entry points ---------------------------------------------------------

    def get_unified_status(self, ap_user_id: UUID) -> UnifiedAssignmentStatus:
        return asyncio.run(self.get_unified_status_async(ap_user_id))

    def get_system_health_report(self) -> SystemHealthReport:
        return asyncio.run(self.get_system_health_report_async())

    def reconcile(
        self,
        *,
        deadline: datetime | None = None,
        cancel: CancellationToken | None = None,
    ) -> ReconcileResult:
        return self.engine.reconcile(deadline=deadline, cancel=cancel)

    def assign_ap_user(
        self,
        ap_user_id: UUID,
        location_id: UUID,
        *,
        is_primary: bool = False,
        role: AssignmentRole = AssignmentRole.PROVIDER,
    ) -> AssignmentOutcome:
        return asyncio.run(
            self.assign_ap_user_async(ap_user_id, location_id, is_primary=is_primary, role=role)
        )

    def create_team(
        self, name: str, location_id: UUID, *, self_managed: bool = False
    ) -> TeamCreationOutcome:
        return asyncio.run(self.create_team_async(name, location_id, self_managed=self_managed))

    # Async core ----------------------------------------------------------------

    async def get_unified_status_async(self, ap_user_id: UUID) -> UnifiedAssignmentStatus:
        """Classify one AP user.

        Raises ``UnknownAPUserError`` if the store has no such user and
        ``StoreError`` if its records cannot be read.
        """

        store = self._timed_store()
        ap_user = await store.get_ap_user(ap_user_id)
        if ap_user is None:
            raise UnknownAPUserError(ap_user_id)
        locations = await self.directory.lookup(store)
        return await classify_user(store, ap_user, locations=locations)

    async def get_system_health_report_async(self) -> SystemHealthReport:
        """Classify every AP user and team and aggregate the results.

        Failing to read a single entity marks it unreadable. Only failing to
        enumerate AP users or teams yields the minimal "store unavailable"
        report.
        """

        store = self._timed_store()
        try:
            ap_users = await store.list_ap_users()
            teams = await store.list_teams()
        except StoreError as exc:
            log.exception("Cannot enumerate AP users or teams")
            return unavailable_report(str(exc))

        locations = await self.directory.lookup(store)
        slots = asyncio.Semaphore(self.max_concurrency)
        log.debug("Classifying %d AP users and %d teams", len(ap_users), len(teams))

        async with asyncio.TaskGroup() as group:
            user_tasks = [
                group.create_task(self._bounded(slots, self._read_user(store, user, locations)))
                for user in ap_users
            ]
            team_tasks = [
                group.create_task(self._bounded(slots, self._read_team(store, team, locations)))
                for team in teams
            ]

        statuses: list[UnifiedAssignmentStatus] = []
        audits: list[TeamAudit] = []
        unreadable: list[UnreadableEntity] = []
        for task in user_tasks:
            match task.result():
                case UnreadableEntity() as entity:
                    unreadable.append(entity)
                case status:
                    statuses.append(status)
        for task in team_tasks:
            match task.result():
                case UnreadableEntity() as entity:
                    unreadable.append(entity)
                case audit:
                    audits.append(audit)

        return generate_health_report(statuses, audits, unreadable=unreadable)

    async def reconcile_async(
        self,
        *,
        deadline: datetime | None = None,
        cancel: CancellationToken | None = None,
    ) -> ReconcileResult:
        return await self.engine.reconcile_async(deadline=deadline, cancel=cancel)

    async def assign_ap_user_async(
        self,
        ap_user_id: UUID,
        location_id: UUID,
        *,
        is_primary: bool = False,
        role: AssignmentRole = AssignmentRole.PROVIDER,
    ) -> AssignmentOutcome:
        """Assign an AP user to a location, then provision and link teams.

        The location directory is refreshed first so a location created since
        the last read is accepted.
        """

        store = self._timed_store()
        self.directory.invalidate()
        locations = await self.directory.lookup(store)
        return await assign_ap_user(
            store,
            ap_user_id,
            location_id,
            locations=locations,
            is_primary=is_primary,
            role=role,
            selector=self.selector,
        )

    async def create_team_async(
        self, name: str, location_id: UUID, *, self_managed: bool = False
    ) -> TeamCreationOutcome:
        store = self._timed_store()
        self.directory.invalidate()
        locations = await self.directory.lookup(store)
        return await create_team(
            store, name, location_id, locations=locations, self_managed=self_managed
        )

    # Helpers -------------------------------------------------------------------

    def _timed_store(self) -> TimedStore:
        return TimedStore(self.store, timeout_seconds=self.store_timeout_seconds)

    @staticmethod
    async def _bounded[T](slots: asyncio.Semaphore, job: Awaitable[T]) -> T:
        async with slots:
            return await job

    @staticmethod
    async def _read_user(
        store: TimedStore, ap_user: APUser, locations: LocationIndex | None
    ) -> UnifiedAssignmentStatus | UnreadableEntity:
        try:
            return await classify_user(store, ap_user, locations=locations)
        except StoreError as exc:
            return UnreadableEntity(
                entity_type=EntityType.AP_USER,
                entity_id=ap_user.id,
                entity_name=ap_user.display_name,
                message=str(exc),
            )

    @staticmethod
    async def _read_team(
        store: TimedStore, team: Team, locations: LocationIndex | None
    ) -> TeamAudit | UnreadableEntity:
        try:
            return await classify_team(store, team, locations=locations)
        except StoreError as exc:
            return UnreadableEntity(
                entity_type=EntityType.TEAM,
                entity_id=team.id,
                entity_name=team.name,
                message=str(exc),
            )
