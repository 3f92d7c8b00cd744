"""Repair path: classify every entity and apply the fixable corrections.

Phases of one run:
1) enumerate AP users and classify each one concurrently
2) run the provisioning saga for every user that is missing or partially fixable
3) audit all teams and link each unlinked team to the unique complete AP user
   whose primary assignment sits at the team's location

Per-entity failures are collected into ``ReconcileResult.errors``; ``reconcile``
never raises for them. A deadline or cancellation token stops scheduling new
fixes and returns what has been accumulated so far.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from provisync.domain.model import EntityType

from .cache import ExpiringValue
from .calls import DEFAULT_STORE_TIMEOUT_SECONDS, TimedStore
from .errors import (
    ConflictError,
    NoCandidateError,
    OrphanReferenceError,
    StoreError,
    WriteConflictError,
)
from .health import SystemIssue
from .policy import LocationClaims, first_available, providers_by_location, unique_team_provider
from .saga import ProvisioningSaga, ProvisioningStalledError
from .snapshot import LocationDirectory, classify_team, classify_user

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from uuid import UUID

    from provisync.domain.model import APUser, ProviderRecord, Team
    from provisync.domain.ports.store import EntityStore

    from .contracts import TeamAudit, UnifiedAssignmentStatus
    from .policy import LocationSelector
    from .snapshot import LocationIndex

log = getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

_LINK_FAILURES = (ConflictError, NoCandidateError, OrphanReferenceError, StoreError)


class CancellationToken(Protocol):
    """Anything with ``is_set()``, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


class FailureKind(StrEnum):
    CONFLICT = "conflict"
    ORPHAN_REFERENCE = "orphan_reference"
    NO_CANDIDATE = "no_candidate"
    STORE = "store"
    NOT_CONVERGED = "not_converged"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconcileFailure:
    """One entity that could not be fixed during a run."""

    kind: FailureKind
    entity_type: EntityType
    entity_id: UUID | None
    entity_name: str
    message: str


@dataclass(slots=True)
class ReconcileResult:
    fixed_assignments: int = 0
    fixed_providers: int = 0
    fixed_teams: int = 0
    errors: list[ReconcileFailure] = field(default_factory=list["ReconcileFailure"])
    manual_review: list[SystemIssue] = field(default_factory=list["SystemIssue"])
    recommendations: list[str] = field(default_factory=list[str])
    cancelled: bool = False

    @property
    def total_fixed(self) -> int:
        return self.fixed_assignments + self.fixed_providers + self.fixed_teams

    def failures_of(self, kind: FailureKind) -> list[ReconcileFailure]:
        return [failure for failure in self.errors if failure.kind is kind]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _failure_kind(exc: Exception) -> FailureKind:
    match exc:
        case ConflictError():
            return FailureKind.CONFLICT
        case OrphanReferenceError():
            return FailureKind.ORPHAN_REFERENCE
        case NoCandidateError():
            return FailureKind.NO_CANDIDATE
        case StoreError():
            return FailureKind.STORE
        case ProvisioningStalledError():
            return FailureKind.NOT_CONVERGED
        case _:
            return FailureKind.UNEXPECTED


@dataclass(slots=True)
class _Run:
    """Mutable state of one ``reconcile`` call."""

    store: TimedStore
    slots: asyncio.Semaphore
    claims: LocationClaims
    locations: LocationIndex | None
    should_stop: Callable[[], bool]
    result: ReconcileResult = field(default_factory=ReconcileResult)
    statuses: dict[UUID, UnifiedAssignmentStatus] = field(
        default_factory=dict["UUID", "UnifiedAssignmentStatus"]
    )
    audits: list[TeamAudit] = field(default_factory=list["TeamAudit"])

    def stopped(self) -> bool:
        if self.result.cancelled:
            return True
        if self.should_stop():
            log.info("Reconciliation cancelled; no further fixes are scheduled")
            self.result.cancelled = True
        return self.result.cancelled

    def fail(
        self,
        exc: Exception,
        *,
        entity_type: EntityType,
        entity_id: UUID | None,
        entity_name: str,
    ) -> None:
        kind = _failure_kind(exc)
        if kind is FailureKind.UNEXPECTED:
            log.error("Unexpected failure for %s %s", entity_type, entity_id, exc_info=exc)
        else:
            log.warning("Could not fix %s %s: %s", entity_type, entity_id, exc)
        self.result.errors.append(
            ReconcileFailure(
                kind=kind,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                message=str(exc),
            )
        )


@dataclass(slots=True)
class ReconciliationEngine:
    """Drive every fixable AP user and team back to a consistent state."""

    store: EntityStore
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    directory: LocationDirectory = field(
        default_factory=lambda: LocationDirectory(ExpiringValue(ttl_seconds=0))
    )
    selector: LocationSelector = first_available
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    def reconcile(
        self,
        *,
        deadline: datetime | None = None,
        cancel: CancellationToken | None = None,
    ) -> ReconcileResult:
        return asyncio.run(self.reconcile_async(deadline=deadline, cancel=cancel))

    async def reconcile_async(
        self,
        *,
        deadline: datetime | None = None,
        cancel: CancellationToken | None = None,
    ) -> ReconcileResult:
        store = TimedStore(self.store, timeout_seconds=self.store_timeout_seconds)

        def should_stop() -> bool:
            if cancel is not None and cancel.is_set():
                return True
            return deadline is not None and self.clock() >= deadline

        try:
            ap_users = await store.list_ap_users()
        except StoreError as exc:
            log.exception("Cannot enumerate AP users; reconciliation aborted")
            result = ReconcileResult()
            result.errors.append(
                ReconcileFailure(
                    kind=FailureKind.STORE,
                    entity_type=EntityType.SYSTEM,
                    entity_id=None,
                    entity_name="System",
                    message=f"Cannot enumerate AP users: {exc}",
                )
            )
            result.recommendations.append("Check entity store connectivity")
            return result

        # Writes below change which locations are free; start from a fresh directory.
        self.directory.invalidate()
        run = _Run(
            store=store,
            slots=asyncio.Semaphore(self.max_concurrency),
            claims=LocationClaims(self.selector),
            locations=await self.directory.lookup(store),
            should_stop=should_stop,
        )
        log.info("Reconciling %d AP users", len(ap_users))

        await self._fan_out(run, [self._classify(run, ap_user) for ap_user in ap_users])
        fixable = [
            status.ap_user for status in run.statuses.values() if status.is_auto_fixable
        ]
        log.info("%d AP users need automatic fixes", len(fixable))
        await self._fan_out(run, [self._provision(run, ap_user) for ap_user in fixable])

        if not run.stopped():
            await self._link_teams(run)

        self.directory.invalidate()
        self._collect_manual_review(run)
        run.result.recommendations.extend(_recommendations(run.result))
        log.info(
            "Reconciliation finished: %d assignments, %d providers, %d teams fixed, %d errors",
            run.result.fixed_assignments,
            run.result.fixed_providers,
            run.result.fixed_teams,
            len(run.result.errors),
        )
        return run.result

    async def _fan_out(self, run: _Run, jobs: Sequence[Awaitable[None]]) -> None:
        async def bounded(job: Awaitable[None]) -> None:
            async with run.slots:
                await job

        async with asyncio.TaskGroup() as group:
            for job in jobs:
                group.create_task(bounded(job))

    async def _classify(self, run: _Run, ap_user: APUser) -> None:
        try:
            status = await classify_user(
                run.store, ap_user, locations=run.locations, include_teams=False
            )
        except StoreError as exc:
            run.fail(
                exc,
                entity_type=EntityType.AP_USER,
                entity_id=ap_user.id,
                entity_name=ap_user.display_name,
            )
            return
        run.statuses[ap_user.id] = status

    async def _provision(self, run: _Run, ap_user: APUser) -> None:
        if run.stopped():
            return
        saga = ProvisioningSaga(store=run.store, claims=run.claims, locations=run.locations)
        try:
            outcome = await saga.run(ap_user)
        except Exception as exc:  # noqa: BLE001
            run.fail(
                exc,
                entity_type=EntityType.AP_USER,
                entity_id=ap_user.id,
                entity_name=ap_user.display_name,
            )
            return

        run.statuses[ap_user.id] = outcome.status
        run.result.fixed_assignments += int(outcome.created_assignment)
        run.result.fixed_providers += int(outcome.created_provider)
        if not outcome.completed and outcome.status.is_auto_fixable:
            run.fail(
                ProvisioningStalledError(
                    f"AP user ended {outcome.status.status} after {len(outcome.steps)} steps"
                ),
                entity_type=EntityType.AP_USER,
                entity_id=ap_user.id,
                entity_name=ap_user.display_name,
            )

    async def _link_teams(self, run: _Run) -> None:
        try:
            teams = await run.store.list_teams()
        except StoreError as exc:
            run.fail(exc, entity_type=EntityType.SYSTEM, entity_id=None, entity_name="Teams")
            return

        candidates = providers_by_location(run.statuses.values())
        await self._fan_out(run, [self._link_team(run, team, candidates) for team in teams])

    async def _link_team(
        self,
        run: _Run,
        team: Team,
        candidates: dict[UUID, list[ProviderRecord]],
    ) -> None:
        try:
            audit = await classify_team(run.store, team, locations=run.locations)
        except StoreError as exc:
            run.fail(exc, entity_type=EntityType.TEAM, entity_id=team.id, entity_name=team.name)
            return
        if not audit.needs_provider_link or run.stopped():
            run.audits.append(audit)
            return

        try:
            provider = unique_team_provider(team, candidates)
            linked = await run.store.set_team_provider(team.id, provider.id)
        except WriteConflictError:
            log.info("Team %s was linked to a provider concurrently", team.id)
            linked = await self._reread_team(run, team)
        except _LINK_FAILURES as exc:
            run.fail(exc, entity_type=EntityType.TEAM, entity_id=team.id, entity_name=team.name)
            run.audits.append(audit)
            return
        else:
            run.result.fixed_teams += 1
            log.info("Linked team %s to provider %s", team.id, provider.id)

        if linked is None:
            run.audits.append(audit)
            return
        try:
            run.audits.append(await classify_team(run.store, linked, locations=run.locations))
        except StoreError:
            run.audits.append(audit)

    @staticmethod
    async def _reread_team(run: _Run, team: Team) -> Team | None:
        try:
            teams = await run.store.list_teams(team.location_id)
        except StoreError:
            return None
        return next((current for current in teams if current.id == team.id), None)

    def _collect_manual_review(self, run: _Run) -> None:
        review = run.result.manual_review
        for status in run.statuses.values():
            user = status.ap_user
            review.extend(
                SystemIssue.from_issue(issue, affected_id=user.id, affected_name=user.display_name)
                for issue in status.issues
                if not issue.auto_fixable
            )
        for audit in run.audits:
            team = audit.team
            review.extend(
                SystemIssue.from_issue(issue, affected_id=team.id, affected_name=team.name)
                for issue in audit.issues
                if not issue.auto_fixable
            )


def _recommendations(result: ReconcileResult) -> list[str]:
    recommendations: list[str] = []
    unplaced_users = sum(
        1
        for failure in result.failures_of(FailureKind.NO_CANDIDATE)
        if failure.entity_type is EntityType.AP_USER
    )
    unlinked_teams = sum(
        1
        for failure in result.failures_of(FailureKind.NO_CANDIDATE)
        if failure.entity_type is EntityType.TEAM
    )
    ambiguous = len(result.failures_of(FailureKind.CONFLICT))
    store_failures = len(result.failures_of(FailureKind.STORE))

    if unplaced_users > 0:
        recommendations.append(
            f"Create or free a location for {unplaced_users} unassigned AP users"
        )
    if unlinked_teams > 0:
        recommendations.append(
            f"Assign an AP user to the locations of {unlinked_teams} teams without a provider"
        )
    if ambiguous > 0:
        recommendations.append(f"Choose providers for {ambiguous} teams with several candidates")
    if store_failures > 0:
        recommendations.append(
            f"Re-run reconciliation for {store_failures} entities that hit store errors"
        )
    if result.manual_review:
        recommendations.append(f"Review {len(result.manual_review)} issues that need manual fixes")
    if result.cancelled:
        recommendations.append("Reconciliation stopped early; re-run it to process the rest")
    return recommendations
