"""Resumable per-user provisioning saga.

ASSIGN_LOCATION -> SYNC_PROVIDER -> LINK_TEAMS

The saga keeps no durable state of its own. Before every step it re-reads the
user from the store and derives the next step from the classification, so a
run that crashed half-way resumes at the right step, and a step that a
concurrent run already performed is skipped rather than repeated. Each write is
a single compare-and-set call; losing it (``WriteConflictError``) means the
state already exists.

LINK_TEAMS is the hand-off point: once a user is complete, team linking runs
for every location in one pass over all teams (see ``engine``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from provisync.domain.model import AssignmentRole

from .contracts import (
    AssignmentGap,
    AssignmentStatus,
    CompleteAssignment,
    MissingAssignment,
    PartialAssignment,
)
from .errors import OrphanReferenceError, ReconciliationError, WriteConflictError
from .snapshot import classify_user

if TYPE_CHECKING:
    from uuid import UUID

    from provisync.domain.model import APUser

    from .calls import TimedStore
    from .contracts import AssignmentState, UnifiedAssignmentStatus
    from .policy import LocationClaims
    from .snapshot import LocationIndex

log = getLogger(__name__)


class ProvisioningStep(StrEnum):
    ASSIGN_LOCATION = "assign_location"
    SYNC_PROVIDER = "sync_provider"
    LINK_TEAMS = "link_teams"


class ProvisioningStalledError(ReconciliationError):
    """A step ran but the re-read state did not advance past it."""


def next_step(state: AssignmentState) -> ProvisioningStep | None:
    """Return the step that moves ``state`` forward, or ``None`` if it needs a human."""

    match state:
        case MissingAssignment() | PartialAssignment(gap=AssignmentGap.PRIMARY_ASSIGNMENT):
            return ProvisioningStep.ASSIGN_LOCATION
        case PartialAssignment(gap=AssignmentGap.PROVIDER_RECORD):
            return ProvisioningStep.SYNC_PROVIDER
        case CompleteAssignment():
            return ProvisioningStep.LINK_TEAMS
        case _:
            return None


@dataclass(slots=True)
class SagaOutcome:
    """What one saga run did for one AP user."""

    ap_user: APUser
    status: UnifiedAssignmentStatus
    steps: list[ProvisioningStep] = field(default_factory=list["ProvisioningStep"])
    created_assignment: bool = False
    created_provider: bool = False

    @property
    def completed(self) -> bool:
        return self.status.status is AssignmentStatus.COMPLETE


@dataclass(slots=True)
class ProvisioningSaga:
    store: TimedStore
    claims: LocationClaims
    locations: LocationIndex | None = None

    async def run(self, ap_user: APUser) -> SagaOutcome:
        """Drive ``ap_user`` towards a complete assignment."""

        outcome: SagaOutcome | None = None
        previous: ProvisioningStep | None = None
        while True:
            status = await classify_user(
                self.store, ap_user, locations=self.locations, include_teams=False
            )
            if outcome is None:
                outcome = SagaOutcome(ap_user=ap_user, status=status)
            outcome.status = status

            step = next_step(status.state)
            if step is None:
                log.info("AP user %s is %s; no automatic step applies", ap_user.id, status.status)
                return outcome
            if step is ProvisioningStep.LINK_TEAMS:
                outcome.steps.append(step)
                return outcome
            if step is previous:
                raise ProvisioningStalledError(
                    f"Step {step} did not advance AP user {ap_user.display_name} ({ap_user.id})"
                )

            outcome.steps.append(step)
            previous = step
            if step is ProvisioningStep.ASSIGN_LOCATION:
                await self._assign_location(status, outcome)
            else:
                await self._sync_provider(status, outcome)

    async def _assign_location(self, status: UnifiedAssignmentStatus, outcome: SagaOutcome) -> None:
        ap_user = status.ap_user
        claimed: UUID | None = None
        if status.provider is not None:
            location_id = status.provider.primary_location_id
        else:
            candidates = await self.store.list_available_locations()
            location = self.claims.claim(candidates, ap_user=ap_user)
            location_id = claimed = location.id
        self._require_location(location_id)

        try:
            assignment = await self.store.create_assignment(
                ap_user.id,
                location_id,
                is_primary=True,
                role=AssignmentRole.PROVIDER,
            )
        except WriteConflictError:
            log.info("Primary assignment for AP user %s already created concurrently", ap_user.id)
            if claimed is not None:
                self.claims.release(claimed)
            return

        outcome.created_assignment = True
        log.info(
            "Assigned AP user %s to location %s (assignment %s)",
            ap_user.id,
            location_id,
            assignment.id,
        )

    async def _sync_provider(self, status: UnifiedAssignmentStatus, outcome: SagaOutcome) -> None:
        ap_user = status.ap_user
        primary = status.primary_assignment
        if primary is None:
            raise ProvisioningStalledError(f"AP user {ap_user.id} has no primary assignment")
        self._require_location(primary.location_id)

        try:
            provider = await self.store.create_provider_record(ap_user.id, primary.location_id)
        except WriteConflictError:
            log.info("Provider record for AP user %s already created concurrently", ap_user.id)
            return

        outcome.created_provider = True
        log.info(
            "Created provider record %s for AP user %s at location %s",
            provider.id,
            ap_user.id,
            primary.location_id,
        )

    def _require_location(self, location_id: UUID) -> None:
        if self.locations is not None and location_id not in self.locations:
            raise OrphanReferenceError(
                f"Location {location_id} does not exist", reference_id=location_id
            )
