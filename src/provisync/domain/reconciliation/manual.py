"""Administrator-initiated writes: assign an AP user, create a team.

Each operation performs its own write and then the follow-up the repair path
would apply. A primary assignment runs the provisioning saga and links the
unlinked teams at the user's location; creating a team links it to the unique
complete AP user at its location unless the team is self-managed. The primary
write either succeeds or raises; follow-up failures are returned on the
outcome because the primary write is already committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from provisync.domain.model import AssignmentRole, ProviderStatus

from .errors import (
    ConflictError,
    NoCandidateError,
    OrphanReferenceError,
    ReconciliationError,
    StoreError,
    UnknownAPUserError,
    WriteConflictError,
)
from .policy import LocationClaims, first_available, providers_by_location, unique_team_provider
from .saga import ProvisioningSaga
from .snapshot import classify_team, classify_user

if TYPE_CHECKING:
    from uuid import UUID

    from provisync.domain.model import APUser, LocationAssignment, ProviderRecord, Team

    from .calls import TimedStore
    from .contracts import TeamAudit, UnifiedAssignmentStatus
    from .policy import LocationSelector
    from .snapshot import LocationIndex

log = getLogger(__name__)

_LINK_FAILURES = (ConflictError, NoCandidateError, OrphanReferenceError)


@dataclass(frozen=True, slots=True, kw_only=True)
class AssignmentOutcome:
    assignment: LocationAssignment
    status: UnifiedAssignmentStatus
    created_provider: bool = False
    linked_teams: tuple[Team, ...] = ()
    follow_up_errors: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True, kw_only=True)
class TeamCreationOutcome:
    team: Team
    audit: TeamAudit
    follow_up_errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def provider_id(self) -> UUID | None:
        return self.team.provider_id


async def assign_ap_user(
    store: TimedStore,
    ap_user_id: UUID,
    location_id: UUID,
    *,
    locations: LocationIndex | None,
    is_primary: bool = False,
    role: AssignmentRole = AssignmentRole.PROVIDER,
    selector: LocationSelector = first_available,
) -> AssignmentOutcome:
    """Assign an AP user to a location and bring the dependent records in line.

    Raises ``UnknownAPUserError`` for an unknown user, ``OrphanReferenceError``
    for an unknown location, ``StoreError`` when the location cannot be
    verified and ``WriteConflictError`` when a primary assignment is requested
    for a user who already has one.
    """

    ap_user = await store.get_ap_user(ap_user_id)
    if ap_user is None:
        raise UnknownAPUserError(ap_user_id)
    if locations is None:
        raise StoreError(f"Location directory unavailable; cannot verify location {location_id}")
    if location_id not in locations:
        raise OrphanReferenceError(
            f"Location {location_id} does not exist", reference_id=location_id
        )

    assignment = await store.create_assignment(
        ap_user.id, location_id, is_primary=is_primary, role=role
    )
    log.info(
        "Assigned AP user %s to location %s (primary=%s, role=%s)",
        ap_user.id,
        location_id,
        is_primary,
        role,
    )

    errors: list[str] = []
    created_provider = False
    linked: list[Team] = []
    if is_primary:
        created_provider, linked = await _provision_primary(
            store, ap_user, locations=locations, selector=selector, errors=errors
        )

    status = await classify_user(store, ap_user, locations=locations)
    return AssignmentOutcome(
        assignment=assignment,
        status=status,
        created_provider=created_provider,
        linked_teams=tuple(linked),
        follow_up_errors=tuple(errors),
    )


async def _provision_primary(
    store: TimedStore,
    ap_user: APUser,
    *,
    locations: LocationIndex,
    selector: LocationSelector,
    errors: list[str],
) -> tuple[bool, list[Team]]:
    created_provider = False
    linked: list[Team] = []
    saga = ProvisioningSaga(store=store, claims=LocationClaims(selector), locations=locations)
    try:
        outcome = await saga.run(ap_user)
    except ReconciliationError as exc:
        log.warning("Follow-up provisioning for AP user %s failed: %s", ap_user.id, exc)
        errors.append(str(exc))
    else:
        created_provider = outcome.created_provider
        provider = outcome.status.provider
        if outcome.completed and provider is not None:
            try:
                linked, link_errors = await link_location_teams(
                    store, provider.primary_location_id, locations=locations
                )
            except StoreError as exc:
                log.warning("Could not link teams after assigning %s: %s", ap_user.id, exc)
                errors.append(str(exc))
            else:
                errors.extend(link_errors)
    return created_provider, linked


async def create_team(
    store: TimedStore,
    name: str,
    location_id: UUID,
    *,
    locations: LocationIndex | None,
    self_managed: bool = False,
) -> TeamCreationOutcome:
    """Create a team and link it to its location's provider.

    Raises ``OrphanReferenceError`` when the location does not exist.
    """

    if locations is not None and location_id not in locations:
        raise OrphanReferenceError(
            f"Location {location_id} does not exist", reference_id=location_id
        )
    team = await store.create_team(name, location_id, self_managed=self_managed)
    log.info("Created team %s (%s) at location %s", team.id, name, location_id)

    errors: list[str] = []
    if not self_managed:
        try:
            candidates = await location_candidates(store, location_id, locations=locations)
            provider = unique_team_provider(team, candidates)
            team = await store.set_team_provider(team.id, provider.id)
        except WriteConflictError:
            log.info("Team %s was linked to a provider concurrently", team.id)
            team = await _current_team(store, team)
        except _LINK_FAILURES as exc:
            log.warning("Team %s created without a provider: %s", team.id, exc)
            errors.append(str(exc))
        except StoreError as exc:
            log.warning("Could not link new team %s: %s", team.id, exc)
            errors.append(str(exc))
        else:
            log.info("Linked team %s to provider %s", team.id, provider.id)

    audit = await classify_team(store, team, locations=locations)
    return TeamCreationOutcome(team=team, audit=audit, follow_up_errors=tuple(errors))


async def location_candidates(
    store: TimedStore,
    location_id: UUID,
    *,
    locations: LocationIndex | None,
) -> dict[UUID, list[ProviderRecord]]:
    """Providers of the complete AP users whose primary location is ``location_id``."""

    statuses: list[UnifiedAssignmentStatus] = []
    for record in await store.list_provider_records(location_id):
        if record.status is not ProviderStatus.APPROVED:
            continue
        ap_user = await store.get_ap_user(record.ap_user_id)
        if ap_user is None:
            continue
        statuses.append(
            await classify_user(store, ap_user, locations=locations, include_teams=False)
        )
    return providers_by_location(statuses)


async def link_location_teams(
    store: TimedStore,
    location_id: UUID,
    *,
    locations: LocationIndex | None,
) -> tuple[list[Team], list[str]]:
    """Link every unlinked, provider-managed team at ``location_id``.

    Returns the linked teams and one message per team that stayed unlinked.
    """

    pending = [
        team
        for team in await store.list_teams(location_id)
        if team.provider_id is None and not team.self_managed
    ]
    if not pending:
        return [], []

    candidates = await location_candidates(store, location_id, locations=locations)
    linked: list[Team] = []
    errors: list[str] = []
    for team in pending:
        try:
            provider = unique_team_provider(team, candidates)
            linked.append(await store.set_team_provider(team.id, provider.id))
        except WriteConflictError:
            log.info("Team %s was linked to a provider concurrently", team.id)
        except _LINK_FAILURES as exc:
            errors.append(f"Team {team.name}: {exc}")
        else:
            log.info("Linked team %s to provider %s", team.id, provider.id)
    return linked, errors


async def _current_team(store: TimedStore, team: Team) -> Team:
    try:
        current = await store.list_teams(team.location_id)
    except StoreError:
        return team
    return next((found for found in current if found.id == team.id), team)
