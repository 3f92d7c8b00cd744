"""Location selection and team linking policy.

No business rule defines which free location an unassigned AP user should
receive, so the choice is a pluggable strategy. ``first_available`` is a
deterministic default, not a statement of business intent.

A team without a provider is linked only to the single complete AP user whose
primary assignment sits at the team's location.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Protocol

from .contracts import AssignmentStatus
from .errors import ConflictError, NoCandidateError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from uuid import UUID

    from provisync.domain.model import APUser, Location, ProviderRecord, Team

    from .contracts import UnifiedAssignmentStatus


class LocationSelector(Protocol):
    """Pick one location for ``ap_user`` out of ``candidates`` (or ``None``)."""

    def __call__(self, candidates: Sequence[Location], *, ap_user: APUser) -> Location | None: ...


def first_available(candidates: Sequence[Location], *, ap_user: APUser) -> Location | None:
    """Lowest location by case-folded name, then id."""

    _ = ap_user
    ordered = sorted(candidates, key=lambda location: (location.name.casefold(), str(location.id)))
    return ordered[0] if ordered else None


class LocationClaims:
    """Locations handed out during one reconciliation run.

    Two unassigned users fixed in the same run never receive the same
    location. ``claim`` does not await, so it is atomic within one event loop.
    """

    def __init__(self, selector: LocationSelector = first_available) -> None:
        self.selector = selector
        self._claimed: set[UUID] = set()

    def claim(self, candidates: Sequence[Location], *, ap_user: APUser) -> Location:
        free = [location for location in candidates if location.id not in self._claimed]
        choice = self.selector(free, ap_user=ap_user)
        if choice is None:
            raise NoCandidateError(
                f"No available location to assign AP user {ap_user.display_name} ({ap_user.id})"
            )
        self._claimed.add(choice.id)
        return choice

    def release(self, location_id: UUID) -> None:
        self._claimed.discard(location_id)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._claimed


# Team linking -----------------------------------------------------------------


def providers_by_location(
    statuses: Iterable[UnifiedAssignmentStatus],
) -> dict[UUID, list[ProviderRecord]]:
    """Provider records of complete AP users, keyed by their primary location."""

    by_location: dict[UUID, list[ProviderRecord]] = defaultdict(list)
    for status in statuses:
        if status.status is AssignmentStatus.COMPLETE and status.provider is not None:
            by_location[status.provider.primary_location_id].append(status.provider)
    return by_location


def unique_team_provider(
    team: Team, candidates: Mapping[UUID, Sequence[ProviderRecord]]
) -> ProviderRecord:
    """Return the only candidate provider at ``team``'s location.

    Raises ``NoCandidateError`` when there is none and ``ConflictError`` when
    several complete AP users share the location.
    """

    if team.location_id is None:
        raise NoCandidateError(f"Team {team.name} has no location to find a provider at")
    found = candidates.get(team.location_id, [])
    if not found:
        raise NoCandidateError(
            f"No complete AP user has a primary assignment at team {team.name}'s location"
        )
    if len(found) > 1:
        raise ConflictError(
            f"{len(found)} complete AP users share team {team.name}'s location; "
            "choose its provider manually"
        )
    return found[0]
