"""Read one entity's slice of the store and classify it."""

from __future__ import annotations

from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from provisync.domain.model import Location

from .analyze import analyze_assignment_status
from .audit import audit_team
from .contracts import TeamSnapshot, UserSnapshot
from .errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from provisync.domain.model import APUser, Team

    from .cache import ExpiringValue
    from .calls import TimedStore
    from .contracts import TeamAudit, UnifiedAssignmentStatus

log = getLogger(__name__)

type LocationIndex = Mapping[UUID, Location]

DEFAULT_LOCATION_CACHE_TTL_SECONDS = 60.0


class LocationDirectory:
    """All known locations by id, cached for the lifetime of ``cache``."""

    def __init__(self, cache: ExpiringValue[LocationIndex]) -> None:
        self._cache = cache

    async def lookup(self, store: TimedStore) -> LocationIndex | None:
        """Return the location index, or ``None`` if it cannot be read.

        Orphan checks are skipped rather than reported when the directory is
        unavailable, so a failed read never produces false orphan issues.
        """

        cached = self._cache.peek()
        if cached is not None:
            return cached
        try:
            locations = await store.list_locations()
        except StoreError:
            log.warning("Location directory unavailable; skipping orphan checks")
            return None
        index: LocationIndex = MappingProxyType({location.id: location for location in locations})
        self._cache.put(index)
        return index

    def invalidate(self) -> None:
        self._cache.invalidate()


async def read_user_snapshot(
    store: TimedStore,
    ap_user: APUser,
    *,
    include_teams: bool = True,
) -> UserSnapshot:
    assignments = tuple(await store.get_assignments(ap_user.id))
    provider = await store.get_provider_record(ap_user.id)

    teams: list[Team] = []
    if include_teams:
        location_ids = dict.fromkeys(
            assignment.location_id for assignment in assignments if assignment.is_active
        )
        for location_id in location_ids:
            teams.extend(await store.list_teams(location_id))

    return UserSnapshot(
        ap_user=ap_user,
        assignments=assignments,
        provider=provider,
        teams=tuple(teams),
    )


async def classify_user(
    store: TimedStore,
    ap_user: APUser,
    *,
    locations: LocationIndex | None,
    include_teams: bool = True,
) -> UnifiedAssignmentStatus:
    snapshot = await read_user_snapshot(store, ap_user, include_teams=include_teams)
    known = locations.keys() if locations is not None else None
    return analyze_assignment_status(snapshot, known_location_ids=known)


async def read_team_snapshot(
    store: TimedStore,
    team: Team,
    *,
    locations: LocationIndex | None,
) -> TeamSnapshot:
    location: Location | None = None
    if team.location_id is not None:
        if locations is None:
            # Directory unavailable: treat the reference as resolvable.
            location = Location(id=team.location_id, name=str(team.location_id))
        else:
            location = locations.get(team.location_id)

    provider = None
    if team.provider_id is not None:
        provider = await store.get_provider_record_by_id(team.provider_id)

    return TeamSnapshot(team=team, location=location, provider=provider)


async def classify_team(
    store: TimedStore,
    team: Team,
    *,
    locations: LocationIndex | None,
) -> TeamAudit:
    return audit_team(await read_team_snapshot(store, team, locations=locations))
