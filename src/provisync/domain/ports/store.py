"""Port describing the entity store consumed by the reconciliation core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from provisync.domain.model import (
        APUser,
        AssignmentRole,
        Location,
        LocationAssignment,
        ProviderRecord,
        Team,
    )


@runtime_checkable
class EntityStore(Protocol):
    """Read/write access to AP users, assignments, provider records and teams.

    Every write is committed on its own. Implementations raise
    ``StoreError`` for transient failures, ``WriteConflictError`` when a
    compare-and-set guard fails and ``OrphanReferenceError`` when a write
    references a record that does not exist.
    """

    def list_ap_users(self) -> Sequence[APUser]: ...

    def get_ap_user(self, ap_user_id: UUID) -> APUser | None: ...

    def get_assignments(self, ap_user_id: UUID) -> Sequence[LocationAssignment]: ...

    def get_provider_record(self, ap_user_id: UUID) -> ProviderRecord | None: ...

    def get_provider_record_by_id(self, provider_id: UUID) -> ProviderRecord | None: ...

    def list_provider_records(self, primary_location_id: UUID) -> Sequence[ProviderRecord]:
        """Provider records of any status whose primary location is ``primary_location_id``."""
        ...

    def list_locations(self) -> Sequence[Location]: ...

    def list_available_locations(self) -> Sequence[Location]:
        """Locations with zero active primary AP assignments."""
        ...

    def create_assignment(
        self,
        ap_user_id: UUID,
        location_id: UUID,
        *,
        is_primary: bool,
        role: AssignmentRole,
    ) -> LocationAssignment:
        """Create an active assignment.

        Raises ``WriteConflictError`` if ``is_primary`` is set and the user
        already has an active primary assignment.
        """
        ...

    def create_provider_record(self, ap_user_id: UUID, primary_location_id: UUID) -> ProviderRecord:
        """Create an approved, auto-synced provider record.

        Raises ``WriteConflictError`` if the user already has a provider record.
        """
        ...

    def list_teams(self, location_id: UUID | None = None) -> Sequence[Team]: ...

    def create_team(self, name: str, location_id: UUID, *, self_managed: bool = False) -> Team:
        """Create an active team at ``location_id`` with no provider.

        Raises ``OrphanReferenceError`` if the location does not exist.
        """
        ...

    def set_team_provider(self, team_id: UUID, provider_id: UUID) -> Team:
        """Link a team to a provider if it has none yet.

        Raises ``WriteConflictError`` if the team already has a provider.
        """
        ...
