"""
Entities read from and written to the entity store.

All entities are immutable snapshots: the engine never mutates them in place,
it asks the store for a fresh copy after every write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from provisync.domain.model.enums import (
    AssignmentRole,
    ProviderStatus,
    RecordStatus,
)

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


@dataclass(frozen=True, slots=True, kw_only=True)
class APUser:
    """Identity of an authorized-provider user. Owned by the identity system."""

    id: UUID
    display_name: str
    email: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class Location:
    id: UUID
    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class LocationAssignment:
    """Link between one AP user and one location."""

    id: UUID
    ap_user_id: UUID
    location_id: UUID
    location_name: str | None = None
    is_primary: bool = False
    role: AssignmentRole = AssignmentRole.PROVIDER
    status: RecordStatus = RecordStatus.ACTIVE
    assigned_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is RecordStatus.ACTIVE

    @property
    def location_label(self) -> str:
        if self.location_name:
            return f"{self.location_name} ({self.location_id})"
        return str(self.location_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class ProviderRecord:
    """Business-entity projection of an AP user acting as authorized provider."""

    id: UUID
    ap_user_id: UUID
    status: ProviderStatus
    primary_location_id: UUID
    primary_location_name: str | None = None
    auto_synced: bool = False

    @property
    def is_approved(self) -> bool:
        return self.status is ProviderStatus.APPROVED

    @property
    def location_label(self) -> str:
        if self.primary_location_name:
            return f"{self.primary_location_name} ({self.primary_location_id})"
        return str(self.primary_location_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class Team:
    """Team owned by a location and optionally managed by a provider record.

    ``self_managed`` is supplied by the store; a self-managed team is never
    expected to carry a provider.
    """

    id: UUID
    name: str
    location_id: UUID | None = None
    provider_id: UUID | None = None
    member_count: int = 0
    status: RecordStatus = RecordStatus.ACTIVE
    self_managed: bool = False

    @property
    def is_active(self) -> bool:
        return self.status is RecordStatus.ACTIVE
