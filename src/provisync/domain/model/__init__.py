"""Domain model: entities read from the store and their value sets."""

from __future__ import annotations

from .entities import APUser, Location, LocationAssignment, ProviderRecord, Team
from .enums import AssignmentRole, EntityType, ProviderStatus, RecordStatus

__all__ = [
    "APUser",
    "AssignmentRole",
    "EntityType",
    "Location",
    "LocationAssignment",
    "ProviderRecord",
    "ProviderStatus",
    "RecordStatus",
    "Team",
]
