"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class AssignmentRole(StrEnum):
    PROVIDER = "provider"
    SUPERVISOR = "supervisor"
    COORDINATOR = "coordinator"


class RecordStatus(StrEnum):
    """Lifecycle flag shared by location assignments and teams."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ProviderStatus(StrEnum):
    APPROVED = "APPROVED"
    INACTIVE = "INACTIVE"


class EntityType(StrEnum):
    """Discriminator for the entity an issue or error refers to."""

    AP_USER = "ap_user"
    ASSIGNMENT = "assignment"
    PROVIDER = "provider"
    TEAM = "team"
    LOCATION = "location"
    SYSTEM = "system"
