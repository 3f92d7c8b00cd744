"""Translate PostgREST rows into domain entities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from provisync.domain.model import APUser, Location, LocationAssignment, ProviderRecord, Team

if TYPE_CHECKING:
    from .schema import AssignmentRow, LocationRow, ProfileRow, ProviderRow, TeamRow


def parse_ap_user(row: ProfileRow) -> APUser:
    return APUser(
        id=row.id,
        display_name=row.display_name or row.email or str(row.id),
        email=row.email,
    )


def parse_location(row: LocationRow) -> Location:
    return Location(id=row.id, name=row.name)


def parse_assignment(row: AssignmentRow) -> LocationAssignment:
    return LocationAssignment(
        id=row.id,
        ap_user_id=row.ap_user_id,
        location_id=row.location_id,
        location_name=row.location.name if row.location else None,
        is_primary=row.is_primary,
        role=row.role,
        status=row.status,
        assigned_at=row.assigned_at,
    )


def parse_provider(row: ProviderRow) -> ProviderRecord:
    return ProviderRecord(
        id=row.id,
        ap_user_id=row.ap_user_id,
        status=row.status,
        primary_location_id=row.primary_location_id,
        primary_location_name=row.location.name if row.location else None,
        auto_synced=row.auto_synced,
    )


def parse_team(row: TeamRow) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        location_id=row.location_id,
        provider_id=row.provider_id,
        member_count=row.member_count,
        status=row.status,
        self_managed=row.self_managed,
    )
