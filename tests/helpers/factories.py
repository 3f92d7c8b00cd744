"""Builders for pure analyzer and audit tests."""

from __future__ import annotations

import uuid

from provisync.domain.model import (
    APUser,
    LocationAssignment,
    ProviderRecord,
    ProviderStatus,
    RecordStatus,
    Team,
)


def make_user(name: str = "Alice") -> APUser:
    return APUser(id=uuid.uuid4(), display_name=name)


def make_assignment(
    user: APUser,
    location_id: uuid.UUID,
    *,
    is_primary: bool = True,
    status: RecordStatus = RecordStatus.ACTIVE,
    location_name: str | None = None,
) -> LocationAssignment:
    return LocationAssignment(
        id=uuid.uuid4(),
        ap_user_id=user.id,
        location_id=location_id,
        location_name=location_name,
        is_primary=is_primary,
        status=status,
    )


def make_provider(
    user: APUser,
    location_id: uuid.UUID,
    *,
    status: ProviderStatus = ProviderStatus.APPROVED,
    location_name: str | None = None,
) -> ProviderRecord:
    return ProviderRecord(
        id=uuid.uuid4(),
        ap_user_id=user.id,
        status=status,
        primary_location_id=location_id,
        primary_location_name=location_name,
    )


def make_team(
    name: str = "Team A",
    *,
    location_id: uuid.UUID | None = None,
    provider_id: uuid.UUID | None = None,
    member_count: int = 5,
    status: RecordStatus = RecordStatus.ACTIVE,
    self_managed: bool = False,
) -> Team:
    return Team(
        id=uuid.uuid4(),
        name=name,
        location_id=location_id,
        provider_id=provider_id,
        member_count=member_count,
        status=status,
        self_managed=self_managed,
    )
