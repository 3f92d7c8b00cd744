"""Pydantic models describing PostgREST rows of the hosted backend."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field, field_validator

from provisync.domain.model import AssignmentRole, ProviderStatus, RecordStatus


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SupabaseBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LocationEmbed(SupabaseBaseModel):
    name: str | None = None


class CountEmbed(SupabaseBaseModel):
    count: int = 0


class ProfileRow(SupabaseBaseModel):
    id: UUID
    display_name: str | None = None
    email: str | None = None

    _normalize_email = field_validator("email", mode="before")(_blank_to_none)


class LocationRow(SupabaseBaseModel):
    id: UUID
    name: str


class AssignmentRow(SupabaseBaseModel):
    id: UUID
    ap_user_id: UUID
    location_id: UUID
    is_primary: bool = False
    role: AssignmentRole = Field(default=AssignmentRole.PROVIDER, alias="assignment_role")
    status: RecordStatus = RecordStatus.ACTIVE
    assigned_at: datetime | None = None
    location: LocationEmbed | None = Field(default=None, alias="locations")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        # Anything other than "active" (e.g. "pending", "removed") does not count.
        if isinstance(value, str) and value.lower() != RecordStatus.ACTIVE:
            return RecordStatus.INACTIVE
        return value.lower() if isinstance(value, str) else value


class ProviderRow(SupabaseBaseModel):
    id: UUID
    ap_user_id: UUID = Field(alias="user_id")
    status: ProviderStatus
    primary_location_id: UUID
    auto_synced: bool = False
    location: LocationEmbed | None = Field(default=None, alias="locations")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if isinstance(value, str) and value.upper() != ProviderStatus.APPROVED:
            return ProviderStatus.INACTIVE
        return value.upper() if isinstance(value, str) else value


class TeamRow(SupabaseBaseModel):
    id: UUID
    name: str
    location_id: UUID | None = None
    provider_id: UUID | None = None
    status: RecordStatus = RecordStatus.ACTIVE
    self_managed: bool = False
    members: list[CountEmbed] = Field(default_factory=list, alias="team_members")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if isinstance(value, str) and value.lower() != RecordStatus.ACTIVE:
            return RecordStatus.INACTIVE
        return value.lower() if isinstance(value, str) else value

    @property
    def member_count(self) -> int:
        return sum(embed.count for embed in self.members)
