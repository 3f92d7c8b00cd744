"""SQLAlchemy Core tables for the provisync entity store."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    TypeDecorator,
    Uuid,
    and_,
    func,
)

from provisync.domain.model import AssignmentRole, ProviderStatus, RecordStatus

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

# Location and provider references carry no foreign keys: deleted locations
# must stay representable so the orphan checks can report them.

location_table = Table(
    "location",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
)

ap_user_table = Table(
    "ap_user",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("display_name", String, nullable=False),
    Column("email", String, nullable=True),
)

location_assignment_table = Table(
    "location_assignment",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("ap_user_id", UUIDColumnType, ForeignKey("ap_user.id"), nullable=False),
    Column("location_id", UUIDColumnType, nullable=False),
    Column("is_primary", Boolean, nullable=False, default=False),
    Column("role", Enum(AssignmentRole, native_enum=False), nullable=False),
    Column("status", Enum(RecordStatus, native_enum=False), nullable=False),
    Column("assigned_at", UTCDateTime(), nullable=True, server_default=func.now()),
    Index("ix_location_assignment_ap_user", "ap_user_id"),
    Index("ix_location_assignment_location", "location_id"),
)

_active_primary = and_(
    location_assignment_table.c.is_primary.is_(True),
    location_assignment_table.c.status == RecordStatus.ACTIVE,
)

# At most one active primary assignment per AP user; backs the compare-and-set
# guard of ``create_assignment``.
Index(
    "uq_location_assignment_active_primary",
    location_assignment_table.c.ap_user_id,
    unique=True,
    sqlite_where=_active_primary,
    postgresql_where=_active_primary,
)

provider_record_table = Table(
    "provider_record",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("ap_user_id", UUIDColumnType, ForeignKey("ap_user.id"), nullable=False, unique=True),
    Column("status", Enum(ProviderStatus, native_enum=False), nullable=False),
    Column("primary_location_id", UUIDColumnType, nullable=False),
    Column("auto_synced", Boolean, nullable=False, default=False),
    Column("created_at", UTCDateTime(), nullable=True, server_default=func.now()),
)

team_table = Table(
    "team",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("location_id", UUIDColumnType, nullable=True),
    Column("provider_id", UUIDColumnType, nullable=True),
    Column("status", Enum(RecordStatus, native_enum=False), nullable=False),
    Column("self_managed", Boolean, nullable=False, default=False),
    Index("ix_team_location", "location_id"),
)

team_membership_table = Table(
    "team_membership",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("team_id", UUIDColumnType, ForeignKey("team.id"), nullable=False),
    Column("member_name", String, nullable=True),
    Column("status", Enum(RecordStatus, native_enum=False), nullable=False),
    Index("ix_team_membership_team", "team_id"),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the store metadata."""

    log.info("Creating all tables")
    metadata.create_all(engine)
