"""SQLAlchemy adapter package for provisync."""

from __future__ import annotations

from .mappings import (
    ap_user_table,
    create_all_tables,
    location_assignment_table,
    location_table,
    metadata,
    provider_record_table,
    team_membership_table,
    team_table,
)
from .session import StartupError, configured_engine, session_factory, shutdown, startup
from .store import SqlAlchemyEntityStore

__all__ = [
    "SqlAlchemyEntityStore",
    "StartupError",
    "ap_user_table",
    "configured_engine",
    "create_all_tables",
    "location_assignment_table",
    "location_table",
    "metadata",
    "provider_record_table",
    "session_factory",
    "shutdown",
    "startup",
    "team_membership_table",
    "team_table",
]
