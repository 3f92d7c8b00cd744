"""Public interface for the Supabase (PostgREST) entity store."""

from __future__ import annotations

from .schema import AssignmentRow, LocationRow, ProfileRow, ProviderRow, TeamRow
from .store import SupabaseEntityStore

__all__ = [
    "AssignmentRow",
    "LocationRow",
    "ProfileRow",
    "ProviderRow",
    "SupabaseEntityStore",
    "TeamRow",
]
