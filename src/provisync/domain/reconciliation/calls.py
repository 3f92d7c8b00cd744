"""Async facade over a synchronous ``EntityStore``.

Every call runs in a worker thread and is bounded by a timeout, so a hung
store operation costs one entity its result rather than blocking the batch.
Anything a store raises outside the reconciliation error taxonomy is re-raised
as ``StoreError``, so callers isolate per-entity failures on that one type.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from .errors import ReconciliationError, StoreError, StoreTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from provisync.domain.model import (
        APUser,
        AssignmentRole,
        Location,
        LocationAssignment,
        ProviderRecord,
        Team,
    )
    from provisync.domain.ports.store import EntityStore

log = getLogger(__name__)

DEFAULT_STORE_TIMEOUT_SECONDS = 10.0


class TimedStore:
    def __init__(
        self,
        store: EntityStore,
        *,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.store = store
        self.timeout_seconds = timeout_seconds

    async def call[**P, T](
        self,
        operation: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        name = getattr(operation, "__name__", repr(operation))
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(operation, *args, **kwargs),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            log.warning("Store call %s timed out after %ss", name, self.timeout_seconds)
            raise StoreTimeoutError(
                f"Store call {name} timed out after {self.timeout_seconds}s"
            ) from exc
        except StoreError:
            log.warning("Store call %s failed", name, exc_info=True)
            raise
        except ReconciliationError:
            raise
        except Exception as exc:
            log.warning("Store call %s raised %s", name, type(exc).__name__, exc_info=True)
            raise StoreError(f"Store call {name} failed: {exc}") from exc

    async def list_ap_users(self) -> Sequence[APUser]:
        return await self.call(self.store.list_ap_users)

    async def get_ap_user(self, ap_user_id: UUID) -> APUser | None:
        return await self.call(self.store.get_ap_user, ap_user_id)

    async def get_assignments(self, ap_user_id: UUID) -> Sequence[LocationAssignment]:
        return await self.call(self.store.get_assignments, ap_user_id)

    async def get_provider_record(self, ap_user_id: UUID) -> ProviderRecord | None:
        return await self.call(self.store.get_provider_record, ap_user_id)

    async def get_provider_record_by_id(self, provider_id: UUID) -> ProviderRecord | None:
        return await self.call(self.store.get_provider_record_by_id, provider_id)

    async def list_provider_records(self, primary_location_id: UUID) -> Sequence[ProviderRecord]:
        return await self.call(self.store.list_provider_records, primary_location_id)

    async def list_locations(self) -> Sequence[Location]:
        return await self.call(self.store.list_locations)

    async def list_available_locations(self) -> Sequence[Location]:
        return await self.call(self.store.list_available_locations)

    async def create_assignment(
        self,
        ap_user_id: UUID,
        location_id: UUID,
        *,
        is_primary: bool,
        role: AssignmentRole,
    ) -> LocationAssignment:
        return await self.call(
            self.store.create_assignment,
            ap_user_id,
            location_id,
            is_primary=is_primary,
            role=role,
        )

    async def create_provider_record(
        self, ap_user_id: UUID, primary_location_id: UUID
    ) -> ProviderRecord:
        return await self.call(self.store.create_provider_record, ap_user_id, primary_location_id)

    async def list_teams(self, location_id: UUID | None = None) -> Sequence[Team]:
        return await self.call(self.store.list_teams, location_id)

    async def create_team(
        self, name: str, location_id: UUID, *, self_managed: bool = False
    ) -> Team:
        return await self.call(
            self.store.create_team, name, location_id, self_managed=self_managed
        )

    async def set_team_provider(self, team_id: UUID, provider_id: UUID) -> Team:
        return await self.call(self.store.set_team_provider, team_id, provider_id)
