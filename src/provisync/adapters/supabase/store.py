"""``EntityStore`` over the PostgREST API of the hosted backend.

Each store call opens a short-lived ``ResilientClient`` and runs it to
completion with ``asyncio.run``; the reconciliation core calls the store from
worker threads, so there is never a running loop in the calling thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import BaseModel, ValidationError

from provisync.adapters.http_resilience import ResilientClient
from provisync.config import get_supabase_config
from provisync.domain.model import ProviderStatus, RecordStatus
from provisync.domain.reconciliation.errors import (
    OrphanReferenceError,
    StoreError,
    WriteConflictError,
)

from .schema import AssignmentRow, LocationRow, ProfileRow, ProviderRow, TeamRow
from .translator import (
    parse_ap_user,
    parse_assignment,
    parse_location,
    parse_provider,
    parse_team,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence
    from uuid import UUID

    from provisync.config import ResilienceConfig, SupabaseConfig
    from provisync.domain.model import (
        APUser,
        AssignmentRole,
        Location,
        LocationAssignment,
        ProviderRecord,
        Team,
    )

log = getLogger(__name__)

AP_ROLE = "AP"

PROFILES = "profiles"
LOCATIONS = "locations"
ASSIGNMENTS = "ap_user_location_assignments"
PROVIDERS = "authorized_providers"
TEAMS = "teams"

_PROFILE_COLUMNS = "id,display_name,email"
_ASSIGNMENT_COLUMNS = (
    "id,ap_user_id,location_id,is_primary,assignment_role,status,assigned_at,locations(name)"
)
_PROVIDER_COLUMNS = "id,user_id,status,primary_location_id,auto_synced,locations(name)"
_TEAM_COLUMNS = "*,team_members(count)"

_RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _eq(value: object) -> str:
    return f"eq.{value}"


@dataclass(slots=True)
class SupabaseEntityStore:
    config: SupabaseConfig = field(default_factory=get_supabase_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    # Reads ---------------------------------------------------------------------

    def list_ap_users(self) -> Sequence[APUser]:
        params = {"select": _PROFILE_COLUMNS, "role": _eq(AP_ROLE), "order": "display_name,id"}
        rows = self._run(lambda client: self._select(client, PROFILES, ProfileRow, params))
        return [parse_ap_user(row) for row in rows]

    def get_ap_user(self, ap_user_id: UUID) -> APUser | None:
        params = {"select": _PROFILE_COLUMNS, "role": _eq(AP_ROLE), "id": _eq(ap_user_id)}
        rows = self._run(lambda client: self._select(client, PROFILES, ProfileRow, params))
        return parse_ap_user(rows[0]) if rows else None

    def get_assignments(self, ap_user_id: UUID) -> Sequence[LocationAssignment]:
        params = {
            "select": _ASSIGNMENT_COLUMNS,
            "ap_user_id": _eq(ap_user_id),
            "order": "assigned_at,id",
        }
        rows = self._run(lambda client: self._select(client, ASSIGNMENTS, AssignmentRow, params))
        return [parse_assignment(row) for row in rows]

    def get_provider_record(self, ap_user_id: UUID) -> ProviderRecord | None:
        return self._run(lambda client: self._provider_where(client, user_id=_eq(ap_user_id)))

    def get_provider_record_by_id(self, provider_id: UUID) -> ProviderRecord | None:
        return self._run(lambda client: self._provider_where(client, id=_eq(provider_id)))

    def list_provider_records(self, primary_location_id: UUID) -> Sequence[ProviderRecord]:
        params = {
            "select": _PROVIDER_COLUMNS,
            "primary_location_id": _eq(primary_location_id),
            "order": "id",
        }
        rows = self._run(lambda client: self._select(client, PROVIDERS, ProviderRow, params))
        return [parse_provider(row) for row in rows]

    def list_locations(self) -> Sequence[Location]:
        params = {"select": "id,name", "order": "name,id"}
        rows = self._run(lambda client: self._select(client, LOCATIONS, LocationRow, params))
        return [parse_location(row) for row in rows]

    def list_available_locations(self) -> Sequence[Location]:
        return self._run(self._available_locations)

    def list_teams(self, location_id: UUID | None = None) -> Sequence[Team]:
        params = {
            "select": _TEAM_COLUMNS,
            "team_members.status": _eq(RecordStatus.ACTIVE),
            "order": "name,id",
        }
        if location_id is not None:
            params["location_id"] = _eq(location_id)
        rows = self._run(lambda client: self._select(client, TEAMS, TeamRow, params))
        return [parse_team(row) for row in rows]

    # Compare-and-set writes ----------------------------------------------------

    def create_assignment(
        self,
        ap_user_id: UUID,
        location_id: UUID,
        *,
        is_primary: bool,
        role: AssignmentRole,
    ) -> LocationAssignment:
        async def operation(client: ResilientClient) -> LocationAssignment:
            if is_primary:
                current = await self._exists(
                    client,
                    ASSIGNMENTS,
                    {
                        "select": "id",
                        "ap_user_id": _eq(ap_user_id),
                        "is_primary": "is.true",
                        "status": _eq(RecordStatus.ACTIVE),
                    },
                )
                if current:
                    raise WriteConflictError(
                        f"AP user {ap_user_id} already has an active primary assignment"
                    )
            created = await self._insert(
                client,
                ASSIGNMENTS,
                AssignmentRow,
                {
                    "ap_user_id": str(ap_user_id),
                    "location_id": str(location_id),
                    "is_primary": is_primary,
                    "assignment_role": str(role),
                    "status": str(RecordStatus.ACTIVE),
                },
                columns=_ASSIGNMENT_COLUMNS,
            )
            return parse_assignment(created)

        return self._run(operation)

    def create_provider_record(self, ap_user_id: UUID, primary_location_id: UUID) -> ProviderRecord:
        async def operation(client: ResilientClient) -> ProviderRecord:
            if await self._provider_where(client, user_id=_eq(ap_user_id)) is not None:
                raise WriteConflictError(f"AP user {ap_user_id} already has a provider record")
            created = await self._insert(
                client,
                PROVIDERS,
                ProviderRow,
                {
                    "user_id": str(ap_user_id),
                    "primary_location_id": str(primary_location_id),
                    "status": str(ProviderStatus.APPROVED),
                    "auto_synced": True,
                },
                columns=_PROVIDER_COLUMNS,
            )
            return parse_provider(created)

        return self._run(operation)

    def set_team_provider(self, team_id: UUID, provider_id: UUID) -> Team:
        async def operation(client: ResilientClient) -> Team:
            if await self._provider_where(client, id=_eq(provider_id)) is None:
                raise OrphanReferenceError(
                    f"Provider record {provider_id} does not exist", reference_id=provider_id
                )
            response = await client.patch(
                TEAMS,
                params={
                    "id": _eq(team_id),
                    "provider_id": "is.null",
                    "select": _TEAM_COLUMNS,
                },
                json={"provider_id": str(provider_id)},
                headers=_RETURN_REPRESENTATION,
            )
            updated = _parse_rows(TeamRow, _payload(response, f"PATCH {TEAMS}"))
            if updated:
                return parse_team(updated[0])

            if not await self._exists(client, TEAMS, {"select": "id", "id": _eq(team_id)}):
                raise OrphanReferenceError(f"Team {team_id} does not exist", reference_id=team_id)
            raise WriteConflictError(f"Team {team_id} already has a provider")

        return self._run(operation)

    def create_team(self, name: str, location_id: UUID, *, self_managed: bool = False) -> Team:
        async def operation(client: ResilientClient) -> Team:
            if not await self._exists(
                client, LOCATIONS, {"select": "id", "id": _eq(location_id)}
            ):
                raise OrphanReferenceError(
                    f"Location {location_id} does not exist", reference_id=location_id
                )
            created = await self._insert(
                client,
                TEAMS,
                TeamRow,
                {
                    "name": name,
                    "location_id": str(location_id),
                    "status": str(RecordStatus.ACTIVE),
                    "self_managed": self_managed,
                },
                columns=_TEAM_COLUMNS,
            )
            return parse_team(created)

        return self._run(operation)

    # Helpers -------------------------------------------------------------------

    def _run[T](self, operation: Callable[[ResilientClient], Awaitable[T]]) -> T:
        return asyncio.run(self._with_client(operation))

    async def _with_client[T](self, operation: Callable[[ResilientClient], Awaitable[T]]) -> T:
        try:
            async with self.client_factory(self.config.resilience) as client:
                return await operation(client)
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase request failed: {exc}") from exc

    async def _select[M: BaseModel](
        self,
        client: ResilientClient,
        table: str,
        model: type[M],
        params: Mapping[str, str],
    ) -> list[M]:
        response = await client.get(table, params=dict(params))
        return _parse_rows(model, _payload(response, f"GET {table}"))

    async def _exists(
        self, client: ResilientClient, table: str, params: Mapping[str, str]
    ) -> bool:
        response = await client.get(table, params={**params, "limit": "1"})
        return bool(_payload(response, f"GET {table}"))

    async def _insert[M: BaseModel](
        self,
        client: ResilientClient,
        table: str,
        model: type[M],
        values: Mapping[str, object],
        *,
        columns: str,
    ) -> M:
        response = await client.post(
            table,
            params={"select": columns},
            json=dict(values),
            headers=_RETURN_REPRESENTATION,
        )
        rows = _parse_rows(model, _payload(response, f"POST {table}"))
        if not rows:
            raise StoreError(f"POST {table} returned no row")
        log.debug("Inserted into %s", table)
        return rows[0]

    async def _provider_where(
        self, client: ResilientClient, **filters: str
    ) -> ProviderRecord | None:
        rows = await self._select(
            client, PROVIDERS, ProviderRow, {"select": _PROVIDER_COLUMNS, **filters}
        )
        return parse_provider(rows[0]) if rows else None

    async def _available_locations(self, client: ResilientClient) -> list[Location]:
        locations = await self._select(
            client, LOCATIONS, LocationRow, {"select": "id,name", "order": "name,id"}
        )
        response = await client.get(
            ASSIGNMENTS,
            params={
                "select": "location_id",
                "is_primary": "is.true",
                "status": _eq(RecordStatus.ACTIVE),
            },
        )
        occupied = {
            str(row.get("location_id"))
            for row in _payload(response, f"GET {ASSIGNMENTS}")
            if isinstance(row, dict)
        }
        return [parse_location(row) for row in locations if str(row.id) not in occupied]


def _payload(response: httpx.Response, operation: str) -> list[object]:
    if response.status_code == httpx.codes.CONFLICT:
        raise WriteConflictError(f"{operation} rejected by a uniqueness guard: {response.text}")
    if response.is_error:
        raise StoreError(f"{operation} failed with HTTP {response.status_code}: {response.text}")
    try:
        payload = response.json()
    except ValueError as exc:
        raise StoreError(f"{operation} returned invalid JSON") from exc
    if not isinstance(payload, list):
        raise StoreError(f"{operation} returned an unexpected payload")
    return cast("list[object]", payload)


def _parse_rows[M: BaseModel](model: type[M], payload: list[object]) -> list[M]:
    try:
        return [model.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise StoreError(f"Unexpected {model.__name__} payload: {exc}") from exc
