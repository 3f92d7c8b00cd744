"""``EntityStore`` backed by SQLAlchemy Core tables.

Every operation runs in its own transaction. Compare-and-set writes check the
guarded state inside the transaction and rely on the unique constraints for
races between concurrent writers.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import exists, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from provisync.domain.model import (
    APUser,
    AssignmentRole,
    Location,
    LocationAssignment,
    ProviderRecord,
    ProviderStatus,
    RecordStatus,
    Team,
)
from provisync.domain.reconciliation.errors import (
    OrphanReferenceError,
    StoreError,
    WriteConflictError,
)

from .mappings import (
    ap_user_table,
    location_assignment_table,
    location_table,
    provider_record_table,
    team_membership_table,
    team_table,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import Row, Select
    from sqlalchemy.orm import Session, sessionmaker

log = getLogger(__name__)

_assignments = location_assignment_table.c
_providers = provider_record_table.c
_teams = team_table.c

_member_count = (
    select(func.count())
    .select_from(team_membership_table)
    .where(team_membership_table.c.team_id == _teams.id)
    .where(team_membership_table.c.status == RecordStatus.ACTIVE)
    .correlate(team_table)
    .scalar_subquery()
    .label("member_count")
)


class SqlAlchemyEntityStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    # Reads ---------------------------------------------------------------------

    def list_ap_users(self) -> Sequence[APUser]:
        stmt = select(ap_user_table).order_by(ap_user_table.c.display_name, ap_user_table.c.id)
        with self._transaction() as session:
            return [_ap_user(row) for row in session.execute(stmt)]

    def get_ap_user(self, ap_user_id: uuid.UUID) -> APUser | None:
        stmt = select(ap_user_table).where(ap_user_table.c.id == ap_user_id)
        with self._transaction() as session:
            row = session.execute(stmt).one_or_none()
        return _ap_user(row) if row is not None else None

    def get_assignments(self, ap_user_id: uuid.UUID) -> Sequence[LocationAssignment]:
        stmt = _assignment_query().where(_assignments.ap_user_id == ap_user_id)
        with self._transaction() as session:
            return [_assignment(row) for row in session.execute(stmt)]

    def get_provider_record(self, ap_user_id: uuid.UUID) -> ProviderRecord | None:
        return self._one_provider(_provider_query().where(_providers.ap_user_id == ap_user_id))

    def get_provider_record_by_id(self, provider_id: uuid.UUID) -> ProviderRecord | None:
        return self._one_provider(_provider_query().where(_providers.id == provider_id))

    def list_provider_records(self, primary_location_id: uuid.UUID) -> Sequence[ProviderRecord]:
        stmt = (
            _provider_query()
            .where(_providers.primary_location_id == primary_location_id)
            .order_by(_providers.id)
        )
        with self._transaction() as session:
            return [_provider(row) for row in session.execute(stmt)]

    def list_locations(self) -> Sequence[Location]:
        stmt = select(location_table).order_by(location_table.c.name, location_table.c.id)
        with self._transaction() as session:
            return [Location(id=row.id, name=row.name) for row in session.execute(stmt)]

    def list_available_locations(self) -> Sequence[Location]:
        occupied = (
            exists()
            .where(_assignments.location_id == location_table.c.id)
            .where(_assignments.is_primary.is_(True))
            .where(_assignments.status == RecordStatus.ACTIVE)
        )
        stmt = (
            select(location_table)
            .where(~occupied)
            .order_by(location_table.c.name, location_table.c.id)
        )
        with self._transaction() as session:
            return [Location(id=row.id, name=row.name) for row in session.execute(stmt)]

    def list_teams(self, location_id: uuid.UUID | None = None) -> Sequence[Team]:
        stmt = select(team_table, _member_count).order_by(_teams.name, _teams.id)
        if location_id is not None:
            stmt = stmt.where(_teams.location_id == location_id)
        with self._transaction() as session:
            return [_team(row) for row in session.execute(stmt)]

    # Compare-and-set writes ----------------------------------------------------

    def create_assignment(
        self,
        ap_user_id: uuid.UUID,
        location_id: uuid.UUID,
        *,
        is_primary: bool,
        role: AssignmentRole,
    ) -> LocationAssignment:
        assignment_id = uuid.uuid4()
        with self._transaction() as session:
            self._require_ap_user(session, ap_user_id)
            if is_primary:
                current = session.execute(
                    select(_assignments.id)
                    .where(_assignments.ap_user_id == ap_user_id)
                    .where(_assignments.is_primary.is_(True))
                    .where(_assignments.status == RecordStatus.ACTIVE)
                ).first()
                if current is not None:
                    raise WriteConflictError(
                        f"AP user {ap_user_id} already has an active primary assignment"
                    )
            session.execute(
                insert(location_assignment_table).values(
                    id=assignment_id,
                    ap_user_id=ap_user_id,
                    location_id=location_id,
                    is_primary=is_primary,
                    role=role,
                    status=RecordStatus.ACTIVE,
                )
            )
            row = session.execute(
                _assignment_query().where(_assignments.id == assignment_id)
            ).one()
        log.debug("Created assignment %s for AP user %s", assignment_id, ap_user_id)
        return _assignment(row)

    def create_provider_record(
        self, ap_user_id: uuid.UUID, primary_location_id: uuid.UUID
    ) -> ProviderRecord:
        provider_id = uuid.uuid4()
        with self._transaction() as session:
            self._require_ap_user(session, ap_user_id)
            current = session.execute(
                select(_providers.id).where(_providers.ap_user_id == ap_user_id)
            ).first()
            if current is not None:
                raise WriteConflictError(f"AP user {ap_user_id} already has a provider record")
            session.execute(
                insert(provider_record_table).values(
                    id=provider_id,
                    ap_user_id=ap_user_id,
                    status=ProviderStatus.APPROVED,
                    primary_location_id=primary_location_id,
                    auto_synced=True,
                )
            )
            row = session.execute(_provider_query().where(_providers.id == provider_id)).one()
        log.debug("Created provider record %s for AP user %s", provider_id, ap_user_id)
        return _provider(row)

    def set_team_provider(self, team_id: uuid.UUID, provider_id: uuid.UUID) -> Team:
        with self._transaction() as session:
            provider = session.execute(
                select(_providers.id).where(_providers.id == provider_id)
            ).first()
            if provider is None:
                raise OrphanReferenceError(
                    f"Provider record {provider_id} does not exist", reference_id=provider_id
                )
            result = session.execute(
                update(team_table)
                .where(_teams.id == team_id)
                .where(_teams.provider_id.is_(None))
                .values(provider_id=provider_id)
            )
            if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
                team = session.execute(select(_teams.id).where(_teams.id == team_id)).first()
                if team is None:
                    raise OrphanReferenceError(
                        f"Team {team_id} does not exist", reference_id=team_id
                    )
                raise WriteConflictError(f"Team {team_id} already has a provider")
            row = session.execute(
                select(team_table, _member_count).where(_teams.id == team_id)
            ).one()
        return _team(row)

    def create_team(
        self, name: str, location_id: uuid.UUID, *, self_managed: bool = False
    ) -> Team:
        team_id = uuid.uuid4()
        with self._transaction() as session:
            location = session.execute(
                select(location_table.c.id).where(location_table.c.id == location_id)
            ).first()
            if location is None:
                raise OrphanReferenceError(
                    f"Location {location_id} does not exist", reference_id=location_id
                )
            session.execute(
                insert(team_table).values(
                    id=team_id,
                    name=name,
                    location_id=location_id,
                    provider_id=None,
                    status=RecordStatus.ACTIVE,
                    self_managed=self_managed,
                )
            )
            row = session.execute(
                select(team_table, _member_count).where(_teams.id == team_id)
            ).one()
        log.debug("Created team %s at location %s", team_id, location_id)
        return _team(row)

    # Helpers -------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self.session_factory.begin() as session:
                yield session
        except IntegrityError as exc:
            raise WriteConflictError(f"Write rejected by a uniqueness guard: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    def _one_provider(self, stmt: Select[tuple[object, ...]]) -> ProviderRecord | None:
        with self._transaction() as session:
            row = session.execute(stmt).one_or_none()
        return _provider(row) if row is not None else None

    @staticmethod
    def _require_ap_user(session: Session, ap_user_id: uuid.UUID) -> None:
        found = session.execute(
            select(ap_user_table.c.id).where(ap_user_table.c.id == ap_user_id)
        ).first()
        if found is None:
            raise OrphanReferenceError(
                f"AP user {ap_user_id} does not exist", reference_id=ap_user_id
            )


def _assignment_query() -> Select[tuple[object, ...]]:
    return (
        select(location_assignment_table, location_table.c.name.label("location_name"))
        .outerjoin(location_table, location_table.c.id == _assignments.location_id)
        .order_by(_assignments.assigned_at, _assignments.id)
    )


def _provider_query() -> Select[tuple[object, ...]]:
    return select(
        provider_record_table, location_table.c.name.label("primary_location_name")
    ).outerjoin(location_table, location_table.c.id == _providers.primary_location_id)


def _ap_user(row: Row[tuple[object, ...]]) -> APUser:
    data = row._mapping  # noqa: SLF001
    return APUser(id=data["id"], display_name=data["display_name"], email=data["email"])


def _assignment(row: Row[tuple[object, ...]]) -> LocationAssignment:
    data = row._mapping  # noqa: SLF001
    return LocationAssignment(
        id=data["id"],
        ap_user_id=data["ap_user_id"],
        location_id=data["location_id"],
        location_name=data["location_name"],
        is_primary=bool(data["is_primary"]),
        role=data["role"],
        status=data["status"],
        assigned_at=data["assigned_at"],
    )


def _provider(row: Row[tuple[object, ...]]) -> ProviderRecord:
    data = row._mapping  # noqa: SLF001
    return ProviderRecord(
        id=data["id"],
        ap_user_id=data["ap_user_id"],
        status=data["status"],
        primary_location_id=data["primary_location_id"],
        primary_location_name=data["primary_location_name"],
        auto_synced=bool(data["auto_synced"]),
    )


def _team(row: Row[tuple[object, ...]]) -> Team:
    data = row._mapping  # noqa: SLF001
    return Team(
        id=data["id"],
        name=data["name"],
        location_id=data["location_id"],
        provider_id=data["provider_id"],
        member_count=int(data["member_count"] or 0),
        status=data["status"],
        self_managed=bool(data["self_managed"]),
    )
