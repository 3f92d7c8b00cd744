from __future__ import annotations

import uuid

import pytest
from sqlalchemy import insert, text
from sqlalchemy.engine import Engine  # noqa: TC002

from provisync.adapters.sqlalchemy import (
    SqlAlchemyEntityStore,
    ap_user_table,
    location_assignment_table,
    location_table,
    provider_record_table,
    team_membership_table,
    team_table,
)
from provisync.domain.model import AssignmentRole, ProviderStatus, RecordStatus
from provisync.domain.reconciliation import (
    AssignmentConsistencyService,
    AssignmentStatus,
    FailureKind,
    OrphanReferenceError,
    ReconciliationEngine,
    WriteConflictError,
)


def _seed_user(engine: Engine, name: str = "Alice") -> uuid.UUID:
    user_id = uuid.uuid4()
    with engine.begin() as connection:
        connection.execute(
            insert(ap_user_table).values(id=user_id, display_name=name, email=None)
        )
    return user_id


def _seed_location(engine: Engine, name: str = "Downtown") -> uuid.UUID:
    location_id = uuid.uuid4()
    with engine.begin() as connection:
        connection.execute(insert(location_table).values(id=location_id, name=name))
    return location_id


def _seed_team(
    engine: Engine,
    *,
    location_id: uuid.UUID | None,
    members: int = 0,
    inactive_members: int = 0,
) -> uuid.UUID:
    team_id = uuid.uuid4()
    with engine.begin() as connection:
        connection.execute(
            insert(team_table).values(
                id=team_id,
                name="Team A",
                location_id=location_id,
                provider_id=None,
                status=RecordStatus.ACTIVE,
                self_managed=False,
            )
        )
        for index in range(members + inactive_members):
            connection.execute(
                insert(team_membership_table).values(
                    id=uuid.uuid4(),
                    team_id=team_id,
                    member_name=f"Member {index}",
                    status=RecordStatus.ACTIVE if index < members else RecordStatus.INACTIVE,
                )
            )
    return team_id


def test_reads_return_domain_entities(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine, "Bob")
    location_id = _seed_location(sqlite_engine, "Uptown")
    with sqlite_engine.begin() as connection:
        connection.execute(
            insert(location_assignment_table).values(
                id=uuid.uuid4(),
                ap_user_id=user_id,
                location_id=location_id,
                is_primary=True,
                role=AssignmentRole.SUPERVISOR,
                status=RecordStatus.ACTIVE,
            )
        )

    (user,) = sqlalchemy_store.list_ap_users()
    (assignment,) = sqlalchemy_store.get_assignments(user_id)

    assert user.display_name == "Bob"
    assert sqlalchemy_store.get_ap_user(user_id) == user
    assert sqlalchemy_store.get_ap_user(uuid.uuid4()) is None
    assert assignment.location_name == "Uptown"
    assert assignment.role is AssignmentRole.SUPERVISOR
    assert assignment.is_primary
    assert assignment.assigned_at is not None
    assert sqlalchemy_store.get_provider_record(user_id) is None


def test_available_locations_exclude_active_primaries(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine)
    taken = _seed_location(sqlite_engine, "Taken")
    free = _seed_location(sqlite_engine, "Free")

    sqlalchemy_store.create_assignment(
        user_id, taken, is_primary=True, role=AssignmentRole.PROVIDER
    )

    assert [location.id for location in sqlalchemy_store.list_available_locations()] == [free]
    assert len(sqlalchemy_store.list_locations()) == 2


def test_second_primary_assignment_is_a_write_conflict(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine)
    first = _seed_location(sqlite_engine, "First")
    second = _seed_location(sqlite_engine, "Second")
    sqlalchemy_store.create_assignment(
        user_id, first, is_primary=True, role=AssignmentRole.PROVIDER
    )

    with pytest.raises(WriteConflictError):
        sqlalchemy_store.create_assignment(
            user_id, second, is_primary=True, role=AssignmentRole.PROVIDER
        )

    secondary = sqlalchemy_store.create_assignment(
        user_id, second, is_primary=False, role=AssignmentRole.COORDINATOR
    )
    assert not secondary.is_primary


def test_assignment_for_unknown_user_is_an_orphan(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    location_id = _seed_location(sqlite_engine)

    with pytest.raises(OrphanReferenceError):
        sqlalchemy_store.create_assignment(
            uuid.uuid4(), location_id, is_primary=True, role=AssignmentRole.PROVIDER
        )


def test_provider_record_is_created_once(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine)
    location_id = _seed_location(sqlite_engine, "Downtown")

    provider = sqlalchemy_store.create_provider_record(user_id, location_id)

    assert provider.status is ProviderStatus.APPROVED
    assert provider.auto_synced
    assert provider.primary_location_name == "Downtown"
    assert sqlalchemy_store.get_provider_record_by_id(provider.id) == provider
    with pytest.raises(WriteConflictError):
        sqlalchemy_store.create_provider_record(user_id, location_id)


def test_team_member_count_only_includes_active_members(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    location_id = _seed_location(sqlite_engine)
    team_id = _seed_team(sqlite_engine, location_id=location_id, members=3, inactive_members=2)
    _seed_team(sqlite_engine, location_id=None)

    (team,) = sqlalchemy_store.list_teams(location_id)

    assert team.id == team_id
    assert team.member_count == 3
    assert len(sqlalchemy_store.list_teams()) == 2


def test_set_team_provider_is_compare_and_set(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine)
    location_id = _seed_location(sqlite_engine)
    team_id = _seed_team(sqlite_engine, location_id=location_id, members=1)
    provider = sqlalchemy_store.create_provider_record(user_id, location_id)

    linked = sqlalchemy_store.set_team_provider(team_id, provider.id)

    assert linked.provider_id == provider.id
    with pytest.raises(WriteConflictError):
        sqlalchemy_store.set_team_provider(team_id, provider.id)
    with pytest.raises(OrphanReferenceError):
        sqlalchemy_store.set_team_provider(uuid.uuid4(), provider.id)
    with pytest.raises(OrphanReferenceError):
        sqlalchemy_store.set_team_provider(team_id, uuid.uuid4())


def test_reconcile_end_to_end_against_sqlite(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    user_id = _seed_user(sqlite_engine, "Unassigned")
    location_id = _seed_location(sqlite_engine)
    team_id = _seed_team(sqlite_engine, location_id=location_id, members=5)
    elsewhere_id = _seed_user(sqlite_engine, "Elsewhere")
    with sqlite_engine.begin() as connection:
        connection.execute(
            insert(provider_record_table).values(
                id=uuid.uuid4(),
                ap_user_id=elsewhere_id,
                status=ProviderStatus.INACTIVE,
                primary_location_id=uuid.uuid4(),
                auto_synced=False,
            )
        )

    result = ReconciliationEngine(sqlalchemy_store, max_concurrency=2).reconcile()

    provider = sqlalchemy_store.get_provider_record(user_id)
    assert provider is not None
    assert provider.primary_location_id == location_id
    (team,) = [team for team in sqlalchemy_store.list_teams() if team.id == team_id]
    assert team.provider_id == provider.id
    assert result.fixed_assignments == 1
    assert result.fixed_providers == 1
    assert result.fixed_teams == 1
    assert result.errors == []
    assert {issue.affected_name for issue in result.manual_review} == {"Elsewhere"}

    again = ReconciliationEngine(sqlalchemy_store).reconcile()
    assert again.total_fixed == 0
    status = AssignmentConsistencyService(sqlalchemy_store).get_unified_status(user_id)
    assert status.status is AssignmentStatus.COMPLETE


def test_provider_records_are_listed_by_primary_location(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    downtown = _seed_location(sqlite_engine, "Downtown")
    uptown = _seed_location(sqlite_engine, "Uptown")
    first = sqlalchemy_store.create_provider_record(_seed_user(sqlite_engine, "A"), downtown)
    second = sqlalchemy_store.create_provider_record(_seed_user(sqlite_engine, "B"), downtown)
    sqlalchemy_store.create_provider_record(_seed_user(sqlite_engine, "C"), uptown)

    listed = sqlalchemy_store.list_provider_records(downtown)

    assert {provider.id for provider in listed} == {first.id, second.id}
    assert {provider.primary_location_name for provider in listed} == {"Downtown"}
    assert sqlalchemy_store.list_provider_records(uuid.uuid4()) == []


def test_create_team_requires_an_existing_location(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    location_id = _seed_location(sqlite_engine)

    team = sqlalchemy_store.create_team("Team B", location_id, self_managed=True)

    assert team.name == "Team B"
    assert team.location_id == location_id
    assert team.provider_id is None
    assert team.member_count == 0
    assert team.status is RecordStatus.ACTIVE
    assert team.self_managed
    assert sqlalchemy_store.list_teams(location_id) == [team]
    with pytest.raises(OrphanReferenceError):
        sqlalchemy_store.create_team("Team C", uuid.uuid4())


def test_undecodable_row_only_fails_its_own_user(
    sqlite_engine: Engine, sqlalchemy_store: SqlAlchemyEntityStore
) -> None:
    broken_id = _seed_user(sqlite_engine, "Broken")
    healthy_id = _seed_user(sqlite_engine, "Healthy")
    location_id = _seed_location(sqlite_engine)
    sqlalchemy_store.create_assignment(
        broken_id, location_id, is_primary=False, role=AssignmentRole.PROVIDER
    )
    with sqlite_engine.begin() as connection:
        connection.execute(text("UPDATE location_assignment SET status = 'pending'"))

    result = ReconciliationEngine(sqlalchemy_store).reconcile()

    (failure,) = result.errors
    assert failure.kind is FailureKind.STORE
    assert failure.entity_id == broken_id
    assert sqlalchemy_store.get_provider_record(healthy_id) is not None
