from __future__ import annotations

import uuid
from dataclasses import replace

import pytest

from provisync.domain.model import AssignmentRole
from provisync.domain.reconciliation import (
    AssignmentConsistencyService,
    AssignmentStatus,
    IssueKind,
    OrphanReferenceError,
    StoreError,
    UnknownAPUserError,
    WriteConflictError,
)
from tests.helpers.store import InMemoryEntityStore


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def service(store: InMemoryEntityStore) -> AssignmentConsistencyService:
    return AssignmentConsistencyService(store)


def test_primary_assignment_provisions_provider_and_links_teams(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user("Alice")
    location = store.add_location("Downtown")
    team = store.add_team("Team A", location_id=location.id, member_count=3)
    own_team = store.add_team("Own", location_id=location.id, self_managed=True)

    outcome = service.assign_ap_user(user.id, location.id, is_primary=True)

    provider = store.provider_of(user)
    assert provider is not None
    assert provider.primary_location_id == location.id
    assert outcome.assignment.is_primary
    assert outcome.created_provider
    assert outcome.status.status is AssignmentStatus.COMPLETE
    assert [linked.id for linked in outcome.linked_teams] == [team.id]
    assert store.teams[team.id].provider_id == provider.id
    assert store.teams[own_team.id].provider_id is None
    assert outcome.follow_up_errors == ()


def test_secondary_assignment_creates_no_provider(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user("Alice")
    location = store.add_location("Downtown")

    outcome = service.assign_ap_user(
        user.id, location.id, is_primary=False, role=AssignmentRole.SUPERVISOR
    )

    assert not outcome.assignment.is_primary
    assert outcome.assignment.role is AssignmentRole.SUPERVISOR
    assert not outcome.created_provider
    assert store.provider_of(user) is None
    assert [name for name, _ in store.writes()] == ["create_assignment"]


def test_assigning_an_unknown_user_raises(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    location = store.add_location()

    with pytest.raises(UnknownAPUserError):
        service.assign_ap_user(uuid.uuid4(), location.id, is_primary=True)

    assert store.writes() == []


def test_assigning_to_a_missing_location_raises(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user()
    missing = uuid.uuid4()

    with pytest.raises(OrphanReferenceError) as excinfo:
        service.assign_ap_user(user.id, missing, is_primary=True)

    assert excinfo.value.reference_id == missing
    assert store.writes() == []


def test_assigning_without_a_location_directory_raises(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user()
    location = store.add_location()

    def fail(*_: object) -> None:
        raise StoreError("connection refused")

    store.hooks["list_locations"] = fail

    with pytest.raises(StoreError):
        service.assign_ap_user(user.id, location.id, is_primary=True)

    assert store.writes() == []


def test_second_primary_assignment_is_rejected(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user()
    current, other = store.add_location("Current"), store.add_location("Other")
    store.assign(user, current.id)

    with pytest.raises(WriteConflictError):
        service.assign_ap_user(user.id, other.id, is_primary=True)

    assert len(store.assignments_of(user)) == 1


def test_ambiguous_team_is_reported_after_the_assignment_commits(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    location = store.add_location("Shared")
    existing = store.add_user("Existing")
    store.assign(existing, location.id, is_primary=True)
    store.add_provider(existing, location.id)
    team = store.add_team("Team A", location_id=location.id)
    newcomer = store.add_user("Newcomer")

    outcome = service.assign_ap_user(newcomer.id, location.id, is_primary=True)

    assert outcome.status.status is AssignmentStatus.COMPLETE
    assert store.teams[team.id].provider_id is None
    (message,) = outcome.follow_up_errors
    assert "Team A" in message
    assert "choose its provider manually" in message


def test_new_team_is_linked_to_the_location_provider(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user()
    location = store.add_location("Downtown")
    store.assign(user, location.id)
    provider = store.add_provider(user, location.id)

    outcome = service.create_team("Team A", location.id)

    assert outcome.provider_id == provider.id
    assert store.teams[outcome.team.id].provider_id == provider.id
    assert outcome.audit.issues == ()
    assert outcome.follow_up_errors == ()


def test_self_managed_team_is_never_linked(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    user = store.add_user()
    location = store.add_location("Downtown")
    store.assign(user, location.id)
    store.add_provider(user, location.id)

    outcome = service.create_team("Own", location.id, self_managed=True)

    assert outcome.provider_id is None
    assert outcome.team.self_managed
    assert [name for name, _ in store.writes()] == ["create_team"]


def test_new_team_without_a_unique_provider_stays_unlinked(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    location = store.add_location("Shared")
    for name in ("First", "Second"):
        user = store.add_user(name)
        store.assign(user, location.id)
        store.add_provider(user, location.id)

    outcome = service.create_team("Team A", location.id)

    assert outcome.provider_id is None
    assert store.teams[outcome.team.id].provider_id is None
    (message,) = outcome.follow_up_errors
    assert "2 complete AP users" in message


def test_incomplete_provider_is_not_a_link_candidate(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    location, elsewhere = store.add_location("Downtown"), store.add_location("Uptown")
    user = store.add_user()
    store.assign(user, elsewhere.id)
    store.add_provider(user, location.id)

    outcome = service.create_team("Team A", location.id)

    assert outcome.provider_id is None
    (message,) = outcome.follow_up_errors
    assert "No complete AP user" in message


def test_team_at_a_missing_location_is_rejected(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    with pytest.raises(OrphanReferenceError):
        service.create_team("Team A", uuid.uuid4())

    assert store.teams == {}


def test_team_linked_concurrently_keeps_the_other_link(
    store: InMemoryEntityStore, service: AssignmentConsistencyService
) -> None:
    location, elsewhere = store.add_location("Downtown"), store.add_location("Uptown")
    local = store.add_user("Local")
    store.assign(local, location.id)
    store.add_provider(local, location.id)
    remote = store.add_user("Remote")
    store.assign(remote, elsewhere.id)
    remote_provider = store.add_provider(remote, elsewhere.id)

    def link_elsewhere_first(team_id: uuid.UUID, _provider_id: uuid.UUID) -> None:
        store.teams[team_id] = replace(
            store.teams[team_id], provider_id=remote_provider.id, member_count=2
        )

    store.hooks["set_team_provider"] = link_elsewhere_first

    outcome = service.create_team("Team A", location.id)

    assert outcome.provider_id == remote_provider.id
    assert outcome.follow_up_errors == ()
    assert IssueKind.TEAM_PROVIDER_LOCATION_MISMATCH in {
        issue.kind for issue in outcome.audit.issues
    }
