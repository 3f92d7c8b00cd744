from __future__ import annotations

import uuid

from provisync.domain.model import Location, RecordStatus
from provisync.domain.reconciliation import IssueKind, TeamSnapshot, audit_team
from tests.helpers.factories import make_provider, make_team, make_user


def test_team_with_members_and_no_provider_needs_a_link() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    team = make_team(location_id=location.id)

    audit = audit_team(TeamSnapshot(team=team, location=location))

    assert [issue.kind for issue in audit.issues] == [IssueKind.TEAM_PROVIDER_MISSING]
    assert audit.needs_provider_link
    assert audit.is_orphaned
    assert not audit.provider_satisfied


def test_empty_team_without_provider_is_not_flagged() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    team = make_team(location_id=location.id, member_count=0)

    audit = audit_team(TeamSnapshot(team=team, location=location))

    assert audit.issues == ()
    assert not audit.needs_provider_link


def test_self_managed_team_is_satisfied_without_provider() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    team = make_team(location_id=location.id, self_managed=True)

    audit = audit_team(TeamSnapshot(team=team, location=location))

    assert audit.issues == ()
    assert audit.provider_satisfied
    assert not audit.is_orphaned


def test_dangling_provider_reference_is_critical() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    team = make_team(location_id=location.id, provider_id=uuid.uuid4())

    audit = audit_team(TeamSnapshot(team=team, location=location, provider=None))

    assert [issue.kind for issue in audit.issues] == [IssueKind.TEAM_PROVIDER_ORPHANED]
    assert audit.has_provider
    assert not audit.provider_valid
    assert audit.is_orphaned
    assert not audit.needs_provider_link


def test_provider_at_another_location_is_a_mismatch() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    provider = make_provider(make_user(), uuid.uuid4())
    team = make_team(location_id=location.id, provider_id=provider.id)

    audit = audit_team(TeamSnapshot(team=team, location=location, provider=provider))

    assert [issue.kind for issue in audit.issues] == [IssueKind.TEAM_PROVIDER_LOCATION_MISMATCH]
    assert audit.provider_satisfied


def test_missing_and_deleted_locations() -> None:
    no_location = audit_team(TeamSnapshot(team=make_team(member_count=0)))
    deleted = audit_team(
        TeamSnapshot(team=make_team(location_id=uuid.uuid4(), member_count=0), location=None)
    )

    assert [issue.kind for issue in no_location.issues] == [IssueKind.TEAM_LOCATION_MISSING]
    assert [issue.kind for issue in deleted.issues] == [IssueKind.TEAM_LOCATION_ORPHANED]
    assert not deleted.has_location


def test_inactive_team_with_members_is_reported() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    provider = make_provider(make_user(), location.id)
    team = make_team(
        location_id=location.id, provider_id=provider.id, status=RecordStatus.INACTIVE
    )

    audit = audit_team(TeamSnapshot(team=team, location=location, provider=provider))

    assert [issue.kind for issue in audit.issues] == [IssueKind.TEAM_INACTIVE_WITH_MEMBERS]
