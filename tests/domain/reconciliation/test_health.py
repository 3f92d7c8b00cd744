from __future__ import annotations

import uuid
from datetime import UTC, datetime

from provisync.domain.model import EntityType, Location
from provisync.domain.reconciliation import (
    HealthSummary,
    IssueKind,
    Severity,
    TeamSnapshot,
    UnreadableEntity,
    UserSnapshot,
    analyze_assignment_status,
    audit_team,
    compute_overall_score,
    generate_health_report,
)
from provisync.domain.reconciliation.health import unavailable_report
from tests.helpers.factories import make_assignment, make_provider, make_team, make_user

NOW = datetime(2025, 3, 1, 12, tzinfo=UTC)


def test_empty_system_scores_full_marks() -> None:
    report = generate_health_report([], [], now=NOW)

    assert report.overall_score == 100
    assert report.summary == HealthSummary()
    assert report.system_issues == ()
    assert report.generated_at == NOW


def test_score_rounds_half_up_and_clamps() -> None:
    assert compute_overall_score(HealthSummary(total_ap_users=8, properly_assigned=1)) == 13
    assert compute_overall_score(HealthSummary(total_ap_users=3, properly_assigned=2)) == 67
    assert compute_overall_score(HealthSummary(total_ap_users=1, properly_assigned=1)) == 100


def test_report_counts_statuses_and_teams() -> None:
    location = Location(id=uuid.uuid4(), name="Downtown")
    complete_user = make_user("Complete")
    provider = make_provider(complete_user, location.id)
    complete = analyze_assignment_status(
        UserSnapshot(
            ap_user=complete_user,
            assignments=(make_assignment(complete_user, location.id),),
            provider=provider,
        )
    )
    missing = analyze_assignment_status(UserSnapshot(ap_user=make_user("Missing")))
    linked = audit_team(
        TeamSnapshot(
            team=make_team("Linked", location_id=location.id, provider_id=provider.id),
            location=location,
            provider=provider,
        )
    )
    orphaned = audit_team(
        TeamSnapshot(team=make_team("Orphaned", location_id=location.id), location=location)
    )

    report = generate_health_report([complete, missing], [linked, orphaned], now=NOW)

    summary = report.summary
    assert summary.total_ap_users == 2
    assert summary.properly_assigned == 1
    assert summary.unassigned == 1
    assert summary.total_teams == 2
    assert summary.teams_with_providers == 1
    assert summary.orphaned_teams == 1
    assert report.overall_score == 50
    assert {issue.kind for issue in report.system_issues} == {
        IssueKind.NOT_ASSIGNED,
        IssueKind.TEAM_PROVIDER_MISSING,
    }
    assert "Assign 1 unassigned AP users to locations" in report.recommendations
    assert "Assign providers to 1 orphaned teams" in report.recommendations


def test_conflicts_surface_as_critical_issues() -> None:
    user = make_user("Conflicted")
    status = analyze_assignment_status(
        UserSnapshot(
            ap_user=user,
            assignments=(make_assignment(user, uuid.uuid4()),),
            provider=make_provider(user, uuid.uuid4()),
        )
    )

    report = generate_health_report([status], [], now=NOW)

    (critical,) = report.critical_issues
    assert critical.kind is IssueKind.LOCATION_MISMATCH
    assert critical.entity_type is EntityType.ASSIGNMENT
    assert critical.affected_id == user.id
    assert critical.affected_name == "Conflicted"
    assert not critical.auto_fixable
    assert "Address 1 critical system issues immediately" in report.recommendations


def test_unreadable_entities_count_against_the_score() -> None:
    user = make_user("Readable")
    location_id = uuid.uuid4()
    status = analyze_assignment_status(
        UserSnapshot(
            ap_user=user,
            assignments=(make_assignment(user, location_id),),
            provider=make_provider(user, location_id),
        )
    )
    unreadable = UnreadableEntity(
        entity_type=EntityType.AP_USER,
        entity_id=uuid.uuid4(),
        entity_name="Broken",
        message="timed out",
    )

    report = generate_health_report([status], [], unreadable=[unreadable], now=NOW)

    assert report.summary.total_ap_users == 2
    assert report.summary.unreadable_ap_users == 1
    assert report.overall_score == 50
    (issue,) = report.system_issues
    assert issue.kind is IssueKind.ENTITY_READ_FAILED
    assert issue.affected_name == "Broken"
    assert "Re-check 1 entities that could not be read" in report.recommendations


def test_unavailable_report_is_minimal() -> None:
    report = unavailable_report("connection refused", now=NOW)

    assert report.overall_score == 0
    assert report.summary.total_entities == 0
    (issue,) = report.system_issues
    assert issue.severity is Severity.CRITICAL
    assert issue.entity_type is EntityType.SYSTEM
    assert "connection refused" in issue.description
    assert report.recommendations[0] == "Check entity store connectivity"
