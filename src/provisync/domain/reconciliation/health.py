"""System-wide health report built from per-entity classifications.

Pure aggregation: the generator never reads the store. Severity and
auto-fixability of every issue come from ``ISSUE_RULES``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from provisync.domain.model import EntityType

from .contracts import (
    ISSUE_RULES,
    AssignmentStatus,
    Issue,
    IssueKind,
    Severity,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from .contracts import TeamAudit, UnifiedAssignmentStatus


@dataclass(frozen=True, slots=True, kw_only=True)
class SystemIssue:
    """An issue attributed to the entity it was found on."""

    kind: IssueKind
    entity_type: EntityType
    severity: Severity
    description: str
    affected_id: UUID | None
    affected_name: str
    auto_fixable: bool

    @classmethod
    def from_issue(
        cls, issue: Issue, *, affected_id: UUID | None, affected_name: str
    ) -> SystemIssue:
        rule = ISSUE_RULES[issue.kind]
        return cls(
            kind=issue.kind,
            entity_type=rule.entity_type,
            severity=rule.severity,
            description=issue.message,
            affected_id=affected_id,
            affected_name=affected_name,
            auto_fixable=rule.auto_fixable,
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class UnreadableEntity:
    """An AP user or team whose slice of the store could not be read."""

    entity_type: EntityType
    entity_id: UUID
    entity_name: str
    message: str


@dataclass(frozen=True, slots=True, kw_only=True)
class HealthSummary:
    total_ap_users: int = 0
    properly_assigned: int = 0
    partially_assigned: int = 0
    unassigned: int = 0
    conflicts: int = 0
    unreadable_ap_users: int = 0
    total_teams: int = 0
    teams_with_providers: int = 0
    orphaned_teams: int = 0
    unreadable_teams: int = 0

    @property
    def total_entities(self) -> int:
        return self.total_ap_users + self.total_teams

    @property
    def healthy_entities(self) -> int:
        return self.properly_assigned + self.teams_with_providers


@dataclass(frozen=True, slots=True, kw_only=True)
class SystemHealthReport:
    overall_score: int
    summary: HealthSummary
    ap_user_statuses: tuple[UnifiedAssignmentStatus, ...] = ()
    team_audits: tuple[TeamAudit, ...] = ()
    system_issues: tuple[SystemIssue, ...] = ()
    recommendations: tuple[str, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def critical_issues(self) -> tuple[SystemIssue, ...]:
        return tuple(issue for issue in self.system_issues if issue.severity is Severity.CRITICAL)


def compute_overall_score(summary: HealthSummary) -> int:
    """Percentage of healthy entities, rounded half-up and clamped to [0, 100]."""

    total = summary.total_entities
    if total == 0:
        return 100
    score = math.floor(100 * summary.healthy_entities / total + 0.5)
    return max(0, min(100, score))


def generate_health_report(
    ap_user_statuses: Sequence[UnifiedAssignmentStatus],
    team_audits: Sequence[TeamAudit],
    *,
    unreadable: Sequence[UnreadableEntity] = (),
    now: datetime | None = None,
) -> SystemHealthReport:
    """Aggregate per-entity results into a ``SystemHealthReport``."""

    unreadable_users = sum(1 for entity in unreadable if entity.entity_type is EntityType.AP_USER)
    unreadable_teams = sum(1 for entity in unreadable if entity.entity_type is EntityType.TEAM)

    counts = dict.fromkeys(AssignmentStatus, 0)
    for status in ap_user_statuses:
        counts[status.status] += 1

    summary = HealthSummary(
        total_ap_users=len(ap_user_statuses) + unreadable_users,
        properly_assigned=counts[AssignmentStatus.COMPLETE],
        partially_assigned=counts[AssignmentStatus.PARTIAL],
        unassigned=counts[AssignmentStatus.MISSING],
        conflicts=counts[AssignmentStatus.CONFLICT],
        unreadable_ap_users=unreadable_users,
        total_teams=len(team_audits) + unreadable_teams,
        teams_with_providers=sum(1 for audit in team_audits if audit.provider_satisfied),
        orphaned_teams=sum(1 for audit in team_audits if audit.is_orphaned),
        unreadable_teams=unreadable_teams,
    )

    issues = collect_system_issues(ap_user_statuses, team_audits, unreadable=unreadable)
    return SystemHealthReport(
        overall_score=compute_overall_score(summary),
        summary=summary,
        ap_user_statuses=tuple(ap_user_statuses),
        team_audits=tuple(team_audits),
        system_issues=issues,
        recommendations=system_recommendations(summary, issues),
        generated_at=now or datetime.now(UTC),
    )


def collect_system_issues(
    ap_user_statuses: Sequence[UnifiedAssignmentStatus],
    team_audits: Sequence[TeamAudit],
    *,
    unreadable: Sequence[UnreadableEntity] = (),
) -> tuple[SystemIssue, ...]:
    issues: list[SystemIssue] = []
    for status in ap_user_statuses:
        user = status.ap_user
        issues.extend(
            SystemIssue.from_issue(issue, affected_id=user.id, affected_name=user.display_name)
            for issue in status.issues
        )
    for audit in team_audits:
        team = audit.team
        issues.extend(
            SystemIssue.from_issue(issue, affected_id=team.id, affected_name=team.name)
            for issue in audit.issues
        )
    for entity in unreadable:
        issue = Issue(
            IssueKind.ENTITY_READ_FAILED,
            f"Could not read {entity.entity_type}: {entity.message}",
        )
        issues.append(
            SystemIssue.from_issue(
                issue, affected_id=entity.entity_id, affected_name=entity.entity_name
            )
        )
    return tuple(issues)


def system_recommendations(
    summary: HealthSummary, issues: Sequence[SystemIssue]
) -> tuple[str, ...]:
    """Recommendations derived from summary counts, never from issue text."""

    recommendations: list[str] = []
    if summary.unassigned > 0:
        recommendations.append(f"Assign {summary.unassigned} unassigned AP users to locations")
    if summary.partially_assigned > 0:
        recommendations.append(f"Complete {summary.partially_assigned} partial assignments")
    if summary.conflicts > 0:
        recommendations.append(f"Resolve {summary.conflicts} assignment conflicts")
    if summary.orphaned_teams > 0:
        recommendations.append(f"Assign providers to {summary.orphaned_teams} orphaned teams")
    unreadable = summary.unreadable_ap_users + summary.unreadable_teams
    if unreadable > 0:
        recommendations.append(f"Re-check {unreadable} entities that could not be read")

    critical = sum(1 for issue in issues if issue.severity is Severity.CRITICAL)
    if critical > 0:
        recommendations.append(f"Address {critical} critical system issues immediately")
    return tuple(recommendations)


def unavailable_report(reason: str, *, now: datetime | None = None) -> SystemHealthReport:
    """Minimal report returned when the store cannot even enumerate entities."""

    issue = Issue(
        IssueKind.STORE_UNAVAILABLE, f"Unable to generate system health report: {reason}"
    )
    return SystemHealthReport(
        overall_score=0,
        summary=HealthSummary(),
        system_issues=(SystemIssue.from_issue(issue, affected_id=None, affected_name="System"),),
        recommendations=(
            "Check entity store connectivity",
            "Verify the store endpoint and credentials configuration",
        ),
        generated_at=now or datetime.now(UTC),
    )
