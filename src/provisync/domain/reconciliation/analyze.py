"""Classify one AP user's assignment consistency.

The analyzer is a pure function of a ``UserSnapshot``. It never talks to the
store and never mutates its input, so callers may run it concurrently over
any number of users.

Classification order:
1) more than one active primary assignment: conflict
2) a provider record that is not approved: partial, needs a human
3) primary assignment and approved provider: complete if the locations match,
   conflict otherwise
4) exactly one usable half: partial
5) nothing: missing
Orphan checks for deleted locations run afterwards and only add issues.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .contracts import (
    AssignmentGap,
    AssignmentState,
    CompleteAssignment,
    ConflictingAssignment,
    ConflictReason,
    Issue,
    IssueKind,
    MissingAssignment,
    PartialAssignment,
    UnifiedAssignmentStatus,
)

if TYPE_CHECKING:
    from collections.abc import Collection
    from uuid import UUID

    from provisync.domain.model import LocationAssignment, ProviderRecord, Team

    from .contracts import UserSnapshot


def analyze_assignment_status(
    snapshot: UserSnapshot,
    *,
    known_location_ids: Collection[UUID] | None = None,
) -> UnifiedAssignmentStatus:
    """Return the derived status of ``snapshot.ap_user``.

    ``known_location_ids`` enables the orphan checks; pass ``None`` when the
    location directory is unavailable and they are skipped.
    """

    active = tuple(assignment for assignment in snapshot.assignments if assignment.is_active)
    primaries = tuple(assignment for assignment in active if assignment.is_primary)
    provider = snapshot.provider

    state, issues = _classify(active, primaries, provider)
    if known_location_ids is not None:
        issues.extend(_orphan_issues(active, provider, known_location_ids))

    return UnifiedAssignmentStatus(
        ap_user=snapshot.ap_user,
        state=state,
        assignments=snapshot.assignments,
        provider=provider,
        managed_teams=_managed_teams(snapshot.teams, provider),
        issues=tuple(issues),
        recommendations=_recommendations(state, issues),
    )


def _classify(
    active: tuple[LocationAssignment, ...],
    primaries: tuple[LocationAssignment, ...],
    provider: ProviderRecord | None,
) -> tuple[AssignmentState, list[Issue]]:
    if len(primaries) > 1:
        labels = ", ".join(primary.location_label for primary in primaries)
        issue = Issue(
            IssueKind.MULTIPLE_PRIMARY_ASSIGNMENTS,
            f"Multiple primary location assignments: {labels}",
        )
        state = ConflictingAssignment(
            reason=ConflictReason.MULTIPLE_PRIMARY_ASSIGNMENTS,
            primaries=primaries,
            provider=provider,
        )
        return state, [issue]

    primary = primaries[0] if primaries else None

    if provider is not None and not provider.is_approved:
        issue = Issue(
            IssueKind.PROVIDER_INACTIVE,
            f"Provider record is {provider.status.value}",
        )
        return PartialAssignment(
            gap=AssignmentGap.PROVIDER_INACTIVE, primary=primary, provider=provider
        ), [issue]

    if primary is not None and provider is not None:
        if primary.location_id == provider.primary_location_id:
            return CompleteAssignment(primary=primary, provider=provider), []
        issue = Issue(
            IssueKind.LOCATION_MISMATCH,
            "Location assignments and provider record are inconsistent: primary "
            f"assignment is at {primary.location_label}, provider record is at "
            f"{provider.location_label}",
        )
        state = ConflictingAssignment(
            reason=ConflictReason.LOCATION_MISMATCH,
            primaries=primaries,
            provider=provider,
        )
        return state, [issue]

    if provider is not None:
        if active:
            issue = Issue(
                IssueKind.PRIMARY_ASSIGNMENT_MISSING,
                "Has location assignments but no primary assignment",
            )
        else:
            issue = Issue(
                IssueKind.ASSIGNMENT_MISSING,
                "Has provider record but missing location assignments",
            )
        return PartialAssignment(gap=AssignmentGap.PRIMARY_ASSIGNMENT, provider=provider), [issue]

    if primary is not None:
        issue = Issue(
            IssueKind.PROVIDER_RECORD_MISSING,
            "Has location assignments but missing provider record",
        )
        return PartialAssignment(gap=AssignmentGap.PROVIDER_RECORD, primary=primary), [issue]

    if active:
        issue = Issue(
            IssueKind.PRIMARY_ASSIGNMENT_UNDETERMINED,
            "Has location assignments but no primary assignment and no provider record",
        )
        return PartialAssignment(gap=AssignmentGap.PRIMARY_UNDETERMINED), [issue]

    issue = Issue(IssueKind.NOT_ASSIGNED, "No location assignments or provider record found")
    return MissingAssignment(), [issue]


def _orphan_issues(
    active: tuple[LocationAssignment, ...],
    provider: ProviderRecord | None,
    known_location_ids: Collection[UUID],
) -> list[Issue]:
    issues: list[Issue] = [
        Issue(
            IssueKind.ORPHAN_ASSIGNMENT_LOCATION,
            f"Assignment {assignment.id} references a deleted location "
            f"{assignment.location_label}",
        )
        for assignment in active
        if assignment.location_id not in known_location_ids
    ]
    if provider is not None and provider.primary_location_id not in known_location_ids:
        issues.append(
            Issue(
                IssueKind.ORPHAN_PROVIDER_LOCATION,
                f"Provider record {provider.id} references a deleted location "
                f"{provider.location_label}",
            )
        )
    return issues


def _managed_teams(teams: tuple[Team, ...], provider: ProviderRecord | None) -> tuple[Team, ...]:
    if provider is None:
        return ()
    return tuple(team for team in teams if team.provider_id == provider.id)


def _recommendations(state: AssignmentState, issues: list[Issue]) -> tuple[str, ...]:
    recommendations: list[str] = []
    match state:
        case MissingAssignment():
            recommendations.append("Assign to a primary location")
        case PartialAssignment(gap=AssignmentGap.PROVIDER_RECORD):
            recommendations.append("Create a provider record for the primary location")
        case PartialAssignment(gap=AssignmentGap.PRIMARY_ASSIGNMENT):
            recommendations.append("Create a primary assignment at the provider's location")
        case PartialAssignment(gap=AssignmentGap.PRIMARY_UNDETERMINED):
            recommendations.append("Designate one of the location assignments as primary")
        case PartialAssignment(gap=AssignmentGap.PROVIDER_INACTIVE):
            recommendations.append("Reactivate or retire the inactive provider record")
        case ConflictingAssignment():
            recommendations.append("Resolve assignment conflicts manually")
        case CompleteAssignment():
            pass

    orphan_kinds = {IssueKind.ORPHAN_ASSIGNMENT_LOCATION, IssueKind.ORPHAN_PROVIDER_LOCATION}
    if any(issue.kind in orphan_kinds for issue in issues):
        recommendations.append("Remove or repoint references to deleted locations")
    return tuple(recommendations)
