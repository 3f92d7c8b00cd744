"""Classify one team's location/provider consistency."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .contracts import Issue, IssueKind, TeamAudit

if TYPE_CHECKING:
    from .contracts import TeamSnapshot


def audit_team(snapshot: TeamSnapshot) -> TeamAudit:
    """Return the audit of ``snapshot.team``.

    ``snapshot.location`` and ``snapshot.provider`` are the resolved records
    for the team's references; ``None`` alongside a set id means the
    reference does not resolve.
    """

    team = snapshot.team
    issues: list[Issue] = []

    has_location = snapshot.location is not None
    if team.location_id is None:
        if team.is_active:
            issues.append(Issue(IssueKind.TEAM_LOCATION_MISSING, "Active team has no location"))
    elif not has_location:
        issues.append(
            Issue(
                IssueKind.TEAM_LOCATION_ORPHANED,
                f"Team references a non-existent location {team.location_id}",
            )
        )

    has_provider = team.provider_id is not None
    provider_valid = True
    if team.provider_id is not None and snapshot.provider is None:
        provider_valid = False
        issues.append(
            Issue(
                IssueKind.TEAM_PROVIDER_ORPHANED,
                f"Team references a non-existent provider {team.provider_id}",
            )
        )
    elif team.provider_id is None and team.member_count > 0 and not team.self_managed:
        issues.append(
            Issue(
                IssueKind.TEAM_PROVIDER_MISSING,
                f"Team has {team.member_count} members but no assigned provider",
            )
        )

    provider = snapshot.provider
    if (
        provider is not None
        and team.location_id is not None
        and team.member_count > 0
        and provider.primary_location_id != team.location_id
    ):
        issues.append(
            Issue(
                IssueKind.TEAM_PROVIDER_LOCATION_MISMATCH,
                f"Team is at location {team.location_id} but its provider's primary "
                f"location is {provider.location_label}",
            )
        )

    if not team.is_active and team.member_count > 0:
        issues.append(
            Issue(
                IssueKind.TEAM_INACTIVE_WITH_MEMBERS,
                f"Inactive team still has {team.member_count} active members",
            )
        )

    return TeamAudit(
        team=team,
        has_provider=has_provider,
        has_location=has_location,
        provider_valid=provider_valid,
        issues=tuple(issues),
    )
