"""Shared reconciliation contract components.

This module holds:
- the closed issue taxonomy and its severity/auto-fix lookup table
- classification inputs (per-entity snapshots)
- classification outputs (assignment states, unified status, team audits)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Literal

from provisync.domain.model import EntityType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from provisync.domain.model import (
        APUser,
        Location,
        LocationAssignment,
        ProviderRecord,
        Team,
    )


class Severity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"


class IssueKind(StrEnum):
    """Every inconsistency the analyzers can report."""

    # AP user classification
    NOT_ASSIGNED = "not_assigned"
    ASSIGNMENT_MISSING = "assignment_missing"
    PRIMARY_ASSIGNMENT_MISSING = "primary_assignment_missing"
    PRIMARY_ASSIGNMENT_UNDETERMINED = "primary_assignment_undetermined"
    PROVIDER_RECORD_MISSING = "provider_record_missing"
    PROVIDER_INACTIVE = "provider_inactive"
    LOCATION_MISMATCH = "location_mismatch"
    MULTIPLE_PRIMARY_ASSIGNMENTS = "multiple_primary_assignments"
    ORPHAN_ASSIGNMENT_LOCATION = "orphan_assignment_location"
    ORPHAN_PROVIDER_LOCATION = "orphan_provider_location"

    # Team audit
    TEAM_LOCATION_MISSING = "team_location_missing"
    TEAM_LOCATION_ORPHANED = "team_location_orphaned"
    TEAM_PROVIDER_MISSING = "team_provider_missing"
    TEAM_PROVIDER_ORPHANED = "team_provider_orphaned"
    TEAM_PROVIDER_LOCATION_MISMATCH = "team_provider_location_mismatch"
    TEAM_INACTIVE_WITH_MEMBERS = "team_inactive_with_members"

    # Store access
    ENTITY_READ_FAILED = "entity_read_failed"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True, slots=True)
class IssueRule:
    entity_type: EntityType
    severity: Severity
    auto_fixable: bool


def _rule(entity_type: EntityType, severity: Severity, *, auto_fixable: bool) -> IssueRule:
    return IssueRule(entity_type=entity_type, severity=severity, auto_fixable=auto_fixable)


_ASSIGNMENT = EntityType.ASSIGNMENT
_PROVIDER = EntityType.PROVIDER
_TEAM = EntityType.TEAM
_SYSTEM = EntityType.SYSTEM
_CRITICAL = Severity.CRITICAL
_WARNING = Severity.WARNING

# Conflicts and orphaned references are critical and never auto-fixable.
ISSUE_RULES: Final[Mapping[IssueKind, IssueRule]] = MappingProxyType(
    {
        IssueKind.NOT_ASSIGNED: _rule(_ASSIGNMENT, _WARNING, auto_fixable=True),
        IssueKind.ASSIGNMENT_MISSING: _rule(_ASSIGNMENT, _WARNING, auto_fixable=True),
        IssueKind.PRIMARY_ASSIGNMENT_MISSING: _rule(_ASSIGNMENT, _WARNING, auto_fixable=True),
        IssueKind.PRIMARY_ASSIGNMENT_UNDETERMINED: _rule(
            _ASSIGNMENT, _WARNING, auto_fixable=False
        ),
        IssueKind.PROVIDER_RECORD_MISSING: _rule(_PROVIDER, _WARNING, auto_fixable=True),
        IssueKind.PROVIDER_INACTIVE: _rule(_PROVIDER, _WARNING, auto_fixable=False),
        IssueKind.LOCATION_MISMATCH: _rule(_ASSIGNMENT, _CRITICAL, auto_fixable=False),
        IssueKind.MULTIPLE_PRIMARY_ASSIGNMENTS: _rule(_ASSIGNMENT, _CRITICAL, auto_fixable=False),
        IssueKind.ORPHAN_ASSIGNMENT_LOCATION: _rule(_ASSIGNMENT, _CRITICAL, auto_fixable=False),
        IssueKind.ORPHAN_PROVIDER_LOCATION: _rule(_PROVIDER, _CRITICAL, auto_fixable=False),
        IssueKind.TEAM_LOCATION_MISSING: _rule(_TEAM, _WARNING, auto_fixable=False),
        IssueKind.TEAM_LOCATION_ORPHANED: _rule(_TEAM, _CRITICAL, auto_fixable=False),
        IssueKind.TEAM_PROVIDER_MISSING: _rule(_TEAM, _WARNING, auto_fixable=True),
        IssueKind.TEAM_PROVIDER_ORPHANED: _rule(_TEAM, _CRITICAL, auto_fixable=False),
        IssueKind.TEAM_PROVIDER_LOCATION_MISMATCH: _rule(_TEAM, _CRITICAL, auto_fixable=False),
        IssueKind.TEAM_INACTIVE_WITH_MEMBERS: _rule(_TEAM, _WARNING, auto_fixable=False),
        IssueKind.ENTITY_READ_FAILED: _rule(_SYSTEM, _WARNING, auto_fixable=False),
        IssueKind.STORE_UNAVAILABLE: _rule(_SYSTEM, _CRITICAL, auto_fixable=False),
    }
)


@dataclass(frozen=True, slots=True)
class Issue:
    """One detected inconsistency with a human-readable description."""

    kind: IssueKind
    message: str

    @property
    def rule(self) -> IssueRule:
        return ISSUE_RULES[self.kind]

    @property
    def severity(self) -> Severity:
        return self.rule.severity

    @property
    def auto_fixable(self) -> bool:
        return self.rule.auto_fixable


# Classification inputs --------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True)
class UserSnapshot:
    """Everything the analyzer needs to classify one AP user."""

    ap_user: APUser
    assignments: tuple[LocationAssignment, ...] = ()
    provider: ProviderRecord | None = None
    teams: tuple[Team, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class TeamSnapshot:
    """A team with its location and provider references resolved (``None`` if unresolved)."""

    team: Team
    location: Location | None = None
    provider: ProviderRecord | None = None


# Classification outputs -------------------------------------------------------


class AssignmentStatus(StrEnum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    MISSING = "missing"
    CONFLICT = "conflict"


class AssignmentGap(StrEnum):
    """Which half of a partial assignment is missing."""

    PROVIDER_RECORD = "provider_record"
    PRIMARY_ASSIGNMENT = "primary_assignment"
    PRIMARY_UNDETERMINED = "primary_undetermined"
    PROVIDER_INACTIVE = "provider_inactive"


FIXABLE_GAPS: Final[frozenset[AssignmentGap]] = frozenset(
    {AssignmentGap.PROVIDER_RECORD, AssignmentGap.PRIMARY_ASSIGNMENT}
)


class ConflictReason(StrEnum):
    LOCATION_MISMATCH = "location_mismatch"
    MULTIPLE_PRIMARY_ASSIGNMENTS = "multiple_primary_assignments"


@dataclass(frozen=True, slots=True, kw_only=True)
class CompleteAssignment:
    """Primary assignment and approved provider record agree on the location."""

    primary: LocationAssignment
    provider: ProviderRecord
    status: Literal[AssignmentStatus.COMPLETE] = AssignmentStatus.COMPLETE


@dataclass(frozen=True, slots=True, kw_only=True)
class PartialAssignment:
    """Exactly one half of the assignment/provider pair is usable."""

    gap: AssignmentGap
    primary: LocationAssignment | None = None
    provider: ProviderRecord | None = None
    status: Literal[AssignmentStatus.PARTIAL] = AssignmentStatus.PARTIAL


@dataclass(frozen=True, slots=True, kw_only=True)
class MissingAssignment:
    """Neither an active assignment nor a provider record exists."""

    status: Literal[AssignmentStatus.MISSING] = AssignmentStatus.MISSING


@dataclass(frozen=True, slots=True, kw_only=True)
class ConflictingAssignment:
    """Two sources of truth disagree; never auto-resolved."""

    reason: ConflictReason
    primaries: tuple[LocationAssignment, ...]
    provider: ProviderRecord | None = None
    status: Literal[AssignmentStatus.CONFLICT] = AssignmentStatus.CONFLICT

    def __post_init__(self) -> None:
        if not self.primaries:
            raise ValueError("Conflicting assignment must include at least one primary assignment")


type AssignmentState = (
    CompleteAssignment | PartialAssignment | MissingAssignment | ConflictingAssignment
)


def is_auto_fixable(state: AssignmentState) -> bool:
    match state:
        case MissingAssignment():
            return True
        case PartialAssignment(gap=gap):
            return gap in FIXABLE_GAPS
        case CompleteAssignment() | ConflictingAssignment():
            return False


@dataclass(frozen=True, slots=True, kw_only=True)
class UnifiedAssignmentStatus:
    """Derived consistency state of one AP user. Recomputed on every read."""

    ap_user: APUser
    state: AssignmentState
    assignments: tuple[LocationAssignment, ...] = ()
    provider: ProviderRecord | None = None
    managed_teams: tuple[Team, ...] = ()
    issues: tuple[Issue, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def status(self) -> AssignmentStatus:
        return self.state.status

    @property
    def primary_assignment(self) -> LocationAssignment | None:
        match self.state:
            case CompleteAssignment(primary=primary):
                return primary
            case PartialAssignment(primary=primary):
                return primary
            case MissingAssignment() | ConflictingAssignment():
                return None

    @property
    def is_auto_fixable(self) -> bool:
        return is_auto_fixable(self.state)


@dataclass(frozen=True, slots=True, kw_only=True)
class TeamAudit:
    """Consistency state of one team."""

    team: Team
    has_provider: bool
    has_location: bool
    provider_valid: bool
    issues: tuple[Issue, ...] = field(default_factory=tuple)

    @property
    def provider_satisfied(self) -> bool:
        """The team carries a resolvable provider, or is not expected to carry one."""
        return self.team.self_managed or (self.has_provider and self.provider_valid)

    @property
    def is_orphaned(self) -> bool:
        """The team sits at a location but has no usable provider."""
        return self.team.location_id is not None and not self.provider_satisfied

    @property
    def needs_provider_link(self) -> bool:
        return any(issue.kind is IssueKind.TEAM_PROVIDER_MISSING for issue in self.issues)
