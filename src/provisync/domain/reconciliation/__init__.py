"""Assignment consistency reconciliation core.

Layered flow:
1) read each AP user's and team's slice of the entity store (``snapshot``)
2) classify it with pure analyzers (``analyze``, ``audit``)
3) aggregate into a system health report (``health``), or
4) drive fixable entities back to a consistent state (``engine``, ``saga``)

Administrator writes (``manual``) reuse the saga and the team linking policy.
"""

from __future__ import annotations

from .analyze import analyze_assignment_status
from .audit import audit_team
from .cache import ExpiringValue
from .contracts import (
    ISSUE_RULES,
    AssignmentGap,
    AssignmentState,
    AssignmentStatus,
    CompleteAssignment,
    ConflictingAssignment,
    ConflictReason,
    Issue,
    IssueKind,
    IssueRule,
    MissingAssignment,
    PartialAssignment,
    Severity,
    TeamAudit,
    TeamSnapshot,
    UnifiedAssignmentStatus,
    UserSnapshot,
)
from .engine import (
    CancellationToken,
    FailureKind,
    ReconcileFailure,
    ReconcileResult,
    ReconciliationEngine,
)
from .errors import (
    ConflictError,
    NoCandidateError,
    OrphanReferenceError,
    ReconciliationError,
    StoreError,
    StoreTimeoutError,
    UnknownAPUserError,
    WriteConflictError,
)
from .health import (
    HealthSummary,
    SystemHealthReport,
    SystemIssue,
    UnreadableEntity,
    compute_overall_score,
    generate_health_report,
)
from .manual import AssignmentOutcome, TeamCreationOutcome
from .policy import LocationClaims, LocationSelector, first_available
from .saga import ProvisioningSaga, ProvisioningStep, SagaOutcome
from .service import AssignmentConsistencyService

__all__ = [
    "ISSUE_RULES",
    "AssignmentConsistencyService",
    "AssignmentGap",
    "AssignmentOutcome",
    "AssignmentState",
    "AssignmentStatus",
    "CancellationToken",
    "CompleteAssignment",
    "ConflictError",
    "ConflictReason",
    "ConflictingAssignment",
    "ExpiringValue",
    "FailureKind",
    "HealthSummary",
    "Issue",
    "IssueKind",
    "IssueRule",
    "LocationClaims",
    "LocationSelector",
    "MissingAssignment",
    "NoCandidateError",
    "OrphanReferenceError",
    "PartialAssignment",
    "ProvisioningSaga",
    "ProvisioningStep",
    "ReconcileFailure",
    "ReconcileResult",
    "ReconciliationEngine",
    "ReconciliationError",
    "Severity",
    "StoreError",
    "StoreTimeoutError",
    "SystemHealthReport",
    "SystemIssue",
    "TeamAudit",
    "TeamCreationOutcome",
    "TeamSnapshot",
    "UnifiedAssignmentStatus",
    "UnknownAPUserError",
    "UnreadableEntity",
    "UserSnapshot",
    "WriteConflictError",
    "analyze_assignment_status",
    "audit_team",
    "compute_overall_score",
    "first_available",
    "generate_health_report",
]
