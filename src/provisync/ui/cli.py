# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
import threading
from datetime import UTC, datetime, timedelta
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from provisync.app import (
    Backend,
    assign_ap_user,
    create_team,
    get_system_health_report,
    get_unified_status,
    reconcile,
)
from provisync.config import configure_logging
from provisync.domain.model import AssignmentRole

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

    from provisync.domain.reconciliation import (
        AssignmentOutcome,
        ReconcileResult,
        SystemHealthReport,
        TeamCreationOutcome,
        UnifiedAssignmentStatus,
    )

log = logging.getLogger(__name__)

_STOP_REQUESTED = threading.Event()


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit and repair AP user assignments")
    parser.add_argument(
        "--backend",
        choices=[backend.value for backend in Backend],
        default=Backend.SQLALCHEMY.value,
        help="Entity store to operate on (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("report", help="Print the system health report")

    status = subparsers.add_parser("status", help="Print the assignment status of one AP user")
    status.add_argument(
        "--ap-user-id",
        type=str,
        required=True,
        help="Id of the AP user to classify",
    )

    reconcile_parser = subparsers.add_parser("reconcile", help="Fix all auto-fixable entities")
    reconcile_parser.add_argument(
        "--deadline-seconds",
        type=float,
        help="Stop scheduling new fixes after this many seconds",
    )

    assign = subparsers.add_parser("assign", help="Assign an AP user to a location")
    assign.add_argument("--ap-user-id", type=str, required=True, help="Id of the AP user")
    assign.add_argument("--location-id", type=str, required=True, help="Id of the location")
    assign.add_argument(
        "--primary",
        action="store_true",
        help="Make this the primary assignment and provision the provider record",
    )
    assign.add_argument(
        "--role",
        choices=[role.value for role in AssignmentRole],
        default=AssignmentRole.PROVIDER.value,
        help="Assignment role (default: %(default)s)",
    )

    team = subparsers.add_parser("create-team", help="Create a team at a location")
    team.add_argument("--name", type=str, required=True, help="Team name")
    team.add_argument("--location-id", type=str, required=True, help="Id of the location")
    team.add_argument(
        "--self-managed",
        action="store_true",
        help="Never link the team to a provider",
    )

    return parser.parse_args(list(argv))


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _compute_deadline(
    args: argparse.Namespace,
    *,
    now_provider: Callable[[], datetime] = _utcnow,
) -> datetime | None:
    seconds = getattr(args, "deadline_seconds", None)
    if seconds is None:
        return None
    if seconds <= 0:
        raise ValueError("Deadline seconds must be positive")
    return now_provider() + timedelta(seconds=seconds)


def render_report(report: SystemHealthReport) -> list[str]:
    summary = report.summary
    lines = [
        f"Overall score: {report.overall_score}/100 "
        f"(generated {report.generated_at:%Y-%m-%d %H:%M:%S} UTC)",
        f"AP users: {summary.total_ap_users} total, {summary.properly_assigned} complete, "
        f"{summary.partially_assigned} partial, {summary.unassigned} unassigned, "
        f"{summary.conflicts} conflicts, {summary.unreadable_ap_users} unreadable",
        f"Teams: {summary.total_teams} total, {summary.teams_with_providers} with providers, "
        f"{summary.orphaned_teams} orphaned, {summary.unreadable_teams} unreadable",
    ]
    if report.system_issues:
        lines.append("Issues:")
        lines.extend(
            f"  [{issue.severity}] {issue.entity_type} {issue.affected_name}: {issue.description}"
            + (" (auto-fixable)" if issue.auto_fixable else "")
            for issue in report.system_issues
        )
    if report.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  - {recommendation}" for recommendation in report.recommendations)
    return lines


def render_status(status: UnifiedAssignmentStatus) -> list[str]:
    user = status.ap_user
    lines = [f"{user.display_name} ({user.id}): {status.status}"]
    primary = status.primary_assignment
    if primary is not None:
        lines.append(f"  Primary location: {primary.location_label}")
    if status.provider is not None:
        lines.append(
            f"  Provider record: {status.provider.id} ({status.provider.status}) "
            f"at {status.provider.location_label}"
        )
    if status.managed_teams:
        lines.append(f"  Managed teams: {', '.join(team.name for team in status.managed_teams)}")
    lines.extend(f"  Issue: {issue.message}" for issue in status.issues)
    lines.extend(f"  Recommendation: {text}" for text in status.recommendations)
    return lines


def render_result(result: ReconcileResult) -> list[str]:
    lines = [
        f"Fixed: {result.fixed_assignments} assignments, {result.fixed_providers} providers, "
        f"{result.fixed_teams} teams" + (" (stopped early)" if result.cancelled else ""),
    ]
    if result.errors:
        lines.append("Errors:")
        lines.extend(
            f"  [{failure.kind}] {failure.entity_type} {failure.entity_name}: {failure.message}"
            for failure in result.errors
        )
    if result.manual_review:
        lines.append("Needs manual review:")
        lines.extend(
            f"  {issue.affected_name}: {issue.description}" for issue in result.manual_review
        )
    if result.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  - {recommendation}" for recommendation in result.recommendations)
    return lines


def render_assignment(outcome: AssignmentOutcome) -> list[str]:
    assignment = outcome.assignment
    kind = "primary" if assignment.is_primary else "secondary"
    lines = [f"Assigned to {assignment.location_label} ({kind}, {assignment.role})"]
    if outcome.created_provider:
        lines.append("  Created provider record")
    if outcome.linked_teams:
        lines.append(f"  Linked teams: {', '.join(team.name for team in outcome.linked_teams)}")
    lines.extend(f"  Follow-up error: {message}" for message in outcome.follow_up_errors)
    lines.extend(render_status(outcome.status))
    return lines


def render_team(outcome: TeamCreationOutcome) -> list[str]:
    team = outcome.team
    provider = str(outcome.provider_id) if outcome.provider_id else "none"
    lines = [f"Created team {team.name} ({team.id}); provider: {provider}"]
    lines.extend(f"  Follow-up error: {message}" for message in outcome.follow_up_errors)
    lines.extend(f"  Issue: {issue.message}" for issue in outcome.audit.issues)
    return lines


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        backend = Backend(parsed_args.backend)
        deadline = _compute_deadline(parsed_args)
        ap_user_id = (
            _parse_uuid(parsed_args.ap_user_id)
            if parsed_args.command in {"status", "assign"}
            else None
        )
        location_id = (
            _parse_uuid(parsed_args.location_id)
            if parsed_args.command in {"assign", "create-team"}
            else None
        )
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "report":
            lines = render_report(get_system_health_report(backend=backend))
        elif parsed_args.command == "status" and ap_user_id is not None:
            lines = render_status(get_unified_status(ap_user_id, backend=backend))
        elif parsed_args.command == "reconcile":
            result = reconcile(deadline=deadline, cancel=_STOP_REQUESTED, backend=backend)
            lines = render_result(result)
        elif (
            parsed_args.command == "assign"
            and ap_user_id is not None
            and location_id is not None
        ):
            outcome = assign_ap_user(
                ap_user_id,
                location_id,
                is_primary=parsed_args.primary,
                role=AssignmentRole(parsed_args.role),
                backend=backend,
            )
            lines = render_assignment(outcome)
        elif parsed_args.command == "create-team" and location_id is not None:
            created = create_team(
                parsed_args.name,
                location_id,
                self_managed=parsed_args.self_managed,
                backend=backend,
            )
            lines = render_team(created)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)

    for line in lines:
        print(line)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """First Ctrl+C stops scheduling new fixes; the second one exits."""
    if _STOP_REQUESTED.is_set():
        log.info("Closed by user (Ctrl+C)")
        sys.exit(0)
    log.info("Stopping after in-flight fixes (Ctrl+C again to quit)")
    _STOP_REQUESTED.set()


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
