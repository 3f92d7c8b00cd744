from __future__ import annotations

import uuid
from datetime import UTC, datetime

import pytest

from provisync.app import Backend
from provisync.domain.model import AssignmentRole, EntityType
from provisync.domain.reconciliation import (
    AssignmentConsistencyService,
    FailureKind,
    ReconcileFailure,
    ReconcileResult,
    StoreError,
    UserSnapshot,
    analyze_assignment_status,
    generate_health_report,
)
from provisync.ui import cli
from tests.helpers.factories import make_user
from tests.helpers.store import InMemoryEntityStore


def test_report_prints_score_and_recommendations(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: dict[str, object] = {}
    status = analyze_assignment_status(UserSnapshot(ap_user=make_user("Unassigned")))
    report = generate_health_report([status], [], now=datetime(2025, 1, 1, tzinfo=UTC))

    def fake_report(**kwargs: object) -> object:
        captured.update(kwargs)
        return report

    monkeypatch.setattr(cli, "get_system_health_report", fake_report)

    cli.main(["report"])

    out = capsys.readouterr().out
    assert captured["backend"] is Backend.SQLALCHEMY
    assert "Overall score: 0/100" in out
    assert "Unassigned: No location assignments or provider record found" in out
    assert "Assign 1 unassigned AP users to locations" in out


def test_status_parses_the_user_id_and_backend(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    user = make_user("Alice")
    captured: dict[str, object] = {}

    def fake_status(ap_user_id: uuid.UUID, **kwargs: object) -> object:
        captured["ap_user_id"] = ap_user_id
        captured.update(kwargs)
        return analyze_assignment_status(UserSnapshot(ap_user=user))

    monkeypatch.setattr(cli, "get_unified_status", fake_status)

    cli.main(["--backend", "supabase", "status", "--ap-user-id", str(user.id)])

    out = capsys.readouterr().out
    assert captured == {"ap_user_id": user.id, "backend": Backend.SUPABASE}
    assert f"Alice ({user.id}): missing" in out


def test_reconcile_passes_deadline_and_stop_event(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: dict[str, object] = {}
    result = ReconcileResult(fixed_assignments=2, fixed_providers=1)
    result.errors.append(
        ReconcileFailure(
            kind=FailureKind.NO_CANDIDATE,
            entity_type=EntityType.AP_USER,
            entity_id=uuid.uuid4(),
            entity_name="Stranded",
            message="No available location",
        )
    )

    def fake_reconcile(**kwargs: object) -> ReconcileResult:
        captured.update(kwargs)
        return result

    monkeypatch.setattr(cli, "reconcile", fake_reconcile)
    before = datetime.now(UTC)

    cli.main(["reconcile", "--deadline-seconds", "30"])

    out = capsys.readouterr().out
    deadline = captured["deadline"]
    assert isinstance(deadline, datetime)
    assert deadline > before
    stop_event = cli._STOP_REQUESTED  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    assert captured["cancel"] is stop_event
    assert "Fixed: 2 assignments, 1 providers, 0 teams" in out
    assert "[no_candidate] ap_user Stranded: No available location" in out


def test_assign_passes_role_and_primary_flag(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = InMemoryEntityStore()
    user = store.add_user("Alice")
    location = store.add_location("Downtown")
    store.add_team("Team A", location_id=location.id)
    service = AssignmentConsistencyService(store)
    captured: dict[str, object] = {}

    def fake_assign(ap_user_id: uuid.UUID, location_id: uuid.UUID, **kwargs: object) -> object:
        captured.update(kwargs)
        return service.assign_ap_user(
            ap_user_id,
            location_id,
            is_primary=bool(kwargs["is_primary"]),
            role=AssignmentRole(str(kwargs["role"])),
        )

    monkeypatch.setattr(cli, "assign_ap_user", fake_assign)

    cli.main(
        [
            "assign",
            "--ap-user-id",
            str(user.id),
            "--location-id",
            str(location.id),
            "--primary",
            "--role",
            "supervisor",
        ]
    )

    out = capsys.readouterr().out
    assert captured == {
        "is_primary": True,
        "role": AssignmentRole.SUPERVISOR,
        "backend": Backend.SQLALCHEMY,
    }
    assert "Assigned to Downtown (primary, supervisor)" in out
    assert "Created provider record" in out
    assert "Linked teams: Team A" in out
    assert f"Alice ({user.id}): complete" in out


def test_create_team_reports_follow_up_errors(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = InMemoryEntityStore()
    location = store.add_location("Downtown")
    service = AssignmentConsistencyService(store)

    def fake_create(name: str, location_id: uuid.UUID, **kwargs: object) -> object:
        assert kwargs == {"self_managed": False, "backend": Backend.SQLALCHEMY}
        return service.create_team(name, location_id)

    monkeypatch.setattr(cli, "create_team", fake_create)

    cli.main(["create-team", "--name", "Team A", "--location-id", str(location.id)])

    out = capsys.readouterr().out
    assert "Created team Team A" in out
    assert "provider: none" in out
    assert "Follow-up error: No complete AP user has a primary assignment" in out


@pytest.mark.parametrize(
    "argv",
    [
        ["status", "--ap-user-id", "not-a-uuid"],
        ["reconcile", "--deadline-seconds", "0"],
        ["assign", "--ap-user-id", str(uuid.uuid4()), "--location-id", "nowhere"],
        ["create-team", "--name", "Team A", "--location-id", "nowhere"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2


def test_fatal_errors_exit_with_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(**_: object) -> object:
        raise StoreError("database is down")

    monkeypatch.setattr(cli, "get_system_health_report", broken)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["report"])

    assert excinfo.value.code == 1


def test_first_interrupt_requests_a_stop() -> None:
    cli._STOP_REQUESTED.clear()  # noqa: SLF001  # type: ignore[reportPrivateUsage]

    cli.sigint_handler(2, None)

    assert cli._STOP_REQUESTED.is_set()  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    with pytest.raises(SystemExit) as excinfo:
        cli.sigint_handler(2, None)
    assert excinfo.value.code == 0
    cli._STOP_REQUESTED.clear()  # noqa: SLF001  # type: ignore[reportPrivateUsage]
