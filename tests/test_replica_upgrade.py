from __future__ import annotations

import pytest

from migratorx.domain.context import RunContext
from migratorx.domain.findings import Severity
from migratorx.errors import ConfigurationError
from migratorx.mysql.replica_upgrade import (
    ReplicaActions,
    ReplicaInspector,
    ReplicationStatus,
    UpgradeOrchestrator,
    checkpoint_key,
)
from migratorx.state import MemoryState

RUNNING = ReplicationStatus(io_thread_running=True, sql_thread_running=True)
STOPPED = ReplicationStatus(io_thread_running=False, sql_thread_running=False)


class _Inspector(ReplicaInspector):
    def __init__(
        self,
        primary: bool = False,
        status: ReplicationStatus = RUNNING,
        error: bool = False,
        status_error: Exception | None = None,
    ) -> None:
        self._primary = primary
        self._status = status
        self._error = error
        self._status_error = status_error

    def is_primary(self, ctx, host):
        if self._error:
            raise RuntimeError("unreachable")
        return self._primary

    def replication_status(self, ctx, replica):
        if self._status_error is not None:
            raise self._status_error
        return self._status


class _RecordingActions(ReplicaActions):
    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[str] = []
        self.fail_on = fail_on

    def _do(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} exploded")

    def stop_replication(self, ctx, replica):
        self._do("stop")

    def run_upgrade(self, ctx, replica):
        self._do("upgrade")

    def start_replication(self, ctx, replica):
        self._do("start")


def test_happy_path_runs_each_phase_once():
    state = MemoryState()
    actions = _RecordingActions()
    orchestrator = UpgradeOrchestrator(_Inspector(), actions, state=state, primary="db-primary")

    first = orchestrator.run(RunContext.background(), "db-replica-1")
    second = orchestrator.run(RunContext.background(), "db-replica-1")

    assert actions.calls == ["stop", "upgrade", "start"]
    assert [f.message for f in first.findings] == [
        "replication stopped",
        "upgrade completed",
        "replication started",
    ]
    assert [f.message for f in second.findings] == [
        "replication already stopped",
        "upgrade already completed",
        "replication already started",
    ]
    assert not second.blocked
    assert state.get_bool(checkpoint_key("db-replica-1", "resumed"))


def test_refuses_configured_primary():
    actions = _RecordingActions()
    report = UpgradeOrchestrator(_Inspector(), actions, primary="db-primary").run(
        RunContext.background(), "db-primary"
    )

    assert [f.message for f in report.findings] == ["refusing to upgrade primary"]
    assert report.summary.block == 1
    assert actions.calls == []


def test_refuses_host_inspector_reports_as_primary():
    actions = _RecordingActions()
    report = UpgradeOrchestrator(_Inspector(primary=True), actions).run(
        RunContext.background(), "db-replica-1"
    )

    assert len(report.findings) == 1
    assert report.blocked
    assert actions.calls == []


def test_primary_lookup_error_is_single_block():
    actions = _RecordingActions()
    report = UpgradeOrchestrator(_Inspector(error=True), actions).run(
        RunContext.background(), "db-replica-1"
    )

    assert len(report.findings) == 1
    assert report.findings[0].message.startswith("failed to determine primary status")
    assert actions.calls == []


def test_blank_replica_is_block():
    report = UpgradeOrchestrator(_Inspector(), _RecordingActions()).run(RunContext.background(), " ")
    assert [f.message for f in report.findings] == ["replica is required"]


def test_failed_phase_is_retried_on_next_run():
    state = MemoryState()
    actions = _RecordingActions(fail_on="upgrade")
    orchestrator = UpgradeOrchestrator(_Inspector(status=STOPPED), actions, state=state)

    failed = orchestrator.run(RunContext.background(), "db-replica-1")
    assert failed.blocked
    assert failed.findings[-1].message == "upgrade failed: upgrade exploded"
    assert not state.get_bool(checkpoint_key("db-replica-1", "upgraded"))

    actions.fail_on = None
    retried = orchestrator.run(RunContext.background(), "db-replica-1")

    assert not retried.blocked
    assert actions.calls == ["stop", "upgrade", "upgrade", "start"]


def test_partial_progress_warnings():
    state = MemoryState()
    report = UpgradeOrchestrator(_Inspector(status=STOPPED), _RecordingActions(), state=state).run(
        RunContext.background(), "db-replica-1"
    )
    assert report.findings[0].severity is Severity.WARN
    assert report.findings[0].message == "replication appears stopped but checkpoint is missing"

    state = MemoryState({checkpoint_key("db-replica-1", "stopped"): True})
    report = UpgradeOrchestrator(_Inspector(status=RUNNING), _RecordingActions(), state=state).run(
        RunContext.background(), "db-replica-1"
    )
    assert report.findings[0].message == "checkpoint indicates replication stopped but status is running"

    state = MemoryState(
        {
            checkpoint_key("db-replica-1", "stopped"): True,
            checkpoint_key("db-replica-1", "upgraded"): True,
            checkpoint_key("db-replica-1", "resumed"): True,
        }
    )
    report = UpgradeOrchestrator(_Inspector(status=STOPPED), _RecordingActions(), state=state).run(
        RunContext.background(), "db-replica-1"
    )
    assert report.findings[0].message == "checkpoint indicates replication started but status is stopped"


def test_cancelled_context_stops_before_next_phase():
    ctx = RunContext.background()
    ctx.cancel()
    actions = _RecordingActions()

    report = UpgradeOrchestrator(_Inspector(), actions).run(ctx, "db-replica-1")

    assert report.blocked
    assert report.findings[-1].message.startswith("replica upgrade interrupted before stopping replication")
    assert actions.calls == []


def test_missing_collaborators():
    with pytest.raises(ConfigurationError):
        UpgradeOrchestrator(None, _RecordingActions()).run(RunContext.background(), "r")


def test_unreadable_replication_status_warns_and_continues():
    state = MemoryState()
    actions = _RecordingActions()
    inspector = _Inspector(status_error=RuntimeError("io down"))
    orchestrator = UpgradeOrchestrator(inspector, actions, state=state, primary="db-primary")

    report = orchestrator.run(RunContext.background(), "db-replica-1")

    assert [(f.severity, f.message) for f in report.findings] == [
        (Severity.WARN, "unable to read replication status: io down"),
        (Severity.INFO, "replication stopped"),
        (Severity.INFO, "upgrade completed"),
        (Severity.INFO, "replication started"),
    ]
    assert actions.calls == ["stop", "upgrade", "start"]
    assert not report.blocked
    assert state.get_bool(checkpoint_key("db-replica-1", "resumed"))
