from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from migratorx.cdc.debezium import (
    ConnectorStatus,
    DebeziumHealthCheck,
    DebeziumInspector,
    is_restart_loop,
)
from migratorx.checks import CheckInput
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Severity
from migratorx.errors import ConfigurationError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _StaticInspector(DebeziumInspector):
    def __init__(self, status: ConnectorStatus | None = None, error: Exception | None = None) -> None:
        self._status = status
        self._error = error
        self.requested: list[str] = []

    def connector_status(self, ctx, connector):
        self.requested.append(connector)
        if self._error is not None:
            raise self._error
        return self._status


def _status(**overrides) -> ConnectorStatus:
    data = {
        "name": "orders-connector",
        "connector_state": "RUNNING",
        "tasks": [{"id": 0, "state": "RUNNING"}],
    }
    data.update(overrides)
    return ConnectorStatus.model_validate(data)


def _check(inspector: DebeziumInspector, **kwargs) -> DebeziumHealthCheck:
    return DebeziumHealthCheck(inspector, connector="orders-connector", clock=lambda: NOW, **kwargs)


def test_healthy_connector_reports_single_info():
    findings = _check(_StaticInspector(_status())).run(RunContext.background(), CheckInput())

    assert len(findings) == 1
    assert findings[0].severity is Severity.INFO
    assert findings[0].message == "connector 'orders-connector' and tasks are RUNNING"


def test_paused_connector_blocks():
    findings = _check(_StaticInspector(_status(connector_state="PAUSED"))).run(
        RunContext.background(), CheckInput()
    )

    assert [f.severity for f in findings] == [Severity.BLOCK]
    assert "PAUSED" in findings[0].message


def test_failed_task_blocks_with_trace():
    status = _status(
        tasks=[{"id": 0, "state": "RUNNING"}, {"id": 1, "state": "FAILED", "trace": "boom"}]
    )

    [finding] = _check(_StaticInspector(status)).run(RunContext.background(), CheckInput())

    assert finding.severity is Severity.BLOCK
    assert finding.meta["task_id"] == 1
    assert finding.meta["trace"] == "boom"


def test_restart_loop_blocks():
    status = _status(restart_count=5, last_restart_at=NOW - timedelta(minutes=2))

    findings = _check(
        _StaticInspector(status), restart_loop_window=timedelta(minutes=10), restart_loop_max=3
    ).run(RunContext.background(), CheckInput())

    assert [f.severity for f in findings] == [Severity.BLOCK]
    assert "restart loop" in findings[0].message
    assert findings[0].meta["window"] == "10m"


def test_old_restarts_are_not_a_loop():
    status = _status(restart_count=5, last_restart_at=NOW - timedelta(hours=1))
    assert not is_restart_loop(status, timedelta(minutes=10), 3, NOW)


def test_restart_count_below_threshold_is_not_a_loop():
    status = _status(restart_count=2, last_restart_at=NOW)
    assert not is_restart_loop(status, timedelta(minutes=10), 3, NOW)


def test_conditions_are_reported_together():
    status = _status(
        connector_state="FAILED",
        tasks=[{"id": 0, "state": "FAILED"}],
        restart_count=4,
        last_restart_at=NOW,
    )

    findings = _check(_StaticInspector(status)).run(RunContext.background(), CheckInput())

    assert len(findings) == 3
    assert all(f.severity is Severity.BLOCK for f in findings)


def test_inspector_error_is_single_block():
    findings = _check(_StaticInspector(error=RuntimeError("timeout"))).run(
        RunContext.background(), CheckInput()
    )

    assert [f.severity for f in findings] == [Severity.BLOCK]
    assert findings[0].message == "failed to read Debezium connector status: timeout"


def test_connector_defaults_to_input():
    inspector = _StaticInspector(_status())
    DebeziumHealthCheck(inspector, clock=lambda: NOW).run(
        RunContext.background(), CheckInput(cdc_connector="from-plan")
    )

    assert inspector.requested == ["from-plan"]


def test_missing_inspector_or_connector():
    with pytest.raises(ConfigurationError):
        DebeziumHealthCheck(None, connector="c").run(RunContext.background(), CheckInput())
    with pytest.raises(ConfigurationError):
        DebeziumHealthCheck(_StaticInspector(_status())).run(RunContext.background(), CheckInput())


def test_status_parses_kafka_connect_shape():
    status = ConnectorStatus.model_validate(
        {
            "name": "orders-connector",
            "connector": {"state": "RUNNING", "worker_id": "10.0.0.1:8083"},
            "tasks": [{"id": 0, "state": "RUNNING", "worker_id": "10.0.0.2:8083"}],
        }
    )

    assert status.connector_state == "RUNNING"
    assert status.connector_worker == "10.0.0.1:8083"
    assert status.tasks[0].worker == "10.0.0.2:8083"
