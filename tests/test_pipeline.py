from __future__ import annotations

from typing import Any

import pytest

from migratorx.cdc.debezium import ConnectorStatus, DebeziumInspector
from migratorx.checks.schema_parity import Schema, SchemaInspector
from migratorx.domain.context import RunContext
from migratorx.errors import PlanValidationError
from migratorx.mysql.replica_upgrade import ReplicaActions, ReplicaInspector, ReplicationStatus
from migratorx.plan.models import MigrationPlan
from migratorx.state import MemoryState
from migratorx.workflow import WorkflowRunner
from migratorx.workflow.pipeline import PipelineDependencies, build_pipeline, promotion_key

_SCHEMA = Schema.model_validate(
    {"tables": [{"name": "orders", "primary_key": ["id"], "columns": [{"name": "id", "type": "bigint"}]}]}
)


class _SameSchema(SchemaInspector):
    def schema(self, ctx, host):
        return _SCHEMA


class _Running(DebeziumInspector):
    def connector_status(self, ctx, connector):
        return ConnectorStatus(name=connector, connector_state="RUNNING")


class _Replicas(ReplicaInspector):
    def is_primary(self, ctx, host):
        return host == "db-primary"

    def replication_status(self, ctx, replica):
        return ReplicationStatus(io_thread_running=True, sql_thread_running=True)


class _Actions(ReplicaActions):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def stop_replication(self, ctx, replica):
        self.calls.append(("stop", replica))

    def run_upgrade(self, ctx, replica):
        self.calls.append(("upgrade", replica))

    def start_replication(self, ctx, replica):
        self.calls.append(("start", replica))


def _deps(actions: _Actions, confirmation: str = "PROMOTE") -> PipelineDependencies:
    return PipelineDependencies(
        schema_inspector=_SameSchema(),
        debezium_inspector=_Running(),
        replica_inspector=_Replicas(),
        replica_actions=actions,
        confirmation=confirmation,
    )


def test_steps_follow_plan_order(plan_data: dict[str, Any]) -> None:
    plan = MigrationPlan.from_mapping(plan_data)

    steps = build_pipeline(plan, _deps(_Actions()))

    assert [s.name for s in steps] == plan.steps
    assert [s.mutates for s in steps] == [False, True, False, False, True]


def test_invalid_plan_is_rejected() -> None:
    with pytest.raises(PlanValidationError):
        build_pipeline(MigrationPlan.from_mapping({}), _deps(_Actions()))


def test_full_run_upgrades_every_replica_and_records_approval(plan_data: dict[str, Any]) -> None:
    plan_data["cdc"]["schema_history_topic"] = None
    plan = MigrationPlan.from_mapping(plan_data)
    actions = _Actions()
    state = MemoryState()
    runner = WorkflowRunner(build_pipeline(plan, _deps(actions)), state=state, allow_mutations=True)

    summary = runner.run(RunContext.background())

    assert summary.block == 0
    assert [call for call, _ in actions.calls] == ["stop", "upgrade", "start"] * 2
    assert {replica for _, replica in actions.calls} == {"db-replica-1", "db-replica-2"}
    assert state.get_bool(promotion_key(plan.migration))
    assert state.is_completed("promote")


def test_mutations_blocked_by_default(plan_data: dict[str, Any]) -> None:
    plan = MigrationPlan.from_mapping(plan_data)
    actions = _Actions()
    runner = WorkflowRunner(build_pipeline(plan, _deps(actions)))

    summary = runner.run(RunContext.background())

    assert summary.block == 1
    assert runner.halted_at == "upgrade_replica"
    assert actions.calls == []


def test_promotion_without_confirmation_blocks(plan_data: dict[str, Any]) -> None:
    plan_data["steps"] = ["promote"]
    plan = MigrationPlan.from_mapping(plan_data)
    state = MemoryState()
    runner = WorkflowRunner(
        build_pipeline(plan, _deps(_Actions(), confirmation="")), state=state, allow_mutations=True
    )

    summary = runner.run(RunContext.background())

    assert summary.block == 1
    assert not state.contains(promotion_key(plan.migration))
