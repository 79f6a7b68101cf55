"""Builds the runnable step list for a validated migration plan."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from migratorx.cdc.debezium import DebeziumHealthCheck, DebeziumInspector
from migratorx.cdc.schema_history import KafkaInspector, SchemaHistoryCheck
from migratorx.checks.base import Check, CheckInput
from migratorx.checks.mysql_compat import MySQLCompatibilityCheck, MySQLInspector
from migratorx.checks.runner import ChecksRunner
from migratorx.checks.schema_parity import SchemaInspector, SchemaParityCheck
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import ConfigurationError
from migratorx.mysql.replica_upgrade import ReplicaActions, ReplicaInspector, UpgradeOrchestrator
from migratorx.plan.models import MigrationPlan
from migratorx.state.base import CheckpointKey, CheckpointState
from migratorx.workflow.promotion import DEFAULT_REQUIRED_CHECKS, PromotionGate
from migratorx.workflow.runner import MutatingStep, ReadOnlyStep, Step, StepResult


@dataclass
class PipelineDependencies:
    """Inspectors, actions and gate settings the plan's steps are built from."""

    schema_inspector: SchemaInspector | None = None
    debezium_inspector: DebeziumInspector | None = None
    replica_inspector: ReplicaInspector | None = None
    replica_actions: ReplicaActions | None = None
    kafka_inspector: KafkaInspector | None = None
    mysql_inspector: MySQLInspector | None = None
    confirmation: str = ""
    confirmation_phrase: str = "PROMOTE"
    required_checks: Sequence[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_CHECKS))
    restart_loop_window: timedelta | None = None
    restart_loop_max: int | None = None
    logger: logging.Logger | None = None


def promotion_key(migration: str) -> CheckpointKey:
    return CheckpointKey("promotion", migration, "approved")


class _PipelineBuilder:
    def __init__(self, plan: MigrationPlan, deps: PipelineDependencies) -> None:
        self._plan = plan
        self._deps = deps
        self._logger = deps.logger or logging.getLogger(__name__)

    def build(self) -> list[Step]:
        builders: dict[str, Callable[[], Step]] = {
            "preflight": self._preflight,
            "upgrade_replica": self._upgrade_replica,
            "validate_replica": self._validate_replica,
            "cdc_check": self._cdc_check,
            "promote": self._promote,
            "post_validation": self._post_validation,
        }
        steps: list[Step] = []
        for name in self._plan.normalized_steps():
            builder = builders.get(name)
            if builder is None:
                raise ConfigurationError(f"unsupported step {name!r}")
            steps.append(builder())
        return steps

    def _input(self, replica: str = "") -> CheckInput:
        return CheckInput.from_plan(self._plan, replica or self._plan.first_replica())

    def _debezium_check(self) -> Check:
        return DebeziumHealthCheck(
            self._deps.debezium_inspector,
            connector=self._plan.cdc.connector.strip(),
            restart_loop_window=self._deps.restart_loop_window,
            restart_loop_max=self._deps.restart_loop_max,
        )

    def _schema_parity_check(self, replica: str) -> Check:
        return SchemaParityCheck(
            self._deps.schema_inspector,
            primary_host=self._plan.primary,
            replica_host=replica,
        )

    def _cdc_checks(self) -> list[Check]:
        checks = [self._debezium_check()]
        topic = (self._plan.cdc.schema_history_topic or "").strip()
        if topic and self._deps.kafka_inspector is not None:
            checks.append(
                SchemaHistoryCheck(
                    self._deps.kafka_inspector, topic=topic, expected_tables=self._plan.cdc.tables
                )
            )
        return checks

    def _checks_step(self, name: str, checks_for: Callable[[], list[tuple[list[Check], str]]]) -> Step:
        def run(ctx: RunContext, state: CheckpointState) -> StepResult:
            findings: list[Finding] = []
            for checks, replica in checks_for():
                report = ChecksRunner(checks, logger=self._logger).run(ctx, self._input(replica))
                findings.extend(report.findings())
            return StepResult(findings)

        return ReadOnlyStep(name, run)

    def _preflight(self) -> Step:
        def checks_for() -> list[tuple[list[Check], str]]:
            replica = self._plan.first_replica()
            checks: list[Check] = []
            if self._deps.mysql_inspector is not None:
                checks.append(
                    MySQLCompatibilityCheck(
                        self._deps.mysql_inspector,
                        self._deps.schema_inspector,
                        primary_host=self._plan.primary,
                    )
                )
            checks.append(self._schema_parity_check(replica))
            checks.append(self._debezium_check())
            return [(checks, replica)]

        return self._checks_step("preflight", checks_for)

    def _upgrade_replica(self) -> Step:
        def run(ctx: RunContext, state: CheckpointState) -> StepResult:
            orchestrator = UpgradeOrchestrator(
                self._deps.replica_inspector,
                self._deps.replica_actions,
                state=state,
                primary=self._plan.primary,
                logger=self._logger,
            )
            findings: list[Finding] = []
            for replica in self._plan.replicas:
                report = orchestrator.run(ctx, replica)
                findings.extend(report.findings)
                if report.blocked:
                    break
            return StepResult(findings)

        return MutatingStep("upgrade_replica", run)

    def _validate_replica(self) -> Step:
        def checks_for() -> list[tuple[list[Check], str]]:
            return [([self._schema_parity_check(replica)], replica) for replica in self._plan.replicas]

        return self._checks_step("validate_replica", checks_for)

    def _cdc_check(self) -> Step:
        return self._checks_step("cdc_check", lambda: [(self._cdc_checks(), "")])

    def _promote(self) -> Step:
        def run(ctx: RunContext, state: CheckpointState) -> StepResult:
            replica = self._plan.first_replica()
            checks = [*self._cdc_checks(), self._schema_parity_check(replica)]
            gate = PromotionGate(
                checks,
                confirmation_phrase=self._deps.confirmation_phrase,
                required_check_names=self._deps.required_checks,
                logger=self._logger,
            )
            report = gate.run(ctx, self._input(replica), self._deps.confirmation)
            findings = list(report.findings)
            if report.approved:
                state.set(promotion_key(self._plan.migration), True)
                findings.append(
                    Finding.info(
                        f"promotion of {replica!r} approved; perform the cutover manually",
                        replica=replica,
                        migration=self._plan.migration,
                    )
                )
            return StepResult(findings)

        return MutatingStep("promote", run)

    def _post_validation(self) -> Step:
        def checks_for() -> list[tuple[list[Check], str]]:
            groups: list[tuple[list[Check], str]] = [
                ([self._schema_parity_check(replica)], replica) for replica in self._plan.replicas
            ]
            groups.append((self._cdc_checks(), ""))
            return groups

        return self._checks_step("post_validation", checks_for)


def build_pipeline(plan: MigrationPlan, deps: PipelineDependencies) -> list[Step]:
    """Map each of the plan's step names onto a runnable step, in plan order."""
    plan.ensure_valid()
    return _PipelineBuilder(plan, deps).build()
