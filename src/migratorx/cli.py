"""Command-line entry point.

Every command prints ``{"summary": {...}, "findings": [...]}`` on stdout.
Configuration mistakes (unreadable plan, missing inspector input) become a
single BLOCK finding so the output shape never changes.
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from migratorx import __version__
from migratorx.audit.artifacts import ArtifactStore, AuditRecorder
from migratorx.audit.db import SqliteStore
from migratorx.backends.files import (
    DebeziumFileInspector,
    SchemaFileInspector,
    SchemaHistoryFileInspector,
    ServerFactsFileInspector,
)
from migratorx.backends.kafka_connect import KafkaConnectInspector
from migratorx.backends.static import NotConfiguredActions, SimulatedActions, StaticReplicaInspector
from migratorx.cdc.debezium import DebeziumHealthCheck, DebeziumInspector
from migratorx.cdc.schema_history import SchemaHistoryCheck
from migratorx.checks.base import Check, CheckInput
from migratorx.checks.mysql_compat import MySQLCompatibilityCheck
from migratorx.checks.runner import ChecksRunner
from migratorx.checks.schema_parity import SchemaParityCheck
from migratorx.config import Settings, load_settings
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import (
    ConfigurationError,
    MigratorError,
    RunCancelledError,
    StatePersistenceError,
)
from migratorx.logging_utils import configure_logging, get_logger
from migratorx.mysql.replica_upgrade import ReplicaActions, ReplicationStatus, UpgradeOrchestrator
from migratorx.plan.loader import load_plan
from migratorx.plan.models import MigrationPlan
from migratorx.report import build_payload, error_payload, payload_blocked, render_payload
from migratorx.state.base import CheckpointState
from migratorx.state.file_state import FileState
from migratorx.state.sqlite_state import SqliteState
from migratorx.workflow.pipeline import PipelineDependencies, build_pipeline
from migratorx.workflow.promotion import PromotionGate
from migratorx.workflow.runner import WorkflowRunner

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_BLOCKED = 2

Payload = dict[str, Any]


@dataclass
class Invocation:
    """Per-command wiring shared by the handlers."""

    args: argparse.Namespace
    settings: Settings
    ctx: RunContext
    logger: logging.Logger
    migration: str | None = None
    closers: list[Callable[[], None]] = field(default_factory=list)

    def load_plan(self) -> MigrationPlan:
        plan = load_plan(self.args.plan)
        self.migration = plan.migration
        return plan


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--plan", default="migration.yaml", help="Path to the migration plan (YAML or JSON)"
    )
    common.add_argument(
        "--fail-on-block",
        action="store_true",
        default=None,
        help="Exit with status 2 when the report contains a BLOCK finding",
    )
    common.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")
    common.add_argument("--log-level", default=None, help="Override MIGRATORX_LOG_LEVEL")

    schemas = argparse.ArgumentParser(add_help=False)
    schemas.add_argument("--schema-primary", default="", help="Primary schema snapshot (JSON)")
    schemas.add_argument("--schema-replica", default="", help="Replica schema snapshot (JSON)")
    schemas.add_argument(
        "--schema",
        action="append",
        default=[],
        metavar="HOST=PATH",
        help="Schema snapshot for a specific host; may be repeated",
    )

    cdc = argparse.ArgumentParser(add_help=False)
    cdc.add_argument("--cdc-status", default="", help="Debezium connector status (JSON)")
    cdc.add_argument(
        "--kafka-connect-url",
        default=None,
        help="Read connector status from Kafka Connect instead of a file",
    )
    cdc.add_argument(
        "--schema-history",
        default="",
        help="Schema history topic snapshot (JSON); enables the schema history check",
    )

    replica_flags = argparse.ArgumentParser(add_help=False)
    replica_flags.add_argument("--state", default=None, help="Checkpoint state path")
    replica_flags.add_argument(
        "--simulate", action="store_true", help="Simulate actions without touching MySQL"
    )
    replica_flags.add_argument(
        "--io-running",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Replica IO thread running",
    )
    replica_flags.add_argument(
        "--sql-running",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Replica SQL thread running",
    )

    parser = argparse.ArgumentParser(
        prog="migratorx",
        description="Gated, checkpointed database upgrade orchestration.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    plan_cmd = sub.add_parser("plan", parents=[common], help="Validate a migration plan")
    plan_cmd.set_defaults(handler=handle_plan, target=None)

    preflight = sub.add_parser(
        "preflight", parents=[common, schemas, cdc], help="Run read-only preflight checks"
    )
    preflight.add_argument(
        "--server-facts",
        default="",
        help="sql_mode and deprecated feature usage (JSON); enables the MySQL 5.7 -> 8.0 check",
    )
    preflight.set_defaults(handler=handle_preflight, target=None)

    upgrade = sub.add_parser("upgrade", help="Upgrade operations")
    upgrade_sub = upgrade.add_subparsers(dest="upgrade_target")
    upgrade_replica = upgrade_sub.add_parser(
        "replica", parents=[common, replica_flags], help="Upgrade one replica"
    )
    upgrade_replica.add_argument("target", metavar="name")
    upgrade_replica.set_defaults(handler=handle_upgrade_replica)

    validate = sub.add_parser("validate", help="Schema parity validation")
    validate_sub = validate.add_subparsers(dest="validate_target")
    validate_replica = validate_sub.add_parser(
        "replica", parents=[common, schemas], help="Compare one replica with the primary"
    )
    validate_replica.add_argument("target", metavar="name")
    validate_replica.set_defaults(handler=handle_validate_replica)
    validate_primary = validate_sub.add_parser(
        "primary", parents=[common, schemas], help="Compare the primary with the first replica"
    )
    validate_primary.set_defaults(handler=handle_validate_primary, target=None)

    cdc_cmd = sub.add_parser("cdc", help="CDC health")
    cdc_sub = cdc_cmd.add_subparsers(dest="cdc_target")
    cdc_check = cdc_sub.add_parser("check", parents=[common, cdc], help="Check connector health")
    cdc_check.set_defaults(handler=handle_cdc_check, target=None)

    promote = sub.add_parser(
        "promote", parents=[common, schemas, cdc], help="Gate the promotion of the first replica"
    )
    promote.add_argument("--confirm", default="", help="Confirmation phrase")
    promote.add_argument("--phrase", default=None, help="Required confirmation phrase")
    promote.set_defaults(handler=handle_promote, target=None)

    run = sub.add_parser(
        "run",
        parents=[common, schemas, cdc, replica_flags],
        help="Execute the plan's steps in order",
    )
    run.add_argument(
        "--allow-mutations",
        action="store_true",
        default=None,
        help="Permit mutating steps (replica upgrade, promotion)",
    )
    run.add_argument("--confirm", default="", help="Confirmation phrase for the promote step")
    run.add_argument("--phrase", default=None, help="Required confirmation phrase")
    run.add_argument("--server-facts", default="", help="Enables the MySQL 5.7 -> 8.0 check")
    run.set_defaults(handler=handle_run, target=None)

    return parser


def _schema_inspector(args: argparse.Namespace, primary: str, replica: str) -> SchemaFileInspector:
    paths: dict[str, str] = {}
    for entry in args.schema:
        host, sep, path = entry.partition("=")
        if not sep or not host.strip() or not path.strip():
            raise ConfigurationError(f"--schema expects HOST=PATH, got {entry!r}")
        paths[host.strip()] = path.strip()
    if args.schema_primary and primary:
        paths.setdefault(primary, args.schema_primary)
    if args.schema_replica and replica:
        paths.setdefault(replica, args.schema_replica)
    return SchemaFileInspector(paths)


def _debezium_inspector(inv: Invocation) -> DebeziumInspector:
    if inv.args.cdc_status:
        return DebeziumFileInspector(inv.args.cdc_status)
    url = inv.args.kafka_connect_url or inv.settings.cdc.kafka_connect_url
    if url:
        return KafkaConnectInspector(url, timeout_seconds=inv.settings.cdc.http_timeout_seconds)
    return DebeziumFileInspector(None)


def _debezium_check(inv: Invocation, plan: MigrationPlan) -> DebeziumHealthCheck:
    return DebeziumHealthCheck(
        _debezium_inspector(inv),
        connector=plan.cdc.connector.strip(),
        restart_loop_window=timedelta(seconds=inv.settings.cdc.restart_loop_window_seconds),
        restart_loop_max=inv.settings.cdc.restart_loop_max,
    )


def _cdc_checks(inv: Invocation, plan: MigrationPlan) -> list[Check]:
    checks: list[Check] = [_debezium_check(inv, plan)]
    topic = (plan.cdc.schema_history_topic or "").strip()
    if inv.args.schema_history and topic:
        checks.append(
            SchemaHistoryCheck(
                SchemaHistoryFileInspector(inv.args.schema_history),
                topic=topic,
                expected_tables=plan.cdc.tables,
            )
        )
    return checks


def _run_checks(inv: Invocation, checks: Sequence[Check], check_input: CheckInput) -> Payload:
    report = ChecksRunner(checks, logger=inv.logger).run(inv.ctx, check_input)
    return build_payload(report.findings(), report.summary)


def _open_state(inv: Invocation) -> CheckpointState:
    path = inv.args.state or inv.settings.state.path
    if inv.settings.state.backend == "sqlite":
        try:
            store = SqliteStore(path, wal=inv.settings.audit.sqlite_wal)
        except (sqlite3.Error, OSError) as exc:
            raise StatePersistenceError(f"Failed to open state database {path}: {exc}") from exc
        inv.closers.append(store.close)
        return SqliteState(store)
    return FileState(path)


def _replica_actions(args: argparse.Namespace) -> ReplicaActions:
    if args.simulate:
        return SimulatedActions()
    return NotConfiguredActions()


def _replica_inspector(args: argparse.Namespace, plan: MigrationPlan) -> StaticReplicaInspector:
    return StaticReplicaInspector(
        {plan.primary},
        ReplicationStatus(io_thread_running=args.io_running, sql_thread_running=args.sql_running),
    )


def handle_plan(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    return build_payload([Finding.info(f"plan {plan.migration!r} is valid", migration=plan.migration)])


def handle_preflight(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    replica = plan.first_replica()
    schema_inspector = _schema_inspector(inv.args, plan.primary, replica)
    checks: list[Check] = []
    if inv.args.server_facts:
        checks.append(
            MySQLCompatibilityCheck(
                ServerFactsFileInspector(inv.args.server_facts),
                schema_inspector,
                primary_host=plan.primary,
            )
        )
    checks.append(SchemaParityCheck(schema_inspector, primary_host=plan.primary, replica_host=replica))
    checks.append(_debezium_check(inv, plan))
    return _run_checks(inv, checks, CheckInput.from_plan(plan, replica))


def handle_upgrade_replica(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    replica = inv.args.target
    orchestrator = UpgradeOrchestrator(
        _replica_inspector(inv.args, plan),
        _replica_actions(inv.args),
        state=_open_state(inv),
        primary=plan.primary,
        logger=inv.logger,
    )
    report = orchestrator.run(inv.ctx, replica)
    return build_payload(report.findings, report.summary)


def _validate(inv: Invocation, plan: MigrationPlan, replica: str) -> Payload:
    check = SchemaParityCheck(
        _schema_inspector(inv.args, plan.primary, replica),
        primary_host=plan.primary,
        replica_host=replica,
    )
    return _run_checks(inv, [check], CheckInput.from_plan(plan, replica))


def handle_validate_replica(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    return _validate(inv, plan, inv.args.target)


def handle_validate_primary(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    return _validate(inv, plan, plan.first_replica())


def handle_cdc_check(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    return _run_checks(inv, _cdc_checks(inv, plan), CheckInput.from_plan(plan))


def handle_promote(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    replica = plan.first_replica()
    checks = [
        SchemaParityCheck(
            _schema_inspector(inv.args, plan.primary, replica),
            primary_host=plan.primary,
            replica_host=replica,
        ),
        *_cdc_checks(inv, plan),
    ]
    gate = PromotionGate(
        checks,
        confirmation_phrase=inv.args.phrase or inv.settings.promotion.phrase,
        required_check_names=inv.settings.promotion.required_checks,
        logger=inv.logger,
    )
    report = gate.run(inv.ctx, CheckInput.from_plan(plan, replica), inv.args.confirm)
    return build_payload(report.findings, report.summary)


def handle_run(inv: Invocation) -> Payload:
    plan = inv.load_plan()
    args = inv.args
    schema_history = (
        SchemaHistoryFileInspector(args.schema_history) if args.schema_history else None
    )
    deps = PipelineDependencies(
        schema_inspector=_schema_inspector(args, plan.primary, plan.first_replica()),
        debezium_inspector=_debezium_inspector(inv),
        replica_inspector=_replica_inspector(args, plan),
        replica_actions=_replica_actions(args),
        kafka_inspector=schema_history,
        mysql_inspector=ServerFactsFileInspector(args.server_facts) if args.server_facts else None,
        confirmation=args.confirm,
        confirmation_phrase=args.phrase or inv.settings.promotion.phrase,
        required_checks=list(inv.settings.promotion.required_checks),
        restart_loop_window=timedelta(seconds=inv.settings.cdc.restart_loop_window_seconds),
        restart_loop_max=inv.settings.cdc.restart_loop_max,
        logger=inv.logger,
    )
    allow_mutations = args.allow_mutations
    if allow_mutations is None:
        allow_mutations = inv.settings.execution.allow_mutations
    runner = WorkflowRunner(
        build_pipeline(plan, deps),
        state=_open_state(inv),
        allow_mutations=allow_mutations,
        logger=inv.logger,
    )
    try:
        summary = runner.run(inv.ctx)
    except RunCancelledError as exc:
        findings = [
            *runner.findings(),
            Finding.block(f"run {exc.reason} before step {exc.step!r}", step=exc.step),
        ]
        return build_payload(findings)
    return build_payload(runner.findings(), summary)


def _recorder(settings: Settings) -> tuple[AuditRecorder, SqliteStore] | None:
    if not settings.audit.enabled:
        return None
    store = SqliteStore(settings.audit.sqlite_path, wal=settings.audit.sqlite_wal)
    return AuditRecorder(store, ArtifactStore(settings.audit.artifact_path)), store


def _finish_audit(
    audit: tuple[AuditRecorder, SqliteStore],
    run_id: str,
    payload: Payload | None,
    inv: Invocation,
) -> None:
    recorder, store = audit
    try:
        if payload is None:
            # The handler raised something other than a MigratorError.
            record = recorder.finish(
                run_id, build_payload([]), status="failed", migration=inv.migration
            )
        else:
            record = recorder.finish(run_id, payload, migration=inv.migration)
        if record is not None:
            inv.logger.info("audit run %s recorded (%s)", run_id, record.status)
    finally:
        store.close()


def _command_name(args: argparse.Namespace) -> str:
    parts = [args.command]
    for attr in ("upgrade_target", "validate_target", "cdc_target"):
        value = getattr(args, attr, None)
        if value:
            parts.append(value)
    return " ".join(parts)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    try:
        settings = load_settings()
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE

    configure_logging(args.log_level)
    logger = get_logger("migratorx")
    ctx = RunContext.with_timeout(args.timeout) if args.timeout else RunContext.background()
    inv = Invocation(args=args, settings=settings, ctx=ctx, logger=logger)

    command = _command_name(args)
    audit = _recorder(settings)
    run_id = audit[0].start(command, target=args.target) if audit else None

    payload: Payload | None = None
    try:
        try:
            payload = handler(inv)
        except MigratorError as exc:
            logger.warning("%s failed: %s", command, exc)
            payload = error_payload(str(exc), command=command)
        finally:
            for close in inv.closers:
                close()
    finally:
        if audit is not None and run_id is not None:
            _finish_audit(audit, run_id, payload, inv)

    sys.stdout.write(render_payload(payload) + "\n")
    sys.stdout.flush()

    fail_on_block = args.fail_on_block
    if fail_on_block is None:
        fail_on_block = settings.execution.fail_on_block
    if fail_on_block and payload_blocked(payload):
        return EXIT_BLOCKED
    return EXIT_OK
