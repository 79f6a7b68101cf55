"""Idempotent, checkpointed upgrade of a single MySQL replica.

The flow is three phases, each guarded by its own checkpoint:

1. stop replication
2. run the upgrade
3. start replication

A phase whose checkpoint is already set is skipped. A failed phase is not
checkpointed, so re-running the orchestrator retries exactly that phase and
nothing before it. Before any mutation the live replication threads are
compared with the recorded checkpoints to surface drift as WARN findings.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding, Summary, summarize
from migratorx.errors import ConfigurationError
from migratorx.state.base import CheckpointKey, CheckpointState, MemoryState

CHECKPOINT_SCOPE = "replica_upgrade"


@dataclass(frozen=True)
class ReplicationStatus:
    io_thread_running: bool
    sql_thread_running: bool

    @property
    def running(self) -> bool:
        return self.io_thread_running and self.sql_thread_running

    @property
    def stopped(self) -> bool:
        return not self.io_thread_running and not self.sql_thread_running


class ReplicaInspector(ABC):
    @abstractmethod
    def is_primary(self, ctx: RunContext, host: str) -> bool:
        """Return whether ``host`` currently accepts writes as the primary."""

    @abstractmethod
    def replication_status(self, ctx: RunContext, replica: str) -> ReplicationStatus:
        """Return the IO/SQL thread state of ``replica``."""


class ReplicaActions(ABC):
    @abstractmethod
    def stop_replication(self, ctx: RunContext, replica: str) -> None: ...

    @abstractmethod
    def run_upgrade(self, ctx: RunContext, replica: str) -> None: ...

    @abstractmethod
    def start_replication(self, ctx: RunContext, replica: str) -> None: ...


@dataclass
class UpgradeReport:
    summary: Summary = field(default_factory=Summary)
    findings: list[Finding] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.summary.blocked


def checkpoint_key(replica: str, phase: str) -> CheckpointKey:
    return CheckpointKey(CHECKPOINT_SCOPE, replica, phase)


@dataclass(frozen=True)
class _Phase:
    checkpoint: str
    action: Callable[[ReplicaActions], Callable[[RunContext, str], None]]
    activity: str
    done_message: str
    skipped_message: str
    failure_message: str


_PHASES: tuple[_Phase, ...] = (
    _Phase(
        checkpoint="stopped",
        action=lambda actions: actions.stop_replication,
        activity="stopping replication",
        done_message="replication stopped",
        skipped_message="replication already stopped",
        failure_message="failed to stop replication",
    ),
    _Phase(
        checkpoint="upgraded",
        action=lambda actions: actions.run_upgrade,
        activity="running upgrade",
        done_message="upgrade completed",
        skipped_message="upgrade already completed",
        failure_message="upgrade failed",
    ),
    _Phase(
        checkpoint="resumed",
        action=lambda actions: actions.start_replication,
        activity="starting replication",
        done_message="replication started",
        skipped_message="replication already started",
        failure_message="failed to start replication",
    ),
)


class UpgradeOrchestrator:
    def __init__(
        self,
        inspector: ReplicaInspector | None,
        actions: ReplicaActions | None,
        state: CheckpointState | None = None,
        primary: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self._inspector = inspector
        self._actions = actions
        self._state = state if state is not None else MemoryState()
        self._primary = primary.strip()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def state(self) -> CheckpointState:
        return self._state

    def run(self, ctx: RunContext, replica: str) -> UpgradeReport:
        """Upgrade ``replica``; business outcomes are findings, never exceptions."""
        if self._inspector is None or self._actions is None:
            raise ConfigurationError("inspector and actions are required")

        replica = (replica or "").strip()
        if not replica:
            return _single(Finding.block("replica is required"))

        if self._primary and replica == self._primary:
            self._logger.warning("refusing to upgrade configured primary %s", replica)
            return _single(Finding.block("refusing to upgrade primary", replica=replica))
        try:
            is_primary = self._inspector.is_primary(ctx, replica)
        except Exception as exc:
            return _single(
                Finding.block(f"failed to determine primary status: {exc}", replica=replica)
            )
        if is_primary:
            self._logger.warning("refusing to upgrade %s: inspector reports it as primary", replica)
            return _single(Finding.block("refusing to upgrade primary", replica=replica))

        findings: list[Finding] = []
        try:
            status = self._inspector.replication_status(ctx, replica)
        except Exception as exc:
            findings.append(
                Finding.warn(f"unable to read replication status: {exc}", replica=replica)
            )
        else:
            findings.extend(self._detect_partial_progress(replica, status))

        for phase in _PHASES:
            key = checkpoint_key(replica, phase.checkpoint)
            if self._state.get_bool(key):
                findings.append(Finding.info(phase.skipped_message, replica=replica))
                continue
            if ctx.done:
                findings.append(
                    Finding.block(
                        f"replica upgrade interrupted before {phase.activity}: {ctx.reason}",
                        replica=replica,
                    )
                )
                return UpgradeReport(summary=summarize(findings), findings=findings)

            self._logger.info("%s on %s", phase.activity, replica)
            try:
                phase.action(self._actions)(ctx, replica)
            except Exception as exc:
                self._logger.error("%s on %s failed: %s", phase.activity, replica, exc)
                findings.append(
                    Finding.block(f"{phase.failure_message}: {exc}", replica=replica)
                )
                return UpgradeReport(summary=summarize(findings), findings=findings)
            self._state.set(key, True)
            findings.append(Finding.info(phase.done_message, replica=replica))

        return UpgradeReport(summary=summarize(findings), findings=findings)

    def _detect_partial_progress(self, replica: str, status: ReplicationStatus) -> list[Finding]:
        stopped = self._state.get_bool(checkpoint_key(replica, "stopped"))
        resumed = self._state.get_bool(checkpoint_key(replica, "resumed"))

        findings: list[Finding] = []
        if status.stopped and not stopped:
            findings.append(
                Finding.warn(
                    "replication appears stopped but checkpoint is missing",
                    replica=replica,
                    io_thread_running=status.io_thread_running,
                    sql_thread_running=status.sql_thread_running,
                )
            )
        if status.running and stopped and not resumed:
            findings.append(
                Finding.warn(
                    "checkpoint indicates replication stopped but status is running",
                    replica=replica,
                )
            )
        if status.stopped and resumed:
            findings.append(
                Finding.warn(
                    "checkpoint indicates replication started but status is stopped",
                    replica=replica,
                )
            )
        for finding in findings:
            self._logger.warning("partial progress on %s: %s", replica, finding.message)
        return findings


def _single(finding: Finding) -> UpgradeReport:
    return UpgradeReport(summary=summarize([finding]), findings=[finding])
