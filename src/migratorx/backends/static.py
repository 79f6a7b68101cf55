"""Fixed-answer inspectors and stand-in replica actions."""

from __future__ import annotations

import logging

from migratorx.domain.context import RunContext
from migratorx.errors import ActionError
from migratorx.mysql.replica_upgrade import ReplicaActions, ReplicaInspector, ReplicationStatus

_logger = logging.getLogger(__name__)

_NOT_CONFIGURED = "replica actions not configured; use --simulate or provide an implementation"


class StaticReplicaInspector(ReplicaInspector):
    """Answers from values supplied by the operator."""

    def __init__(self, primary_hosts: set[str], status: ReplicationStatus) -> None:
        self._primary_hosts = {host.strip() for host in primary_hosts if host}
        self._status = status

    def is_primary(self, ctx: RunContext, host: str) -> bool:
        return host.strip() in self._primary_hosts

    def replication_status(self, ctx: RunContext, replica: str) -> ReplicationStatus:
        return self._status


class SimulatedActions(ReplicaActions):
    """Logs each action and succeeds without touching any server."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def _record(self, action: str, replica: str) -> None:
        _logger.info("simulated %s on %s", action, replica)
        self.calls.append((action, replica))

    def stop_replication(self, ctx: RunContext, replica: str) -> None:
        self._record("stop_replication", replica)

    def run_upgrade(self, ctx: RunContext, replica: str) -> None:
        self._record("run_upgrade", replica)

    def start_replication(self, ctx: RunContext, replica: str) -> None:
        self._record("start_replication", replica)


class NotConfiguredActions(ReplicaActions):
    """Every action fails; used when no real backend was selected."""

    def stop_replication(self, ctx: RunContext, replica: str) -> None:
        raise ActionError(_NOT_CONFIGURED)

    def run_upgrade(self, ctx: RunContext, replica: str) -> None:
        raise ActionError(_NOT_CONFIGURED)

    def start_replication(self, ctx: RunContext, replica: str) -> None:
        raise ActionError(_NOT_CONFIGURED)
