"""Debezium connector and task health, including restart-loop detection."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from migratorx.checks.base import Check, CheckInput
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import ConfigurationError
from migratorx.utils.keys import normalize_keys
from migratorx.utils.time import ensure_utc, utc_now

RUNNING = "RUNNING"
DEFAULT_RESTART_LOOP_WINDOW = timedelta(minutes=10)
DEFAULT_RESTART_LOOP_MAX = 3

_logger = logging.getLogger(__name__)


class TaskStatus(BaseModel):
    id: int = Field(default=0)
    state: str = Field(default="")
    worker: str = Field(default="")
    trace: str = Field(default="")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        data = normalize_keys(data, set(cls.model_fields) | {"worker_id"})
        if isinstance(data, dict) and "worker_id" in data and "worker" not in data:
            data["worker"] = data.pop("worker_id")
        return data

    @field_validator("state", "worker", "trace", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ConnectorStatus(BaseModel):
    """Point-in-time snapshot of a connector; never modified by the checks."""

    name: str = Field(default="")
    connector_state: str = Field(default="")
    connector_worker: str = Field(default="")
    tasks: list[TaskStatus] = Field(default_factory=list)
    restart_count: int = Field(default=0, ge=0)
    last_restart_at: datetime | None = Field(default=None)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        data = normalize_keys(data, set(cls.model_fields))
        # Kafka Connect REST nests state under {"connector": {"state", "worker_id"}}.
        if isinstance(data, dict) and isinstance(data.get("connector"), dict):
            nested = data.pop("connector")
            data.setdefault("connector_state", nested.get("state", ""))
            data.setdefault("connector_worker", nested.get("worker_id", ""))
        return data

    @field_validator("connector_state", "connector_worker", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tasks", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class DebeziumInspector(ABC):
    @abstractmethod
    def connector_status(self, ctx: RunContext, connector: str) -> ConnectorStatus:
        """Return the live status of ``connector``."""


def is_restart_loop(
    status: ConnectorStatus,
    window: timedelta,
    max_restarts: int,
    now: datetime,
) -> bool:
    if status.last_restart_at is None:
        return False
    if status.restart_count < max_restarts:
        return False
    return ensure_utc(now) - ensure_utc(status.last_restart_at) <= window


class DebeziumHealthCheck(Check):
    """BLOCKs on a non-RUNNING connector, any non-RUNNING task, or a restart loop.

    The three conditions are evaluated independently and all reported together.
    """

    def __init__(
        self,
        inspector: DebeziumInspector | None,
        connector: str = "",
        restart_loop_window: timedelta | None = None,
        restart_loop_max: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._inspector = inspector
        self._connector = connector
        self._window = restart_loop_window or DEFAULT_RESTART_LOOP_WINDOW
        self._max = restart_loop_max or DEFAULT_RESTART_LOOP_MAX
        self._clock = clock

    @property
    def name(self) -> str:
        return "cdc_debezium_health"

    @property
    def read_only(self) -> bool:
        return True

    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        if self._inspector is None:
            raise ConfigurationError("debezium inspector is required")
        connector = (self._connector or check_input.cdc_connector).strip()
        if not connector:
            raise ConfigurationError("connector name is required")

        try:
            status = self._inspector.connector_status(ctx, connector)
        except Exception as exc:
            _logger.warning("failed to read status for connector %s: %s", connector, exc)
            return [
                Finding.block(
                    f"failed to read Debezium connector status: {exc}", connector=connector
                )
            ]

        name = status.name or connector
        findings: list[Finding] = []
        if status.connector_state != RUNNING:
            findings.append(
                Finding.block(
                    f"connector {name!r} is {status.connector_state or 'UNKNOWN'} (expected RUNNING)",
                    connector=name,
                    state=status.connector_state,
                )
            )

        for task in status.tasks:
            if task.state != RUNNING:
                findings.append(
                    Finding.block(
                        f"connector {name!r} task {task.id} is {task.state or 'UNKNOWN'}",
                        connector=name,
                        task_id=task.id,
                        state=task.state,
                        trace=task.trace,
                    )
                )

        if is_restart_loop(status, self._window, self._max, self._clock()):
            findings.append(
                Finding.block(
                    f"connector {name!r} appears to be in a restart loop "
                    f"({status.restart_count} restarts within {_format_window(self._window)})",
                    connector=name,
                    restart_count=status.restart_count,
                    window=_format_window(self._window),
                    last_restart_at=status.last_restart_at.isoformat() if status.last_restart_at else None,
                )
            )

        if not findings:
            findings.append(
                Finding.info(f"connector {name!r} and tasks are RUNNING", connector=name)
            )
        return findings


def _format_window(window: timedelta) -> str:
    seconds = int(window.total_seconds())
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"
