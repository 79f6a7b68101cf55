"""Check contract and shared input."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding

if TYPE_CHECKING:
    from migratorx.plan.models import MigrationPlan


@dataclass(frozen=True)
class CheckInput:
    """Plan-derived parameters shared by every check in a run."""

    source_version: str = ""
    target_version: str = ""
    primary_host: str = ""
    replica_host: str = ""
    cdc_connector: str = ""

    @classmethod
    def from_plan(cls, plan: "MigrationPlan", replica_host: str = "") -> "CheckInput":
        return cls(
            source_version=plan.source_version.strip(),
            target_version=plan.target_version.strip(),
            primary_host=plan.primary,
            replica_host=replica_host,
            cdc_connector=plan.cdc.connector.strip(),
        )


class Check(ABC):
    """A read-only validation that emits findings.

    ``run`` may raise; the runner turns any exception into a BLOCK for this
    check and moves on to the next one.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identifier used in findings and promotion requirements."""

    @property
    @abstractmethod
    def read_only(self) -> bool:
        """Whether the check is guaranteed not to mutate any system."""

    @abstractmethod
    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        """Inspect and report."""


@dataclass
class CheckResult:
    check_name: str
    findings: list[Finding] = field(default_factory=list)


CheckFn = Callable[[RunContext, CheckInput], list[Finding]]


class ReadOnlyCheck(Check):
    """Adapts a plain function into a read-only check."""

    def __init__(self, name: str, run_fn: CheckFn) -> None:
        self._name = name
        self._run_fn = run_fn

    @property
    def name(self) -> str:
        return self._name

    @property
    def read_only(self) -> bool:
        return True

    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        return self._run_fn(ctx, check_input)
