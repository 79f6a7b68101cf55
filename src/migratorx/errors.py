"""Exception types for configuration and precondition failures.

Operational risk (inspector failures, action failures, drift) is never raised;
it is reported as a ``Finding``. The exceptions here mean the caller wired
something up wrong and the invocation cannot produce a meaningful result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from migratorx.domain.findings import Summary


class MigratorError(Exception):
    """Base class for all migratorx errors."""


class ConfigurationError(MigratorError):
    """A required collaborator is missing or misconfigured."""


class PlanValidationError(ConfigurationError):
    """A migration plan failed validation."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(f"migration plan validation failed: {'; '.join(self.problems)}")


class PlanLoadError(ConfigurationError):
    """A migration plan file could not be read or decoded."""


class RunCancelledError(MigratorError):
    """The workflow was cancelled (or its deadline passed) at a step boundary."""

    def __init__(self, step: str, summary: "Summary", reason: str = "cancelled") -> None:
        self.step = step
        self.summary = summary
        self.reason = reason
        super().__init__(f"run {reason} before step {step!r}")


class StatePersistenceError(MigratorError):
    """A durable checkpoint store could not be read or written."""


class OperationFailed(MigratorError):
    """A check or step failed after producing some findings.

    Runners keep ``findings`` and append a BLOCK describing the failure.
    """

    def __init__(self, message: str, findings: list | None = None) -> None:
        self.findings = list(findings or [])
        super().__init__(message)


class InspectorError(MigratorError):
    """A read-only inspection of a live system failed (transport, decoding)."""


class ActionError(MigratorError):
    """A mutating action against a live system failed."""
