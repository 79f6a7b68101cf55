"""Read-only validations and the runner that aggregates them."""

from migratorx.checks.base import Check, CheckInput, CheckResult, ReadOnlyCheck
from migratorx.checks.runner import ChecksReport, ChecksRunner

__all__ = [
    "Check",
    "CheckInput",
    "CheckResult",
    "ChecksReport",
    "ChecksRunner",
    "ReadOnlyCheck",
]
