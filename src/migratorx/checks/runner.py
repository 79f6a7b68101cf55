"""Runs read-only checks and aggregates their findings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from migratorx.checks.base import Check, CheckInput, CheckResult
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding, Summary, summarize
from migratorx.errors import ConfigurationError, OperationFailed


@dataclass
class ChecksReport:
    summary: Summary = field(default_factory=Summary)
    results: list[CheckResult] = field(default_factory=list)

    def findings(self) -> list[Finding]:
        """All findings in run order, each tagged with the check that produced it."""
        return [
            finding.with_meta(check=result.check_name)
            for result in self.results
            for finding in result.findings
        ]

    def result_for(self, check_name: str) -> CheckResult | None:
        for result in self.results:
            if result.check_name == check_name:
                return result
        return None


class ChecksRunner:
    """Executes every check in order; never stops early.

    A check that is not read-only is a wiring mistake and aborts the whole run
    with ``ConfigurationError`` before anything executes.
    """

    def __init__(self, checks: Sequence[Check], logger: logging.Logger | None = None) -> None:
        self._checks = list(checks)
        self._logger = logger or logging.getLogger(__name__)

    @property
    def checks(self) -> list[Check]:
        return list(self._checks)

    def run(self, ctx: RunContext, check_input: CheckInput) -> ChecksReport:
        for check in self._checks:
            if not check.read_only:
                raise ConfigurationError(f"check {check.name!r} is not read-only")

        summary = Summary()
        results: list[CheckResult] = []
        for check in self._checks:
            self._logger.info("running check: %s", check.name)
            findings = self._run_one(ctx, check, check_input)
            summary = summary + summarize(findings)
            results.append(CheckResult(check_name=check.name, findings=findings))
        self._logger.info("checks finished (%s)", summary)
        return ChecksReport(summary=summary, results=results)

    def _run_one(self, ctx: RunContext, check: Check, check_input: CheckInput) -> list[Finding]:
        findings: list[object]
        try:
            findings = list(check.run(ctx, check_input) or [])
        except OperationFailed as exc:
            self._logger.warning("check %s failed: %s", check.name, exc)
            findings = [*exc.findings, _check_error(check.name, exc)]
        except Exception as exc:
            self._logger.warning("check %s failed: %s", check.name, exc)
            findings = [_check_error(check.name, exc)]
        return enforce_messages(check.name, findings)


def _check_error(check_name: str, exc: Exception) -> Finding:
    return Finding.block(f"check error: {exc}", check=check_name)


def enforce_messages(check_name: str, findings: Sequence[object]) -> list[Finding]:
    """Replace anything that is not a finding with a usable message by a BLOCK."""
    out: list[Finding] = []
    for finding in findings:
        if isinstance(finding, Finding) and finding.message.strip():
            out.append(finding)
            continue
        out.append(
            Finding.block(
                f"check {check_name!r} emitted a finding without a message",
                check=check_name,
            )
        )
    return out
