"""Human-confirmed gate in front of the irreversible promotion."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from migratorx.checks.base import Check, CheckInput
from migratorx.checks.runner import ChecksRunner
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding, Summary
from migratorx.errors import ConfigurationError

DEFAULT_REQUIRED_CHECKS: tuple[str, ...] = ("cdc_debezium_health", "schema_parity")


@dataclass
class PromotionReport:
    summary: Summary = field(default_factory=Summary)
    findings: list[Finding] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        return not self.summary.blocked


class PromotionGate:
    """Promotion needs the exact confirmation phrase, every required check
    present, and a revalidation with no WARN and no BLOCK findings.
    """

    def __init__(
        self,
        checks: Sequence[Check],
        confirmation_phrase: str,
        required_check_names: Sequence[str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._checks = list(checks)
        self._confirmation_phrase = confirmation_phrase
        self._required = list(required_check_names or DEFAULT_REQUIRED_CHECKS)
        self._logger = logger or logging.getLogger(__name__)

    @property
    def required_check_names(self) -> list[str]:
        return list(self._required)

    def run(self, ctx: RunContext, check_input: CheckInput, confirmation: str) -> PromotionReport:
        if not (self._confirmation_phrase or "").strip():
            raise ConfigurationError("confirmation phrase is required")

        if confirmation != self._confirmation_phrase:
            self._logger.warning("promotion refused: confirmation phrase mismatch")
            return _single(
                Finding.block(
                    "promotion requires explicit confirmation",
                    required=self._confirmation_phrase,
                )
            )

        missing = self.missing_checks()
        if missing:
            self._logger.warning("promotion refused: missing required checks %s", missing)
            return _single(
                Finding.block(
                    f"promotion requires checks: {', '.join(missing)}",
                    missing=missing,
                )
            )

        report = ChecksRunner(self._checks, logger=self._logger).run(ctx, check_input)
        summary = report.summary
        findings = report.findings()
        if not summary.clean:
            findings.append(
                Finding.block(
                    f"promotion blocked due to WARN/BLOCK findings "
                    f"(WARN={summary.warn}, BLOCK={summary.block})",
                    warn=summary.warn,
                    block=summary.block,
                )
            )
            summary = summary + Summary(block=1)
            self._logger.warning("promotion blocked (%s)", summary)
        else:
            self._logger.info("promotion revalidation clean (%s)", summary)
        return PromotionReport(summary=summary, findings=findings)

    def missing_checks(self) -> list[str]:
        present = {check.name for check in self._checks}
        return [name for name in self._required if name not in present]


def _single(finding: Finding) -> PromotionReport:
    return PromotionReport(summary=Summary(block=1), findings=[finding])
