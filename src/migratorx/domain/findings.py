"""Severity-ranked findings and their aggregation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any


class Severity(IntEnum):
    INFO = 0
    WARN = 1
    BLOCK = 2

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Finding:
    """A single observation with a severity, a message and free-form metadata.

    The message must not be blank. Metadata is copied into a read-only mapping
    so a finding cannot change after it has been produced.
    """

    severity: Severity
    message: str
    meta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity(self.severity))
        if not self.message or not self.message.strip():
            raise ValueError("Finding message must not be empty")
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta or {})))

    @classmethod
    def info(cls, message: str, **meta: Any) -> "Finding":
        return cls(Severity.INFO, message, meta)

    @classmethod
    def warn(cls, message: str, **meta: Any) -> "Finding":
        return cls(Severity.WARN, message, meta)

    @classmethod
    def block(cls, message: str, **meta: Any) -> "Finding":
        return cls(Severity.BLOCK, message, meta)

    def with_meta(self, **extra: Any) -> "Finding":
        """Return a copy with ``extra`` keys added where not already present."""
        merged = dict(extra)
        merged.update(self.meta)
        return Finding(self.severity, self.message, merged)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"severity": str(self.severity), "message": self.message}
        if self.meta:
            payload["meta"] = dict(self.meta)
        return payload


@dataclass(frozen=True)
class Summary:
    info: int = 0
    warn: int = 0
    block: int = 0

    def __add__(self, other: object) -> "Summary":
        if not isinstance(other, Summary):
            return NotImplemented
        return Summary(
            info=self.info + other.info,
            warn=self.warn + other.warn,
            block=self.block + other.block,
        )

    @property
    def blocked(self) -> bool:
        return self.block > 0

    @property
    def clean(self) -> bool:
        return self.warn == 0 and self.block == 0

    def count(self, severity: Severity) -> int:
        if severity is Severity.INFO:
            return self.info
        if severity is Severity.WARN:
            return self.warn
        return self.block

    def to_dict(self) -> dict[str, int]:
        return {"info": self.info, "warn": self.warn, "block": self.block}

    def __str__(self) -> str:
        return f"Summary: {self.info} INFO / {self.warn} WARN / {self.block} BLOCK"


def summarize(findings: Iterable[Finding]) -> Summary:
    info = warn = block = 0
    for finding in findings:
        if finding.severity is Severity.INFO:
            info += 1
        elif finding.severity is Severity.WARN:
            warn += 1
        else:
            block += 1
    return Summary(info=info, warn=warn, block=block)


def has_block(findings: Iterable[Finding]) -> bool:
    return any(f.severity is Severity.BLOCK for f in findings)


class ResultAggregator:
    """Folds batches of findings and tracks whether progression is still allowed.

    Once a BLOCK has been observed the aggregator stays blocked.
    """

    def __init__(self) -> None:
        self._summary = Summary()
        self._findings: list[Finding] = []

    def add_findings(self, findings: Iterable[Finding]) -> bool:
        batch = list(findings)
        self._findings.extend(batch)
        self._summary = self._summary + summarize(batch)
        return not self.blocked

    @property
    def summary(self) -> Summary:
        return self._summary

    @property
    def findings(self) -> list[Finding]:
        return list(self._findings)

    @property
    def blocked(self) -> bool:
        return self._summary.blocked

    def summary_string(self) -> str:
        return str(self._summary)
