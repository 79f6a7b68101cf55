"""Kafka schema-history topic health and table coverage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from migratorx.checks.base import Check, CheckInput
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import ConfigurationError


class KafkaInspector(ABC):
    @abstractmethod
    def topic_exists(self, ctx: RunContext, topic: str) -> bool:
        """Return whether ``topic`` exists."""

    @abstractmethod
    def topic_readable(self, ctx: RunContext, topic: str) -> bool:
        """Return whether ``topic`` can be consumed."""

    @abstractmethod
    def schema_history_tables(self, ctx: RunContext, topic: str) -> list[str]:
        """Return the tables with DDL recorded in ``topic``."""


def missing_tables(expected: Iterable[str], covered: Iterable[str]) -> list[str]:
    """Expected tables absent from ``covered``, compared trimmed and case-insensitively."""
    covered_keys = {table.strip().lower() for table in covered}
    missing: list[str] = []
    reported: set[str] = set()
    for table in expected:
        key = table.strip().lower()
        if not key or key in covered_keys or key in reported:
            continue
        reported.add(key)
        missing.append(table.strip())
    return missing


class SchemaHistoryCheck(Check):
    """Any failure before coverage can be computed is a single BLOCK."""

    def __init__(
        self,
        inspector: KafkaInspector | None,
        topic: str,
        expected_tables: Sequence[str] = (),
    ) -> None:
        self._inspector = inspector
        self._topic = topic
        self._expected_tables = list(expected_tables)

    @property
    def name(self) -> str:
        return "cdc_schema_history"

    @property
    def read_only(self) -> bool:
        return True

    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        if self._inspector is None:
            raise ConfigurationError("kafka inspector is required")
        topic = (self._topic or "").strip()
        if not topic:
            raise ConfigurationError("schema history topic is required")

        try:
            exists = self._inspector.topic_exists(ctx, topic)
        except Exception as exc:
            return [Finding.block(f"failed to check schema history topic {topic!r}: {exc}", topic=topic)]
        if not exists:
            return [Finding.block(f"schema history topic {topic!r} is missing", topic=topic)]

        try:
            readable = self._inspector.topic_readable(ctx, topic)
        except Exception as exc:
            return [Finding.block(f"failed to read schema history topic {topic!r}: {exc}", topic=topic)]
        if not readable:
            return [Finding.block(f"schema history topic {topic!r} is not readable", topic=topic)]

        try:
            covered = self._inspector.schema_history_tables(ctx, topic)
        except Exception as exc:
            return [
                Finding.block(
                    f"failed to read schema history coverage for {topic!r}: {exc}", topic=topic
                )
            ]

        missing = missing_tables(self._expected_tables, covered)
        if missing:
            return [
                Finding.block(
                    f"schema history missing tables: {', '.join(missing)}",
                    topic=topic,
                    missing_tables=missing,
                )
            ]
        return [Finding.info(f"schema history topic {topic!r} is healthy", topic=topic)]
