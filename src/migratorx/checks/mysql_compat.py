"""MySQL 5.7 -> 8.0 compatibility signals on the primary."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from migratorx.checks.base import Check, CheckInput
from migratorx.checks.schema_parity import SchemaInspector
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import ConfigurationError, InspectorError

# Modes removed from sql_mode in 8.0.
DEFAULT_DEPRECATED_SQL_MODES: tuple[str, ...] = (
    "NO_AUTO_CREATE_USER",
    "DB2",
    "MAXDB",
    "MSSQL",
    "MYSQL323",
    "MYSQL40",
    "ORACLE",
    "POSTGRESQL",
    "NO_FIELD_OPTIONS",
    "NO_KEY_OPTIONS",
    "NO_TABLE_OPTIONS",
)
DEFAULT_DEPRECATED_FEATURES: tuple[str, ...] = (
    "QUERY_CACHE",
    "PASSWORD()",
    "ENCODE()",
    "DECODE()",
    "DES_ENCRYPT()",
    "DES_DECRYPT()",
    "GROUP BY ASC/DESC",
)
DEFAULT_RISKY_CHARSETS: tuple[str, ...] = ("utf8", "utf8mb3")
DEFAULT_RISKY_COLLATIONS: tuple[str, ...] = ("utf8_general_ci", "utf8mb3_general_ci")


class MySQLInspector(ABC):
    @abstractmethod
    def sql_mode(self, ctx: RunContext, host: str) -> str:
        """Return the server's comma-separated sql_mode."""

    @abstractmethod
    def deprecated_features_used(self, ctx: RunContext, host: str) -> list[str]:
        """Return identifiers of deprecated features observed in use."""


class MySQLCompatibilityCheck(Check):
    """Flags sql_mode, charset/collation, deprecated-feature and primary-key risks.

    Deprecated features and tables without a primary key (which break row-based
    CDC) are BLOCK; everything else is WARN.
    """

    def __init__(
        self,
        inspector: MySQLInspector | None,
        schema_inspector: SchemaInspector | None,
        primary_host: str = "",
        deprecated_sql_modes: Sequence[str] = DEFAULT_DEPRECATED_SQL_MODES,
        deprecated_features: Sequence[str] = DEFAULT_DEPRECATED_FEATURES,
        risky_charsets: Sequence[str] = DEFAULT_RISKY_CHARSETS,
        risky_collations: Sequence[str] = DEFAULT_RISKY_COLLATIONS,
    ) -> None:
        self._inspector = inspector
        self._schema_inspector = schema_inspector
        self._primary_host = primary_host
        self._deprecated_sql_modes = list(deprecated_sql_modes)
        self._deprecated_features = list(deprecated_features)
        self._risky_charsets = list(risky_charsets)
        self._risky_collations = list(risky_collations)

    @property
    def name(self) -> str:
        return "mysql_compat_57_80"

    @property
    def read_only(self) -> bool:
        return True

    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        if self._inspector is None:
            raise ConfigurationError("mysql inspector is required")
        if self._schema_inspector is None:
            raise ConfigurationError("schema inspector is required")
        host = (self._primary_host or check_input.primary_host).strip()
        if not host:
            raise ConfigurationError("primary host is required")

        findings: list[Finding] = []

        source, target = check_input.source_version, check_input.target_version
        if (source or target) and (source != "5.7" or target != "8.0"):
            findings.append(
                Finding.warn(
                    "compatibility check tuned for 5.7 -> 8.0 upgrades",
                    source_version=source,
                    target_version=target,
                )
            )

        try:
            mode_value = self._inspector.sql_mode(ctx, host)
        except Exception as exc:
            raise InspectorError(f"failed to read sql_mode: {exc}") from exc
        modes = _upper_set(mode_value.split(","))
        for mode in self._deprecated_sql_modes:
            if mode.upper() in modes:
                findings.append(
                    Finding.warn(f"sql_mode includes deprecated mode {mode!r} for 8.0", mode=mode)
                )

        try:
            features_used = self._inspector.deprecated_features_used(ctx, host)
        except Exception as exc:
            raise InspectorError(f"failed to read deprecated features: {exc}") from exc
        used = _upper_set(features_used)
        for feature in self._deprecated_features:
            if feature.upper() in used:
                findings.append(
                    Finding.block(f"deprecated feature detected: {feature!r}", feature=feature)
                )

        try:
            schema = self._schema_inspector.schema(ctx, host)
        except Exception as exc:
            raise InspectorError(f"failed to read schema: {exc}") from exc
        for table in schema.tables:
            if not table.primary_key:
                findings.append(
                    Finding.block(
                        f"table {table.name!r} missing primary key (CDC risk)", table=table.name
                    )
                )
            for column in table.columns:
                if _contains_insensitive(self._risky_charsets, column.charset):
                    findings.append(
                        Finding.warn(
                            f"table {table.name!r} column {column.name!r} uses risky charset {column.charset!r}",
                            table=table.name,
                            column=column.name,
                            charset=column.charset,
                        )
                    )
                if _contains_insensitive(self._risky_collations, column.collation):
                    findings.append(
                        Finding.warn(
                            f"table {table.name!r} column {column.name!r} uses risky collation {column.collation!r}",
                            table=table.name,
                            column=column.name,
                            collation=column.collation,
                        )
                    )

        if not findings:
            findings.append(Finding.info("no MySQL 5.7 -> 8.0 compatibility risks detected"))
        return findings


def _upper_set(values: Iterable[str]) -> set[str]:
    return {value.strip().upper() for value in values if value and value.strip()}


def _contains_insensitive(values: Sequence[str], candidate: str) -> bool:
    if not candidate:
        return False
    upper = candidate.upper()
    return any(value.upper() == upper for value in values)
