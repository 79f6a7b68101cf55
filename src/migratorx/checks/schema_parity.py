"""Structural diff between primary and replica schema snapshots."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from migratorx.checks.base import Check, CheckInput
from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding
from migratorx.errors import ConfigurationError, InspectorError
from migratorx.utils.keys import normalize_keys


class Column(BaseModel):
    name: str
    type: str = Field(default="")
    nullable: bool = Field(default=False)
    default: str | None = Field(default=None)
    charset: str = Field(default="")
    collation: str = Field(default="")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        return normalize_keys(data, set(cls.model_fields))

    @field_validator("charset", "collation", "type", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("default", mode="before")
    @classmethod
    def _default_as_text(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)


class Table(BaseModel):
    name: str
    columns: list[Column] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        return normalize_keys(data, set(cls.model_fields))

    @field_validator("columns", "primary_key", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class Schema(BaseModel):
    tables: list[Table] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        return normalize_keys(data, set(cls.model_fields))

    @field_validator("tables", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class SchemaInspector(ABC):
    @abstractmethod
    def schema(self, ctx: RunContext, host: str) -> Schema:
        """Return a schema snapshot for ``host``."""


def compare_schemas(primary: Schema, replica: Schema) -> list[Finding]:
    """Return every structural divergence of ``replica`` from ``primary``.

    An empty list means the schemas match. Tables are reported in primary
    order, then extra replica tables in replica order.
    """
    findings: list[Finding] = []
    primary_tables = {table.name: table for table in primary.tables}
    replica_tables = {table.name: table for table in replica.tables}

    for name, primary_table in primary_tables.items():
        replica_table = replica_tables.get(name)
        if replica_table is None:
            findings.append(Finding.block(f"table {name!r} missing on replica", table=name))
            continue
        findings.extend(
            _compare_primary_key(name, primary_table.primary_key, replica_table.primary_key)
        )
        findings.extend(_compare_columns(name, primary_table.columns, replica_table.columns))

    for name in replica_tables:
        if name not in primary_tables:
            findings.append(Finding.warn(f"extra table {name!r} exists on replica", table=name))

    return findings


def _compare_primary_key(table: str, primary_pk: list[str], replica_pk: list[str]) -> list[Finding]:
    if not primary_pk and not replica_pk:
        return []
    if not primary_pk:
        return [
            Finding.warn(
                f"table {table!r} has primary key on replica but not on primary", table=table
            )
        ]
    if not replica_pk:
        return [Finding.block(f"table {table!r} missing primary key on replica", table=table)]
    if list(primary_pk) != list(replica_pk):
        return [
            Finding.block(
                f"table {table!r} primary key mismatch",
                table=table,
                primary_pk=list(primary_pk),
                replica_pk=list(replica_pk),
            )
        ]
    return []


def _compare_columns(table: str, primary_cols: list[Column], replica_cols: list[Column]) -> list[Finding]:
    findings: list[Finding] = []
    primary_index = {column.name: column for column in primary_cols}
    replica_index = {column.name: column for column in replica_cols}

    for name, p_col in primary_index.items():
        r_col = replica_index.get(name)
        if r_col is None:
            findings.append(
                Finding.block(f"table {table!r} column {name!r} missing on replica", table=table, column=name)
            )
            continue

        if p_col.type != r_col.type:
            findings.append(
                Finding.block(
                    f"table {table!r} column {name!r} type mismatch",
                    table=table,
                    column=name,
                    primary_type=p_col.type,
                    replica_type=r_col.type,
                )
            )
        if p_col.nullable != r_col.nullable:
            findings.append(
                Finding.warn(
                    f"table {table!r} column {name!r} nullability differs",
                    table=table,
                    column=name,
                    primary_nullable=p_col.nullable,
                    replica_nullable=r_col.nullable,
                )
            )
        if p_col.default != r_col.default:
            findings.append(
                Finding.warn(
                    f"table {table!r} column {name!r} default differs",
                    table=table,
                    column=name,
                    primary_default=p_col.default,
                    replica_default=r_col.default,
                )
            )
        if p_col.collation != r_col.collation:
            findings.append(
                Finding.warn(
                    f"table {table!r} column {name!r} collation differs",
                    table=table,
                    column=name,
                    primary_collation=p_col.collation,
                    replica_collation=r_col.collation,
                )
            )

    for name in replica_index:
        if name not in primary_index:
            findings.append(
                Finding.warn(f"table {table!r} has extra column {name!r} on replica", table=table, column=name)
            )

    return findings


class SchemaParityCheck(Check):
    """Compares the primary schema against one replica's schema."""

    def __init__(
        self,
        inspector: SchemaInspector | None,
        primary_host: str = "",
        replica_host: str = "",
    ) -> None:
        self._inspector = inspector
        self._primary_host = primary_host
        self._replica_host = replica_host

    @property
    def name(self) -> str:
        return "schema_parity"

    @property
    def read_only(self) -> bool:
        return True

    def run(self, ctx: RunContext, check_input: CheckInput) -> list[Finding]:
        if self._inspector is None:
            raise ConfigurationError("schema inspector is required")
        primary_host = self._primary_host or check_input.primary_host
        replica_host = self._replica_host or check_input.replica_host
        if not primary_host or not replica_host:
            raise ConfigurationError("primary and replica hosts are required")

        try:
            primary = self._inspector.schema(ctx, primary_host)
        except Exception as exc:
            raise InspectorError(f"failed to read primary schema: {exc}") from exc
        try:
            replica = self._inspector.schema(ctx, replica_host)
        except Exception as exc:
            raise InspectorError(f"failed to read replica schema: {exc}") from exc

        findings = compare_schemas(primary, replica)
        if not findings:
            findings.append(
                Finding.info(
                    f"schema on replica {replica_host!r} matches primary {primary_host!r}",
                    primary=primary_host,
                    replica=replica_host,
                    tables=len(primary.tables),
                )
            )
        return findings
