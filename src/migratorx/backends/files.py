"""Inspectors backed by JSON snapshot files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from migratorx.cdc.debezium import ConnectorStatus, DebeziumInspector
from migratorx.cdc.schema_history import KafkaInspector
from migratorx.checks.mysql_compat import MySQLInspector
from migratorx.checks.schema_parity import Schema, SchemaInspector
from migratorx.domain.context import RunContext
from migratorx.errors import InspectorError


def read_json_file(path: str | None, label: str) -> Any:
    if not path:
        raise InspectorError(f"{label} file path is required")
    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise InspectorError(f"{label} file not found: {file_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise InspectorError(f"failed to read {label} file {file_path}: {exc}") from exc


class SchemaFileInspector(SchemaInspector):
    """Serves schema snapshots from per-host JSON files."""

    def __init__(self, paths: dict[str, str]) -> None:
        self._paths = {host.strip(): path for host, path in paths.items() if host and path}

    def schema(self, ctx: RunContext, host: str) -> Schema:
        if not host:
            raise InspectorError("host is required")
        path = self._paths.get(host.strip())
        if path is None:
            raise InspectorError(f"schema file path required for host {host!r}")
        data = read_json_file(path, "schema")
        try:
            return Schema.model_validate(data)
        except ValidationError as exc:
            raise InspectorError(f"invalid schema snapshot {path}: {exc}") from exc


class DebeziumFileInspector(DebeziumInspector):
    """Reads a saved connector status document."""

    def __init__(self, path: str | None) -> None:
        self._path = path

    def connector_status(self, ctx: RunContext, connector: str) -> ConnectorStatus:
        data = read_json_file(self._path, "cdc status")
        try:
            status = ConnectorStatus.model_validate(data)
        except ValidationError as exc:
            raise InspectorError(f"invalid cdc status {self._path}: {exc}") from exc
        if not status.name:
            status = status.model_copy(update={"name": connector})
        return status


class ServerFactsFileInspector(MySQLInspector):
    """Reads ``{"sql_mode": "...", "deprecated_features": [...]}`` per host.

    A document keyed by host is also accepted: ``{"db-1": {...}, "db-2": {...}}``.
    """

    def __init__(self, path: str | None) -> None:
        self._path = path

    def _facts(self, host: str) -> dict[str, Any]:
        data = read_json_file(self._path, "server facts")
        if not isinstance(data, dict):
            raise InspectorError(f"server facts {self._path} must be a JSON object")
        if "sql_mode" in data or "deprecated_features" in data:
            return data
        facts = data.get(host)
        if not isinstance(facts, dict):
            raise InspectorError(f"no server facts for host {host!r}")
        return facts

    def sql_mode(self, ctx: RunContext, host: str) -> str:
        return str(self._facts(host).get("sql_mode") or "")

    def deprecated_features_used(self, ctx: RunContext, host: str) -> list[str]:
        features = self._facts(host).get("deprecated_features") or []
        if not isinstance(features, list):
            raise InspectorError("deprecated_features must be a list")
        return [str(feature) for feature in features]


class SchemaHistoryFileInspector(KafkaInspector):
    """Reads ``{"topics": {"<topic>": {"readable": true, "tables": [...]}}}``."""

    def __init__(self, path: str | None) -> None:
        self._path = path

    def _topics(self) -> dict[str, Any]:
        data = read_json_file(self._path, "schema history")
        topics = data.get("topics") if isinstance(data, dict) else None
        if not isinstance(topics, dict):
            raise InspectorError(f"schema history {self._path} must contain a 'topics' object")
        return topics

    def topic_exists(self, ctx: RunContext, topic: str) -> bool:
        return topic in self._topics()

    def topic_readable(self, ctx: RunContext, topic: str) -> bool:
        entry = self._topics().get(topic) or {}
        return bool(entry.get("readable", True))

    def schema_history_tables(self, ctx: RunContext, topic: str) -> list[str]:
        entry = self._topics().get(topic) or {}
        tables = entry.get("tables") or []
        if not isinstance(tables, list):
            raise InspectorError(f"tables for topic {topic!r} must be a list")
        return [str(table) for table in tables]
