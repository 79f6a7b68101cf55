"""SQLite checkpoint backend sharing the audit database."""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from migratorx.audit.db import SqliteStore
from migratorx.errors import StatePersistenceError
from migratorx.state.base import CheckpointState, StateKey, encode_key
from migratorx.utils.time import utc_now_iso


class SqliteState(CheckpointState):
    """Checkpoints stored as JSON rows; every ``set`` is committed before returning."""

    def __init__(self, store: SqliteStore) -> None:
        if store is None:
            raise StatePersistenceError("sqlite store is required")
        self._store = store

    def get(self, key: StateKey, default: Any = None) -> Any:
        raw = self._store.get_checkpoint(encode_key(key))
        if raw is None:
            return default
        return json.loads(raw)

    def contains(self, key: StateKey) -> bool:
        return self._store.get_checkpoint(encode_key(key)) is not None

    def set(self, key: StateKey, value: Any) -> None:
        try:
            value_json = json.dumps(value, ensure_ascii=True)
        except TypeError as exc:
            raise StatePersistenceError(f"Checkpoint value for {key!r} is not serializable") from exc
        try:
            self._store.put_checkpoint(encode_key(key), value_json, utc_now_iso())
        except sqlite3.Error as exc:
            raise StatePersistenceError(f"Failed to write checkpoint {key!r}: {exc}") from exc
