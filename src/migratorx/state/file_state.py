"""JSON file checkpoint backend."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from migratorx.errors import StatePersistenceError
from migratorx.state.base import CheckpointKey, CheckpointState, StateKey, _normalize_key

_FORMAT_VERSION = 1


class FileState(CheckpointState):
    """Checkpoints persisted to a JSON document.

    The file is rewritten (write to a temporary sibling, then ``os.replace``)
    on every ``set`` so a completed checkpoint is on disk before ``set``
    returns.
    """

    def __init__(self, path: str) -> None:
        if not path or not path.strip():
            raise StatePersistenceError("state path is required")
        self._path = Path(path)
        self._lock = threading.Lock()
        self._values: dict[StateKey, Any] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: StateKey, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(_normalize_key(key), default)

    def contains(self, key: StateKey) -> bool:
        with self._lock:
            return _normalize_key(key) in self._values

    def set(self, key: StateKey, value: Any) -> None:
        normalized = _normalize_key(key)
        with self._lock:
            missing = object()
            previous = self._values.get(normalized, missing)
            self._values[normalized] = value
            try:
                self._persist()
            except StatePersistenceError:
                if previous is missing:
                    del self._values[normalized]
                else:
                    self._values[normalized] = previous
                raise

    def _load(self) -> None:
        if not self._path.exists():
            with self._lock:
                self._persist()
            return
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StatePersistenceError(f"Failed to read state {self._path}: {exc}") from exc
        if not raw.strip():
            return
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StatePersistenceError(f"State file {self._path} is not valid JSON: {exc}") from exc
        self._values = _decode_document(document, self._path)

    def _persist(self) -> None:
        document = {
            "version": _FORMAT_VERSION,
            "checkpoints": [
                {"key": list(key) if isinstance(key, CheckpointKey) else key, "value": value}
                for key, value in self._values.items()
            ],
        }
        try:
            data = json.dumps(document, ensure_ascii=True, indent=2)
        except (TypeError, ValueError) as exc:
            raise StatePersistenceError(
                f"Checkpoint values for {self._path} are not serializable: {exc}"
            ) from exc
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StatePersistenceError(f"Failed to write state {self._path}: {exc}") from exc


def _decode_document(document: object, path: Path) -> dict[StateKey, Any]:
    if not isinstance(document, dict):
        raise StatePersistenceError(f"State file {path} must contain a JSON object")

    if "checkpoints" not in document:
        # Flat {"key": value} documents carry plain string keys only.
        return {str(key): value for key, value in document.items()}

    entries = document.get("checkpoints") or []
    if not isinstance(entries, list):
        raise StatePersistenceError(f"State file {path}: 'checkpoints' must be a list")

    values: dict[StateKey, Any] = {}
    for entry in entries:
        if not isinstance(entry, dict) or "key" not in entry:
            raise StatePersistenceError(f"State file {path}: malformed checkpoint entry {entry!r}")
        key = entry["key"]
        if isinstance(key, list) and len(key) == 3:
            values[CheckpointKey(*(str(part) for part in key))] = entry.get("value")
        elif isinstance(key, str):
            values[key] = entry.get("value")
        else:
            raise StatePersistenceError(f"State file {path}: unsupported key {key!r}")
    return values
