"""Checkpoint state contract and the in-memory backend."""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from typing import Any, NamedTuple


class CheckpointKey(NamedTuple):
    """Composite checkpoint key.

    Kept as a tuple rather than a joined string so entity names containing
    ``:`` (host:port, schema.table) can never collide.
    """

    scope: str
    entity: str
    field: str


StateKey = CheckpointKey | str


def completed_key(step_name: str) -> CheckpointKey:
    return CheckpointKey("workflow", step_name, "completed")


class CheckpointState(ABC):
    """Key/value checkpoints plus per-step completion markers.

    Durable implementations must persist synchronously inside ``set`` and
    ``mark_completed`` so that a checkpoint, once returned from, survives
    process termination. Concurrent runs against one store are not coordinated.
    """

    @abstractmethod
    def get(self, key: StateKey, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``."""

    @abstractmethod
    def contains(self, key: StateKey) -> bool:
        """Return whether ``key`` has a stored value."""

    @abstractmethod
    def set(self, key: StateKey, value: Any) -> None:
        """Store ``value`` under ``key``."""

    def mark_completed(self, step_name: str) -> None:
        self.set(completed_key(step_name), True)

    def is_completed(self, step_name: str) -> bool:
        return self.get(completed_key(step_name)) is True

    def get_bool(self, key: StateKey) -> bool:
        return self.get(key) is True

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, tuple)):
            return False
        return self.contains(key)


class MemoryState(CheckpointState):
    """Process-local state for tests and dry runs."""

    def __init__(self, values: dict[StateKey, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[StateKey, Any] = {}
        for key, value in (values or {}).items():
            self._values[_normalize_key(key)] = value

    def get(self, key: StateKey, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(_normalize_key(key), default)

    def contains(self, key: StateKey) -> bool:
        with self._lock:
            return _normalize_key(key) in self._values

    def set(self, key: StateKey, value: Any) -> None:
        with self._lock:
            self._values[_normalize_key(key)] = value

    def snapshot(self) -> dict[StateKey, Any]:
        with self._lock:
            return dict(self._values)


def _normalize_key(key: StateKey) -> StateKey:
    if isinstance(key, str):
        return key
    if isinstance(key, tuple) and len(key) == 3:
        return CheckpointKey(*(str(part) for part in key))
    raise TypeError(f"Unsupported checkpoint key: {key!r}")


def encode_key(key: StateKey) -> str:
    """Encode a key as JSON text for backends that only accept text keys.

    Composite keys become JSON arrays and plain keys JSON strings, so the two
    kinds can never decode to each other.
    """
    key = _normalize_key(key)
    if isinstance(key, CheckpointKey):
        return json.dumps(list(key), ensure_ascii=True)
    return json.dumps(key, ensure_ascii=True)
