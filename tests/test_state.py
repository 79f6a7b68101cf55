from __future__ import annotations

import json

import pytest

from migratorx.audit.db import SqliteStore
from migratorx.errors import StatePersistenceError
from migratorx.state import CheckpointKey, MemoryState, completed_key
from migratorx.state.base import encode_key
from migratorx.state.file_state import FileState
from migratorx.state.sqlite_state import SqliteState


def test_memory_state_composite_and_plain_keys():
    state = MemoryState()
    state.set(("replica_upgrade", "db:3306", "stopped"), True)
    state.set("note", "hello")

    assert state.get(CheckpointKey("replica_upgrade", "db:3306", "stopped")) is True
    assert state.get_bool(("replica_upgrade", "db:3306", "stopped"))
    assert "note" in state
    assert state.get("missing", "default") == "default"


def test_composite_keys_do_not_collide_on_separator():
    state = MemoryState()
    state.set(("a:b", "c", "d"), 1)
    state.set(("a", "b:c", "d"), 2)

    assert state.get(("a:b", "c", "d")) == 1
    assert state.get(("a", "b:c", "d")) == 2


def test_mark_completed_uses_workflow_key():
    state = MemoryState()
    state.mark_completed("preflight")

    assert state.is_completed("preflight")
    assert state.get(completed_key("preflight")) is True
    assert not state.is_completed("promote")


def test_is_completed_requires_true():
    state = MemoryState({completed_key("preflight"): "yes"})
    assert not state.is_completed("preflight")


def test_encode_key_keeps_composite_and_plain_keys_apart():
    key = CheckpointKey("workflow", "preflight", "completed")

    assert json.loads(encode_key(key)) == ["workflow", "preflight", "completed"]
    assert json.loads(encode_key("plain")) == "plain"
    assert encode_key(("a", "b", "c")) != encode_key('["a", "b", "c"]')


def test_unsupported_key_type():
    with pytest.raises(TypeError):
        MemoryState().set(("too", "short"), True)  # type: ignore[arg-type]


def test_file_state_creates_file_and_survives_reload(tmp_path):
    path = tmp_path / "nested" / "state.json"
    state = FileState(str(path))
    assert path.exists()

    state.mark_completed("preflight")
    state.set(("replica_upgrade", "db-replica-1", "stopped"), True)

    reloaded = FileState(str(path))
    assert reloaded.is_completed("preflight")
    assert reloaded.get_bool(("replica_upgrade", "db-replica-1", "stopped"))

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert {"key": ["workflow", "preflight", "completed"], "value": True} in document["checkpoints"]


def test_file_state_empty_file_is_empty_state(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("", encoding="utf-8")

    assert not FileState(str(path)).contains("anything")


def test_file_state_reads_flat_documents(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"legacy": True}), encoding="utf-8")

    assert FileState(str(path)).get("legacy") is True


def test_file_state_rejects_invalid_json(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StatePersistenceError, match="not valid JSON"):
        FileState(str(path))


def test_file_state_requires_path():
    with pytest.raises(StatePersistenceError):
        FileState("")


def test_file_state_rolls_back_on_write_failure(tmp_path, monkeypatch):
    state = FileState(str(tmp_path / "state.json"))

    def fail(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("migratorx.state.file_state.tempfile.mkstemp", fail)

    with pytest.raises(StatePersistenceError, match="disk full"):
        state.set("key", 1)
    assert not state.contains("key")


def test_file_state_rejects_unserializable_value_and_keeps_working(tmp_path):
    path = tmp_path / "state.json"
    state = FileState(str(path))

    with pytest.raises(StatePersistenceError, match="not serializable"):
        state.set("bad", object())
    assert not state.contains("bad")

    state.mark_completed("preflight")

    assert state.is_completed("preflight")
    assert FileState(str(path)).is_completed("preflight")


def test_sqlite_state_round_trip(tmp_path):
    store = SqliteStore(str(tmp_path / "state.sqlite"))
    try:
        state = SqliteState(store)
        state.mark_completed("cdc_check")
        state.set(("replica_upgrade", "db-replica-1", "upgraded"), True)

        again = SqliteState(store)
        assert again.is_completed("cdc_check")
        assert again.contains(("replica_upgrade", "db-replica-1", "upgraded"))
        assert not again.contains(("replica_upgrade", "db-replica-1", "resumed"))
    finally:
        store.close()


def test_sqlite_state_rejects_unserializable_values(tmp_path):
    store = SqliteStore(str(tmp_path / "state.sqlite"))
    try:
        with pytest.raises(StatePersistenceError, match="not serializable"):
            SqliteState(store).set("key", object())
    finally:
        store.close()
