from __future__ import annotations

from pathlib import Path

import pytest

from migratorx import config


def test_defaults(tmp_path: Path) -> None:
    settings = config.load_settings()

    assert settings.state.backend == "file"
    assert Path(settings.state.path) == (tmp_path / ".migratorx" / "state.json").resolve()
    assert settings.audit.enabled is False
    assert settings.cdc.restart_loop_max == 3
    assert settings.cdc.restart_loop_window_seconds == 600
    assert settings.cdc.kafka_connect_url is None
    assert settings.promotion.phrase == "PROMOTE"
    assert settings.promotion.required_checks == ("cdc_debezium_health", "schema_parity")
    assert settings.execution.allow_mutations is False
    assert settings.execution.fail_on_block is False


def test_load_settings_is_cached() -> None:
    assert config.load_settings() is config.load_settings()


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MIGRATORX_STATE_BACKEND", "SQLite")
    monkeypatch.setenv("MIGRATORX_STATE_PATH", str(tmp_path / "ckpt.sqlite"))
    monkeypatch.setenv("MIGRATORX_AUDIT_ENABLED", "yes")
    monkeypatch.setenv("MIGRATORX_RESTART_LOOP_MAX", "5")
    monkeypatch.setenv("MIGRATORX_KAFKA_CONNECT_URL", "http://connect:8083/")
    monkeypatch.setenv("MIGRATORX_HTTP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("MIGRATORX_PROMOTION_REQUIRED_CHECKS", "schema_parity, cdc_schema_history,")
    monkeypatch.setenv("MIGRATORX_FAIL_ON_BLOCK", "1")

    settings = config.load_settings()

    assert settings.state.backend == "sqlite"
    assert settings.state.path == str((tmp_path / "ckpt.sqlite").resolve())
    assert settings.audit.enabled is True
    assert settings.cdc.restart_loop_max == 5
    assert settings.cdc.kafka_connect_url == "http://connect:8083"
    assert settings.cdc.http_timeout_seconds == 2.5
    assert settings.promotion.required_checks == ("schema_parity", "cdc_schema_history")
    assert settings.execution.fail_on_block is True


def test_invalid_backend_raises_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIGRATORX_STATE_BACKEND", "etcd")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()


def test_invalid_kafka_connect_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIGRATORX_KAFKA_CONNECT_URL", "connect:8083")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()


def test_blank_promotion_phrase(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIGRATORX_PROMOTION_PHRASE", "   ")

    with pytest.raises(RuntimeError, match="must not be blank"):
        config.load_settings()


def test_env_int_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_INVALID", "three")
    assert config._env_int("TEST_INT_INVALID", 3) == 3


def test_env_float_uses_default_for_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_FLOAT_VALUE", "")
    assert config._env_float("TEST_FLOAT_VALUE", 1.5) == 1.5


def test_split_csv() -> None:
    assert config._split_csv(" a, b ,,c ") == ["a", "b", "c"]
    assert config._split_csv(None) == []
