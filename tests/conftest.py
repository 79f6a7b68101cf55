from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from migratorx import config


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep developer .env files and MIGRATORX_* variables out of unit tests.
    for key in config.ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    monkeypatch.chdir(tmp_path)
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


@pytest.fixture
def plan_data() -> dict[str, Any]:
    return {
        "migration": "orders-57-to-80",
        "source_version": "5.7",
        "target_version": "8.0",
        "topology": {"primary": "db-primary", "replicas": ["db-replica-1", "db-replica-2"]},
        "cdc": {
            "type": "debezium",
            "connector": "orders-connector",
            "schema_history_topic": "schema-changes.orders",
            "tables": ["orders", "customers"],
        },
        "steps": ["preflight", "upgrade_replica", "validate_replica", "cdc_check", "promote"],
    }


@pytest.fixture
def plan_file(tmp_path: Path, plan_data: dict[str, Any]) -> Path:
    path = tmp_path / "migration.yaml"
    path.write_text(yaml.safe_dump(plan_data), encoding="utf-8")
    return path
