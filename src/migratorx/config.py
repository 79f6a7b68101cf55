"""Configuration management for migratorx."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class StateSettings(BaseModel):
    backend: Literal["file", "sqlite"] = Field(default="file")
    path: str = Field(default="./.migratorx/state.json")


class AuditSettings(BaseModel):
    enabled: bool = Field(default=False)
    sqlite_path: str = Field(default="./.migratorx/audit.sqlite")
    sqlite_wal: bool = Field(default=True)
    artifact_path: str = Field(default="./.migratorx/reports")


class CDCSettings(BaseModel):
    restart_loop_max: int = Field(default=3, ge=1, le=1000)
    restart_loop_window_seconds: int = Field(default=600, ge=1)
    kafka_connect_url: str | None = Field(default=None)
    http_timeout_seconds: float = Field(default=10.0, ge=0.1, le=300)

    @field_validator("kafka_connect_url")
    @classmethod
    def _validate_url(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("kafka_connect_url must start with http:// or https://")
        return value.rstrip("/")


class PromotionSettings(BaseModel):
    phrase: str = Field(default="PROMOTE", min_length=1)
    required_checks: tuple[str, ...] = Field(
        default=("cdc_debezium_health", "schema_parity"),
        description="Checks that must be part of a promotion revalidation.",
    )


class ExecutionSettings(BaseModel):
    allow_mutations: bool = Field(
        default=False,
        description="If False, mutating steps in `run` are blocked unless --allow-mutations is given.",
    )
    fail_on_block: bool = Field(
        default=False,
        description="If True, the CLI exits 2 when the payload contains a BLOCK finding.",
    )


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    cdc: CDCSettings = Field(default_factory=CDCSettings)
    promotion: PromotionSettings = Field(default_factory=PromotionSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)


ENV_KEYS = {
    "log_level": "MIGRATORX_LOG_LEVEL",
    "log_file": "MIGRATORX_LOG_FILE",
    "state_backend": "MIGRATORX_STATE_BACKEND",
    "state_path": "MIGRATORX_STATE_PATH",
    "audit_enabled": "MIGRATORX_AUDIT_ENABLED",
    "audit_db": "MIGRATORX_AUDIT_DB",
    "artifact_path": "MIGRATORX_ARTIFACT_PATH",
    "sqlite_wal": "MIGRATORX_SQLITE_WAL",
    "restart_loop_max": "MIGRATORX_RESTART_LOOP_MAX",
    "restart_loop_window": "MIGRATORX_RESTART_LOOP_WINDOW_SECONDS",
    "kafka_connect_url": "MIGRATORX_KAFKA_CONNECT_URL",
    "http_timeout": "MIGRATORX_HTTP_TIMEOUT_SECONDS",
    "promotion_phrase": "MIGRATORX_PROMOTION_PHRASE",
    "required_checks": "MIGRATORX_PROMOTION_REQUIRED_CHECKS",
    "allow_mutations": "MIGRATORX_ALLOW_MUTATIONS",
    "fail_on_block": "MIGRATORX_FAIL_ON_BLOCK",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _resolve_path(path: str) -> str:
    return str(Path(path).expanduser().resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    required_checks = _split_csv(os.getenv(ENV_KEYS["required_checks"]))

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "state": {
            "backend": os.getenv(ENV_KEYS["state_backend"], StateSettings().backend).strip().lower(),
            "path": _resolve_path(os.getenv(ENV_KEYS["state_path"], StateSettings().path)),
        },
        "audit": {
            "enabled": _env_bool(ENV_KEYS["audit_enabled"], AuditSettings().enabled),
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["audit_db"], AuditSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool(ENV_KEYS["sqlite_wal"], AuditSettings().sqlite_wal),
            "artifact_path": _resolve_path(
                os.getenv(ENV_KEYS["artifact_path"], AuditSettings().artifact_path)
            ),
        },
        "cdc": {
            "restart_loop_max": _env_int(
                ENV_KEYS["restart_loop_max"], CDCSettings().restart_loop_max
            ),
            "restart_loop_window_seconds": _env_int(
                ENV_KEYS["restart_loop_window"], CDCSettings().restart_loop_window_seconds
            ),
            "kafka_connect_url": os.getenv(ENV_KEYS["kafka_connect_url"]),
            "http_timeout_seconds": _env_float(
                ENV_KEYS["http_timeout"], CDCSettings().http_timeout_seconds
            ),
        },
        "promotion": {
            "phrase": os.getenv(ENV_KEYS["promotion_phrase"], PromotionSettings().phrase),
            "required_checks": tuple(required_checks) or PromotionSettings().required_checks,
        },
        "execution": {
            "allow_mutations": _env_bool(
                ENV_KEYS["allow_mutations"], ExecutionSettings().allow_mutations
            ),
            "fail_on_block": _env_bool(ENV_KEYS["fail_on_block"], ExecutionSettings().fail_on_block),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if not settings.promotion.phrase.strip():
        raise RuntimeError(
            f"Invalid configuration: {ENV_KEYS['promotion_phrase']} must not be blank"
        )

    return settings
