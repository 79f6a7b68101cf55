"""Declarative migration plan models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from migratorx.errors import PlanValidationError

SUPPORTED_STEPS: tuple[str, ...] = (
    "preflight",
    "upgrade_replica",
    "validate_replica",
    "cdc_check",
    "promote",
    "post_validation",
)

_STEP_POSITION = {name: index for index, name in enumerate(SUPPORTED_STEPS)}


def _ensure_list(v: Any) -> list:
    """Convert None to an empty list and a lone scalar to a one-item list."""
    if v is None:
        return []
    if isinstance(v, (str, int, float)):
        return [v]
    return v


def _as_text(v: Any) -> Any:
    # YAML turns unquoted versions such as 8.0 into floats.
    if v is None:
        return ""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class Topology(BaseModel):
    primary: str = Field(default="")
    replicas: list[str] = Field(default_factory=list)

    @field_validator("primary", mode="before")
    @classmethod
    def _validate_primary(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("replicas", mode="before")
    @classmethod
    def _validate_replicas(cls, v: Any) -> list:
        return [_as_text(item) for item in _ensure_list(v)]


class CDCConfig(BaseModel):
    type: str = Field(default="")
    connector: str = Field(default="")
    schema_history_topic: str | None = Field(
        default=None,
        description="Kafka topic holding the connector's schema history, if checked.",
    )
    tables: list[str] = Field(
        default_factory=list,
        description="Tables the schema history topic is expected to cover.",
    )

    @field_validator("type", "connector", mode="before")
    @classmethod
    def _validate_text(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("tables", mode="before")
    @classmethod
    def _validate_tables(cls, v: Any) -> list:
        return _ensure_list(v)


class MigrationPlan(BaseModel):
    migration: str = Field(default="")
    source_version: str = Field(default="")
    target_version: str = Field(default="")
    topology: Topology = Field(default_factory=Topology)
    cdc: CDCConfig = Field(default_factory=CDCConfig)
    steps: list[str] = Field(default_factory=list)

    @field_validator("migration", "source_version", "target_version", mode="before")
    @classmethod
    def _validate_text(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("topology", "cdc", mode="before")
    @classmethod
    def _validate_sections(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v

    @field_validator("steps", mode="before")
    @classmethod
    def _validate_steps(cls, v: Any) -> list:
        return [_as_text(item) for item in _ensure_list(v)]

    def problems(self) -> list[str]:
        """Return every validation problem, in field order."""
        problems: list[str] = []

        if not self.migration.strip():
            problems.append("migration is required")
        if not self.source_version.strip():
            problems.append("source_version is required")
        if not self.target_version.strip():
            problems.append("target_version is required")

        if not self.topology.primary.strip():
            problems.append("topology.primary is required")
        if not self.topology.replicas:
            problems.append("topology.replicas must include at least one replica")
        else:
            for index, replica in enumerate(self.topology.replicas):
                if not replica.strip():
                    problems.append(f"topology.replicas[{index}] is empty")

        if not self.cdc.type.strip():
            problems.append("cdc.type is required")
        if not self.cdc.connector.strip():
            problems.append("cdc.connector is required")

        problems.extend(_step_problems(self.steps))
        return problems

    def ensure_valid(self) -> "MigrationPlan":
        problems = self.problems()
        if problems:
            raise PlanValidationError(problems)
        return self

    @property
    def primary(self) -> str:
        return self.topology.primary.strip()

    @property
    def replicas(self) -> list[str]:
        return [replica.strip() for replica in self.topology.replicas]

    def first_replica(self) -> str:
        if not self.topology.replicas:
            raise PlanValidationError(["no replicas defined in plan"])
        return self.replicas[0]

    def normalized_steps(self) -> list[str]:
        return [step.strip() for step in self.steps]

    @classmethod
    def from_mapping(cls, data: dict[str, object]) -> "MigrationPlan":
        return cls.model_validate(data)


def _step_problems(steps: list[str]) -> list[str]:
    if not steps:
        return ["steps must include at least one step"]

    problems: list[str] = []
    seen: set[str] = set()
    last_position = -1
    for index, raw in enumerate(steps):
        step = raw.strip()
        if not step:
            problems.append(f"steps[{index}] is empty")
            continue
        position = _STEP_POSITION.get(step)
        if position is None:
            problems.append(f"steps[{index}]={step!r} is not supported")
            continue
        if step in seen:
            problems.append(f"steps[{index}]={step!r} is duplicated")
            continue
        if position < last_position:
            problems.append(f"step order invalid at steps[{index}]={step!r}")
            continue
        seen.add(step)
        last_position = position
    return problems
