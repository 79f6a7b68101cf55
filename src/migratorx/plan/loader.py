"""Loader for migration plan files (YAML or JSON)."""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from migratorx.errors import PlanLoadError, PlanValidationError
from migratorx.plan.models import MigrationPlan

_JSON_SUFFIXES = frozenset({".json"})


def load_plan(path: str) -> MigrationPlan:
    """Read, decode and validate a migration plan."""
    if not path or not path.strip():
        raise PlanLoadError("plan path is required")
    plan_path = Path(path)
    if not plan_path.exists():
        raise PlanLoadError(f"Plan file not found: {plan_path}")

    try:
        with plan_path.open("r", encoding="utf-8") as handle:
            if plan_path.suffix.lower() in _JSON_SUFFIXES:
                data = json.load(handle)
            else:
                data = yaml.safe_load(handle)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise PlanLoadError(f"Failed to read plan {plan_path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PlanLoadError(f"Plan {plan_path} must be a mapping, got {type(data).__name__}")

    try:
        plan = MigrationPlan.from_mapping(data)
    except ValidationError as exc:
        raise PlanValidationError(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
        ) from exc
    return plan.ensure_valid()
