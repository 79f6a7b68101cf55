"""Mapping key normalization for externally produced JSON."""

from __future__ import annotations

from typing import Any


def normalize_keys(data: Any, fields: set[str]) -> Any:
    """Map ``PrimaryKey``/``primaryKey``/``primary_key`` style keys onto ``fields``.

    Unknown keys pass through untouched; non-mappings are returned as-is.
    """
    if not isinstance(data, dict):
        return data
    lookup = {name.replace("_", ""): name for name in fields}
    out: dict[str, Any] = {}
    for key, value in data.items():
        compact = str(key).replace("_", "").lower()
        out[lookup.get(compact, key)] = value
    return out
