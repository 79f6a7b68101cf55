"""The JSON payload every command emits: a summary plus the findings."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from migratorx.domain.findings import Finding, Summary, summarize
from migratorx.utils.serialization import json_default


def build_payload(findings: Iterable[Finding], summary: Summary | None = None) -> dict[str, Any]:
    """Return ``{"summary": {...}, "findings": [...]}``.

    ``summary`` defaults to the tally of ``findings``. Callers pass their own
    when a component adjusted counts itself (the promotion gate does).
    """
    items = list(findings)
    if summary is None:
        summary = summarize(items)
    return {
        "summary": summary.to_dict(),
        "findings": [finding.to_dict() for finding in items],
    }


def error_payload(message: str, **meta: Any) -> dict[str, Any]:
    """A payload holding a single BLOCK for a failure that produced no findings."""
    return build_payload([Finding.block(message, **meta)])


def payload_blocked(payload: dict[str, Any]) -> bool:
    return int(payload.get("summary", {}).get("block", 0)) > 0


def render_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=True, indent=2, default=json_default)
