"""Data models for the run audit ledger."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RunRecord:
    run_id: str
    command: str
    migration: str | None
    target: str | None
    status: str
    info_count: int
    warn_count: int
    block_count: int
    started_at: str
    completed_at: str | None
    report_location: str | None = None


@dataclass
class FindingRecord:
    run_id: str
    position: int
    severity: str
    message: str
    meta_json: str


@dataclass
class ArtifactRecord:
    artifact_id: str
    kind: str
    location: str
    checksum: str
    created_at: str
    run_id: str | None = None
