"""Report artifacts and the per-invocation audit recorder."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

from migratorx.audit.db import SqliteStore
from migratorx.audit.models import ArtifactRecord, FindingRecord, RunRecord
from migratorx.utils.hashing import sha256_bytes
from migratorx.utils.serialization import json_default
from migratorx.utils.time import utc_now_iso

_logger = logging.getLogger(__name__)


class ArtifactStore:
    def __init__(self, base_path: str) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def write_json(self, kind: str, payload: dict, prefix: str | None = None) -> ArtifactRecord:
        data = json.dumps(payload, ensure_ascii=True, indent=2, default=json_default).encode(
            "utf-8"
        )
        artifact_id = uuid4().hex
        filename = f"{prefix + '-' if prefix else ''}{artifact_id}.json"
        path = self._base / filename
        path.write_bytes(data)
        return ArtifactRecord(
            artifact_id=artifact_id,
            kind=kind,
            location=str(path),
            checksum=sha256_bytes(data),
            created_at=utc_now_iso(),
        )


class AuditRecorder:
    """Writes one ``runs`` row per command plus its findings and report file."""

    def __init__(self, store: SqliteStore, artifacts: ArtifactStore | None = None) -> None:
        self._store = store
        self._artifacts = artifacts

    def start(self, command: str, migration: str | None = None, target: str | None = None) -> str:
        run_id = uuid4().hex
        self._store.create_run(
            RunRecord(
                run_id=run_id,
                command=command,
                migration=migration,
                target=target,
                status="running",
                info_count=0,
                warn_count=0,
                block_count=0,
                started_at=utc_now_iso(),
                completed_at=None,
            )
        )
        return run_id

    def finish(
        self,
        run_id: str,
        payload: dict[str, Any],
        status: str | None = None,
        migration: str | None = None,
    ) -> RunRecord | None:
        summary = payload.get("summary", {})
        counts = (
            int(summary.get("info", 0)),
            int(summary.get("warn", 0)),
            int(summary.get("block", 0)),
        )
        if status is None:
            status = "blocked" if counts[2] else "completed"

        report_location = None
        if self._artifacts is not None:
            try:
                artifact = self._artifacts.write_json("report", payload, prefix=run_id)
                report_location = artifact.location
            except OSError as exc:
                _logger.warning("Failed to write report artifact for run %s: %s", run_id, exc)

        records = [
            FindingRecord(
                run_id=run_id,
                position=position,
                severity=str(item.get("severity", "")),
                message=str(item.get("message", "")),
                meta_json=json.dumps(item.get("meta") or {}, sort_keys=True, default=json_default),
            )
            for position, item in enumerate(payload.get("findings", []))
        ]
        self._store.add_findings(records)
        self._store.complete_run(
            run_id,
            status,
            counts,
            completed_at=utc_now_iso(),
            report_location=report_location,
            migration=migration,
        )
        return self._store.get_run(run_id)
