"""SQLite access layer for the run ledger and checkpoints."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Mapping, Sequence

from migratorx.audit.models import FindingRecord, RunRecord

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


class SqliteStore:
    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                command TEXT NOT NULL,
                migration TEXT,
                target TEXT,
                status TEXT NOT NULL,
                info_count INTEGER NOT NULL DEFAULT 0,
                warn_count INTEGER NOT NULL DEFAULT 0,
                block_count INTEGER NOT NULL DEFAULT 0,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                report_location TEXT
            );

            CREATE TABLE IF NOT EXISTS run_findings (
                run_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                severity TEXT NOT NULL,
                message TEXT NOT NULL,
                meta_json TEXT NOT NULL,
                PRIMARY KEY (run_id, position),
                FOREIGN KEY(run_id) REFERENCES runs(run_id)
            );

            CREATE TABLE IF NOT EXISTS checkpoints (
                key_json TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_runs_status_started_at ON runs(status, started_at);
            CREATE INDEX IF NOT EXISTS idx_run_findings_severity ON run_findings(severity);
            """
        )
        self._conn.commit()

    def execute(
        self,
        query: str,
        params: _SqlParams,
    ) -> None:
        with self._lock:
            self._conn.execute(query, params)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def fetch_one(
        self,
        query: str,
        params: _SqlParams,
    ) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(
        self,
        query: str,
        params: _SqlParams,
    ) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def create_run(self, run: RunRecord) -> None:
        self.execute(
            """
            INSERT INTO runs (
                run_id, command, migration, target, status,
                info_count, warn_count, block_count,
                started_at, completed_at, report_location
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run.run_id,
                run.command,
                run.migration,
                run.target,
                run.status,
                run.info_count,
                run.warn_count,
                run.block_count,
                run.started_at,
                run.completed_at,
                run.report_location,
            ),
        )

    def complete_run(
        self,
        run_id: str,
        status: str,
        counts: tuple[int, int, int],
        completed_at: str,
        report_location: str | None = None,
        migration: str | None = None,
    ) -> None:
        info, warn, block = counts
        self.execute(
            """
            UPDATE runs
            SET status = ?, info_count = ?, warn_count = ?, block_count = ?,
                completed_at = ?, report_location = ?, migration = COALESCE(?, migration)
            WHERE run_id = ?
            """,
            (status, info, warn, block, completed_at, report_location, migration, run_id),
        )

    def get_run(self, run_id: str) -> RunRecord | None:
        row = self.fetch_one("SELECT * FROM runs WHERE run_id = ?", (run_id,))
        if row is None:
            return None
        return RunRecord(**dict(row))

    def add_findings(self, records: Sequence[FindingRecord]) -> None:
        if not records:
            return
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO run_findings (run_id, position, severity, message, meta_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                [(r.run_id, r.position, r.severity, r.message, r.meta_json) for r in records],
            )
            self._conn.commit()

    def list_findings(self, run_id: str) -> list[FindingRecord]:
        rows = self.fetch_all(
            "SELECT * FROM run_findings WHERE run_id = ? ORDER BY position",
            (run_id,),
        )
        return [FindingRecord(**dict(row)) for row in rows]

    def get_checkpoint(self, key_json: str) -> str | None:
        row = self.fetch_one("SELECT value_json FROM checkpoints WHERE key_json = ?", (key_json,))
        if row is None:
            return None
        return row["value_json"]

    def put_checkpoint(self, key_json: str, value_json: str, updated_at: str) -> None:
        self.execute(
            """
            INSERT INTO checkpoints (key_json, value_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key_json) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at = excluded.updated_at
            """,
            (key_json, value_json, updated_at),
        )
