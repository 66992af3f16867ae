from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from chaingate.models import PublishedStatus, RunOutcome

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    trigger_kind TEXT NOT NULL,
    revision TEXT,
    success INTEGER NOT NULL,
    phase_reached TEXT NOT NULL,
    error TEXT,
    report_path TEXT,
    recorded_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS stage_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL REFERENCES runs(run_id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    stage_name TEXT NOT NULL,
    exit_status INTEGER NOT NULL,
    duration REAL NOT NULL,
    started_at TEXT NOT NULL,
    log_path TEXT,
    UNIQUE (run_id, position)
);

CREATE TABLE IF NOT EXISTS statuses (
    revision TEXT NOT NULL,
    context TEXT NOT NULL,
    state TEXT NOT NULL,
    report_url TEXT,
    description TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (revision, context)
);
"""


class StateDB:
    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> StateDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── Runs ─────────────────────────────────────────────────────────

    def record_run(self, outcome: RunOutcome) -> None:
        """Store a finished run; re-recording the same run_id replaces it."""
        verdict = outcome.verdict
        with self._conn:
            self._conn.execute("DELETE FROM runs WHERE run_id=?", (outcome.run_id,))
            self._conn.execute(
                "INSERT INTO runs (run_id, trigger_kind, revision, success, "
                "phase_reached, error, report_path) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    outcome.run_id,
                    outcome.trigger.kind,
                    outcome.revision,
                    int(verdict.success),
                    verdict.phase_reached.value,
                    verdict.error,
                    outcome.report_path,
                ),
            )
            self._conn.executemany(
                "INSERT INTO stage_results (run_id, position, stage_name, "
                "exit_status, duration, started_at, log_path) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        outcome.run_id,
                        r.position,
                        r.stage_name,
                        r.exit_status,
                        r.duration,
                        r.started_at.isoformat(),
                        r.log_path,
                    )
                    for r in verdict.stage_results
                ],
            )

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT * FROM runs WHERE run_id=?", (run_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_stage_results(self, run_id: str) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT * FROM stage_results WHERE run_id=? ORDER BY position",
            (run_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    # ── Published statuses ───────────────────────────────────────────

    def upsert_status(self, status: PublishedStatus) -> None:
        """Last write for a (revision, context) key wins."""
        self._conn.execute(
            "INSERT INTO statuses (revision, context, state, report_url, description) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(revision, context) DO UPDATE SET "
            "state=excluded.state, report_url=excluded.report_url, "
            "description=excluded.description, updated_at=datetime('now')",
            (
                status.revision,
                status.context,
                status.state,
                status.report_url,
                status.description,
            ),
        )
        self._conn.commit()

    def get_status(self, revision: str, context: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT * FROM statuses WHERE revision=? AND context=?",
            (revision, context),
        ).fetchone()
        return dict(row) if row else None

    def list_statuses(self, revision: str | None = None) -> list[dict[str, Any]]:
        if revision is None:
            rows = self._conn.execute("SELECT * FROM statuses").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM statuses WHERE revision=?", (revision,)
            ).fetchall()
        return [dict(r) for r in rows]
