from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any

from slotfeed.api_objects.types import CycleSummary
from slotfeed.cursor import RangeCursor
from slotfeed.models import utc_now

SCHEMA = """
CREATE TABLE IF NOT EXISTS cursors (
    pipeline_id TEXT PRIMARY KEY,
    watermark TEXT NOT NULL,
    excluded_json TEXT NOT NULL,
    updated_ts TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cycle_audit (
    audit_id TEXT PRIMARY KEY,
    pipeline_id TEXT NOT NULL,
    status TEXT NOT NULL,
    started_ts TEXT NOT NULL,
    ended_ts TEXT NOT NULL,
    slots_json TEXT NOT NULL,
    records_read INTEGER NOT NULL DEFAULT 0,
    bytes_read INTEGER NOT NULL DEFAULT 0,
    watermark TEXT,
    failure_kind TEXT,
    error_message TEXT,
    details_json TEXT
);

CREATE INDEX IF NOT EXISTS idx_cycle_audit_pipeline
    ON cycle_audit (pipeline_id, ended_ts);
"""


class SQLiteCheckpointStore:
    def __init__(self, dsn: str):
        self.db_path = _extract_path(dsn)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=FULL")
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        with self._lock:
            self.conn.executescript(SCHEMA)
            self.conn.commit()

    def load_cursor(self, pipeline_id: str) -> RangeCursor | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT watermark, excluded_json FROM cursors WHERE pipeline_id = ?",
                (pipeline_id,),
            ).fetchone()
        if row is None:
            return None
        return RangeCursor.from_dict(
            {"watermark": row["watermark"], "excluded": from_json(row["excluded_json"]) or []}
        )

    def save_cursor(self, pipeline_id: str, cursor: RangeCursor) -> None:
        payload = cursor.to_dict()
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO cursors (pipeline_id, watermark, excluded_json, updated_ts)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(pipeline_id) DO UPDATE SET
                  watermark=excluded.watermark,
                  excluded_json=excluded.excluded_json,
                  updated_ts=excluded.updated_ts
                """,
                (
                    pipeline_id,
                    payload["watermark"],
                    to_json(payload["excluded"]),
                    utc_now().isoformat(),
                ),
            )
            self.conn.commit()

    def delete_cursor(self, pipeline_id: str) -> bool:
        with self._lock:
            cur = self.conn.execute("DELETE FROM cursors WHERE pipeline_id = ?", (pipeline_id,))
            self.conn.commit()
        return cur.rowcount > 0

    def list_cursors(self) -> dict[str, RangeCursor]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT pipeline_id, watermark, excluded_json FROM cursors ORDER BY pipeline_id"
            ).fetchall()
        return {
            row["pipeline_id"]: RangeCursor.from_dict(
                {"watermark": row["watermark"], "excluded": from_json(row["excluded_json"]) or []}
            )
            for row in rows
        }

    def append_cycle_audit(self, summary: CycleSummary) -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO cycle_audit (
                    audit_id, pipeline_id, status, started_ts, ended_ts, slots_json,
                    records_read, bytes_read, watermark, failure_kind, error_message, details_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    summary.pipeline_id,
                    summary.status,
                    summary.started_at.isoformat(),
                    summary.ended_at.isoformat(),
                    to_json(summary.slots_consumed),
                    summary.records_read,
                    summary.bytes_read,
                    summary.watermark,
                    summary.failure_kind,
                    summary.error_message,
                    to_json(
                        {
                            "slots_listed": summary.slots_listed,
                            "slots_eligible": summary.slots_eligible,
                            "excluded": summary.excluded,
                        }
                    ),
                ),
            )
            self.conn.commit()

    def list_cycle_audit(self, pipeline_id: str, limit: int = 100) -> list[dict[str, Any]]:
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT * FROM cycle_audit
                WHERE pipeline_id = ?
                ORDER BY ended_ts DESC, rowid DESC
                LIMIT ?
                """,
                (pipeline_id, max(0, limit)),
            ).fetchall()
        result: list[dict[str, Any]] = []
        for row in rows:
            details = from_json(row["details_json"]) or {}
            result.append(
                {
                    "pipeline_id": row["pipeline_id"],
                    "status": row["status"],
                    "started_at": row["started_ts"],
                    "ended_at": row["ended_ts"],
                    "slots_consumed": from_json(row["slots_json"]) or [],
                    "records_read": row["records_read"],
                    "bytes_read": row["bytes_read"],
                    "watermark": row["watermark"],
                    "failure_kind": row["failure_kind"],
                    "error_message": row["error_message"],
                    "slots_listed": details.get("slots_listed", 0),
                    "slots_eligible": details.get("slots_eligible", 0),
                    "excluded": details.get("excluded", []),
                }
            )
        return result

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def _extract_path(dsn: str) -> str:
    if not dsn.startswith("sqlite:///"):
        raise ValueError(f"Unsupported sqlite dsn: {dsn}")
    return dsn.removeprefix("sqlite:///")


def to_json(value: object) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=True)


def from_json(value: str | None) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None
