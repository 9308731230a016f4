from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any

import yaml

from slotfeed.api_objects.types import CycleSummary
from slotfeed.cursor import RangeCursor

MAX_AUDIT_ROWS = 200


class YamlCheckpointStore:
    """Single YAML document holding every pipeline's cursor.

    Writes go to a sibling temp file that replaces the target, so a crash
    mid-write leaves the previous checkpoint intact.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load_cursor(self, pipeline_id: str) -> RangeCursor | None:
        raw = self._read().get("cursors", {}).get(pipeline_id)
        if not isinstance(raw, dict):
            return None
        return RangeCursor.from_dict(raw)

    def save_cursor(self, pipeline_id: str, cursor: RangeCursor) -> None:
        with self._lock:
            payload = self._read()
            payload.setdefault("cursors", {})[pipeline_id] = cursor.to_dict()
            self._write(payload)

    def delete_cursor(self, pipeline_id: str) -> bool:
        with self._lock:
            payload = self._read()
            removed = payload.get("cursors", {}).pop(pipeline_id, None) is not None
            if removed:
                self._write(payload)
            return removed

    def list_cursors(self) -> dict[str, RangeCursor]:
        cursors = self._read().get("cursors", {})
        return {
            key: RangeCursor.from_dict(value)
            for key, value in sorted(cursors.items())
            if isinstance(value, dict)
        }

    def append_cycle_audit(self, summary: CycleSummary) -> None:
        with self._lock:
            payload = self._read()
            audits = payload.setdefault("audits", [])
            audits.append(summary.to_dict())
            payload["audits"] = audits[-MAX_AUDIT_ROWS:]
            self._write(payload)

    def list_cycle_audit(self, pipeline_id: str, limit: int = 100) -> list[dict[str, Any]]:
        audits = self._read().get("audits", [])
        rows = [row for row in audits if row.get("pipeline_id") == pipeline_id]
        rows.reverse()
        return rows[: max(0, limit)]

    def close(self) -> None:
        return

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        return raw if isinstance(raw, dict) else {}

    def _write(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(payload, fh, sort_keys=True)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, self.path)
