from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from slotfeed.api_objects.types import CycleSummary
from slotfeed.cursor import RangeCursor


@dataclass(slots=True)
class InMemoryCheckpointStore:
    cursors: dict[str, dict[str, Any]] = field(default_factory=dict)
    audits: list[dict[str, Any]] = field(default_factory=list)
    saves: int = 0

    def init_schema(self) -> None:
        return

    def load_cursor(self, pipeline_id: str) -> RangeCursor | None:
        payload = self.cursors.get(pipeline_id)
        if payload is None:
            return None
        return RangeCursor.from_dict(payload)

    def save_cursor(self, pipeline_id: str, cursor: RangeCursor) -> None:
        # Stored serialized, as a durable backend would.
        self.cursors[pipeline_id] = cursor.to_dict()
        self.saves += 1

    def delete_cursor(self, pipeline_id: str) -> bool:
        return self.cursors.pop(pipeline_id, None) is not None

    def list_cursors(self) -> dict[str, RangeCursor]:
        return {key: RangeCursor.from_dict(value) for key, value in sorted(self.cursors.items())}

    def append_cycle_audit(self, summary: CycleSummary) -> None:
        self.audits.append(summary.to_dict())

    def list_cycle_audit(self, pipeline_id: str, limit: int = 100) -> list[dict[str, Any]]:
        rows = [row for row in self.audits if row["pipeline_id"] == pipeline_id]
        rows.reverse()
        return rows[: max(0, limit)]

    def close(self) -> None:
        return
