from __future__ import annotations

from typing import Any, Protocol

from slotfeed.api_objects.types import CycleSummary
from slotfeed.cursor import RangeCursor


class CheckpointStore(Protocol):
    """Durable cursor state keyed by pipeline id, plus a cycle audit trail."""

    def init_schema(self) -> None: ...

    def load_cursor(self, pipeline_id: str) -> RangeCursor | None: ...

    def save_cursor(self, pipeline_id: str, cursor: RangeCursor) -> None: ...

    def delete_cursor(self, pipeline_id: str) -> bool: ...

    def list_cursors(self) -> dict[str, RangeCursor]: ...

    def append_cycle_audit(self, summary: CycleSummary) -> None: ...

    def list_cycle_audit(self, pipeline_id: str, limit: int = 100) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...
