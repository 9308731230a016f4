"""Type-safe objects for run summaries and the status API."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class CycleSummary:
    pipeline_id: str
    status: str
    started_at: datetime
    ended_at: datetime
    slots_listed: int = 0
    slots_eligible: int = 0
    slots_consumed: list[str] = field(default_factory=list)
    records_read: int = 0
    bytes_read: int = 0
    watermark: str | None = None
    excluded: list[str] = field(default_factory=list)
    failure_kind: str | None = None
    error_message: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.ended_at - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat()
        payload["ended_at"] = self.ended_at.isoformat()
        payload["duration_seconds"] = self.duration_seconds
        return payload


@dataclass(slots=True)
class RunSummary:
    pipeline_id: str
    started_at: datetime
    ended_at: datetime
    once: bool
    cycles: list[CycleSummary] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.ended_at - self.started_at).total_seconds())

    @property
    def failed(self) -> bool:
        return any(cycle.failure_kind is not None for cycle in self.cycles)

    @property
    def total_slots(self) -> int:
        return sum(len(cycle.slots_consumed) for cycle in self.cycles)

    @property
    def total_records(self) -> int:
        return sum(cycle.records_read for cycle in self.cycles)

    @property
    def total_bytes(self) -> int:
        return sum(cycle.bytes_read for cycle in self.cycles)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "once": self.once,
            "duration_seconds": self.duration_seconds,
            "failed": self.failed,
            "totals": {
                "cycles": len(self.cycles),
                "slots": self.total_slots,
                "records": self.total_records,
                "bytes": self.total_bytes,
            },
            "cycles": [cycle.to_dict() for cycle in self.cycles],
        }
