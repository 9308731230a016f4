"""Resumable progress marker over dated slots."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from slotfeed.models import Slot, ensure_utc, parse_ts

_BEGINNING = datetime.min.replace(tzinfo=UTC)


@dataclass(slots=True, frozen=True)
class RangeCursor:
    """Everything up to ``watermark`` is consumed, plus ``excluded`` at exactly it.

    Identifiers in ``excluded`` only ever refer to slots whose timestamp equals
    ``watermark``; slots strictly older than the watermark are never eligible.
    """

    watermark: datetime
    excluded: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "watermark", ensure_utc(self.watermark))
        object.__setattr__(self, "excluded", frozenset(self.excluded))

    @classmethod
    def beginning(cls) -> RangeCursor:
        return cls(watermark=_BEGINNING)

    @classmethod
    def at(cls, watermark: datetime, *excluded: str) -> RangeCursor:
        return cls(watermark=watermark, excluded=frozenset(excluded))

    def is_eligible(self, slot: Slot) -> bool:
        if slot.timestamp > self.watermark:
            return True
        return slot.timestamp == self.watermark and slot.identifier not in self.excluded

    def filter(self, candidates: Iterable[Slot]) -> list[Slot]:
        return [slot for slot in candidates if self.is_eligible(slot)]

    def advance(self, processed: Iterable[Slot]) -> RangeCursor:
        batch = list(processed)
        if not batch:
            return self

        watermark = max(slot.timestamp for slot in batch)
        excluded = {slot.identifier for slot in batch if slot.timestamp == watermark}
        if watermark < self.watermark:
            return self
        if watermark == self.watermark:
            excluded |= self.excluded
        return RangeCursor(watermark=watermark, excluded=frozenset(excluded))

    def to_dict(self) -> dict[str, Any]:
        return {
            "watermark": self.watermark.isoformat(),
            "excluded": sorted(self.excluded),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RangeCursor:
        raw_watermark = payload.get("watermark")
        if isinstance(raw_watermark, datetime):
            watermark = raw_watermark
        elif raw_watermark:
            watermark = parse_ts(str(raw_watermark))
        else:
            watermark = _BEGINNING
        excluded_raw = payload.get("excluded") or []
        return cls(watermark=watermark, excluded=frozenset(str(item) for item in excluded_raw))
