"""In-process connector over fixed slots, with injectable transient failures."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from slotfeed.connectors.base import ConnectorSettings
from slotfeed.errors import FetchFailure, ListFailure
from slotfeed.models import Slot, parse_ts


@dataclass(slots=True)
class MemoryConnector:
    slots: list[Slot] = field(default_factory=list)
    payloads: dict[str, bytes] = field(default_factory=dict)
    list_failures: int = 0
    fetch_failures: int = 0
    failing_slots: set[str] = field(default_factory=set)
    name: str = "memory"
    list_calls: int = 0
    fetch_calls: dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_settings(cls, settings: ConnectorSettings) -> MemoryConnector:
        raw_slots = settings.params.get("slots") or []
        slots: list[Slot] = []
        payloads: dict[str, bytes] = {}
        for item in raw_slots:
            slot = Slot(
                identifier=str(item["identifier"]),
                timestamp=parse_ts(str(item["timestamp"])),
            )
            slots.append(slot)
            content = item.get("content", "")
            if isinstance(content, str):
                content = content.encode("utf-8")
            payloads[slot.identifier] = content
        return cls(
            slots=slots,
            payloads=payloads,
            list_failures=int(settings.params.get("list_failures", 0)),
            fetch_failures=int(settings.params.get("fetch_failures", 0)),
            name=settings.name,
        )

    def add(self, slot: Slot, content: bytes | str) -> None:
        self.slots.append(slot)
        self.payloads[slot.identifier] = (
            content.encode("utf-8") if isinstance(content, str) else content
        )

    def list_slots(self) -> list[Slot]:
        with self._lock:
            self.list_calls += 1
            if self.list_calls <= self.list_failures:
                raise ListFailure(f"listing unavailable (call {self.list_calls})")
            return list(self.slots)

    def fetch(self, slot: Slot) -> bytes:
        with self._lock:
            calls = self.fetch_calls.get(slot.identifier, 0) + 1
            self.fetch_calls[slot.identifier] = calls
        if slot.identifier in self.failing_slots:
            raise FetchFailure(f"slot {slot.identifier!r} is unavailable")
        if calls <= self.fetch_failures:
            raise FetchFailure(f"fetch of {slot.identifier!r} interrupted (call {calls})")
        try:
            return self.payloads[slot.identifier]
        except KeyError as exc:
            raise FetchFailure(f"unknown slot {slot.identifier!r}") from exc
