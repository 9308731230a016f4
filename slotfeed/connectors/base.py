from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol

from slotfeed.models import Slot


class Connector(Protocol):
    """Read-only access to a remote location holding dated slots.

    Both calls must be idempotent: they are retried, and a slot is fetched
    again in a later cycle whenever the cycle that fetched it aborted.
    """

    name: str

    def list_slots(self) -> list[Slot]: ...

    def fetch(self, slot: Slot) -> bytes | BinaryIO: ...


@dataclass(slots=True)
class ConnectorSettings:
    name: str
    params: dict[str, Any] = field(default_factory=dict)
