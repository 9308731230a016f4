"""Internal event bus for cycle/runtime observability."""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from slotfeed.models import utc_now

DEFAULT_HISTORY = 1000


@dataclass(slots=True)
class InternalEvent:
    topic: str
    ts: datetime
    payload: dict[str, Any] = field(default_factory=dict)


EventCallback = Callable[[InternalEvent], None]


class EventBus:
    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        self._subscribers: dict[str, list[EventCallback]] = defaultdict(list)
        self._events: deque[InternalEvent] = deque(maxlen=history)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: EventCallback) -> None:
        self._subscribers[topic].append(callback)

    def emit(self, topic: str, **payload: Any) -> InternalEvent:
        event = InternalEvent(topic=topic, ts=utc_now(), payload=payload)
        with self._lock:
            self._events.append(event)

        for callback in self._subscribers.get(topic, []):
            callback(event)
        for callback in self._subscribers.get("*", []):
            callback(event)

        return event

    def recent(self, limit: int = 100) -> list[InternalEvent]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._events)[-limit:]

    def topics(self) -> list[str]:
        with self._lock:
            return [event.topic for event in self._events]
