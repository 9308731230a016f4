"""Downstream line sinks fed by committed cycles."""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Protocol

from slotfeed.fetch import FetchResult
from slotfeed.models import Slot


class LineSink(Protocol):
    """Receives every result of a cycle, then ``commit`` before the cursor is saved.

    Lines must be durable once ``commit`` returns. ``discard`` drops the
    current cycle's lines when it aborts, including lines already committed
    when the checkpoint store fails afterwards.
    """

    def write(self, result: FetchResult) -> int: ...

    def commit(self) -> None: ...

    def discard(self) -> None: ...


@dataclass(slots=True)
class CollectingSink:
    lines: list[str] = field(default_factory=list)
    slots: list[Slot] = field(default_factory=list)
    _pending_lines: list[str] = field(default_factory=list, repr=False)
    _pending_slots: list[Slot] = field(default_factory=list, repr=False)
    _mark: tuple[int, int] | None = None

    def write(self, result: FetchResult) -> int:
        self._mark = None
        before = len(self._pending_lines)
        self._pending_lines.extend(result.lines)
        self._pending_slots.append(result.slot)
        return len(self._pending_lines) - before

    def commit(self) -> None:
        self._mark = (len(self.lines), len(self.slots))
        self.lines.extend(self._pending_lines)
        self.slots.extend(self._pending_slots)
        self._pending_lines.clear()
        self._pending_slots.clear()

    def discard(self) -> None:
        self._pending_lines.clear()
        self._pending_slots.clear()
        if self._mark is not None:
            lines_mark, slots_mark = self._mark
            del self.lines[lines_mark:]
            del self.slots[slots_mark:]
            self._mark = None


@dataclass(slots=True)
class SpoolSegment:
    path: Path
    record_count: int


class SpoolSink:
    """Append delivered lines to JSONL segment files, one segment per cycle."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.segments: list[SpoolSegment] = []
        self.last_segment: SpoolSegment | None = None
        self._fh: IO[str] | None = None
        self._path: Path | None = None
        self._count = 0

    def write(self, result: FetchResult) -> int:
        self.last_segment = None
        if self._fh is None:
            self._path = self.root / f"segment_{uuid.uuid4().hex}.jsonl"
            self._fh = self._path.open("w", encoding="utf-8")
            self._count = 0

        written = 0
        for line_number, line in enumerate(result.lines, start=1):
            payload = {
                "slot": result.slot.identifier,
                "timestamp": result.slot.timestamp.isoformat(),
                "line_number": line_number,
                "line": line,
            }
            self._fh.write(json.dumps(payload, ensure_ascii=True) + "\n")
            written += 1
        self._count += written
        return written

    def commit(self) -> None:
        """Fsync and close the cycle's segment; a cycle without lines leaves none."""
        self.last_segment = None
        if self._fh is None or self._path is None:
            return
        self._fh.flush()
        os.fsync(self._fh.fileno())
        self._fh.close()
        segment = SpoolSegment(path=self._path, record_count=self._count)
        self.segments.append(segment)
        self.last_segment = segment
        self._fh = None
        self._path = None

    def discard(self) -> None:
        if self._fh is not None and self._path is not None:
            self._fh.close()
            self._path.unlink(missing_ok=True)
            self._fh = None
            self._path = None
        if self.last_segment is not None:
            self.last_segment.path.unlink(missing_ok=True)
            self.segments.remove(self.last_segment)
            self.last_segment = None

    def iter_rows(self, segments: list[SpoolSegment] | None = None) -> Iterator[dict]:
        for segment in segments if segments is not None else self.segments:
            with segment.path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    yield json.loads(line)
