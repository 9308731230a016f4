from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from slotfeed.checkpoint.sqlite import SQLiteCheckpointStore
from slotfeed.connectors.memory import MemoryConnector
from slotfeed.cursor import RangeCursor
from slotfeed.errors import CycleAborted
from slotfeed.fetch import FetchResult
from slotfeed.models import Slot
from slotfeed.pipeline import IncrementalSlotPipeline
from slotfeed.sinks import CollectingSink, SpoolSink

DEC_01 = Slot("a.txt", datetime(2016, 12, 1, tzinfo=UTC))
DEC_02 = Slot("b.txt", datetime(2016, 12, 2, tzinfo=UTC))


def _result(slot: Slot, *lines: str) -> FetchResult:
    return FetchResult(slot=slot, lines=list(lines))


def _segment_lines(root: Path) -> list[str]:
    lines: list[str] = []
    for path in sorted(root.iterdir()):
        for raw in path.read_text(encoding="utf-8").splitlines():
            lines.append(json.loads(raw)["line"])
    return lines


def test_committed_spool_is_on_disk_before_the_cursor_is_read_back(tmp_path: Path) -> None:
    dsn = f"sqlite:///{tmp_path / 'cp.db'}"
    store = SQLiteCheckpointStore(dsn)
    store.init_schema()
    connector = MemoryConnector()
    connector.add(DEC_01, "one\ntwo\n")
    spool = SpoolSink(tmp_path / "spool")
    pipeline = IncrementalSlotPipeline(
        connector, spool, cursor=RangeCursor.beginning(), checkpoints=store
    )

    pipeline.run_cycle()

    reopened = SQLiteCheckpointStore(dsn)
    assert reopened.load_cursor("default") == RangeCursor.at(DEC_01.timestamp, "a.txt")
    reopened.close()
    store.close()
    assert _segment_lines(tmp_path / "spool") == ["one", "two"]
    assert spool.last_segment is not None
    assert spool.last_segment.record_count == 2


def test_spool_discard_before_commit_removes_the_open_segment(tmp_path: Path) -> None:
    spool = SpoolSink(tmp_path)
    spool.write(_result(DEC_01, "one"))

    spool.discard()

    assert list(tmp_path.iterdir()) == []
    assert spool.segments == []


def test_spool_discard_after_commit_removes_only_that_cycle(tmp_path: Path) -> None:
    spool = SpoolSink(tmp_path)
    spool.write(_result(DEC_01, "one"))
    spool.commit()
    spool.write(_result(DEC_02, "two"))
    spool.commit()

    spool.discard()

    assert _segment_lines(tmp_path) == ["one"]
    assert [row["slot"] for row in spool.iter_rows()] == ["a.txt"]


def test_spool_commit_without_lines_keeps_earlier_segments(tmp_path: Path) -> None:
    spool = SpoolSink(tmp_path)
    spool.write(_result(DEC_01, "one"))
    spool.commit()

    spool.commit()
    spool.discard()

    assert _segment_lines(tmp_path) == ["one"]


def test_spool_rows_carry_slot_and_line_number(tmp_path: Path) -> None:
    spool = SpoolSink(tmp_path)
    spool.write(_result(DEC_02, "x", "y"))
    spool.commit()

    assert list(spool.iter_rows()) == [
        {"slot": "b.txt", "timestamp": "2016-12-02T00:00:00+00:00", "line_number": 1, "line": "x"},
        {"slot": "b.txt", "timestamp": "2016-12-02T00:00:00+00:00", "line_number": 2, "line": "y"},
    ]


def test_collecting_sink_exposes_lines_only_after_commit() -> None:
    sink = CollectingSink()

    assert sink.write(_result(DEC_01, "one", "two")) == 2
    assert sink.lines == []

    sink.commit()
    sink.write(_result(DEC_02, "three"))
    sink.discard()

    assert sink.lines == ["one", "two"]
    assert sink.slots == [DEC_01]


class _StoreFailsOnSave(SQLiteCheckpointStore):
    def save_cursor(self, pipeline_id: str, cursor: RangeCursor) -> None:
        raise OSError("database is locked")


def test_checkpoint_failure_removes_the_committed_segment(tmp_path: Path) -> None:
    store = _StoreFailsOnSave(f"sqlite:///{tmp_path / 'cp.db'}")
    store.init_schema()
    connector = MemoryConnector()
    connector.add(DEC_01, "one\n")
    spool = SpoolSink(tmp_path / "spool")
    pipeline = IncrementalSlotPipeline(
        connector, spool, cursor=RangeCursor.beginning(), checkpoints=store
    )

    with pytest.raises(CycleAborted) as excinfo:
        pipeline.run_cycle()
    store.close()

    assert excinfo.value.kind == "checkpoint"
    assert list((tmp_path / "spool").iterdir()) == []
    assert spool.segments == []
