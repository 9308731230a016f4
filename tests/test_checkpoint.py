from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from slotfeed.api_objects.types import CycleSummary
from slotfeed.checkpoint.base import CheckpointStore
from slotfeed.checkpoint.factory import build_checkpoint_store
from slotfeed.checkpoint.memory import InMemoryCheckpointStore
from slotfeed.checkpoint.sqlite import SQLiteCheckpointStore
from slotfeed.checkpoint.yaml_file import YamlCheckpointStore
from slotfeed.config import CheckpointConfig
from slotfeed.cursor import RangeCursor
from slotfeed.errors import ConfigError

DEC_02 = datetime(2016, 12, 2, tzinfo=UTC)


@pytest.fixture(params=["sqlite", "yaml", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[CheckpointStore]:
    if request.param == "sqlite":
        built: CheckpointStore = SQLiteCheckpointStore(f"sqlite:///{tmp_path / 'cp.db'}")
    elif request.param == "yaml":
        built = YamlCheckpointStore(tmp_path / "state" / "checkpoints.yaml")
    else:
        built = InMemoryCheckpointStore()
    built.init_schema()
    yield built
    built.close()


def _summary(pipeline_id: str, minute: int, failure_kind: str | None = None) -> CycleSummary:
    started = DEC_02 + timedelta(minutes=minute)
    return CycleSummary(
        pipeline_id=pipeline_id,
        status="error" if failure_kind else "ingesting",
        started_at=started,
        ended_at=started + timedelta(seconds=5),
        slots_listed=3,
        slots_eligible=2,
        slots_consumed=[] if failure_kind else ["a.txt", "b.txt"],
        records_read=0 if failure_kind else 10,
        bytes_read=0 if failure_kind else 120,
        watermark=DEC_02.isoformat(),
        excluded=["b.txt"],
        failure_kind=failure_kind,
        error_message="boom" if failure_kind else None,
    )


def test_cursor_round_trip_keeps_exclusions(store: CheckpointStore) -> None:
    cursor = RangeCursor.at(DEC_02, "example_20161202_2.txt", "example_20161202_1.txt")

    assert store.load_cursor("p1") is None
    store.save_cursor("p1", cursor)

    assert store.load_cursor("p1") == cursor


def test_save_replaces_previous_cursor(store: CheckpointStore) -> None:
    store.save_cursor("p1", RangeCursor.at(DEC_02, "a"))
    later = RangeCursor.at(DEC_02 + timedelta(days=1), "b")
    store.save_cursor("p1", later)
    store.save_cursor("p2", RangeCursor.beginning())

    assert store.load_cursor("p1") == later
    assert list(store.list_cursors()) == ["p1", "p2"]
    assert store.list_cursors()["p2"] == RangeCursor.beginning()


def test_delete_cursor(store: CheckpointStore) -> None:
    store.save_cursor("p1", RangeCursor.at(DEC_02))

    assert store.delete_cursor("p1") is True
    assert store.delete_cursor("p1") is False
    assert store.load_cursor("p1") is None


def test_cycle_audit_newest_first(store: CheckpointStore) -> None:
    store.append_cycle_audit(_summary("p1", 0))
    store.append_cycle_audit(_summary("p1", 1, failure_kind="fetch"))
    store.append_cycle_audit(_summary("other", 2))

    rows = store.list_cycle_audit("p1", limit=10)

    assert [row["failure_kind"] for row in rows] == ["fetch", None]
    assert rows[1]["slots_consumed"] == ["a.txt", "b.txt"]
    assert rows[1]["records_read"] == 10
    assert rows[0]["error_message"] == "boom"
    assert store.list_cycle_audit("p1", limit=1) == rows[:1]


def test_sqlite_checkpoint_survives_reopen(tmp_path: Path) -> None:
    dsn = f"sqlite:///{tmp_path / 'nested' / 'cp.db'}"
    first = SQLiteCheckpointStore(dsn)
    first.init_schema()
    first.save_cursor("p1", RangeCursor.at(DEC_02, "x"))
    first.close()

    second = SQLiteCheckpointStore(dsn)
    second.init_schema()
    assert second.load_cursor("p1") == RangeCursor.at(DEC_02, "x")
    second.close()


def test_yaml_checkpoint_leaves_no_temp_file(tmp_path: Path) -> None:
    path = tmp_path / "checkpoints.yaml"
    store = YamlCheckpointStore(path)
    store.save_cursor("p1", RangeCursor.at(DEC_02, "x"))

    assert path.exists()
    assert not (tmp_path / "checkpoints.yaml.tmp").exists()
    assert YamlCheckpointStore(path).load_cursor("p1") == RangeCursor.at(DEC_02, "x")


def test_factory_builds_each_backend(tmp_path: Path) -> None:
    assert isinstance(
        build_checkpoint_store(CheckpointConfig("sqlite", f"sqlite:///{tmp_path / 'a.db'}")),
        SQLiteCheckpointStore,
    )
    assert isinstance(
        build_checkpoint_store(CheckpointConfig("YAML", str(tmp_path / "a.yaml"))),
        YamlCheckpointStore,
    )
    memory = build_checkpoint_store(CheckpointConfig("memory", ""))
    assert isinstance(memory, InMemoryCheckpointStore)


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(ConfigError):
        build_checkpoint_store(CheckpointConfig("redis", "redis://localhost"))


def test_sqlite_rejects_foreign_dsn() -> None:
    with pytest.raises(ValueError):
        SQLiteCheckpointStore("postgres://localhost/db")
