"""Durable cursor storage backends."""

from slotfeed.checkpoint.base import CheckpointStore
from slotfeed.checkpoint.factory import build_checkpoint_store
from slotfeed.checkpoint.memory import InMemoryCheckpointStore
from slotfeed.checkpoint.sqlite import SQLiteCheckpointStore
from slotfeed.checkpoint.yaml_file import YamlCheckpointStore

__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "SQLiteCheckpointStore",
    "YamlCheckpointStore",
    "build_checkpoint_store",
]
