from __future__ import annotations

from slotfeed.checkpoint.base import CheckpointStore
from slotfeed.checkpoint.memory import InMemoryCheckpointStore
from slotfeed.checkpoint.sqlite import SQLiteCheckpointStore
from slotfeed.checkpoint.yaml_file import YamlCheckpointStore
from slotfeed.config import CheckpointConfig
from slotfeed.errors import ConfigError


def build_checkpoint_store(config: CheckpointConfig) -> CheckpointStore:
    backend = config.backend.lower()

    if backend == "sqlite":
        return SQLiteCheckpointStore(config.dsn)
    if backend == "yaml":
        return YamlCheckpointStore(config.dsn)
    if backend == "memory":
        return InMemoryCheckpointStore()

    raise ConfigError(f"Unsupported checkpoint backend: {config.backend}")
