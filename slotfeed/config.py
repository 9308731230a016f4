from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from slotfeed.constants import (
    DEFAULT_CHARSET,
    DEFAULT_DECODE_ERRORS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PIPELINE_ID,
)
from slotfeed.cursor import RangeCursor
from slotfeed.errors import ConfigError
from slotfeed.models import parse_ts

CHECKPOINT_BACKENDS = ("sqlite", "yaml", "memory")


@dataclass(slots=True)
class PipelineConfig:
    id: str = DEFAULT_PIPELINE_ID
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_seconds: float = 0.0
    charset: str = DEFAULT_CHARSET
    decode_errors: str = DEFAULT_DECODE_ERRORS
    max_workers: int = 1
    max_slots_per_cycle: int | None = None
    initial_watermark: str | None = None
    initial_excluded: list[str] = field(default_factory=list)

    def initial_cursor(self) -> RangeCursor:
        if not self.initial_watermark:
            if self.initial_excluded:
                raise ConfigError("initial_excluded requires initial_watermark")
            return RangeCursor.beginning()
        try:
            watermark = parse_ts(self.initial_watermark)
        except ValueError as exc:
            raise ConfigError(f"Invalid initial_watermark: {self.initial_watermark!r}") from exc
        return RangeCursor.at(watermark, *self.initial_excluded)


@dataclass(slots=True)
class ConnectorConfig:
    name: str = "local_dir"
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CheckpointConfig:
    backend: str = "sqlite"
    dsn: str = "sqlite:///./slotfeed.db"


@dataclass(slots=True)
class DaemonConfig:
    poll_interval_seconds: int = 60
    spool_dir: str = "./spool"


@dataclass(slots=True)
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL


@dataclass(slots=True)
class AppConfig:
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    connector: ConnectorConfig = field(default_factory=ConnectorConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def default() -> AppConfig:
        return AppConfig(
            connector=ConnectorConfig(
                name="local_dir",
                params={
                    "root": "./inbox",
                    "pattern": "*",
                    "date_regex": r"(\d{8})",
                    "date_format": "%Y%m%d",
                },
            )
        )

    def validate(self) -> AppConfig:
        if self.pipeline.max_retries < 0:
            raise ConfigError("pipeline.max_retries must be >= 0")
        if self.pipeline.retry_backoff_seconds < 0:
            raise ConfigError("pipeline.retry_backoff_seconds must be >= 0")
        if self.pipeline.max_workers < 1:
            raise ConfigError("pipeline.max_workers must be >= 1")
        if self.pipeline.max_slots_per_cycle is not None and self.pipeline.max_slots_per_cycle < 1:
            raise ConfigError("pipeline.max_slots_per_cycle must be >= 1 when set")
        if self.checkpoint.backend.lower() not in CHECKPOINT_BACKENDS:
            raise ConfigError(f"Unsupported checkpoint backend: {self.checkpoint.backend}")
        if self.daemon.poll_interval_seconds < 0:
            raise ConfigError("daemon.poll_interval_seconds must be >= 0")
        self.pipeline.initial_cursor()
        return self


def load_config(path: str | Path | None) -> AppConfig:
    if path is None:
        return AppConfig.default()

    config_path = Path(path)
    if not config_path.exists():
        return AppConfig.default()

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    default = AppConfig.default()
    pipeline_raw = raw.get("pipeline", {}) or {}
    connector_raw = raw.get("connector", {}) or {}
    checkpoint_raw = raw.get("checkpoint", {}) or {}
    daemon_raw = raw.get("daemon", {}) or {}
    logging_raw = raw.get("logging", {}) or {}

    max_slots = pipeline_raw.get("max_slots_per_cycle")
    watermark = pipeline_raw.get("initial_watermark")

    try:
        config = AppConfig(
            pipeline=PipelineConfig(
                id=str(pipeline_raw.get("id", DEFAULT_PIPELINE_ID)),
                max_retries=int(pipeline_raw.get("max_retries", DEFAULT_MAX_RETRIES)),
                retry_backoff_seconds=float(pipeline_raw.get("retry_backoff_seconds", 0.0)),
                charset=str(pipeline_raw.get("charset", DEFAULT_CHARSET)),
                decode_errors=str(pipeline_raw.get("decode_errors", DEFAULT_DECODE_ERRORS)),
                max_workers=int(pipeline_raw.get("max_workers", 1)),
                max_slots_per_cycle=int(max_slots) if max_slots is not None else None,
                initial_watermark=_watermark_text(watermark),
                initial_excluded=[str(item) for item in pipeline_raw.get("initial_excluded", [])],
            ),
            connector=ConnectorConfig(
                name=str(connector_raw.get("name", default.connector.name)),
                params=dict(connector_raw.get("params", default.connector.params)),
            ),
            checkpoint=CheckpointConfig(
                backend=str(checkpoint_raw.get("backend", "sqlite")),
                dsn=str(checkpoint_raw.get("dsn", "sqlite:///./slotfeed.db")),
            ),
            daemon=DaemonConfig(
                poll_interval_seconds=int(daemon_raw.get("poll_interval_seconds", 60)),
                spool_dir=str(daemon_raw.get("spool_dir", "./spool")),
            ),
            logging=LoggingConfig(level=str(logging_raw.get("level", DEFAULT_LOG_LEVEL))),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config {config_path}: {exc}") from exc
    return config.validate()


def _watermark_text(value: Any) -> str | None:
    # PyYAML turns unquoted timestamps into datetime objects.
    if value is None or value == "":
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def dump_default_config(path: str | Path) -> None:
    cfg = AppConfig.default()
    payload: dict[str, Any] = {
        "pipeline": {
            "id": cfg.pipeline.id,
            "max_retries": cfg.pipeline.max_retries,
            "retry_backoff_seconds": cfg.pipeline.retry_backoff_seconds,
            "charset": cfg.pipeline.charset,
            "decode_errors": cfg.pipeline.decode_errors,
            "max_workers": cfg.pipeline.max_workers,
            "max_slots_per_cycle": cfg.pipeline.max_slots_per_cycle,
            "initial_watermark": cfg.pipeline.initial_watermark,
            "initial_excluded": cfg.pipeline.initial_excluded,
        },
        "connector": {"name": cfg.connector.name, "params": cfg.connector.params},
        "checkpoint": {"backend": cfg.checkpoint.backend, "dsn": cfg.checkpoint.dsn},
        "daemon": {
            "poll_interval_seconds": cfg.daemon.poll_interval_seconds,
            "spool_dir": cfg.daemon.spool_dir,
        },
        "logging": {"level": cfg.logging.level},
    }
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False)
