"""Logging setup for the daemon and the status API."""

from __future__ import annotations

import enum
import logging
import os
from datetime import datetime
from typing import Any

from rich.logging import RichHandler

from slotfeed.constants import DEFAULT_LOG_LEVEL, ENV_LOG_LEVEL

QUIET_LOGGERS = ("tenacity", "httpx", "httpcore", "uvicorn.access", "asyncio")
MAX_EVENT_CHARS = 240

_configured_level: int | None = None


def effective_level(level: int | str | None = None) -> int:
    """``SLOTFEED_LOG_LEVEL`` wins over ``level``, which wins over the default."""
    if isinstance(level, int) and not os.getenv(ENV_LOG_LEVEL):
        return level
    name = (os.getenv(ENV_LOG_LEVEL) or str(level or "") or DEFAULT_LOG_LEVEL).strip().upper()
    value = logging.getLevelName(name)
    if isinstance(value, int):
        return value
    if name.isdigit():
        return int(name)
    raise ValueError(f"Unknown log level: {name}")


def setup_logging(level: int | str | None = None, *, force: bool = False) -> None:
    global _configured_level

    target = effective_level(level)
    if _configured_level == target and not force:
        return

    handler = RichHandler(level=target, markup=False, show_path=False)
    logging.basicConfig(level=target, format="%(message)s", handlers=[handler], force=True)
    logging.getLogger("slotfeed").setLevel(target)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(target, logging.WARNING))

    _configured_level = target


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _event_value(value: Any) -> str:
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        return value if value and " " not in value else repr(value)
    if isinstance(value, (set, frozenset, list, tuple)):
        return f"{type(value).__name__}({len(value)})"
    return str(value)


def debug_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log ``event key=value ...`` at DEBUG; ``None`` fields are left out."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    text = " ".join(
        [f"event={event}"]
        + [f"{key}={_event_value(value)}" for key, value in fields.items() if value is not None]
    )
    if len(text) > MAX_EVENT_CHARS:
        text = text[:MAX_EVENT_CHARS] + "..."
    logger.debug(text)
