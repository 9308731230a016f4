"""Package-wide constants and defaults."""

from __future__ import annotations

APP_NAME = "slotfeed"

ENV_LOG_LEVEL = "SLOTFEED_LOG_LEVEL"
ENV_CONFIG_PATH = "SLOTFEED_CONFIG"

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_PIPELINE_ID = "default"
DEFAULT_MAX_RETRIES = 3
DEFAULT_CHARSET = "utf-8"
DEFAULT_DECODE_ERRORS = "replace"

GZIP_MAGIC = b"\x1f\x8b"

STATUS_IDLE = "idle"
STATUS_INGESTING = "ingesting"
STATUS_ERROR = "error"
STATUS_NEVER_RUN = "never-run"

FAILURE_LIST = "list"
FAILURE_FETCH = "fetch"
FAILURE_DECODE = "decode"
FAILURE_DELIVERY = "delivery"
FAILURE_CHECKPOINT = "checkpoint"
FAILURE_CANCELLED = "cancelled"
