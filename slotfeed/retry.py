"""Bounded retry around connector calls."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
    wait_none,
)

from slotfeed.constants import DEFAULT_MAX_RETRIES
from slotfeed.errors import ConfigError, RetryExhausted
from slotfeed.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class RetryPolicy:
    """Run an operation up to ``max_retries + 1`` times.

    Every ``Exception`` raised by an attempt is treated as transient. When the
    last attempt fails too, ``RetryExhausted`` is raised with the last cause
    chained. Cleanup of partial work is the operation's own business.
    """

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES, backoff_seconds: float = 0.0):
        if max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {max_retries}")
        if backoff_seconds < 0:
            raise ConfigError(f"backoff_seconds must be >= 0, got {backoff_seconds}")
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def execute(self, operation: Callable[[], T], *, description: str = "operation") -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.backoff_seconds) if self.backoff_seconds else wait_none(),
            retry=retry_if_exception_type(Exception),
            before_sleep=_log_retry(description, self.max_attempts),
            reraise=False,
        )
        try:
            return retrying(operation)
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            logger.error("%s failed after %s attempt(s): %s", description, attempts, cause)
            raise RetryExhausted(description, attempts, cause) from cause


def _log_retry(description: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome is not None else None
        logger.warning(
            "%s failed (attempt %d/%d), retrying: %s",
            description,
            state.attempt_number,
            max_attempts,
            exc,
        )

    return _before_sleep
