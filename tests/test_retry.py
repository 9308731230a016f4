from __future__ import annotations

import pytest

from slotfeed.errors import ConfigError, ListFailure, RetryExhausted
from slotfeed.retry import RetryPolicy


def _flaky(failures: int):
    calls = {"count": 0}

    def _operation() -> str:
        calls["count"] += 1
        if calls["count"] <= failures:
            raise ListFailure(f"attempt {calls['count']} failed")
        return "ok"

    return _operation, calls


@pytest.mark.parametrize("max_retries", [0, 1, 3])
def test_succeeds_when_failures_fit_in_the_budget(max_retries: int) -> None:
    operation, calls = _flaky(max_retries)

    result = RetryPolicy(max_retries=max_retries).execute(operation, description="listing")

    assert result == "ok"
    assert calls["count"] == max_retries + 1


@pytest.mark.parametrize("max_retries", [0, 1, 3])
def test_exhaustion_after_one_failure_too_many(max_retries: int) -> None:
    operation, calls = _flaky(max_retries + 1)

    with pytest.raises(RetryExhausted) as excinfo:
        RetryPolicy(max_retries=max_retries).execute(operation, description="listing")

    assert calls["count"] == max_retries + 1
    assert excinfo.value.attempts == max_retries + 1
    assert isinstance(excinfo.value.cause, ListFailure)
    assert excinfo.value.__cause__ is excinfo.value.cause
    assert "listing" in str(excinfo.value)


def test_any_exception_counts_as_transient() -> None:
    calls = {"count": 0}

    def _operation() -> int:
        calls["count"] += 1
        if calls["count"] == 1:
            raise ConnectionResetError("peer reset")
        return 42

    assert RetryPolicy(max_retries=1).execute(_operation) == 42


def test_negative_budget_is_rejected() -> None:
    with pytest.raises(ConfigError):
        RetryPolicy(max_retries=-1)
