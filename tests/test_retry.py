"""Unit tests for the retry executor (generation.retry)."""

import asyncio

import pytest

from generation.errors import (
    AUTH_MESSAGE,
    OVERLOAD_MESSAGE,
    FailureKind,
    MalformedResponseError,
    RunFailedError,
)
from generation.retry import backoff_delay, execute_with_retry


def make_operation(outcomes):
    """Coroutine factory that replays outcomes; counts invocations."""
    calls = {"count": 0}

    async def operation():
        outcome = outcomes[min(calls["count"], len(outcomes) - 1)]
        calls["count"] += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return operation, calls


# -----------------------------------------------------------------------------
# backoff_delay
# -----------------------------------------------------------------------------


def test_backoff_delay_doubles_from_two_seconds():
    assert backoff_delay(0, lambda: 0.0) == 2.0
    assert backoff_delay(1, lambda: 0.0) == 4.0
    assert backoff_delay(2, lambda: 0.0) == 8.0


def test_backoff_delay_adds_up_to_one_second_of_jitter():
    assert backoff_delay(0, lambda: 0.5) == 2.5
    assert 2.0 <= backoff_delay(0) < 3.0


# -----------------------------------------------------------------------------
# execute_with_retry
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_success_on_first_attempt(sleep):
    operation, calls = make_operation(["ok"])

    result = await execute_with_retry(operation, 3, sleep=sleep)

    assert result == "ok"
    assert calls["count"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transient_failures_are_retried_until_success(sleep):
    operation, calls = make_operation([Exception("503"), Exception("429"), "ok"])

    result = await execute_with_retry(operation, 3, sleep=sleep, jitter=lambda: 0.25)

    assert result == "ok"
    assert calls["count"] == 3
    assert sleep.delays == [2.25, 4.25]


@pytest.mark.asyncio
async def test_exhausted_attempts_raise_classified_failure(sleep):
    original = Exception("503 Service Unavailable")
    operation, calls = make_operation([original])

    with pytest.raises(RunFailedError) as excinfo:
        await execute_with_retry(operation, 3, sleep=sleep)

    assert calls["count"] == 3
    assert len(sleep.delays) == 2
    assert 2 <= sleep.delays[0] < 3
    assert 4 <= sleep.delays[1] < 5
    assert str(excinfo.value) == OVERLOAD_MESSAGE
    assert excinfo.value.failure.kind == FailureKind.TRANSIENT
    assert excinfo.value.__cause__ is original


@pytest.mark.asyncio
async def test_non_retryable_failure_stops_immediately(sleep):
    operation, calls = make_operation([Exception("invalid api_key"), "never"])

    with pytest.raises(RunFailedError) as excinfo:
        await execute_with_retry(operation, 5, sleep=sleep)

    assert calls["count"] == 1
    assert sleep.delays == []
    assert str(excinfo.value) == AUTH_MESSAGE


@pytest.mark.asyncio
async def test_stops_at_first_non_transient_failure(sleep):
    operation, calls = make_operation([Exception("503"), MalformedResponseError("bad json"), "never"])

    with pytest.raises(RunFailedError) as excinfo:
        await execute_with_retry(operation, 5, sleep=sleep)

    assert calls["count"] == 2
    assert len(sleep.delays) == 1
    assert excinfo.value.failure.kind == FailureKind.MALFORMED


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps(sleep):
    operation, calls = make_operation([Exception("503")])

    with pytest.raises(RunFailedError):
        await execute_with_retry(operation, 1, sleep=sleep)

    assert calls["count"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_max_attempts_must_be_positive(sleep):
    operation, calls = make_operation(["ok"])

    with pytest.raises(ValueError):
        await execute_with_retry(operation, 0, sleep=sleep)

    assert calls["count"] == 0


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(sleep):
    async def operation():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await execute_with_retry(operation, 3, sleep=sleep)

    assert sleep.delays == []
