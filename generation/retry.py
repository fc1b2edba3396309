"""
Bounded exponential-backoff retry for Gemini calls.

Wraps a single async call. Transient failures (rate limit, overload,
deadline, network) are retried with a 2s, 4s, 8s... backoff plus up to one
second of jitter; anything else, or the last failure, is raised as a
RunFailedError carrying a classifier-formatted message.
"""
import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

from .errors import RunFailedError, classify_failure, is_retry_eligible

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 2.0
MAX_JITTER_SECONDS = 1.0


def backoff_delay(attempt: int, jitter: Callable[[], float] = random.random) -> float:
    """
    Delay in seconds after the zero-based attempt that just failed.

    attempt=0 -> [2, 3), attempt=1 -> [4, 5), attempt=2 -> [8, 9)
    """
    return (2 ** attempt) * BASE_DELAY_SECONDS + jitter() * MAX_JITTER_SECONDS


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    label: str = "gemini_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    jitter: Callable[[], float] = random.random,
) -> T:
    """
    Await operation(), retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total invocations allowed (not retries).
        label: Label for logging.
        sleep: Awaitable sleep, injectable for tests.
        jitter: Returns a float in [0, 1), injectable for tests.

    Returns:
        The operation's result.

    Raises:
        RunFailedError: When the failure is not retry eligible or attempts
            are exhausted. Chained from the last underlying exception.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info("retry_succeeded", label=label, attempt=attempt + 1)
            return result
        except Exception as e:
            if is_retry_eligible(e) and attempt < max_attempts - 1:
                delay = backoff_delay(attempt, jitter)
                logger.warning(
                    "transient_error_retrying",
                    label=label,
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    wait_time=round(delay, 3),
                    error=str(e)[:200],
                )
                await sleep(delay)
                continue

            failure = classify_failure(e)
            logger.error(
                "call_failed",
                label=label,
                attempts=attempt + 1,
                kind=failure.kind.value,
                error=str(e)[:500],
            )
            raise RunFailedError(failure) from e

    # Unreachable: the loop either returns or raises.
    raise RuntimeError(f"{label} failed after {max_attempts} attempts")
