"""Bounded retry with exponential backoff for pipeline service reads."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pipeline_console.errors import ApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429


def is_retryable_error(error: BaseException) -> bool:
    """Return False for client errors (4xx other than 429), True otherwise."""
    if isinstance(error, ApiError):
        status = error.status_code
        if 400 <= status < 500 and status != HTTP_TOO_MANY_REQUESTS:
            return False
    return True


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt + 1``: exponential plus up to 1s jitter."""
    return min(base_delay * (2**attempt) + random.random(), max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn`` up to ``max_retries + 1`` times.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        max_retries: Retries after the first attempt.
        base_delay: Backoff base in seconds.
        max_delay: Cap on any single delay.
        should_retry: Predicate deciding whether an exception is transient.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error, once attempts are exhausted or the error
            is not retryable.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            if attempt == max_retries or not should_retry(exc):
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.debug(
                "Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                exc,
                attempt + 1,
                max_retries,
                delay,
            )
            await sleep(delay)

    raise AssertionError("unreachable")
