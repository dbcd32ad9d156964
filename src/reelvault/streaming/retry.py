"""
Exponential backoff for upstream metadata calls.

Only metadata lookups and folder listings are retried. Byte streams never go
through here; a half-sent body cannot be replayed.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..infra.exceptions import TransientError
from ..infra.logging import get_logger
from .throttle import classify_upstream_error

logger = get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    return isinstance(classify_upstream_error(exc), TransientError)


def backoff_delay(attempt: int, base_delay: float = 2.0, jitter: float = 1.0) -> float:
    """Delay before retrying after the ``attempt``-th failure (0-based)."""
    return base_delay * (2**attempt) + random.uniform(0, jitter)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 5,
    base_delay: float = 2.0,
    jitter: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    label: str | None = None,
) -> T:
    """
    Run ``operation`` until it succeeds, a non-retryable error occurs, or
    attempts run out.

    When attempts run out the last error is re-raised as is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, jitter)
            logger.info(
                "retrying_upstream_call",
                operation=label,
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)

    raise AssertionError("unreachable")
