"""Opt-in retry with exponential backoff for caller-driven operations."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised once every attempt of a retried operation has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` up to *max_attempts* times.

    The delay before retry ``n`` (0-based) is ``base_delay * 2 ** n`` seconds.
    Nothing in the core calls this implicitly.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Exception | None = None
    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if attempt + 1 >= max_attempts:
                break
            delay = base_delay * 2 ** attempt
            logger.warning(
                f"Attempt {attempt + 1}/{max_attempts} failed ({e}), retrying in {delay:.1f}s"
            )
            await sleep(delay)

    raise RetryExhaustedError(max_attempts, last_error) from last_error
