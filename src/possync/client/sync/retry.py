"""Retry logic with exponential backoff.

This module provides:
- retry_with_backoff: Await a coroutine factory, retrying with exponential backoff
- is_transient: Whether a failure is worth retrying within the same run
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from possync.client.api import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 60.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def is_transient(error: Exception) -> bool:
    """Connection errors and timeouts are transient; HTTP errors are not.

    HTTP errors are left to the next sync run.
    """
    if isinstance(error, AuthenticationError):
        return False
    return isinstance(error, TransportError) and error.is_network_error


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    should_retry: Callable[[Exception], bool] = is_transient,
    on_retry: Callable[[Exception, int], None] | None = None,
) -> T:
    """Await func() with exponential backoff retry.

    Args:
        func: Coroutine factory, called once per attempt.
        max_attempts: Total number of attempts (including the first).
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        should_retry: Predicate deciding whether an error is retried.
        on_retry: Optional callback (error, attempt) before each retry.

    Returns:
        Result of the function.

    Raises:
        The last exception if all attempts fail, or the first one that
        should_retry rejects.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    backoff = initial_backoff
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                if attempt > 1:
                    logger.error("All %d attempts failed: %s", attempt, e)
                raise

            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt,
                max_attempts,
                e,
                backoff,
            )
            if on_retry:
                on_retry(e, attempt)
            await asyncio.sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)
            attempt += 1
