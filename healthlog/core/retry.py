"""Retry and backoff utilities for resilient operations.

The queue uses `backoff_delay_ms` to reschedule failed deliveries, and
`retry_with_backoff` wraps one-off async operations such as the initial
database connectivity check.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from healthlog.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))


def backoff_delay_ms(attempts_made: int, base_delay_ms: int) -> int:
    """
    Exponential backoff delay before the next delivery attempt.

    The first retry waits `base_delay_ms`, each following retry doubles it:
    2000, 4000, 8000... for a 2000 ms base.

    Args:
        attempts_made: Number of attempts already made (>= 1)
        base_delay_ms: Delay before the first retry

    Returns:
        Delay in milliseconds
    """
    if attempts_made < 1:
        return 0
    return int(base_delay_ms * (2 ** (attempts_made - 1)))


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute async function with exponential backoff retry.

    Each retry waits for: min(backoff_base * 2^attempt, backoff_max) seconds,
    with random jitter applied if enabled.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration, uses defaults if not provided
        operation_name: Name for logging purposes

    Returns:
        Result of fn()

    Raises:
        Exception: The last exception if all retries are exhausted
    """
    config = config or RetryConfig()
    last_exception: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt + 1 == config.max_attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=config.max_attempts,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            delay = min(config.backoff_base * (2**attempt), config.backoff_max)
            if config.jitter:
                delay *= 0.5 + random.random()

            logger.bind(
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)

    # This should never be reached, but satisfies type checker
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Unexpected state in retry_with_backoff")
