"""
Bounded retry with exponential backoff for store writes.

Only transient store failures are retried. A failed condition is a
definitive answer from the store and is re-raised immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..store.base import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    retry_delay_ms: int,
    description: str = "store write",
) -> T:
    """Run operation, retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Total attempts (at least 1)
        retry_delay_ms: Delay before the second attempt; doubled each retry
        description: Label for log messages

    Raises:
        StoreUnavailableError: If every attempt failed
        Exception: Any non-transient error, on the first occurrence
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StoreUnavailableError as e:
            if attempt == attempts:
                logger.warning(
                    f"Giving up on {description}",
                    extra={"attempts": attempts, "error": str(e)},
                )
                raise
            delay = retry_delay_ms * (2 ** (attempt - 1)) / 1000
            logger.debug(
                f"Retrying {description}",
                extra={"attempt": attempt, "delay_s": delay, "error": str(e)},
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
