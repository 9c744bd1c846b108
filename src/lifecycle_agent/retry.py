"""Retry harness — bounded exponential backoff for cluster API calls."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, TypeVar

from .primitives.exceptions import is_conflict, is_retriable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger("lifecycle_agent.retry")


class RetryPolicy:
    """Configurable retry with exponential backoff and jitter."""

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: bool = True,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Maximum number of attempts (including the first).
            base_delay: Initial delay in seconds before the first retry.
            max_delay: Cap on delay in seconds.
            jitter: If True, add random jitter to delays.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter

    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt is allowed (attempt is 1-based)."""
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Return delay in seconds for the given 1-based attempt.

        Uses exponential backoff: base_delay * 2^(attempt-1), capped by max_delay.
        If jitter is enabled, multiplies by a random factor in [0.9, 1.1].
        """
        if attempt < 1:
            return 0.0
        delay = min(
            self.base_delay * (2 ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter:
            delay = delay * (0.9 + random.random() * 0.2)  # noqa: S311
        return float(max(0.0, delay))

    async def wait_before_retry(self, attempt: int) -> None:
        d = self.delay_for_attempt(attempt)
        if d > 0:
            await _sleep(d)


# Short backoff for writes that race with other controllers.
DEFAULT_BACKOFF = RetryPolicy(max_attempts=4, base_delay=0.01, max_delay=1.0)

# Roughly two minutes of retries, used when the API server may be restarting.
TWO_MINUTE_BACKOFF = RetryPolicy(max_attempts=9, base_delay=1.0, max_delay=30.0)


async def retry_on(
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Run *operation*, retrying failures accepted by *should_retry*.

    The last error is re-raised unchanged once attempts are exhausted.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as err:
            if not should_retry(err) or not policy.should_retry(attempt):
                raise
            logger.debug(
                "Retrying after %s (attempt %d/%d): %s",
                type(err).__name__,
                attempt,
                policy.max_attempts,
                err,
            )
            await policy.wait_before_retry(attempt)
            attempt += 1


async def retry_on_retriable(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Retry only transient API errors."""
    return await retry_on(policy, is_retriable, operation)


async def retry_on_conflict_or_retriable(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Retry transient API errors and resource-version conflicts."""
    return await retry_on(
        policy, lambda err: is_conflict(err) or is_retriable(err), operation
    )


async def _sleep(seconds: float) -> None:
    """Async sleep (overridable for tests)."""
    await asyncio.sleep(seconds)
