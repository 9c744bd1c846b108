"""poll_until — interval polling with a hard ceiling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from .primitives.exceptions import PollTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("lifecycle_agent.polling")


async def poll_until(
    condition: Callable[[], Awaitable[bool]],
    *,
    interval: float,
    timeout: float,
    what: str,
) -> None:
    """Evaluate *condition* now and then every *interval* seconds until it
    returns True.

    Raises:
        PollTimeoutError: *timeout* elapsed with the condition still False.

    Exceptions raised by *condition* propagate immediately and task
    cancellation interrupts the wait between checks.
    """
    deadline = time.monotonic() + timeout
    while True:
        if await condition():
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PollTimeoutError(what, timeout)
        logger.debug("Waiting for %s (%.0fs left)", what, remaining)
        await asyncio.sleep(min(interval, remaining))
