"""InMemoryLockStrategy — single-process implementation of ILockStrategy."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import uuid4

from ...ports.locking import ILockStrategy
from ...primitives.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from ...primitives.locking import ResourceIdentifier

logger = logging.getLogger("lifecycle_agent.locking")


@dataclass
class _FIFOLock:
    """
    FIFO lock that ensures waiters are served in order.

    Ownership is handed directly to the next live waiter on release, so a
    late arrival can never overtake a queued trigger.
    """

    _locked: bool = False
    _waiters: deque[asyncio.Future[None]] = field(default_factory=deque)

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def queue_size(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self, timeout: float | None = None) -> bool:
        """Acquire lock; returns False if *timeout* elapsed first."""
        if not self._locked and not self._waiters:
            self._locked = True
            logger.debug("Lock acquired immediately (no queue)")
            return True

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug("Waiting in queue at position %d", len(self._waiters))
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout)
        except asyncio.TimeoutError:
            if waiter.done() and not waiter.cancelled():
                # Ownership arrived together with the timeout; keep it.
                return True
            waiter.cancel()
            logger.warning("Lock acquisition timed out after %.1fs", timeout)
            return False
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self.release()
            else:
                waiter.cancel()
            raise
        finally:
            if waiter in self._waiters and waiter.done():
                self._waiters.remove(waiter)
        logger.debug("Lock acquired from queue")
        return True

    def release(self) -> None:
        """Release lock and hand it to the next waiter in FIFO order."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                logger.debug(
                    "Handed lock to next waiter (queue size: %d)", self.queue_size
                )
                return
        self._locked = False
        logger.debug("Lock released (no waiters)")


class InMemoryLockStrategy(ILockStrategy):
    """
    In-memory implementation of ILockStrategy with FIFO queuing.

    Used as the process-wide reconcile guard: the agent runs as a single
    process, so an application-level lock scoped to that process is enough.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], _FIFOLock] = {}
        self._tokens: dict[tuple[str, str], str] = {}

    async def acquire(
        self,
        resource: ResourceIdentifier,
        *,
        timeout: float | None = None,
    ) -> str:
        key = (resource.resource_type, resource.resource_id)
        lock = self._locks.setdefault(key, _FIFOLock())

        if not await lock.acquire(timeout=timeout):
            raise LockAcquisitionError(resource, timeout)

        token = str(uuid4())
        self._tokens[key] = token
        logger.debug("Lock acquired: %s", resource)
        return token

    async def release(self, resource: ResourceIdentifier, token: str) -> None:
        key = (resource.resource_type, resource.resource_id)
        if self._tokens.get(key) != token:
            logger.warning("Attempted to release invalid or expired lock: %s", resource)
            return

        del self._tokens[key]
        self._locks[key].release()
        logger.debug("Lock released: %s", resource)

    def is_locked(self, resource: ResourceIdentifier) -> bool:
        lock = self._locks.get((resource.resource_type, resource.resource_id))
        return lock is not None and lock.locked
