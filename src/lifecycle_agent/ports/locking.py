"""ILockStrategy — protocol for the process-wide reconcile guard."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..primitives.locking import ResourceIdentifier


@runtime_checkable
class ILockStrategy(Protocol):
    """
    Exclusive lock keyed by :class:`ResourceIdentifier`.

    Callers hold the lock for the full duration of one reconcile.
    """

    async def acquire(
        self,
        resource: ResourceIdentifier,
        *,
        timeout: float | None = None,
    ) -> str:
        """
        Acquire the lock, waiting in FIFO order.

        Args:
            resource: The resource to lock.
            timeout: Maximum time to wait; ``None`` waits indefinitely.

        Returns:
            A token required for release.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired within the timeout.
        """
        ...

    async def release(self, resource: ResourceIdentifier, token: str) -> None:
        """Release a previously acquired lock."""
        ...
