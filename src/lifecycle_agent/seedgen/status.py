"""Reconcile results and best-effort status writes for the request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..retry import TWO_MINUTE_BACKOFF, RetryPolicy, retry_on_retriable

if TYPE_CHECKING:
    from ..domain.resources import SeedGenerator
    from ..ports.cluster import IClusterClient

logger = logging.getLogger("lifecycle_agent.seedgen")


@dataclass(frozen=True)
class ReconcileResult:
    """When (if at all) the same request should be reconciled again."""

    requeue: bool = False
    requeue_after: float = 0.0


def do_not_requeue() -> ReconcileResult:
    return ReconcileResult()


def requeue_immediately() -> ReconcileResult:
    return ReconcileResult(requeue=True)


def requeue_after(seconds: float) -> ReconcileResult:
    return ReconcileResult(requeue=True, requeue_after=seconds)


class StatusWriter:
    """Writes the request's status sub-resource.

    The in-memory request is refreshed with the resource version returned by
    each write so that later writes in the same reconcile do not conflict.
    """

    def __init__(
        self,
        client: IClusterClient,
        policy: RetryPolicy = TWO_MINUTE_BACKOFF,
    ) -> None:
        self._client = client
        self._policy = policy

    async def update(self, seedgen: SeedGenerator) -> None:
        seedgen.status.observed_generation = seedgen.metadata.generation

        async def write() -> dict[str, Any]:
            return await self._client.update_status(
                seedgen.gvr, seedgen.to_object()
            )

        updated = await retry_on_retriable(self._policy, write)
        seedgen.metadata.resource_version = updated["metadata"]["resourceVersion"]

    async def try_update(self, seedgen: SeedGenerator) -> bool:
        """Best-effort :meth:`update`: failures are logged, never raised."""
        try:
            await self.update(seedgen)
        except Exception:
            logger.exception("failed to update seedgen CR status")
            return False
        return True
