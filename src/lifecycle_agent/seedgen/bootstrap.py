"""Bootstrap restore — brings the request and its secret back after imaging.

The saga deletes the seed generation request and its companion secret
before handing off to the imager, so that neither ends up inside the
captured image. When the agent starts again on the restored node nothing
in the cluster API would trigger a reconcile. :class:`SeedGenRestorer`
runs once at process start, before the reconcile worker, and re-creates
both objects from the workspace copies. The restored request still
carries the launching-imager status, so the next reconcile classifies it
as Finalizing.

The same restore functions serve as the saga's compensations.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..domain.resources import SECRET_GVR, SeedGenerator
from ..primitives.exceptions import AlreadyExistsError, is_conflict, is_retriable
from ..retry import DEFAULT_BACKOFF, retry_on, retry_on_conflict_or_retriable
from .constants import STORED_CR_FILE, STORED_SECRET_FILE

if TYPE_CHECKING:
    from ..ports.cluster import GroupVersionResource, IClusterClient
    from .workspace import Workspace

logger = logging.getLogger("lifecycle_agent.seedgen.bootstrap")


def _create_or_adopt_retriable(err: BaseException) -> bool:
    return is_conflict(err) or is_retriable(err)


async def _create_ignoring_existing(
    client: IClusterClient,
    gvr: GroupVersionResource,
    obj: dict[str, Any],
) -> dict[str, Any]:
    """Create *obj*; if it already exists return the live object instead."""
    meta = obj["metadata"]

    async def create() -> dict[str, Any]:
        try:
            return await client.create(gvr, obj)
        except AlreadyExistsError:
            logger.info("%s %s already exists", gvr, meta["name"])
            return await client.get(gvr, meta["name"], meta.get("namespace", ""))

    return await retry_on(DEFAULT_BACKOFF, _create_or_adopt_retriable, create)


async def restore_secret(client: IClusterClient, secret: dict[str, Any]) -> None:
    """Re-create a deleted secret from its stored copy."""
    logger.info("Restoring seedgen secret CR")
    obj = dict(secret)
    obj["metadata"] = {
        k: v for k, v in secret.get("metadata", {}).items() if k != "resourceVersion"
    }
    await _create_ignoring_existing(client, SECRET_GVR, obj)


async def restore_seedgen(client: IClusterClient, seedgen: SeedGenerator) -> None:
    """Re-create the request, then re-apply the status it had.

    ``create`` drops the status sub-resource, so the saved status is written
    with a second call once the new resource version is known. *seedgen* is
    updated in place with the new resource version.
    """
    logger.info("Restoring seedgen CR in DB")
    status = seedgen.status.model_copy(deep=True)
    seedgen.metadata.resource_version = ""

    created = await _create_ignoring_existing(
        client, SeedGenerator.gvr, seedgen.to_object()
    )
    seedgen.metadata.resource_version = created["metadata"]["resourceVersion"]
    seedgen.metadata.generation = created["metadata"].get("generation", 0)
    seedgen.status = status

    async def write_status() -> dict[str, Any]:
        return await client.update_status(SeedGenerator.gvr, seedgen.to_object())

    updated = await retry_on_conflict_or_retriable(DEFAULT_BACKOFF, write_status)
    seedgen.metadata.resource_version = updated["metadata"]["resourceVersion"]


class SeedGenRestorer:
    """Start-up hook re-creating objects left in the workspace by the saga."""

    def __init__(self, client: IClusterClient, workspace: Workspace) -> None:
        self._client = client
        self._workspace = workspace

    async def restore(self) -> bool:
        """Restore whatever is stored; returns True if anything was restored.

        Each consumed file is renamed to ``.bak`` once its object exists again.
        """
        restored = False

        secret = self._workspace.read_object(STORED_SECRET_FILE)
        if secret is not None:
            await restore_secret(self._client, secret)
            self._workspace.retire(STORED_SECRET_FILE)
            restored = True

        stored_cr = self._workspace.read_object(STORED_CR_FILE)
        if stored_cr is not None:
            seedgen = SeedGenerator.model_validate(stored_cr)
            await restore_seedgen(self._client, seedgen)
            self._workspace.retire(STORED_CR_FILE)
            restored = True

        if restored:
            logger.info(
                "Restored seed generation objects from %s", self._workspace.path
            )
        return restored
