"""Hub registration — detach the node from its parent system and re-attach it.

A seed image must not carry the node's ManagedCluster registration, so the
record is captured to the workspace and deleted from the hub before the
image is taken, then re-created from that copy afterwards.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from ..domain.resources import SECRET_GVR, Secret
from ..polling import poll_until
from ..primitives.exceptions import ClusterApiError, NotFoundError
from .constants import (
    HUB_KUBECONFIG_KEY,
    MANAGED_CLUSTER_FILE,
    MANAGED_CLUSTER_GVR,
    SEEDGEN_SECRET_NAME,
)

if TYPE_CHECKING:
    from ..ports.cluster import IClusterClient, IHubClientFactory
    from .workspace import Workspace

logger = logging.getLogger("lifecycle_agent.seedgen.hub")


class HubRegistrar:
    def __init__(
        self,
        client: IClusterClient,
        hub_factory: IHubClientFactory,
        workspace: Workspace,
        *,
        namespace: str,
        poll_interval: float,
        poll_timeout: float,
    ) -> None:
        self._client = client
        self._hub_factory = hub_factory
        self._workspace = workspace
        self._namespace = namespace
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout

    def hub_client(self, kubeconfig: str) -> IClusterClient:
        try:
            return self._hub_factory(kubeconfig)
        except Exception as err:
            raise ClusterApiError(f"failed to create hub client: {err}") from err

    async def managed_cluster_exists(
        self, hub: IClusterClient, cluster_name: str
    ) -> bool:
        """Errors other than not-found are logged and read as "absent"."""
        try:
            await hub.get(MANAGED_CLUSTER_GVR, cluster_name)
        except NotFoundError:
            return False
        except ClusterApiError as err:
            logger.info("Error when checking managedcluster existence: %s", err)
            return False
        return True

    async def deregister(self, hub: IClusterClient, cluster_name: str) -> None:
        """Store the ManagedCluster in the workspace, delete it and wait."""
        try:
            managed_cluster = await hub.get(MANAGED_CLUSTER_GVR, cluster_name)
        except NotFoundError:
            return

        managed_cluster.setdefault("apiVersion", MANAGED_CLUSTER_GVR.api_version)
        managed_cluster.setdefault("kind", "ManagedCluster")
        self._workspace.write_object(MANAGED_CLUSTER_FILE, managed_cluster)

        with contextlib.suppress(NotFoundError):
            await hub.delete(
                MANAGED_CLUSTER_GVR, cluster_name, propagation_policy="Foreground"
            )

        # Foreground deletion on the hub returns before the record is gone.
        logger.info("Waiting until managedcluster is deleted")

        async def deleted() -> bool:
            return not await self.managed_cluster_exists(hub, cluster_name)

        await poll_until(
            deleted,
            interval=self._poll_interval,
            timeout=self._poll_timeout,
            what="managedcluster deletion",
        )

    async def reregister(self, hub: IClusterClient) -> None:
        """Re-create the stored ManagedCluster; no-op if none was stored."""
        stored = self._workspace.read_object(MANAGED_CLUSTER_FILE)
        if stored is None:
            return

        metadata: dict[str, Any] = stored.setdefault("metadata", {})
        metadata.pop("resourceVersion", None)
        await hub.create(MANAGED_CLUSTER_GVR, stored)
        self._workspace.retire(MANAGED_CLUSTER_FILE)

    async def restore_managed_cluster(self, cluster_name: str) -> None:
        """Re-attach to the hub if a record was captured and is still missing.

        The hub kubeconfig is read from the companion secret in the cluster,
        so the secret must have been restored first.
        """
        raw = await self._client.get(
            SECRET_GVR, SEEDGEN_SECRET_NAME, self._namespace
        )
        kubeconfig = Secret.model_validate(raw).data.get(HUB_KUBECONFIG_KEY)
        if kubeconfig is None:
            logger.info(
                "No %s found in secret %s. Skipping hub interaction",
                HUB_KUBECONFIG_KEY,
                SEEDGEN_SECRET_NAME,
            )
            return

        if not self._workspace.exists(MANAGED_CLUSTER_FILE):
            logger.info(
                "Found %s, but no saved ManagedCluster. Skipping restore",
                HUB_KUBECONFIG_KEY,
            )
            return

        hub = self.hub_client(kubeconfig)
        if await self.managed_cluster_exists(hub, cluster_name):
            logger.info("ManagedCluster exists on hub, no need to restore")
            return

        logger.info("Reregistering cluster with ACM")
        try:
            await self.reregister(hub)
        except Exception as err:
            raise ClusterApiError(f"failed to reregister with ACM: {err}") from err
