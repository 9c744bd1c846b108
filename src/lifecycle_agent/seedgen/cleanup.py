"""ClusterCleaner — removes cluster state that must not end up in a seed image."""

from __future__ import annotations

import contextlib
import logging
import re
from typing import TYPE_CHECKING

from ..domain.resources import SECRET_GVR
from ..polling import poll_until
from ..primitives.exceptions import ClusterApiError, NotFoundError, StepFailedError
from .constants import (
    CLUSTER_ROLE_BINDING_GVR,
    CLUSTER_ROLE_GVR,
    CRD_GVR,
    KUBECONFIG_FILE,
    NAMESPACE_GVR,
)

if TYPE_CHECKING:
    from ..ports.cluster import GroupVersionResource, IClusterClient
    from ..ports.executor import IExecutor

logger = logging.getLogger("lifecycle_agent.seedgen.cleanup")

ACM_NAMESPACE = re.compile(r"^open-cluster-management-agent")
ACM_CRD = re.compile(r"\.open-cluster-management\.io$")

KLUSTERLET_CLUSTER_ROLES = (
    "klusterlet",
    "klusterlet-bootstrap-kubeconfig",
    "open-cluster-management:klusterlet-admin-aggregate-clusterrole",
)


class ClusterCleaner:
    def __init__(
        self,
        client: IClusterClient,
        executor: IExecutor,
        *,
        poll_interval: float,
        poll_timeout: float,
    ) -> None:
        self._client = client
        self._executor = executor
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout

    async def cleanup_cluster_resources(self) -> None:
        """Delete ACM leftovers, waiting for namespaces and CRDs to disappear."""
        await self._delete_matching(NAMESPACE_GVR, ACM_NAMESPACE, "ACM namespace")
        await self._delete_matching(CRD_GVR, ACM_CRD, "ACM CRD")

        await self._delete_if_present(NAMESPACE_GVR, "assisted-installer")
        for role in KLUSTERLET_CLUSTER_ROLES:
            await self._delete_if_present(CLUSTER_ROLE_GVR, role)
        await self._delete_if_present(CLUSTER_ROLE_BINDING_GVR, "klusterlet")
        # Copy of the accessor secret made when observability is enabled.
        await self._delete_if_present(
            SECRET_GVR, "observability-alertmanager-accessor", "openshift-monitoring"
        )

    async def delete_finished_pods(self) -> None:
        """Delete Succeeded and Failed pods in every namespace."""
        for phase in ("Succeeded", "Failed"):
            try:
                await self._executor.execute(
                    "oc",
                    "delete",
                    "pod",
                    f"--kubeconfig={KUBECONFIG_FILE}",
                    f"--field-selector=status.phase=={phase}",
                    "--all-namespaces",
                )
            except Exception as err:
                raise StepFailedError(f"failed to cleanup {phase} pods", err) from err

    # ── Internals ────────────────────────────────────────────────────

    async def _matching_names(
        self, gvr: GroupVersionResource, pattern: re.Pattern[str]
    ) -> list[str]:
        items = await self._client.list(gvr)
        return [
            item["metadata"]["name"]
            for item in items
            if pattern.search(item["metadata"]["name"])
        ]

    async def _delete_matching(
        self,
        gvr: GroupVersionResource,
        pattern: re.Pattern[str],
        kind: str,
    ) -> None:
        names = await self._matching_names(gvr, pattern)
        if not names:
            logger.info("No %ss found", kind)
            return

        logger.info("Deleting %ss", kind)
        for name in names:
            logger.info("Deleting %s %s", kind, name)
            await self._delete_if_present(gvr, name)

        async def gone() -> bool:
            try:
                return not await self._matching_names(gvr, pattern)
            except ClusterApiError as err:
                logger.info("Error when listing %ss: %s", kind, err)
                return False

        logger.info("Waiting until %ss are deleted", kind)
        await poll_until(
            gone,
            interval=self._poll_interval,
            timeout=self._poll_timeout,
            what=f"{kind} deletion",
        )

    async def _delete_if_present(
        self, gvr: GroupVersionResource, name: str, namespace: str = ""
    ) -> None:
        with contextlib.suppress(NotFoundError):
            await self._client.delete(
                gvr, name, namespace, propagation_policy="Foreground"
            )
