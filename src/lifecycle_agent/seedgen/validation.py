"""SystemValidator — preconditions a node must meet before seed generation."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from ..domain.resources import SECRET_GVR
from ..primitives.exceptions import (
    ClusterApiError,
    ExternalProcessError,
    RejectionError,
)
from .constants import (
    DNSMASQ_CONFIG_SCRIPT,
    IMAGE_REGISTRY_AUTH_FILE,
    NAMESPACE_GVR,
    PULL_SECRET_EMPTY_DATA,
)

if TYPE_CHECKING:
    from ..ports.cluster import IClusterClient
    from ..ports.executor import IExecutor

logger = logging.getLogger("lifecycle_agent.seedgen.validation")

ACM_ADDON_NAMESPACE = re.compile(r"^open-cluster-management-addon-")


class SystemValidator:
    """Runs the rejection checks in a fixed order; the first failure wins."""

    def __init__(
        self,
        client: IClusterClient,
        executor: IExecutor,
        host_root: str,
    ) -> None:
        self._client = client
        self._executor = executor
        self._host_root = Path(host_root)

    async def validate(self) -> None:
        """
        Raises:
            RejectionError: With the operator-facing rejection message.
        """
        if not await self.ostree_set_default_supported():
            raise RejectionError(
                'Rejected: Installed release does not support "ostree admin '
                'set-default" feature'
            )

        addons = await self.acm_addon_namespaces()
        if addons:
            raise RejectionError(
                f"Rejected due to presence of ACM addon(s): {', '.join(addons)}"
            )

        if not self._host_path(DNSMASQ_CONFIG_SCRIPT).exists():
            raise RejectionError(
                "Rejected due to system missing dnsmasq config required for IBU"
            )

        if self.pull_secret_sanitized():
            raise RejectionError(
                "Rejected due to invalid cluster pull-secret "
                "(previously sanitized without proper restore)"
            )

        if not await self.kubeadmin_secret_present():
            raise RejectionError(
                "Rejected due to system missing required kube-system/kubeadmin Secret"
            )

    # ── Individual checks ────────────────────────────────────────────

    async def ostree_set_default_supported(self) -> bool:
        try:
            output = await self._executor.execute("ostree", "admin", "--help")
        except ExternalProcessError as err:
            logger.info("Unable to query ostree admin features: %s", err)
            return False
        return "set-default" in output

    async def acm_addon_namespaces(self) -> list[str]:
        try:
            namespaces = await self._client.list(NAMESPACE_GVR)
        except ClusterApiError as err:
            logger.info("Error when checking namespaces: %s", err)
            return []
        return [
            ns["metadata"]["name"]
            for ns in namespaces
            if ACM_ADDON_NAMESPACE.match(ns["metadata"]["name"])
        ]

    def pull_secret_sanitized(self) -> bool:
        try:
            on_disk = self._host_path(IMAGE_REGISTRY_AUTH_FILE).read_text()
        except OSError:
            return False
        return on_disk.strip() == PULL_SECRET_EMPTY_DATA.strip()

    async def kubeadmin_secret_present(self) -> bool:
        try:
            secret = await self._client.get(SECRET_GVR, "kubeadmin", "kube-system")
        except ClusterApiError:
            return False
        return "kubeadmin" in (secret.get("data") or {})

    def _host_path(self, node_path: str) -> Path:
        return self._host_root / node_path.lstrip("/")
