"""PullSecretManager — swap the cluster-wide pull secret and wait for the node."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..domain.resources import SECRET_GVR, Secret
from ..polling import poll_until
from ..primitives.exceptions import HealthCheckError, LifecycleAgentError
from ..retry import DEFAULT_BACKOFF, retry_on_conflict_or_retriable
from .constants import (
    DOCKER_CONFIG_JSON_KEY,
    IMAGE_REGISTRY_AUTH_FILE,
    PULL_SECRET_NAME,
    PULL_SECRET_NAMESPACE,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..ports.cluster import IClusterClient
    from ..ports.health import IHealthChecker

logger = logging.getLogger("lifecycle_agent.seedgen.pull_secret")


class PullSecretManager:
    """
    The machine config operator copies ``openshift-config/pull-secret`` to the
    node's registry auth file. An override only counts once that file holds
    the new value and every machine config pool has settled again.
    """

    def __init__(
        self,
        client: IClusterClient,
        health: IHealthChecker,
        host_root: str,
        *,
        poll_interval: float,
        timeout: float,
    ) -> None:
        self._client = client
        self._health = health
        self._auth_file = Path(host_root) / IMAGE_REGISTRY_AUTH_FILE.lstrip("/")
        self._poll_interval = poll_interval
        self._timeout = timeout

    async def read(self) -> str:
        raw = await self._client.get(
            SECRET_GVR, PULL_SECRET_NAME, PULL_SECRET_NAMESPACE
        )
        data = Secret.model_validate(raw).data
        if DOCKER_CONFIG_JSON_KEY not in data:
            raise LifecycleAgentError(
                f"{DOCKER_CONFIG_JSON_KEY} not found in secret "
                f"{PULL_SECRET_NAMESPACE}/{PULL_SECRET_NAME}"
            )
        return data[DOCKER_CONFIG_JSON_KEY]

    async def override(self, docker_config_json: str) -> None:
        """Write *docker_config_json* and block until the node picked it up.

        Raises:
            PollTimeoutError: The file or the pools did not converge in time.
        """
        expected = docker_config_json.strip()

        async def write() -> dict[str, Any]:
            raw = await self._client.get(
                SECRET_GVR, PULL_SECRET_NAME, PULL_SECRET_NAMESPACE
            )
            raw.setdefault("data", {})[DOCKER_CONFIG_JSON_KEY] = expected
            return await self._client.update(SECRET_GVR, raw)

        await retry_on_conflict_or_retriable(DEFAULT_BACKOFF, write)
        await poll_until(
            self._converged_on(expected),
            interval=self._poll_interval,
            timeout=self._timeout,
            what="MCO to override pull-secret file",
        )

    def _converged_on(self, expected: str) -> Callable[[], Awaitable[bool]]:
        async def check() -> bool:
            logger.info("Waiting for MCO to override pull-secret file")
            try:
                on_disk = self._auth_file.read_text().strip()
            except OSError as err:
                logger.info(
                    "Failed to read %s file with error %s, will retry",
                    IMAGE_REGISTRY_AUTH_FILE,
                    err,
                )
                return False
            if on_disk != expected:
                return False
            try:
                await self._health.machine_config_pools_ready()
            except HealthCheckError as err:
                logger.info("Waiting for MCP: %s", err)
                return False
            return True

        return check
