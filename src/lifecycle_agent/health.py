"""Health check registry — gates seed generation on node stability."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .ports.cluster import GroupVersionResource
from .ports.health import IHealthChecker
from .primitives.exceptions import HealthCheckError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports.cluster import IClusterClient

logger = logging.getLogger("lifecycle_agent.health")

STABILITY = "stability"
MACHINE_CONFIG_POOLS = "machine-config-pools"

MCP_GVR = GroupVersionResource(
    "machineconfiguration.openshift.io", "v1", "machineconfigpools"
)
CLUSTER_OPERATOR_GVR = GroupVersionResource(
    "config.openshift.io", "v1", "clusteroperators"
)
NODE_GVR = GroupVersionResource("", "v1", "nodes")


class HealthCheckRegistry(IHealthChecker):
    """Named checks grouped into the two gates of :class:`IHealthChecker`.

    A check is a callable returning a truthy value (or an awaitable of one)
    when healthy. Exceptions count as unhealthy.
    """

    def __init__(self) -> None:
        self._checks: dict[str, dict[str, Callable[[], Any]]] = {
            STABILITY: {},
            MACHINE_CONFIG_POOLS: {},
        }

    def register(
        self,
        name: str,
        check: Callable[[], Any],
        *,
        group: str = STABILITY,
    ) -> None:
        """Register a health check."""
        self._checks.setdefault(group, {})[name] = check

    async def check_all(self, group: str = STABILITY) -> dict[str, str]:
        """Run the checks of *group* and return an up/down status map."""
        result: dict[str, str] = {}
        for name, check in self._checks.get(group, {}).items():
            try:
                value = check()
                if asyncio.iscoroutine(value):
                    value = await value
                result[name] = "up" if value else "down"
            except Exception:  # noqa: BLE001
                logger.debug("Health check %r raised", name, exc_info=True)
                result[name] = "down"
        return result

    async def health_checks(self) -> None:
        await self._require(STABILITY)

    async def machine_config_pools_ready(self) -> None:
        await self._require(MACHINE_CONFIG_POOLS)

    async def _require(self, group: str) -> None:
        components = await self.check_all(group)
        down = sorted(name for name, state in components.items() if state != "up")
        if down:
            raise HealthCheckError(f"{group} not ready: {', '.join(down)}")


# ── Cluster-backed checks ────────────────────────────────────────────


def _condition_true(obj: dict[str, Any], condition_type: str) -> bool:
    for condition in obj.get("status", {}).get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition.get("status") == "True"
    return False


def machine_config_pools_updated(client: IClusterClient) -> Callable[[], Any]:
    """Every pool reports Updated=True and none is Degraded."""

    async def check() -> bool:
        pools = await client.list(MCP_GVR)
        return all(
            _condition_true(pool, "Updated") and not _condition_true(pool, "Degraded")
            for pool in pools
        )

    return check


def cluster_operators_available(client: IClusterClient) -> Callable[[], Any]:
    """Every cluster operator is Available and neither Progressing nor Degraded."""

    async def check() -> bool:
        operators = await client.list(CLUSTER_OPERATOR_GVR)
        return all(
            _condition_true(op, "Available")
            and not _condition_true(op, "Progressing")
            and not _condition_true(op, "Degraded")
            for op in operators
        )

    return check


def nodes_ready(client: IClusterClient) -> Callable[[], Any]:
    async def check() -> bool:
        nodes = await client.list(NODE_GVR)
        return bool(nodes) and all(_condition_true(n, "Ready") for n in nodes)

    return check


def default_registry(client: IClusterClient) -> HealthCheckRegistry:
    """Registry wired with the stock cluster checks."""
    registry = HealthCheckRegistry()
    registry.register("nodes", nodes_ready(client))
    registry.register("cluster-operators", cluster_operators_available(client))
    pools = machine_config_pools_updated(client)
    registry.register("machine-config-pools", pools)
    registry.register("machine-config-pools", pools, group=MACHINE_CONFIG_POOLS)
    return registry
