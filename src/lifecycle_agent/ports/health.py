"""IHealthChecker — protocol for the node health-probing collaborator."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IHealthChecker(Protocol):
    """Both methods return ``None`` when healthy and raise ``HealthCheckError``
    describing what is not ready otherwise."""

    async def health_checks(self) -> None:
        """Overall node/cluster stability gate used before seed generation."""
        ...

    async def machine_config_pools_ready(self) -> None:
        """Dependent node pools have rolled out the latest configuration."""
        ...
