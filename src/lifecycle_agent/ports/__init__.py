"""Ports — protocols for every external collaborator of the agent."""

from __future__ import annotations

from .background_worker import IBackgroundWorker
from .cluster import GroupVersionResource, IClusterClient, IHubClientFactory
from .executor import IExecutor
from .health import IHealthChecker
from .locking import ILockStrategy

__all__ = [
    "GroupVersionResource",
    "IBackgroundWorker",
    "IClusterClient",
    "IHubClientFactory",
    "IExecutor",
    "IHealthChecker",
    "ILockStrategy",
]
