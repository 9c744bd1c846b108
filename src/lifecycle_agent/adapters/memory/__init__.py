"""In-memory adapters for testing and single-process runs."""

from __future__ import annotations

from .cluster import InMemoryClusterClient, InMemoryHubClientFactory
from .locking import InMemoryLockStrategy

__all__ = [
    "InMemoryClusterClient",
    "InMemoryHubClientFactory",
    "InMemoryLockStrategy",
]
