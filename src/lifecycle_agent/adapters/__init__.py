"""Concrete implementations of the agent's ports."""

from __future__ import annotations

from .memory import (
    InMemoryClusterClient,
    InMemoryHubClientFactory,
    InMemoryLockStrategy,
)
from .subprocess_executor import SubprocessExecutor, host_executor

__all__ = [
    "InMemoryClusterClient",
    "InMemoryHubClientFactory",
    "InMemoryLockStrategy",
    "SubprocessExecutor",
    "host_executor",
]
