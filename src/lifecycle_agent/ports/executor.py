"""IExecutor — protocol for running host commands (podman, systemd-run, oc)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IExecutor(Protocol):
    """Runs a command to completion and returns its standard output.

    Implementations raise
    :class:`~lifecycle_agent.primitives.ExternalProcessError` when the command
    cannot be started or exits non-zero.
    """

    async def execute(self, command: str, *args: str) -> str: ...
