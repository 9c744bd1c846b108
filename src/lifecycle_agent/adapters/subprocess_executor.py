"""SubprocessExecutor — asyncio subprocess implementation of IExecutor."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..ports.executor import IExecutor
from ..primitives.exceptions import ExternalProcessError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("lifecycle_agent.executor")

# Enters the host namespaces so podman/systemd-run act on the node, not the pod.
NSENTER_PREFIX = (
    "nsenter", "--target", "1", "--cgroup", "--mount", "--ipc", "--pid", "--",
)


class SubprocessExecutor(IExecutor):
    """Runs commands with :func:`asyncio.create_subprocess_exec`.

    Cancelling the awaiting task kills the child process.
    """

    def __init__(self, prefix: Sequence[str] = ()) -> None:
        self._prefix = tuple(prefix)

    async def execute(self, command: str, *args: str) -> str:
        argv = [*self._prefix, command, *args]
        logger.debug("Executing %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            raise ExternalProcessError(
                f"failed to start {command}: {err}", argv=argv
            ) from err

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        out = stdout.decode(errors="replace").strip()
        err_text = stderr.decode(errors="replace").strip()
        if proc.returncode != 0:
            raise ExternalProcessError(
                f"{command} exited with code {proc.returncode}: {err_text or out}",
                argv=argv,
                exit_code=proc.returncode,
                stderr=err_text,
            )
        return out


def host_executor() -> SubprocessExecutor:
    """Executor that runs commands inside the node's namespaces."""
    return SubprocessExecutor(NSENTER_PREFIX)
