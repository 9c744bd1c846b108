"""ImagerLauncher — drives the privileged imager container through the executor."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from ..primitives.exceptions import ExternalProcessError
from .constants import (
    AUTH_FILE,
    DEFAULT_RECERT_IMAGE,
    IMAGE_REGISTRY_AUTH_FILE,
    IMAGER_CONTAINER_NAME,
    IMAGER_UNIT_NAME,
)

if TYPE_CHECKING:
    from ..ports.executor import IExecutor
    from .workspace import Workspace

logger = logging.getLogger("lifecycle_agent.seedgen.imager")

EXPECTED_STATUS = "exited"
EXPECTED_EXIT_CODE = 0


def recert_image_for(recert_image: str) -> str:
    return recert_image or DEFAULT_RECERT_IMAGE


class ImagerLauncher:
    def __init__(self, executor: IExecutor, workspace: Workspace) -> None:
        self._executor = executor
        self._workspace = workspace

    async def remove_previous(self) -> None:
        """Remove a leftover imager container; succeeds if there is none."""
        await self._executor.execute(
            "podman", "rm", "-i", "-f", IMAGER_CONTAINER_NAME
        )

    async def pull_recert_image(self, recert_image: str) -> None:
        image = recert_image_for(recert_image)
        try:
            await self._executor.execute(
                "podman", "pull", "--authfile", IMAGE_REGISTRY_AUTH_FILE, image
            )
        except ExternalProcessError as err:
            raise ExternalProcessError(
                f"failed to pull recertImage ({image}): {err}",
                argv=err.argv,
                exit_code=err.exit_code,
                stderr=err.stderr,
            ) from err

    def imager_argv(
        self,
        lca_image: str,
        seed_image: str,
        recert_image: str,
        *,
        skip_recert: bool = False,
    ) -> list[str]:
        auth_file = self._workspace.node_file(AUTH_FILE)
        argv = [
            "podman", "run", "--privileged", "--pid=host",
            f"--name={IMAGER_CONTAINER_NAME}",
            "--replace", "--net=host",
            "-v", "/etc:/etc",
            "-v", "/var:/var",
            "-v", "/var/run:/var/run",
            "-v", "/run/systemd/journal/socket:/run/systemd/journal/socket",
            "-v", f"{auth_file}:{auth_file}",
            "--entrypoint", "lca-cli",
            lca_image,
            "create",
            "--authfile", auth_file,
            "--image", seed_image,
            "--recert-image", recert_image_for(recert_image),
        ]  # fmt: skip
        if skip_recert:
            argv.append("--skip-recert-validation")
        return argv

    async def launch(
        self,
        lca_image: str,
        seed_image: str,
        recert_image: str,
        *,
        skip_recert: bool = False,
    ) -> None:
        """Start the imager as a transient systemd unit and wait for it.

        The unit survives the agent's pod and keeps host networking while the
        rest of the node's workloads are stopped. On success the imager stops
        the agent, so this call is not expected to return.
        """
        logger.info("Launching imager")
        if skip_recert:
            logger.info("Skipping recert validation")
        await self._executor.execute(
            "systemd-run",
            "--collect",
            "--wait",
            "--unit",
            IMAGER_UNIT_NAME,
            *self.imager_argv(
                lca_image, seed_image, recert_image, skip_recert=skip_recert
            ),
        )

    async def check_status(self) -> None:
        """Verify the imager container exited cleanly.

        Raises:
            ExternalProcessError: Inspect failed, its output is malformed, or
                the single container did not exit with code 0.
        """
        logger.info("Checking status of lca_cli container")
        output = await self._executor.execute(
            "podman", "inspect", "--format", "json", IMAGER_CONTAINER_NAME
        )
        try:
            containers = json.loads(output)
            states = [c["State"] for c in containers]
        except (ValueError, TypeError, KeyError) as err:
            raise ExternalProcessError(
                f"unable to parse podman inspect command output: {err}"
            ) from err

        if len(states) != 1:
            raise ExternalProcessError(
                f"expected 1 item in podman inspect output, got {len(states)}"
            )
        status = states[0].get("Status")
        if status != EXPECTED_STATUS:
            raise ExternalProcessError(
                f"expected container status {EXPECTED_STATUS}, found: {status}"
            )
        exit_code = states[0].get("ExitCode")
        if exit_code != EXPECTED_EXIT_CODE:
            raise ExternalProcessError(
                f"expected container exit code {EXPECTED_EXIT_CODE}, "
                f"found: {exit_code}"
            )
        logger.info("Seed image generation was successful")
