"""SeedGenReconciler — entry point of one reconcile of the seed generation request.

The phase is re-derived from durable status on every call, so the first
reconcile after a crash or after the imager restarted the node picks up
exactly where the previous process left off.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import yaml

from ..correlation import generate_reconcile_id, set_reconcile_id
from ..domain.phase import InProgressStage, Phase
from ..domain.resources import MSG_SEEDGEN_FAILED, SeedGenerator
from ..instrumentation import log_reconcile
from ..primitives.exceptions import (
    ClusterApiError,
    LifecycleAgentError,
    NotFoundError,
    RejectionError,
)
from ..primitives.locking import ResourceIdentifier
from ..retry import TWO_MINUTE_BACKOFF, retry_on_retriable
from .constants import (
    CONFIGMAP_GVR,
    MANAGER_CONTAINER,
    MSG_FINALIZING,
    MSG_WAITING_FOR_STABLE,
    POD_GVR,
    SEEDGEN_NAME,
)
from .status import (
    ReconcileResult,
    do_not_requeue,
    requeue_after,
    requeue_immediately,
)

if TYPE_CHECKING:
    from ..config import AgentSettings
    from ..ports.cluster import IClusterClient
    from ..ports.locking import ILockStrategy
    from .saga import SeedGenSaga

logger = logging.getLogger("lifecycle_agent.seedgen")

RECONCILE_GUARD = ResourceIdentifier("seedgen", "reconcile")


class SeedGenReconciler:
    """
    Lifecycle
    ---------
    * ``reconcile(name)`` holds the process-wide guard for its full duration;
      a second trigger waits in FIFO order until the first one returns.
    * Failed and Completed requests are left alone.
    * The final status write is best-effort; a failure is logged only.
    * The request itself is always read through *noncached_client*, which
      defaults to *client*.
    """

    def __init__(
        self,
        client: IClusterClient,
        saga: SeedGenSaga,
        settings: AgentSettings,
        lock: ILockStrategy,
        *,
        noncached_client: IClusterClient | None = None,
    ) -> None:
        self._client = client
        self._noncached = noncached_client or client
        self._saga = saga
        self._settings = settings
        self._lock = lock

    async def reconcile(self, name: str) -> ReconcileResult:
        token = await self._lock.acquire(RECONCILE_GUARD)
        try:
            return await self._instrumented(name)
        finally:
            await self._lock.release(RECONCILE_GUARD, token)

    async def _instrumented(self, name: str) -> ReconcileResult:
        set_reconcile_id(generate_reconcile_id())
        started = time.monotonic()
        state: dict[str, Any] = {"phase": None}
        logger.info("Start reconciling SeedGen %s", name)
        result = do_not_requeue()
        outcome = "success"
        try:
            result = await self._reconcile(name, state)
            return result
        except BaseException:
            outcome = "error"
            raise
        finally:
            log_reconcile(
                operation="seedgen.reconcile",
                name=name,
                phase=state["phase"],
                outcome=outcome,
                started=started,
                requeue=result.requeue,
                requeue_after=result.requeue_after,
            )

    async def _reconcile(self, name: str, state: dict[str, Any]) -> ReconcileResult:
        if name != SEEDGEN_NAME:
            logger.info("Unexpected name (%s). Expected %s", name, SEEDGEN_NAME)
            return do_not_requeue()

        lca_image = await self.lca_image()
        cluster_name = await self.cluster_name()

        try:
            seedgen = await self.get_seedgen(name)
        except NotFoundError:
            return do_not_requeue()
        except ClusterApiError:
            # Likely the API server is down; try again shortly.
            logger.exception("Failed to get SeedGenerator")
            return requeue_after(self._settings.short_interval)

        phase = seedgen.phase
        state["phase"] = phase.value
        result = do_not_requeue()

        if phase == Phase.FAILED:
            logger.info(
                "Seed Generation has failed. "
                "Please delete and recreate the CR to try again"
            )
            return result
        if phase == Phase.COMPLETED:
            logger.info("Seed Generation is completed")
            return result

        if phase == Phase.INITIAL:
            try:
                await self._saga.validate()
            except RejectionError as rejection:
                logger.info(
                    "Seed generation rejected: system validation failed: %s",
                    rejection.reason,
                )
                seedgen.set_failed(rejection.reason)
            else:
                seedgen.set_in_progress(
                    MSG_WAITING_FOR_STABLE, InProgressStage.WAITING_FOR_STABLE
                )
                result = requeue_immediately()

        elif phase == Phase.GENERATING:
            logger.info("Generating seed image: %s", seedgen.spec.seed_image)
            try:
                result = await self._saga.generate(seedgen, cluster_name, lca_image)
            except Exception as err:
                logger.exception("Seed generation failed")
                if seedgen.phase != Phase.FAILED:
                    seedgen.set_failed(str(err))
                self._wipe_workspace()

        elif phase == Phase.FINALIZING:
            logger.info("Finalizing Seed Generation")
            seedgen.set_in_progress(MSG_FINALIZING, InProgressStage.FINALIZING)
            await self._saga.status.try_update(seedgen)
            try:
                await self._saga.finalize(cluster_name)
            except Exception as err:
                logger.exception("Seed generation failed")
                seedgen.set_failed(f"{MSG_SEEDGEN_FAILED}: {err}")
            else:
                seedgen.set_completed()

        state["phase"] = seedgen.phase.value
        await self._saga.status.try_update(seedgen)
        return result

    # ── Lookups ──────────────────────────────────────────────────────

    async def get_seedgen(self, name: str) -> SeedGenerator:
        """Read the request straight from the API, retrying for ~2 minutes."""

        async def get() -> dict[str, Any]:
            return await self._noncached.get(SeedGenerator.gvr, name)

        raw = await retry_on_retriable(TWO_MINUTE_BACKOFF, get)
        return SeedGenerator.model_validate(raw)

    async def lca_image(self) -> str:
        """Image of the agent's own ``manager`` container."""
        try:
            pod = await self._client.get(
                POD_GVR, self._settings.pod_name, self._settings.namespace
            )
        except ClusterApiError as err:
            raise LifecycleAgentError(f"failed to get pod info: {err}") from err

        for container in pod.get("spec", {}).get("containers", []):
            if container.get("name") == MANAGER_CONTAINER:
                return str(container["image"])
        raise LifecycleAgentError("unable to determine LCA image")

    async def cluster_name(self) -> str:
        """``metadata.name`` of the install-config in cluster-config-v1."""
        try:
            configmap = await self._client.get(
                CONFIGMAP_GVR, "cluster-config-v1", "kube-system"
            )
            install_config = yaml.safe_load(configmap["data"]["install-config"])
            return str(install_config["metadata"]["name"])
        except (ClusterApiError, KeyError, TypeError, yaml.YAMLError) as err:
            raise LifecycleAgentError(f"failed to get cluster name: {err}") from err

    def _wipe_workspace(self) -> None:
        try:
            self._saga.workspace.wipe()
        except OSError:
            logger.exception("failed to wipe workspace")
