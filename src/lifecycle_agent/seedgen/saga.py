"""SeedGenSaga — the Generating and Finalizing steps of seed generation.

Generating is one linear attempt. Every irreversible step pushes its
compensation onto a :class:`CompensationRegistry` right after it succeeds;
any failure marks the request Failed and unwinds the registry newest-first.
The attempt ends by launching the imager, which stops this process before
the launch returns. Control coming back is itself a failure.

Finalizing runs on a later process start, once the request carries the
launching-imager stage again.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from ..compensation import CompensationRegistry
from ..config import skip_recert_requested
from ..domain.phase import InProgressStage
from ..domain.resources import SECRET_GVR, Secret, SeedGenerator
from ..primitives.exceptions import (
    HealthCheckError,
    LifecycleAgentError,
    NotFoundError,
    StepFailedError,
    UnexpectedReturnError,
)
from .bootstrap import restore_secret, restore_seedgen
from .cleanup import ClusterCleaner
from .constants import (
    AUTH_FILE,
    HUB_KUBECONFIG_KEY,
    IBU_GVR,
    IBU_NAME,
    MSG_CLEANING,
    MSG_LAUNCHING_IMAGER,
    MSG_PREPARING,
    MSG_PULLING_RECERT,
    MSG_STARTING,
    MSG_UNEXPECTED_RETURN,
    MSG_WAITING_FOR_STABLE,
    PULL_SECRET_EMPTY_DATA,
    PULL_SECRET_NAME,
    PULL_SECRET_NAMESPACE,
    SEED_AUTH_KEY,
    SEEDGEN_SECRET_NAME,
    STORED_CR_FILE,
    STORED_PULL_SECRET_FILE,
    STORED_SECRET_FILE,
)
from .hub import HubRegistrar
from .imager import ImagerLauncher
from .pull_secret import PullSecretManager
from .status import ReconcileResult, StatusWriter, do_not_requeue, requeue_after
from .validation import SystemValidator
from .workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from ..config import AgentSettings
    from ..ports.cluster import IClusterClient, IHubClientFactory
    from ..ports.executor import IExecutor
    from ..ports.health import IHealthChecker

logger = logging.getLogger("lifecycle_agent.seedgen")


@contextlib.contextmanager
def _step(description: str) -> Iterator[None]:
    """Re-raise any failure as ``<description>: <cause>``."""
    try:
        yield
    except StepFailedError:
        raise
    except Exception as err:
        raise StepFailedError(description, err) from err


class SeedGenSaga:
    def __init__(
        self,
        client: IClusterClient,
        hub_factory: IHubClientFactory,
        executor: IExecutor,
        health: IHealthChecker,
        settings: AgentSettings,
        *,
        status_writer: StatusWriter | None = None,
        compensations_factory: Callable[[], CompensationRegistry] | None = None,
    ) -> None:
        self._client = client
        self._health = health
        self._settings = settings
        self.status = status_writer or StatusWriter(client)
        self.workspace = Workspace(settings.host_root)
        self.validator = SystemValidator(client, executor, settings.host_root)
        self.hub = HubRegistrar(
            client,
            hub_factory,
            self.workspace,
            namespace=settings.namespace,
            poll_interval=settings.poll_interval,
            poll_timeout=settings.poll_timeout,
        )
        self.cleaner = ClusterCleaner(
            client,
            executor,
            poll_interval=settings.poll_interval,
            poll_timeout=settings.poll_timeout,
        )
        self.pull_secret = PullSecretManager(
            client,
            health,
            settings.host_root,
            poll_interval=settings.pull_secret_poll_interval,
            timeout=settings.pull_secret_timeout,
        )
        self.imager = ImagerLauncher(executor, self.workspace)
        self._new_compensations = compensations_factory or (
            lambda: CompensationRegistry("seedgen")
        )

    async def validate(self) -> None:
        """Raises ``RejectionError`` when the node cannot produce a seed."""
        await self.validator.validate()

    # ── Generating ───────────────────────────────────────────────────

    async def generate(
        self,
        seedgen: SeedGenerator,
        cluster_name: str,
        lca_image: str,
    ) -> ReconcileResult:
        """Run one generation attempt.

        Returns a requeue while the node is not yet stable. Otherwise the
        attempt either never returns (the imager stops the process) or raises
        with the request already marked Failed and all compensations run.
        """
        logger.info("Checking system health")
        try:
            await self._health.health_checks()
        except Exception as err:
            # API errors count as not yet stable.
            if isinstance(err, HealthCheckError):
                logger.info("health check failed: %s", err)
            else:
                logger.warning("health check errored: %s", err, exc_info=True)
            seedgen.set_in_progress(
                f"{MSG_WAITING_FOR_STABLE}: {err}", InProgressStage.WAITING_FOR_STABLE
            )
            return requeue_after(self._settings.health_check_interval)

        logger.info("Health check passed")

        try:
            await self._recover_pull_secret()
        except Exception as err:
            # The workspace holds the only copy of the credential; keep it.
            logger.exception("failed to restore pull-secret from previous attempt")
            seedgen.set_in_progress(
                f"failed to restore pull-secret from previous attempt: {err}",
                InProgressStage.WAITING_FOR_STABLE,
            )
            return requeue_after(self._settings.health_check_interval)

        await self._progress(seedgen, MSG_STARTING, InProgressStage.GENERATING)

        compensations = self._new_compensations()
        async with compensations:
            try:
                await self._generate(seedgen, cluster_name, lca_image, compensations)
            except Exception as err:
                # Marked before unwinding so a restored request carries it.
                seedgen.set_failed(str(err))
                raise
        return do_not_requeue()

    async def _generate(
        self,
        seedgen: SeedGenerator,
        cluster_name: str,
        lca_image: str,
        compensations: CompensationRegistry,
    ) -> None:
        workspace = self.workspace

        with _step("failed to wipe previous workspace"):
            workspace.wipe()
        with _step("failed to delete previous imager container"):
            await self.imager.remove_previous()
        with _step("failed to create workdir"):
            workspace.create()

        # Pulled early so registry problems surface before anything is torn down.
        await self._progress(seedgen, MSG_PULLING_RECERT, InProgressStage.GENERATING)
        with _step("failed to pull recert image"):
            await self.imager.pull_recert_image(seedgen.spec.recert_image)

        await self._progress(seedgen, MSG_PREPARING, InProgressStage.GENERATING)
        namespace = self._settings.namespace
        with _step(f"could not access secret {SEEDGEN_SECRET_NAME} in {namespace}"):
            secret_raw = await self._client.get(
                SECRET_GVR, SEEDGEN_SECRET_NAME, namespace
            )
        with _step(f"failed to write secret to {STORED_SECRET_FILE}"):
            workspace.write_object(STORED_SECRET_FILE, secret_raw)

        secret = Secret.model_validate(secret_raw)
        seed_auth = secret.data.get(SEED_AUTH_KEY)
        if seed_auth is None:
            raise LifecycleAgentError(
                f"could not find {SEED_AUTH_KEY} in {SEEDGEN_SECRET_NAME} secret"
            )
        with _step(f"failed to write {AUTH_FILE}"):
            workspace.write_text(AUTH_FILE, seed_auth)

        await self._detach_from_hub(secret, cluster_name, compensations)

        pull_secret_ref = f"{PULL_SECRET_NAME} in {PULL_SECRET_NAMESPACE}"
        with _step(f"could not access pull-secret {pull_secret_ref}"):
            original_pull_secret = await self.pull_secret.read()
        with _step(f"failed to write pull-secret to {STORED_PULL_SECRET_FILE}"):
            workspace.write_text(STORED_PULL_SECRET_FILE, original_pull_secret)

        await self._progress(seedgen, MSG_CLEANING, InProgressStage.GENERATING)
        logger.info("Cleaning cluster resources")
        with _step("failed to cleanup resources"):
            await self.cleaner.cleanup_cluster_resources()
        logger.info("Cleaning completed and failed pods")
        await self.cleaner.delete_finished_pods()

        logger.info("Sanitize cluster's pull-secret from sensitive data")
        with _step("failed sanitizing cluster's pull-secret"):
            await self.pull_secret.override(PULL_SECRET_EMPTY_DATA)
        compensations.push(
            "restore cluster pull-secret",
            lambda: self.pull_secret.override(original_pull_secret),
        )

        # The stored copy must carry the launching stage: it is what the
        # restarted agent classifies as Finalizing.
        await self._progress(
            seedgen, MSG_LAUNCHING_IMAGER, InProgressStage.LAUNCHING_IMAGER
        )
        with _step(f"failed to write CR to {STORED_CR_FILE}"):
            workspace.write_object(STORED_CR_FILE, seedgen.to_object())

        logger.info("Deleting seedgen secret CR")
        with _step("unable to delete seedgen secret CR"):
            await self._client.delete(SECRET_GVR, SEEDGEN_SECRET_NAME, namespace)
        compensations.push(
            "restore seedgen secret",
            lambda: restore_secret(self._client, secret_raw),
        )

        logger.info("Deleting seedgen CR")
        with _step("unable to delete seedgen CR"):
            await self._client.delete(seedgen.gvr, seedgen.name)
        compensations.push(
            "restore seedgen CR",
            lambda: restore_seedgen(self._client, seedgen),
        )

        with _step("failed to delete IBU CR"), contextlib.suppress(NotFoundError):
            await self._client.delete(IBU_GVR, IBU_NAME)

        compensations.mark_handed_off()
        with _step("imager failed"):
            await self.imager.launch(
                lca_image,
                seedgen.spec.seed_image,
                seedgen.spec.recert_image,
                skip_recert=skip_recert_requested(),
            )

        raise UnexpectedReturnError(MSG_UNEXPECTED_RETURN)

    async def _detach_from_hub(
        self,
        secret: Secret,
        cluster_name: str,
        compensations: CompensationRegistry,
    ) -> None:
        kubeconfig = secret.data.get(HUB_KUBECONFIG_KEY)
        if kubeconfig is None:
            logger.info(
                "No %s found in secret %s. Skipping hub interaction",
                HUB_KUBECONFIG_KEY,
                SEEDGEN_SECRET_NAME,
            )
            return

        with _step("failed to create hub client"):
            hub = self.hub.hub_client(kubeconfig)
        if not await self.hub.managed_cluster_exists(hub, cluster_name):
            logger.info("ManagedCluster does not exist on hub")
            return

        logger.info("Collecting ACM import data")
        with _step("failed to deregister from hub"):
            await self.hub.deregister(hub, cluster_name)
        compensations.push(
            "restore ManagedCluster on hub",
            lambda: self.hub.restore_managed_cluster(cluster_name),
        )

    async def _recover_pull_secret(self) -> None:
        """Undo a sanitized pull secret left behind by an interrupted attempt.

        A process that died between sanitizing and handing off leaves the
        placeholder on the cluster and the real value only in the workspace,
        which the next attempt is about to wipe.
        """
        stored = self.workspace.read_text(STORED_PULL_SECRET_FILE)
        if stored is None:
            return
        current = await self.pull_secret.read()
        if current.strip() != PULL_SECRET_EMPTY_DATA:
            return
        logger.info("Restoring pull-secret stored by an interrupted attempt")
        await self.pull_secret.override(stored)

    # ── Finalizing ───────────────────────────────────────────────────

    async def finalize(self, cluster_name: str) -> None:
        """Re-attach to the hub, verify the imager and drop the workspace."""
        await self.hub.restore_managed_cluster(cluster_name)
        with _step("imager container status check failed"):
            await self.imager.check_status()
        self.workspace.wipe()

    # ── Helpers ──────────────────────────────────────────────────────

    async def _progress(
        self, seedgen: SeedGenerator, message: str, stage: InProgressStage
    ) -> None:
        seedgen.set_in_progress(message, stage)
        await self.status.try_update(seedgen)

