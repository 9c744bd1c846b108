"""build_agent — one-call wiring of the agent process."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .adapters import InMemoryLockStrategy, host_executor
from .backuprestore import BRHandler
from .config import AgentSettings
from .health import default_registry
from .seedgen import SeedGenReconciler, SeedGenRestorer, SeedGenSaga
from .worker import ReconcileWorker

if TYPE_CHECKING:
    from .ports.cluster import IClusterClient, IHubClientFactory
    from .ports.executor import IExecutor
    from .ports.health import IHealthChecker
    from .ports.locking import ILockStrategy

logger = logging.getLogger("lifecycle_agent")


class Agent:
    """Container returned by :func:`build_agent` with all wired components.

    Attributes:
        settings: The settings every component was built from.
        lock: The reconcile guard held by :attr:`reconciler`.
        saga: The seed generation saga.
        reconciler: The seed generation reconciler.
        restorer: Re-creates a captured request on process start.
        worker: Drives :attr:`reconciler`; runs :attr:`restorer` on start.
        backup_restore: The backup orchestrator.
    """

    def __init__(
        self,
        *,
        settings: AgentSettings,
        lock: ILockStrategy,
        saga: SeedGenSaga,
        reconciler: SeedGenReconciler,
        restorer: SeedGenRestorer,
        worker: ReconcileWorker,
        backup_restore: BRHandler,
    ) -> None:
        self.settings = settings
        self.lock = lock
        self.saga = saga
        self.reconciler = reconciler
        self.restorer = restorer
        self.worker = worker
        self.backup_restore = backup_restore


def build_agent(
    client: IClusterClient,
    hub_factory: IHubClientFactory,
    *,
    noncached_client: IClusterClient | None = None,
    health: IHealthChecker | None = None,
    executor: IExecutor | None = None,
    settings: AgentSettings | None = None,
    lock: ILockStrategy | None = None,
) -> Agent:
    """Wire the agent from its external collaborators.

    Parameters
    ----------
    client:
        Cluster API client used for every read and write.
    hub_factory:
        Builds a hub client from the kubeconfig in the seedgen secret.
    noncached_client:
        Client reading straight from the API server. Used for the request
        itself and for the default health checks. Defaults to *client*.
    health:
        Stability gates. Defaults to :func:`default_registry` over
        *noncached_client*.
    executor:
        Runs host commands. Defaults to :func:`host_executor`.
    settings:
        Defaults to :meth:`AgentSettings.from_env`.
    lock:
        Reconcile guard. Defaults to a process-local FIFO lock.

    The caller must ``await agent.worker.start()`` to begin reconciling.
    """
    settings = settings or AgentSettings.from_env()
    direct = noncached_client or client
    health = health or default_registry(direct)
    executor = executor or host_executor()
    lock = lock or InMemoryLockStrategy()

    saga = SeedGenSaga(client, hub_factory, executor, health, settings)
    reconciler = SeedGenReconciler(
        client, saga, settings, lock, noncached_client=direct
    )
    restorer = SeedGenRestorer(client, saga.workspace)
    worker = ReconcileWorker(reconciler, settings, restorer=restorer)
    backup_restore = BRHandler(
        client,
        poll_interval=settings.backup_poll_interval,
        delete_timeout=settings.backup_delete_timeout,
    )

    logger.info(
        "Agent wired: namespace=%s host_root=%s",
        settings.namespace,
        settings.host_root,
    )
    return Agent(
        settings=settings,
        lock=lock,
        saga=saga,
        reconciler=reconciler,
        restorer=restorer,
        worker=worker,
        backup_restore=backup_restore,
    )


__all__ = ["Agent", "build_agent"]
