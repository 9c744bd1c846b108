"""Shared fixtures: an in-memory cluster with a simulated node behind it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import pytest

from lifecycle_agent import retry
from lifecycle_agent.adapters.memory import (
    InMemoryClusterClient,
    InMemoryHubClientFactory,
    InMemoryLockStrategy,
)
from lifecycle_agent.compensation import CompensationRegistry
from lifecycle_agent.config import SKIP_RECERT_ENV, AgentSettings
from lifecycle_agent.domain.phase import InProgressStage
from lifecycle_agent.domain.resources import (
    SECRET_GVR,
    SEEDGEN_GVR,
    ObjectMeta,
    SeedGenerator,
    SeedGeneratorSpec,
)
from lifecycle_agent.ports.cluster import GroupVersionResource
from lifecycle_agent.primitives.exceptions import HealthCheckError
from lifecycle_agent.seedgen import SeedGenReconciler, SeedGenSaga
from lifecycle_agent.seedgen.constants import (
    CONFIGMAP_GVR,
    CRD_GVR,
    DNSMASQ_CONFIG_SCRIPT,
    DOCKER_CONFIG_JSON_KEY,
    HUB_KUBECONFIG_KEY,
    IBU_GVR,
    IBU_NAME,
    IMAGE_REGISTRY_AUTH_FILE,
    MANAGED_CLUSTER_GVR,
    NAMESPACE_GVR,
    POD_GVR,
    PULL_SECRET_NAME,
    PULL_SECRET_NAMESPACE,
    SEED_AUTH_KEY,
    SEEDGEN_NAME,
    SEEDGEN_SECRET_NAME,
)

LCA_NAMESPACE = "openshift-lifecycle-agent"
POD_NAME = "lifecycle-agent-controller-manager-0"
LCA_IMAGE = "quay.io/openshift-kni/lifecycle-agent-operator:4.16"
SEED_IMAGE = "quay.io/example/seed:4.16"
RECERT_IMAGE = "quay.io/edge-infrastructure/recert:v0"
CLUSTER_NAME = "spoke1"
HUB_KUBECONFIG = "apiVersion: v1\nkind: Config\nclusters: []\n"
SEED_AUTH = '{"auths":{"quay.io":{"auth":"c2VlZDpzZWNyZXQ="}}}'
ORIGINAL_PULL_SECRET = '{"auths":{"registry.example.com":{"auth":"dXNlcjpwYXNz"}}}'

INSPECT_OK = '[{"State": {"Status": "exited", "ExitCode": 0}}]'
OSTREE_HELP = (
    "Usage:\n  ostree admin [OPTION...] --print-current-dir|COMMAND\n\n"
    "Builtin \"admin\" Commands:\n  cleanup\n  deploy\n  set-default\n  status\n"
)


# ── Doubles ──────────────────────────────────────────────────────────


class MCOClusterClient(InMemoryClusterClient):
    """Copies the cluster pull secret to the node's auth file on update,
    the way the machine config operator does."""

    def __init__(self, host_root: Path) -> None:
        super().__init__()
        self.auth_file = host_root / IMAGE_REGISTRY_AUTH_FILE.lstrip("/")
        self.propagate = True

    async def update(
        self, gvr: GroupVersionResource, obj: dict[str, Any]
    ) -> dict[str, Any]:
        updated = await super().update(gvr, obj)
        meta = updated["metadata"]
        if (
            self.propagate
            and gvr == SECRET_GVR
            and meta.get("namespace") == PULL_SECRET_NAMESPACE
            and meta["name"] == PULL_SECRET_NAME
        ):
            self.auth_file.parent.mkdir(parents=True, exist_ok=True)
            self.auth_file.write_text(updated["data"][DOCKER_CONFIG_JSON_KEY])
        return updated


class FakeExecutor:
    """Scripted IExecutor: the most recently registered matching prefix wins."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._responses: list[tuple[tuple[str, ...], str | Exception]] = []
        self.respond("ostree", "admin", "--help", output=OSTREE_HELP)
        self.respond("podman", "inspect", output=INSPECT_OK)

    def respond(
        self, *prefix: str, output: str = "", error: Exception | None = None
    ) -> None:
        self._responses.append((prefix, error if error is not None else output))

    async def execute(self, command: str, *args: str) -> str:
        argv = (command, *args)
        self.calls.append(argv)
        for prefix, response in reversed(self._responses):
            if argv[: len(prefix)] == prefix:
                if isinstance(response, Exception):
                    raise response
                return response
        return ""

    def ran(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == prefix for call in self.calls)


class FakeHealth:
    def __init__(self) -> None:
        self.stable = True
        self.pools_ready = True

    async def health_checks(self) -> None:
        if not self.stable:
            raise HealthCheckError("stability not ready: cluster-operators")

    async def machine_config_pools_ready(self) -> None:
        if not self.pools_ready:
            raise HealthCheckError("machine-config-pools not ready: master")


# ── Harness ──────────────────────────────────────────────────────────


@dataclass
class Harness:
    LCA_IMAGE: ClassVar[str] = LCA_IMAGE
    SEED_IMAGE: ClassVar[str] = SEED_IMAGE
    RECERT_IMAGE: ClassVar[str] = RECERT_IMAGE
    CLUSTER_NAME: ClassVar[str] = CLUSTER_NAME
    SEED_AUTH: ClassVar[str] = SEED_AUTH
    ORIGINAL_PULL_SECRET: ClassVar[str] = ORIGINAL_PULL_SECRET

    client: MCOClusterClient
    hubs: InMemoryHubClientFactory
    executor: FakeExecutor
    health: FakeHealth
    settings: AgentSettings
    saga: SeedGenSaga
    reconciler: SeedGenReconciler
    lock: InMemoryLockStrategy
    host_root: Path
    compensations: list[CompensationRegistry]

    @property
    def hub(self) -> InMemoryClusterClient:
        return self.hubs(HUB_KUBECONFIG)

    def host_file(self, node_path: str) -> Path:
        return self.host_root / node_path.lstrip("/")

    def seed_seedgen(
        self, stage: InProgressStage | None = None, message: str = ""
    ) -> None:
        seedgen = SeedGenerator(
            metadata=ObjectMeta(name=SEEDGEN_NAME),
            spec=SeedGeneratorSpec(seed_image=SEED_IMAGE, recert_image=RECERT_IMAGE),
        )
        if stage is not None:
            seedgen.set_in_progress(message, stage)
        self.client.seed(SEEDGEN_GVR, seedgen.to_object())

    def seed_secret(self, *, seed_auth: bool = True, hub: bool = False) -> None:
        data: dict[str, str] = {}
        if seed_auth:
            data[SEED_AUTH_KEY] = SEED_AUTH
        if hub:
            data[HUB_KUBECONFIG_KEY] = HUB_KUBECONFIG
        self.client.seed(
            SECRET_GVR,
            {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {"name": SEEDGEN_SECRET_NAME, "namespace": LCA_NAMESPACE},
                "data": data,
            },
        )

    def seed_managed_cluster(self) -> None:
        self.hub.seed(
            MANAGED_CLUSTER_GVR,
            {
                "apiVersion": MANAGED_CLUSTER_GVR.api_version,
                "kind": "ManagedCluster",
                "metadata": {"name": CLUSTER_NAME, "labels": {"cloud": "auto-detect"}},
                "spec": {"hubAcceptsClient": True},
            },
        )

    async def seedgen(self) -> SeedGenerator:
        raw = await self.client.get(SEEDGEN_GVR, SEEDGEN_NAME)
        return SeedGenerator.model_validate(raw)

    async def pull_secret(self) -> str:
        raw = await self.client.get(
            SECRET_GVR, PULL_SECRET_NAME, PULL_SECRET_NAMESPACE
        )
        return str(raw["data"][DOCKER_CONFIG_JSON_KEY])


def _seed_node(h: Harness) -> None:
    client = h.client
    client.seed(
        POD_GVR,
        {
            "metadata": {"name": POD_NAME, "namespace": LCA_NAMESPACE},
            "spec": {
                "containers": [
                    {"name": "kube-rbac-proxy", "image": "quay.io/rbac:latest"},
                    {"name": "manager", "image": LCA_IMAGE},
                ]
            },
        },
    )
    client.seed(
        CONFIGMAP_GVR,
        {
            "metadata": {"name": "cluster-config-v1", "namespace": "kube-system"},
            "data": {
                "install-config": (
                    "apiVersion: v1\nbaseDomain: example.com\n"
                    f"metadata:\n  name: {CLUSTER_NAME}\n"
                )
            },
        },
    )
    client.seed(
        SECRET_GVR,
        {
            "metadata": {"name": PULL_SECRET_NAME, "namespace": PULL_SECRET_NAMESPACE},
            "data": {DOCKER_CONFIG_JSON_KEY: ORIGINAL_PULL_SECRET},
        },
    )
    client.seed(
        SECRET_GVR,
        {
            "metadata": {"name": "kubeadmin", "namespace": "kube-system"},
            "data": {"kubeadmin": "hashed"},
        },
    )
    client.seed(NAMESPACE_GVR, {"metadata": {"name": "open-cluster-management-agent"}})
    client.seed(NAMESPACE_GVR, {"metadata": {"name": "openshift-config"}})
    client.seed(
        CRD_GVR,
        {"metadata": {"name": "klusterlets.operator.open-cluster-management.io"}},
    )
    client.seed(IBU_GVR, {"metadata": {"name": IBU_NAME}})

    dnsmasq = h.host_file(DNSMASQ_CONFIG_SCRIPT)
    dnsmasq.parent.mkdir(parents=True, exist_ok=True)
    dnsmasq.write_text("#!/bin/bash\n")
    auth = h.host_file(IMAGE_REGISTRY_AUTH_FILE)
    auth.parent.mkdir(parents=True, exist_ok=True)
    auth.write_text(ORIGINAL_PULL_SECRET)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _instant(_seconds: float) -> None:
        return None

    monkeypatch.setattr(retry, "_sleep", _instant)


@pytest.fixture(autouse=True)
def _no_skip_recert(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(SKIP_RECERT_ENV, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> AgentSettings:
    return AgentSettings(
        host_root=str(tmp_path),
        pod_name=POD_NAME,
        namespace=LCA_NAMESPACE,
        health_check_interval=30,
        short_interval=10,
        poll_interval=0,
        poll_retries=1,
        pull_secret_poll_interval=0,
        pull_secret_timeout=1,
        backup_poll_interval=0.01,
        backup_delete_timeout=0.05,
    )


@pytest.fixture
def harness(settings: AgentSettings, tmp_path: Path) -> Harness:
    client = MCOClusterClient(tmp_path)
    hubs = InMemoryHubClientFactory()
    executor = FakeExecutor()
    health = FakeHealth()
    lock = InMemoryLockStrategy()
    compensations: list[CompensationRegistry] = []

    def new_registry() -> CompensationRegistry:
        registry = CompensationRegistry("seedgen")
        compensations.append(registry)
        return registry

    saga = SeedGenSaga(
        client, hubs, executor, health, settings, compensations_factory=new_registry
    )
    reconciler = SeedGenReconciler(client, saga, settings, lock)
    h = Harness(
        client=client,
        hubs=hubs,
        executor=executor,
        health=health,
        settings=settings,
        saga=saga,
        reconciler=reconciler,
        lock=lock,
        host_root=tmp_path,
        compensations=compensations,
    )
    _seed_node(h)
    h.seed_seedgen()
    h.seed_secret()
    return h


@pytest.fixture
def client() -> InMemoryClusterClient:
    return InMemoryClusterClient()
