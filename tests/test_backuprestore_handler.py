"""Tests for BRHandler against the in-memory cluster."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from lifecycle_agent.adapters.memory import InMemoryClusterClient
from lifecycle_agent.backuprestore import (
    APPLY_LABEL_ANN,
    APPLY_WAVE_ANN,
    BACKUP_LABEL,
    CLUSTER_ID_LABEL,
    Backup,
    BRFailedError,
    BRFailedValidationError,
    BRHandler,
    BRNotFoundError,
    ConfigMapRef,
)
from lifecycle_agent.backuprestore.handler import (
    OADP_DPA_PATH,
    OADP_RESTORE_PATH,
    OADP_SECRET_PATH,
)
from lifecycle_agent.backuprestore.models import (
    BACKUP_GVR,
    CLUSTER_VERSION_GVR,
    CONFIGMAP_GVR,
    DELETE_BACKUP_REQUEST_GVR,
    DPA_GVR,
)
from lifecycle_agent.domain.resources import SECRET_GVR, ObjectMeta
from lifecycle_agent.primitives.exceptions import (
    ClusterApiError,
    LifecycleAgentError,
    NotFoundError,
    ValidationError,
)

OADP_NS = "openshift-adp"
CLUSTER_ID = "6f2c1a0e-2f7d-4a8c-9c59-0d6b0c1f4e21"

PLATFORM_BACKUPS = """\
apiVersion: velero.io/v1
kind: Backup
metadata:
  name: acm-klusterlet
  namespace: openshift-adp
  annotations:
    lca.openshift.io/apply-wave: "1"
spec:
  includedNamespaces:
  - open-cluster-management-agent
---
apiVersion: velero.io/v1
kind: Restore
metadata:
  name: acm-klusterlet
  namespace: openshift-adp
---
apiVersion: velero.io/v1
kind: Backup
metadata:
  name: lvm-storage
  namespace: openshift-adp
  annotations:
    lca.openshift.io/apply-wave: "2"
"""

APP_BACKUPS = """\
apiVersion: velero.io/v1
kind: Backup
metadata:
  name: app
  namespace: openshift-adp
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: not-a-backup
"""


@pytest.fixture
def cluster(client: InMemoryClusterClient) -> InMemoryClusterClient:
    client.seed(
        CLUSTER_VERSION_GVR,
        {"metadata": {"name": "version"}, "spec": {"clusterID": CLUSTER_ID}},
    )
    client.seed(
        CONFIGMAP_GVR,
        {
            "metadata": {"name": "platform", "namespace": OADP_NS},
            "data": {"platform.yaml": PLATFORM_BACKUPS},
        },
    )
    client.seed(
        CONFIGMAP_GVR,
        {
            "metadata": {"name": "apps", "namespace": OADP_NS},
            "data": {"app.yaml": APP_BACKUPS},
        },
    )
    client.seed(
        SECRET_GVR,
        {"metadata": {"name": "cloud-credentials", "namespace": OADP_NS}},
    )
    return client


@pytest.fixture
def handler(cluster: InMemoryClusterClient) -> BRHandler:
    return BRHandler(cluster, poll_interval=0.01, delete_timeout=0.05)


def _backup(name: str, **annotations: str) -> Backup:
    return Backup(
        metadata=ObjectMeta(name=name, namespace=OADP_NS, annotations=annotations),
        spec={"includedNamespaces": ["app"]},
    )


def _seed_backup(
    client: InMemoryClusterClient, name: str, status: dict[str, Any] | None = None
) -> None:
    obj: dict[str, Any] = {
        "apiVersion": "velero.io/v1",
        "kind": "Backup",
        "metadata": {
            "name": name,
            "namespace": OADP_NS,
            "labels": {CLUSTER_ID_LABEL: CLUSTER_ID},
            "annotations": {
                APPLY_LABEL_ANN: f"v1/secrets/{OADP_NS}/cloud-credentials"
            },
        },
    }
    if status is not None:
        obj["status"] = status
    client.seed(BACKUP_GVR, obj)


# ── Reading configmaps ───────────────────────────────────────────────


class TestConfigMaps:
    async def test_backups_are_extracted_and_sorted(self, handler: BRHandler) -> None:
        refs = [
            ConfigMapRef(name="platform", namespace=OADP_NS),
            ConfigMapRef(name="apps", namespace=OADP_NS),
        ]

        waves = await handler.get_sorted_backups_from_configmaps(refs)

        assert [[b.name for b in wave] for wave in waves] == [
            ["acm-klusterlet"],
            ["lvm-storage"],
            ["app"],
        ]
        assert waves[0][0].spec == {
            "includedNamespaces": ["open-cluster-management-agent"]
        }

    async def test_no_refs(self, handler: BRHandler) -> None:
        assert await handler.get_sorted_backups_from_configmaps([]) == []

    async def test_missing_configmap(self, handler: BRHandler) -> None:
        refs = [ConfigMapRef(name="missing", namespace=OADP_NS)]
        with pytest.raises(BRNotFoundError, match="Please create the configmap"):
            await handler.get_sorted_backups_from_configmaps(refs)

    async def test_api_error(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.inject_error("get", ClusterApiError("forbidden"))
        refs = [ConfigMapRef(name="apps", namespace=OADP_NS)]
        with pytest.raises(LifecycleAgentError, match="failed to get oadp configMaps"):
            await handler.get_sorted_backups_from_configmaps(refs)

    async def test_invalid_yaml(self, handler: BRHandler) -> None:
        configmap = {"data": {"bad.yaml": "backups: [unclosed\n"}}
        with pytest.raises(BRFailedValidationError, match="Failed to decode yaml"):
            await handler.extract_backups_from_configmaps([configmap])

    async def test_configmap_without_data(self, handler: BRHandler) -> None:
        assert await handler.extract_backups_from_configmaps([{"metadata": {}}]) == []

    async def test_backups_are_dry_run_created_only(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        refs = [ConfigMapRef(name="apps", namespace=OADP_NS)]

        await handler.get_sorted_backups_from_configmaps(refs)

        assert cluster.count_calls("create", "app") == 1
        assert not cluster.exists(BACKUP_GVR, "app", OADP_NS)

    async def test_backup_refused_by_dry_run(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.inject_error(
            "create", ClusterApiError('spec.ttl: Invalid value: "forever"')
        )
        refs = [ConfigMapRef(name="apps", namespace=OADP_NS)]

        with pytest.raises(BRFailedValidationError) as exc_info:
            await handler.get_sorted_backups_from_configmaps(refs)

        assert exc_info.value.kind == "Backup"
        assert str(exc_info.value) == (
            'Invalid Backup app from configmap apps: spec.ttl: Invalid value: "forever"'
        )

    async def test_unnamed_backup_is_invalid(self, handler: BRHandler) -> None:
        configmap = {
            "metadata": {"name": "cm"},
            "data": {
                "b.yaml": "apiVersion: velero.io/v1\nkind: Backup\nmetadata: {}\n"
            },
        }
        with pytest.raises(BRFailedValidationError, match="metadata.name") as exc_info:
            await handler.extract_backups_from_configmaps([configmap])
        assert exc_info.value.kind == "Backup"

    async def test_existing_backup_passes_dry_run(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        _seed_backup(cluster, "app", {"phase": "Completed"})
        refs = [ConfigMapRef(name="apps", namespace=OADP_NS)]

        waves = await handler.get_sorted_backups_from_configmaps(refs)

        assert [[b.name for b in wave] for wave in waves] == [["app"]]


# ── Create or track ──────────────────────────────────────────────────


class TestStartOrTrack:
    async def test_existing_backups_are_classified_not_recreated(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        _seed_backup(cluster, "done", {"phase": "Completed"})
        _seed_backup(cluster, "broken", {"phase": "Failed", "failureReason": "s3"})
        _seed_backup(cluster, "partial", {"phase": "PartiallyFailed", "errors": 2})
        _seed_backup(
            cluster,
            "invalid",
            {"phase": "FailedValidation", "validationErrors": ["bad spec"]},
        )
        _seed_backup(cluster, "running", {"phase": "InProgress"})
        _seed_backup(cluster, "queued")

        names = ["done", "broken", "partial", "invalid", "running", "queued"]
        tracker = await handler.start_or_track_backup([_backup(n) for n in names])

        assert cluster.count_calls("create") == 0
        assert tracker.succeeded == ["done"]
        assert tracker.failed == ["broken", "partial"]
        assert tracker.failed_validation == ["invalid"]
        assert tracker.progressing == ["running"]
        assert tracker.pending == ["queued"]

    async def test_missing_backup_is_created(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        tracker = await handler.start_or_track_backup([_backup("app")])

        assert tracker.progressing == ["app"]
        created = await cluster.get(BACKUP_GVR, "app", OADP_NS)
        assert created["metadata"]["labels"] == {CLUSTER_ID_LABEL: CLUSTER_ID}
        assert created["spec"] == {"includedNamespaces": ["app"]}
        assert "status" not in created

    async def test_created_backup_is_tracked_on_next_pass(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        await handler.start_or_track_backup([_backup("app")])
        tracker = await handler.start_or_track_backup([_backup("app")])

        assert cluster.count_calls("create") == 1
        assert tracker.pending == ["app"]

    async def test_apply_label_targets_are_labelled(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        backup = _backup(
            "app", **{APPLY_LABEL_ANN: f"v1/secrets/{OADP_NS}/cloud-credentials"}
        )

        await handler.start_or_track_backup([backup])

        target = await cluster.get(SECRET_GVR, "cloud-credentials", OADP_NS)
        assert target["metadata"]["labels"] == {BACKUP_LABEL: "app"}
        created = await cluster.get(BACKUP_GVR, "app", OADP_NS)
        assert created["spec"]["labelSelector"] == {
            "matchLabels": {BACKUP_LABEL: "app"}
        }

    async def test_missing_label_target_fails_creation(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        backup = _backup("app", **{APPLY_LABEL_ANN: f"v1/secrets/{OADP_NS}/nope"})

        with pytest.raises(LifecycleAgentError, match="failed to apply backup labels"):
            await handler.start_or_track_backup([backup])
        assert not cluster.exists(BACKUP_GVR, "app", OADP_NS)

    async def test_missing_cluster_version(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        await cluster.delete(CLUSTER_VERSION_GVR, "version")
        with pytest.raises(LifecycleAgentError, match="failed to get clusterversion"):
            await handler.start_or_track_backup([_backup("app")])


# ── Cleanup ──────────────────────────────────────────────────────────


class TestCleanup:
    async def test_delete_requests_are_sent_and_labels_removed(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        await handler.apply_backup_labels(
            _backup(
                "one", **{APPLY_LABEL_ANN: f"v1/secrets/{OADP_NS}/cloud-credentials"}
            )
        )
        _seed_backup(cluster, "one", {"phase": "Completed"})
        _seed_backup(cluster, "two", {"phase": "Completed"})

        assert not await handler.cleanup_backups()

        for name in ("one", "two"):
            request = await cluster.get(DELETE_BACKUP_REQUEST_GVR, name, OADP_NS)
            assert request["kind"] == "DeleteBackupRequest"
            assert request["spec"] == {"backupName": name}
        target = await cluster.get(SECRET_GVR, "cloud-credentials", OADP_NS)
        assert target["metadata"]["labels"] == {}

    async def test_other_clusters_backups_are_untouched(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.seed(
            BACKUP_GVR,
            {
                "metadata": {
                    "name": "foreign",
                    "namespace": OADP_NS,
                    "labels": {CLUSTER_ID_LABEL: "someone-else"},
                }
            },
        )

        assert await handler.cleanup_backups()
        assert cluster.count_calls("create") == 0

    async def test_deleted_backups_are_confirmed(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        _seed_backup(cluster, "one")
        backups = [_backup("one")]
        assert not await handler.ensure_backups_deleted(backups)

        await cluster.delete(BACKUP_GVR, "one", OADP_NS)
        assert await handler.ensure_backups_deleted(backups)

    async def test_backup_kind_not_installed(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.inject_error("list", NotFoundError("backups.velero.io", ""))
        assert await handler.cleanup_backups()

    async def test_list_error(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.inject_error("list", ClusterApiError("forbidden"))
        with pytest.raises(LifecycleAgentError, match="failed to list Backup"):
            await handler.cleanup_backups()

    async def test_delete_request_error(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        _seed_backup(cluster, "one")
        cluster.inject_error("create", ClusterApiError("denied"))
        with pytest.raises(LifecycleAgentError, match="could not apply deletebackup"):
            await handler.cleanup_backups()

    async def test_api_error_while_waiting(
        self, handler: BRHandler, cluster: InMemoryClusterClient
    ) -> None:
        cluster.inject_error("get", ClusterApiError("connection reset"))
        with pytest.raises(LifecycleAgentError, match="ensure backup deletion"):
            await handler.ensure_backups_deleted([_backup("one")])


# ── Export ───────────────────────────────────────────────────────────


RESTORES = """\
apiVersion: velero.io/v1
kind: Restore
metadata:
  name: lvm-storage
  namespace: openshift-adp
  annotations:
    lca.openshift.io/apply-wave: "1"
spec:
  backupName: lvm-storage
---
apiVersion: velero.io/v1
kind: Restore
metadata:
  name: apps
  namespace: openshift-adp
  annotations:
    lca.openshift.io/apply-wave: "1"
spec:
  backupName: apps
"""


def _dpa(name: str = "dpa", **spec: Any) -> dict[str, Any]:
    return {
        "apiVersion": DPA_GVR.api_version,
        "kind": "DataProtectionApplication",
        "metadata": {"name": name, "namespace": OADP_NS, "uid": "3f1c"},
        "spec": spec,
    }


class TestExport:
    async def test_restores_are_written_per_wave(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.seed(
            CONFIGMAP_GVR,
            {
                "metadata": {"name": "restores", "namespace": OADP_NS},
                "data": {"restores.yaml": RESTORES},
            },
        )
        refs = [
            ConfigMapRef(name="platform", namespace=OADP_NS),
            ConfigMapRef(name="restores", namespace=OADP_NS),
        ]

        await handler.export_restores_to_dir(refs, tmp_path)

        root = tmp_path / OADP_RESTORE_PATH
        written = sorted(str(p.relative_to(root)) for p in root.rglob("*.yaml"))
        assert written == [
            "restore1/1_apps_openshift-adp.yaml",
            "restore1/2_lvm-storage_openshift-adp.yaml",
            "restore2/1_acm-klusterlet_openshift-adp.yaml",
        ]
        exported = yaml.safe_load(
            (root / "restore1" / "1_apps_openshift-adp.yaml").read_text()
        )
        assert exported == {
            "apiVersion": "velero.io/v1",
            "kind": "Restore",
            "metadata": {
                "name": "apps",
                "namespace": OADP_NS,
                "annotations": {APPLY_WAVE_ANN: "1"},
            },
            "spec": {"backupName": "apps"},
        }
        assert cluster.count_calls("create") == 0

    async def test_invalid_restore_wave(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.seed(
            CONFIGMAP_GVR,
            {
                "metadata": {"name": "restores", "namespace": OADP_NS},
                "data": {"r.yaml": RESTORES.replace('"1"', '"one"', 1)},
            },
        )
        refs = [ConfigMapRef(name="restores", namespace=OADP_NS)]

        with pytest.raises(ValidationError) as exc_info:
            await handler.export_restores_to_dir(refs, tmp_path)
        assert str(exc_info.value) == (
            "failed to convert one in Restore CR lvm-storage to integer: "
            "invalid syntax"
        )
        assert not (tmp_path / OADP_RESTORE_PATH).exists()

    async def test_oadp_configuration_is_exported(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.seed(
            DPA_GVR,
            _dpa(
                backupLocations=[
                    {"velero": {"credential": {"name": "cloud-credentials"}}},
                    {"velero": {"provider": "aws"}},
                    {"bucket": {"name": "b"}},
                ]
            ),
        )

        await handler.export_oadp_configuration_to_dir(tmp_path, OADP_NS)

        dpa = yaml.safe_load((tmp_path / OADP_DPA_PATH / "dpa.yaml").read_text())
        assert dpa["kind"] == "DataProtectionApplication"
        assert "uid" not in dpa["metadata"]
        assert "resourceVersion" not in dpa["metadata"]
        secret_file = tmp_path / OADP_SECRET_PATH / "cloud-credentials.yaml"
        secret = yaml.safe_load(secret_file.read_text())
        assert secret["metadata"] == {
            "name": "cloud-credentials",
            "namespace": OADP_NS,
            "generation": 1,
        }
        assert sorted(p.name for p in (tmp_path / OADP_SECRET_PATH).iterdir()) == [
            "cloud-credentials.yaml"
        ]

    async def test_nothing_to_export_without_dpa(
        self, handler: BRHandler, tmp_path: Path
    ) -> None:
        await handler.export_oadp_configuration_to_dir(tmp_path, OADP_NS)
        assert not (tmp_path / "OADP").exists()

    async def test_oadp_not_installed(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.inject_error("list", NotFoundError(str(DPA_GVR), ""))
        await handler.export_oadp_configuration_to_dir(tmp_path, OADP_NS)
        assert not (tmp_path / "OADP").exists()

    async def test_more_than_one_dpa(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.seed(DPA_GVR, _dpa("one"))
        cluster.seed(DPA_GVR, _dpa("two"))

        with pytest.raises(BRFailedError, match="Only one DataProtectionApplication"):
            await handler.export_oadp_configuration_to_dir(tmp_path, OADP_NS)

    async def test_missing_credential_secret(
        self, handler: BRHandler, cluster: InMemoryClusterClient, tmp_path: Path
    ) -> None:
        cluster.seed(
            DPA_GVR,
            _dpa(backupLocations=[{"velero": {"credential": {"name": "gone"}}}]),
        )
        with pytest.raises(LifecycleAgentError, match="failed to get storageSecret"):
            await handler.export_oadp_configuration_to_dir(tmp_path, OADP_NS)
