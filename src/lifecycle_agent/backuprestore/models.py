"""Typed views of the Velero objects the orchestrator creates and tracks."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field

from ..domain.resources import KubeModel, ObjectMeta
from ..ports.cluster import GroupVersionResource

BACKUP_GVR = GroupVersionResource("velero.io", "v1", "backups")
DELETE_BACKUP_REQUEST_GVR = GroupVersionResource(
    "velero.io", "v1", "deletebackuprequests"
)
CLUSTER_VERSION_GVR = GroupVersionResource(
    "config.openshift.io", "v1", "clusterversions"
)
CONFIGMAP_GVR = GroupVersionResource("", "v1", "configmaps")
RESTORE_GVR = GroupVersionResource("velero.io", "v1", "restores")
DPA_GVR = GroupVersionResource(
    "oadp.openshift.io", "v1alpha1", "dataprotectionapplications"
)


class BackupStatus(KubeModel):
    phase: str = ""
    warnings: int = 0
    errors: int = 0
    failure_reason: str = ""
    validation_errors: list[str] = Field(default_factory=list)


class Backup(KubeModel):
    gvr: ClassVar[GroupVersionResource] = BACKUP_GVR

    api_version: str = BACKUP_GVR.api_version
    kind: str = "Backup"
    metadata: ObjectMeta
    spec: dict[str, Any] = Field(default_factory=dict)
    status: BackupStatus | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def set_labels(self, labels: dict[str, str]) -> None:
        self.metadata.labels.update(labels)

    def add_label_selector(self, key: str, value: str) -> None:
        """Scope the backup to objects carrying ``key=value``."""
        selector = self.spec.setdefault("labelSelector", {})
        selector.setdefault("matchLabels", {})[key] = value

    def to_create(self) -> dict[str, Any]:
        obj = self.to_object()
        obj.pop("status", None)
        obj["metadata"].pop("resourceVersion", None)
        return obj


class Restore(KubeModel):
    """A Restore object carried in a configmap; only exported, never applied."""

    gvr: ClassVar[GroupVersionResource] = RESTORE_GVR

    api_version: str = RESTORE_GVR.api_version
    kind: str = "Restore"
    metadata: ObjectMeta
    spec: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def to_export(self) -> dict[str, Any]:
        """The object as written to disk: empty metadata fields omitted."""
        obj = self.to_object()
        obj["metadata"] = {k: v for k, v in obj["metadata"].items() if v}
        return obj


class ConfigMapRef(KubeModel):
    name: str
    namespace: str
