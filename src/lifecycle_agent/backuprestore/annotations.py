"""Annotations and labels that steer how Backup objects are applied."""

from __future__ import annotations

from dataclasses import dataclass

from ..ports.cluster import GroupVersionResource
from ..primitives.exceptions import ValidationError

APPLY_WAVE_ANN = "lca.openshift.io/apply-wave"
APPLY_LABEL_ANN = "lca.openshift.io/apply-label"
BACKUP_LABEL = "lca.openshift.io/backup"
CLUSTER_ID_LABEL = "config.openshift.io/clusterID"

# Objects without an apply-wave run last (math.MaxInt32).
DEFAULT_APPLY_WAVE = 2_147_483_647


@dataclass(frozen=True)
class ObjMetadata:
    """Coordinates of an object named in an apply-label annotation."""

    group: str
    version: str
    resource: str
    namespace: str
    name: str

    @property
    def gvr(self) -> GroupVersionResource:
        return GroupVersionResource(self.group, self.version, self.resource)

    def __str__(self) -> str:
        return (
            f"name:{self.name} namespace:{self.namespace} resource:{self.resource} "
            f"group:{self.group} version:{self.version}"
        )


def parse_obj_ref(raw: str) -> ObjMetadata:
    """Parse one apply-label entry.

    Accepted forms::

        version/resource/name                      (core, cluster-scoped)
        v1/resource/namespace/name                 (core, namespaced)
        group/version/resource/name                (cluster-scoped)
        group/version/resource/namespace/name      (namespaced)
    """
    parts = raw.split("/")
    if len(parts) == 3:
        version, resource, name = parts
        return ObjMetadata("", version, resource, "", name)
    if len(parts) == 4:
        if parts[0] == "v1":
            version, resource, namespace, name = parts
            return ObjMetadata("", version, resource, namespace, name)
        group, version, resource, name = parts
        return ObjMetadata(group, version, resource, "", name)
    if len(parts) == 5:
        group, version, resource, namespace, name = parts
        return ObjMetadata(group, version, resource, namespace, name)
    raise ValidationError(f"invalid apply-label obj in annotation value: {raw}")


def objs_from_annotations(annotations: dict[str, str]) -> list[ObjMetadata]:
    """Objects listed in the apply-label annotation, duplicates removed."""
    value = annotations.get(APPLY_LABEL_ANN, "")
    if not value:
        return []
    entries = list(dict.fromkeys(value.split(",")))
    return [parse_obj_ref(entry) for entry in entries]


def escape_json_pointer(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")
