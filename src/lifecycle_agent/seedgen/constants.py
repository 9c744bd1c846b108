"""Names, paths and messages shared by the seed generation modules."""

from __future__ import annotations

from ..domain.phase import MSG_LAUNCHING_IMAGER  # noqa: F401
from ..ports.cluster import GroupVersionResource

SEEDGEN_NAME = "seedimage"
SEEDGEN_SECRET_NAME = "seedgen"
SEED_AUTH_KEY = "seedAuth"
HUB_KUBECONFIG_KEY = "hubKubeconfig"
MANAGER_CONTAINER = "manager"
IBU_NAME = "upgrade"

# ── Status messages ──────────────────────────────────────────────────

MSG_WAITING_FOR_STABLE = "Waiting for system to stabilize"
MSG_STARTING = "Starting seed generation"
MSG_PULLING_RECERT = "Pulling recert image"
MSG_PREPARING = "Preparing for seed generation"
MSG_CLEANING = "Cleaning cluster resources"
MSG_FINALIZING = "Finalizing seed generation"
MSG_UNEXPECTED_RETURN = "unexpected return from launching imager container"

# ── Node paths (as seen on the node, without the host_root prefix) ───

WORKSPACE_PATH = "/var/lib/lca/ibu-seedgen-orch"
AUTH_FILE = "auth.json"
STORED_CR_FILE = "seedgen-cr.json"
STORED_SECRET_FILE = "seedgen-secret.json"
STORED_PULL_SECRET_FILE = "pull-secret.json"
MANAGED_CLUSTER_FILE = "managedcluster.json"

IMAGE_REGISTRY_AUTH_FILE = "/var/lib/kubelet/config.json"
DNSMASQ_CONFIG_SCRIPT = "/usr/local/bin/dnsmasq_config.sh"
KUBECONFIG_FILE = (
    "/etc/kubernetes/static-pod-resources/kube-apiserver-certs/secrets/"
    "node-kubeconfigs/lb-ext.kubeconfig"
)

# ── Imager ───────────────────────────────────────────────────────────

IMAGER_CONTAINER_NAME = "lca_image_builder"
IMAGER_UNIT_NAME = "lca-generate-seed-image"
DEFAULT_RECERT_IMAGE = "quay.io/edge-infrastructure/recert:v0"

# ── Pull secret ──────────────────────────────────────────────────────

PULL_SECRET_NAME = "pull-secret"
PULL_SECRET_NAMESPACE = "openshift-config"
DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
PULL_SECRET_EMPTY_DATA = (
    '{"auths":{"registry.connect.redhat.com":{"username":"empty",'
    '"password":"empty","auth":"ZW1wdHk6ZW1wdHk=","email":""}}}'
)

# ── Resources ────────────────────────────────────────────────────────

POD_GVR = GroupVersionResource("", "v1", "pods")
NAMESPACE_GVR = GroupVersionResource("", "v1", "namespaces")
CONFIGMAP_GVR = GroupVersionResource("", "v1", "configmaps")
CRD_GVR = GroupVersionResource(
    "apiextensions.k8s.io", "v1", "customresourcedefinitions"
)
CLUSTER_ROLE_GVR = GroupVersionResource(
    "rbac.authorization.k8s.io", "v1", "clusterroles"
)
CLUSTER_ROLE_BINDING_GVR = GroupVersionResource(
    "rbac.authorization.k8s.io", "v1", "clusterrolebindings"
)
MANAGED_CLUSTER_GVR = GroupVersionResource(
    "cluster.open-cluster-management.io", "v1", "managedclusters"
)
IBU_GVR = GroupVersionResource("lca.openshift.io", "v1", "imagebasedupgrades")
