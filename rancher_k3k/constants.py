# /*
# Copyright 2026 The rancher-k3k Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
MANIFESTS_DIR = PACKAGE_DIR / "manifests"


def load_dependencies() -> dict:
    """Load chart sources and versions from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Polling (seconds) --
DEPLOYMENT_POLL_INTERVAL_SECONDS = 5
RECORD_POLL_INTERVAL_SECONDS = 10
CLUSTER_POLL_INTERVAL_SECONDS = 5
DELETE_POLL_INTERVAL_SECONDS = 2

K3K_CONTROLLER_TIMEOUT_SECONDS = 240
K3K_CLUSTER_TIMEOUT_SECONDS = 300
CERT_MANAGER_TIMEOUT_SECONDS = 600
RANCHER_TIMEOUT_SECONDS = 1050
BACKUP_OPERATOR_TIMEOUT_SECONDS = 450
TLS_SECRET_TIMEOUT_SECONDS = 150
RANCHER_HEALTH_TIMEOUT_SECONDS = 300
CLUSTER_DELETE_TIMEOUT_SECONDS = 600
DEFAULT_WAIT_TIMEOUT_SECONDS = 600

KUBECTL_TIMEOUT_SECONDS = 30
HELM_TIMEOUT_SECONDS = 600

# -- Nested cluster (k3k) --
K3K_CRD = "clusters.k3k.io"
K3K_RESOURCE = "clusters.k3k.io"
K3K_READY_PHASE = "Ready"
K3K_FAILED_PHASES = ("Failed", "Error")
K3K_KUBECONFIG_KEY = "kubeconfig.yaml"
K3K_SERVICE_HTTPS_PORT = 443


def k3k_kubeconfig_secret(cluster: str) -> str:
    """Name of the Secret holding a nested cluster's kubeconfig."""
    return f"k3k-{cluster}-kubeconfig"


def k3k_api_service(cluster: str) -> str:
    """Name of the host Service exposing a nested cluster's API server."""
    return f"k3k-{cluster}-service"


def host_ingress_name(cluster: str) -> str:
    """Name of the host Ingress routing to the nested Rancher."""
    return f"k3k-{cluster}-ingress"


def host_ingress_service(cluster: str) -> str:
    """Name of the host Service backing the host Ingress."""
    return f"k3k-{cluster}-traefik"


# -- Backup operator (rancher-backup) --
BACKUP_RESOURCE = "backups.resources.cattle.io"
RESTORE_RESOURCE = "restores.resources.cattle.io"
READY_CONDITION = "Ready"
DEFAULT_RESOURCE_SET = "rancher-resource-set"
DEFAULT_S3_CREDENTIAL_SECRET = "s3-credentials"
DEFAULT_ENCRYPTION_SECRET = "backup-encryption"
BACKUP_NAME_PREFIX = "rancher-backup"
RESTORE_NAME_PREFIX = "rancher-restore"
NAME_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
BACKUP_METADATA_FILE = "backup-metadata.json"

# -- Namespaces --
NS_KUBE_SYSTEM = "kube-system"
NS_CATTLE_SYSTEM = "cattle-system"
NS_CERT_MANAGER = "cert-manager"
DEFAULT_K3K_NAMESPACE = "rancher-k3k"
DEFAULT_K3K_CLUSTER = "rancher"
DEFAULT_OPERATOR_NAMESPACE = "cattle-resources-system"

# -- Rancher --
RANCHER_DEPLOYMENT = "rancher"
CERT_MANAGER_DEPLOYMENTS = ("cert-manager", "cert-manager-webhook")
TLS_INGRESS_SECRET = "tls-rancher-ingress"
TLS_CA_SECRET = "tls-ca"
DEFAULT_TLS_SOURCE = "rancher"
DEFAULT_BOOTSTRAP_PW_MIN_LENGTH = 12

# -- In-cluster Helm auth --
HELM_REPO_AUTH_SECRET = "helm-repo-auth"
HELM_OCI_AUTH_SECRET = "helm-oci-auth"
HELM_REPO_CA_CONFIGMAP = "helm-repo-ca"
OCI_SCHEME = "oci://"

# -- Private registry --
MIRROR_REGISTRIES = ("docker.io", "quay.io", "ghcr.io")
REGISTRY_CONFIG_SECRET = "k3s-registry-config"
REGISTRY_CA_SECRET = "k3s-registry-ca"
REGISTRY_CA_MOUNT_PATH = "/etc/rancher/k3s/tls/ca.crt"
REGISTRIES_YAML_MOUNT_PATH = "/etc/rancher/k3s/registries.yaml"

# -- Ingress drift reconciliation --
INGRESS_RECONCILER = "ingress-reconciler"
INGRESS_WATCHER = "ingress-watcher"
INGRESS_MANIFEST_CONFIGMAP = "rancher-host-ingress"
INGRESS_RECONCILE_SCHEDULE = "*/5 * * * *"
INGRESS_WATCH_INTERVAL_SECONDS = 30

# -- Labels / annotations --
FIELD_MANAGER = "rancher-k3k"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
CA_CHECKSUM_ANNOTATION = "rancher-k3k.io/ca-checksum"

# -- Standalone distribution markers (kubelet version substrings) --
DISTRIBUTION_MARKERS = (("rke2", "rke2"), ("k3s", "k3s"))
DEFAULT_K3K_PVC_SIZE = "40Gi"
DEFAULT_STORAGE_CLASS = "harvester-longhorn"
PVC_SIZE_PATTERN = r"^\d+(Mi|Gi|Ti)$"
