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

"""Target classification: cluster topology and chart source kind.

Every read here is advisory. A failed read counts as "absent" and never
raises, so detection works against partially initialised clusters.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum

from rancher_k3k import logger
from rancher_k3k.constants import DISTRIBUTION_MARKERS, K3K_CRD, K3K_RESOURCE, OCI_SCHEME
from rancher_k3k.kube import Kubectl


class Topology(str, Enum):
    NESTED_VIRTUAL = "k3k"
    STANDALONE = "standalone"


class ClusterType(str, Enum):
    K3K = "k3k"
    RKE2 = "rke2"
    K3S = "k3s"
    GENERIC = "generic"

    @property
    def topology(self) -> Topology:
        return Topology.NESTED_VIRTUAL if self is ClusterType.K3K else Topology.STANDALONE


class ChartSourceKind(str, Enum):
    URL_BASED = "url"
    CONTENT_ADDRESSED = "oci"


# ============================================================================
# Chart sources
# ============================================================================

def classify_chart_source(source: str) -> ChartSourceKind:
    """Classify a chart source purely by its scheme prefix."""
    return ChartSourceKind.CONTENT_ADDRESSED if source.startswith(OCI_SCHEME) else ChartSourceKind.URL_BASED


def oci_registry_host(source: str) -> str:
    """Registry host of an OCI URI, port included.

    ``oci://registry.example.com:5000/charts/rancher`` -> ``registry.example.com:5000``
    """
    return source.removeprefix(OCI_SCHEME).split("/", 1)[0]


# ============================================================================
# Detection predicates
# ============================================================================

def has_nested_cluster_crd(kubectl: Kubectl) -> bool:
    return kubectl.exists("crd", K3K_CRD)


def list_nested_clusters(kubectl: Kubectl) -> list[tuple[str, str]]:
    """(namespace, name) of every nested cluster, in API order."""
    listing = kubectl.get_json([K3K_RESOURCE, "-A"])
    if not isinstance(listing, dict):
        return []
    clusters = []
    for item in listing.get("items") or []:
        meta = item.get("metadata") or {}
        if meta.get("namespace") and meta.get("name"):
            clusters.append((meta["namespace"], meta["name"]))
    return clusters


def kubelet_version(kubectl: Kubectl) -> str:
    """Kubelet version string of the first node, or empty when unreadable."""
    nodes = kubectl.get_json(["nodes"])
    if not isinstance(nodes, dict) or not nodes.get("items"):
        return ""
    return ((nodes["items"][0].get("status") or {}).get("nodeInfo") or {}).get("kubeletVersion", "")


def distribution_from_version(version: str) -> ClusterType | None:
    """Map a kubelet version string to a standalone distribution."""
    for marker, name in DISTRIBUTION_MARKERS:
        if marker in version:
            return ClusterType(name)
    return None


def nested_cluster_rule(kubectl: Kubectl) -> ClusterType | None:
    if has_nested_cluster_crd(kubectl) and list_nested_clusters(kubectl):
        return ClusterType.K3K
    return None


def distribution_rule(kubectl: Kubectl) -> ClusterType | None:
    return distribution_from_version(kubelet_version(kubectl))


DETECTION_RULES: tuple[Callable[[Kubectl], ClusterType | None], ...] = (
    nested_cluster_rule,
    distribution_rule,
)


def detect_cluster_type(
    kubectl: Kubectl,
    rules: Sequence[Callable[[Kubectl], ClusterType | None]] = DETECTION_RULES,
) -> ClusterType:
    """Classify a live cluster; the first rule that matches wins.

    Args:
        kubectl: kubectl bound to the cluster to inspect.
        rules: Detection rules, in priority order.

    Returns:
        The matched cluster type, or ``GENERIC`` when no rule matches.
    """
    for rule in rules:
        found = rule(kubectl)
        if found is not None:
            logger.debug("Cluster type %s matched by %s", found.value, rule.__name__)
            return found
    return ClusterType.GENERIC


def detect_provision_topology(kubectl: Kubectl) -> Topology:
    """Topology for a run that will create the nested cluster itself.

    No instance exists yet, so the CRD alone decides.
    """
    return Topology.NESTED_VIRTUAL if has_nested_cluster_crd(kubectl) else Topology.STANDALONE


def resolve_topology(kubectl: Kubectl, target_type: str | None, provision: bool) -> tuple[Topology, ClusterType]:
    """Resolve the run's topology once, honouring an explicit override.

    Args:
        kubectl: kubectl bound to the host cluster.
        target_type: ``k3k``/``standalone`` override, or None to detect.
        provision: Whether the run provisions Rancher (Mode B).

    Returns:
        Tuple of (topology, cluster type).
    """
    if target_type:
        topology = Topology(target_type)
        if topology is Topology.NESTED_VIRTUAL:
            return topology, ClusterType.K3K
        return topology, distribution_rule(kubectl) or ClusterType.GENERIC
    if provision:
        topology = detect_provision_topology(kubectl)
        if topology is Topology.NESTED_VIRTUAL:
            return topology, ClusterType.K3K
        return topology, distribution_rule(kubectl) or ClusterType.GENERIC
    cluster_type = detect_cluster_type(kubectl)
    return cluster_type.topology, cluster_type
