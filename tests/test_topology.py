"""Tests for cluster topology detection and chart source classification."""
from __future__ import annotations

import pytest

from fakes import FakeKubectl
from rancher_k3k.topology import (
    ChartSourceKind,
    ClusterType,
    Topology,
    classify_chart_source,
    detect_cluster_type,
    detect_provision_topology,
    list_nested_clusters,
    oci_registry_host,
    resolve_topology,
)


def _node(kubectl: FakeKubectl, version: str) -> None:
    kubectl.add("node", "node-1", status={"nodeInfo": {"kubeletVersion": version}})


def test_unreachable_cluster_is_generic() -> None:
    """Every failed read counts as absent; detection never raises."""
    assert detect_cluster_type(FakeKubectl(fail_all=True)) is ClusterType.GENERIC


def test_crd_with_an_instance_is_k3k() -> None:
    """The nested rule wins over a distribution marker."""
    kubectl = FakeKubectl()
    kubectl.add("crd", "clusters.k3k.io")
    kubectl.add("cluster.k3k.io", "rancher", "rancher-k3k")
    _node(kubectl, "v1.34.1+rke2r1")

    assert detect_cluster_type(kubectl) is ClusterType.K3K
    assert list_nested_clusters(kubectl) == [("rancher-k3k", "rancher")]


def test_crd_without_instance_falls_through_to_distribution() -> None:
    """An installed CRD alone does not make a cluster nested."""
    kubectl = FakeKubectl()
    kubectl.add("crd", "clusters.k3k.io")
    _node(kubectl, "v1.34.1+k3s1")

    assert detect_cluster_type(kubectl) is ClusterType.K3S


@pytest.mark.parametrize(
    ("version", "expected"),
    [
        ("v1.34.1+rke2r1", ClusterType.RKE2),
        ("v1.33.4+k3s1", ClusterType.K3S),
        ("v1.32.0-eks-abcdef", ClusterType.GENERIC),
    ],
)
def test_distribution_from_kubelet_version(version: str, expected: ClusterType) -> None:
    kubectl = FakeKubectl()
    _node(kubectl, version)

    cluster_type = detect_cluster_type(kubectl)

    assert cluster_type is expected
    assert cluster_type.topology is Topology.STANDALONE


def test_provision_topology_uses_crd_only() -> None:
    """Before the nested cluster exists, the CRD alone selects nested mode."""
    with_crd = FakeKubectl()
    with_crd.add("crd", "clusters.k3k.io")

    assert detect_provision_topology(with_crd) is Topology.NESTED_VIRTUAL
    assert detect_provision_topology(FakeKubectl()) is Topology.STANDALONE
    assert resolve_topology(with_crd, None, provision=True) == (Topology.NESTED_VIRTUAL, ClusterType.K3K)
    assert resolve_topology(with_crd, None, provision=False) == (Topology.STANDALONE, ClusterType.GENERIC)


def test_explicit_target_type_overrides_detection() -> None:
    """An override is honoured without consulting the CRD."""
    kubectl = FakeKubectl()
    _node(kubectl, "v1.34.1+rke2r1")

    assert resolve_topology(kubectl, "k3k", provision=False) == (Topology.NESTED_VIRTUAL, ClusterType.K3K)
    assert resolve_topology(kubectl, "standalone", provision=True) == (Topology.STANDALONE, ClusterType.RKE2)


@pytest.mark.parametrize(
    ("source", "kind"),
    [
        ("oci://registry.example.com/charts/rancher", ChartSourceKind.CONTENT_ADDRESSED),
        ("https://releases.rancher.com/server-charts/latest", ChartSourceKind.URL_BASED),
        ("http://charts.local", ChartSourceKind.URL_BASED),
        ("registry.example.com/oci://odd", ChartSourceKind.URL_BASED),
    ],
)
def test_classify_chart_source(source: str, kind: ChartSourceKind) -> None:
    """Only the scheme prefix decides the source kind."""
    assert classify_chart_source(source) is kind


def test_oci_registry_host_keeps_port() -> None:
    assert oci_registry_host("oci://registry.example.com:5000/charts/rancher") == "registry.example.com:5000"
    assert oci_registry_host("oci://harbor.local") == "harbor.local"
