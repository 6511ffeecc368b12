"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from fakes import FakeHelm, FakeKubectl, seed_nested_access
from rancher_k3k import orchestrator, poller
from rancher_k3k.kube import TargetEnvironment
from rancher_k3k.topology import Topology


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Make every poll interval instantaneous; returns the requested sleeps."""
    slept: list[float] = []
    monkeypatch.setattr(poller, "time", SimpleNamespace(sleep=slept.append))
    return slept


@pytest.fixture(autouse=True)
def no_prerequisites(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend kubectl and helm are on PATH."""
    monkeypatch.setattr(orchestrator, "require_command", lambda cmd: None)


@pytest.fixture()
def nested_kubectl() -> FakeKubectl:
    """A nested cluster where helm-controller has already done its work."""
    nested = FakeKubectl()
    nested.add_deployment("cert-manager", "cert-manager")
    nested.add_deployment("cert-manager-webhook", "cert-manager")
    nested.add_deployment("rancher", "cattle-system")
    nested.add("secret", "tls-rancher-ingress", "cattle-system",
               type="kubernetes.io/tls", data={"tls.crt": "Y2VydA==", "tls.key": "a2V5"})
    nested.add("ingress", "rancher", "cattle-system",
               spec={"rules": [{"host": "rancher.example.com"}]})
    return nested


@pytest.fixture()
def host_kubectl(nested_kubectl: FakeKubectl) -> FakeKubectl:
    """A host cluster with k3k available and its controller running."""
    host = FakeKubectl(auto_status={"cluster": {"phase": "Ready"}})
    host.nested = nested_kubectl
    host.add("crd", "clusters.k3k.io")
    host.add_deployment("k3k", "k3k-system")
    seed_nested_access(host)
    return host


@pytest.fixture()
def host_env(host_kubectl: FakeKubectl) -> TargetEnvironment:
    return TargetEnvironment(topology=Topology.STANDALONE, kubectl=host_kubectl, helm=FakeHelm())
