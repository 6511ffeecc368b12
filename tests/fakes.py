"""In-memory stand-ins for kubectl and helm."""
from __future__ import annotations

import base64
import copy
import json
from pathlib import Path

import yaml

from rancher_k3k.kube import Helm, Kubectl

_ALIASES = {
    "svc": "service",
    "deploy": "deployment",
    "crd": "customresourcedefinition",
    "ns": "namespace",
}


def normalize_kind(kind: str) -> str:
    """``clusters.k3k.io`` and ``cluster.k3k.io`` name the same thing."""
    base = kind.lower().split(".", 1)[0]
    base = _ALIASES.get(base, base)
    if base.endswith("ses"):
        return base[:-2]
    if base.endswith("s") and not base.endswith("ss"):
        return base[:-1]
    return base


class FakeKubectl(Kubectl):
    """Object store answering the kubectl calls the pipelines make.

    ``auto_status`` maps a normalized kind to a status merged into every
    object of that kind when it is applied.
    """

    def __init__(
        self,
        *,
        auto_status: dict[str, dict] | None = None,
        fail_all: bool = False,
        fail_nodes: bool = False,
        reject_apply: bool = False,
    ) -> None:
        super().__init__()
        self.objects: dict[tuple[str, str, str | None], dict] = {}
        self.auto_status = auto_status or {}
        self.fail_all = fail_all
        self.fail_nodes = fail_nodes
        self.reject_apply = reject_apply
        self.commands: list[list[str]] = []
        self.applied: list[str] = []
        self.nested: FakeKubectl | None = None
        self.kubeconfig_paths: list[Path] = []

    # -- seeding --

    def add(self, kind: str, name: str, namespace: str | None = None, **fields) -> dict:
        obj = {"kind": kind, "metadata": {"name": name}}
        if namespace:
            obj["metadata"]["namespace"] = namespace
        obj.update(fields)
        self.objects[(normalize_kind(kind), name, namespace)] = obj
        return obj

    def add_deployment(self, name: str, namespace: str, replicas: int = 1) -> dict:
        return self.add(
            "deployment", name, namespace,
            status={"availableReplicas": replicas, "readyReplicas": replicas},
            spec={"template": {"spec": {"containers": [{"image": f"rancher/{name}:v2.13.2"}]}}},
        )

    def get(self, kind: str, name: str, namespace: str | None = None) -> dict | None:
        return self.objects.get((normalize_kind(kind), name, namespace))

    def applied_kinds(self) -> list[str]:
        return [doc["kind"] for text in self.applied for doc in yaml.safe_load_all(text) if doc]

    # -- Kubectl API --

    def with_kubeconfig(self, kubeconfig: Path, insecure: bool = False) -> Kubectl:
        self.kubeconfig_paths.append(kubeconfig)
        assert kubeconfig.exists()
        assert self.nested is not None, "no nested cluster configured"
        return self.nested

    def run(self, args, input=None, timeout=30):
        self.commands.append(list(args))
        if self.fail_all:
            return False, "", "connection refused"
        verb = args[0]
        if verb == "apply":
            return self._apply(input)
        if verb == "get":
            return self._get(args[1:])
        if verb == "delete":
            key = (normalize_kind(args[1]), args[2], self._namespace(args))
            if self.objects.pop(key, None) is None:
                return False, "", "NotFound"
            return True, "deleted", ""
        return False, "", f"unsupported: {args}"

    @staticmethod
    def _namespace(args) -> str | None:
        if "-n" in args:
            return args[args.index("-n") + 1]
        return None

    def _apply(self, text: str):
        if self.reject_apply:
            return False, "", "admission webhook denied the request"
        self.applied.append(text)
        for doc in yaml.safe_load_all(text):
            if not doc:
                continue
            meta = doc.get("metadata") or {}
            kind = normalize_kind(doc["kind"])
            stored = copy.deepcopy(doc)
            if kind in self.auto_status:
                stored["status"] = copy.deepcopy(self.auto_status[kind])
            self.objects[(kind, meta["name"], meta.get("namespace"))] = stored
        return True, "serverside-applied", ""

    def _get(self, rest):
        kind = normalize_kind(rest[0])
        if kind == "node" and self.fail_nodes:
            return False, "", "Unauthorized"
        name = rest[1] if len(rest) > 1 and not rest[1].startswith("-") else None
        namespace = None if "-A" in rest else self._namespace(rest)
        if name is not None:
            obj = self.objects.get((kind, name, namespace))
            if obj is None:
                return False, "", "NotFound"
            return True, json.dumps(obj), ""
        items = [
            obj for (k, _, ns), obj in self.objects.items()
            if k == kind and ("-A" in rest or ns == namespace)
        ]
        return True, json.dumps({"items": items}), ""


class FakeHelm(Helm):
    """Records helm calls and tracks installed releases."""

    def __init__(self, releases: set[tuple[str, str]] | None = None) -> None:
        super().__init__()
        self.releases = set(releases or ())
        self.calls: list[tuple] = []
        self.nested: FakeHelm | None = None

    def with_kubeconfig(self, kubeconfig: Path, insecure: bool = False) -> Helm:
        if self.nested is None:
            self.nested = FakeHelm()
        return self.nested

    def status(self, release, namespace):
        return (release, namespace) in self.releases

    def repo_add(self, alias, url, username=None, password=None, ca_file=None):
        self.calls.append(("repo_add", alias, url))

    def registry_login(self, host, username, password, ca_file=None):
        self.calls.append(("registry_login", host))

    def install(self, release, chart, namespace, *, version=None, values=None,
                create_namespace=False, ca_file=None, upgrade=False):
        self.calls.append(("upgrade" if upgrade else "install", release, chart, namespace))
        self.releases.add((release, namespace))

    def uninstall(self, release, namespace):
        self.calls.append(("uninstall", release, namespace))
        self.releases.discard((release, namespace))

    def installs(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("install", "upgrade")]


def kubeconfig_secret(server: str = "https://10.0.0.5") -> dict:
    """``data`` of a k3k kubeconfig Secret pointing at *server*."""
    document = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "default", "cluster": {"server": server, "certificate-authority-data": "Q0E="}}],
        "users": [{"name": "default", "user": {"client-certificate-data": "Y2VydA==", "client-key-data": "a2V5"}}],
        "contexts": [{"name": "default", "context": {"cluster": "default", "user": "default"}}],
        "current-context": "default",
    }
    return {"kubeconfig.yaml": base64.b64encode(yaml.safe_dump(document).encode()).decode()}


def seed_nested_access(host: FakeKubectl, namespace: str = "rancher-k3k", cluster: str = "rancher") -> None:
    """Kubeconfig Secret, API Service and a node, as k3k leaves them."""
    host.add("secret", f"k3k-{cluster}-kubeconfig", namespace, data=kubeconfig_secret())
    host.add("service", f"k3k-{cluster}-service", namespace,
             spec={"ports": [{"port": 443, "nodePort": 31443}]})
    host.add("node", "node-1", status={
        "addresses": [{"type": "InternalIP", "address": "192.168.1.10"}],
        "nodeInfo": {"kubeletVersion": "v1.34.1+rke2r1"},
    })
