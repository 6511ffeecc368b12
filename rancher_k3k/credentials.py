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

"""Nested cluster credential extraction, endpoint rewrite, and validation."""

from __future__ import annotations

import base64
import binascii
import copy
import os
import tempfile
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

import yaml

from rancher_k3k import console, logger
from rancher_k3k.constants import (
    K3K_KUBECONFIG_KEY,
    K3K_SERVICE_HTTPS_PORT,
    k3k_api_service,
    k3k_kubeconfig_secret,
)
from rancher_k3k.errors import CredentialError
from rancher_k3k.kube import Helm, Kubectl, TargetEnvironment
from rancher_k3k.topology import Topology


@dataclass(frozen=True)
class CredentialBundle:
    """Access material for one nested cluster, held in memory for one run."""

    endpoint: str
    internal_endpoint: str
    document: dict = field(repr=False)
    degraded: bool = False

    @property
    def auth_material(self) -> dict:
        users = self.document.get("users") or [{}]
        return users[0].get("user") or {}

    @property
    def trust_anchor(self) -> str | None:
        clusters = self.document.get("clusters") or [{}]
        return (clusters[0].get("cluster") or {}).get("certificate-authority-data")

    def to_kubeconfig(self) -> str:
        return yaml.safe_dump(self.document, sort_keys=False)


# ============================================================================
# Extraction
# ============================================================================

def decode_kubeconfig(secret: dict | None, name: str) -> dict:
    """Decode and parse the kubeconfig embedded in a k3k Secret.

    Args:
        secret: The Secret object as returned by the API, or None if absent.
        name: Secret name, for error messages.

    Returns:
        The parsed kubeconfig document.

    Raises:
        CredentialError: If the Secret is absent or its payload is malformed.
    """
    if not secret:
        raise CredentialError(f"Kubeconfig secret {name} not found")
    encoded = (secret.get("data") or {}).get(K3K_KUBECONFIG_KEY)
    if not encoded:
        raise CredentialError(f"Secret {name} has no {K3K_KUBECONFIG_KEY} key")
    try:
        document = yaml.safe_load(base64.b64decode(encoded, validate=True))
    except (binascii.Error, ValueError, yaml.YAMLError) as err:
        raise CredentialError(f"Secret {name} does not hold a valid kubeconfig") from err
    if not isinstance(document, dict):
        raise CredentialError(f"Secret {name} does not hold a valid kubeconfig")
    clusters = document.get("clusters") or []
    if not clusters or not (clusters[0].get("cluster") or {}).get("server"):
        raise CredentialError(f"Kubeconfig in {name} declares no server address")
    return document


def server_address(document: dict) -> str:
    return document["clusters"][0]["cluster"]["server"]


def resolve_external_address(kubectl: Kubectl, namespace: str, cluster: str) -> tuple[str, int] | None:
    """Find a node address and NodePort that reach the nested API server.

    Returns:
        Tuple of (node IP, node port), or None if either cannot be resolved.
    """
    service = kubectl.get_json(["svc", k3k_api_service(cluster), "-n", namespace])
    node_port = None
    for port in ((service or {}).get("spec") or {}).get("ports") or []:
        if port.get("port") == K3K_SERVICE_HTTPS_PORT and port.get("nodePort"):
            node_port = int(port["nodePort"])
            break

    nodes = kubectl.get_json(["nodes"])
    node_ip = None
    items = (nodes or {}).get("items") or []
    if items:
        for address in (items[0].get("status") or {}).get("addresses") or []:
            if address.get("type") == "InternalIP":
                node_ip = address.get("address")
                break

    if node_port is None or not node_ip:
        return None
    return node_ip, node_port


def rewrite_server(document: dict, host: str, port: int) -> dict:
    """Copy of *document* with its server pointed at ``https://host:port``."""
    rewritten = copy.deepcopy(document)
    rewritten["clusters"][0]["cluster"]["server"] = f"https://{host}:{port}"
    return rewritten


def extract_credentials(kubectl: Kubectl, namespace: str, cluster: str) -> CredentialBundle:
    """Build a credential bundle for a nested cluster from its host Secret.

    Raises:
        CredentialError: If the Secret is absent or malformed.
    """
    name = k3k_kubeconfig_secret(cluster)
    document = decode_kubeconfig(kubectl.get_json(["secret", name, "-n", namespace]), name)
    server = server_address(document)
    internal = urlsplit(server).hostname or server

    external = resolve_external_address(kubectl, namespace, cluster)
    if external is None:
        console.print(
            "[yellow]\u26a0\ufe0f  Could not determine NodePort. "
            "Using ClusterIP (only works from within the cluster).[/yellow]"
        )
        return CredentialBundle(endpoint=internal, internal_endpoint=internal, document=document, degraded=True)

    host, port = external
    console.print(f"[yellow]\u2139\ufe0f  k3k API endpoint: https://{host}:{port}[/yellow]")
    return CredentialBundle(
        endpoint=f"{host}:{port}",
        internal_endpoint=internal,
        document=rewrite_server(document, host, port),
    )


# ============================================================================
# Scoped use
# ============================================================================

@contextmanager
def scoped_kubeconfig(bundle: CredentialBundle) -> Iterator[Path]:
    """Write a bundle to an owner-only temp file, removed on exit."""
    fd, name = tempfile.mkstemp(prefix="rancher-k3k-", suffix=".kubeconfig")
    path = Path(name)
    try:
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(bundle.to_kubeconfig())
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Removed temporary kubeconfig %s", path)


def connect_nested(
    host_kubectl: Kubectl,
    host_helm: Helm,
    namespace: str,
    cluster: str,
    stack: ExitStack,
) -> TargetEnvironment:
    """Extract, materialise and validate access to a nested cluster.

    The temporary kubeconfig is registered on *stack* and removed when the
    run ends, on every exit path.

    Raises:
        CredentialError: If extraction fails or the nested API is unreachable.
    """
    bundle = extract_credentials(host_kubectl, namespace, cluster)
    path = stack.enter_context(scoped_kubeconfig(bundle))
    kubectl = host_kubectl.with_kubeconfig(path, insecure=True)
    ok, _, err = kubectl.run(["get", "nodes"])
    if not ok:
        raise CredentialError(f"Cannot connect to k3k cluster {namespace}/{cluster}: {err.strip()}")
    console.print("[green]\u2705 Connected to k3k virtual cluster[/green]")
    return TargetEnvironment(
        topology=Topology.NESTED_VIRTUAL,
        kubectl=kubectl,
        helm=host_helm.with_kubeconfig(path, insecure=True),
        namespace=namespace,
        cluster=cluster,
        credentials=bundle,
    )
