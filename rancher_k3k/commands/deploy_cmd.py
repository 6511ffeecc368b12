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

"""Deploy command."""

from __future__ import annotations

from pathlib import Path

import typer

from rancher_k3k.commands import options
from rancher_k3k.orchestrator import run_deploy

app = typer.Typer(help="Deploy Rancher inside a k3k virtual cluster.")


@app.callback(invoke_without_command=True)
def deploy(
    config: Path | None = options.CONFIG,
    kubeconfig: Path | None = options.KUBECONFIG,
    context: str | None = options.CONTEXT,
    hostname: str | None = options.HOSTNAME,
    bootstrap_pw: str | None = options.BOOTSTRAP_PW,
    tls_source: str | None = options.TLS_SOURCE,
    replicas: int | None = typer.Option(None, "--replicas", help="Rancher replicas"),
    rancher_version: str | None = options.RANCHER_VERSION,
    rancher_repo: str | None = options.RANCHER_REPO,
    certmanager_version: str | None = options.CERTMANAGER_VERSION,
    certmanager_repo: str | None = options.CERTMANAGER_REPO,
    k3k_namespace: str | None = options.K3K_NAMESPACE,
    k3k_cluster: str | None = options.K3K_CLUSTER,
    k3k_version: str | None = options.K3K_VERSION,
    k3k_repo: str | None = options.K3K_REPO,
    servers: int | None = typer.Option(None, "--servers", help="k3k server replicas"),
    pvc_size: str | None = options.PVC_SIZE,
    storage_class: str | None = options.STORAGE_CLASS,
    private_registry: str | None = options.PRIVATE_REGISTRY,
    private_ca: Path | None = options.PRIVATE_CA,
    ca_checksum_strategy: str | None = typer.Option(
        None, "--ca-checksum-strategy", help="CA checksum: raw or normalized"),
    helm_repo_user: str | None = options.HELM_REPO_USER,
    helm_repo_pass: str | None = options.HELM_REPO_PASS,
    upgrade: bool = typer.Option(False, "--upgrade", help="Upgrade an existing k3k controller and charts"),
) -> None:
    """Install k3k, create the virtual cluster, and deploy Rancher into it."""
    cfg = options.build_config(
        config,
        kubeconfig=kubeconfig,
        context=context,
        hostname=hostname,
        bootstrap_pw=bootstrap_pw,
        tls_source=tls_source,
        rancher_replicas=replicas,
        rancher_version=rancher_version,
        rancher_repo=rancher_repo,
        certmanager_version=certmanager_version,
        certmanager_repo=certmanager_repo,
        k3k_namespace=k3k_namespace,
        k3k_cluster=k3k_cluster,
        k3k_version=k3k_version,
        k3k_repo=k3k_repo,
        k3k_servers=servers,
        k3k_pvc_size=pvc_size,
        k3k_storage_class=storage_class,
        private_registry=private_registry,
        private_ca_path=private_ca,
        ca_checksum_strategy=ca_checksum_strategy,
        helm_repo_user=helm_repo_user,
        helm_repo_pass=helm_repo_pass,
        upgrade=upgrade,
    )
    run_deploy(cfg)
