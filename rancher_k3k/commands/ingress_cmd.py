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

"""restore-ingress command."""

from __future__ import annotations

from pathlib import Path

import typer

from rancher_k3k.commands import options
from rancher_k3k.orchestrator import run_restore_ingress

app = typer.Typer(help="Recreate missing host ingress resources for a k3k Rancher.")


@app.callback(invoke_without_command=True)
def restore_ingress(
    config: Path | None = options.CONFIG,
    kubeconfig: Path | None = options.KUBECONFIG,
    context: str | None = options.CONTEXT,
    k3k_namespace: str | None = options.K3K_NAMESPACE,
    k3k_cluster: str | None = options.K3K_CLUSTER,
    hostname: str | None = typer.Option(
        None, "--hostname", help="Rancher hostname (default: detected from the k3k cluster)"),
    ca_checksum_strategy: str | None = typer.Option(
        None, "--ca-checksum-strategy", help="CA checksum: raw or normalized"),
) -> None:
    """Recreate the host Service, TLS Secret, and Ingress when missing."""
    cfg = options.build_config(
        config,
        kubeconfig=kubeconfig,
        context=context,
        k3k_namespace=k3k_namespace,
        k3k_cluster=k3k_cluster,
        hostname=hostname,
        ca_checksum_strategy=ca_checksum_strategy,
    )
    run_restore_ingress(cfg)
