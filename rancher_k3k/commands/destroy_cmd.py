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

"""Destroy command."""

from __future__ import annotations

from pathlib import Path

import typer

from rancher_k3k import console
from rancher_k3k.commands import options
from rancher_k3k.orchestrator import run_destroy

app = typer.Typer(help="Remove the k3k Rancher deployment.")


@app.callback(invoke_without_command=True)
def destroy(
    config: Path | None = options.CONFIG,
    kubeconfig: Path | None = options.KUBECONFIG,
    context: str | None = options.CONTEXT,
    k3k_namespace: str | None = options.K3K_NAMESPACE,
    k3k_cluster: str | None = options.K3K_CLUSTER,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete the virtual cluster, its host ingress, and the k3k controller."""
    cfg = options.build_config(
        config,
        kubeconfig=kubeconfig,
        context=context,
        k3k_namespace=k3k_namespace,
        k3k_cluster=k3k_cluster,
    )
    if not yes:
        console.print(f"[yellow]\u26a0\ufe0f  This removes k3k cluster '{cfg.k3k_cluster}' "
                      f"in '{cfg.k3k_namespace}' and ALL data in it.[/yellow]")
        if not typer.confirm("Continue?", default=False):
            console.print("[yellow]\u2139\ufe0f  Aborted[/yellow]")
            raise typer.Exit(1)
    run_destroy(cfg)
