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

"""Orchestration functions that compose domain modules into pipelines."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime

import typer
from rich.panel import Panel

from rancher_k3k import console, logger
from rancher_k3k.applier import ApplyMode, apply_manifest
from rancher_k3k.components import (
    check_rancher_health,
    create_nested_cluster,
    delete_namespaces,
    delete_nested_cluster,
    deploy_cert_manager,
    deploy_ingress_reconcilers,
    deploy_rancher,
    expose_ingress,
    host_ingress_state,
    install_backup_operator,
    install_k3k_controller,
    login_oci_registries,
    propagate_tls,
    rancher_hostname,
    rancher_image_tag,
    remove_host_ingress,
    remove_ingress_automation,
    stage_backup_secrets,
    stage_nested_prerequisites,
    stage_registry_config,
    uninstall_k3k_controller,
    verify_rancher_running,
)
from rancher_k3k.config import (
    RunConfig,
    display_config,
    resolve_record_names,
    validate_backup,
    validate_deploy,
    validate_restore,
)
from rancher_k3k.constants import (
    K3K_RESOURCE,
    RECORD_POLL_INTERVAL_SECONDS,
    dep_value,
)
from rancher_k3k.credentials import connect_nested
from rancher_k3k.errors import StageError
from rancher_k3k.kube import Helm, Kubectl, TargetEnvironment, require_command
from rancher_k3k.poller import (
    await_condition,
    condition_failure,
    condition_ready,
    nested_cluster_ready,
    raise_for_outcome,
)
from rancher_k3k.records import OperationKind, OperationRecord, export_metadata
from rancher_k3k.rendering import (
    cert_manager_chart,
    k3k_chart,
    rancher_chart,
    render_backup_record,
    render_restore_record,
)
from rancher_k3k.templates import RenderedManifest
from rancher_k3k.topology import ClusterType, Topology, list_nested_clusters, resolve_topology


# ============================================================================
# Run context and stage runner
# ============================================================================

def host_environment(cfg: RunConfig) -> TargetEnvironment:
    """The host cluster as addressed by ``--kubeconfig``/``--context``."""
    return TargetEnvironment(
        topology=Topology.STANDALONE,
        kubectl=Kubectl(cfg.kubeconfig, cfg.context),
        helm=Helm(cfg.kubeconfig, cfg.context),
    )


class RunContext:
    """State shared by the stages of one pipeline run.

    Used as a context manager: every scoped resource (temporary kubeconfig
    files) is registered on :attr:`stack` and released on exit, whether the
    run succeeded or raised.
    """

    def __init__(self, cfg: RunConfig, host: TargetEnvironment | None = None) -> None:
        self.cfg = cfg
        self.host = host or host_environment(cfg)
        self.stack = ExitStack()
        self.topology: Topology | None = None
        self.cluster_type: ClusterType | None = None
        self.target: TargetEnvironment | None = None
        self.nested: TargetEnvironment | None = None
        self.record: OperationRecord | None = None
        self.hostname: str | None = cfg.hostname

    def __enter__(self) -> RunContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stack.close()

    @property
    def is_nested(self) -> bool:
        return self.topology is Topology.NESTED_VIRTUAL

    def detect(self, provision: bool) -> Topology:
        """Resolve topology once; later calls return the cached result."""
        if self.topology is None:
            self.topology, self.cluster_type = resolve_topology(
                self.host.kubectl, self.cfg.target_type, provision
            )
        return self.topology

    def connect(self, namespace: str, cluster: str) -> TargetEnvironment:
        """Credentials for the nested cluster, resolved at most once per run."""
        if self.nested is None:
            self.nested = connect_nested(self.host.kubectl, self.host.helm, namespace, cluster, self.stack)
        return self.nested

    def require_target(self) -> TargetEnvironment:
        if self.target is None:
            raise StageError("pipeline", "No target environment resolved")
        return self.target


@dataclass(frozen=True)
class Stage:
    """A named pipeline step; ``when`` gates it on the run context."""

    name: str
    run: Callable[[RunContext], None]
    when: Callable[[RunContext], bool] | None = None


def run_stages(ctx: RunContext, stages: list[Stage]) -> None:
    """Execute *stages* in order, stopping at the first exception.

    Gates are evaluated when a stage is reached, so a stage can depend on
    state (such as topology) resolved by an earlier one.
    """
    total = len(stages)
    for index, stage in enumerate(stages, start=1):
        if stage.when is not None and not stage.when(ctx):
            console.print(f"[yellow]\u2139\ufe0f  Step {index}/{total}: {stage.name} (skipped)[/yellow]")
            continue
        console.print(f"[yellow]\u2139\ufe0f  Step {index}/{total}: {stage.name}...[/yellow]")
        logger.debug("Stage %s started", stage.name)
        stage.run(ctx)
        logger.debug("Stage %s finished", stage.name)


# ============================================================================
# Shared stages
# ============================================================================

def _check_prerequisites(ctx: RunContext) -> None:
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in ("kubectl", "helm"):
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def _detect_attach(ctx: RunContext) -> None:
    ctx.detect(provision=False)
    console.print(f"[green]\u2705 Cluster type: {ctx.cluster_type.value}[/green]")


def _detect_provision(ctx: RunContext) -> None:
    ctx.detect(provision=True)
    console.print(f"[green]\u2705 Target type: {ctx.topology.value}[/green]")


def _discover_nested_cluster(ctx: RunContext) -> tuple[str, str]:
    """The configured nested cluster if present, else the first one found."""
    clusters = list_nested_clusters(ctx.host.kubectl)
    wanted = (ctx.cfg.k3k_namespace, ctx.cfg.k3k_cluster)
    if wanted in clusters:
        return wanted
    if not clusters:
        raise StageError("Connect", "No k3k clusters found on the host cluster")
    return clusters[0]


def _connect_attach(ctx: RunContext) -> None:
    if ctx.is_nested:
        namespace, cluster = _discover_nested_cluster(ctx)
        console.print(f"[yellow]\u2139\ufe0f  k3k cluster: {cluster} in namespace {namespace}[/yellow]")
        ctx.target = ctx.connect(namespace, cluster)
    else:
        console.print("[yellow]\u2139\ufe0f  Standalone cluster, using direct access[/yellow]")
        ctx.target = ctx.host


def _verify_rancher(ctx: RunContext) -> None:
    verify_rancher_running(ctx.require_target())


def _install_operator(ctx: RunContext) -> None:
    install_backup_operator(ctx.cfg, ctx.require_target())


def _operator_wanted(ctx: RunContext) -> bool:
    return not ctx.cfg.skip_operator_install


def _submit_record(ctx: RunContext, manifest: RenderedManifest) -> None:
    target = ctx.require_target()
    stage_backup_secrets(ctx.cfg, target)
    apply_manifest(target.kubectl, manifest, ApplyMode.SKIP_IF_PRESENT)
    console.print(f"[green]\u2705 {ctx.record.kind.value.capitalize()} '{ctx.record.name}' submitted[/green]")


def await_record(target: TargetEnvironment, record: OperationRecord, timeout: float) -> OperationRecord:
    """Poll an Operation Record until the operator reports it terminal.

    Every read is fed to :meth:`OperationRecord.observe`, so the record
    tracks the operator's status and nothing else.

    Raises:
        StageError: If the record reports ``Ready=False`` with a message.
        StageTimeoutError: If no terminal condition appears in time.
    """
    console.print(
        f"[yellow]\u2139\ufe0f  Waiting for {record.kind.value} '{record.name}' to complete "
        f"(timeout: {timeout:g}s)...[/yellow]"
    )

    def read() -> dict | None:
        obj = target.kubectl.get_json(record.ref.get_args())
        if obj is not None:
            record.observe(obj)
        return obj

    outcome = await_condition(read, condition_ready, condition_failure, timeout, RECORD_POLL_INTERVAL_SECONDS)
    raise_for_outcome(outcome, f"{record.kind.value} {record.name}")
    return record


def _await_record(ctx: RunContext) -> None:
    record = await_record(ctx.require_target(), ctx.record, ctx.cfg.wait_timeout)
    if record.kind is OperationKind.BACKUP:
        console.print(f"[green]\u2705 Backup complete: {record.filename or 'unknown'}[/green]")
    else:
        console.print("[green]\u2705 Restore complete[/green]")


# ============================================================================
# Dry run
# ============================================================================

def print_dry_run(manifest: RenderedManifest, kind: OperationKind) -> None:
    """Print the record manifest to stdout; nothing reaches the cluster."""
    console.print(f"[yellow]\u2139\ufe0f  Dry run, {kind.value.capitalize()} CR that would be applied:[/yellow]")
    typer.echo("---")
    typer.echo(manifest.text.rstrip("\n"))
    typer.echo("---")


# ============================================================================
# Backup
# ============================================================================

def _export_metadata(ctx: RunContext) -> None:
    target = ctx.require_target()
    path = export_metadata(
        ctx.record,
        ctx.cfg.output_dir,
        cluster_type=ctx.cluster_type.value,
        rancher_version=rancher_image_tag(target),
        hostname=rancher_hostname(target) or "unknown",
    )
    console.print(f"[green]\u2705 Metadata exported to {path}[/green]")


def run_backup(cfg: RunConfig, host: TargetEnvironment | None = None, now: datetime | None = None) -> OperationRecord:
    """Back up a running Rancher through the rancher-backup operator.

    Args:
        cfg: Run configuration.
        host: Host environment; built from *cfg* when None.
        now: Clock used for default record names.

    Returns:
        The observed Operation Record (unsubmitted on dry run).

    Raises:
        RancherK3kError: If any stage fails.
    """
    cfg = resolve_record_names(cfg, now)
    validate_backup(cfg)
    manifest = render_backup_record(cfg)
    record = OperationRecord.for_backup(cfg, now)
    display_config(cfg, "Rancher Backup")
    if cfg.dry_run:
        print_dry_run(manifest, OperationKind.BACKUP)
        return record

    stages = [
        Stage("Checking prerequisites", _check_prerequisites),
        Stage("Detecting cluster type", _detect_attach),
        Stage("Connecting to Rancher cluster", _connect_attach),
        Stage("Verifying Rancher", _verify_rancher),
        Stage("Installing rancher-backup operator", _install_operator, _operator_wanted),
        Stage("Creating backup resources", lambda ctx: _submit_record(ctx, manifest)),
        Stage("Waiting for backup", _await_record),
        Stage("Exporting metadata", _export_metadata, lambda ctx: ctx.cfg.output_dir is not None),
    ]
    with RunContext(cfg, host) as ctx:
        ctx.record = record
        run_stages(ctx, stages)
    console.print(Panel.fit(f"Backup '{record.name}' complete", style="bold green"))
    return record


# ============================================================================
# Provisioning (Mode B and deploy)
# ============================================================================

def _login_registries(ctx: RunContext) -> None:
    cfg = ctx.cfg
    sources = [ref.source for ref in (k3k_chart(cfg), cert_manager_chart(cfg), rancher_chart(cfg))]
    login_oci_registries(cfg, ctx.host.helm, sources)


def _install_k3k(ctx: RunContext) -> None:
    install_k3k_controller(ctx.cfg, ctx.host)


def _create_nested(ctx: RunContext) -> None:
    if ctx.cfg.private_registry:
        stage_registry_config(ctx.cfg, ctx.host)
    create_nested_cluster(ctx.cfg, ctx.host)


def _connect_provisioned(ctx: RunContext) -> None:
    if ctx.is_nested:
        ctx.target = ctx.connect(ctx.cfg.k3k_namespace, ctx.cfg.k3k_cluster)
        stage_nested_prerequisites(ctx.cfg, ctx.target)
    else:
        ctx.target = ctx.host


def _deploy_cert_manager(ctx: RunContext) -> None:
    deploy_cert_manager(ctx.cfg, ctx.require_target())


def _deploy_rancher(ctx: RunContext) -> None:
    deploy_rancher(ctx.cfg, ctx.require_target())


def _nested(ctx: RunContext) -> bool:
    return ctx.is_nested


def _provision_stages() -> list[Stage]:
    return [
        Stage("Logging in to OCI registries", _login_registries),
        Stage("Installing k3k controller", _install_k3k, _nested),
        Stage("Creating k3k virtual cluster", _create_nested, _nested),
        Stage("Connecting to target cluster", _connect_provisioned),
        Stage("Deploying cert-manager", _deploy_cert_manager),
        Stage("Deploying Rancher", _deploy_rancher),
    ]


def _expose(ctx: RunContext, *, tls_required: bool, reconcile: bool) -> None:
    cfg = ctx.cfg
    propagate_tls(cfg, ctx.host, ctx.require_target(), required=tls_required)
    expose_ingress(ctx.host, cfg.k3k_namespace, cfg.k3k_cluster, ctx.hostname)
    if reconcile:
        deploy_ingress_reconcilers(ctx.host, cfg.k3k_namespace, cfg.k3k_cluster, ctx.hostname)


# ============================================================================
# Restore
# ============================================================================

def _health_check(ctx: RunContext) -> None:
    check_rancher_health(ctx.require_target())


def run_restore(cfg: RunConfig, host: TargetEnvironment | None = None, now: datetime | None = None) -> OperationRecord:
    """Restore Rancher from a backup, optionally deploying it first.

    With ``deploy_rancher`` (Mode B) the control plane is provisioned before
    the restore and, on a k3k topology, exposed through the host afterwards.
    Otherwise (Mode A) Rancher must already be running.

    Raises:
        ConfigurationError: Before any cluster contact, on invalid settings.
        RancherK3kError: If any stage fails.
    """
    cfg = resolve_record_names(cfg, now)
    validate_restore(cfg)
    manifest = render_restore_record(cfg)
    record = OperationRecord.for_restore(cfg, now)
    display_config(cfg, "Rancher Restore")
    if cfg.dry_run:
        print_dry_run(manifest, OperationKind.RESTORE)
        return record

    if cfg.deploy_rancher:
        stages = [
            Stage("Checking prerequisites", _check_prerequisites),
            Stage("Detecting target type", _detect_provision),
            *_provision_stages(),
        ]
    else:
        stages = [
            Stage("Checking prerequisites", _check_prerequisites),
            Stage("Detecting cluster type", _detect_attach),
            Stage("Connecting to Rancher cluster", _connect_attach),
            Stage("Verifying Rancher", _verify_rancher),
        ]
    stages += [
        Stage("Installing rancher-backup operator", _install_operator, _operator_wanted),
        Stage("Creating restore resources", lambda ctx: _submit_record(ctx, manifest)),
        Stage("Waiting for restore", _await_record),
    ]
    if cfg.deploy_rancher:
        stages.append(Stage(
            "Setting up k3k host ingress",
            lambda ctx: _expose(ctx, tls_required=False, reconcile=True),
            _nested,
        ))
    stages.append(Stage("Verifying Rancher health", _health_check))

    with RunContext(cfg, host) as ctx:
        ctx.record = record
        run_stages(ctx, stages)
    console.print(Panel.fit(f"Restore '{record.name}' complete", style="bold green"))
    return record


# ============================================================================
# Deploy
# ============================================================================

def run_deploy(cfg: RunConfig, host: TargetEnvironment | None = None) -> None:
    """Deploy Rancher into a fresh (or existing) k3k virtual cluster.

    Re-running skips the controller install and cluster creation when they
    already exist; Helm-managed workloads are re-applied only with
    ``--upgrade``.
    """
    cfg = cfg.model_copy(update={"target_type": Topology.NESTED_VIRTUAL.value})
    validate_deploy(cfg)
    display_config(cfg, "Rancher on k3k")

    stages = [
        Stage("Checking prerequisites", _check_prerequisites),
        Stage("Detecting target type", _detect_provision),
        *_provision_stages(),
        Stage("Exposing Rancher through the host", lambda ctx: _expose(ctx, tls_required=True, reconcile=True)),
    ]
    with RunContext(cfg, host) as ctx:
        run_stages(ctx, stages)
    console.print(Panel.fit(f"Rancher deployed: https://{cfg.hostname}", style="bold green"))


# ============================================================================
# restore-ingress
# ============================================================================

def _verify_nested_ready(ctx: RunContext) -> None:
    cfg = ctx.cfg
    obj = ctx.host.kubectl.get_json([K3K_RESOURCE, cfg.k3k_cluster, "-n", cfg.k3k_namespace])
    if obj is None:
        raise StageError("Verify k3k cluster", f"k3k cluster '{cfg.k3k_cluster}' not found in '{cfg.k3k_namespace}'")
    if not nested_cluster_ready(obj):
        phase = (obj.get("status") or {}).get("phase") or "unknown"
        raise StageError("Verify k3k cluster", f"k3k cluster is not Ready (current: {phase})")
    console.print("[green]\u2705 k3k cluster is Ready[/green]")


def _resolve_hostname(ctx: RunContext) -> None:
    ctx.target = ctx.connect(ctx.cfg.k3k_namespace, ctx.cfg.k3k_cluster)
    if ctx.hostname:
        return
    ctx.hostname = rancher_hostname(ctx.target)
    if not ctx.hostname:
        raise StageError("Detect hostname", "Could not detect the Rancher hostname; pass --hostname")
    console.print(f"[green]\u2705 Detected hostname: {ctx.hostname}[/green]")


def _repair_ingress(ctx: RunContext) -> None:
    cfg = ctx.cfg
    state = host_ingress_state(ctx.host, cfg.k3k_namespace, cfg.k3k_cluster)
    missing = [name for name, present in state.items() if not present]
    if not missing:
        console.print("[green]\u2705 Host ingress resources are all present[/green]")
        return
    console.print(f"[yellow]\u2139\ufe0f  Missing: {', '.join(missing)}[/yellow]")
    if not state["tls"]:
        propagate_tls(cfg, ctx.host, ctx.require_target(), required=False)
    if not (state["service"] and state["ingress"]):
        expose_ingress(ctx.host, cfg.k3k_namespace, cfg.k3k_cluster, ctx.hostname)


def run_restore_ingress(cfg: RunConfig, host: TargetEnvironment | None = None) -> None:
    """Recreate whichever host-side exposure objects are missing."""
    stages = [
        Stage("Checking prerequisites", lambda ctx: require_command("kubectl")),
        Stage("Verifying k3k cluster", _verify_nested_ready),
        Stage("Detecting Rancher hostname", _resolve_hostname),
        Stage("Restoring host ingress", _repair_ingress),
    ]
    with RunContext(cfg, host) as ctx:
        ctx.topology = Topology.NESTED_VIRTUAL
        run_stages(ctx, stages)
        hostname = ctx.hostname
    console.print(Panel.fit(f"Host ingress restored for https://{hostname}", style="bold green"))


# ============================================================================
# destroy
# ============================================================================

def run_destroy(cfg: RunConfig, host: TargetEnvironment | None = None) -> None:
    """Tear down the nested Rancher, its host exposure, and the k3k controller."""
    namespace, cluster = cfg.k3k_namespace, cfg.k3k_cluster
    stages = [
        Stage("Checking prerequisites", _check_prerequisites),
        Stage("Removing ingress automation", lambda ctx: remove_ingress_automation(ctx.host, namespace)),
        Stage("Removing host ingress", lambda ctx: remove_host_ingress(ctx.host, namespace, cluster)),
        Stage("Deleting k3k virtual cluster", lambda ctx: delete_nested_cluster(ctx.host, namespace, cluster)),
        Stage("Removing k3k controller", lambda ctx: uninstall_k3k_controller(ctx.host)),
        Stage("Cleaning up namespaces", lambda ctx: delete_namespaces(
            ctx.host, [namespace, dep_value("k3k", "namespace", default="k3k-system")]
        )),
    ]
    with RunContext(cfg, host) as ctx:
        run_stages(ctx, stages)
    console.print(Panel.fit("Rancher k3k resources removed", style="bold green"))
