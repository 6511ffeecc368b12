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

"""k3k controller, nested cluster, cert-manager, Rancher, backup operator, and host ingress."""

from __future__ import annotations

import base64
import binascii

from rich.panel import Panel

from rancher_k3k import console
from rancher_k3k.applier import ApplyMode, ApplyResult, ResourceRef, apply_manifest, manifest_from_documents
from rancher_k3k.config import RunConfig, secret_value
from rancher_k3k.constants import (
    BACKUP_OPERATOR_TIMEOUT_SECONDS,
    CA_CHECKSUM_ANNOTATION,
    CERT_MANAGER_DEPLOYMENTS,
    CERT_MANAGER_TIMEOUT_SECONDS,
    CLUSTER_DELETE_TIMEOUT_SECONDS,
    CLUSTER_POLL_INTERVAL_SECONDS,
    DELETE_POLL_INTERVAL_SECONDS,
    DEPLOYMENT_POLL_INTERVAL_SECONDS,
    HELM_OCI_AUTH_SECRET,
    HELM_REPO_AUTH_SECRET,
    HELM_REPO_CA_CONFIGMAP,
    INGRESS_MANIFEST_CONFIGMAP,
    INGRESS_RECONCILER,
    INGRESS_WATCHER,
    K3K_CLUSTER_TIMEOUT_SECONDS,
    K3K_CONTROLLER_TIMEOUT_SECONDS,
    K3K_RESOURCE,
    NS_CATTLE_SYSTEM,
    NS_CERT_MANAGER,
    NS_KUBE_SYSTEM,
    RANCHER_DEPLOYMENT,
    RANCHER_HEALTH_TIMEOUT_SECONDS,
    RANCHER_TIMEOUT_SECONDS,
    REGISTRY_CA_SECRET,
    REGISTRY_CONFIG_SECRET,
    TLS_CA_SECRET,
    TLS_INGRESS_SECRET,
    TLS_SECRET_TIMEOUT_SECONDS,
    dep_value,
    host_ingress_name,
    host_ingress_service,
)
from rancher_k3k.errors import ConfigurationError, StageError, StageTimeoutError
from rancher_k3k.kube import Helm, TargetEnvironment
from rancher_k3k.poller import (
    Success,
    TimedOut,
    await_condition,
    deployment_available,
    deployment_ready,
    exists,
    nested_cluster_failure,
    nested_cluster_ready,
    raise_for_outcome,
    ready_replicas,
    wait_for_resource,
)
from rancher_k3k.rendering import (
    ChartReference,
    cert_manager_chart,
    first_oci_host,
    in_cluster_charts,
    k3k_chart,
    rancher_chart,
    rancher_helm_values,
    registries_yaml,
    render_cert_manager_chart,
    render_encryption_secret,
    render_host_ingress,
    render_ingress_reconciler,
    render_ingress_watcher,
    render_nested_cluster,
    render_rancher_chart,
    render_s3_credentials,
)
from rancher_k3k.resources import (
    basic_auth_secret_manifest,
    ca_checksum,
    configmap_manifest,
    docker_registry_secret_manifest,
    namespace_manifest,
    secret_manifest,
    tls_secret_manifest,
)
from rancher_k3k.topology import ChartSourceKind, oci_registry_host


def _wait_deployment(env: TargetEnvironment, name: str, namespace: str, timeout: float) -> None:
    """Wait for a deployment to exist and report an available replica.

    Raises:
        StageTimeoutError: If it is not available within *timeout*.
    """
    console.print(f"[yellow]\u2139\ufe0f  Waiting for deployment {namespace}/{name}...[/yellow]")
    outcome = wait_for_resource(
        env.kubectl,
        ResourceRef("deployment", name, namespace),
        deployment_available,
        None,
        timeout,
        DEPLOYMENT_POLL_INTERVAL_SECONDS,
    )
    raise_for_outcome(outcome, f"deployment {namespace}/{name}")
    console.print(f"[green]\u2705 {name} is available[/green]")


def _ensure_namespace(env: TargetEnvironment, name: str) -> None:
    apply_manifest(env.kubectl, manifest_from_documents(f"namespace {name}", [namespace_manifest(name)]),
                   ApplyMode.SKIP_IF_PRESENT)


def _read_ca(cfg: RunConfig) -> bytes:
    try:
        return cfg.private_ca_path.read_bytes()
    except OSError as err:
        raise ConfigurationError(f"Cannot read CA certificate {cfg.private_ca_path}: {err}") from err


def _install_chart(
    cfg: RunConfig,
    helm: Helm,
    ref: ChartReference,
    *,
    alias: str,
    release: str,
    namespace: str,
    version: str | None,
    values: dict | None = None,
    upgrade: bool = False,
) -> None:
    """Host-side helm install of a chart from an HTTP repo or an OCI URI."""
    if ref.kind is ChartSourceKind.CONTENT_ADDRESSED:
        chart = ref.source
    else:
        helm.repo_add(alias, ref.source, cfg.helm_repo_user, secret_value(cfg.helm_repo_pass) or None,
                      cfg.private_ca_path)
        chart = f"{alias}/{ref.name}"
    helm.install(
        release, chart, namespace,
        version=version,
        values=values,
        create_namespace=True,
        ca_file=cfg.private_ca_path,
        upgrade=upgrade,
    )


# ============================================================================
# Host: OCI login, k3k controller, registry config, nested cluster
# ============================================================================

def login_oci_registries(cfg: RunConfig, helm: Helm, sources: list[str]) -> list[str]:
    """Log host helm in to each distinct OCI registry among *sources*.

    Returns:
        The registry hosts logged in to, in first-seen order.
    """
    if not (cfg.helm_repo_user and secret_value(cfg.helm_repo_pass)):
        return []
    hosts: list[str] = []
    for source in sources:
        if not source.startswith("oci://"):
            continue
        host = oci_registry_host(source)
        if host in hosts:
            continue
        console.print(f"[yellow]\u2139\ufe0f  Logging in to OCI registry: {host}[/yellow]")
        helm.registry_login(host, cfg.helm_repo_user, secret_value(cfg.helm_repo_pass), cfg.private_ca_path)
        hosts.append(host)
    return hosts


def install_k3k_controller(cfg: RunConfig, host: TargetEnvironment) -> bool:
    """Install the k3k controller, or upgrade it with ``--upgrade``.

    Returns:
        True if helm ran, False if an existing release was left alone.
    """
    console.print(Panel.fit("Installing k3k controller", style="bold blue"))
    release = dep_value("k3k", "release", default="k3k")
    namespace = dep_value("k3k", "namespace", default="k3k-system")
    installed = host.helm.status(release, namespace)
    changed = False
    if installed and not cfg.upgrade:
        console.print("[yellow]\u2139\ufe0f  k3k controller already installed, skipping[/yellow]")
    else:
        if installed:
            console.print(f"[yellow]\u2139\ufe0f  Upgrading k3k controller to {cfg.k3k_version}[/yellow]")
        _install_chart(
            cfg, host.helm, k3k_chart(cfg),
            alias="k3k", release=release, namespace=namespace,
            version=cfg.k3k_version, upgrade=installed,
        )
        changed = True
    _wait_deployment(host, dep_value("k3k", "deployment", default="k3k"), namespace, K3K_CONTROLLER_TIMEOUT_SECONDS)
    return changed


def stage_registry_config(cfg: RunConfig, host: TargetEnvironment) -> None:
    """Store registries.yaml (and the registry CA) for the nested cluster's k3s."""
    console.print("[yellow]\u2139\ufe0f  Creating K3s registry config for k3k cluster...[/yellow]")
    _ensure_namespace(host, cfg.k3k_namespace)
    docs = [secret_manifest(REGISTRY_CONFIG_SECRET, cfg.k3k_namespace, {"registries.yaml": registries_yaml(cfg)})]
    if cfg.private_ca_path is not None:
        docs.append(secret_manifest(REGISTRY_CA_SECRET, cfg.k3k_namespace, {"ca.crt": _read_ca(cfg)}))
    apply_manifest(host.kubectl, manifest_from_documents("registry config", docs))
    console.print(f"[green]\u2705 Registry config Secrets created in {cfg.k3k_namespace}[/green]")


def create_nested_cluster(cfg: RunConfig, host: TargetEnvironment, *, with_registry: bool = True) -> bool:
    """Create the k3k Cluster unless it exists, then wait for ``Ready``.

    Returns:
        True if the cluster was created by this call.

    Raises:
        StageError: If the cluster reports a failed phase.
        StageTimeoutError: If it is not ready in time.
    """
    console.print(Panel.fit("Creating k3k virtual cluster", style="bold blue"))
    manifest = render_nested_cluster(cfg, with_registry=with_registry)
    created = False
    if host.kubectl.exists(K3K_RESOURCE, cfg.k3k_cluster, cfg.k3k_namespace):
        console.print("[yellow]\u2139\ufe0f  k3k cluster already exists, skipping[/yellow]")
    else:
        console.print(f"[yellow]\u2139\ufe0f  PVC size: {cfg.k3k_pvc_size}, storage class: {cfg.k3k_storage_class}[/yellow]")
        _ensure_namespace(host, cfg.k3k_namespace)
        created = apply_manifest(host.kubectl, manifest, ApplyMode.SKIP_IF_PRESENT) is not ApplyResult.SKIPPED

    console.print("[yellow]\u2139\ufe0f  Waiting for k3k cluster to be ready...[/yellow]")
    outcome = wait_for_resource(
        host.kubectl,
        ResourceRef(K3K_RESOURCE, cfg.k3k_cluster, cfg.k3k_namespace),
        nested_cluster_ready,
        nested_cluster_failure,
        K3K_CLUSTER_TIMEOUT_SECONDS,
        CLUSTER_POLL_INTERVAL_SECONDS,
    )
    raise_for_outcome(outcome, f"k3k cluster {cfg.k3k_namespace}/{cfg.k3k_cluster}")
    console.print("[green]\u2705 k3k cluster is Ready[/green]")
    return created


# ============================================================================
# Nested: CA, Helm auth, cert-manager, Rancher
# ============================================================================

def stage_nested_prerequisites(cfg: RunConfig, nested: TargetEnvironment) -> None:
    """Private CA and Helm repository credentials inside the nested cluster."""
    docs: list[dict] = []
    if cfg.private_ca_path is not None and cfg.tls_source != "rancher":
        ca = _read_ca(cfg)
        _ensure_namespace(nested, NS_CATTLE_SYSTEM)
        docs.append(secret_manifest(
            TLS_CA_SECRET, NS_CATTLE_SYSTEM, {"cacerts.pem": ca},
            annotations={CA_CHECKSUM_ANNOTATION: ca_checksum(ca, cfg.ca_checksum_strategy)},
        ))
    if cfg.helm_auth_enabled:
        charts = in_cluster_charts(cfg)
        password = secret_value(cfg.helm_repo_pass)
        if any(ref.kind is ChartSourceKind.URL_BASED for ref in charts):
            docs.append(basic_auth_secret_manifest(HELM_REPO_AUTH_SECRET, NS_KUBE_SYSTEM, cfg.helm_repo_user, password))
        oci_host = first_oci_host(charts)
        if oci_host:
            docs.append(docker_registry_secret_manifest(
                HELM_OCI_AUTH_SECRET, NS_KUBE_SYSTEM, oci_host, cfg.helm_repo_user, password,
            ))
    if cfg.private_ca_path is not None:
        docs.append(configmap_manifest(
            HELM_REPO_CA_CONFIGMAP, NS_KUBE_SYSTEM, {"ca-bundle.crt": _read_ca(cfg).decode()},
        ))
    if not docs:
        return
    apply_manifest(nested.kubectl, manifest_from_documents("nested prerequisites", docs))
    console.print("[green]\u2705 Private CA and Helm credentials staged in k3k cluster[/green]")


def deploy_cert_manager(cfg: RunConfig, env: TargetEnvironment) -> None:
    """cert-manager through a HelmChart (nested) or host helm (standalone)."""
    console.print(Panel.fit(f"Deploying cert-manager ({cfg.certmanager_version})", style="bold blue"))
    if env.is_nested:
        mode = ApplyMode.REPLACE if cfg.upgrade else ApplyMode.SKIP_IF_PRESENT
        apply_manifest(env.kubectl, render_cert_manager_chart(cfg), mode)
    else:
        release = dep_value("cert_manager", "release", default="cert-manager")
        if env.helm.status(release, NS_CERT_MANAGER):
            console.print("[yellow]\u2139\ufe0f  cert-manager already installed, skipping[/yellow]")
        else:
            _install_chart(
                cfg, env.helm, cert_manager_chart(cfg),
                alias=dep_value("cert_manager", "helm_repo_alias", default="jetstack"),
                release=release, namespace=NS_CERT_MANAGER,
                version=cfg.certmanager_version, values={"crds": {"enabled": True}},
            )
    for name in CERT_MANAGER_DEPLOYMENTS:
        _wait_deployment(env, name, NS_CERT_MANAGER, CERT_MANAGER_TIMEOUT_SECONDS)


def deploy_rancher(cfg: RunConfig, env: TargetEnvironment) -> None:
    """Rancher through a HelmChart (nested) or host helm (standalone)."""
    console.print(Panel.fit(f"Deploying Rancher ({cfg.rancher_version})", style="bold blue"))
    if env.is_nested:
        mode = ApplyMode.REPLACE if cfg.upgrade else ApplyMode.SKIP_IF_PRESENT
        apply_manifest(env.kubectl, render_rancher_chart(cfg), mode)
    else:
        release = dep_value("rancher", "release", default="rancher")
        if env.helm.status(release, NS_CATTLE_SYSTEM):
            console.print("[yellow]\u2139\ufe0f  Rancher already installed, skipping[/yellow]")
        else:
            _install_chart(
                cfg, env.helm, rancher_chart(cfg),
                alias=dep_value("rancher", "helm_repo_alias", default="rancher-latest"),
                release=release, namespace=NS_CATTLE_SYSTEM,
                version=cfg.rancher_version, values=rancher_helm_values(cfg),
            )
    _wait_deployment(env, RANCHER_DEPLOYMENT, NS_CATTLE_SYSTEM, RANCHER_TIMEOUT_SECONDS)
    console.print("[green]\u2705 Rancher is running[/green]")


def verify_rancher_running(env: TargetEnvironment) -> int:
    """Check that Rancher has at least one ready replica.

    Returns:
        The number of ready replicas.

    Raises:
        StageError: If the deployment is missing or has no ready pods.
    """
    deployment = env.kubectl.get_json(["deployment", RANCHER_DEPLOYMENT, "-n", NS_CATTLE_SYSTEM])
    if deployment is None:
        raise StageError("Verify Rancher", f"Rancher deployment not found in {NS_CATTLE_SYSTEM}")
    ready = ready_replicas(deployment)
    if ready < 1:
        raise StageError("Verify Rancher", "No Rancher pods are ready")
    console.print(f"[green]\u2705 Rancher is running ({ready} ready replicas)[/green]")
    return ready


def check_rancher_health(env: TargetEnvironment, timeout: float = RANCHER_HEALTH_TIMEOUT_SECONDS) -> bool:
    """Wait for Rancher to come back after a restore; a timeout only warns."""
    console.print("[yellow]\u2139\ufe0f  Verifying Rancher health after restore...[/yellow]")
    outcome = wait_for_resource(
        env.kubectl,
        ResourceRef("deployment", RANCHER_DEPLOYMENT, NS_CATTLE_SYSTEM),
        deployment_ready,
        None,
        timeout,
        DEPLOYMENT_POLL_INTERVAL_SECONDS,
    )
    if isinstance(outcome, Success):
        console.print(f"[green]\u2705 Rancher is healthy ({ready_replicas(outcome.status)} ready replicas)[/green]")
        return True
    console.print(f"[yellow]\u26a0\ufe0f  Rancher not ready after {timeout:g}s; may need manual intervention[/yellow]")
    return False


def rancher_image_tag(env: TargetEnvironment) -> str:
    deployment = env.kubectl.get_json(["deployment", RANCHER_DEPLOYMENT, "-n", NS_CATTLE_SYSTEM])
    containers = (((deployment or {}).get("spec") or {}).get("template") or {}).get("spec", {}).get("containers") or []
    if not containers or ":" not in containers[0].get("image", ""):
        return "unknown"
    return containers[0]["image"].rsplit(":", 1)[1]


def rancher_hostname(env: TargetEnvironment) -> str | None:
    """Host of the first ingress rule in ``cattle-system``."""
    ingresses = env.kubectl.get_json(["ingress", "-n", NS_CATTLE_SYSTEM])
    for item in (ingresses or {}).get("items") or []:
        for rule in (item.get("spec") or {}).get("rules") or []:
            if rule.get("host"):
                return rule["host"]
    return None


# ============================================================================
# Backup operator
# ============================================================================

def install_backup_operator(cfg: RunConfig, env: TargetEnvironment) -> bool:
    """Install the rancher-backup CRD and operator charts on the target.

    Helm is bound to the target environment, so for a nested target the
    charts land in the nested cluster.

    Returns:
        True if anything was installed.
    """
    console.print(Panel.fit("Installing rancher-backup operator", style="bold blue"))
    deployment = dep_value("backup_operator", "deployment", default="rancher-backup")
    if env.kubectl.exists("deployment", deployment, cfg.namespace):
        console.print(f"[green]\u2705 rancher-backup operator already installed in {cfg.namespace}[/green]")
        return False

    alias = dep_value("backup_operator", "helm_repo_alias", default="rancher-charts")
    env.helm.repo_add(alias, dep_value("backup_operator", "repo"))
    for chart in (dep_value("backup_operator", "crd_chart"), dep_value("backup_operator", "chart")):
        if env.helm.status(chart, cfg.namespace):
            continue
        env.helm.install(chart, f"{alias}/{chart}", cfg.namespace,
                         version=cfg.operator_version, create_namespace=True)
    _wait_deployment(env, deployment, cfg.namespace, BACKUP_OPERATOR_TIMEOUT_SECONDS)
    return True


def stage_backup_secrets(cfg: RunConfig, env: TargetEnvironment) -> None:
    """S3 credentials and the encryption config, re-applied every run."""
    if cfg.uses_s3 and cfg.s3_access_key:
        apply_manifest(env.kubectl, render_s3_credentials(cfg))
        console.print(f"[green]\u2705 S3 credentials Secret '{cfg.s3_cred_secret}' created in {cfg.namespace}[/green]")
    if cfg.encrypt:
        apply_manifest(env.kubectl, render_encryption_secret(cfg))
        console.print(f"[green]\u2705 Encryption Secret '{cfg.encryption_secret}' created in {cfg.namespace}[/green]")


# ============================================================================
# Host ingress: TLS, exposure, drift reconciliation
# ============================================================================

def propagate_tls(
    cfg: RunConfig,
    host: TargetEnvironment,
    nested: TargetEnvironment,
    *,
    required: bool = True,
) -> ApplyResult | None:
    """Copy Rancher's ingress certificate from the nested cluster to the host.

    The host copy carries a checksum annotation; an unchanged certificate
    is not re-applied.

    Args:
        cfg: Run configuration (checksum strategy).
        host: Host environment receiving the Secret.
        nested: Nested environment holding Rancher's certificate.
        required: Raise when the certificate never appears; otherwise warn.

    Returns:
        The apply result, or None if the certificate was not available.

    Raises:
        StageTimeoutError: If *required* and the Secret does not appear.
    """
    console.print(Panel.fit("Copying Rancher TLS certificate to host cluster", style="bold blue"))
    outcome = wait_for_resource(
        nested.kubectl,
        ResourceRef("secret", TLS_INGRESS_SECRET, NS_CATTLE_SYSTEM),
        exists,
        None,
        TLS_SECRET_TIMEOUT_SECONDS,
        DEPLOYMENT_POLL_INTERVAL_SECONDS,
    )
    if isinstance(outcome, TimedOut):
        if required:
            raise StageTimeoutError(f"secret {NS_CATTLE_SYSTEM}/{TLS_INGRESS_SECRET}", outcome.timeout)
        console.print(f"[yellow]\u26a0\ufe0f  TLS secret not found after {outcome.timeout:g}s, skipping cert copy[/yellow]")
        return None

    data = outcome.status.get("data") or {}
    if not data.get("tls.crt") or not data.get("tls.key"):
        raise StageError("TLS propagation", f"{TLS_INGRESS_SECRET} has no tls.crt/tls.key")
    try:
        checksum = ca_checksum(base64.b64decode(data["tls.crt"]), cfg.ca_checksum_strategy)
    except binascii.Error as err:
        raise StageError("TLS propagation", f"{TLS_INGRESS_SECRET} holds malformed certificate data") from err

    current = host.kubectl.get_json(["secret", TLS_INGRESS_SECRET, "-n", nested.namespace])
    annotations = (((current or {}).get("metadata") or {}).get("annotations") or {})
    if annotations.get(CA_CHECKSUM_ANNOTATION) == checksum:
        console.print("[yellow]\u2139\ufe0f  Host TLS secret is up to date[/yellow]")
        return ApplyResult.SKIPPED

    doc = tls_secret_manifest(
        TLS_INGRESS_SECRET, nested.namespace, data["tls.crt"], data["tls.key"],
        annotations={CA_CHECKSUM_ANNOTATION: checksum},
    )
    result = apply_manifest(host.kubectl, manifest_from_documents("host TLS secret", [doc]))
    console.print("[green]\u2705 TLS certificate copied to host cluster[/green]")
    return result


def expose_ingress(host: TargetEnvironment, namespace: str, cluster: str, hostname: str) -> None:
    """Host Service and Ingress routing *hostname* to the nested Rancher."""
    console.print(Panel.fit("Creating host cluster ingress", style="bold blue"))
    apply_manifest(host.kubectl, render_host_ingress(namespace, cluster, hostname))
    console.print(f"[green]\u2705 Host ingress created for {hostname}[/green]")


def deploy_ingress_reconcilers(host: TargetEnvironment, namespace: str, cluster: str, hostname: str) -> None:
    """CronJob and watcher that re-create the host ingress when it goes missing."""
    console.print(Panel.fit("Deploying ingress reconciler and watcher", style="bold blue"))
    apply_manifest(host.kubectl, render_ingress_reconciler(namespace, cluster, hostname))
    apply_manifest(host.kubectl, render_ingress_watcher(namespace, cluster, hostname))
    console.print("[green]\u2705 Ingress watcher deployed (reacts within 30s)[/green]")
    console.print("[green]\u2705 Ingress reconciler deployed (checks every 5 minutes)[/green]")


def host_ingress_state(host: TargetEnvironment, namespace: str, cluster: str) -> dict[str, bool]:
    """Which host-side exposure objects exist."""
    return {
        "service": host.kubectl.exists("service", host_ingress_service(cluster), namespace),
        "tls": host.kubectl.exists("secret", TLS_INGRESS_SECRET, namespace),
        "ingress": host.kubectl.exists("ingress", host_ingress_name(cluster), namespace),
    }


# ============================================================================
# Teardown
# ============================================================================

def _report_delete(deleted: bool, what: str) -> None:
    if deleted:
        console.print(f"[green]  \u2713 {what} deleted[/green]")
    else:
        console.print(f"[yellow]  {what} not found[/yellow]")


def remove_ingress_automation(host: TargetEnvironment, namespace: str) -> None:
    console.print("[yellow]\u2139\ufe0f  Removing ingress watcher and reconciler...[/yellow]")
    for kind, name, label in (
        ("deployment", INGRESS_WATCHER, "Watcher Deployment"),
        ("cronjob", INGRESS_RECONCILER, "CronJob"),
        ("configmap", INGRESS_MANIFEST_CONFIGMAP, "Manifest ConfigMap"),
        ("rolebinding", INGRESS_RECONCILER, "RoleBinding"),
        ("role", INGRESS_RECONCILER, "Role"),
        ("serviceaccount", INGRESS_RECONCILER, "ServiceAccount"),
    ):
        _report_delete(host.kubectl.delete(kind, name, namespace), label)


def remove_host_ingress(host: TargetEnvironment, namespace: str, cluster: str) -> None:
    console.print("[yellow]\u2139\ufe0f  Removing host cluster ingress resources...[/yellow]")
    _report_delete(host.kubectl.delete("ingress", host_ingress_name(cluster), namespace), "Ingress")
    _report_delete(host.kubectl.delete("service", host_ingress_service(cluster), namespace), "Service")
    _report_delete(host.kubectl.delete("secret", TLS_INGRESS_SECRET, namespace), "TLS secret")


def delete_nested_cluster(host: TargetEnvironment, namespace: str, cluster: str) -> bool:
    """Delete the k3k Cluster and wait until it is gone.

    Raises:
        StageTimeoutError: If the cluster still exists after the deadline.
    """
    console.print("[yellow]\u2139\ufe0f  Deleting k3k virtual cluster...[/yellow]")
    if not host.kubectl.exists(K3K_RESOURCE, cluster, namespace):
        _report_delete(False, "Virtual cluster")
        return False
    host.kubectl.delete(K3K_RESOURCE, cluster, namespace)
    outcome = await_condition(
        lambda: None if host.kubectl.exists(K3K_RESOURCE, cluster, namespace) else {},
        lambda _: True,
        None,
        CLUSTER_DELETE_TIMEOUT_SECONDS,
        DELETE_POLL_INTERVAL_SECONDS,
    )
    raise_for_outcome(outcome, f"deletion of k3k cluster {namespace}/{cluster}")
    _report_delete(True, "Virtual cluster")
    return True


def uninstall_k3k_controller(host: TargetEnvironment) -> bool:
    console.print("[yellow]\u2139\ufe0f  Removing k3k controller...[/yellow]")
    release = dep_value("k3k", "release", default="k3k")
    namespace = dep_value("k3k", "namespace", default="k3k-system")
    if not host.helm.status(release, namespace):
        _report_delete(False, "k3k controller")
        return False
    host.helm.uninstall(release, namespace)
    _report_delete(True, "Helm release")
    return True


def delete_namespaces(host: TargetEnvironment, namespaces: list[str]) -> None:
    console.print("[yellow]\u2139\ufe0f  Cleaning up namespaces...[/yellow]")
    for namespace in namespaces:
        _report_delete(host.kubectl.delete("namespace", namespace), namespace)
