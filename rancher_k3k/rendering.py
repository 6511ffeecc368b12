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

"""Template values derived from the run configuration, one function per manifest."""

from __future__ import annotations

import base64
from dataclasses import dataclass

import yaml

from rancher_k3k.config import RunConfig, secret_value
from rancher_k3k.constants import (
    DEFAULT_OPERATOR_NAMESPACE,
    HELM_OCI_AUTH_SECRET,
    HELM_REPO_AUTH_SECRET,
    HELM_REPO_CA_CONFIGMAP,
    INGRESS_MANIFEST_CONFIGMAP,
    INGRESS_RECONCILE_SCHEDULE,
    INGRESS_RECONCILER,
    INGRESS_WATCH_INTERVAL_SECONDS,
    INGRESS_WATCHER,
    MIRROR_REGISTRIES,
    REGISTRIES_YAML_MOUNT_PATH,
    REGISTRY_CA_MOUNT_PATH,
    REGISTRY_CA_SECRET,
    REGISTRY_CONFIG_SECRET,
    TLS_INGRESS_SECRET,
    dep_value,
    host_ingress_name,
    host_ingress_service,
)
from rancher_k3k.errors import ConfigurationError
from rancher_k3k.templates import Block, RenderedManifest, quote, render_manifest
from rancher_k3k.topology import ChartSourceKind, classify_chart_source, oci_registry_host


# ============================================================================
# Chart sources
# ============================================================================

@dataclass(frozen=True)
class ChartReference:
    """Where an in-cluster HelmChart pulls its chart from.

    A content-addressed (OCI) source goes whole into ``spec.chart`` with no
    ``spec.repo``; a URL-based source is a repository plus a chart name.
    """

    source: str
    name: str

    @property
    def kind(self) -> ChartSourceKind:
        return classify_chart_source(self.source)

    @property
    def chart(self) -> str:
        return self.source if self.kind is ChartSourceKind.CONTENT_ADDRESSED else self.name

    @property
    def repo(self) -> str | None:
        return None if self.kind is ChartSourceKind.CONTENT_ADDRESSED else self.source


def cert_manager_chart(cfg: RunConfig) -> ChartReference:
    return ChartReference(cfg.certmanager_repo, dep_value("cert_manager", "chart", default="cert-manager"))


def rancher_chart(cfg: RunConfig) -> ChartReference:
    return ChartReference(cfg.rancher_repo, dep_value("rancher", "chart", default="rancher"))


def k3k_chart(cfg: RunConfig) -> ChartReference:
    return ChartReference(cfg.k3k_repo, dep_value("k3k", "chart", default="k3k"))


def in_cluster_charts(cfg: RunConfig) -> list[ChartReference]:
    """Charts installed by the nested cluster's helm-controller."""
    return [cert_manager_chart(cfg), rancher_chart(cfg)]


def first_oci_host(charts: list[ChartReference]) -> str | None:
    for ref in charts:
        if ref.kind is ChartSourceKind.CONTENT_ADDRESSED:
            return oci_registry_host(ref.source)
    return None


def helmchart_conditions(ref: ChartReference, cfg: RunConfig) -> dict[str, bool]:
    """Region predicates for a HelmChart: repo line, auth flavour, CA bundle.

    The two auth references are mutually exclusive and chosen solely by the
    shape of the chart source.
    """
    oci = ref.kind is ChartSourceKind.CONTENT_ADDRESSED
    return {
        "chart_repository": not oci,
        "repo_auth": cfg.helm_auth_enabled and not oci,
        "registry_auth": cfg.helm_auth_enabled and oci,
        "repo_ca": cfg.private_ca_path is not None,
    }


def _helmchart_values(ref: ChartReference, version: str) -> dict:
    return {
        "CHART": quote(ref.chart),
        "REPO": quote(ref.repo or ""),
        "VERSION": quote(version),
        "HELM_REPO_AUTH_SECRET": HELM_REPO_AUTH_SECRET,
        "HELM_OCI_AUTH_SECRET": HELM_OCI_AUTH_SECRET,
        "HELM_REPO_CA_CONFIGMAP": HELM_REPO_CA_CONFIGMAP,
    }


def render_cert_manager_chart(cfg: RunConfig) -> RenderedManifest:
    ref = cert_manager_chart(cfg)
    return render_manifest(
        "cert-manager-helmchart.yaml",
        _helmchart_values(ref, cfg.certmanager_version),
        helmchart_conditions(ref, cfg),
    )


def extra_rancher_values(cfg: RunConfig) -> dict[str, str]:
    """Rancher values added for a private registry or a private CA.

    ``privateCA`` is only set when Rancher does not issue its own
    certificate; with ``tls_source=rancher`` it would replace Rancher's CA.
    """
    values = {}
    if cfg.private_registry:
        values["systemDefaultRegistry"] = f"{cfg.private_registry}/docker.io"
    if cfg.private_ca_path is not None and cfg.tls_source != "rancher":
        values["privateCA"] = "true"
    return values


def render_rancher_chart(cfg: RunConfig) -> RenderedManifest:
    ref = rancher_chart(cfg)
    values = _helmchart_values(ref, cfg.rancher_version)
    values.update(
        HOSTNAME=quote(cfg.hostname or ""),
        BOOTSTRAP_PW=quote(secret_value(cfg.bootstrap_pw)),
        RANCHER_REPLICAS=quote(cfg.rancher_replicas),
        TLS_SOURCE=quote(cfg.tls_source),
        EXTRA_RANCHER_VALUES=Block(
            "\n".join(f"{key}: {quote(value)}" for key, value in extra_rancher_values(cfg).items())
        ),
    )
    return render_manifest("rancher-helmchart.yaml", values, helmchart_conditions(ref, cfg))


def rancher_helm_values(cfg: RunConfig) -> dict:
    """Values for a host-side ``helm install`` of Rancher (standalone)."""
    values: dict = {
        "hostname": cfg.hostname,
        "bootstrapPassword": secret_value(cfg.bootstrap_pw),
        "replicas": cfg.rancher_replicas,
        "ingress": {"tls": {"source": cfg.tls_source}},
        "global": {"cattle": {"psp": {"enabled": False}}},
        "features": "fleet=false",
    }
    values.update(extra_rancher_values(cfg))
    return values


# ============================================================================
# Nested cluster
# ============================================================================

def registries_yaml(cfg: RunConfig) -> str:
    """K3s ``registries.yaml`` routing upstream registries through the private one.

    ``docker.io/rancher/k3s:v1.34`` is pulled as
    ``<registry>/docker.io/rancher/k3s:v1.34``.
    """
    if not cfg.private_registry:
        raise ConfigurationError("A private registry is required to build registries.yaml")
    host = cfg.private_registry
    doc: dict = {
        "mirrors": {
            upstream: {
                "endpoint": [f"https://{host}"],
                "rewrite": {"^(.*)$": f"{upstream}/$1"},
            }
            for upstream in MIRROR_REGISTRIES
        }
    }
    host_config: dict = {}
    if cfg.private_ca_path is not None:
        host_config["tls"] = {"ca_file": REGISTRY_CA_MOUNT_PATH}
    if cfg.helm_repo_user:
        host_config["auth"] = {"username": cfg.helm_repo_user, "password": secret_value(cfg.helm_repo_pass)}
    if host_config:
        doc["configs"] = {host: host_config}
    return yaml.safe_dump(doc, sort_keys=False)


def secret_mounts(cfg: RunConfig) -> Block:
    """``secretMounts`` entries exposing registry config (and CA) to k3s."""
    mounts = [{
        "secretName": REGISTRY_CONFIG_SECRET,
        "mountPath": REGISTRIES_YAML_MOUNT_PATH,
        "subPath": "registries.yaml",
        "role": "all",
    }]
    if cfg.private_ca_path is not None:
        mounts.append({
            "secretName": REGISTRY_CA_SECRET,
            "mountPath": REGISTRY_CA_MOUNT_PATH,
            "subPath": "ca.crt",
            "role": "all",
        })
    return Block(yaml.safe_dump({"secretMounts": mounts}, sort_keys=False))


def render_nested_cluster(cfg: RunConfig, *, with_registry: bool = True) -> RenderedManifest:
    """The k3k Cluster CR; *with_registry* False drops registry wiring."""
    private_registry = with_registry and bool(cfg.private_registry)
    values: dict = {
        "CLUSTER_NAME": cfg.k3k_cluster,
        "NAMESPACE": cfg.k3k_namespace,
        "SERVER_COUNT": str(cfg.k3k_servers),
        "STORAGE_CLASS": cfg.k3k_storage_class,
        "PVC_SIZE": cfg.k3k_pvc_size,
    }
    if private_registry:
        values["SECRET_MOUNTS"] = secret_mounts(cfg)
        values["SYSTEM_DEFAULT_REGISTRY_ARG"] = quote(f"--system-default-registry={cfg.private_registry}/docker.io")
    return render_manifest("k3k-cluster.yaml", values, {"private_registry": private_registry})


# ============================================================================
# Host ingress
# ============================================================================

def _host_ingress_values(namespace: str, cluster: str, hostname: str) -> dict:
    return {
        "NAMESPACE": namespace,
        "CLUSTER_NAME": cluster,
        "SERVICE_NAME": host_ingress_service(cluster),
        "INGRESS_NAME": host_ingress_name(cluster),
        "TLS_SECRET": TLS_INGRESS_SECRET,
        "HOSTNAME": hostname,
    }


def render_host_ingress(namespace: str, cluster: str, hostname: str) -> RenderedManifest:
    return render_manifest("host-ingress.yaml", _host_ingress_values(namespace, cluster, hostname))


def _reconciler_values(namespace: str, cluster: str, hostname: str) -> dict:
    values = _host_ingress_values(namespace, cluster, hostname)
    values.update(
        RECONCILER_NAME=INGRESS_RECONCILER,
        WATCHER_NAME=INGRESS_WATCHER,
        MANIFEST_CONFIGMAP=INGRESS_MANIFEST_CONFIGMAP,
        KUBECTL_IMAGE=dep_value("images", "kubectl", default="rancher/kubectl:v1.34.1"),
        SCHEDULE=quote(INGRESS_RECONCILE_SCHEDULE),
        INTERVAL=str(INGRESS_WATCH_INTERVAL_SECONDS),
    )
    return values


def render_ingress_reconciler(namespace: str, cluster: str, hostname: str) -> RenderedManifest:
    """RBAC, the stored host ingress manifest, and the CronJob re-applying it."""
    values = _reconciler_values(namespace, cluster, hostname)
    values["HOST_INGRESS_MANIFEST"] = Block(render_host_ingress(namespace, cluster, hostname).text)
    return render_manifest("ingress-reconciler.yaml", values)


def render_ingress_watcher(namespace: str, cluster: str, hostname: str) -> RenderedManifest:
    return render_manifest("ingress-watcher.yaml", _reconciler_values(namespace, cluster, hostname))


# ============================================================================
# Backup operator
# ============================================================================

def storage_location(cfg: RunConfig) -> Block:
    """``storageLocation`` block for a record, empty for operator-default storage.

    Raises:
        ConfigurationError: If the endpoint CA file cannot be read.
    """
    if not cfg.uses_s3:
        return Block("")
    s3: dict = {
        "credentialSecretName": cfg.s3_cred_secret,
        "credentialSecretNamespace": cfg.namespace or DEFAULT_OPERATOR_NAMESPACE,
        "bucketName": cfg.s3_bucket,
    }
    if cfg.s3_endpoint:
        s3["endpoint"] = cfg.s3_endpoint
    if cfg.s3_region:
        s3["region"] = cfg.s3_region
    if cfg.s3_folder:
        s3["folder"] = cfg.s3_folder
    if cfg.s3_insecure_tls:
        s3["insecureTLSSkipVerify"] = True
    if cfg.s3_endpoint_ca is not None:
        try:
            s3["endpointCA"] = base64.b64encode(cfg.s3_endpoint_ca.read_bytes()).decode()
        except OSError as err:
            raise ConfigurationError(f"Cannot read S3 endpoint CA {cfg.s3_endpoint_ca}: {err}") from err
    return Block(yaml.safe_dump({"storageLocation": {"s3": s3}}, sort_keys=False))


def _encryption_values(cfg: RunConfig) -> tuple[dict, dict]:
    if cfg.encrypt and not cfg.encryption_secret:
        raise ConfigurationError("Encryption was requested but no encryption Secret is referenced")
    return {"ENCRYPTION_SECRET": cfg.encryption_secret}, {"encrypt": cfg.encrypt}


def render_backup_record(cfg: RunConfig) -> RenderedManifest:
    values, conditions = _encryption_values(cfg)
    values.update(
        BACKUP_NAME=cfg.backup_name or "",
        RESOURCE_SET=cfg.resource_set,
        STORAGE_LOCATION=storage_location(cfg),
        SCHEDULE=quote(cfg.backup_schedule or ""),
        RETENTION=str(cfg.backup_retention or ""),
    )
    conditions.update(schedule=bool(cfg.backup_schedule), retention=cfg.backup_retention is not None)
    return render_manifest("backup-cr.yaml", values, conditions)


def render_restore_record(cfg: RunConfig) -> RenderedManifest:
    """Restore record manifest.

    Raises:
        ConfigurationError: If no backup file is given, or encryption is
            requested without an encryption Secret to reference.
    """
    if not cfg.backup_file:
        raise ConfigurationError("--backup-file is required")
    values, conditions = _encryption_values(cfg)
    values.update(
        RESTORE_NAME=cfg.restore_name or "",
        BACKUP_FILE=quote(cfg.backup_file),
        STORAGE_LOCATION=storage_location(cfg),
    )
    conditions["prune"] = cfg.restore_prune
    return render_manifest("restore-cr.yaml", values, conditions)


def render_s3_credentials(cfg: RunConfig) -> RenderedManifest:
    return render_manifest("s3-credentials.yaml", {
        "SECRET_NAME": cfg.s3_cred_secret,
        "NAMESPACE": cfg.namespace,
        "S3_ACCESS_KEY": quote(cfg.s3_access_key or ""),
        "S3_SECRET_KEY": quote(secret_value(cfg.s3_secret_key)),
    })


def render_encryption_secret(cfg: RunConfig) -> RenderedManifest:
    return render_manifest("encryption-config.yaml", {
        "SECRET_NAME": cfg.encryption_secret,
        "NAMESPACE": cfg.namespace,
        "ENCRYPTION_KEY": quote(secret_value(cfg.encryption_key)),
    })
