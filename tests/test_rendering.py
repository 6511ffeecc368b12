"""Tests for manifests rendered from the run configuration."""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from rancher_k3k.config import RunConfig
from rancher_k3k.errors import ConfigurationError
from rancher_k3k.rendering import (
    extra_rancher_values,
    rancher_helm_values,
    registries_yaml,
    render_backup_record,
    render_cert_manager_chart,
    render_ingress_reconciler,
    render_nested_cluster,
    render_rancher_chart,
    render_restore_record,
    storage_location,
)


def _config(**overrides) -> RunConfig:
    base = {"hostname": "rancher.example.com", "bootstrap_pw": "admin-password-123"}
    base.update(overrides)
    return RunConfig(**base)


def _spec(manifest) -> dict:
    return manifest.documents()[0]["spec"]


def test_oci_source_uses_registry_credentials_only() -> None:
    """An oci:// chart gets a dockerRegistrySecret and no authSecret or repo."""
    cfg = _config(
        rancher_repo="oci://registry.example.com/charts/rancher",
        helm_repo_user="robot",
        helm_repo_pass="s3cret",
    )

    manifest = render_rancher_chart(cfg)
    spec = _spec(manifest)

    assert spec["chart"] == "oci://registry.example.com/charts/rancher"
    assert spec["dockerRegistrySecret"] == {"name": "helm-oci-auth"}
    assert "authSecret" not in spec
    assert "repo" not in spec


def test_http_source_uses_basic_auth_only() -> None:
    """A repository URL gets an authSecret and no dockerRegistrySecret."""
    cfg = _config(
        rancher_repo="https://charts.example.com/rancher",
        helm_repo_user="robot",
        helm_repo_pass="s3cret",
    )

    spec = _spec(render_rancher_chart(cfg))

    assert spec["chart"] == "rancher"
    assert spec["repo"] == "https://charts.example.com/rancher"
    assert spec["authSecret"] == {"name": "helm-repo-auth"}
    assert "dockerRegistrySecret" not in spec


def test_no_credentials_means_no_auth_reference() -> None:
    """Without a Helm username neither auth reference is rendered."""
    spec = _spec(render_cert_manager_chart(_config(certmanager_repo="oci://reg.example.com/cm")))

    assert "authSecret" not in spec
    assert "dockerRegistrySecret" not in spec
    assert "repoCAConfigMap" not in spec


def test_private_ca_adds_repo_ca_configmap(tmp_path: Path) -> None:
    """A private CA is referenced by every in-cluster HelmChart."""
    ca = tmp_path / "ca.pem"
    ca.write_text("-----BEGIN CERTIFICATE-----\n")

    spec = _spec(render_cert_manager_chart(_config(private_ca_path=ca)))

    assert spec["repoCAConfigMap"] == {"name": "helm-repo-ca"}


def test_rancher_values_are_quoted_strings() -> None:
    """Values that look like numbers or booleans stay strings for helm --set."""
    cfg = _config(bootstrap_pw="12345678901234", rancher_replicas=3)

    values = _spec(render_rancher_chart(cfg))["set"]

    assert values["bootstrapPassword"] == "12345678901234"
    assert values["replicas"] == "3"
    assert values["global.cattle.psp.enabled"] == "false"
    assert values["ingress.tls.source"] == "rancher"


def test_password_that_looks_like_a_token_renders() -> None:
    """A bootstrap password shaped like a placeholder is ordinary data."""
    values = _spec(render_rancher_chart(_config(bootstrap_pw="__ADMIN__pass123")))["set"]

    assert values["bootstrapPassword"] == "__ADMIN__pass123"


@pytest.mark.parametrize(
    ("tls_source", "expected"),
    [("rancher", False), ("secret", True), ("letsEncrypt", True)],
)
def test_private_ca_value_depends_on_tls_source(tmp_path: Path, tls_source: str, expected: bool) -> None:
    """privateCA is only set when Rancher does not issue its own certificate."""
    ca = tmp_path / "ca.pem"
    ca.write_text("pem")
    cfg = _config(private_ca_path=ca, tls_source=tls_source)

    assert ("privateCA" in extra_rancher_values(cfg)) is expected
    assert ("privateCA" in _spec(render_rancher_chart(cfg))["set"]) is expected


def test_private_registry_wires_registries_and_default_registry(tmp_path: Path) -> None:
    """The cluster mounts registries.yaml and Rancher pulls through the registry."""
    ca = tmp_path / "ca.pem"
    ca.write_text("pem")
    cfg = _config(private_registry="harbor.example.com", private_ca_path=ca,
                  helm_repo_user="robot", helm_repo_pass="pw")

    cluster = _spec(render_nested_cluster(cfg))
    registries = yaml.safe_load(registries_yaml(cfg))

    assert cluster["serverArgs"] == ["--system-default-registry=harbor.example.com/docker.io"]
    assert [m["secretName"] for m in cluster["secretMounts"]] == ["k3s-registry-config", "k3s-registry-ca"]
    assert set(registries["mirrors"]) == {"docker.io", "quay.io", "ghcr.io"}
    assert registries["mirrors"]["quay.io"]["rewrite"] == {"^(.*)$": "quay.io/$1"}
    assert registries["configs"]["harbor.example.com"]["tls"] == {"ca_file": "/etc/rancher/k3s/tls/ca.crt"}
    assert registries["configs"]["harbor.example.com"]["auth"]["username"] == "robot"
    assert _spec(render_rancher_chart(cfg))["set"]["systemDefaultRegistry"] == "harbor.example.com/docker.io"


def test_cluster_without_registry_has_no_mounts() -> None:
    """No private registry means no secretMounts and no server args."""
    spec = _spec(render_nested_cluster(_config(k3k_pvc_size="10Gi", k3k_servers=3)))

    assert "secretMounts" not in spec
    assert "serverArgs" not in spec
    assert spec["servers"] == 3
    assert spec["persistence"]["storageRequestSize"] == "10Gi"


def test_standalone_helm_values() -> None:
    """Host-side Rancher values disable PSP and fleet."""
    values = rancher_helm_values(_config())

    assert values["global"]["cattle"]["psp"]["enabled"] is False
    assert values["features"] == "fleet=false"
    assert values["hostname"] == "rancher.example.com"


def test_backup_record_with_s3_and_schedule() -> None:
    """Optional Backup fields appear only when configured."""
    cfg = RunConfig(
        backup_name="nightly",
        s3_bucket="backups",
        s3_endpoint="minio.example.com:9000",
        s3_folder="rancher",
        s3_insecure_tls=True,
        encrypt=True,
        encryption_key="key",
        backup_schedule="0 2 * * *",
        backup_retention=7,
    )

    doc = render_backup_record(cfg).documents()[0]

    assert doc["metadata"]["name"] == "nightly"
    assert doc["spec"]["resourceSetName"] == "rancher-resource-set"
    assert doc["spec"]["encryptionConfigSecretName"] == "backup-encryption"
    assert doc["spec"]["schedule"] == "0 2 * * *"
    assert doc["spec"]["retentionCount"] == 7
    s3 = doc["spec"]["storageLocation"]["s3"]
    assert s3["bucketName"] == "backups"
    assert s3["folder"] == "rancher"
    assert s3["insecureTLSSkipVerify"] is True
    assert s3["credentialSecretNamespace"] == "cattle-resources-system"


def test_backup_record_minimal() -> None:
    """Default storage renders no storageLocation and no optional fields."""
    spec = render_backup_record(RunConfig(backup_name="once")).documents()[0]["spec"]

    assert spec == {"resourceSetName": "rancher-resource-set"}


def test_storage_location_embeds_endpoint_ca(tmp_path: Path) -> None:
    """The S3 endpoint CA is embedded base64-encoded."""
    ca = tmp_path / "s3-ca.pem"
    ca.write_bytes(b"CA")

    block = storage_location(RunConfig(s3_bucket="b", s3_endpoint_ca=ca))

    assert yaml.safe_load(block.value)["storageLocation"]["s3"]["endpointCA"] == "Q0E="


def test_restore_record_fields() -> None:
    """Restore carries the archive name and prune flag."""
    cfg = RunConfig(restore_name="r1", backup_file="rancher-backup-1.tar.gz", restore_prune=True)

    spec = render_restore_record(cfg).documents()[0]["spec"]

    assert spec["backupFilename"] == "rancher-backup-1.tar.gz"
    assert spec["prune"] is True
    assert "encryptionConfigSecretName" not in spec


def test_restore_record_encrypt_without_secret_fails() -> None:
    """Encryption requested with no Secret to reference is a configuration error."""
    cfg = RunConfig(restore_name="r1", backup_file="f.tar.gz", encrypt=True, encryption_secret="")

    with pytest.raises(ConfigurationError, match="no encryption Secret"):
        render_restore_record(cfg)


def test_restore_record_requires_backup_file() -> None:
    with pytest.raises(ConfigurationError, match="--backup-file"):
        render_restore_record(RunConfig(restore_name="r1"))


def test_reconciler_embeds_host_ingress() -> None:
    """The reconciler ConfigMap holds the same manifest the host ingress applies."""
    docs = render_ingress_reconciler("rancher-k3k", "rancher", "rancher.example.com").documents()

    kinds = [doc["kind"] for doc in docs]
    configmap = next(doc for doc in docs if doc["kind"] == "ConfigMap")
    stored = list(yaml.safe_load_all(configmap["data"]["host-ingress.yaml"]))

    assert {"ServiceAccount", "Role", "RoleBinding", "ConfigMap", "CronJob"} <= set(kinds)
    assert [doc["kind"] for doc in stored if doc] == ["Service", "Ingress"]
    assert stored[1]["spec"]["rules"][0]["host"] == "rancher.example.com"
