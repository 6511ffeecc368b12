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

"""Restore command (into a running Rancher, or deploy-then-restore)."""

from __future__ import annotations

from pathlib import Path

import typer

from rancher_k3k.commands import options
from rancher_k3k.orchestrator import run_restore

app = typer.Typer(help="Restore Rancher from a rancher-backup archive.")


@app.callback(invoke_without_command=True)
def restore(
    config: Path | None = options.CONFIG,
    kubeconfig: Path | None = options.KUBECONFIG,
    context: str | None = options.CONTEXT,
    namespace: str | None = options.NAMESPACE,
    target_type: str | None = options.TARGET_TYPE,
    storage: str | None = options.STORAGE,
    backup_file: str | None = typer.Option(None, "--backup-file", help="Backup archive filename to restore"),
    prune: bool = typer.Option(False, "--prune", help="Delete resources not present in the backup"),
    name: str | None = typer.Option(None, "--name", help="Restore CR name (default: timestamped)"),
    s3_bucket: str | None = options.S3_BUCKET,
    s3_endpoint: str | None = options.S3_ENDPOINT,
    s3_region: str | None = options.S3_REGION,
    s3_folder: str | None = options.S3_FOLDER,
    s3_access_key: str | None = options.S3_ACCESS_KEY,
    s3_secret_key: str | None = options.S3_SECRET_KEY,
    s3_insecure_tls: bool = options.S3_INSECURE_TLS,
    s3_endpoint_ca: Path | None = options.S3_ENDPOINT_CA,
    encrypt: bool = options.ENCRYPT,
    encryption_key: str | None = options.ENCRYPTION_KEY,
    encryption_secret: str | None = options.ENCRYPTION_SECRET,
    deploy_rancher: bool = typer.Option(
        False, "--deploy-rancher", help="Deploy cert-manager and Rancher before restoring"),
    hostname: str | None = options.HOSTNAME,
    bootstrap_pw: str | None = options.BOOTSTRAP_PW,
    tls_source: str | None = options.TLS_SOURCE,
    rancher_version: str | None = options.RANCHER_VERSION,
    rancher_repo: str | None = options.RANCHER_REPO,
    certmanager_version: str | None = options.CERTMANAGER_VERSION,
    certmanager_repo: str | None = options.CERTMANAGER_REPO,
    k3k_namespace: str | None = options.K3K_NAMESPACE,
    k3k_cluster: str | None = options.K3K_CLUSTER,
    k3k_version: str | None = options.K3K_VERSION,
    k3k_repo: str | None = options.K3K_REPO,
    pvc_size: str | None = options.PVC_SIZE,
    storage_class: str | None = options.STORAGE_CLASS,
    private_ca: Path | None = options.PRIVATE_CA,
    helm_repo_user: str | None = options.HELM_REPO_USER,
    helm_repo_pass: str | None = options.HELM_REPO_PASS,
    skip_operator_install: bool = options.SKIP_OPERATOR_INSTALL,
    operator_version: str | None = options.OPERATOR_VERSION,
    wait_timeout: int | None = options.WAIT_TIMEOUT,
    dry_run: bool = options.DRY_RUN,
) -> None:
    """Create a Restore CR and wait for it to complete.

    Without --deploy-rancher, Rancher must already be running on the target.
    With it, cert-manager and Rancher are deployed first (inside a new k3k
    virtual cluster when the host has k3k), then restored into.
    """
    cfg = options.build_config(
        config,
        kubeconfig=kubeconfig,
        context=context,
        namespace=namespace,
        target_type=target_type,
        storage_type=storage,
        backup_file=backup_file,
        restore_prune=prune,
        restore_name=name,
        s3_bucket=s3_bucket,
        s3_endpoint=s3_endpoint,
        s3_region=s3_region,
        s3_folder=s3_folder,
        s3_access_key=s3_access_key,
        s3_secret_key=s3_secret_key,
        s3_insecure_tls=s3_insecure_tls,
        s3_endpoint_ca=s3_endpoint_ca,
        encrypt=encrypt,
        encryption_key=encryption_key,
        encryption_secret=encryption_secret,
        deploy_rancher=deploy_rancher,
        hostname=hostname,
        bootstrap_pw=bootstrap_pw,
        tls_source=tls_source,
        rancher_version=rancher_version,
        rancher_repo=rancher_repo,
        certmanager_version=certmanager_version,
        certmanager_repo=certmanager_repo,
        k3k_namespace=k3k_namespace,
        k3k_cluster=k3k_cluster,
        k3k_version=k3k_version,
        k3k_repo=k3k_repo,
        k3k_pvc_size=pvc_size,
        k3k_storage_class=storage_class,
        private_ca_path=private_ca,
        helm_repo_user=helm_repo_user,
        helm_repo_pass=helm_repo_pass,
        skip_operator_install=skip_operator_install,
        operator_version=operator_version,
        wait_timeout=wait_timeout,
        dry_run=dry_run,
    )
    run_restore(cfg)
