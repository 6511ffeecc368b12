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

"""Backup command."""

from __future__ import annotations

from pathlib import Path

import typer

from rancher_k3k.commands import options
from rancher_k3k.orchestrator import run_backup

app = typer.Typer(help="Back up Rancher with the rancher-backup operator.")


@app.callback(invoke_without_command=True)
def backup(
    config: Path | None = options.CONFIG,
    kubeconfig: Path | None = options.KUBECONFIG,
    context: str | None = options.CONTEXT,
    namespace: str | None = options.NAMESPACE,
    target_type: str | None = options.TARGET_TYPE,
    storage: str | None = options.STORAGE,
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
    name: str | None = typer.Option(None, "--name", help="Backup CR name (default: timestamped)"),
    resource_set: str | None = typer.Option(None, "--resource-set", help="ResourceSet to back up"),
    schedule: str | None = typer.Option(None, "--schedule", help="Cron schedule for recurring backups"),
    retention: int | None = typer.Option(None, "--retention", help="Number of scheduled backups to keep"),
    output: Path | None = typer.Option(None, "--output", help="Directory for backup-metadata.json"),
    skip_operator_install: bool = options.SKIP_OPERATOR_INSTALL,
    operator_version: str | None = options.OPERATOR_VERSION,
    wait_timeout: int | None = options.WAIT_TIMEOUT,
    dry_run: bool = options.DRY_RUN,
) -> None:
    """Create a Backup CR and wait for it to complete."""
    cfg = options.build_config(
        config,
        kubeconfig=kubeconfig,
        context=context,
        namespace=namespace,
        target_type=target_type,
        storage_type=storage,
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
        backup_name=name,
        resource_set=resource_set,
        backup_schedule=schedule,
        backup_retention=retention,
        output_dir=output,
        skip_operator_install=skip_operator_install,
        operator_version=operator_version,
        wait_timeout=wait_timeout,
        dry_run=dry_run,
    )
    run_backup(cfg)
