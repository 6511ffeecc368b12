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

"""Options shared by several commands, and the bridge to RunConfig."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer

from rancher_k3k.config import RunConfig, load_run_config

# -- Target selection --
CONFIG = typer.Option(None, "-c", "--config", help="key=value config file (CLI flags take precedence)")
KUBECONFIG = typer.Option(None, "--kubeconfig", help="Path to the host cluster kubeconfig")
CONTEXT = typer.Option(None, "--context", help="kubeconfig context to use")
NAMESPACE = typer.Option(None, "--namespace", help="rancher-backup operator namespace")
TARGET_TYPE = typer.Option(None, "--target-type", help="Force target type: k3k or standalone")
K3K_NAMESPACE = typer.Option(None, "--k3k-namespace", help="Namespace of the k3k virtual cluster")
K3K_CLUSTER = typer.Option(None, "--k3k-cluster", help="Name of the k3k virtual cluster")

# -- Storage --
STORAGE = typer.Option(None, "--storage", help="Storage type (only s3 is supported)")
S3_BUCKET = typer.Option(None, "--s3-bucket", help="S3 bucket (implies S3 storage)")
S3_ENDPOINT = typer.Option(None, "--s3-endpoint", help="S3 endpoint (host[:port])")
S3_REGION = typer.Option(None, "--s3-region", help="S3 region")
S3_FOLDER = typer.Option(None, "--s3-folder", help="Folder inside the bucket")
S3_ACCESS_KEY = typer.Option(None, "--s3-access-key", help="S3 access key")
S3_SECRET_KEY = typer.Option(None, "--s3-secret-key", help="S3 secret key")
S3_INSECURE_TLS = typer.Option(False, "--s3-insecure-tls", help="Skip S3 TLS verification")
S3_ENDPOINT_CA = typer.Option(None, "--s3-endpoint-ca", help="PEM CA file for the S3 endpoint")

# -- Encryption --
ENCRYPT = typer.Option(False, "--encrypt", help="Encrypt (or decrypt) the backup archive")
ENCRYPTION_KEY = typer.Option(None, "--encryption-key", help="aescbc key for the encryption config")
ENCRYPTION_SECRET = typer.Option(
    None, "--encryption-secret", help="Secret holding the EncryptionConfiguration (default: backup-encryption)")

# -- Operator and run control --
SKIP_OPERATOR_INSTALL = typer.Option(
    False, "--skip-operator-install", help="Assume the rancher-backup operator is installed")
OPERATOR_VERSION = typer.Option(None, "--operator-version", help="rancher-backup chart version")
WAIT_TIMEOUT = typer.Option(None, "--wait-timeout", help="Seconds to wait for the operation")
DRY_RUN = typer.Option(False, "--dry-run", help="Print the manifest without applying it")

# -- Provisioning --
HOSTNAME = typer.Option(None, "--hostname", help="Rancher hostname")
BOOTSTRAP_PW = typer.Option(None, "--bootstrap-pw", help="Rancher bootstrap password")
TLS_SOURCE = typer.Option(None, "--tls-source", help="Rancher ingress TLS source: rancher, letsEncrypt, secret")
RANCHER_VERSION = typer.Option(None, "--rancher-version", help="Rancher chart version")
CERTMANAGER_VERSION = typer.Option(None, "--certmanager-version", help="cert-manager chart version")
K3K_VERSION = typer.Option(None, "--k3k-version", help="k3k chart version")
RANCHER_REPO = typer.Option(None, "--rancher-repo", help="Rancher chart repo URL or oci:// chart")
CERTMANAGER_REPO = typer.Option(None, "--certmanager-repo", help="cert-manager chart repo URL or oci:// chart")
K3K_REPO = typer.Option(None, "--k3k-repo", help="k3k chart repo URL or oci:// chart")
PVC_SIZE = typer.Option(None, "--pvc-size", help="k3k server PVC size (e.g. 40Gi)")
STORAGE_CLASS = typer.Option(None, "--storage-class", help="k3k server storage class")
PRIVATE_REGISTRY = typer.Option(None, "--private-registry", help="Registry mirroring docker.io, quay.io, ghcr.io")
PRIVATE_CA = typer.Option(None, "--private-ca", help="PEM CA bundle for private registries and repos")
HELM_REPO_USER = typer.Option(None, "--helm-repo-user", help="Helm repository username")
HELM_REPO_PASS = typer.Option(None, "--helm-repo-pass", help="Helm repository password")


def collect_overrides(**values: Any) -> dict[str, Any]:
    """Keep only the flags the user actually set.

    None means "not given"; a False boolean flag is indistinguishable from
    its default and is dropped too, so the config file can still turn it on.
    """
    return {key: value for key, value in values.items() if value is not None and value is not False}


def build_config(config_file: Path | None, **values: Any) -> RunConfig:
    return load_run_config(config_file, collect_overrides(**values))
