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

"""Run configuration, config-file loading, and validation."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict
from rich.panel import Panel

from rancher_k3k import console
from rancher_k3k.constants import (
    BACKUP_NAME_PREFIX,
    DEFAULT_BOOTSTRAP_PW_MIN_LENGTH,
    DEFAULT_ENCRYPTION_SECRET,
    DEFAULT_K3K_CLUSTER,
    DEFAULT_K3K_NAMESPACE,
    DEFAULT_K3K_PVC_SIZE,
    DEFAULT_OPERATOR_NAMESPACE,
    DEFAULT_RESOURCE_SET,
    DEFAULT_S3_CREDENTIAL_SECRET,
    DEFAULT_STORAGE_CLASS,
    DEFAULT_TLS_SOURCE,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    NAME_TIMESTAMP_FORMAT,
    PVC_SIZE_PATTERN,
    RESTORE_NAME_PREFIX,
    dep_value,
)
from rancher_k3k.errors import ConfigurationError


# ============================================================================
# Configuration classes
# ============================================================================

class RunConfig(BaseSettings):
    """Every setting a pipeline run can take, frozen once loaded.

    Populated from CLI flags (init kwargs) and an optional key=value config
    file. The process environment is not a source; components receive
    this object explicitly.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        frozen=True,
        case_sensitive=False,
        env_ignore_empty=True,
    )

    # -- Cluster access --
    kubeconfig: Path | None = Field(default=None, validation_alias=AliasChoices("kubeconfig", "opt_kubeconfig"))
    context: str | None = Field(default=None, validation_alias=AliasChoices("context", "opt_context"))
    namespace: str = Field(
        default=DEFAULT_OPERATOR_NAMESPACE,
        validation_alias=AliasChoices("namespace", "opt_namespace"),
    )

    # -- S3 storage --
    storage_type: Literal["s3"] | None = None
    s3_bucket: str | None = None
    s3_endpoint: str | None = None
    s3_region: str | None = None
    s3_folder: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_insecure_tls: bool = False
    s3_endpoint_ca: Path | None = None
    s3_cred_secret: str = DEFAULT_S3_CREDENTIAL_SECRET

    # -- Encryption --
    encrypt: bool = False
    encryption_secret: str = DEFAULT_ENCRYPTION_SECRET
    encryption_key: SecretStr | None = None

    # -- Backup --
    resource_set: str = DEFAULT_RESOURCE_SET
    backup_schedule: str | None = None
    backup_retention: int | None = Field(default=None, ge=1)
    backup_name: str | None = None
    output_dir: Path | None = None

    # -- Restore --
    backup_file: str | None = None
    restore_prune: bool = False
    restore_name: str | None = None

    # -- Provisioning --
    deploy_rancher: bool = False
    hostname: str | None = None
    bootstrap_pw: SecretStr | None = None
    tls_source: Literal["rancher", "letsEncrypt", "secret"] = DEFAULT_TLS_SOURCE
    certmanager_repo: str = dep_value("cert_manager", "repo")
    certmanager_version: str = dep_value("cert_manager", "version")
    rancher_repo: str = dep_value("rancher", "repo")
    rancher_version: str = dep_value("rancher", "version")
    rancher_replicas: int = Field(default=1, ge=1)
    upgrade: bool = False

    # -- Nested cluster (k3k) --
    target_type: Literal["k3k", "standalone"] | None = None
    k3k_namespace: str = DEFAULT_K3K_NAMESPACE
    k3k_cluster: str = DEFAULT_K3K_CLUSTER
    k3k_pvc_size: str = DEFAULT_K3K_PVC_SIZE
    k3k_storage_class: str = DEFAULT_STORAGE_CLASS
    k3k_repo: str = dep_value("k3k", "repo")
    k3k_version: str = dep_value("k3k", "version")
    k3k_servers: int = Field(default=1, ge=1)

    # -- Private registry, CA, and Helm repo auth --
    private_registry: str | None = None
    private_ca_path: Path | None = None
    helm_repo_user: str | None = None
    helm_repo_pass: SecretStr | None = None
    ca_checksum_strategy: Literal["raw", "normalized"] = "raw"

    # -- Operator --
    skip_operator_install: bool = False
    operator_version: str | None = None

    # -- Other --
    wait_timeout: int = Field(default=DEFAULT_WAIT_TIMEOUT_SECONDS, ge=1)
    dry_run: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, dotenv_settings

    @property
    def uses_s3(self) -> bool:
        """Whether backups go to S3 (a bucket implies S3)."""
        return bool(self.s3_bucket) or self.storage_type == "s3"

    @property
    def helm_auth_enabled(self) -> bool:
        """Whether Helm repositories need credentials."""
        return bool(self.helm_repo_user)


def secret_value(secret: SecretStr | None) -> str:
    """Unwrap an optional secret, returning an empty string when unset."""
    return secret.get_secret_value() if secret is not None else ""


def load_run_config(config_file: Path | None = None, overrides: dict[str, Any] | None = None) -> RunConfig:
    """Build a RunConfig from a config file plus CLI overrides.

    Args:
        config_file: Optional key=value file pre-populating settings.
        overrides: Values supplied on the command line; they win over the file.

    Returns:
        The frozen run configuration.

    Raises:
        ConfigurationError: If the file is missing or a value fails validation.
    """
    if config_file is not None and not config_file.is_file():
        raise ConfigurationError(f"Config file not found: {config_file}")
    try:
        return RunConfig(_env_file=config_file, **(overrides or {}))
    except ValidationError as err:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'config'}: {e['msg']}" for e in err.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from err


# ============================================================================
# Validation
# ============================================================================

def _require_file(path: Path | None, what: str) -> None:
    if path is not None and not path.is_file():
        raise ConfigurationError(f"{what} file not found: {path}")


def validate_common(cfg: RunConfig) -> None:
    """Checks shared by every command that talks to the backup operator.

    Raises:
        ConfigurationError: On the first problem found.
    """
    if cfg.storage_type == "s3" and not cfg.s3_bucket:
        raise ConfigurationError("--s3-bucket is required when using S3 storage")
    if cfg.encrypt and not secret_value(cfg.encryption_key):
        raise ConfigurationError("--encryption-key is required when --encrypt is set")
    if cfg.encrypt and not cfg.encryption_secret:
        raise ConfigurationError("--encryption-secret must name the encryption Secret when --encrypt is set")
    if cfg.s3_access_key and not secret_value(cfg.s3_secret_key):
        raise ConfigurationError("--s3-secret-key is required when --s3-access-key is set")
    _require_file(cfg.s3_endpoint_ca, "S3 endpoint CA")


def validate_provisioning(cfg: RunConfig, *, min_password_length: int = 0) -> None:
    """Checks for runs that install Rancher from scratch.

    Args:
        cfg: Run configuration.
        min_password_length: Minimum bootstrap password length, or 0 to skip.

    Raises:
        ConfigurationError: On the first problem found.
    """
    if not cfg.hostname:
        raise ConfigurationError("--hostname is required to deploy Rancher")
    password = secret_value(cfg.bootstrap_pw)
    if not password:
        raise ConfigurationError("--bootstrap-pw is required to deploy Rancher")
    if min_password_length and len(password) < min_password_length:
        raise ConfigurationError(f"Bootstrap password must be at least {min_password_length} characters")
    if not re.match(PVC_SIZE_PATTERN, cfg.k3k_pvc_size):
        raise ConfigurationError(f"Invalid PVC size: {cfg.k3k_pvc_size} (use format like 10Gi, 500Gi, 1Ti)")
    if cfg.helm_repo_user and not secret_value(cfg.helm_repo_pass):
        raise ConfigurationError("--helm-repo-pass is required when --helm-repo-user is set")
    _require_file(cfg.private_ca_path, "CA certificate")


def validate_backup(cfg: RunConfig) -> None:
    """Validate a backup run."""
    validate_common(cfg)


def validate_restore(cfg: RunConfig) -> None:
    """Validate a restore run, including provision mode requirements."""
    if not cfg.backup_file:
        raise ConfigurationError("--backup-file is required")
    validate_common(cfg)
    if cfg.deploy_rancher:
        validate_provisioning(cfg)


def validate_deploy(cfg: RunConfig) -> None:
    """Validate a standalone deploy run."""
    validate_provisioning(cfg, min_password_length=DEFAULT_BOOTSTRAP_PW_MIN_LENGTH)


# ============================================================================
# Naming and display
# ============================================================================

def default_record_name(prefix: str, now: datetime | None = None) -> str:
    """Timestamp-derived Operation Record name, e.g. ``rancher-backup-20260217-101500``."""
    return f"{prefix}-{(now or datetime.now()).strftime(NAME_TIMESTAMP_FORMAT)}"


def resolve_record_names(cfg: RunConfig, now: datetime | None = None) -> RunConfig:
    """Fill in backup and restore names that the caller left unset."""
    updates: dict[str, str] = {}
    if not cfg.backup_name:
        updates["backup_name"] = default_record_name(BACKUP_NAME_PREFIX, now)
    if not cfg.restore_name:
        updates["restore_name"] = default_record_name(RESTORE_NAME_PREFIX, now)
    return cfg.model_copy(update=updates) if updates else cfg


def display_config(cfg: RunConfig, title: str) -> None:
    """Print the non-secret settings that shape a run."""
    lines = []
    if cfg.backup_file:
        lines.append(f"Backup file:    {cfg.backup_file}")
    if cfg.uses_s3:
        lines.append(f"S3 bucket:      {cfg.s3_bucket}")
        if cfg.s3_endpoint:
            lines.append(f"S3 endpoint:    {cfg.s3_endpoint}")
    if cfg.encrypt:
        lines.append("Encrypted:      yes")
    if cfg.restore_prune:
        lines.append("Prune:          yes")
    if cfg.hostname:
        lines.append(f"Hostname:       {cfg.hostname}")
    if cfg.deploy_rancher or cfg.hostname:
        lines.append(f"Rancher:        {cfg.rancher_repo} ({cfg.rancher_version})")
        lines.append(f"cert-manager:   {cfg.certmanager_repo} ({cfg.certmanager_version})")
    if cfg.private_registry:
        lines.append(f"Registry:       {cfg.private_registry}")
    if cfg.helm_repo_user:
        lines.append(f"Helm auth:      {cfg.helm_repo_user} / ****")
    if cfg.target_type:
        lines.append(f"Target type:    {cfg.target_type}")
    console.print(Panel.fit("\n".join(lines) or "defaults", title=title, style="cyan"))
