"""Tests for run configuration loading and validation."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from rancher_k3k.commands.options import build_config, collect_overrides
from rancher_k3k.config import (
    RunConfig,
    load_run_config,
    resolve_record_names,
    secret_value,
    validate_backup,
    validate_deploy,
    validate_restore,
)
from rancher_k3k.errors import ConfigurationError


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "rancher-k3k.conf"
    path.write_text(
        "# Rancher on k3k\n"
        "HOSTNAME=file.example.com\n"
        "S3_BUCKET=from-file\n"
        "ENCRYPT=true\n"
        "ENCRYPTION_KEY=file-key\n"
        "K3K_PVC_SIZE=20Gi\n"
    )
    return path


def test_file_values_are_loaded(config_file: Path) -> None:
    cfg = load_run_config(config_file)

    assert cfg.hostname == "file.example.com"
    assert cfg.s3_bucket == "from-file"
    assert cfg.encrypt is True
    assert secret_value(cfg.encryption_key) == "file-key"
    assert cfg.k3k_pvc_size == "20Gi"


def test_flags_win_over_file(config_file: Path) -> None:
    """A flag given on the command line overrides the same key in the file."""
    cfg = build_config(config_file, hostname="cli.example.com", s3_bucket=None)

    assert cfg.hostname == "cli.example.com"
    assert cfg.s3_bucket == "from-file"


def test_unset_flags_do_not_clear_file_values(config_file: Path) -> None:
    """Boolean flags left off keep the file's value."""
    cfg = build_config(config_file, encrypt=False)

    assert cfg.encrypt is True


def test_environment_is_not_a_source(monkeypatch: pytest.MonkeyPatch) -> None:
    """Components never read ambient process state."""
    monkeypatch.setenv("S3_BUCKET", "from-env")
    monkeypatch.setenv("HOSTNAME", "env.example.com")

    cfg = load_run_config()

    assert cfg.s3_bucket is None
    assert cfg.hostname is None


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Config file not found"):
        load_run_config(tmp_path / "absent.conf")


def test_invalid_values_become_configuration_errors() -> None:
    """Pydantic validation failures are reported with the field name."""
    with pytest.raises(ConfigurationError, match="backup_retention"):
        load_run_config(overrides={"backup_retention": 0})
    with pytest.raises(ConfigurationError, match="tls_source"):
        load_run_config(overrides={"tls_source": "selfsigned"})


def test_collect_overrides_drops_unset_values() -> None:
    assert collect_overrides(a=None, b=False, c=0, d="x", e=True) == {"c": 0, "d": "x", "e": True}


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"storage_type": "s3"}, "--s3-bucket is required"),
        ({"encrypt": True}, "--encryption-key is required"),
        ({"encrypt": True, "encryption_key": "k", "encryption_secret": ""}, "--encryption-secret"),
        ({"s3_access_key": "AKIA"}, "--s3-secret-key is required"),
    ],
)
def test_validate_backup_errors(overrides: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        validate_backup(RunConfig(**overrides))


def test_validate_restore_requires_backup_file() -> None:
    with pytest.raises(ConfigurationError, match="--backup-file is required"):
        validate_restore(RunConfig())


def test_validate_restore_provision_mode_needs_hostname() -> None:
    """Mode B checks the provisioning settings too."""
    with pytest.raises(ConfigurationError, match="--hostname"):
        validate_restore(RunConfig(backup_file="f.tar.gz", deploy_rancher=True))


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"bootstrap_pw": "short"}, "at least 12 characters"),
        ({"bootstrap_pw": "long-enough-password", "k3k_pvc_size": "40GB"}, "Invalid PVC size"),
        ({"bootstrap_pw": "long-enough-password", "helm_repo_user": "robot"}, "--helm-repo-pass"),
        ({"bootstrap_pw": "long-enough-password", "private_ca_path": "/nonexistent/ca.pem"},
         "CA certificate file not found"),
    ],
)
def test_validate_deploy_errors(overrides: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        validate_deploy(RunConfig(hostname="rancher.example.com", **overrides))


def test_resolve_record_names_uses_timestamp() -> None:
    """Unset names are derived from the run's start time; given names stay."""
    now = datetime(2026, 2, 17, 10, 15, 0)

    cfg = resolve_record_names(RunConfig(restore_name="keep-me"), now)

    assert cfg.backup_name == "rancher-backup-20260217-101500"
    assert cfg.restore_name == "keep-me"


def test_run_config_is_frozen() -> None:
    cfg = RunConfig()

    with pytest.raises(Exception):
        cfg.hostname = "changed"  # type: ignore[misc]
