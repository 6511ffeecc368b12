"""Tests for the command-line interface."""
from __future__ import annotations

import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from rancher_k3k import cli
from rancher_k3k.commands import deploy_cmd, destroy_cmd, restore_cmd
from rancher_k3k.config import secret_value
from rancher_k3k.errors import ConfigurationError
from rancher_k3k.kube import Kubectl

runner = CliRunner()


@pytest.fixture()
def captured(monkeypatch: pytest.MonkeyPatch) -> list:
    """Replace every pipeline entry point with one that records its config."""
    calls: list = []
    for module, name in (
        (deploy_cmd, "run_deploy"),
        (restore_cmd, "run_restore"),
        (destroy_cmd, "run_destroy"),
    ):
        monkeypatch.setattr(module, name, lambda cfg, _name=name: calls.append((_name, cfg)))
    return calls


def test_no_arguments_shows_help() -> None:
    result = runner.invoke(cli.app, [])

    assert "backup" in result.output
    assert "restore-ingress" in result.output


def test_backup_dry_run_prints_manifest_without_cluster_access(monkeypatch: pytest.MonkeyPatch) -> None:
    """--dry-run renders the Backup CR to stdout and never runs kubectl."""
    def refuse(self, args, input=None, timeout=30):
        raise AssertionError(f"kubectl called: {args}")

    monkeypatch.setattr(Kubectl, "run", refuse)

    result = runner.invoke(cli.app, ["backup", "--dry-run", "--s3-bucket", "backups", "--name", "preview"])

    assert result.exit_code == 0, result.output
    assert "kind: Backup" in result.stdout
    assert "name: preview" in result.stdout
    assert "bucketName: backups" in result.stdout


def test_backup_storage_s3_requires_bucket() -> None:
    result = runner.invoke(cli.app, ["backup", "--dry-run", "--storage", "s3"])

    assert result.exit_code == 1
    assert "--s3-bucket is required" in str(result.exception)


def test_backup_dry_run_names_encryption_secret() -> None:
    result = runner.invoke(cli.app, [
        "backup", "--dry-run", "--name", "preview", "--encrypt", "--encryption-key", "k",
        "--encryption-secret", "my-encryption",
    ])

    assert result.exit_code == 0, result.output
    assert "encryptionConfigSecretName: my-encryption" in result.stdout


def test_restore_without_backup_file_fails() -> None:
    result = runner.invoke(cli.app, ["restore", "--dry-run"])

    assert result.exit_code == 1
    assert isinstance(result.exception, ConfigurationError)


def test_restore_flags_map_to_config(captured: list) -> None:
    result = runner.invoke(cli.app, [
        "restore", "--backup-file", "rancher-backup-1.tar.gz", "--prune", "--name", "r1",
        "--s3-bucket", "backups", "--encrypt", "--encryption-key", "k",
        "--encryption-secret", "my-encryption", "--storage", "s3",
        "--rancher-repo", "oci://registry.example.com/charts/rancher",
        "--certmanager-repo", "https://charts.example.com/jetstack",
        "--k3k-repo", "oci://registry.example.com/charts/k3k",
    ])

    assert result.exit_code == 0, result.output
    name, cfg = captured[0]
    assert name == "run_restore"
    assert cfg.backup_file == "rancher-backup-1.tar.gz"
    assert cfg.restore_prune is True
    assert cfg.restore_name == "r1"
    assert cfg.encrypt is True
    assert secret_value(cfg.encryption_key) == "k"
    assert cfg.encryption_secret == "my-encryption"
    assert cfg.storage_type == "s3"
    assert cfg.rancher_repo == "oci://registry.example.com/charts/rancher"
    assert cfg.certmanager_repo == "https://charts.example.com/jetstack"
    assert cfg.k3k_repo == "oci://registry.example.com/charts/k3k"


def test_deploy_flags_and_config_file(captured: list, tmp_path: Path) -> None:
    """Values come from the config file unless a flag overrides them."""
    config = tmp_path / "deploy.conf"
    config.write_text("HOSTNAME=file.example.com\nBOOTSTRAP_PW=from-file-password\nK3K_PVC_SIZE=20Gi\n")

    result = runner.invoke(cli.app, [
        "deploy", "-c", str(config), "--hostname", "cli.example.com", "--servers", "3", "--upgrade",
    ])

    assert result.exit_code == 0, result.output
    _, cfg = captured[0]
    assert cfg.hostname == "cli.example.com"
    assert secret_value(cfg.bootstrap_pw) == "from-file-password"
    assert cfg.k3k_pvc_size == "20Gi"
    assert cfg.k3k_servers == 3
    assert cfg.upgrade is True


def test_destroy_requires_confirmation(captured: list) -> None:
    result = runner.invoke(cli.app, ["destroy"], input="n\n")

    assert result.exit_code == 1
    assert captured == []


def test_destroy_with_yes_skips_prompt(captured: list) -> None:
    result = runner.invoke(cli.app, ["destroy", "--yes", "--k3k-cluster", "other"])

    assert result.exit_code == 0, result.output
    assert captured[0][1].k3k_cluster == "other"


def test_main_reports_errors_and_exits(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """Any error escaping the app becomes one red line and exit status 1."""
    def boom() -> None:
        raise ConfigurationError("--hostname is required to deploy Rancher")

    monkeypatch.setattr(cli, "app", boom)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda: None)

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    assert "--hostname is required" in capsys.readouterr().err


TERMINATED_RUN = """
import os, signal, time
from rancher_k3k import cli
from rancher_k3k.credentials import CredentialBundle, scoped_kubeconfig

cli.install_signal_handlers()
bundle = CredentialBundle(endpoint="10.0.0.5", internal_endpoint="10.0.0.5", document={"clusters": []})
with scoped_kubeconfig(bundle) as path:
    print(path, flush=True)
    os.kill(os.getpid(), signal.SIGTERM)
    time.sleep(10)
"""


@pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be delivered to self on Windows")
def test_sigterm_removes_temporary_kubeconfig(tmp_path: Path) -> None:
    """A terminated run still deletes the kubeconfig it wrote."""
    result = subprocess.run(
        [sys.executable, "-c", TERMINATED_RUN],
        capture_output=True,
        text=True,
        timeout=30,
        env={**os.environ, "TMPDIR": str(tmp_path)},
    )

    path = Path(result.stdout.strip())
    assert result.returncode == 128 + signal.SIGTERM, result.stderr
    assert not path.exists()
    assert list(tmp_path.glob("*.kubeconfig")) == []
