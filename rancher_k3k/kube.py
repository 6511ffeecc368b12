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

"""kubectl and helm wrappers bound to one target environment."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import sh
import yaml

from rancher_k3k import logger
from rancher_k3k.constants import HELM_TIMEOUT_SECONDS, KUBECTL_TIMEOUT_SECONDS
from rancher_k3k.errors import ApplyError, CommandNotFoundError

if TYPE_CHECKING:
    from rancher_k3k.credentials import CredentialBundle
    from rancher_k3k.topology import Topology


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        CommandNotFoundError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise CommandNotFoundError(f"Required command '{cmd}' not found. Please install it first.") from err


# ============================================================================
# kubectl
# ============================================================================

class Kubectl:
    """kubectl bound to an optional kubeconfig and context."""

    def __init__(
        self,
        kubeconfig: Path | None = None,
        context: str | None = None,
        insecure: bool = False,
    ) -> None:
        self.kubeconfig = kubeconfig
        self.context = context
        self.insecure = insecure

    def global_args(self) -> list[str]:
        args = []
        if self.kubeconfig is not None:
            args.append(f"--kubeconfig={self.kubeconfig}")
        if self.context:
            args.append(f"--context={self.context}")
        if self.insecure:
            args.append("--insecure-skip-tls-verify")
        return args

    def with_kubeconfig(self, kubeconfig: Path, insecure: bool = False) -> Kubectl:
        """Return a kubectl bound to a different cluster."""
        return Kubectl(kubeconfig=kubeconfig, insecure=insecure)

    def run(
        self,
        args: list[str],
        input: str | None = None,
        timeout: int = KUBECTL_TIMEOUT_SECONDS,
    ) -> tuple[bool, str, str]:
        """Run a kubectl command via subprocess and return (success, stdout, stderr).

        Uses subprocess instead of sh because callers branch on the exit
        status and parse stdout separately from stderr.

        Args:
            args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
            input: Text fed to stdin, used for ``apply -f -``.
            timeout: Maximum seconds to wait for the command to complete.

        Returns:
            Tuple of (success, stdout, stderr).
        """
        try:
            result = subprocess.run(
                ["kubectl", *self.global_args(), *args],
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return result.returncode == 0, result.stdout, result.stderr
        except (subprocess.SubprocessError, OSError) as exc:
            return False, "", str(exc)

    def get_json(self, args: list[str]) -> Any:
        """Read an object as JSON, returning None when the read fails.

        Args:
            args: ``get`` arguments without the output flag.

        Returns:
            The decoded object, or None if it is absent or unreadable.
        """
        ok, out, err = self.run(["get", *args, "-o", "json"])
        if not ok:
            logger.debug("kubectl get %s failed: %s", " ".join(args), err.strip())
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError:
            logger.debug("kubectl get %s returned non-JSON output", " ".join(args))
            return None

    def exists(self, kind: str, name: str, namespace: str | None = None) -> bool:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        ok, _, _ = self.run(args)
        return ok

    def delete(self, kind: str, name: str, namespace: str | None = None) -> bool:
        """Delete an object, returning False when it was not found."""
        args = ["delete", kind, name]
        if namespace:
            args += ["-n", namespace]
        ok, _, err = self.run(args, timeout=HELM_TIMEOUT_SECONDS)
        if not ok:
            logger.debug("kubectl delete %s/%s: %s", kind, name, err.strip())
        return ok


# ============================================================================
# helm
# ============================================================================

class Helm:
    """helm bound to an optional kubeconfig and context."""

    def __init__(
        self,
        kubeconfig: Path | None = None,
        context: str | None = None,
        insecure: bool = False,
    ) -> None:
        self.kubeconfig = kubeconfig
        self.context = context
        self.insecure = insecure

    def with_kubeconfig(self, kubeconfig: Path, insecure: bool = False) -> Helm:
        return Helm(kubeconfig=kubeconfig, insecure=insecure)

    def global_args(self) -> list[str]:
        args = []
        if self.kubeconfig is not None:
            args.append(f"--kubeconfig={self.kubeconfig}")
        if self.context:
            args.append(f"--kube-context={self.context}")
        if self.insecure:
            args.append("--kube-insecure-skip-tls-verify")
        return args

    def status(self, release: str, namespace: str) -> bool:
        """Whether a release is installed."""
        try:
            sh.helm("status", release, "-n", namespace, *self.global_args())
            return True
        except sh.ErrorReturnCode:
            return False

    def repo_add(
        self,
        alias: str,
        url: str,
        username: str | None = None,
        password: str | None = None,
        ca_file: Path | None = None,
    ) -> None:
        """Add (or refresh) a chart repository.

        Raises:
            ApplyError: If the repository cannot be added.
        """
        args = ["repo", "add", alias, url, "--force-update"]
        if ca_file is not None:
            args += ["--ca-file", str(ca_file)]
        try:
            if username and password:
                sh.helm(*args, "--username", username, "--password-stdin", _in=password)
            else:
                sh.helm(*args)
            sh.helm("repo", "update", alias)
        except sh.ErrorReturnCode as err:
            raise ApplyError(
                f"Failed to add Helm repo {alias} ({url}); check the URL, credentials and CA settings"
            ) from err

    def registry_login(self, host: str, username: str, password: str, ca_file: Path | None = None) -> None:
        """Log in to an OCI registry for chart pulls.

        Raises:
            ApplyError: If the login is rejected.
        """
        args = ["registry", "login", host, "--username", username, "--password-stdin"]
        if ca_file is not None:
            args += ["--ca-file", str(ca_file)]
        try:
            sh.helm(*args, _in=password)
        except sh.ErrorReturnCode as err:
            raise ApplyError(f"Helm registry login to {host} failed") from err

    def install(
        self,
        release: str,
        chart: str,
        namespace: str,
        *,
        version: str | None = None,
        values: dict | None = None,
        create_namespace: bool = False,
        ca_file: Path | None = None,
        upgrade: bool = False,
    ) -> None:
        """Install or upgrade a release.

        Values are passed on stdin so that secrets never reach the process table.

        Raises:
            ApplyError: If helm fails.
        """
        args = ["upgrade" if upgrade else "install", release, chart, "-n", namespace, *self.global_args()]
        if version:
            args += ["--version", version]
        if create_namespace:
            args.append("--create-namespace")
        if ca_file is not None:
            args += ["--ca-file", str(ca_file)]
        kwargs: dict[str, Any] = {"_timeout": HELM_TIMEOUT_SECONDS}
        if values:
            args += ["--values", "-"]
            kwargs["_in"] = yaml.safe_dump(values, sort_keys=False)
        try:
            sh.helm(*args, **kwargs)
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip() if err.stderr else ""
            raise ApplyError(f"helm {args[0]} {release} failed: {stderr}") from err

    def uninstall(self, release: str, namespace: str) -> None:
        try:
            sh.helm("uninstall", release, "-n", namespace, *self.global_args())
        except sh.ErrorReturnCode as err:
            raise ApplyError(f"helm uninstall {release} failed") from err


# ============================================================================
# Target environment
# ============================================================================

@dataclass(frozen=True)
class TargetEnvironment:
    """One addressable cluster API: the host, or a nested k3k cluster.

    ``namespace`` and ``cluster`` identify the nested cluster on its host
    (empty for a standalone target); ``credentials`` is set only for a
    nested target and lives no longer than the run.
    """

    topology: Topology
    kubectl: Kubectl
    helm: Helm
    namespace: str = ""
    cluster: str = ""
    credentials: CredentialBundle | None = None

    @property
    def is_nested(self) -> bool:
        return self.credentials is not None
