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

"""
cli.py - Rancher on k3k: provisioning, backup and restore.

Subcommands:
    deploy           Deploy Rancher inside a k3k virtual cluster
    backup           Back up Rancher with the rancher-backup operator
    restore          Restore Rancher (optionally deploying it first)
    restore-ingress  Recreate missing host ingress resources
    destroy          Remove the k3k Rancher deployment

Examples:
    # Deploy Rancher into a new k3k cluster
    rancher-k3k deploy --hostname rancher.example.com --bootstrap-pw 'changeme-please'

    # Encrypted backup to S3, with a metadata sidecar
    rancher-k3k backup --s3-bucket backups --s3-endpoint minio:9000 \\
        --s3-access-key AK --s3-secret-key SK --encrypt --encryption-key KEY --output ./backups

    # Preview the Restore CR without touching the cluster
    rancher-k3k restore --backup-file rancher-backup-20260217.tar.gz --dry-run

For detailed usage information, run: rancher-k3k --help
"""

from __future__ import annotations

import logging
import signal
import sys

import typer

from rancher_k3k import console, logger
from rancher_k3k.commands import (
    backup_cmd,
    deploy_cmd,
    destroy_cmd,
    ingress_cmd,
    restore_cmd,
)

app = typer.Typer(
    help="Rancher on k3k: provisioning, backup and restore.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(deploy_cmd.app, name="deploy")
app.add_typer(backup_cmd.app, name="backup")
app.add_typer(restore_cmd.app, name="restore")
app.add_typer(ingress_cmd.app, name="restore-ingress")
app.add_typer(destroy_cmd.app, name="destroy")


def _terminate(signum, frame) -> None:
    logger.debug("Received signal %s, releasing run resources", signum)
    raise SystemExit(128 + signum)


def install_signal_handlers() -> None:
    """Turn SIGTERM into SystemExit so open run contexts unwind."""
    signal.signal(signal.SIGTERM, _terminate)


def main() -> None:
    install_signal_handlers()
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
