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

"""Operation Records: one backup or restore run on the backup operator."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from rancher_k3k.applier import ResourceRef
from rancher_k3k.config import RunConfig
from rancher_k3k.constants import BACKUP_METADATA_FILE, BACKUP_RESOURCE, RESTORE_RESOURCE
from rancher_k3k.errors import ConfigurationError
from rancher_k3k.poller import condition_failure, condition_ready


class OperationKind(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"

    @property
    def resource(self) -> str:
        return BACKUP_RESOURCE if self is OperationKind.BACKUP else RESTORE_RESOURCE


class OperationState(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    READY = "Ready"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (OperationState.READY, OperationState.FAILED)


def state_from_status(obj: dict | None) -> OperationState:
    """Derive a record's state from the operator-owned status."""
    if not obj or not (obj.get("status") or {}).get("conditions"):
        return OperationState.PENDING
    if condition_ready(obj):
        return OperationState.READY
    if condition_failure(obj) is not None:
        return OperationState.FAILED
    return OperationState.IN_PROGRESS


@dataclass
class OperationRecord:
    """What was submitted for a run and what the operator last reported.

    The state only ever moves by :meth:`observe`; the tool never sets it.
    """

    kind: OperationKind
    name: str
    created_at: datetime
    encryption_enabled: bool
    storage: dict | None = None
    schedule: str | None = None
    retention: int | None = None
    prune: bool = False
    backup_file: str | None = None
    state: OperationState = OperationState.PENDING
    filename: str | None = None
    message: str | None = field(default=None, compare=False)

    @classmethod
    def for_backup(cls, cfg: RunConfig, now: datetime | None = None) -> OperationRecord:
        if not cfg.backup_name:
            raise ConfigurationError("Backup name is not set")
        return cls(
            kind=OperationKind.BACKUP,
            name=cfg.backup_name,
            created_at=now or datetime.now(timezone.utc),
            encryption_enabled=cfg.encrypt,
            storage=storage_summary(cfg),
            schedule=cfg.backup_schedule,
            retention=cfg.backup_retention,
        )

    @classmethod
    def for_restore(cls, cfg: RunConfig, now: datetime | None = None) -> OperationRecord:
        if not cfg.restore_name:
            raise ConfigurationError("Restore name is not set")
        if not cfg.backup_file:
            raise ConfigurationError("--backup-file is required")
        return cls(
            kind=OperationKind.RESTORE,
            name=cfg.restore_name,
            created_at=now or datetime.now(timezone.utc),
            encryption_enabled=cfg.encrypt,
            storage=storage_summary(cfg),
            prune=cfg.restore_prune,
            backup_file=cfg.backup_file,
        )

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.kind.resource, self.name)

    def observe(self, obj: dict | None) -> OperationState:
        """Update state, filename and message from a status read."""
        self.state = state_from_status(obj)
        status = (obj or {}).get("status") or {}
        self.filename = status.get("filename") or self.filename
        self.message = condition_failure(obj) if obj else None
        return self.state


def storage_summary(cfg: RunConfig) -> dict | None:
    """Storage location without credentials."""
    if not cfg.uses_s3:
        return None
    return {
        "provider": "s3",
        "bucket": cfg.s3_bucket,
        "endpoint": cfg.s3_endpoint,
        "region": cfg.s3_region,
        "folder": cfg.s3_folder,
        "insecureTLS": cfg.s3_insecure_tls,
        "credentialRef": cfg.s3_cred_secret,
    }


def export_metadata(
    record: OperationRecord,
    output_dir: Path,
    *,
    cluster_type: str,
    rancher_version: str,
    hostname: str,
) -> Path:
    """Write the backup metadata sidecar next to where backups are tracked.

    Args:
        record: The completed backup record.
        output_dir: Directory to write into; created if missing.
        cluster_type: Detected cluster type.
        rancher_version: Rancher image tag at backup time.
        hostname: Rancher hostname at backup time.

    Returns:
        Path of the written file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    storage = record.storage or {}
    metadata = {
        "backup_timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "cluster_type": cluster_type,
        "rancher_version": rancher_version,
        "hostname": hostname,
        "backup_name": record.name,
        "backup_filename": record.filename or "unknown",
        "storage": {
            "type": storage.get("provider", "local"),
            "s3_bucket": storage.get("bucket") or "",
            "s3_endpoint": storage.get("endpoint") or "",
            "s3_folder": storage.get("folder") or "",
        },
    }
    path = output_dir / BACKUP_METADATA_FILE
    path.write_text(json.dumps(metadata, indent=2) + "\n")
    return path
