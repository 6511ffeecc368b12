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

"""Idempotent server-side apply of rendered manifests."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import yaml

from rancher_k3k import logger
from rancher_k3k.constants import FIELD_MANAGER
from rancher_k3k.errors import ApplyError
from rancher_k3k.kube import Kubectl
from rancher_k3k.templates import RenderedManifest


class ApplyMode(Enum):
    """Per-stage policy for objects that already exist."""

    SKIP_IF_PRESENT = "skip-if-present"
    REPLACE = "replace"


class ApplyResult(Enum):
    CREATED = "created"
    APPLIED = "applied"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ResourceRef:
    """Kind, name and namespace of one API object."""

    kind: str
    name: str
    namespace: str | None = None

    @classmethod
    def from_document(cls, doc: dict) -> ResourceRef:
        group = doc.get("apiVersion", "").rpartition("/")[0]
        kind = doc["kind"].lower()
        meta = doc.get("metadata") or {}
        return cls(f"{kind}.{group}" if group else kind, meta["name"], meta.get("namespace"))

    def get_args(self) -> list[str]:
        args = [self.kind, self.name]
        if self.namespace:
            args += ["-n", self.namespace]
        return args

    def __str__(self) -> str:
        where = f"{self.namespace}/" if self.namespace else ""
        return f"{self.kind} {where}{self.name}"


def manifest_from_documents(name: str, docs: list[dict]) -> RenderedManifest:
    """Wrap generated documents as a manifest the applier accepts."""
    return RenderedManifest(name, yaml.safe_dump_all(docs, sort_keys=False))


def apply_manifest(
    kubectl: Kubectl,
    manifest: RenderedManifest,
    mode: ApplyMode = ApplyMode.REPLACE,
) -> ApplyResult:
    """Create or reconcile every object in a manifest.

    The manifest goes to kubectl on stdin and is never written to disk.
    There is no retry here; callers decide whether to re-run a stage.

    Args:
        kubectl: kubectl bound to the target environment.
        manifest: Rendered manifest to submit.
        mode: ``SKIP_IF_PRESENT`` leaves existing objects alone when all of
            them already exist; ``REPLACE`` always applies.

    Returns:
        ``SKIPPED``, ``CREATED`` when any object was missing, else ``APPLIED``.

    Raises:
        ApplyError: If the manifest is empty or the API rejects it.
    """
    refs = [ResourceRef.from_document(doc) for doc in manifest.documents()]
    if not refs:
        raise ApplyError(f"{manifest.template} rendered no objects")

    present = [kubectl.exists(ref.kind, ref.name, ref.namespace) for ref in refs]
    if mode is ApplyMode.SKIP_IF_PRESENT and all(present):
        logger.info("Skipping %s: all objects already exist", manifest.template)
        return ApplyResult.SKIPPED

    ok, out, err = kubectl.run(
        ["apply", "--server-side", "--force-conflicts", f"--field-manager={FIELD_MANAGER}", "-f", "-"],
        input=manifest.text,
    )
    if not ok:
        raise ApplyError(f"Failed to apply {manifest.template}: {err.strip() or 'unknown error'}")
    logger.debug("Applied %s: %s", manifest.template, out.strip())
    return ApplyResult.APPLIED if all(present) else ApplyResult.CREATED
