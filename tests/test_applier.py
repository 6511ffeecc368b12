"""Tests for idempotent manifest apply."""
from __future__ import annotations

import pytest

from fakes import FakeKubectl
from rancher_k3k.applier import ApplyMode, ApplyResult, ResourceRef, apply_manifest, manifest_from_documents
from rancher_k3k.errors import ApplyError
from rancher_k3k.templates import RenderedManifest

CONFIGMAP = {
    "apiVersion": "v1",
    "kind": "ConfigMap",
    "metadata": {"name": "settings", "namespace": "cattle-system"},
    "data": {"a": "1"},
}


def _manifest() -> RenderedManifest:
    return manifest_from_documents("settings", [CONFIGMAP])


def test_missing_object_is_created() -> None:
    kubectl = FakeKubectl()

    result = apply_manifest(kubectl, _manifest(), ApplyMode.SKIP_IF_PRESENT)

    assert result is ApplyResult.CREATED
    assert kubectl.get("configmap", "settings", "cattle-system")["data"] == {"a": "1"}


def test_skip_if_present_leaves_existing_objects_alone() -> None:
    """A second apply in skip mode makes no write."""
    kubectl = FakeKubectl()
    apply_manifest(kubectl, _manifest(), ApplyMode.SKIP_IF_PRESENT)

    result = apply_manifest(kubectl, _manifest(), ApplyMode.SKIP_IF_PRESENT)

    assert result is ApplyResult.SKIPPED
    assert len(kubectl.applied) == 1


def test_replace_reapplies_existing_objects() -> None:
    kubectl = FakeKubectl()
    apply_manifest(kubectl, _manifest())

    result = apply_manifest(kubectl, _manifest(), ApplyMode.REPLACE)

    assert result is ApplyResult.APPLIED
    assert len(kubectl.applied) == 2
    assert kubectl.commands[-1][:2] == ["apply", "--server-side"]


def test_rejected_apply_raises() -> None:
    """An API rejection is an ApplyError carrying kubectl's message."""
    kubectl = FakeKubectl(reject_apply=True)

    with pytest.raises(ApplyError, match="admission webhook denied"):
        apply_manifest(kubectl, _manifest())


def test_empty_manifest_raises() -> None:
    with pytest.raises(ApplyError, match="rendered no objects"):
        apply_manifest(FakeKubectl(), RenderedManifest("empty.yaml", "# nothing\n"))


def test_resource_ref_from_document() -> None:
    """Group-qualified kinds keep their API group."""
    ref = ResourceRef.from_document({
        "apiVersion": "resources.cattle.io/v1",
        "kind": "Backup",
        "metadata": {"name": "nightly"},
    })

    assert ref == ResourceRef("backup.resources.cattle.io", "nightly")
    assert ref.get_args() == ["backup.resources.cattle.io", "nightly"]
    assert str(ResourceRef("secret", "s3", "cattle-resources-system")) == "secret cattle-resources-system/s3"
