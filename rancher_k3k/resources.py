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

"""Builders for small Secret, ConfigMap and Namespace documents."""

from __future__ import annotations

import base64
import hashlib
import json

from rancher_k3k.constants import LABEL_MANAGED_BY


def _b64(data: bytes | str) -> str:
    raw = data.encode() if isinstance(data, str) else data
    return base64.b64encode(raw).decode()


def _metadata(name: str, namespace: str | None, annotations: dict[str, str] | None = None) -> dict:
    meta: dict = {"name": name, "labels": {LABEL_MANAGED_BY: "rancher-k3k"}}
    if namespace:
        meta["namespace"] = namespace
    if annotations:
        meta["annotations"] = dict(annotations)
    return meta


def namespace_manifest(name: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": _metadata(name, None)}


def secret_manifest(
    name: str,
    namespace: str,
    data: dict[str, bytes | str],
    secret_type: str = "Opaque",
    annotations: dict[str, str] | None = None,
) -> dict:
    """Secret document with base64-encoded *data*."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(name, namespace, annotations),
        "type": secret_type,
        "data": {key: _b64(value) for key, value in data.items()},
    }


def tls_secret_manifest(
    name: str,
    namespace: str,
    tls_crt_b64: str,
    tls_key_b64: str,
    annotations: dict[str, str] | None = None,
) -> dict:
    """``kubernetes.io/tls`` Secret from already-encoded certificate and key."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(name, namespace, annotations),
        "type": "kubernetes.io/tls",
        "data": {"tls.crt": tls_crt_b64, "tls.key": tls_key_b64},
    }


def basic_auth_secret_manifest(name: str, namespace: str, username: str, password: str) -> dict:
    return secret_manifest(
        name, namespace, {"username": username, "password": password}, "kubernetes.io/basic-auth"
    )


def docker_registry_secret_manifest(name: str, namespace: str, host: str, username: str, password: str) -> dict:
    """``kubernetes.io/dockerconfigjson`` Secret for one registry host."""
    config = {
        "auths": {
            host: {
                "username": username,
                "password": password,
                "auth": _b64(f"{username}:{password}"),
            }
        }
    }
    return secret_manifest(
        name, namespace, {".dockerconfigjson": json.dumps(config)}, "kubernetes.io/dockerconfigjson"
    )


def configmap_manifest(name: str, namespace: str, data: dict[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(name, namespace),
        "data": dict(data),
    }


def ca_checksum(pem: bytes, strategy: str = "raw") -> str:
    """SHA-256 of CA material.

    ``raw`` hashes the bytes as read. ``normalized`` strips surrounding
    whitespace and appends one newline first, so files differing only in
    trailing blank lines agree.
    """
    if strategy == "normalized":
        pem = pem.strip() + b"\n"
    elif strategy != "raw":
        raise ValueError(f"Unknown CA checksum strategy: {strategy}")
    return hashlib.sha256(pem).hexdigest()
