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

"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations


class RancherK3kError(RuntimeError):
    """Base class for all errors that abort a run."""


class ConfigurationError(RancherK3kError):
    """Invalid or contradictory configuration, detected before any API call."""


class TemplateError(RancherK3kError):
    """A manifest template could not be rendered completely."""


class CredentialError(RancherK3kError):
    """Nested cluster credentials are missing, malformed, or do not work."""


class ApplyError(RancherK3kError):
    """The target API rejected or could not receive a create/update."""


class CommandNotFoundError(RancherK3kError):
    """A required CLI tool is not on PATH."""


class StageError(RancherK3kError):
    """A watched resource reported an explicit terminal failure."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.message = message


class StageTimeoutError(RancherK3kError):
    """A watched resource reached no terminal state before its deadline."""

    def __init__(self, stage: str, timeout: float, detail: str = "") -> None:
        text = f"Timed out waiting for {stage} after {timeout:g}s"
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)
        self.stage = stage
        self.timeout = timeout
