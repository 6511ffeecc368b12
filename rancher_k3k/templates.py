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

"""Typed manifest template renderer.

Templates are plain text with three kinds of markup:

* ``__KEY__`` scalar tokens, replaced literally within their line.
* A line holding nothing but ``__KEY__`` whose value is a :class:`Block`;
  every line of the block is emitted with the slot's indentation, and an
  empty block removes the line.
* ``#@if name`` / ``#@if !name`` ... ``#@endif`` comment lines delimiting a
  region that is kept whole or dropped whole. Regions may nest.

The renderer never parses the document format it is producing.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

import yaml

from rancher_k3k.constants import MANIFESTS_DIR
from rancher_k3k.errors import TemplateError

TOKEN_RE = re.compile(r"__([A-Z][A-Z0-9_]*)__")
SLOT_RE = re.compile(r"^(\s*)__([A-Z][A-Z0-9_]*)__\s*$")
IF_RE = re.compile(r"^\s*#@if\s+(!?)([a-z][a-z0-9_]*)\s*$")
ENDIF_RE = re.compile(r"^\s*#@endif\s*$")
MARKER_RE = re.compile(r"#@(if|endif)\b")


@dataclass(frozen=True)
class Scalar:
    """A single-line value substituted in place of a token."""

    value: str


@dataclass(frozen=True)
class Block:
    """A multi-line value injected as whole lines at a slot."""

    value: str

    @property
    def lines(self) -> list[str]:
        return self.value.splitlines() if self.value.strip() else []


Value = Union[Scalar, Block, str]


@dataclass(frozen=True)
class Line:
    text: str
    number: int


@dataclass(frozen=True)
class Region:
    predicate: str
    negate: bool
    children: tuple[Union[Line, "Region"], ...]
    number: int


@dataclass(frozen=True)
class RenderedManifest:
    """A fully rendered manifest, ready to apply and never mutated."""

    template: str
    text: str

    def documents(self) -> list[dict]:
        """Parse the manifest into its non-empty YAML documents."""
        return [doc for doc in yaml.safe_load_all(self.text) if doc]


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")


def parse_template(source: str, name: str = "<template>") -> tuple[Union[Line, Region], ...]:
    """Parse template text into a tree of lines and conditional regions.

    Args:
        source: Template text.
        name: Template name used in error messages.

    Returns:
        The top-level nodes, in source order.

    Raises:
        TemplateError: If ``#@if``/``#@endif`` markers are unbalanced or malformed.
    """
    stack: list[tuple[str, bool, int, list]] = [("", False, 0, [])]
    for number, text in enumerate(source.splitlines(), start=1):
        opening = IF_RE.match(text)
        if opening:
            stack.append((opening.group(2), opening.group(1) == "!", number, []))
            continue
        if ENDIF_RE.match(text):
            if len(stack) == 1:
                raise TemplateError(f"{name}:{number}: #@endif without matching #@if")
            predicate, negate, start, children = stack.pop()
            stack[-1][3].append(Region(predicate, negate, tuple(children), start))
            continue
        if MARKER_RE.search(text):
            raise TemplateError(f"{name}:{number}: malformed conditional marker: {text.strip()}")
        stack[-1][3].append(Line(text, number))
    if len(stack) > 1:
        raise TemplateError(f"{name}:{stack[-1][2]}: #@if {stack[-1][0]} is never closed")
    return tuple(stack[0][3])


def _as_value(raw: Value) -> Scalar | Block:
    return Scalar(raw) if isinstance(raw, str) else raw


def _substitute(line: Line, values: Mapping[str, Value], name: str) -> str:
    """Replace every token in *line*; values are inserted literally."""
    comment = _is_comment(line.text)

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in values:
            if comment:
                return match.group(0)
            raise TemplateError(f"{name}:{line.number}: no value for placeholder __{key}__")
        value = _as_value(values[key])
        if isinstance(value, Block):
            raise TemplateError(f"{name}:{line.number}: block value __{key}__ used inline")
        if "\n" in value.value:
            raise TemplateError(f"{name}:{line.number}: scalar __{key}__ contains a newline")
        return value.value

    return TOKEN_RE.sub(replace, line.text)


def _skeleton(line: Line, values: Mapping[str, Value]) -> str:
    """The template-owned part of *line*, with substituted tokens removed."""
    return TOKEN_RE.sub(lambda match: "" if match.group(1) in values else match.group(0), line.text)


def _evaluate(
    nodes: tuple[Union[Line, Region], ...],
    values: Mapping[str, Value],
    conditions: Mapping[str, bool],
    name: str,
    out: list[tuple[str, str]],
) -> None:
    """Append (rendered, skeleton) pairs for every emitted line to *out*."""
    for node in nodes:
        if isinstance(node, Region):
            if node.predicate not in conditions:
                raise TemplateError(f"{name}:{node.number}: no value for condition '{node.predicate}'")
            if bool(conditions[node.predicate]) != node.negate:
                _evaluate(node.children, values, conditions, name, out)
            continue
        slot = SLOT_RE.match(node.text)
        if slot and isinstance(values.get(slot.group(2)), Block):
            indent = slot.group(1)
            out.extend((f"{indent}{text}" if text else "", "") for text in values[slot.group(2)].lines)
            continue
        out.append((_substitute(node, values, name), _skeleton(node, values)))


def render(
    source: str,
    values: Mapping[str, Value],
    conditions: Mapping[str, bool] | None = None,
    name: str = "<template>",
) -> str:
    """Render template text against scalar/block values and region predicates.

    Args:
        source: Template text.
        values: Placeholder key to value. Plain strings count as scalars.
        conditions: Region predicate name to boolean.
        name: Template name used in error messages.

    Returns:
        The rendered text, ending with a single newline.

    Raises:
        TemplateError: On a missing value or predicate, a misused block, or
            any marker left in a non-comment line of the output.
    """
    out: list[tuple[str, str]] = []
    _evaluate(parse_template(source, name), values, conditions or {}, name, out)
    for number, (text, skeleton) in enumerate(out, start=1):
        if _is_comment(skeleton):
            continue
        leftover = TOKEN_RE.search(skeleton) or MARKER_RE.search(skeleton)
        if leftover:
            raise TemplateError(f"{name}: unresolved marker '{leftover.group(0)}' in output line {number}")
    return "\n".join(text for text, _ in out).rstrip("\n") + "\n"


def render_manifest(
    template: str,
    values: Mapping[str, Value],
    conditions: Mapping[str, bool] | None = None,
) -> RenderedManifest:
    """Render one of the packaged manifest templates by file name.

    Raises:
        TemplateError: If the template does not exist or fails to render.
    """
    path = MANIFESTS_DIR / template
    if not path.is_file():
        raise TemplateError(f"Unknown manifest template: {template}")
    return RenderedManifest(template, render(path.read_text(), values, conditions, name=template))


def quote(value: object) -> str:
    """Quote a scalar for a YAML double-quoted context."""
    return json.dumps(str(value))
