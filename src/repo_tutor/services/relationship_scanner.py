"""Line scanner for the YAML-like relationship block.

Recovers exactly two shapes and nothing else::

    summary: |
      A multi-line description of the project.
    relationships:
      - from_abstraction: 0 # Parser
        to_abstraction: 1 # Lexer
        label: "Uses"

``summary`` may also be an inline scalar.  Any other construct (nested
mappings, flow collections, anchors) is ignored, never interpreted.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^(?P<key>[A-Za-z_][\w\- ]*?)\s*:(?:\s*(?P<value>.*))?$")
_BLOCK_INDICATORS = {"", "|", "|-", "|+", ">", ">-", ">+"}
_TOP_LEVEL_KEYS = {"summary", "relationships"}


class ScanState(str, Enum):
    SEEKING_KEY = "seeking-key"
    IN_MULTILINE_SCALAR = "in-multiline-scalar"
    IN_LIST_ITEM = "in-list-item"


@dataclass
class ScannedBlock:
    summary: str | None = None
    relationships: list[dict[str, str]] | None = None

    def as_payload(self) -> dict[str, Any]:
        return {"summary": self.summary, "relationships": self.relationships}


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def _join_scalar(lines: list[str], style: str) -> str:
    body = textwrap.dedent("\n".join(lines)).strip()
    if style != ">":
        return body
    paragraphs = re.split(r"\n\s*\n", body)
    return "\n".join(" ".join(p.split()) for p in paragraphs)


def scan_relationship_block(text: str) -> ScannedBlock:
    """Scan *text* line by line into a :class:`ScannedBlock`.

    ``relationships`` stays ``None`` when the key never appears, so the
    caller can tell an empty list from a missing one.
    """
    block = ScannedBlock()
    state = ScanState.SEEKING_KEY
    current: dict[str, str] | None = None
    scalar_lines: list[str] = []
    scalar_indent = 0
    scalar_style = "|"

    for line in text.splitlines():
        stripped = line.strip()
        indent = len(line) - len(line.lstrip())

        if state is ScanState.IN_MULTILINE_SCALAR:
            if stripped and indent <= scalar_indent and _KEY_RE.match(stripped):
                block.summary = _join_scalar(scalar_lines, scalar_style)
                state = ScanState.SEEKING_KEY
            else:
                scalar_lines.append(line)
                continue

        if not stripped or stripped.startswith(("#", "```", "---")):
            continue

        if stripped == "-" or stripped.startswith("- "):
            current = {}
            if block.relationships is None:
                block.relationships = []
            block.relationships.append(current)
            state = ScanState.IN_LIST_ITEM
            stripped = stripped[1:].strip()
            if not stripped:
                continue

        match = _KEY_RE.match(stripped)
        if match is None:
            continue
        key = match["key"].strip().lower()
        value = (match["value"] or "").strip()

        top_level = key in _TOP_LEVEL_KEYS and (state is not ScanState.IN_LIST_ITEM or indent == 0)
        if top_level and key == "summary":
            current = None
            if value in _BLOCK_INDICATORS:
                state = ScanState.IN_MULTILINE_SCALAR
                scalar_lines = []
                scalar_indent = indent
                scalar_style = value[:1] or "|"
            else:
                block.summary = _unquote(value)
                state = ScanState.SEEKING_KEY
        elif top_level:
            current = None
            state = ScanState.SEEKING_KEY
            if block.relationships is None:
                block.relationships = []
        elif current is not None:
            current[key] = _unquote(value)
        else:
            logger.debug("Ignoring stray key %r outside a list item", key)

    if state is ScanState.IN_MULTILINE_SCALAR:
        block.summary = _join_scalar(scalar_lines, scalar_style)

    return block
