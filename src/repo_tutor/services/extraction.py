"""Resilient extraction layer — turn collaborator text into validated records.

Every parser runs the same three phases:

1. **Locate** a fenced block tagged with the expected format, else a raw
   structural fragment.
2. **Decode** it (JSON, or the relationship line dialect).
3. **Validate & repair** the records, dropping what cannot be used.

Malformed-but-present input never raises: the parser returns the shape's
default value together with an error description.  Only ``None`` (a stage
that produced no output at all) raises :class:`MissingStageOutputError`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from repo_tutor.domain.entities import Abstraction, Relationship, RelationshipAnalysis
from repo_tutor.domain.exceptions import (
    ExtractionError,
    MalformedPayloadError,
    MissingStageOutputError,
    NoStructuredBlockFoundError,
)
from repo_tutor.services.relationship_scanner import scan_relationship_block

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DESCRIPTION = "No description provided"
DEFAULT_CATEGORY = "other"
FAILED_RELATIONSHIP_SUMMARY = "Failed to analyze relationships."
MISSING_RELATIONSHIP_SUMMARY = "No summary provided."

_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


@dataclass(frozen=True)
class Extraction(Generic[T]):
    """A parsed value plus the reason it fell back to a default, if it did."""

    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _require_output(text: str | None, stage: str) -> str:
    if text is None:
        raise MissingStageOutputError(f"Stage '{stage}' produced no output.")
    return text


# ── Locate ──────────────────────────────────────────────────────────────────


def find_fenced_block(text: str, *tags: str) -> str | None:
    """Return the body of the first ```` ```<tag> ```` block, if any."""
    alternatives = "|".join(re.escape(tag) for tag in tags)
    pattern = re.compile(
        r"```[ \t]*(?:" + alternatives + r")[ \t]*\r?\n(.*?)```",
        re.DOTALL | re.IGNORECASE,
    )
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def _balanced_object(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def find_json_fragment(text: str, required_key: str | None = None) -> str | None:
    """Find a raw ``{...}`` fragment in *text*.

    Prefers the first brace-balanced object that mentions *required_key*;
    falls back to the span between the first ``{`` and the last ``}``.
    """
    start = text.find("{")
    if start < 0:
        return None

    position = start
    while position >= 0:
        candidate = _balanced_object(text, position)
        if candidate is not None and (
            required_key is None or f'"{required_key}"' in candidate
        ):
            return candidate
        position = text.find("{", position + 1)

    end = text.rfind("}")
    return text[start : end + 1] if end > start else None


def find_keyed_line(text: str, key: str) -> int | None:
    """Offset of the first line that begins with ``<key>:``, if any."""
    match = re.search(rf"^[ \t]*{re.escape(key)}[ \t]*:", text, re.MULTILINE)
    return match.start() if match else None


def locate_json(text: str, required_key: str | None = None) -> str:
    """Locate a JSON payload: a ```` ```json ```` block, else a raw fragment."""
    block = find_fenced_block(text, "json")
    if block is not None and block.startswith(("{", "[")):
        return block
    stripped = text.strip()
    if stripped.startswith("[") and stripped.endswith("]"):
        return stripped

    fragment = find_json_fragment(block if block is not None else text, required_key)
    if fragment is None and block is not None:
        fragment = find_json_fragment(text, required_key)
    if fragment is None:
        start, end = text.find("["), text.rfind("]")
        if 0 <= start < end:
            fragment = text[start : end + 1]
    if fragment is None:
        raise NoStructuredBlockFoundError("No JSON block or object found in response.")
    return fragment


# ── Decode ──────────────────────────────────────────────────────────────────


def decode_json(payload: str) -> Any:
    """Parse *payload*, tolerating trailing commas before a closing bracket."""
    try:
        return json.loads(payload)
    except json.JSONDecodeError as first_error:
        repaired = _TRAILING_COMMA_RE.sub(r"\1", payload)
        if repaired != payload:
            try:
                return json.loads(repaired)
            except json.JSONDecodeError:
                pass
        raise MalformedPayloadError(f"Invalid JSON in response: {first_error}") from first_error


def coerce_index(value: Any) -> int | None:
    """Read an index from an int, an integral float, or a string like ``"2 # Name"``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if match:
            return int(match.group(1))
    return None


# ── Abstractions ────────────────────────────────────────────────────────────


def _file_indices(raw: Any, file_count: int, name: str) -> tuple[int, ...]:
    if not isinstance(raw, list):
        return ()
    indices: list[int] = []
    for item in raw:
        index = coerce_index(item)
        if index is None or not 0 <= index < file_count:
            logger.warning("Abstraction %r: dropping invalid file index %r", name, item)
            continue
        if index not in indices:
            indices.append(index)
    return tuple(indices)


def parse_abstractions(text: str | None, file_count: int) -> Extraction[tuple[Abstraction, ...]]:
    """Parse the identify-abstractions response.

    Accepts ``{"abstractions": [...]}`` or a bare list.  Entries without a
    name are dropped; file indices outside ``[0, file_count)`` are dropped.
    """
    text = _require_output(text, "identify-abstractions")
    try:
        payload = decode_json(locate_json(text, "abstractions"))
    except ExtractionError as exc:
        logger.warning("Could not extract abstractions: %s", exc)
        return Extraction((), str(exc))

    entries = payload.get("abstractions") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        return Extraction((), "Response has no 'abstractions' list.")

    abstractions: list[Abstraction] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Dropping non-object abstraction entry: %r", entry)
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            logger.warning("Dropping abstraction without a name: %r", entry)
            continue
        name = name.strip()

        description = entry.get("description")
        if not isinstance(description, str) or not description.strip():
            description = DEFAULT_DESCRIPTION
        category = entry.get("category")
        if not isinstance(category, str) or not category.strip():
            category = DEFAULT_CATEGORY

        raw_indices = entry.get("file_indices", entry.get("files"))
        abstractions.append(
            Abstraction(
                name=name,
                description=description.strip(),
                category=category.strip(),
                file_indices=_file_indices(raw_indices, file_count, name),
            )
        )

    if not abstractions:
        return Extraction((), "Response contained no usable abstractions.")
    return Extraction(tuple(abstractions))


# ── Relationships ───────────────────────────────────────────────────────────


def _relationship_payload(text: str) -> Any:
    if find_fenced_block(text, "json") is not None:
        return decode_json(locate_json(text, "relationships"))

    yaml_block = find_fenced_block(text, "yaml", "yml")
    if yaml_block is not None:
        return scan_relationship_block(yaml_block).as_payload()

    keyed = find_keyed_line(text, "summary")
    brace = text.find("{")
    if keyed is not None and (brace < 0 or keyed < brace):
        return scan_relationship_block(text[keyed:]).as_payload()

    return decode_json(locate_json(text, "relationships"))


def _validate_relationships(entries: Iterable[Any], count: int) -> list[Relationship]:
    relationships: list[Relationship] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Dropping non-object relationship entry: %r", entry)
            continue
        source = entry.get("from", entry.get("from_abstraction"))
        target = entry.get("to", entry.get("to_abstraction"))
        label = entry.get("label")
        if source is None or target is None or label is None:
            logger.warning("Dropping relationship with missing keys: %r", entry)
            continue
        if not isinstance(label, str) or not label.strip():
            logger.warning("Dropping relationship with a non-text label: %r", entry)
            continue

        source_index = coerce_index(source)
        target_index = coerce_index(target)
        if source_index is None or target_index is None:
            logger.warning("Dropping relationship with non-numeric indices: %r", entry)
            continue
        if not (0 <= source_index < count and 0 <= target_index < count):
            logger.warning("Dropping relationship with out-of-range indices: %r", entry)
            continue
        relationships.append(Relationship(source_index, target_index, label.strip()))
    return relationships


def parse_relationships(
    text: str | None, abstraction_count: int
) -> Extraction[RelationshipAnalysis]:
    """Parse the analyze-relationships response (JSON or the line dialect)."""
    text = _require_output(text, "analyze-relationships")
    default = RelationshipAnalysis(summary=FAILED_RELATIONSHIP_SUMMARY)
    try:
        payload = _relationship_payload(text)
    except ExtractionError as exc:
        logger.warning("Could not extract relationships: %s", exc)
        return Extraction(default, str(exc))

    if not isinstance(payload, dict):
        return Extraction(default, "Relationship payload is not an object.")
    entries = payload.get("relationships")
    if not isinstance(entries, list):
        return Extraction(default, "Response has no 'relationships' list.")

    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = MISSING_RELATIONSHIP_SUMMARY

    relationships = _validate_relationships(entries, abstraction_count)
    return Extraction(RelationshipAnalysis(summary.strip(), tuple(relationships)))


# ── Chapter order ───────────────────────────────────────────────────────────


def repair_order(entries: Iterable[Any], count: int) -> tuple[int, ...]:
    """Turn any list into a permutation of ``range(count)``.

    Non-numeric, out-of-range and duplicate entries are dropped (first
    occurrence wins); every missing index is then appended in ascending
    order.
    """
    order: list[int] = []
    seen: set[int] = set()
    for item in entries:
        index = coerce_index(item)
        if index is None or not 0 <= index < count:
            logger.warning("Dropping invalid chapter index %r", item)
            continue
        if index in seen:
            logger.warning("Dropping duplicate chapter index %d", index)
            continue
        order.append(index)
        seen.add(index)

    missing = [i for i in range(count) if i not in seen]
    if missing:
        logger.warning("Appending chapter indices missing from the order: %s", missing)
    return tuple(order + missing)


def parse_chapter_order(text: str | None, abstraction_count: int) -> Extraction[tuple[int, ...]]:
    """Parse the order-chapters response; failure yields the identity order."""
    text = _require_output(text, "order-chapters")
    identity = tuple(range(abstraction_count))
    try:
        payload = decode_json(locate_json(text, "order"))
    except ExtractionError as exc:
        logger.warning("Could not extract chapter order: %s", exc)
        return Extraction(identity, str(exc))

    entries = payload.get("order") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        return Extraction(identity, "Response has no 'order' list.")
    return Extraction(repair_order(entries, abstraction_count))
