"""Flat JSON file store for produced pipeline results."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

from repo_tutor.domain.entities import RESULT_FIELDS
from repo_tutor.domain.exceptions import ArtifactNotFoundError, ArtifactStoreError

logger = logging.getLogger(__name__)

_FILE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*\.json$")


class ArtifactStore:
    """Stores result documents as ``<data_dir>/<file_name>``.

    File names are plain ``*.json`` names; anything containing a path
    separator is rejected.
    """

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, file_name: str) -> Path:
        if not _FILE_NAME_RE.match(file_name) or ".." in file_name:
            raise ArtifactStoreError(
                f"Invalid artifact name '{file_name}'. Expected a plain '*.json' file name."
            )
        return self.data_dir / file_name

    def save(self, file_name: str, document: dict[str, Any] | str) -> Path:
        """Write *document* (a mapping or a JSON string) atomically."""
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as exc:
                raise ArtifactStoreError(f"Artifact content is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise ArtifactStoreError("Artifact content must be a JSON object.")

        path = self.path_for(file_name)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise ArtifactStoreError(f"Could not save {file_name}: {exc}") from exc
        logger.info("Saved artifact %s", path)
        return path

    def load(self, file_name: str) -> dict[str, Any]:
        """Read an artifact back; it must carry every result field."""
        path = self.path_for(file_name)
        if not path.is_file():
            raise ArtifactNotFoundError(f"File not found: {file_name}")
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ArtifactStoreError(f"Could not read {file_name}: {exc}") from exc

        if not isinstance(document, dict):
            raise ArtifactStoreError(f"{file_name} does not contain a JSON object.")
        missing = sorted(RESULT_FIELDS - document.keys())
        if missing:
            raise ArtifactStoreError(
                f"{file_name} is missing result fields: {', '.join(missing)}"
            )
        return document

    def list_names(self) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(p.name for p in self.data_dir.glob("*.json"))
