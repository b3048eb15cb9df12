"""Pydantic request / response DTOs for the API boundary."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TreeRequest(BaseModel):
    """Request body for ``POST /tree``."""

    repo: str
    branch: str | None = None

    @field_validator("repo")
    @classmethod
    def _must_not_be_empty(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "repo must not be empty."
            raise ValueError(msg)
        return stripped


class AnalyzeRequest(TreeRequest):
    """Request body for ``POST /analyze``."""

    language: str | None = None


class SaveArtifactRequest(BaseModel):
    """Request body for ``POST /artifacts``.

    ``content`` may be the result object itself or its JSON text.
    """

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    content: dict[str, Any] | str


class SaveArtifactResponse(BaseModel):
    success: bool = True
    file_name: str = Field(serialization_alias="fileName")


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    status: str = "error"
    message: str
