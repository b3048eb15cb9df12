"""API routes — thin controllers that delegate to the services."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from repo_tutor.infrastructure.artifact_store import ArtifactStore
from repo_tutor.interface.dependencies import get_artifact_store, get_fetcher, get_pipeline
from repo_tutor.interface.schemas import (
    AnalyzeRequest,
    SaveArtifactRequest,
    SaveArtifactResponse,
    TreeRequest,
)
from repo_tutor.services.pipeline import TutorialPipeline
from repo_tutor.services.repo_fetcher import RepositoryFetcher

router = APIRouter()

_REMOTE_ERRORS: dict[int | str, dict[str, Any]] = {
    422: {"description": "Invalid repository identifier"},
    403: {"description": "Repository is private"},
    404: {"description": "Repository not found"},
    429: {"description": "GitHub API rate limit exceeded"},
    502: {"description": "GitHub API unavailable"},
}


@router.post("/analyze", responses={422: _REMOTE_ERRORS[422]})
async def analyze(
    body: AnalyzeRequest,
    pipeline: TutorialPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Run the tutorial pipeline for a repository.

    Collaborator and fetch failures are reported inside the result's
    ``error`` and ``notes`` fields rather than as an HTTP error.
    """
    result = await pipeline.run(body.repo, branch=body.branch, language=body.language)
    return result.to_dict()


@router.post("/tree", responses=_REMOTE_ERRORS)
async def tree(
    body: TreeRequest,
    fetcher: RepositoryFetcher = Depends(get_fetcher),
) -> dict[str, Any]:
    """Return the fetched file tree of a repository."""
    snapshot = await fetcher.snapshot(body.repo, body.branch)
    return snapshot.to_dict()


@router.post(
    "/artifacts",
    response_model=SaveArtifactResponse,
    response_model_by_alias=True,
    responses={400: {"description": "Invalid file name or content"}},
)
def save_artifact(
    body: SaveArtifactRequest,
    store: ArtifactStore = Depends(get_artifact_store),
) -> SaveArtifactResponse:
    """Store a produced result under a plain ``*.json`` file name."""
    store.save(body.file_name, body.content)
    return SaveArtifactResponse(file_name=body.file_name)


@router.get("/artifacts")
def list_artifacts(store: ArtifactStore = Depends(get_artifact_store)) -> dict[str, list[str]]:
    return {"files": store.list_names()}


@router.get(
    "/artifacts/{file_name}",
    responses={
        400: {"description": "Invalid file name or stored content"},
        404: {"description": "File not found"},
    },
)
def load_artifact(
    file_name: str,
    store: ArtifactStore = Depends(get_artifact_store),
) -> dict[str, Any]:
    """Return a stored result."""
    return store.load(file_name)
