"""Domain exception hierarchy.

Each exception maps to a specific HTTP status code at the interface layer.
Inner layers raise these; the outermost error-handler translates them.
"""

from __future__ import annotations


class RepoTutorError(Exception):
    """Base exception for the entire application."""


# ── Input validation ────────────────────────────────────────────────────────


class InvalidRepoIdentifierError(RepoTutorError):
    """The identifier cannot be decomposed into an owner and a repository name."""


# ── Remote repository API errors ────────────────────────────────────────────


class RemoteUnavailableError(RepoTutorError):
    """A call to the remote repository API failed."""


class RepositoryNotFoundError(RemoteUnavailableError):
    """The repository or path does not exist or is not accessible (404)."""


class RepositoryAccessDeniedError(RemoteUnavailableError):
    """Access to the repository was denied (403)."""


class GitHubRateLimitError(RemoteUnavailableError):
    """GitHub API rate limit exceeded (429 / 403 with rate-limit header)."""


class RemoteTransportError(RemoteUnavailableError):
    """The request never produced an HTTP response."""


class ContentExtractionError(RemoteUnavailableError):
    """Unexpected status code or a payload that could not be decoded."""


# ── LLM errors ──────────────────────────────────────────────────────────────


class LlmError(RepoTutorError):
    """Any error originating from the LLM provider."""


# ── Extraction errors ───────────────────────────────────────────────────────


class ExtractionError(RepoTutorError):
    """Collaborator output could not be turned into structured records."""


class NoStructuredBlockFoundError(ExtractionError):
    """Neither a fenced block nor a raw structural fragment was present."""


class MalformedPayloadError(ExtractionError):
    """A structured block was found but could not be decoded."""


class MissingStageOutputError(ExtractionError):
    """The stage produced no output at all (``None``)."""


# ── Pipeline errors ─────────────────────────────────────────────────────────


class PipelineContractError(RepoTutorError):
    """A stage started without a field its predecessor must have produced."""


# ── Artifact storage ────────────────────────────────────────────────────────


class ArtifactStoreError(RepoTutorError):
    """An artifact could not be written, read or validated."""


class ArtifactNotFoundError(ArtifactStoreError):
    """No artifact is stored under the requested name."""
