"""Port: remote repository API — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Protocol

from repo_tutor.domain.entities import FileContent, RemoteEntry, RepoMetadata
from repo_tutor.domain.value_objects import RepoIdentifier


class RepositoryApi(Protocol):
    """Abstract contract for read-only access to a hosted repository.

    Implementations raise subclasses of
    :class:`~repo_tutor.domain.exceptions.RemoteUnavailableError` so that
    not-found, rate-limit and transport failures stay distinguishable.
    """

    async def fetch_metadata(self, repo: RepoIdentifier) -> RepoMetadata:
        """Return high-level repository metadata (including the default branch)."""
        ...

    async def list_contents(
        self, repo: RepoIdentifier, path: str, ref: str
    ) -> list[RemoteEntry]:
        """List a directory; a single-file response comes back as one entry."""
        ...

    async def fetch_file_content(
        self, repo: RepoIdentifier, path: str, ref: str
    ) -> FileContent:
        """Return the decoded text content of a single file."""
        ...
