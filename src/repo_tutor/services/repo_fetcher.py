"""Repository fetcher — walk the remote directory API into a FileNode tree.

The walk is depth-first.  Sibling visits are independent, so they run
concurrently; every remote call goes through a shared semaphore so the
number of in-flight requests never exceeds ``max_concurrency``.

Only the root listing may fail the whole fetch.  Any other directory or
file failure is logged and becomes an empty subtree or an error marker.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from typing import TypeVar

from repo_tutor.domain.entities import (
    FetchOutcome,
    FileNode,
    NodeType,
    RemoteEntry,
    RepoMetadata,
    RepositorySnapshot,
    SourceFile,
)
from repo_tutor.domain.exceptions import RemoteUnavailableError
from repo_tutor.domain.ports.repository_api import RepositoryApi
from repo_tutor.domain.value_objects import RepoIdentifier
from repo_tutor.services.file_filter import is_admissible, is_ignored_directory

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_FILE_SIZE_BYTES = 1024 * 1024


def too_large_marker(size: int) -> str:
    return f"[File too large: {size} bytes]"


def fetch_error_marker(error: Exception) -> str:
    return f"[Error: Could not fetch file content - {error}]"


class RepositoryFetcher:
    """Builds the file tree of a remote repository.

    Parameters
    ----------
    api:
        Adapter implementing :class:`RepositoryApi`.
    max_concurrency:
        Upper bound on simultaneous remote requests.
    """

    def __init__(self, api: RepositoryApi, max_concurrency: int = 8) -> None:
        self._api = api
        self._max_concurrency = max(1, max_concurrency)

    # ── Public entry points ─────────────────────────────────────────────

    async def fetch(self, repo_identifier: str, branch: str | None = None) -> list[FileNode]:
        """Return the top-level nodes of the repository tree.

        Raises :class:`InvalidRepoIdentifierError` for an unparseable
        identifier and :class:`RemoteUnavailableError` when the branch
        cannot be resolved or the root listing fails.
        """
        snapshot = await self.snapshot(repo_identifier, branch)
        return list(snapshot.tree)

    async def snapshot(
        self, repo_identifier: str, branch: str | None = None
    ) -> RepositorySnapshot:
        """Like :meth:`fetch` but also report the resolved branch and counts."""
        repo = RepoIdentifier.parse(repo_identifier)
        sem = asyncio.Semaphore(self._max_concurrency)

        metadata = await self._resolve_metadata(repo, branch)
        branch = branch or metadata.default_branch
        logger.info("Fetching %s@%s", repo.full_name, branch)

        # The root listing is the only call allowed to fail the fetch.
        async with sem:
            root_entries = await self._api.list_contents(repo, "", branch)

        tree = await self._visit_entries(repo, branch, root_entries, sem)
        files, directories = count_nodes(tree)
        logger.info(
            "Fetched %s@%s: %d files, %d directories",
            repo.full_name, branch, files, directories,
        )
        return RepositorySnapshot(
            owner=repo.owner,
            repo=repo.repo,
            branch=branch,
            tree=tuple(tree),
            total_files=files,
            total_directories=directories,
            description=metadata.description,
            language=metadata.language,
        )

    async def _resolve_metadata(
        self, repo: RepoIdentifier, branch: str | None
    ) -> RepoMetadata:
        """Metadata is required to resolve a missing branch, optional otherwise."""
        if not branch:
            return await self._api.fetch_metadata(repo)
        try:
            return await self._api.fetch_metadata(repo)
        except RemoteUnavailableError as exc:
            logger.info("No metadata for %s, continuing on %s: %s", repo.full_name, branch, exc)
            return RepoMetadata(owner=repo.owner, repo=repo.repo, default_branch=branch)

    # ── Tree walk ───────────────────────────────────────────────────────

    async def _visit_entries(
        self,
        repo: RepoIdentifier,
        branch: str,
        entries: Iterable[RemoteEntry],
        sem: asyncio.Semaphore,
    ) -> list[FileNode]:
        visits = [self._visit(repo, branch, entry, sem) for entry in entries]
        return list(await asyncio.gather(*visits))

    async def _visit(
        self,
        repo: RepoIdentifier,
        branch: str,
        entry: RemoteEntry,
        sem: asyncio.Semaphore,
    ) -> FileNode:
        if entry.type == "dir":
            return await self._visit_directory(repo, branch, entry, sem)
        return await self._visit_file(repo, branch, entry, sem)

    async def _visit_directory(
        self,
        repo: RepoIdentifier,
        branch: str,
        entry: RemoteEntry,
        sem: asyncio.Semaphore,
    ) -> FileNode:
        node = FileNode(
            name=entry.name,
            path=entry.path,
            type=NodeType.DIRECTORY,
            size=entry.size,
            children=(),
        )
        if is_ignored_directory(entry.path):
            return node

        try:
            entries = await _limited(sem, lambda: self._api.list_contents(repo, entry.path, branch))
        except Exception as exc:
            logger.warning("Failed to list %s, keeping an empty subtree: %s", entry.path, exc)
            return replace(node, outcome=FetchOutcome.FAILED)

        children = await self._visit_entries(repo, branch, entries, sem)
        return replace(node, outcome=FetchOutcome.FETCHED, children=tuple(children))

    async def _visit_file(
        self,
        repo: RepoIdentifier,
        branch: str,
        entry: RemoteEntry,
        sem: asyncio.Semaphore,
    ) -> FileNode:
        node = FileNode(
            name=entry.name,
            path=entry.path,
            type=NodeType.FILE,
            size=entry.size,
        )
        if entry.size >= MAX_FILE_SIZE_BYTES:
            return replace(node, outcome=FetchOutcome.TOO_LARGE, content=too_large_marker(entry.size))
        if entry.type != "file" or not is_admissible(entry.path):
            return node

        try:
            fetched = await _limited(
                sem, lambda: self._api.fetch_file_content(repo, entry.path, branch)
            )
        except Exception as exc:
            logger.warning("Failed to fetch content for %s: %s", entry.path, exc)
            return replace(node, outcome=FetchOutcome.FAILED, content=fetch_error_marker(exc))

        return replace(node, outcome=FetchOutcome.FETCHED, content=fetched.content)


# ── Helpers ─────────────────────────────────────────────────────────────────


async def _limited(sem: asyncio.Semaphore, call: Callable[[], Awaitable[T]]) -> T:
    async with sem:
        return await call()


def flatten_files(tree: Iterable[FileNode]) -> list[SourceFile]:
    """Depth-first list of every successfully fetched file."""
    files: list[SourceFile] = []
    for node in tree:
        if node.is_directory:
            files.extend(flatten_files(node.children or ()))
        elif node.outcome is FetchOutcome.FETCHED and node.content is not None:
            files.append(SourceFile(path=node.path, content=node.content))
    return files


def count_nodes(tree: Iterable[FileNode]) -> tuple[int, int]:
    """Return ``(files, directories)`` across the whole tree."""
    files = directories = 0
    for node in tree:
        if node.is_directory:
            directories += 1
            sub_files, sub_dirs = count_nodes(node.children or ())
            files += sub_files
            directories += sub_dirs
        else:
            files += 1
    return files, directories
