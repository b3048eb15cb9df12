"""GitHub REST API adapter — implements the RepositoryApi port."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from repo_tutor.domain.entities import FileContent, RemoteEntry, RepoMetadata
from repo_tutor.domain.exceptions import (
    ContentExtractionError,
    GitHubRateLimitError,
    RemoteTransportError,
    RepositoryAccessDeniedError,
    RepositoryNotFoundError,
)
from repo_tutor.domain.value_objects import RepoIdentifier

logger = logging.getLogger(__name__)

_GITHUB_API = "https://api.github.com"


class GitHubRestAdapter:
    """Concrete RepositoryApi backed by the GitHub v3 REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        api_url: str = _GITHUB_API,
    ) -> None:
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._api_headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "repo-tutor/1.0",
        }
        if token:
            self._api_headers["Authorization"] = f"Bearer {token}"

    async def fetch_metadata(self, repo: RepoIdentifier) -> RepoMetadata:
        """GET /repos/{owner}/{repo} → RepoMetadata."""
        resp = await self._api_get(f"/repos/{repo.owner}/{repo.repo}")
        data = _json_body(resp)
        if not isinstance(data, dict):
            raise ContentExtractionError(f"Unexpected metadata payload for {repo.full_name}")
        return RepoMetadata(
            owner=repo.owner,
            repo=repo.repo,
            default_branch=data.get("default_branch") or "main",
            description=data.get("description"),
            language=data.get("language"),
        )

    async def list_contents(
        self, repo: RepoIdentifier, path: str, ref: str
    ) -> list[RemoteEntry]:
        """GET /repos/{owner}/{repo}/contents/{path}?ref= → [RemoteEntry]."""
        resp = await self._api_get(self._contents_endpoint(repo, path), params={"ref": ref})
        data = _json_body(resp)
        items = data if isinstance(data, list) else [data]
        return [_to_entry(item) for item in items if isinstance(item, dict)]

    async def fetch_file_content(
        self, repo: RepoIdentifier, path: str, ref: str
    ) -> FileContent:
        """GET the contents endpoint for a single file and decode its payload."""
        resp = await self._api_get(self._contents_endpoint(repo, path), params={"ref": ref})
        data = _json_body(resp)
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise ContentExtractionError(f"{path} is not a file")

        raw = data.get("content")
        if raw is None:
            raise ContentExtractionError(f"File content not available for {path}")

        encoding = data.get("encoding") or "utf-8"
        if encoding == "base64":
            try:
                text = base64.b64decode(raw).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError) as exc:
                raise ContentExtractionError(
                    f"Could not decode base64 content of {path}: {exc}"
                ) from exc
        else:
            text = str(raw)

        return FileContent(path=path, content=text, encoding=encoding)

    @staticmethod
    def _contents_endpoint(repo: RepoIdentifier, path: str) -> str:
        suffix = quote(path.strip("/"), safe="/")
        return f"/repos/{repo.owner}/{repo.repo}/contents/{suffix}"

    async def _api_get(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform a GitHub API GET request with error translation."""
        url = f"{self._api_url}{endpoint}"
        try:
            resp = await self._client.get(
                url, headers=self._api_headers, params=params
            )
        except httpx.HTTPError as exc:
            raise RemoteTransportError(
                f"Network error fetching {url}: {exc}"
            ) from exc

        if resp.status_code == 200:
            return resp

        if resp.status_code == 404:
            raise RepositoryNotFoundError(
                f"Not found: {endpoint}. Make sure the repository is public "
                "and the branch exists."
            )

        if resp.status_code == 403:
            remaining = resp.headers.get("x-ratelimit-remaining", "")
            if remaining == "0":
                reset_raw = resp.headers.get("x-ratelimit-reset", "")
                try:
                    reset_str = datetime.fromtimestamp(int(reset_raw), tz=timezone.utc).strftime(
                        "%Y-%m-%d %H:%M:%S UTC"
                    )
                except (ValueError, OSError):
                    reset_str = reset_raw or "unknown"
                raise GitHubRateLimitError(
                    f"GitHub API rate limit exceeded. Resets at {reset_str}. "
                    "Set the GITHUB_TOKEN environment variable to increase the limit."
                )
            raise RepositoryAccessDeniedError(
                "Access denied. The repository may be private."
            )

        if resp.status_code == 429:
            raise GitHubRateLimitError("GitHub API rate limit exceeded (HTTP 429).")

        raise ContentExtractionError(
            f"GitHub API returned HTTP {resp.status_code} for {url}"
        )


def _to_entry(item: dict[str, Any]) -> RemoteEntry:
    return RemoteEntry(
        name=item.get("name", ""),
        path=item.get("path", ""),
        type=item.get("type", "file"),
        size=int(item.get("size") or 0),
        sha=item.get("sha", ""),
    )


def _json_body(resp: httpx.Response) -> Any:
    """Decode a 200 response, treating a non-JSON body as an extraction error."""
    try:
        return resp.json()
    except ValueError as exc:
        raise ContentExtractionError(
            f"GitHub API returned a non-JSON body for {resp.request.url}: {exc}"
        ) from exc
