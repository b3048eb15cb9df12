"""FastAPI dependency injection wiring."""

from __future__ import annotations

from functools import lru_cache

import httpx

from repo_tutor.infrastructure.artifact_store import ArtifactStore
from repo_tutor.infrastructure.config import Settings, get_settings
from repo_tutor.infrastructure.github_rest_adapter import GitHubRestAdapter
from repo_tutor.infrastructure.openai_adapter import OpenAIAdapter
from repo_tutor.services.pipeline import TutorialPipeline
from repo_tutor.services.repo_fetcher import RepositoryFetcher

_http_client: httpx.AsyncClient | None = None
_openai_adapter: OpenAIAdapter | None = None


async def startup() -> None:
    """Initialise shared resources — called from the lifespan context manager."""
    global _http_client, _openai_adapter  # noqa: PLW0603

    settings = get_settings()
    _http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
    _openai_adapter = OpenAIAdapter(
        api_key=settings.openai_api_key.get_secret_value(),
        model=settings.openai_model,
        default_temperature=settings.openai_temperature,
    )


async def shutdown() -> None:
    """Release shared resources."""
    global _http_client, _openai_adapter  # noqa: PLW0603

    if _http_client:
        await _http_client.aclose()
        _http_client = None
    if _openai_adapter:
        await _openai_adapter.close()
        _openai_adapter = None


@lru_cache(maxsize=1)
def _settings() -> Settings:
    return get_settings()


def get_fetcher() -> RepositoryFetcher:
    """Build a repository fetcher over the shared HTTP client."""
    settings = _settings()

    assert _http_client is not None, "startup() was not called"

    token = settings.github_token.get_secret_value() if settings.github_token else None
    github_adapter = GitHubRestAdapter(
        client=_http_client, token=token, api_url=settings.github_api_url
    )
    return RepositoryFetcher(github_adapter, max_concurrency=settings.fetch_concurrency)


def get_pipeline() -> TutorialPipeline:
    """Build the pipeline use case with injected adapters."""
    settings = _settings()

    assert _openai_adapter is not None, "startup() was not called"

    return TutorialPipeline(
        fetcher=get_fetcher(),
        llm_gateway=_openai_adapter,
        max_files=settings.max_files_to_analyze,
        max_abstractions=settings.max_abstractions,
        max_context_tokens=settings.max_context_tokens,
        llm_timeout=settings.llm_timeout_seconds,
        relationship_format=settings.relationship_format,
        language=settings.language,
        temperature=settings.openai_temperature,
    )


def get_artifact_store() -> ArtifactStore:
    return ArtifactStore(_settings().data_dir)
