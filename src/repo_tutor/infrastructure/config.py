"""Application configuration — loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: SecretStr
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    github_token: SecretStr | None = None
    github_api_url: str = "https://api.github.com"
    fetch_concurrency: int = 8
    max_files_to_analyze: int = 20
    max_abstractions: int = 7
    max_context_tokens: int = 32_000
    llm_timeout_seconds: float = 120.0
    relationship_format: Literal["json", "yaml"] = "json"
    language: str = "english"
    data_dir: str = "data"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()  # type: ignore[call-arg]
