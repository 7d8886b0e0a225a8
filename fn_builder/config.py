"""Configuration settings for fn_builder.

Loaded with pydantic-settings from ``FN_BUILDER_*`` environment variables (and
an optional ``.env`` file). A few settings also honour the variable names the
hosting platform's tooling already uses (``NPM_AUTH_TOKEN``, ``NOW_TOKEN``,
``API_HOST``). CLI flags override settings at runtime.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "fn-builder"


def _default_auth_file() -> Path:
    return Path.home() / ".now" / "auth.json"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FN_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Package cache shared by all builds (yarn/npm/nuget)",
    )
    tmp_dir: Path | None = Field(
        default=None,
        description="Parent of per-build work directories (system temp if unset)",
    )
    keep_workdir: bool = Field(
        default=False,
        description="Leave the work directory on disk after the build",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Toolchains
    npm_auth_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FN_BUILDER_NPM_AUTH_TOKEN", "NPM_AUTH_TOKEN"),
    )
    node_bin_template: str = Field(
        default="/node{major}/bin",
        description="Directory holding the pinned node binary for a major version",
    )
    dotnet_bin: Path | None = Field(
        default=None,
        description="Path to the dotnet executable (looked up on PATH if unset)",
    )

    # Deployment client
    api_host: str = Field(
        default="api.zeit.co",
        validation_alias=AliasChoices("FN_BUILDER_API_HOST", "API_HOST"),
    )
    token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FN_BUILDER_TOKEN", "NOW_TOKEN"),
    )
    token_url: str | None = None
    auth_file: Path = Field(default_factory=_default_auth_file)
    token_max_uses: int = Field(default=10, ge=1)
    token_fetch_retries: int = Field(default=3, ge=0)
    token_fetch_delay: float = Field(default=0.5, ge=0)
    deploy_poll_interval: float = Field(default=2.0, ge=0)
    deploy_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")


def get_settings(**overrides) -> Settings:
    """Return settings loaded from the environment, with *overrides* applied."""
    return Settings(**overrides)


__all__ = ["Settings", "get_settings"]
