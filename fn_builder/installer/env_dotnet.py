"""Dotnet environment preparation.

``dotnet restore`` is the build-time resolution; the production closure is
produced by ``dotnet publish`` itself, so the production pass has nothing to
install. NuGet packages live in the shared package cache.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from fn_builder.errors import BuildToolError, DependencyError
from fn_builder.installer.env_node import DEV, PROD
from fn_builder.invoker import invoke, spawn_env

logger = logging.getLogger(__name__)


def find_dotnet(configured: Path | None = None) -> Path:
    if configured is not None:
        if not configured.exists():
            raise DependencyError(f"dotnet not found at {configured}")
        return configured
    found = shutil.which("dotnet")
    if not found:
        raise DependencyError("dotnet executable not found on PATH")
    return Path(found)


def dotnet_env(dotnet: Path, cache_dir: Path, base: Mapping[str, str] | None = None) -> dict[str, str]:
    bin_dir = dotnet.parent
    return spawn_env(
        base,
        {
            "NUGET_XMLDOC_MODE": "skip",
            "DOTNET_SKIP_FIRST_TIME_EXPERIENCE": "true",
            "DOTNET_CLI_TELEMETRY_OPTOUT": "1",
            "DOTNET_ROOT": str(bin_dir),
            "NUGET_PACKAGES": str(cache_dir / "nuget"),
        },
        bin_dirs=[bin_dir],
    )


@dataclass
class DotnetResolver:
    project_dir: Path
    dotnet: Path
    env: Mapping[str, str]

    def resolve(self, mode: str) -> None:
        if mode == PROD:
            logger.info("publish output already carries runtime dependencies; nothing to install")
            return
        if mode != DEV:
            raise ValueError(f"Unknown dependency mode: {mode}")
        try:
            invoke(str(self.dotnet), ["restore"], cwd=self.project_dir, env=self.env)
        except BuildToolError as e:
            raise DependencyError(f"dotnet restore failed with exit code {e.exit_code}") from e
