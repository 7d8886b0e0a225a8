"""Lightweight .NET function detector.

Heuristics:
- ``aws-lambda-tools-defaults.json`` names the function handler and target framework.
- A ``*.csproj`` without tool defaults is reported with low confidence.
"""

from __future__ import annotations

import json
from pathlib import Path

from fn_builder.detect.base import DetectReport
from fn_builder.errors import SourceError

TOOL_DEFAULTS = "aws-lambda-tools-defaults.json"
DEFAULT_RUNTIME = "dotnetcore2.1"


def read_tool_defaults(root: Path) -> dict:
    path = root / TOOL_DEFAULTS
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SourceError(f"Can not read {TOOL_DEFAULTS} from {root}: {e}") from e
    if not isinstance(data, dict) or not data.get("function-handler"):
        raise SourceError(f"{TOOL_DEFAULTS} must define function-handler")
    return data


def runtime_for_framework(framework: str | None) -> str:
    """``netcoreapp2.1`` -> ``dotnetcore2.1``."""
    if framework and framework.startswith("netcoreapp"):
        return "dotnetcore" + framework[len("netcoreapp") :]
    return DEFAULT_RUNTIME


def detect(root: Path) -> DetectReport:
    projects = sorted(p.name for p in root.glob("*.csproj"))
    if (root / TOOL_DEFAULTS).exists():
        return DetectReport(
            score=0.9,
            lang="dotnet",
            builder="dotnet",
            package_manager="dotnet",
            entrypoints=projects or [TOOL_DEFAULTS],
            notes=[f"Found {TOOL_DEFAULTS}"],
        )
    if projects:
        return DetectReport(
            score=0.4,
            lang="dotnet",
            package_manager="dotnet",
            entrypoints=projects,
            notes=[f"{TOOL_DEFAULTS} missing; function handler unknown"],
        )
    return DetectReport(score=0.0, notes=["No .NET indicators found"])
