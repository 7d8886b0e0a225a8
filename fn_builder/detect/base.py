"""Detection API and dispatcher.

Detectors look at a materialized (or local) source tree and report which
buildpack applies. ``detect_project`` runs every detector and keeps the
highest-scoring report; ``find_project_root`` maps a build entrypoint to the
directory the buildpack should treat as the project root.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from fn_builder.errors import SourceError
from fn_builder.security.archive import safe_relpath


class DetectReport(BaseModel):
    """Normalized detection result.

    Attributes
    ----------
    score: float
        Confidence (0..1). Higher is better.
    lang: str | None
        Primary language (e.g., "node", "dotnet").
    builder: str | None
        Buildpack name able to build the project ("nuxt", "dotnet").
    framework: str | None
        Detected framework dependency (e.g., "nuxt-edge").
    framework_version: str | None
        Version range declared for the framework.
    package_manager: str | None
        "yarn" | "npm" | "dotnet".
    entrypoints: list[str]
        Candidate entrypoints (relative paths).
    notes: list[str]
        Free-form observations from detectors.
    """

    score: float = 0.0
    lang: str | None = None
    builder: str | None = None
    framework: str | None = None
    framework_version: str | None = None
    package_manager: str | None = None
    entrypoints: list[str] = []
    notes: list[str] = []


class Detector(Protocol):
    def __call__(self, root: Path) -> DetectReport: ...


def detect_project(root: Path) -> DetectReport:
    """Run the Node and .NET detectors and return the best report."""
    from .dotnet import detect as detect_dotnet
    from .node_pkg import detect as detect_node

    detectors: list[Detector] = [detect_node, detect_dotnet]
    reports = [d(root) for d in detectors]
    best = max(reports, key=lambda r: r.score)
    if best.score == 0.0:
        best.notes = [n for r in reports for n in r.notes]
    return best


def find_project_root(
    source_dir: Path,
    entrypoint: str,
    marker: str = "package.json",
    root_markers: Iterable[str] = (),
) -> Path:
    """Return the project root for *entrypoint* inside *source_dir*.

    An entrypoint whose file name is *marker* or one of *root_markers* fixes
    the root to its own directory. Any other entrypoint walks up to the
    nearest directory holding *marker*, without leaving *source_dir*.
    """
    source_dir = source_dir.resolve()
    rel = safe_relpath(entrypoint)
    entry = source_dir.joinpath(*rel.parts)
    if not (entry.exists() or entry.is_symlink()):
        raise SourceError(f"Entrypoint {entrypoint} is not part of the source files")

    if rel.name == marker or rel.name in set(root_markers):
        return entry.parent

    d = entry.parent
    while True:
        if (d / marker).is_file():
            return d
        if d == source_dir:
            break
        d = d.parent
    raise SourceError(f"No {marker} found for entrypoint {entrypoint}")
