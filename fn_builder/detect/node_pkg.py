"""Node package detector and package.json helpers.

Heuristics:
- A ``package.json`` declaring a Nuxt distribution (``nuxt``, ``nuxt-start``
  or their ``-edge`` variants) is a Nuxt project.
- ``package-lock.json`` means npm; anything else is installed with yarn.
- The function runtime follows ``engines.node``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

from fn_builder.detect.base import DetectReport
from fn_builder.errors import DependencyError, SourceError, VersionError
from fn_builder.installer.policy import NUXT_POLICY

PACKAGE_JSON = "package.json"


@dataclass(frozen=True)
class NodeVersion:
    major: int
    range: str
    runtime: str


SUPPORTED_NODE_VERSIONS: tuple[NodeVersion, ...] = (
    NodeVersion(8, "8.10.x", "nodejs8.10"),
    NodeVersion(10, "10.x", "nodejs10.x"),
    NodeVersion(12, "12.x", "nodejs12.x"),
)

_ENGINE_RE = re.compile(r"^\s*(>=|>|\^|~|=)?\s*v?(\d+)")


def read_package_json(root: Path) -> dict:
    """Load *root*/package.json, raising SourceError when absent or invalid."""
    pj = root / PACKAGE_JSON
    try:
        data = json.loads(pj.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SourceError(f"Can not read package.json from {root}: {e}") from e
    if not isinstance(data, dict):
        raise SourceError(f"package.json in {root} is not a JSON object")
    return data


def uses_yarn(root: Path) -> bool:
    return not (root / "package-lock.json").exists()


def get_node_version(pkg: dict) -> NodeVersion:
    """Pick the function runtime for ``engines.node`` (newest supported by default)."""
    engines = (pkg.get("engines") or {}).get("node")
    if not engines:
        return SUPPORTED_NODE_VERSIONS[-1]

    m = _ENGINE_RE.match(str(engines))
    if not m:
        raise VersionError(f"Unrecognized engines.node range: {engines}")
    op, major = m.group(1), int(m.group(2))
    if op in {">=", ">"}:
        candidates = [v for v in SUPPORTED_NODE_VERSIONS if v.major >= major]
    else:
        candidates = [v for v in SUPPORTED_NODE_VERSIONS if v.major == major]
    if not candidates:
        supported = ", ".join(v.range for v in SUPPORTED_NODE_VERSIONS)
        raise VersionError(
            f"Found engines.node {engines!r}, but only {supported} are supported"
        )
    return candidates[-1]


def detect(root: Path) -> DetectReport:
    try:
        pkg = read_package_json(root)
    except SourceError:
        return DetectReport(score=0.0, notes=["No package.json found"])

    manager = "yarn" if uses_yarn(root) else "npm"
    try:
        dep = NUXT_POLICY.find_dependency(pkg)
    except DependencyError:
        return DetectReport(
            score=0.3,
            lang="node",
            package_manager=manager,
            entrypoints=[PACKAGE_JSON],
            notes=["No Nuxt dependency detected"],
        )

    entries = [PACKAGE_JSON] + [c for c in NUXT_POLICY.config_files if (root / c).exists()]
    return DetectReport(
        score=0.9 if len(entries) > 1 else 0.6,
        lang="node",
        builder="nuxt",
        framework=dep.name + dep.suffix,
        framework_version=dep.version,
        package_manager=manager,
        entrypoints=entries,
        notes=[f"Detected {dep.name}{dep.suffix} ({dep.dependency_type})"],
    )
