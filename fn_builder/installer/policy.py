"""Framework dependency policies.

A policy is the declared, versioned description of how one framework family
is trimmed for production: which dependency names identify the framework,
which build-only packages are dropped before the production install, which
core package replaces them, and which framework versions are supported.
Only the Nuxt policy is built in; other frameworks need their own declared
policy rather than an inferred one.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass

from fn_builder.errors import DependencyError, VersionError

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(text: str) -> tuple[int, int, int]:
    """Parse the numeric core of a semver string (``2.4.0-edge.1`` -> ``(2, 4, 0)``)."""
    m = _VERSION_RE.search(text or "")
    if not m:
        raise VersionError(f"Unparseable version: {text!r}")
    return tuple(int(g or 0) for g in m.groups())  # type: ignore[return-value]


@dataclass(frozen=True)
class FrameworkDependency:
    name: str
    version: str
    suffix: str
    dependency_type: str


@dataclass(frozen=True)
class FrameworkPolicy:
    name: str
    version: str
    distributions: tuple[str, ...]
    suffixes: tuple[str, ...]
    core_package: str
    build_tool: str
    config_files: tuple[str, ...]
    min_version: str
    max_major: int

    def find_dependency(self, pkg: dict) -> FrameworkDependency:
        for dep_type in ("dependencies", "devDependencies"):
            deps = pkg.get(dep_type) or {}
            for suffix in self.suffixes:
                for dist in self.distributions:
                    version = deps.get(dist + suffix)
                    if version:
                        return FrameworkDependency(dist, str(version), suffix, dep_type)
        raise DependencyError(f"No {self.name} dependency found in package.json")

    def excluded_packages(self) -> frozenset[str]:
        """Build-only packages removed from ``dependencies`` before the prod install."""
        return frozenset(d + s for d in self.distributions for s in self.suffixes)

    def core_dependency(self, dep: FrameworkDependency) -> str:
        return self.core_package + dep.suffix

    def prepare_for_prod(self, pkg: dict) -> tuple[dict, FrameworkDependency]:
        """Return a trimmed copy of *pkg* and the framework dependency it declared.

        The copy has no ``devDependencies``, none of the excluded packages, and
        the framework core package pinned to the declared framework range.
        Same input, same output.
        """
        dep = self.find_dependency(pkg)
        trimmed = copy.deepcopy(pkg)
        trimmed.pop("devDependencies", None)
        deps = dict(trimmed.get("dependencies") or {})
        for name in sorted(self.excluded_packages()):
            deps.pop(name, None)
        deps[self.core_dependency(dep)] = dep.version
        trimmed["dependencies"] = deps
        return trimmed, dep

    def check_version(self, version: str) -> None:
        got = parse_version(version)
        if got < parse_version(self.min_version):
            raise VersionError(
                f"{self.name} >= {self.min_version} is required, detected version {version}"
            )
        if got[0] > self.max_major:
            raise VersionError(
                f"{self.name} {version} is not supported (major version <= {self.max_major})"
            )


NUXT_POLICY = FrameworkPolicy(
    name="nuxt",
    version="1",
    distributions=("nuxt", "nuxt-start"),
    suffixes=("-edge", ""),
    core_package="@nuxt/core",
    build_tool="nuxt",
    config_files=("nuxt.config.js",),
    min_version="2.4.0",
    max_major=2,
)
