"""Node dependency resolution with swappable dependency sets.

Dependencies are installed twice into sibling directories of the project
root, ``node_modules_dev`` (full graph, for the build) and
``node_modules_prod`` (runtime subset, for the bundle). ``node_modules`` is a
single indirection re-pointed at the active set; source files that refer to
``node_modules`` by name never notice the swap.

yarn is used unless the project ships a ``package-lock.json``.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from fn_builder.detect.node_pkg import PACKAGE_JSON, read_package_json, uses_yarn
from fn_builder.errors import BuildToolError, DependencyError
from fn_builder.installer.policy import NUXT_POLICY, FrameworkDependency, FrameworkPolicy
from fn_builder.invoker import invoke, spawn_env

logger = logging.getLogger(__name__)

DEV = "dev"
PROD = "prod"
LINK_NAME = "node_modules"
# every name a dependency set can appear under in the project root
DEPENDENCY_DIRS = (LINK_NAME, f"{LINK_NAME}_{DEV}", f"{LINK_NAME}_{PROD}")


def dependency_dir(root: Path, mode: str) -> Path:
    if mode not in {DEV, PROD}:
        raise ValueError(f"Unknown dependency mode: {mode}")
    return root / f"{LINK_NAME}_{mode}"


def _remove_link(link: Path) -> None:
    if link.is_symlink() or link.is_file():
        link.unlink()
    elif link.is_dir():
        shutil.rmtree(link)


def activate(root: Path, mode: str) -> bool:
    """Point ``node_modules`` at *mode*'s set (remove, then link).

    Returns False when symlinks are unavailable and ``node_modules`` was
    created as a plain directory instead (copy-based toggle).
    """
    target = dependency_dir(root, mode)
    link = root / LINK_NAME
    _remove_link(link)
    try:
        os.symlink(target.name, link, target_is_directory=True)
        return True
    except (OSError, NotImplementedError) as e:
        logger.warning("symlinks unavailable (%s); using a copy of %s", e, target.name)
        shutil.copytree(target, link, symlinks=True)
        return False


def active_set(root: Path) -> str | None:
    """Return the mode ``node_modules`` currently resolves to, if any."""
    link = root / LINK_NAME
    if not link.is_symlink():
        return None
    name = os.readlink(link)
    for mode in (DEV, PROD):
        if Path(name).name == dependency_dir(root, mode).name:
            return mode
    return None


def _template_bytes(name: str) -> bytes:
    return resources.files("fn_builder.templates").joinpath(name).read_bytes()


@dataclass
class NodeResolver:
    """Installs a project's dependencies in ``dev`` or ``prod`` mode."""

    root: Path
    cache_dir: Path
    policy: FrameworkPolicy = NUXT_POLICY
    npm_auth_token: str | None = None
    env: Mapping[str, str] | None = None
    framework: FrameworkDependency | None = None
    _npmrc_written: bool = field(default=False, init=False)

    @property
    def yarn(self) -> bool:
        return uses_yarn(self.root)

    # --- project files ------------------------------------------------------

    def prepare(self) -> None:
        """Write ``.npmrc`` (when a token is configured) and ``.yarnclean``."""
        if self.npm_auth_token:
            logger.info("found npm auth token, creating .npmrc")
            (self.root / ".npmrc").write_text(
                f"//registry.npmjs.org/:_authToken={self.npm_auth_token}", encoding="utf-8"
            )
            self._npmrc_written = True
        if self.yarn and not (self.root / ".yarnclean").exists():
            (self.root / ".yarnclean").write_bytes(_template_bytes("yarnclean"))

    def cleanup(self) -> None:
        if self._npmrc_written:
            (self.root / ".npmrc").unlink(missing_ok=True)
            self._npmrc_written = False

    def trim_manifest(self) -> FrameworkDependency:
        """Rewrite package.json in place for the production install."""
        pkg = read_package_json(self.root)
        trimmed, dep = self.policy.prepare_for_prod(pkg)
        (self.root / PACKAGE_JSON).write_text(json.dumps(trimmed, indent=2), encoding="utf-8")
        logger.info(
            "trimmed package.json for production (policy %s v%s, kept %s)",
            self.policy.name,
            self.policy.version,
            self.policy.core_dependency(dep),
        )
        self.framework = dep
        return dep

    # --- installation -------------------------------------------------------

    def _cache_folder(self) -> Path | None:
        sub = self.cache_dir / ("yarn" if self.yarn else "npm")
        try:
            sub.mkdir(parents=True, exist_ok=True)
            if not os.access(sub, os.W_OK):
                raise PermissionError(f"{sub} is not writable")
        except OSError as e:
            logger.warning("package cache unusable (%s); installing without cache", e)
            return None
        return sub

    def install_command(self, mode: str, use_cache: bool = True) -> list[str]:
        cache = self._cache_folder() if use_cache else None
        if self.yarn:
            cmd = ["yarn", "install", "--prefer-offline", "--non-interactive"]
            if mode == DEV:
                if (self.root / "yarn.lock").exists():
                    cmd.append("--frozen-lockfile")
                cmd.append("--production=false")
            else:
                cmd += ["--pure-lockfile", "--production=true"]
            if cache is not None:
                cmd.append(f"--cache-folder={cache}")
            return cmd
        cmd = ["npm", "install"]
        if mode == PROD:
            cmd.append("--production")
        if cache is not None:
            cmd += ["--cache", str(cache)]
        return cmd

    def _install(self, mode: str, env: Mapping[str, str]) -> None:
        """Run the install; a failure with the shared cache is retried once without it."""
        cmd = self.install_command(mode)
        plain = self.install_command(mode, use_cache=False)
        attempts = [cmd] if cmd == plain else [cmd, plain]
        logger.info("installing %s dependencies with %s", mode, cmd[0])
        for i, args in enumerate(attempts):
            try:
                invoke(args[0], args[1:], cwd=self.root, env=env)
                return
            except BuildToolError as e:
                if i + 1 == len(attempts):
                    raise DependencyError(
                        f"{e.tool} install ({mode}) failed with exit code {e.exit_code}"
                    ) from e
                logger.warning(
                    "%s install (%s) failed with the package cache (exit code %d); "
                    "retrying without it",
                    e.tool,
                    mode,
                    e.exit_code,
                )

    def resolve(self, mode: str) -> Path:
        """Install *mode*'s dependency set and make it the active one."""
        if mode == PROD:
            self.trim_manifest()
        target = dependency_dir(self.root, mode)
        if target.exists():
            shutil.rmtree(target)
        target.mkdir()
        linked = activate(self.root, mode)

        env = spawn_env(
            self.env, {"NODE_ENV": "development" if mode == DEV else "production"}
        )
        self._install(mode, env)

        if not linked:
            shutil.rmtree(target)
            shutil.copytree(self.root / LINK_NAME, target, symlinks=True)
        return target

    def installed_version(self, package: str) -> str:
        """Version of *package* as installed in the active set."""
        pj = self.root / LINK_NAME / package / PACKAGE_JSON
        try:
            return str(json.loads(pj.read_text(encoding="utf-8"))["version"])
        except (OSError, ValueError, KeyError) as e:
            raise DependencyError(f"{package} is not installed: {e}") from e
