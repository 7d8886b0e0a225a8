"""Nuxt buildpack.

Turns a Nuxt project into:
- one function bundle per entry point (launcher + bridge + config + static,
  server build and production ``node_modules``)
- client build files under the public path and static files as plain outputs
- two routes: long-lived caching for built client assets, then everything
  else to the function

Dependencies are installed twice: the full graph for ``nuxt build``, then a
trimmed production graph for the bundle.
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from urllib.parse import urlparse

from fn_builder.assemble import (
    assemble,
    assemble_all,
    bridge_ref,
    launcher_references,
    load_template,
    render_launcher,
)
from fn_builder.buildpacks.base import Buildpack, BuildContext
from fn_builder.collect import CollectSpec, collect_areas, merge_artifacts
from fn_builder.detect.base import find_project_root
from fn_builder.detect.js_config import parse_config_source
from fn_builder.detect.node_pkg import PACKAGE_JSON, NodeVersion, get_node_version, read_package_json
from fn_builder.errors import PackagingError, SourceError
from fn_builder.installer.env_node import DEPENDENCY_DIRS, DEV, PROD, NodeResolver
from fn_builder.installer.policy import NUXT_POLICY, FrameworkDependency
from fn_builder.invoker import invoke, spawn_env
from fn_builder.package.zip import parse_size
from fn_builder.routes import emit
from fn_builder.types import ArtifactMap, BuildConfig, BuildOutput, FileFsRef, FunctionBundle
from fn_builder.validator import validate_routes

logger = logging.getLogger(__name__)


def _project_relative(value: str, root: Path, option: str) -> str:
    rel = Path(os.path.relpath(root / value, root)).as_posix()
    if rel == ".." or rel.startswith("../"):
        raise SourceError(f"{option} {value!r} is outside the project root")
    return rel


def build_config_from(data: dict, root: Path, config_file: str) -> BuildConfig:
    """Read the fields the pipeline cares about from a parsed Nuxt config."""
    fields: dict = {"config_file": config_file}

    dir_ = data.get("dir")
    if isinstance(dir_, dict) and isinstance(dir_.get("static"), str):
        fields["static_dir"] = _project_relative(dir_["static"], root, "dir.static")

    build = data.get("build")
    if isinstance(build, dict) and isinstance(build.get("publicPath"), str):
        public_path = build["publicPath"]
        if "://" in public_path:
            # CDN URL: assets are still built locally under its path
            public_path = urlparse(public_path).path
        fields["public_path"] = public_path

    build_dir = data.get("buildDir")
    if isinstance(build_dir, str):
        fields["build_dir"] = _project_relative(build_dir, root, "buildDir")

    name = data.get("lambdaName")
    if isinstance(name, str):
        fields["entry_names"] = [name]
    elif isinstance(name, list) and name and all(isinstance(n, str) for n in name):
        fields["entry_names"] = name

    return BuildConfig(**fields)


class NuxtBuildpack(Buildpack):
    name = "nuxt"
    policy = NUXT_POLICY

    def __init__(self, ctx: BuildContext) -> None:
        super().__init__(ctx)
        self.pkg: dict = {}
        self.config: BuildConfig | None = None
        self.node_version: NodeVersion | None = None
        self.runtime = ""
        self.resolver: NodeResolver | None = None
        self.framework: FrameworkDependency | None = None
        self.areas: dict[str, ArtifactMap] = {}
        self.bundles: dict[str, FunctionBundle] = {}

    # --- helpers ------------------------------------------------------------

    def _runtime_bin_dirs(self) -> list[Path]:
        if self.node_version is None:
            return []
        pinned = Path(self.ctx.settings.node_bin_template.format(major=self.node_version.major))
        return [pinned] if pinned.is_dir() else []

    def _base_env(self) -> dict[str, str]:
        return spawn_env(bin_dirs=self._runtime_bin_dirs())

    def _locate_config(self, root: Path) -> str:
        for name in self.policy.config_files:
            if (root / name).is_file():
                return name
        raise SourceError(f"No {' or '.join(self.policy.config_files)} found in {root}")

    # --- phases -------------------------------------------------------------

    def materialize(self) -> None:
        self.materialize_source()
        root = find_project_root(
            self.ctx.paths.source,
            self.ctx.request.entrypoint,
            marker=PACKAGE_JSON,
            root_markers=self.policy.config_files,
        )
        self.root = root
        logger.info("project root: %s", root)
        self.pkg = read_package_json(root)

        config_file = self._locate_config(root)
        parsed = parse_config_source((root / config_file).read_text(encoding="utf-8"))
        if parsed.skipped:
            logger.info("ignoring non-literal config values: %s", ", ".join(parsed.skipped))
        self.config = build_config_from(parsed.data, root, config_file)

        self.node_version = get_node_version(self.pkg)
        self.runtime = "nodejs" if self.is_dev else self.node_version.runtime
        logger.info("using %s (runtime %s)", self.node_version.range, self.runtime)

        if (root / self.config.build_dir).exists():
            logger.warning(
                "%s exists! Please ensure to ignore it in your deployment", self.config.build_dir
            )

        self.resolver = NodeResolver(
            root=root,
            cache_dir=self.ctx.paths.cache,
            policy=self.policy,
            npm_auth_token=self.ctx.settings.npm_auth_token,
            env=self._base_env(),
        )
        logger.info("using %s", "yarn" if self.resolver.yarn else "npm")

    def resolve_dev(self) -> None:
        resolver = self.require(self.resolver, "dependency resolver")
        resolver.prepare()
        resolver.resolve(DEV)

    def build(self) -> None:
        root = self.require(self.root, "project root")
        cfg = self.require(self.config, "build config")
        env = spawn_env(
            self._base_env(),
            {"NODE_ENV": "production"},
            bin_dirs=[root / "node_modules" / ".bin"],
        )
        invoke(
            self.policy.build_tool,
            ["build", "--standalone", "--no-lock", "--config-file", cfg.config_file],
            cwd=root,
            env=env,
        )

    def resolve_prod(self) -> None:
        resolver = self.require(self.resolver, "dependency resolver")
        try:
            resolver.resolve(PROD)
            self.framework = self.require(resolver.framework, "framework dependency")
            core = self.policy.core_dependency(self.framework)
            version = resolver.installed_version(core)
            self.policy.check_version(version)
            logger.info("%s %s installed for production", core, version)
        finally:
            resolver.cleanup()

    def collect(self) -> None:
        root = self.require(self.root, "project root")
        cfg = self.require(self.config, "build config")
        dist = root / cfg.build_dir / "dist"
        self.areas = collect_areas(
            [
                CollectSpec("static", root / cfg.static_dir, cfg.static_dir),
                CollectSpec("client", dist / "client", cfg.public_path),
                CollectSpec("server", dist / "server", posixpath.join(cfg.build_dir, "dist/server")),
                CollectSpec("dependencies", root / "node_modules_prod", "node_modules"),
            ]
        )
        if not self.areas["server"]:
            raise PackagingError(f"Build produced no server files in {dist / 'server'}")

    def assemble(self) -> None:
        root = self.require(self.root, "project root")
        cfg = self.require(self.config, "build config")
        framework = self.require(self.framework, "framework dependency")
        launcher = render_launcher(load_template("launcher.js"), framework.suffix, cfg.config_file)
        config_files = {cfg.config_file: FileFsRef.from_path(root / cfg.config_file)}
        server_files = merge_artifacts(self.areas["static"], self.areas["server"])

        includes = self.builder_config.get("includeFiles") or []
        if isinstance(includes, str):
            includes = [includes]
        includes = [*includes, PACKAGE_JSON]
        # dependencies only ever enter through the production set
        include_ignore = [*DEPENDENCY_DIRS, cfg.build_dir]
        max_size = self.builder_config.get("maxLambdaSize")

        def build_one(entry: str) -> FunctionBundle:
            return assemble(
                entry,
                launcher,
                bridge_ref(),
                config_files,
                server_files,
                self.areas["dependencies"],
                includes,
                root,
                self.runtime,
                environment={"NODE_ENV": "production"},
                max_size=parse_size(max_size) if max_size else None,
                required=launcher_references(cfg.config_file),
                include_ignore=include_ignore,
            )

        self.bundles = assemble_all(cfg.entry_names, build_one)

    def emit(self) -> BuildOutput:
        cfg = self.require(self.config, "build config")
        routes = emit(cfg.public_path, entry=cfg.entry_names[0])
        validate_routes([r.to_dict() for r in routes])
        output = merge_artifacts(self.bundles, self.areas["client"], self.areas["static"])
        return BuildOutput(
            output=output,
            routes=routes,
            watch=[cfg.config_file, PACKAGE_JSON],
        )

    def cleanup(self) -> None:
        if self.resolver is not None:
            self.resolver.cleanup()
