"""Dotnet buildpack: compiled-runtime functions.

Same phase shape as the Nuxt buildpack: ``dotnet restore`` resolves
dependencies, ``dotnet publish -c Release`` builds, the publish directory is
collected and packaged by the shared archive writer. Handler and runtime come
from ``aws-lambda-tools-defaults.json``.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from fn_builder.assemble import assemble
from fn_builder.buildpacks.base import Buildpack, BuildContext
from fn_builder.collect import CollectSpec, collect_areas
from fn_builder.detect.base import find_project_root
from fn_builder.detect.dotnet import TOOL_DEFAULTS, read_tool_defaults, runtime_for_framework
from fn_builder.errors import PackagingError
from fn_builder.installer.env_dotnet import DotnetResolver, dotnet_env, find_dotnet
from fn_builder.installer.env_node import DEV, PROD
from fn_builder.invoker import invoke
from fn_builder.package.zip import parse_size
from fn_builder.routes import emit
from fn_builder.types import ArtifactMap, BuildOutput, FunctionBundle

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = "50mb"
ENTRY_NAME = "index"


class DotnetBuildpack(Buildpack):
    name = "dotnet"

    def __init__(self, ctx: BuildContext) -> None:
        super().__init__(ctx)
        self.project_dir: Path | None = None
        self.handler = ""
        self.runtime = ""
        self.dotnet: Path | None = None
        self.env: dict[str, str] = {}
        self.resolver: DotnetResolver | None = None
        self.publish_dir: Path | None = None
        self.areas: dict[str, ArtifactMap] = {}
        self.bundle: FunctionBundle | None = None

    def materialize(self) -> None:
        self.materialize_source()
        source = self.ctx.paths.source
        entry = PurePosixPath(self.ctx.request.entrypoint)
        self.root = find_project_root(source, str(entry), marker=TOOL_DEFAULTS)
        self.project_dir = source.joinpath(*entry.parent.parts)

        defaults = read_tool_defaults(self.root)
        self.handler = defaults["function-handler"]
        self.runtime = runtime_for_framework(defaults.get("framework"))
        self.publish_dir = self.ctx.paths.output / "app" / entry.stem
        logger.info("handler %s, runtime %s", self.handler, self.runtime)

    def resolve_dev(self) -> None:
        project_dir = self.require(self.project_dir, "project directory")
        self.dotnet = find_dotnet(self.ctx.settings.dotnet_bin)
        self.env = dotnet_env(self.dotnet, self.ctx.paths.cache)
        self.resolver = DotnetResolver(project_dir, self.dotnet, self.env)
        self.resolver.resolve(DEV)

    def build(self) -> None:
        project_dir = self.require(self.project_dir, "project directory")
        publish_dir = self.require(self.publish_dir, "publish directory")
        dotnet = self.require(self.dotnet, "dotnet executable")
        invoke(
            str(dotnet),
            ["publish", "-c", "Release", "--no-restore", "-o", str(publish_dir)],
            cwd=project_dir,
            env=self.env,
        )

    def resolve_prod(self) -> None:
        self.require(self.resolver, "dependency resolver").resolve(PROD)

    def collect(self) -> None:
        publish_dir = self.require(self.publish_dir, "publish directory")
        self.areas = collect_areas([CollectSpec("publish", publish_dir)])
        if not self.areas["publish"]:
            raise PackagingError(f"dotnet publish produced no files in {publish_dir}")

    def assemble(self) -> None:
        root = self.require(self.root, "project root")
        max_size = self.builder_config.get("maxLambdaSize") or DEFAULT_MAX_SIZE
        self.bundle = assemble(
            ENTRY_NAME,
            None,
            None,
            {},
            self.areas["publish"],
            {},
            [],
            root,
            self.runtime,
            handler=self.handler,
            max_size=parse_size(max_size),
        )

    def emit(self) -> BuildOutput:
        bundle = self.require(self.bundle, "bundle")
        return BuildOutput(output={ENTRY_NAME: bundle}, routes=emit(None, ENTRY_NAME))
