"""Bundle assembly: launcher generation and function file-set union.

The launcher is rendered from a template by substituting the framework
distribution suffix and the relative path of the located config file. At
execution time it loads the framework server and hands requests to it
through the bridge; at build time the assembler only has to guarantee that
everything it references is inside the bundle.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from importlib import resources
from pathlib import Path

from fn_builder.collect import glob, merge_artifacts
from fn_builder.errors import PackagingError
from fn_builder.types import ArtifactMap, FileBlob, FileRef, FunctionBundle

logger = logging.getLogger(__name__)

LAUNCHER_NAME = "fn__launcher.js"
BRIDGE_NAME = "fn__bridge.js"
LAUNCHER_HANDLER = "fn__launcher.launcher"
SUFFIX_PLACEHOLDER = "__FRAMEWORK_SUFFIX__"
CONFIG_PLACEHOLDER = "__FRAMEWORK_CONFIG__"


def load_template(name: str) -> str:
    return resources.files("fn_builder.templates").joinpath(name).read_text(encoding="utf-8")


def bridge_ref() -> FileBlob:
    """The runtime bridge shipped with fn-builder."""
    return FileBlob(data=load_template("bridge.js").encode("utf-8"))


def render_launcher(template: str, suffix: str, config_path: str) -> str:
    rel = "./" + posixpath.normpath(config_path)
    return template.replace(SUFFIX_PLACEHOLDER, suffix).replace(CONFIG_PLACEHOLDER, rel)


def launcher_references(config_path: str) -> list[str]:
    """Bundle paths the rendered launcher loads relative to itself."""
    return [BRIDGE_NAME, posixpath.normpath(config_path)]


def check_completeness(bundle: FunctionBundle, required: Iterable[str]) -> None:
    missing = sorted(p for p in required if p not in bundle.files)
    if missing:
        raise PackagingError(f"Bundle {bundle.name} is missing {missing}")


def assemble(
    entry_name: str,
    launcher_source: str | None,
    bridge: FileRef | None,
    config_files: Mapping[str, FileRef],
    server_artifacts: ArtifactMap,
    dependency_artifacts: ArtifactMap,
    include_globs: Iterable[str],
    root: Path,
    runtime: str,
    handler: str = LAUNCHER_HANDLER,
    environment: Mapping[str, str] | None = None,
    max_size: int | None = None,
    required: Iterable[str] = (),
    include_ignore: Iterable[str] = (),
) -> FunctionBundle:
    """Union the generated, configured, collected and included files into one bundle."""
    generated: dict[str, FileRef] = {}
    if launcher_source is not None:
        generated[LAUNCHER_NAME] = FileBlob(data=launcher_source.encode("utf-8"))
    if bridge is not None:
        generated[BRIDGE_NAME] = bridge

    files: dict[str, FileRef] = merge_artifacts(
        generated, config_files, server_artifacts, dependency_artifacts
    )
    # Include globs may repeat already collected files; later wins.
    ignore = list(include_ignore)
    for pattern in include_globs:
        files.update(glob(pattern, root, ignore))

    bundle = FunctionBundle(
        name=entry_name,
        handler=handler,
        runtime=runtime,
        environment=dict(environment or {}),
        files=files,
        max_size=max_size,
    )
    check_completeness(bundle, required)
    logger.info("assembled bundle %s (%d files, runtime %s)", entry_name, len(files), runtime)
    return bundle


def assemble_all(
    entry_names: Iterable[str], build: Callable[[str], FunctionBundle], max_workers: int = 4
) -> dict[str, FunctionBundle]:
    """Assemble one bundle per entry point; entries share only read-only inputs."""
    names = list(dict.fromkeys(entry_names))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        bundles = list(pool.map(build, names))
    return dict(zip(names, bundles))
