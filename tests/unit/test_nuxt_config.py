from __future__ import annotations

from pathlib import Path

import pytest

from fn_builder.buildpacks.base import BuildContext
from fn_builder.buildpacks.nuxt import NuxtBuildpack, build_config_from
from fn_builder.config import Settings
from fn_builder.errors import PackagingError, SourceError
from fn_builder.types import BuildRequest
from fn_builder.workspace import workspace


def test_defaults_and_normalized_dirs(tmp_path: Path) -> None:
    cfg = build_config_from({"dir": {"static": "./pub/"}}, tmp_path, "nuxt.config.js")
    assert cfg.static_dir == "pub"
    assert cfg.build_dir == ".nuxt"
    assert cfg.public_path == "_nuxt/"
    assert cfg.entry_names == ["index"]


def test_cdn_public_path_keeps_only_its_path(tmp_path: Path) -> None:
    data = {"build": {"publicPath": "https://cdn.example.com/assets/"}}
    assert build_config_from(data, tmp_path, "nuxt.config.js").public_path == "assets/"


@pytest.mark.parametrize(
    "data",
    [
        {"dir": {"static": "../shared"}},
        {"dir": {"static": "pub/../../x"}},
        {"buildDir": "../out"},
    ],
)
def test_dirs_outside_the_project_root_are_rejected(tmp_path: Path, data: dict) -> None:
    with pytest.raises(SourceError, match="outside the project root"):
        build_config_from(data, tmp_path, "nuxt.config.js")


def test_phases_out_of_order_are_a_packaging_error(
    settings: Settings, nuxt_request: BuildRequest
) -> None:
    with workspace(settings) as paths:
        pack = NuxtBuildpack(BuildContext(request=nuxt_request, settings=settings, paths=paths))
        with pytest.raises(PackagingError, match="dependency resolver"):
            pack.resolve_dev()
        with pytest.raises(PackagingError, match="project root"):
            pack.collect()
