from __future__ import annotations

import copy

import pytest

from fn_builder.errors import DependencyError, VersionError
from fn_builder.installer.policy import NUXT_POLICY, parse_version


def test_prepare_for_prod_trims_build_only_packages() -> None:
    pkg = {
        "name": "app",
        "dependencies": {"nuxt": "^2.10.0", "vue-router": "^3.0.0", "nuxt-start": "^2.10.0"},
        "devDependencies": {"eslint": "^6.0.0"},
        "scripts": {"build": "nuxt build"},
    }
    original = copy.deepcopy(pkg)
    trimmed, dep = NUXT_POLICY.prepare_for_prod(pkg)

    assert pkg == original, "input must not be mutated"
    assert "devDependencies" not in trimmed
    assert trimmed["dependencies"] == {"vue-router": "^3.0.0", "@nuxt/core": "^2.10.0"}
    assert trimmed["scripts"] == pkg["scripts"]
    assert (dep.name, dep.suffix, dep.version) == ("nuxt", "", "^2.10.0")
    # same input, same output
    assert NUXT_POLICY.prepare_for_prod(pkg) == (trimmed, dep)


def test_edge_distribution_keeps_edge_core() -> None:
    pkg = {"devDependencies": {"nuxt-edge": "2.11.0-26"}}
    trimmed, dep = NUXT_POLICY.prepare_for_prod(pkg)
    assert dep.suffix == "-edge"
    assert dep.dependency_type == "devDependencies"
    assert trimmed["dependencies"] == {"@nuxt/core-edge": "2.11.0-26"}


def test_missing_framework_dependency() -> None:
    with pytest.raises(DependencyError):
        NUXT_POLICY.prepare_for_prod({"dependencies": {"vue": "^2"}})


@pytest.mark.parametrize(
    ("text", "expected"),
    [("2.4.0", (2, 4, 0)), ("^2.10.1", (2, 10, 1)), ("2.11.0-edge.1", (2, 11, 0)), ("3", (3, 0, 0))],
)
def test_parse_version(text: str, expected: tuple[int, int, int]) -> None:
    assert parse_version(text) == expected


@pytest.mark.parametrize("ok", ["2.4.0", "2.10.2", "2.15.8"])
def test_check_version_accepts_supported(ok: str) -> None:
    NUXT_POLICY.check_version(ok)


@pytest.mark.parametrize("bad", ["2.3.9", "1.4.5", "3.0.0"])
def test_check_version_rejects_out_of_range(bad: str) -> None:
    with pytest.raises(VersionError):
        NUXT_POLICY.check_version(bad)
