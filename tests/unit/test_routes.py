from __future__ import annotations

import pytest
from jsonschema import ValidationError

from fn_builder.routes import ASSET_MAX_AGE, CATCH_ALL, emit, match
from fn_builder.validator import validate_routes


@pytest.mark.parametrize("prefix", ["_nuxt/", "/_nuxt/", "assets/v1.2/", "a+b/", "cdn/(x)/"])
def test_asset_rule_precedes_catch_all(prefix: str) -> None:
    routes = emit(prefix, entry="index")
    assert len(routes) == 2
    assets, catch_all = routes
    assert assets.headers == {"Cache-Control": f"max-age={ASSET_MAX_AGE}"}
    assert assets.dest is None
    assert catch_all.src == CATCH_ALL and catch_all.dest == "/index"
    validate_routes([r.to_dict() for r in routes])

    asset_path = "/" + prefix.lstrip("/") + "app.js"
    assert match(routes, asset_path) is assets
    assert match(routes, "/about") is catch_all


def test_default_nuxt_routes() -> None:
    assert [r.to_dict() for r in emit("_nuxt/")] == [
        {"src": "/_nuxt/.+", "headers": {"Cache-Control": "max-age=31557600"}},
        {"src": "/(.*)", "dest": "/index"},
    ]


def test_no_prefix_yields_only_catch_all() -> None:
    assert [r.to_dict() for r in emit(None, entry="api")] == [{"src": "/(.*)", "dest": "/api"}]
    assert len(emit("")) == 1


def test_validator_rejects_rules_after_catch_all() -> None:
    bad = [{"src": "/(.*)", "dest": "/index"}, {"src": "/_nuxt/.+", "headers": {"a": "b"}}]
    with pytest.raises(ValidationError):
        validate_routes(bad)
    with pytest.raises(ValidationError):
        validate_routes([{"src": "/x"}])
