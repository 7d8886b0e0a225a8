"""Routing manifest emission.

Rules are ordered and the first match wins, so the asset caching rule is
always emitted before the catch-all dispatch to the function.
"""

from __future__ import annotations

import re

from fn_builder.types import Route, RoutingManifest

ASSET_MAX_AGE = 31557600  # one year
CATCH_ALL = "/(.*)"


def emit(public_prefix: str | None, entry: str = "index") -> RoutingManifest:
    routes: RoutingManifest = []
    prefix = (public_prefix or "").strip().lstrip("/")
    if prefix:
        routes.append(
            Route(
                src=f"/{re.escape(prefix)}.+",
                headers={"Cache-Control": f"max-age={ASSET_MAX_AGE}"},
            )
        )
    routes.append(Route(src=CATCH_ALL, dest=f"/{entry}"))
    return routes


def match(routes: RoutingManifest, path: str) -> Route | None:
    """Return the first rule whose pattern matches *path* entirely."""
    for route in routes:
        if re.fullmatch(route.src, path):
            return route
    return None
