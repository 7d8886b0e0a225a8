"""Schema validation for build outputs."""

from __future__ import annotations

import json
from importlib import resources

from jsonschema import Draft202012Validator, ValidationError

from fn_builder.routes import CATCH_ALL

# --- Schema loaders ---------------------------------------------------------


def _load_schema(resource_name: str) -> dict:
    with resources.files("fn_builder.schema").joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _routes_schema() -> dict:
    return _load_schema("routes.schema.json")


def _function_schema() -> dict:
    return _load_schema("function.schema.json")


def _output_schema() -> dict:
    return _load_schema("output.schema.json")


# --- Public validators ------------------------------------------------------


def validate_routes(data: list[dict]) -> None:
    """Validate shape, and that nothing follows the catch-all rule."""
    Draft202012Validator(_routes_schema()).validate(data)
    for i, route in enumerate(data[:-1]):
        if route["src"] == CATCH_ALL:
            raise ValidationError(f"route {i} is a catch-all but is followed by {len(data) - i - 1} rule(s)")


def validate_function(data: dict) -> None:
    Draft202012Validator(_function_schema()).validate(data)


def validate_output(data: dict) -> None:
    Draft202012Validator(_output_schema()).validate(data)
    validate_routes(data["routes"])
