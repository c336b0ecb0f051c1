"""
Property merging and schema validation for template instances.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ontomigrate.templates.models import PropsValidation


def deep_merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two property bags.

    Nested mappings merge recursively; any other value from `overrides`
    replaces the default, lists included. Neither input is modified.

    Example:
        >>> deep_merge({"facets": {"scale": "small", "stage": "planning"}},
        ...            {"facets": {"scale": "large"}, "budget": 10})
        {'facets': {'scale': 'large', 'stage': 'planning'}, 'budget': 10}
    """
    merged: dict[str, Any] = dict(defaults)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def json_type(value: Any) -> str:
    """JSON type name of a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _matches(expected: str, value: Any, actual: str) -> bool:
    if expected == actual:
        return True
    if expected == "integer":
        return actual == "number" and float(value).is_integer()
    return False


def validate_props(props: Mapping[str, Any], schema: Mapping[str, Any]) -> PropsValidation:
    """
    Check extracted properties against a template schema.

    - A required key that is missing or None is an error.
    - A key the schema does not define is a warning.
    - A value whose JSON type differs from the declared type is an error.

    Args:
        props: Extracted property values
        schema: JSON object schema with `properties` and `required`

    Returns:
        PropsValidation with errors and warnings
    """
    errors: list[str] = []
    warnings: list[str] = []

    for key in schema.get("required") or []:
        if props.get(key) is None:
            errors.append(f"Required field missing: {key}")

    properties = schema.get("properties") or {}
    for key, value in props.items():
        definition = properties.get(key)
        if definition is None:
            warnings.append(f"Property {key} not defined in schema")
            continue

        expected = (definition or {}).get("type")
        if not expected:
            continue
        actual = json_type(value)
        if not _matches(expected, value, actual):
            errors.append(f"Type mismatch for {key}: expected {expected}, got {actual}")

    return PropsValidation(valid=not errors, errors=errors, warnings=warnings)


__all__ = [
    "deep_merge",
    "json_type",
    "validate_props",
]
