"""
Tool argument validation with jsonschema.

Arguments are checked against each tool's ``inputSchema`` by a Draft 7
validator extended to fill in ``default`` values while it walks
``properties``. Object properties without a default of their own are
materialized when any of their children carry defaults, so a partly or fully
omitted ``thresholds`` still comes back complete.

The caller's mapping is never mutated. The first failure raises
ValidationError naming the offending field path (``thresholds.cpu``,
``ports[0].port``).
"""

from __future__ import annotations

import copy
from typing import Any, Mapping

from jsonschema import Draft7Validator, validators
from jsonschema.exceptions import best_match

from openshift_mcp.errors import ValidationError


def _has_defaults(schema: Mapping[str, Any]) -> bool:
    return any("default" in sub or _has_defaults(sub) for sub in schema.get("properties", {}).values())


def _extend_with_defaults(validator_class):
    validate_properties = validator_class.VALIDATORS["properties"]

    def fill_defaults(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            required = schema.get("required", ())
            for key, sub in properties.items():
                value = instance.get(key)
                if key in instance and value is None and key not in required:
                    del instance[key]
                elif isinstance(value, float) and sub.get("type") == "integer" and value.is_integer():
                    instance[key] = int(value)
                if key in instance:
                    continue
                if "default" in sub:
                    instance[key] = copy.deepcopy(sub["default"])
                elif sub.get("type") == "object" and _has_defaults(sub):
                    instance[key] = {}
        yield from validate_properties(validator, properties, instance, schema)

    return validators.extend(validator_class, {"properties": fill_defaults})


DefaultFillingValidator = _extend_with_defaults(Draft7Validator)


def _field_path(error) -> str:
    path = ""
    for part in error.absolute_path:
        path += f"[{part}]" if isinstance(part, int) else (f".{part}" if path else str(part))

    # required/additionalProperties report the parent object; name the key instead.
    key = None
    if error.validator == "required":
        key = next((k for k in error.validator_value if k not in error.instance), None)
    elif error.validator == "additionalProperties":
        known = error.schema.get("properties", {})
        key = next(iter(sorted(k for k in error.instance if k not in known)), None)
    if key is not None:
        path = f"{path}.{key}" if path else key
    return path or "arguments"


def _message(error) -> str:
    if error.validator == "required":
        return "is required"
    if error.validator == "additionalProperties":
        return "unexpected argument"
    return error.message


def validate_arguments(arguments: Mapping[str, Any] | None, schema: Mapping[str, Any]) -> dict:
    """Validate ``arguments`` against a tool's ``inputSchema`` and apply defaults."""
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise ValidationError("arguments", f"expected object, got {type(arguments).__name__}")

    args = copy.deepcopy(dict(arguments))
    errors = list(DefaultFillingValidator(schema).iter_errors(args))
    if errors:
        error = best_match(errors)
        raise ValidationError(_field_path(error), _message(error))
    return args


def iter_enum_defaults(schema: Mapping[str, Any], path: str = ""):
    """Yield ``(path, default, enum)`` for every property carrying both."""
    for key, sub in schema.get("properties", {}).items():
        here = f"{path}.{key}" if path else key
        if "enum" in sub and "default" in sub:
            yield here, sub["default"], sub["enum"]
        if sub.get("type") == "object":
            yield from iter_enum_defaults(sub, here)
        items = sub.get("items")
        if isinstance(items, Mapping) and items.get("type") == "object":
            yield from iter_enum_defaults(items, f"{here}[]")
