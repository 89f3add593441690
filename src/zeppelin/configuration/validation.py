"""JSON-schema validation helpers for plugin configuration.

Plugin config schemas are plain Draft 7 JSON schemas. Validation never
raises: callers receive ``None`` on success or a :class:`StrictValidationError`
describing every problem found, so they can decide how to surface it.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List

from jsonschema import Draft7Validator, validators

from zeppelin.util.logger import get_logger

logger = get_logger("validation")

JsonSchema = Dict[str, Any]


class StrictValidationError:
    """Collection of validation errors for a single value."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)

    def get_errors(self) -> List[str]:
        return self.errors

    def __str__(self) -> str:
        return "\n".join(self.errors)

    def __repr__(self) -> str:
        return f"StrictValidationError({self.errors!r})"


def _fill_defaults(validator_class):
    """Extend a validator class so ``properties`` also writes schema defaults into the instance."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for name, subschema in properties.items():
                if isinstance(subschema, dict) and "default" in subschema and name not in instance:
                    instance[name] = copy.deepcopy(subschema["default"])

        yield from validate_properties(validator, properties, instance, schema)

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultFillingValidator = _fill_defaults(Draft7Validator)


def _format_error_path(path: Iterable[Any]) -> str:
    parts = [str(part) for part in path]
    return ".".join(parts) if parts else "<root>"


def _collect_errors(validator: Draft7Validator, value: Any) -> StrictValidationError | None:
    errors = sorted(validator.iter_errors(value), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return None
    return StrictValidationError(f"{_format_error_path(err.absolute_path)}: {err.message}" for err in errors)


def validate(schema: JsonSchema | None, value: Any) -> StrictValidationError | None:
    """
    Validate ``value`` against ``schema`` without modifying it.

    Args:
        schema: Draft 7 JSON schema. ``None`` accepts anything.
        value: The value to validate.

    Returns:
        None if the value is valid, otherwise a StrictValidationError listing every error.
    """
    if schema is None:
        return None
    return _collect_errors(Draft7Validator(schema), value)


def decode_and_validate_strict(schema: JsonSchema, value: Any) -> Any:
    """
    Validate ``value`` and return a decoded copy with schema defaults filled in.

    Args:
        schema: Draft 7 JSON schema.
        value: The value to decode. Never mutated.

    Returns:
        The decoded value, or a StrictValidationError if validation failed.
    """
    decoded = copy.deepcopy(value)
    error = _collect_errors(DefaultFillingValidator(schema), decoded)
    if error is not None:
        return error
    return decoded


def deep_partial(schema: Any) -> Any:
    """Return a copy of ``schema`` with every ``required`` list removed, at any depth."""
    if isinstance(schema, list):
        return [deep_partial(sub) for sub in schema]
    if not isinstance(schema, dict):
        return schema

    partial = {}
    for key, sub in schema.items():
        if key == "required":
            continue
        if key in ("properties", "patternProperties", "definitions") and isinstance(sub, dict):
            # Keys here are names, not keywords
            partial[key] = {name: deep_partial(prop) for name, prop in sub.items()}
        else:
            partial[key] = deep_partial(sub)
    return partial


def nullable(schema: JsonSchema) -> JsonSchema:
    return {"anyOf": [schema, {"type": "null"}]}


def strict_object(properties: Dict[str, JsonSchema], required: Iterable[str] | None = None) -> JsonSchema:
    """
    Build an object schema that rejects unknown keys.

    Args:
        properties: Property name to subschema.
        required: Required property names. Defaults to every property.
    """
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties) if required is None else list(required),
        "additionalProperties": False,
    }
