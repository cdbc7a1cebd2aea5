"""
Validator-tree schemas to OpenAPI Schema Objects.

Validator-tree parameter schemas are composable, tagged nodes:

    {"kind": "object", "shape": {
        "email": {"kind": "string", "checks": [{"kind": "email"}]},
        "age": {"kind": "optional", "inner": {"kind": "number", "checks": [{"kind": "int"}]}},
    }}

An action declares this dialect by carrying the `$$$options` marker key at the
top level of its params. Conversion is total: a node that cannot be understood
becomes a string schema whose description says what was wrong, so one bad
node never stops the rest of the document from being built.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

VALIDATOR_MARKER = "$$$options"
MAX_SCHEMA_DEPTH = 32

Schema = dict[str, Any]


class ValidatorKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ENUM = "enum"
    UNION = "union"
    NULLABLE = "nullable"
    OPTIONAL = "optional"
    DEFAULT = "default"
    PIPELINE = "pipeline"


# Wrappers that make an object property optional
_NOT_REQUIRED = (ValidatorKind.OPTIONAL.value, ValidatorKind.DEFAULT.value)

_STRING_FORMATS = {
    "email": "email",
    "uuid": "uuid",
    "url": "uri",
    "datetime": "date-time",
}


def is_validator_tree(params: Any) -> bool:
    return isinstance(params, Mapping) and VALIDATOR_MARKER in params


def invalid_schema(diagnostic: str) -> Schema:
    return {"type": "string", "description": f"invalid schema: {diagnostic}"}


def regex_source(value: Any) -> str | None:
    """Source text of a pattern given as a string, compiled regex or {"source": ...}."""
    if isinstance(value, re.Pattern):
        return value.pattern
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping) and isinstance(value.get("source"), str):
        return value["source"] or None
    return None


def _checks(node: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    checks = node.get("checks")
    if not isinstance(checks, (list, tuple)):
        return []
    return [check for check in checks if isinstance(check, Mapping)]


def _describe(schema: Schema, node: Mapping[str, Any]) -> Schema:
    description = node.get("description")
    if isinstance(description, str) and description:
        schema["description"] = description
    return schema


def _convert_string(node: Mapping[str, Any], depth: int) -> Schema:
    schema: Schema = {"type": "string"}
    for check in _checks(node):
        kind = check.get("kind")
        value = check.get("value")
        if kind == "min" and value is not None:
            schema["minLength"] = value
        elif kind == "max" and value is not None:
            schema["maxLength"] = value
        elif kind == "length" and value is not None:
            schema["minLength"] = value
            schema["maxLength"] = value
        elif kind == "regex":
            source = regex_source(check.get("regex", value))
            if source:
                schema["pattern"] = source
        elif isinstance(kind, str) and kind in _STRING_FORMATS:
            schema["format"] = _STRING_FORMATS[kind]
    return _describe(schema, node)


def _convert_number(node: Mapping[str, Any], depth: int) -> Schema:
    schema: Schema = {"type": "number"}
    for check in _checks(node):
        kind = check.get("kind")
        value = check.get("value")
        if kind == "min" and value is not None:
            schema["minimum"] = value
        elif kind == "max" and value is not None:
            schema["maximum"] = value
        elif kind == "int":
            schema["type"] = "integer"
    return _describe(schema, node)


def _convert_boolean(node: Mapping[str, Any], depth: int) -> Schema:
    return _describe({"type": "boolean"}, node)


def _convert_array(node: Mapping[str, Any], depth: int) -> Schema:
    schema: Schema = {"type": "array", "items": convert_node(node.get("element"), depth + 1)}
    return _describe(schema, node)


def _convert_object(node: Mapping[str, Any], depth: int) -> Schema:
    shape = node.get("shape")
    if not isinstance(shape, Mapping):
        shape = {}

    properties: Schema = {}
    required: list[str] = []
    for name, child in shape.items():
        properties[str(name)] = convert_node(child, depth + 1)
        if not (isinstance(child, Mapping) and child.get("kind") in _NOT_REQUIRED):
            required.append(str(name))

    schema: Schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return _describe(schema, node)


def _convert_enum(node: Mapping[str, Any], depth: int) -> Schema:
    values = node.get("values")
    schema: Schema = {"type": "string"}
    if isinstance(values, (list, tuple)):
        schema["enum"] = list(values)
    return _describe(schema, node)


def _convert_union(node: Mapping[str, Any], depth: int) -> Schema:
    options = node.get("options")
    if not isinstance(options, (list, tuple)):
        options = []
    return _describe({"oneOf": [convert_node(option, depth + 1) for option in options]}, node)


def _convert_nullable(node: Mapping[str, Any], depth: int) -> Schema:
    schema = convert_node(node.get("inner"), depth + 1)
    schema["nullable"] = True
    return _describe(schema, node)


def _convert_optional(node: Mapping[str, Any], depth: int) -> Schema:
    return _describe(convert_node(node.get("inner"), depth + 1), node)


def _convert_default(node: Mapping[str, Any], depth: int) -> Schema:
    schema = convert_node(node.get("inner"), depth + 1)
    if "default" in node:
        schema["default"] = copy.deepcopy(node["default"])
    return _describe(schema, node)


def _convert_pipeline(node: Mapping[str, Any], depth: int) -> Schema:
    # The documented shape is what the pipeline produces
    return _describe(convert_node(node.get("out"), depth + 1), node)


_CONVERTERS: dict[ValidatorKind, Callable[[Mapping[str, Any], int], Schema]] = {
    ValidatorKind.STRING: _convert_string,
    ValidatorKind.NUMBER: _convert_number,
    ValidatorKind.BOOLEAN: _convert_boolean,
    ValidatorKind.ARRAY: _convert_array,
    ValidatorKind.OBJECT: _convert_object,
    ValidatorKind.ENUM: _convert_enum,
    ValidatorKind.UNION: _convert_union,
    ValidatorKind.NULLABLE: _convert_nullable,
    ValidatorKind.OPTIONAL: _convert_optional,
    ValidatorKind.DEFAULT: _convert_default,
    ValidatorKind.PIPELINE: _convert_pipeline,
}

def convert_node(node: Any, depth: int = 0) -> Schema:
    """Convert one validator-tree node. Never raises."""
    if depth > MAX_SCHEMA_DEPTH:
        return invalid_schema(f"nesting deeper than {MAX_SCHEMA_DEPTH} levels")
    if not isinstance(node, Mapping):
        return invalid_schema(f"expected a schema node, got {type(node).__name__}")

    raw_kind = node.get("kind")
    try:
        kind = ValidatorKind(raw_kind)
    except (ValueError, TypeError):
        return invalid_schema(f"unknown node kind {raw_kind!r}")
    return _CONVERTERS[kind](node, depth)


def params_to_openapi(params: Any) -> Schema:
    """Convert a marked validator-tree params mapping into an object schema."""
    if not isinstance(params, Mapping):
        return invalid_schema(f"expected a params mapping, got {type(params).__name__}")
    shape = {name: child for name, child in params.items() if name != VALIDATOR_MARKER}
    return convert_node({"kind": ValidatorKind.OBJECT.value, "shape": shape})
