"""
Rule-tree parameter schemas to OpenAPI.

Rule-tree params are a flat field -> rule mapping:

    {
        "id": {"type": "uuid"},
        "role": {"type": "enum", "values": ["admin", "user"]},
        "tags": {"type": "array", "items": "string", "max": 10},
        "name": "string|optional",
    }

A rule's kind comes from its `type` over a closed set; anything outside it is
documented as a plain string. Fields whose name starts with `$$` are validator
system keys and are never documented.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from enum import Enum
from typing import Any, Iterable

from meshdoc.core.validator_tree import MAX_SCHEMA_DEPTH, regex_source

Schema = dict[str, Any]


class NodeKind(str, Enum):
    BOOLEAN = "boolean"
    NUMBER = "number"
    DATE = "date"
    UUID = "uuid"
    EMAIL = "email"
    URL = "url"
    STRING = "string"
    ENUM = "enum"


_KIND_TABLE: dict[NodeKind, Schema] = {
    NodeKind.BOOLEAN: {"example": False, "type": "boolean"},
    NodeKind.NUMBER: {"example": None, "type": "number"},
    NodeKind.DATE: {"example": "1998-01-10T13:00:00.000Z", "type": "string", "format": "date-time"},
    NodeKind.UUID: {"example": "10ba038e-48da-487b-96e8-8d3b99b6d18a", "type": "string", "format": "uuid"},
    NodeKind.EMAIL: {"example": "foo@example.com", "type": "string", "format": "email"},
    NodeKind.URL: {"example": "https://example.com", "type": "string", "format": "uri"},
    NodeKind.STRING: {"example": "", "type": "string"},
    NodeKind.ENUM: {"type": "string"},
}

_NESTED_TYPES = ("object", "array")


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _kind_of(node_type: Any) -> NodeKind | None:
    if isinstance(node_type, (list, tuple)):
        node_type = node_type[0] if node_type else NodeKind.STRING.value
    try:
        return NodeKind(str(node_type))
    except ValueError:
        return None


def expand_short_definition(rule: str) -> Schema:
    """Expand shorthand rules such as "string", "number|optional" or "email[]"."""
    node: Schema = {"type": "string"}
    parts = [part.strip() for part in rule.split("|")]

    if "optional" in parts:
        node["optional"] = True

    for part in parts:
        if part in _NESTED_TYPES:
            node["type"] = part
        elif part.endswith("[]") and _kind_of(part[:-2]) is not None:
            node["type"] = "array"
            node["items"] = part[:-2]
        elif _kind_of(part) is not None:
            node["type"] = part

    return node


def _normalize_node(raw: Any) -> Schema:
    if isinstance(raw, str):
        return expand_short_definition(raw)
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (list, tuple)):
        # several alternative rules for one field
        return {"type": "array"}
    return {}


def _description(node: Mapping[str, Any]) -> str | None:
    description = _first_set(node.get("$$t"), node.get("description"))
    return description if isinstance(description, str) and description else None


def get_type_and_example(node: Any) -> Schema:
    """Flat lookup of a scalar rule: type, format, example and constraints."""
    if not isinstance(node, Mapping):
        node = {}

    kind = _kind_of(node.get("type"))
    if kind is None:
        out: Schema = {"type": "string"}
    else:
        out = dict(_KIND_TABLE[kind])

    if kind is NodeKind.ENUM:
        values = node.get("values")
        if isinstance(values, (list, tuple)):
            out["enum"] = list(values)
            if values:
                out["example"] = values[0]

    enum = node.get("enum")
    if isinstance(enum, (list, tuple)):
        out["enum"] = list(enum)
        if enum:
            out["example"] = enum[0]

    if "default" in node:
        out["default"] = copy.deepcopy(node["default"])
        out.pop("example", None)

    # `length` is an exact length: it pins both bounds
    min_length = _first_set(node.get("length"), node.get("min"))
    max_length = _first_set(node.get("length"), node.get("max"))
    if min_length is not None:
        out["minLength"] = min_length
    if max_length is not None:
        out["maxLength"] = max_length

    if kind is NodeKind.NUMBER:
        if node.get("min") is not None:
            out["minimum"] = node["min"]
        if node.get("max") is not None:
            out["maximum"] = node["max"]

    pattern = regex_source(node.get("pattern"))
    if pattern:
        out["pattern"] = pattern

    return out


def _array_schema(node: Mapping[str, Any], depth: int) -> Schema:
    items = node.get("items")
    if isinstance(items, Mapping):
        item_schema = convert_rule_node(items, depth + 1)
    elif isinstance(items, str) and "|" in items:
        item_schema = convert_rule_node(items, depth + 1)
    else:
        item_node: Schema = {"type": items}
        if isinstance(node.get("enum"), (list, tuple)):
            item_node["enum"] = node["enum"]
        default = node.get("default")
        if isinstance(default, (list, tuple)) and default:
            item_node["default"] = copy.deepcopy(default[0])
        item_schema = get_type_and_example(item_node)

    schema: Schema = {"type": "array", "items": item_schema}
    if node.get("unique"):
        schema["uniqueItems"] = True
    min_items = _first_set(node.get("length"), node.get("min"))
    max_items = _first_set(node.get("length"), node.get("max"))
    if min_items is not None:
        schema["minItems"] = min_items
    if max_items is not None:
        schema["maxItems"] = max_items
    if "default" in node:
        schema["default"] = copy.deepcopy(node["default"])
    return schema


def _is_required(node: Mapping[str, Any]) -> bool:
    return not node.get("optional") and "default" not in node


def _hint_properties(openapi_hint: Any) -> Mapping[str, Any]:
    if isinstance(openapi_hint, Mapping) and isinstance(openapi_hint.get("properties"), Mapping):
        return openapi_hint["properties"]
    return {}


def _hint_required(openapi_hint: Any) -> list[str]:
    if isinstance(openapi_hint, Mapping) and isinstance(openapi_hint.get("required"), (list, tuple)):
        return list(openapi_hint["required"])
    return []


def _object_properties(
    fields: Mapping[str, Any],
    exclude: Iterable[str],
    openapi_hint: Any,
    depth: int,
) -> tuple[Schema, list[str]]:
    excluded = set(exclude)
    hints = _hint_properties(openapi_hint)
    hinted_required = _hint_required(openapi_hint)

    properties: Schema = {}
    required: list[str] = []
    for name, raw in fields.items():
        if not isinstance(name, str) or name.startswith("$$") or name in excluded:
            continue

        if name in hints:
            properties[name] = copy.deepcopy(hints[name])
            if name in hinted_required:
                required.append(name)
            continue

        node = _normalize_node(raw)
        properties[name] = convert_rule_node(node, depth + 1)
        if _is_required(node):
            required.append(name)
    return properties, required


def convert_rule_node(raw: Any, depth: int = 0) -> Schema:
    """Convert one rule, nesting objects and arrays structurally."""
    node = _normalize_node(raw)
    if depth > MAX_SCHEMA_DEPTH:
        return {"type": "string"}

    node_type = node.get("type")
    if node_type == "object":
        schema: Schema = {"type": "object"}
        props = _first_set(node.get("props"), node.get("properties"))
        if isinstance(props, Mapping):
            properties, required = _object_properties(props, (), None, depth)
            schema["properties"] = properties
            if required:
                schema["required"] = required
        if "default" in node:
            schema["default"] = copy.deepcopy(node["default"])
    elif node_type == "array":
        schema = _array_schema(node, depth)
    else:
        schema = get_type_and_example(node)

    description = _description(node)
    if description:
        schema["description"] = description
    return schema


def params_to_query(
    params: Mapping[str, Any] | None,
    exclude: Iterable[str] = (),
    openapi_hint: Any = None,
) -> list[Schema]:
    """
    Render params as query Parameter Objects.

    Scalars become `name`, arrays become `name[]` with an `items` schema.
    A property of the same name in `openapi_hint` replaces the rule rendering.
    """
    excluded = set(exclude)
    hints = _hint_properties(openapi_hint)
    out: list[Schema] = []

    for name, raw in (params or {}).items():
        if not isinstance(name, str) or name.startswith("$$") or name in excluded:
            continue

        node = _normalize_node(raw)
        hint = hints.get(name)
        schema = copy.deepcopy(hint) if isinstance(hint, Mapping) else None

        if node.get("type") == "array" or (schema is not None and schema.get("type") == "array"):
            if schema is None:
                schema = _array_schema(node, 0)
            description = schema.pop("description", None) or _description(node)
            param: Schema = {"name": f"{name}[]", "in": "query", "schema": schema}
        else:
            if schema is None:
                schema = convert_rule_node(node) if node.get("type") == "object" else get_type_and_example(node)
                schema.pop("description", None)
                description = _description(node)
            else:
                description = schema.pop("description", None)
            param = {"in": "query", "name": name, "schema": schema}

        if description:
            param["description"] = description
        out.append(param)

    return out


def schema_from_params(
    params: Mapping[str, Any] | None,
    exclude: Iterable[str] = (),
    openapi_hint: Any = None,
) -> Schema:
    """Build the object Schema Object documenting a request body."""
    properties, required = _object_properties(params or {}, exclude, openapi_hint, 0)
    schema: Schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema
