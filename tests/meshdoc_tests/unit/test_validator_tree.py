"""
Unit tests for the validator-tree schema converter.
"""

import re

from meshdoc.core.validator_tree import (
    _CONVERTERS,
    MAX_SCHEMA_DEPTH,
    VALIDATOR_MARKER,
    ValidatorKind,
    convert_node,
    is_validator_tree,
    params_to_openapi,
)


def _string(*checks, **extra):
    return {"kind": "string", "checks": list(checks), **extra}


def test_string_checks():
    node = _string({"kind": "email"}, {"kind": "min", "value": 3}, {"kind": "max", "value": 64})
    assert convert_node(node) == {"type": "string", "format": "email", "minLength": 3, "maxLength": 64}


def test_string_regex_and_length():
    node = _string({"kind": "regex", "regex": re.compile(r"^[a-z]+$")}, {"kind": "length", "value": 4})
    assert convert_node(node) == {"type": "string", "pattern": "^[a-z]+$", "minLength": 4, "maxLength": 4}


def test_string_formats():
    assert convert_node(_string({"kind": "uuid"}))["format"] == "uuid"
    assert convert_node(_string({"kind": "url"}))["format"] == "uri"
    assert convert_node(_string({"kind": "datetime"}))["format"] == "date-time"


def test_number_int_and_bounds():
    node = {"kind": "number", "checks": [{"kind": "int"}, {"kind": "min", "value": 0}, {"kind": "max", "value": 120}]}
    assert convert_node(node) == {"type": "integer", "minimum": 0, "maximum": 120}


def test_leaf_description():
    assert convert_node({"kind": "boolean", "description": "Active flag"}) == {
        "type": "boolean",
        "description": "Active flag",
    }


def test_wrappers_preserve_leaf_type_and_format():
    leaf = _string({"kind": "email"})
    assert convert_node({"kind": "optional", "inner": leaf}) == {"type": "string", "format": "email"}
    assert convert_node({"kind": "nullable", "inner": leaf}) == {
        "type": "string",
        "format": "email",
        "nullable": True,
    }
    assert convert_node({"kind": "default", "inner": leaf, "default": "a@b.c"}) == {
        "type": "string",
        "format": "email",
        "default": "a@b.c",
    }


def test_wrapper_description_lands_on_result():
    node = {"kind": "optional", "inner": {"kind": "number"}, "description": "Age in years"}
    assert convert_node(node) == {"type": "number", "description": "Age in years"}


def test_pipeline_follows_output():
    node = {"kind": "pipeline", "in": {"kind": "string"}, "out": {"kind": "number"}}
    assert convert_node(node) == {"type": "number"}


def test_array_enum_and_union():
    assert convert_node({"kind": "array", "element": {"kind": "boolean"}}) == {
        "type": "array",
        "items": {"type": "boolean"},
    }
    assert convert_node({"kind": "enum", "values": ["red", "green"]}) == {
        "type": "string",
        "enum": ["red", "green"],
    }
    assert convert_node({"kind": "union", "options": [{"kind": "string"}, {"kind": "number"}]}) == {
        "oneOf": [{"type": "string"}, {"type": "number"}],
    }


def test_object_required_skips_optional_and_default():
    node = {
        "kind": "object",
        "shape": {
            "email": _string({"kind": "email"}),
            "age": {"kind": "optional", "inner": {"kind": "number"}},
            "role": {"kind": "default", "inner": {"kind": "string"}, "default": "user"},
            "bio": {"kind": "nullable", "inner": {"kind": "string"}},
        },
    }
    schema = convert_node(node)
    assert schema["required"] == ["email", "bio"]
    assert set(schema["properties"]) == {"email", "age", "role", "bio"}


def test_object_without_required_fields_omits_required():
    schema = convert_node({"kind": "object", "shape": {"a": {"kind": "optional", "inner": {"kind": "string"}}}})
    assert "required" not in schema


def test_unknown_kind_degrades_with_diagnostic():
    assert convert_node({"kind": "bigint"}) == {
        "type": "string",
        "description": "invalid schema: unknown node kind 'bigint'",
    }


def test_non_mapping_node_degrades():
    schema = convert_node(42)
    assert schema["type"] == "string"
    assert schema["description"].startswith("invalid schema:")


def test_unhashable_kind_degrades():
    schema = convert_node({"kind": ["string"]})
    assert schema["description"].startswith("invalid schema:")


def test_invalid_child_does_not_stop_siblings():
    schema = convert_node({"kind": "object", "shape": {"ok": {"kind": "string"}, "bad": {"kind": "nope"}}})
    assert schema["properties"]["ok"] == {"type": "string"}
    assert schema["properties"]["bad"]["description"].startswith("invalid schema:")


def test_depth_bound():
    schema = convert_node({"kind": "string"}, depth=MAX_SCHEMA_DEPTH + 1)
    assert schema["type"] == "string"
    assert "deeper" in schema["description"]


def test_marker_detection_and_params_conversion():
    params = {
        VALIDATOR_MARKER: {"strict": True},
        "email": _string({"kind": "email"}),
        "age": {"kind": "optional", "inner": {"kind": "number", "checks": [{"kind": "int"}]}},
    }
    assert is_validator_tree(params)
    assert not is_validator_tree({"email": "email"})
    assert not is_validator_tree(None)

    schema = params_to_openapi(params)
    assert schema == {
        "type": "object",
        "properties": {
            "email": {"type": "string", "format": "email"},
            "age": {"type": "integer"},
        },
        "required": ["email"],
    }


def test_every_node_kind_has_a_converter():
    assert set(_CONVERTERS) == set(ValidatorKind)
