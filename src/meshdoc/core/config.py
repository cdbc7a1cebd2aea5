"""
meshdoc Configuration

Immutable generator settings plus a layered loader supporting:
- Built-in defaults (lowest priority)
- Config file loading (YAML/JSON)
- Environment variable support (MESHDOC_*)
- Explicit overrides (highest priority)

The OpenAPI template held by the settings is never mutated; every generation
works on a deep copy obtained from `OpenAPISettings.openapi_template()`.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from meshdoc.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPENAPI_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def _client_error_response(description: str, example: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "description": description,
        "content": {
            "application/json": {
                "schema": {
                    "type": "object",
                    "example": example,
                },
            },
        },
    }


def default_openapi_template() -> Dict[str, Any]:
    """Base document merged underneath every generation."""
    return {
        "openapi": "3.0.3",
        "info": {
            "description": "",
            "version": "0.0.0",
            "title": "Api docs",
        },
        "tags": [],
        "paths": {},
        "components": {
            "schemas": {
                # Standard list/find payloads of database-backed services
                "DbMixinList": {
                    "type": "object",
                    "properties": {
                        "rows": {
                            "type": "array",
                            "items": {"type": "object"},
                        },
                        "totalCount": {"type": "number"},
                    },
                },
                "DbMixinFindList": {
                    "type": "array",
                    "items": {"type": "object"},
                },
                "Item": {"type": "object"},
            },
            "securitySchemes": {},
            "responses": {
                "ServerError": _client_error_response(
                    "Server errors: 500, 501, 400, 404 and etc...",
                    {"name": "ClientError", "message": "Server error message", "code": 500},
                ),
                "UnauthorizedError": _client_error_response(
                    "Need auth",
                    {"name": "ClientError", "message": "Unauth error message", "code": 401},
                ),
                "ValidationError": _client_error_response(
                    "Fields invalid",
                    {
                        "name": "ClientError",
                        "message": "Error message",
                        "code": 422,
                        "data": [
                            {"name": "fieldName", "message": "Field invalid"},
                            {"name": "arrayField[0].fieldName", "message": "Whats wrong"},
                            {"name": "object.fieldName", "message": "Whats wrong"},
                        ],
                    },
                ),
                "ReturnedData": {
                    "description": "",
                    "content": {
                        "application/json": {
                            "schema": {
                                "oneOf": [
                                    {"$ref": "#/components/schemas/DbMixinList"},
                                    {"$ref": "#/components/schemas/DbMixinFindList"},
                                    {"$ref": "#/components/schemas/Item"},
                                ],
                            },
                        },
                    },
                },
                "FileNotExist": _client_error_response(
                    "File not exist",
                    {"name": "ClientError", "message": "File missing in the request", "code": 400},
                ),
                "FileTooBig": _client_error_response(
                    "File too big",
                    {
                        "name": "PayloadTooLarge",
                        "message": "Payload too large",
                        "code": 413,
                        "type": "PAYLOAD_TOO_LARGE",
                        "data": {
                            "fieldname": "file",
                            "filename": "4b2005c0b8.png",
                            "encoding": "7bit",
                            "mimetype": "image/png",
                        },
                    },
                ),
            },
        },
    }


def default_common_responses() -> Dict[str, Any]:
    """Responses attached to every generated operation."""
    return {
        "200": {"$ref": "#/components/responses/ReturnedData"},
        "401": {"$ref": "#/components/responses/UnauthorizedError"},
        "422": {"$ref": "#/components/responses/ValidationError"},
        "default": {"$ref": "#/components/responses/ServerError"},
    }


@dataclass(frozen=True)
class OpenAPISettings:
    """Generator settings. Frozen; derive variants with `with_overrides`."""

    port: int = 3000
    only_local: bool = False  # build the document from locally hosted services only
    schema_path: str = "/api/openapi/openapi.json"
    ui_path: str = "/api/openapi/ui"
    assets_path: str = "/api/openapi/assets"
    # names of gateway services whose routes are scanned, empty means all
    collect_only_from_web_services: Tuple[str, ...] = ()
    common_path_item_object_responses: Dict[str, Any] = field(default_factory=default_common_responses)
    request_body_and_response_body_are_same_on_methods: Tuple[str, ...] = ()
    request_body_and_response_body_are_same_description: str = (
        "The answer may vary slightly from what is indicated here. "
        "Contain id and/or other additional attributes."
    )
    openapi: Dict[str, Any] = field(default_factory=default_openapi_template)

    def validate(self) -> None:
        """Validate settings, raising ConfigurationError on the first problem."""
        if not (1 <= self.port <= 65535):
            raise ConfigurationError(
                f"Invalid port: {self.port}. Must be between 1-65535",
                details={"port": self.port},
            )
        for name in ("schema_path", "ui_path", "assets_path"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.startswith("/"):
                raise ConfigurationError(
                    f"Invalid {name}: {value!r}. Must start with '/'",
                    details={name: value},
                )
        for method in self.request_body_and_response_body_are_same_on_methods:
            if method not in OPENAPI_METHODS:
                raise ConfigurationError(
                    f"Invalid mirrored method: {method!r}. Must be one of {list(OPENAPI_METHODS)}",
                    details={"method": method},
                )
        if not isinstance(self.openapi, Mapping):
            raise ConfigurationError("openapi template must be a mapping")
        if not isinstance(self.common_path_item_object_responses, Mapping):
            raise ConfigurationError("common_path_item_object_responses must be a mapping")

    def openapi_template(self) -> Dict[str, Any]:
        """Deep copy of the template, safe to mutate during one generation."""
        return copy.deepcopy(self.openapi)

    def common_responses(self) -> Dict[str, Any]:
        """Deep copy of the default responses, keyed by status code strings."""
        return {
            str(code): copy.deepcopy(response)
            for code, response in self.common_path_item_object_responses.items()
        }

    def with_overrides(self, **changes: Any) -> "OpenAPISettings":
        """Return a validated copy with `changes` applied."""
        updated = replace(self, **_coerce(changes))
        updated.validate()
        return updated


# File keys may be written the way the gateway configuration spells them.
_CAMEL_KEYS = {
    "onlyLocal": "only_local",
    "schemaPath": "schema_path",
    "uiPath": "ui_path",
    "assetsPath": "assets_path",
    "collectOnlyFromWebServices": "collect_only_from_web_services",
    "commonPathItemObjectResponses": "common_path_item_object_responses",
    "requestBodyAndResponseBodyAreSameOnMethods": "request_body_and_response_body_are_same_on_methods",
    "requestBodyAndResponseBodyAreSameDescription": "request_body_and_response_body_are_same_description",
}

_ENV_KEYS = {
    "MESHDOC_PORT": "port",
    "MESHDOC_ONLY_LOCAL": "only_local",
    "MESHDOC_SCHEMA_PATH": "schema_path",
    "MESHDOC_UI_PATH": "ui_path",
    "MESHDOC_ASSETS_PATH": "assets_path",
    "MESHDOC_COLLECT_ONLY": "collect_only_from_web_services",
    "MESHDOC_MIRROR_METHODS": "request_body_and_response_body_are_same_on_methods",
}

_LIST_FIELDS = ("collect_only_from_web_services", "request_body_and_response_body_are_same_on_methods")


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(OpenAPISettings)}
    result: Dict[str, Any] = {}
    for key, value in values.items():
        key = _CAMEL_KEYS.get(key, key)
        if key not in known:
            raise ConfigurationError(f"Unknown setting: {key}", details={"key": key})
        if key in _LIST_FIELDS:
            if isinstance(value, str):
                value = [item.strip() for item in value.split(",") if item.strip()]
            value = tuple(value or ())
            if key == "request_body_and_response_body_are_same_on_methods":
                value = tuple(method.lower() for method in value)
        elif key == "port":
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid port: {value!r}", details={"port": value}) from exc
        elif key == "only_local" and isinstance(value, str):
            value = value.strip().lower() in ("true", "yes", "1", "on")
        result[key] = value
    return result


def _merge_configs(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge two configuration dictionaries."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def _load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", details={"path": str(path)})
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _env_overrides() -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for env_var, key in _ENV_KEYS.items():
        value = os.getenv(env_var)
        if value is not None and value.strip():
            result[key] = value.strip()
    return result


def load_settings(
    config_file: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> OpenAPISettings:
    """
    Load settings from all sources with proper precedence.

    Args:
        config_file: Optional YAML or JSON file with settings
        overrides: Explicit overrides (e.g. from the command line)

    Returns:
        Validated, immutable settings

    Raises:
        ConfigurationError: If a source is unreadable or a value is invalid
    """
    load_dotenv()

    values: Dict[str, Any] = {}
    if config_file:
        file_values = _load_config_file(Path(config_file))
        values.update(_coerce(file_values))
        logger.debug("Loaded settings file %s", config_file, extra={"event": "config.file_loaded"})

    values.update(_coerce(_env_overrides()))
    if overrides:
        values.update(_coerce({k: v for k, v in overrides.items() if v is not None}))

    # A partial template only overrides what it names
    if isinstance(values.get("openapi"), Mapping):
        values["openapi"] = _merge_configs(default_openapi_template(), values["openapi"])

    settings = OpenAPISettings(**values)
    settings.validate()
    return settings
