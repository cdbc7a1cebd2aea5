"""
Path builder: turns the route table into OpenAPI Path Item Objects.

Every (action, occurrence) pair yields at most one operation. The operation is
built from a skeleton (tags, path parameters, common responses), then the
request is documented from the action's params (query parameters for get and
delete, a component schema for everything else), and finally the action's and
the occurrence's OpenAPI fragments are merged on top, in that order.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from typing import Any, Iterable

from meshdoc.core.config import OPENAPI_METHODS, OpenAPISettings
from meshdoc.core.models import ActionRouteEntry, PathOccurrence
from meshdoc.core.route_collector import RouteTable
from meshdoc.core.rule_tree import params_to_query, schema_from_params
from meshdoc.core.validator_tree import is_validator_tree, params_to_openapi

logger = logging.getLogger(__name__)

# Fragment keys describing the action's parameters rather than the operation
SCHEMA_HINT_KEYS = ("type", "properties", "required", "nullable")

_REPEATED_SLASHES = re.compile(r"/{2,}")
_PATH_TOKEN = re.compile(r"\{([^{}/]+)\}")


# ==================== Path helpers ====================


def normalize_path(path: str = "") -> str:
    """Collapse repeated slashes: `/api//users` -> `/api/users`."""
    return _REPEATED_SLASHES.sub("/", path)


def format_param_url(url: str = "") -> str:
    """Rewrite positional segments: `/users/:id/posts/:post` -> `/users/{id}/posts/{post}`."""
    segments = url.split("/")
    for index, segment in enumerate(segments):
        if index > 0 and len(segment) > 1 and segment.startswith(":"):
            segments[index] = "{" + segment[1:] + "}"
    return "/".join(segments)


def extract_params_from_url(url: str = "") -> tuple[list[dict[str, Any]], list[str]]:
    """Return path Parameter Objects for every `{name}` token, and the names, in order."""
    names = _PATH_TOKEN.findall(url)
    params = [
        {"in": "path", "required": True, "name": name, "schema": {"type": "string"}}
        for name in names
    ]
    return params, names


def add_tag_to_doc(doc: dict[str, Any], tag_name: Any) -> None:
    """Add `{"name": tag_name}` to the document tags unless empty or already present."""
    if not tag_name:
        return
    tags = doc.setdefault("tags", [])
    if any(isinstance(tag, Mapping) and tag.get("name") == tag_name for tag in tags):
        return
    tags.append({"name": tag_name})


# ==================== Merging ====================


def merge_objects(orig: dict[str, Any] | None, to_merge: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge `to_merge` into `orig` one level deep: nested mappings are shallow-merged per key."""
    orig = orig if orig is not None else {}
    for key, value in (to_merge or {}).items():
        current = orig.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            orig[key] = {**current, **value}
        elif isinstance(value, Mapping):
            orig[key] = dict(value)
        elif not isinstance(current, Mapping):
            # a scalar never replaces a section; it merges as an empty one
            orig[key] = {}
    return orig


def merge_path_item_objects(orig: dict[str, Any] | None, to_merge: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Merge an OpenAPI fragment onto an operation.

    `components` and `responses` merge key by key; every other key is replaced.
    A response that ends up with `content` drops its `$ref`.
    """
    orig = orig if orig is not None else {}
    for key, value in (to_merge or {}).items():
        if key == "components" and isinstance(value, Mapping):
            orig[key] = merge_objects(orig.get(key), value)
        elif key == "responses" and isinstance(value, Mapping):
            responses = merge_objects(orig.get(key), {str(code): item for code, item in value.items()})
            for response in responses.values():
                if isinstance(response, dict) and "content" in response:
                    response.pop("$ref", None)
            orig[key] = responses
        else:
            orig[key] = value
    return orig


def _operation_fragment(fragment: Mapping[str, Any] | None) -> dict[str, Any]:
    """Deep copy of a fragment without its parameter-schema hints."""
    if not isinstance(fragment, Mapping):
        return {}
    return {key: copy.deepcopy(value) for key, value in fragment.items() if key not in SCHEMA_HINT_KEYS}


# ==================== Request bodies ====================


def file_request_body(action_type: str) -> dict[str, Any]:
    """Request body of a file upload: multipart form data or a raw octet stream."""
    if action_type == "multipart":
        return {
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "properties": {
                            "file": {
                                "type": "array",
                                "items": {"type": "string", "format": "binary"},
                            },
                        },
                    },
                },
            },
        }
    return {
        "content": {
            "application/octet-stream": {
                "schema": {"type": "string", "format": "binary"},
            },
        },
    }


def _json_request_body(schema_name: str) -> dict[str, Any]:
    return {
        "content": {
            "application/json": {
                "schema": {"$ref": f"#/components/schemas/{schema_name}"},
            },
        },
    }


def parameter_hint(entry: ActionRouteEntry) -> dict[str, Any]:
    """
    Parameter-schema hints for one action.

    Validator-tree params always contribute their converted properties and
    `required`; an explicit fragment's `properties` override them per field.
    """
    hint = copy.deepcopy(entry.openapi) if isinstance(entry.openapi, Mapping) else {}
    if not is_validator_tree(entry.params):
        return hint

    converted = params_to_openapi(entry.params)
    properties = dict(converted.get("properties", {}))
    if isinstance(hint.get("properties"), Mapping):
        properties.update(hint["properties"])
    hint["properties"] = properties
    if not isinstance(hint.get("required"), list):
        hint["required"] = list(converted.get("required", []))
    return hint


def _take_path_param_hints(path_params: list[dict[str, Any]], hint: dict[str, Any]) -> None:
    """Let hinted properties describe path parameters and drop them from the hint."""
    properties = hint.get("properties")
    if not isinstance(properties, dict):
        return
    for param in path_params:
        prop = properties.pop(param["name"], None)
        if not isinstance(prop, Mapping):
            continue
        schema = dict(prop)
        description = schema.pop("description", None)
        param["schema"] = schema
        if description:
            param["description"] = description
        if isinstance(hint.get("required"), list):
            hint["required"] = [name for name in hint["required"] if name != param["name"]]


def service_of(action: str) -> str:
    """`v1.users.list` -> `v1.users`; a name without dots has no service."""
    return action.rsplit(".", 1)[0] if "." in action else ""


# ==================== Builder ====================


class PathBuilder:
    """Writes operations for a route table into an OpenAPI document."""

    def __init__(self, settings: OpenAPISettings):
        self.settings = settings
        self.mirror_methods = tuple(settings.request_body_and_response_body_are_same_on_methods)

    def build(self, doc: dict[str, Any], routes: RouteTable) -> dict[str, Any]:
        paths = doc.setdefault("paths", {})
        doc.setdefault("components", {}).setdefault("schemas", {})
        doc.setdefault("tags", [])

        for action, entry in routes.items():
            add_tag_to_doc(doc, service_of(action))
            for occurrence in entry.paths:
                self.add_operation(doc, action, entry, occurrence)

        logger.debug("Document holds %d paths", len(paths), extra={"event": "paths.built"})
        return doc

    def add_operation(
        self,
        doc: dict[str, Any],
        action: str,
        entry: ActionRouteEntry,
        occurrence: PathOccurrence,
    ) -> dict[str, Any] | None:
        """Add the operation of one occurrence; returns it, or None when skipped."""
        method = occurrence.method
        if method not in OPENAPI_METHODS:
            logger.debug(
                "Skipping alias %s of %s: %s is not an OpenAPI method",
                occurrence.alias,
                action,
                method or "<empty>",
                extra={"event": "paths.unsupported_method"},
            )
            return None

        openapi_path = format_param_url(normalize_path(f"{occurrence.base}/{occurrence.sub_path}"))
        path_params, path_param_names = extract_params_from_url(openapi_path)

        hint = parameter_hint(entry)
        _take_path_param_hints(path_params, hint)

        path_item = doc["paths"].setdefault(openapi_path, {})
        if method in path_item:
            logger.debug(
                "Skipping duplicate %s %s from %s",
                method.upper(),
                openapi_path,
                action,
                extra={"event": "paths.duplicate"},
            )
            return None

        service = service_of(action)
        operation: dict[str, Any] = {"summary": ""}
        if service:
            operation["tags"] = [service]
        operation["parameters"] = copy.deepcopy(path_params)
        operation["responses"] = self.settings.common_responses()

        if method in ("get", "delete"):
            operation["parameters"].extend(params_to_query(entry.params, path_param_names, hint))
        else:
            doc["components"]["schemas"][action] = schema_from_params(entry.params, path_param_names, hint)
            operation["requestBody"] = _json_request_body(action)

        if method in self.mirror_methods:
            operation["responses"]["200"] = {
                "description": self.settings.request_body_and_response_body_are_same_description,
                **copy.deepcopy(operation.get("requestBody", {})),
            }

        if entry.action_type in ("multipart", "stream"):
            operation["parameters"] = copy.deepcopy(path_params)
            operation["requestBody"] = file_request_body(entry.action_type)

        operation = merge_path_item_objects(operation, _operation_fragment(entry.openapi))
        operation = merge_path_item_objects(operation, _operation_fragment(occurrence.openapi))

        tags = operation.get("tags")
        if isinstance(tags, list):
            for tag in tags:
                add_tag_to_doc(doc, tag)

        components = operation.pop("components", None)
        if isinstance(components, Mapping):
            doc["components"] = merge_objects(doc["components"], components)

        operation["summary"] = _summary(operation.get("summary"), action, occurrence.auto_aliases)
        path_item[method] = operation
        return operation


def _summary(summary: Any, action: str, auto_aliases: bool) -> str:
    parts: Iterable[str] = (
        str(summary).strip() if summary else "",
        f"({action})",
        "[autoAlias]" if auto_aliases else "",
    )
    return " ".join(part for part in parts if part)
