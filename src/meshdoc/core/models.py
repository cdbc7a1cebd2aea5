"""
Data model for registry payloads and the collected route table.

Registry payloads (service nodes, route definitions, auto-alias descriptors)
are validated with pydantic; they are open models because gateways attach
arbitrary extra settings. The route table built from them is plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from meshdoc.core.exceptions import RegistryError

UNRESOLVED_ACTION_NAME = "unknown-action"


# ==================== Registry payloads ====================


class _RegistryModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ActionDescriptor(_RegistryModel):
    """A callable action: parameter schema plus optional OpenAPI fragment."""

    name: str | None = None
    params: dict[str, Any] | None = None
    openapi: dict[str, Any] | None = None


class RouteDefinition(_RegistryModel):
    """One gateway route: base path and its alias table."""

    path: str | None = None
    aliases: dict[str, Any] = Field(default_factory=dict)
    auto_aliases: bool = Field(default=False, alias="autoAliases")


class NodeSettings(_RegistryModel):
    routes: list[RouteDefinition] | None = None


class ServiceNode(_RegistryModel):
    """A service as enumerated by the registry."""

    name: str
    version: str | int | float | None = None
    settings: NodeSettings | None = None
    actions: dict[str, ActionDescriptor] = Field(default_factory=dict)

    @property
    def routes(self) -> list[RouteDefinition]:
        if self.settings is None or not self.settings.routes:
            return []
        return self.settings.routes

    @property
    def qualified_name(self) -> str:
        """Service name as addressed on the bus, `v<version>.<name>` when versioned."""
        if self.version is None:
            return self.name
        return f"v{self.version}.{self.name}"


class AliasDescriptor(_RegistryModel):
    """An alias expanded by the gateway itself (auto-aliasing)."""

    methods: str | list[str] = "GET"
    full_path: str = Field(alias="fullPath")
    action_name: str | None = Field(default=None, alias="actionName")
    type: str | None = None
    openapi: dict[str, Any] | None = None

    def alias_keys(self) -> list[str]:
        methods = [self.methods] if isinstance(self.methods, str) else list(self.methods)
        return [f"{method} {self.full_path}" for method in methods]


def parse_nodes(raw_nodes: Iterable[Any]) -> list[ServiceNode]:
    """Validate raw node descriptors, raising RegistryError on malformed payloads."""
    try:
        return [ServiceNode.model_validate(raw) for raw in raw_nodes]
    except ValidationError as exc:
        raise RegistryError(
            "Registry returned malformed service descriptors",
            details={"errors": exc.errors(include_url=False)},
            recoverable=False,
        ) from exc


def parse_alias_descriptors(service: str, raw_aliases: Iterable[Any]) -> list[AliasDescriptor]:
    """Validate the auto-alias listing of one service."""
    try:
        return [AliasDescriptor.model_validate(raw) for raw in raw_aliases]
    except ValidationError as exc:
        raise RegistryError(
            f"Registry returned malformed aliases for {service}",
            details={"service": service, "errors": exc.errors(include_url=False)},
            recoverable=False,
        ) from exc


# ==================== Route table ====================


class AliasKind(Enum):
    """Shapes an alias target can take in a route definition."""

    PLAIN = "plain"  # "users.list"
    OBJECT = "object"  # {"action": "users.list", "type": ..., "openapi": ...}
    CHAIN = "chain"  # [middleware, ..., "users.list"]
    TYPED = "typed"  # "multipart:files.upload"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ResolvedAlias:
    kind: AliasKind
    action: str
    action_type: str | None = None
    openapi: dict[str, Any] | None = None


@dataclass
class PathOccurrence:
    """One place an action is reachable: gateway base path plus "METHOD /url" alias."""

    base: str
    alias: str
    auto_aliases: bool = False
    openapi: dict[str, Any] | None = None

    @property
    def method(self) -> str:
        parts = self.alias.split(None, 1)
        return parts[0].lower() if parts else ""

    @property
    def sub_path(self) -> str:
        parts = self.alias.split(None, 1)
        return parts[1].strip() if len(parts) > 1 else ""


@dataclass
class ActionRouteEntry:
    action_type: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    paths: list[PathOccurrence] = field(default_factory=list)
    openapi: dict[str, Any] | None = None
