"""
Route collection across gateway nodes.

Builds the action -> route occurrences table from the aliases declared on
gateway routes and from the aliases gateways expand themselves (auto-aliases).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from meshdoc.core.metrics import GenerationMetrics
from meshdoc.core.models import (
    UNRESOLVED_ACTION_NAME,
    ActionRouteEntry,
    AliasDescriptor,
    AliasKind,
    PathOccurrence,
    ResolvedAlias,
    RouteDefinition,
    ServiceNode,
    parse_alias_descriptors,
)
from meshdoc.core.registry import ServiceRegistry

logger = logging.getLogger(__name__)

RouteTable = dict[str, ActionRouteEntry]


def resolve_alias_target(target: Any) -> ResolvedAlias:
    """
    Normalize an alias target into the action it calls.

    Accepted shapes:
        "users.list"                               plain action name
        {"action": "users.list", "type": ..., ...}  object form
        [middleware, ..., "users.list"]            last element is the action
        "multipart:files.upload"                   type-tagged action, any of the above
    Everything else resolves to the unknown-action sentinel.
    """
    action_type = None
    openapi = None

    if isinstance(target, str) and target:
        kind, action = AliasKind.PLAIN, target
    elif isinstance(target, Mapping) and isinstance(target.get("action"), str) and target["action"]:
        kind, action = AliasKind.OBJECT, target["action"]
        if target.get("type") is not None:
            action_type = str(target["type"])
        if isinstance(target.get("openapi"), Mapping):
            openapi = dict(target["openapi"])
    elif isinstance(target, (list, tuple)) and target and isinstance(target[-1], str) and target[-1]:
        kind, action = AliasKind.CHAIN, target[-1]
    else:
        return ResolvedAlias(AliasKind.UNRESOLVED, UNRESOLVED_ACTION_NAME)

    if ":" in action:
        action_type, _, action = action.partition(":")
        kind = AliasKind.TYPED

    return ResolvedAlias(kind, action, action_type, openapi)


def convert_auto_aliases_to_route(descriptors: Iterable[AliasDescriptor]) -> RouteDefinition:
    """Turn a gateway's expanded alias listing into a synthetic route."""
    aliases: dict[str, Any] = {}
    for descriptor in descriptors:
        target = {
            "action": descriptor.action_name or UNRESOLVED_ACTION_NAME,
            "type": descriptor.type,
            "openapi": descriptor.openapi,
        }
        for key in descriptor.alias_keys():
            aliases[key] = target
    return RouteDefinition(path="", aliases=aliases, autoAliases=True)


def build_action_route_struct(route: RouteDefinition, routes: RouteTable) -> RouteTable:
    """Append every alias of `route` to the table entry of the action it calls."""
    for alias, target in route.aliases.items():
        resolved = resolve_alias_target(target)
        if resolved.kind is AliasKind.UNRESOLVED:
            logger.debug("Alias %s has no resolvable action", alias, extra={"event": "routes.unresolved_alias"})

        entry = routes.get(resolved.action)
        if entry is None:
            entry = routes[resolved.action] = ActionRouteEntry(action_type=resolved.action_type)

        entry.paths.append(
            PathOccurrence(
                base=route.path or "",
                alias=alias,
                auto_aliases=route.auto_aliases,
                openapi=resolved.openapi,
            )
        )
    return routes


class RouteCollector:
    """Collects the route table of a mesh snapshot."""

    def __init__(
        self,
        registry: ServiceRegistry,
        allowed_services: Iterable[str] = (),
        metrics: GenerationMetrics | None = None,
    ):
        self.registry = registry
        self.allowed_services = tuple(allowed_services)
        self.metrics = metrics

    def _is_collected(self, node: ServiceNode) -> bool:
        if not node.routes:
            return False
        return not self.allowed_services or node.name in self.allowed_services

    async def _fetch_auto_aliases(self, node: ServiceNode) -> RouteDefinition:
        service = node.qualified_name
        try:
            raw = await self.registry.fetch_aliases_for_service(service)
        except Exception:
            if self.metrics:
                self.metrics.record_alias_lookup("error")
            raise
        if self.metrics:
            self.metrics.record_alias_lookup("ok")
        return convert_auto_aliases_to_route(parse_alias_descriptors(service, raw))

    async def collect(self, nodes: list[ServiceNode]) -> RouteTable:
        """
        Build the route table for `nodes`.

        Auto-alias lookups run concurrently; the table is then folded in node
        order (static aliases first, then the node's expansion) so the result
        does not depend on which lookup finished first. When lookups fail, the
        first failure in node order propagates and no table is produced.
        """
        gateways = [node for node in nodes if self._is_collected(node)]
        auto_indexes = [
            index for index, node in enumerate(gateways)
            if any(route.auto_aliases for route in node.routes)
        ]

        expansions = await asyncio.gather(
            *(self._fetch_auto_aliases(gateways[index]) for index in auto_indexes),
            return_exceptions=True,
        )
        # every lookup settles before the first failure in node order is raised
        for expansion in expansions:
            if isinstance(expansion, BaseException):
                raise expansion
        expansion_by_index = dict(zip(auto_indexes, expansions))

        routes: RouteTable = {}
        for index, node in enumerate(gateways):
            for route in node.routes:
                build_action_route_struct(route, routes)
            if index in expansion_by_index:
                build_action_route_struct(expansion_by_index[index], routes)

        logger.debug(
            "Collected %d actions from %d gateway nodes",
            len(routes),
            len(gateways),
            extra={"event": "routes.collected"},
        )
        return routes
