"""
Unit tests for route collection.

Coverage targets:
- Alias target normalization over every accepted shape
- Occurrence accumulation and action type pinning
- Auto-alias lookups: versioned names, ordering, failure propagation
"""

import asyncio

import pytest

from meshdoc.core.exceptions import AliasLookupError
from meshdoc.core.metrics import GenerationMetrics
from meshdoc.core.models import (
    UNRESOLVED_ACTION_NAME,
    AliasDescriptor,
    AliasKind,
    RouteDefinition,
    parse_nodes,
)
from meshdoc.core.registry import StaticRegistry
from meshdoc.core.route_collector import (
    RouteCollector,
    build_action_route_struct,
    convert_auto_aliases_to_route,
    resolve_alias_target,
)


# ==================== Alias targets ====================


def test_plain_string_target():
    resolved = resolve_alias_target("users.list")
    assert resolved.kind is AliasKind.PLAIN
    assert resolved.action == "users.list"
    assert resolved.action_type is None


def test_object_target_carries_type_and_fragment():
    resolved = resolve_alias_target({"action": "files.get", "type": "stream", "openapi": {"summary": "Download"}})
    assert resolved.kind is AliasKind.OBJECT
    assert resolved.action == "files.get"
    assert resolved.action_type == "stream"
    assert resolved.openapi == {"summary": "Download"}


def test_chain_target_uses_last_element():
    resolved = resolve_alias_target([lambda req: None, "auth.check", "users.remove"])
    assert resolved.kind is AliasKind.CHAIN
    assert resolved.action == "users.remove"


def test_typed_target_splits_on_first_colon():
    resolved = resolve_alias_target("multipart:files.upload")
    assert resolved.kind is AliasKind.TYPED
    assert resolved.action_type == "multipart"
    assert resolved.action == "files.upload"

    nested = resolve_alias_target({"action": "stream:files.get:raw"})
    assert nested.action_type == "stream"
    assert nested.action == "files.get:raw"


@pytest.mark.parametrize("target", [42, None, "", [], ["auth.check", 7], {"type": "stream"}, {"action": ""}])
def test_unresolvable_targets_map_to_sentinel(target):
    resolved = resolve_alias_target(target)
    assert resolved.kind is AliasKind.UNRESOLVED
    assert resolved.action == UNRESOLVED_ACTION_NAME


# ==================== Route table ====================


def test_occurrences_accumulate_and_first_type_wins():
    routes = {}
    build_action_route_struct(
        RouteDefinition(path="/api", aliases={"POST /upload": "multipart:files.upload"}),
        routes,
    )
    build_action_route_struct(
        RouteDefinition(path="/v2", aliases={"PUT /upload": "stream:files.upload"}),
        routes,
    )

    entry = routes["files.upload"]
    assert entry.action_type == "multipart"
    assert [(p.base, p.alias) for p in entry.paths] == [("/api", "POST /upload"), ("/v2", "PUT /upload")]
    assert entry.paths[0].method == "post"
    assert entry.paths[0].sub_path == "/upload"


def test_route_without_path_has_empty_base():
    routes = build_action_route_struct(RouteDefinition(aliases={"GET /ping": "health.ping"}), {})
    assert routes["health.ping"].paths[0].base == ""


def test_convert_auto_aliases_to_route():
    descriptors = [
        AliasDescriptor(methods=["GET", "POST"], fullPath="/api/items", actionName="items.handle"),
        AliasDescriptor(methods="DELETE", fullPath="/api/orphan"),
    ]
    route = convert_auto_aliases_to_route(descriptors)
    assert route.path == ""
    assert route.auto_aliases is True
    assert set(route.aliases) == {"GET /api/items", "POST /api/items", "DELETE /api/orphan"}
    assert route.aliases["DELETE /api/orphan"]["action"] == UNRESOLVED_ACTION_NAME


# ==================== Collection ====================


@pytest.mark.asyncio
async def test_collect_static_and_auto_aliases(mesh_nodes, mesh_aliases):
    registry = StaticRegistry(mesh_nodes, mesh_aliases)
    metrics = GenerationMetrics()
    routes = await RouteCollector(registry, metrics=metrics).collect(parse_nodes(mesh_nodes))

    assert routes["users.list"].paths[0].alias == "GET /users"
    assert routes["users.remove"].paths[0].alias == "DELETE /users/:id"
    assert routes["files.replace"].action_type == "stream"

    health = routes["health.check"].paths[0]
    assert health.auto_aliases is True
    assert health.alias == "GET /auto/health"
    assert metrics.registry.get_sample_value("meshdoc_alias_lookups_total", {"status": "ok"}) == 1.0


@pytest.mark.asyncio
async def test_collect_uses_versioned_service_name():
    node = {
        "name": "gateway",
        "version": 2,
        "settings": {"routes": [{"path": "/api", "autoAliases": True, "aliases": {}}]},
    }
    registry = StaticRegistry([node], {"v2.gateway": [{"methods": "GET", "fullPath": "/api/x", "actionName": "x.get"}]})
    routes = await RouteCollector(registry).collect(parse_nodes([node]))
    assert "x.get" in routes


@pytest.mark.asyncio
async def test_collect_respects_allow_list(mesh_nodes, mesh_aliases):
    registry = StaticRegistry(mesh_nodes, mesh_aliases)
    routes = await RouteCollector(registry, allowed_services=["other"]).collect(parse_nodes(mesh_nodes))
    assert routes == {}


class _SlowFirstRegistry(StaticRegistry):
    """Answers the first gateway's lookup last."""

    async def fetch_aliases_for_service(self, service):
        await asyncio.sleep(0.05 if service == "gw1" else 0)
        return await super().fetch_aliases_for_service(service)


@pytest.mark.asyncio
async def test_collect_order_is_independent_of_completion_order():
    nodes = [
        {"name": "gw1", "settings": {"routes": [{"path": "/one", "autoAliases": True, "aliases": {"GET /s": "x.one"}}]}},
        {"name": "gw2", "settings": {"routes": [{"path": "/two", "autoAliases": True, "aliases": {"GET /s": "x.one"}}]}},
    ]
    aliases = {
        "gw1": [{"methods": "GET", "fullPath": "/one/auto", "actionName": "x.one"}],
        "gw2": [{"methods": "GET", "fullPath": "/two/auto", "actionName": "x.one"}],
    }
    routes = await RouteCollector(_SlowFirstRegistry(nodes, aliases)).collect(parse_nodes(nodes))

    assert [(p.base, p.alias) for p in routes["x.one"].paths] == [
        ("/one", "GET /s"),
        ("", "GET /one/auto"),
        ("/two", "GET /s"),
        ("", "GET /two/auto"),
    ]


@pytest.mark.asyncio
async def test_failed_lookup_propagates(mesh_nodes):
    registry = StaticRegistry(mesh_nodes, aliases={})
    metrics = GenerationMetrics()
    with pytest.raises(AliasLookupError):
        await RouteCollector(registry, metrics=metrics).collect(parse_nodes(mesh_nodes))
    assert metrics.registry.get_sample_value("meshdoc_alias_lookups_total", {"status": "error"}) == 1.0


@pytest.mark.asyncio
async def test_first_failure_in_node_order_is_raised_after_all_lookups_settle():
    nodes = [
        {"name": "gw1", "settings": {"routes": [{"path": "/one", "autoAliases": True}]}},
        {"name": "gw2", "settings": {"routes": [{"path": "/two", "autoAliases": True}]}},
    ]
    metrics = GenerationMetrics()
    # neither gateway has aliases; gw1 fails last
    collector = RouteCollector(_SlowFirstRegistry(nodes, {}), metrics=metrics)

    with pytest.raises(AliasLookupError) as excinfo:
        await collector.collect(parse_nodes(nodes))

    assert excinfo.value.service == "gw1"
    assert metrics.registry.get_sample_value("meshdoc_alias_lookups_total", {"status": "error"}) == 2.0
