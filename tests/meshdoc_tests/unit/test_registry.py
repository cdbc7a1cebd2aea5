"""
Unit tests for registry collaborators.

Coverage targets:
- Snapshot loading from YAML/JSON and its error paths
- Local-only filtering and unknown services
- Gateway registry wire calls against a local aiohttp server
"""

import json

import pytest
import yaml
from aiohttp import web
from aiohttp.test_utils import TestServer

from meshdoc.core.exceptions import AliasLookupError, RegistryError, SnapshotError
from meshdoc.core.registry import GatewayRegistry, ServiceRegistry, StaticRegistry


# ==================== StaticRegistry ====================


@pytest.mark.asyncio
async def test_snapshot_from_yaml(tmp_path, mesh_snapshot):
    path = tmp_path / "mesh.yaml"
    path.write_text(yaml.safe_dump(mesh_snapshot), encoding="utf-8")

    registry = StaticRegistry.from_file(path)
    assert isinstance(registry, ServiceRegistry)

    nodes = await registry.fetch_services_with_actions()
    assert [node["name"] for node in nodes] == ["api", "users", "files"]
    aliases = await registry.fetch_aliases_for_service("api")
    assert aliases[0]["actionName"] == "health.check"


@pytest.mark.asyncio
async def test_snapshot_from_json_and_only_local(tmp_path, mesh_snapshot):
    path = tmp_path / "mesh.json"
    path.write_text(json.dumps(mesh_snapshot), encoding="utf-8")

    registry = StaticRegistry.from_file(str(path))
    local = await registry.fetch_services_with_actions(only_local=True)
    assert [node["name"] for node in local] == ["api", "users"]


@pytest.mark.asyncio
async def test_unknown_service_raises_lookup_error():
    registry = StaticRegistry([], {})
    with pytest.raises(AliasLookupError) as excinfo:
        await registry.fetch_aliases_for_service("v1.api")
    assert excinfo.value.service == "v1.api"


def test_snapshot_errors(tmp_path):
    with pytest.raises(SnapshotError):
        StaticRegistry.from_file(tmp_path / "missing.yaml")

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(SnapshotError):
        StaticRegistry.from_file(not_mapping)

    wrong_shape = tmp_path / "shape.yaml"
    wrong_shape.write_text("nodes: {api: 1}\n", encoding="utf-8")
    with pytest.raises(SnapshotError):
        StaticRegistry.from_file(wrong_shape)

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(SnapshotError):
        StaticRegistry.from_file(broken)


# ==================== GatewayRegistry ====================


def _gateway_app(calls, mesh_snapshot):
    async def handle_call(request):
        body = await request.json()
        calls.append((body, request.headers.get("X-API-Key")))
        action = body["action"]
        if action == "$node.services":
            return web.json_response(mesh_snapshot["nodes"])
        if action == "api.listAliases":
            return web.json_response(mesh_snapshot["aliases"]["api"])
        if action == "odd.listAliases":
            return web.json_response({"not": "a list"})
        return web.json_response({"error": "unknown action"}, status=404)

    app = web.Application()
    app.router.add_post("/call", handle_call)
    return app


@pytest.mark.asyncio
async def test_gateway_registry_calls(mesh_snapshot):
    calls = []
    async with TestServer(_gateway_app(calls, mesh_snapshot)) as server:
        registry = GatewayRegistry(str(server.make_url("/")), timeout=5, api_key="secret")

        nodes = await registry.fetch_services_with_actions(only_local=True)
        aliases = await registry.fetch_aliases_for_service("api")

    assert [node["name"] for node in nodes] == ["api", "users", "files"]
    assert aliases[0]["fullPath"] == "/auto/health"
    assert calls[0] == (
        {"action": "$node.services", "params": {"withActions": True, "onlyLocal": True}},
        "secret",
    )
    assert calls[1][0] == {"action": "api.listAliases", "params": {}}


@pytest.mark.asyncio
async def test_gateway_registry_failures(mesh_snapshot):
    async with TestServer(_gateway_app([], mesh_snapshot)) as server:
        registry = GatewayRegistry(str(server.make_url("/")))

        with pytest.raises(AliasLookupError) as excinfo:
            await registry.fetch_aliases_for_service("missing")
        assert excinfo.value.service == "missing"
        assert excinfo.value.recoverable is True

        with pytest.raises(AliasLookupError):
            await registry.fetch_aliases_for_service("odd")

        with pytest.raises(RegistryError):
            await registry.call("anything.else")


@pytest.mark.asyncio
async def test_gateway_registry_unreachable():
    registry = GatewayRegistry("http://127.0.0.1:9", timeout=1)
    with pytest.raises(RegistryError):
        await registry.fetch_services_with_actions()
