"""
Service registry collaborators.

The generator needs two calls from the mesh:
- enumerate service nodes together with their actions and gateway routes
- list the aliases a gateway service expanded on its own (auto-aliases)

`StaticRegistry` answers them from an in-memory or on-disk snapshot and
`GatewayRegistry` forwards them to a running mesh over HTTP.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiohttp
import yaml

from meshdoc.core.exceptions import AliasLookupError, RegistryError, SnapshotError

logger = logging.getLogger(__name__)


@runtime_checkable
class ServiceRegistry(Protocol):
    """Registry interface consumed by the generator."""

    async def fetch_services_with_actions(self, only_local: bool = False) -> list[dict[str, Any]]:
        """Return node descriptors, including settings, routes and actions."""
        ...

    async def fetch_aliases_for_service(self, service: str) -> list[dict[str, Any]]:
        """Return alias descriptors ({methods, fullPath, actionName, ...}) of a service."""
        ...


class StaticRegistry:
    """
    Registry backed by a snapshot of the mesh.

    Snapshot layout:
        nodes:    list of node descriptors
        aliases:  mapping of qualified service name -> alias descriptors
    Nodes flagged `local: false` are skipped when only local services are requested.
    """

    def __init__(
        self,
        nodes: list[dict[str, Any]] | None = None,
        aliases: dict[str, list[dict[str, Any]]] | None = None,
    ):
        self._nodes = list(nodes or [])
        self._aliases = dict(aliases or {})

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticRegistry":
        """Load a YAML or JSON snapshot file."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except FileNotFoundError as exc:
            raise SnapshotError(f"Snapshot not found: {path}", details={"path": str(path)}) from exc
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
            raise SnapshotError(f"Could not read snapshot {path}: {exc}", details={"path": str(path)}) from exc

        if not isinstance(data, dict):
            raise SnapshotError(f"Snapshot {path} must contain a mapping")
        nodes = data.get("nodes") or []
        aliases = data.get("aliases") or {}
        if not isinstance(nodes, list) or not isinstance(aliases, dict):
            raise SnapshotError(
                f"Snapshot {path} must hold a 'nodes' list and an 'aliases' mapping",
                details={"path": str(path)},
            )
        logger.debug("Loaded snapshot %s with %d nodes", path, len(nodes), extra={"event": "registry.snapshot_loaded"})
        return cls(nodes=nodes, aliases=aliases)

    async def fetch_services_with_actions(self, only_local: bool = False) -> list[dict[str, Any]]:
        if only_local:
            return [node for node in self._nodes if node.get("local", True)]
        return list(self._nodes)

    async def fetch_aliases_for_service(self, service: str) -> list[dict[str, Any]]:
        if service not in self._aliases:
            raise AliasLookupError(f"Service {service} is not available", service=service)
        return list(self._aliases[service])


class GatewayRegistry:
    """
    Registry reached through an HTTP gateway exposing the service bus.

    Every call is a POST of {"action": ..., "params": ...} to `<base_url>/call`
    and the JSON response body is the action's return value.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, api_key: str | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key

    async def call(self, action: str, params: dict[str, Any] | None = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        payload = {"action": action, "params": params or {}}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/call",
                    headers=headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    response.raise_for_status()
                    return await response.json()
        except asyncio.TimeoutError as exc:
            raise RegistryError(
                f"Registry call {action} timed out after {self.timeout}s",
                details={"action": action},
            ) from exc
        except aiohttp.ClientError as exc:
            raise RegistryError(
                f"Registry call {action} failed: {exc}",
                details={"action": action},
            ) from exc

    async def fetch_services_with_actions(self, only_local: bool = False) -> list[dict[str, Any]]:
        result = await self.call("$node.services", {"withActions": True, "onlyLocal": only_local})
        if not isinstance(result, list):
            raise RegistryError("$node.services did not return a list", recoverable=False)
        return result

    async def fetch_aliases_for_service(self, service: str) -> list[dict[str, Any]]:
        try:
            result = await self.call(f"{service}.listAliases")
        except RegistryError as exc:
            raise AliasLookupError(exc.message, service=service, details=exc.details) from exc
        if not isinstance(result, list):
            raise AliasLookupError(f"{service}.listAliases did not return a list", service=service)
        return result
