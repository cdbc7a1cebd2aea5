"""
meshdoc - OpenAPI Document Generator

Assembles the OpenAPI document for the current state of the mesh:

    registry nodes -> route table -> params/fragments attached -> paths

Every generation starts from a fresh deep copy of the configured template,
so generating twice from an unchanged registry yields identical documents.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

import yaml

from meshdoc.core.attachment import attach_params_and_openapi
from meshdoc.core.config import OpenAPISettings
from meshdoc.core.metrics import GenerationMetrics
from meshdoc.core.models import parse_nodes
from meshdoc.core.path_builder import PathBuilder, add_tag_to_doc
from meshdoc.core.registry import ServiceRegistry
from meshdoc.core.route_collector import RouteCollector, RouteTable

logger = logging.getLogger(__name__)

__all__ = ["OpenAPIGenerator", "add_tag_to_doc", "dumps"]


class OpenAPIGenerator:
    """
    Builds OpenAPI 3.0.3 documents from a service registry.

    Args:
        registry: Source of service nodes and auto-alias listings
        settings: Generator settings, defaults when omitted
        metrics: Metrics collector, a private one when omitted
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        settings: Optional[OpenAPISettings] = None,
        metrics: Optional[GenerationMetrics] = None,
    ):
        self.registry = registry
        self.settings = settings or OpenAPISettings()
        self.metrics = metrics or GenerationMetrics()

    def _new_document(self) -> Dict[str, Any]:
        doc = self.settings.openapi_template()
        doc.setdefault("paths", {})
        doc.setdefault("tags", [])
        doc.setdefault("components", {}).setdefault("schemas", {})
        return doc

    async def collect_routes(self) -> RouteTable:
        """Fetch the mesh and return the route table with params and fragments attached."""
        raw_nodes = await self.registry.fetch_services_with_actions(only_local=self.settings.only_local)
        nodes = parse_nodes(raw_nodes)

        collector = RouteCollector(
            self.registry,
            allowed_services=self.settings.collect_only_from_web_services,
            metrics=self.metrics,
        )
        routes = await collector.collect(nodes)
        return attach_params_and_openapi(routes, nodes)

    async def generate(self) -> Dict[str, Any]:
        """
        Generate the document.

        Returns:
            The OpenAPI document as plain dicts and lists

        Raises:
            RegistryError: If the registry or an auto-alias lookup fails
        """
        started = time.perf_counter()
        try:
            doc = self._new_document()
            routes = await self.collect_routes()
            PathBuilder(self.settings).build(doc, routes)
        except Exception:
            self.metrics.record_generation("error", time.perf_counter() - started)
            logger.error("OpenAPI generation failed", exc_info=True, extra={"event": "generation.failed"})
            raise

        duration = time.perf_counter() - started
        self.metrics.record_generation("ok", duration, paths=len(doc["paths"]))
        logger.info(
            "Generated OpenAPI document with %d paths in %.3fs",
            len(doc["paths"]),
            duration,
            extra={"event": "generation.completed", "actions": len(routes)},
        )
        return doc

    def generate_sync(self) -> Dict[str, Any]:
        """Run `generate` to completion in a new event loop."""
        return asyncio.run(self.generate())


def dumps(doc: Dict[str, Any], fmt: str = "json") -> str:
    """Render a document as JSON or YAML, keeping key order."""
    fmt = fmt.lower()
    if fmt == "json":
        return json.dumps(doc, indent=2, ensure_ascii=False)
    if fmt in ("yaml", "yml"):
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported output format: {fmt}")
