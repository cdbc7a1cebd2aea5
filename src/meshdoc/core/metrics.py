"""
meshdoc - Generation Metrics

Prometheus metrics for document generation:
- generation outcomes and duration
- size of the last generated document
- auto-alias lookups against the registry

Each GenerationMetrics owns its registry unless one is passed in, so several
generators (or tests) in one process never collide on metric names.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class GenerationMetrics:
    """Metrics collector for OpenAPI document generation."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.generations_total = Counter(
            "meshdoc_generations_total",
            "Document generations by outcome",
            ["status"],
            registry=self.registry,
        )

        self.generation_seconds = Histogram(
            "meshdoc_generation_seconds",
            "Time spent generating one document",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.document_paths = Gauge(
            "meshdoc_document_paths",
            "Number of paths in the last generated document",
            registry=self.registry,
        )

        self.alias_lookups_total = Counter(
            "meshdoc_alias_lookups_total",
            "Auto-alias lookups issued to the registry by outcome",
            ["status"],
            registry=self.registry,
        )

    def record_generation(self, status: str, duration: float, paths: int | None = None) -> None:
        self.generations_total.labels(status=status).inc()
        self.generation_seconds.observe(duration)
        if paths is not None:
            self.document_paths.set(paths)

    def record_alias_lookup(self, status: str) -> None:
        self.alias_lookups_total.labels(status=status).inc()

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")
