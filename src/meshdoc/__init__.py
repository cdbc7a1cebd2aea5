"""
meshdoc - OpenAPI documents for a live microservice mesh

Builds an OpenAPI 3.0.3 document by introspecting the routes and parameter
schemas that service nodes expose through a registry.

Main Components:
- Route Collector: action -> route occurrence table from static and auto aliases
- Schema Converters: rule-tree and validator-tree parameter schemas to OpenAPI
- Path Builder: merged Path Item Objects with deterministic precedence
- Generator: template cloning, tag/component hoisting, final document

For usage, see: meshdoc.core.generator.OpenAPIGenerator and the `meshdoc` CLI.
"""

__version__ = "0.1.0"
__author__ = "meshdoc Development Team"

__all__ = []
