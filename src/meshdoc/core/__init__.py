"""
meshdoc Core Module

Core functionality for building OpenAPI documents from a service mesh:
- Registry access and snapshot loading
- Route collection and parameter attachment
- Rule-tree and validator-tree schema conversion
- Path Item Object construction and document assembly

Settings, logging, metrics and exceptions shared by the CLI live here too.
"""

__all__ = []
