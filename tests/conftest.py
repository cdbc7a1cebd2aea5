"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

import pytest


def _gateway_node():
    return {
        "name": "api",
        "settings": {
            "routes": [
                {
                    "path": "/api",
                    "aliases": {
                        "GET /users": "users.list",
                        "GET /users/:id": "users.get",
                        "POST /users": "users.create",
                        "DELETE /users/:id": ["auth.check", "users.remove"],
                        "POST /upload": "multipart:files.upload",
                        "PUT /files/:id/raw": {"action": "files.replace", "type": "stream"},
                    },
                },
                {"path": "/auto", "autoAliases": True, "aliases": {}},
            ],
        },
        "actions": {},
    }


def _users_node():
    return {
        "name": "users",
        "actions": {
            "users.list": {
                "params": {
                    "page": {"type": "number", "optional": True},
                    "tags": {"type": "array", "items": "string", "unique": True, "max": 5},
                },
            },
            "users.get": {
                "params": {"id": "string"},
                "openapi": {"summary": "Get user"},
            },
            "users.create": {
                "params": {
                    "name": {"type": "string", "min": 2},
                    "email": "email",
                    "role": {"type": "enum", "values": ["admin", "user"], "default": "user"},
                },
            },
            "users.remove": {"params": {"id": "string"}},
        },
    }


def _files_node():
    return {
        "name": "files",
        "local": False,
        "actions": {
            "files.upload": {"params": {}},
            "files.replace": {"params": {"id": "string"}},
        },
    }


@pytest.fixture
def mesh_nodes():
    """Node descriptors of a small mesh: one gateway and two services."""
    return [_gateway_node(), _users_node(), _files_node()]


@pytest.fixture
def mesh_aliases():
    """Auto-alias listings keyed by qualified service name."""
    return {
        "api": [
            {"methods": "GET", "fullPath": "/auto/health", "actionName": "health.check"},
        ],
    }


@pytest.fixture
def mesh_snapshot(mesh_nodes, mesh_aliases):
    return {"nodes": mesh_nodes, "aliases": mesh_aliases}
