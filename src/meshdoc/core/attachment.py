"""
Attach action parameter schemas and OpenAPI fragments to the route table.
"""

from __future__ import annotations

import copy
import logging

from meshdoc.core.models import ServiceNode
from meshdoc.core.route_collector import RouteTable
from meshdoc.core.validator_tree import is_validator_tree, params_to_openapi

logger = logging.getLogger(__name__)


def attach_params_and_openapi(routes: RouteTable, nodes: list[ServiceNode]) -> RouteTable:
    """
    Fill `params` and `openapi` of every collected action.

    The first node declaring an action wins. Its explicit fragment is used when
    present, otherwise a validator-tree params schema is converted into one.
    Actions no node declares keep empty params and an empty fragment.
    """
    for action_name, entry in routes.items():
        for node in nodes:
            descriptor = node.actions.get(action_name)
            if descriptor is None:
                continue

            entry.params = copy.deepcopy(descriptor.params or {})
            if entry.openapi is None:
                if descriptor.openapi is not None:
                    entry.openapi = copy.deepcopy(descriptor.openapi)
                elif is_validator_tree(descriptor.params):
                    entry.openapi = params_to_openapi(descriptor.params)
            break
        else:
            logger.debug("No node declares action %s", action_name, extra={"event": "routes.action_missing"})

        if entry.openapi is None:
            entry.openapi = {}
    return routes
