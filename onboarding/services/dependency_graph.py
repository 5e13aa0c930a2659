"""
Checklist dependency graph — validation and traversal helpers.

A checklist's items form a directed graph through their depends_on pointers
(item → its single prerequisite). These helpers work on a plain mapping
``{item_key: prerequisite_key | None}`` built from whatever the caller holds
(request payload dicts, template items, instance items), so nothing here
touches the database or lazy-loads relationships.

    edges = dependency_edges(items)            # {key: dep_key | None}
    validate_dependency_graph(edges)           # raises on cycle / dangling pointer
    index = dependents_index(edges)            # {dep_key: [dependent keys]}
    topological_order(edges)                   # prerequisites before dependents
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Iterable

from onboarding.core.exceptions import CrossTemplateDependencyError, DependencyCycleError

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


def _read(obj: Any, attr: str):
    if isinstance(obj, dict):
        return obj.get(attr)
    return getattr(obj, attr, None)


def dependency_edges(
    items: Iterable[Any],
    key: str | Callable[[Any], Hashable] = "id",
    depends_on: str | Callable[[Any], Hashable] = "depends_on_item_id",
) -> dict:
    """Build ``{item_key: prerequisite_key | None}`` preserving input order.

    ``key`` / ``depends_on`` are attribute (or dict key) names, or callables.
    """
    key_fn = key if callable(key) else (lambda obj: _read(obj, key))
    dep_fn = depends_on if callable(depends_on) else (lambda obj: _read(obj, depends_on))
    return {key_fn(item): dep_fn(item) for item in items}


def validate_dependency_graph(edges: dict) -> None:
    """Verify the dependency graph is self-contained and acyclic.

    Every prerequisite must be a key of ``edges`` (an item of the same
    template); otherwise CrossTemplateDependencyError. A depth-first walk from
    every item tracks the current recursion stack; reaching a node that is
    still on the stack raises DependencyCycleError. A self-reference is a
    one-item cycle. Input order is irrelevant.
    """
    for item_key, dep_key in edges.items():
        if dep_key is not None and dep_key not in edges:
            raise CrossTemplateDependencyError(item_key, dep_key)

    colour = {k: _WHITE for k in edges}

    for start in edges:
        if colour[start] != _WHITE:
            continue
        # Iterative DFS; each node has at most one outgoing edge so the
        # recursion stack is exactly the path walked from ``start``.
        path: list = []
        node = start
        while node is not None and colour[node] == _WHITE:
            colour[node] = _GREY
            path.append(node)
            node = edges[node]
        if node is not None and colour[node] == _GREY:
            cycle = path[path.index(node):] + [node]
            logger.debug("Dependency cycle found: %s", cycle)
            raise DependencyCycleError(cycle)
        for visited in path:
            colour[visited] = _BLACK


def dependents_index(edges: dict) -> dict:
    """Invert the edges: ``{prerequisite_key: [direct dependent keys]}``."""
    index: dict = {}
    for item_key, dep_key in edges.items():
        if dep_key is not None:
            index.setdefault(dep_key, []).append(item_key)
    return index


def topological_order(edges: dict) -> list:
    """Return keys ordered so every prerequisite precedes its dependents.

    Stable with respect to input order. Assumes the graph has already been
    validated; a cycle would raise DependencyCycleError.
    """
    validate_dependency_graph(edges)
    placed: set = set()
    order: list = []
    for start in edges:
        chain = []
        node = start
        while node is not None and node not in placed:
            chain.append(node)
            node = edges[node]
        for key in reversed(chain):
            placed.add(key)
            order.append(key)
    return order
