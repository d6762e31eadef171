"""
Creation ordering over a dependency graph.

Kahn's algorithm over resolved edges whose target is in the node map,
followed by a stable sort on kind priority (Template < Variable < Trigger <
Tag).

The sort never fails: nodes left over by a cycle or a dangling reference
are appended in node-map order and the occurrence is logged, so the result
always holds every node exactly once. Callers that want cycles to be fatal
run check_acyclic() first.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping

from pytagsync.errors import CircularDependencyError
from pytagsync.models import DependencyNode, EntityRef

logger = logging.getLogger(__name__)

__all__ = [
    "check_acyclic",
    "find_cycle",
    "kahn_order",
    "sort_by_kind_priority",
    "topological_sort",
]


def kahn_order(nodes: Mapping[EntityRef, DependencyNode]) -> list[EntityRef]:
    """Dependency-first order, with recovery for unprocessed nodes."""
    in_degree: dict[EntityRef, int] = {}
    dependents: dict[EntityRef, list[EntityRef]] = {ref: [] for ref in nodes}

    for ref, node in nodes.items():
        deps = [d for d in node.dependency_refs() if d in nodes]
        in_degree[ref] = len(deps)
        for dep in deps:
            dependents[dep].append(ref)

    queue = deque(ref for ref, degree in in_degree.items() if degree == 0)
    result: list[EntityRef] = []
    processed: set[EntityRef] = set()

    while queue:
        current = queue.popleft()
        result.append(current)
        processed.add(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(result) != len(nodes):
        logger.warning(f"Topological sort incomplete: {len(result)}/{len(nodes)} nodes processed")
        cycle = find_cycle(nodes)
        if cycle:
            logger.warning(f"Dependency cycle: {' -> '.join(map(str, cycle))}")
        for ref, node in nodes.items():
            if ref not in processed:
                logger.warning(f'Adding unordered node: {ref.kind.value} "{node.name}" ({ref.entity_id})')
                result.append(ref)

    return result


def sort_by_kind_priority(order: list[EntityRef]) -> list[EntityRef]:
    """Stable sort on kind priority; same-kind nodes keep their relative order."""
    return sorted(order, key=lambda ref: ref.kind.priority)


def topological_sort(nodes: Mapping[EntityRef, DependencyNode]) -> list[EntityRef]:
    return sort_by_kind_priority(kahn_order(nodes))


def find_cycle(nodes: Mapping[EntityRef, DependencyNode]) -> list[EntityRef] | None:
    """First cycle found by depth-first search, closed on its starting ref."""
    visited: set[EntityRef] = set()
    path: list[EntityRef] = []
    on_path: set[EntityRef] = set()

    def visit(ref: EntityRef) -> list[EntityRef] | None:
        visited.add(ref)
        path.append(ref)
        on_path.add(ref)
        for dep in nodes[ref].dependency_refs():
            if dep not in nodes:
                continue
            if dep in on_path:
                return path[path.index(dep) :] + [dep]
            if dep not in visited:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        on_path.discard(ref)
        return None

    for ref in nodes:
        if ref not in visited:
            cycle = visit(ref)
            if cycle:
                return cycle
    return None


def check_acyclic(nodes: Mapping[EntityRef, DependencyNode]) -> None:
    """
    Raise CircularDependencyError if the graph holds a cycle.

    Edges to refs outside ``nodes`` are ignored, as in kahn_order().
    """
    cycle = find_cycle(nodes)
    if cycle:
        raise CircularDependencyError([str(ref) for ref in cycle])
