"""
Dependency graph construction.

Breadth-first traversal from a selection of root entities. The queue holds
kind-qualified refs and a visited set prevents reprocessing. For every
dequeued ref the builder fetches the entity, extracts its edges, resolves
deferred references through the lookup's indices and enqueues every
concrete target not yet visited.

Failure policy: an entity that cannot be fetched or parsed is dropped from
the traversal. Nothing downstream of it is expanded and no error is raised.

Reverse discovery (optional) consults a ReverseDiscovery index after each
node and enqueues the refs it returns. Those refs are visited like any
other, but no edge is ever added on their behalf.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from pytagsync.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    EntityKind,
    EntityRef,
)
from pytagsync.resolver.discovery import ReverseDiscovery
from pytagsync.resolver.lookup import EntityLookup
from pytagsync.resolver.parsers import extract_dependencies
from pytagsync.resolver.toposort import topological_sort

logger = logging.getLogger(__name__)

__all__ = ["DependencyGraphBuilder"]


class DependencyGraphBuilder:
    """Builds a DependencyGraph from root refs.

    Usage:
        builder = DependencyGraphBuilder(IndexedLookup(entities), reverse_discovery=True)
        graph = await builder.build_from_tags(["12", "15"])
        for ref in graph.creation_order:
            ...
    """

    def __init__(self, lookup: EntityLookup, *, reverse_discovery: bool = False):
        self._lookup = lookup
        self._reverse_discovery = reverse_discovery

    @property
    def reverse_discovery(self) -> bool:
        return self._reverse_discovery

    def with_reverse_discovery(self, enabled: bool = True) -> DependencyGraphBuilder:
        return DependencyGraphBuilder(self._lookup, reverse_discovery=enabled)

    async def build_from_tags(self, tag_ids: Iterable[str]) -> DependencyGraph:
        return await self.build_from([EntityRef(EntityKind.TAG, str(i)) for i in tag_ids])

    async def build_from(self, selection: Iterable[EntityRef]) -> DependencyGraph:
        roots = list(dict.fromkeys(selection))
        discovery = (
            await ReverseDiscovery.from_lookup(self._lookup) if self._reverse_discovery else None
        )

        nodes: dict[EntityRef, DependencyNode] = {}
        visited: set[EntityRef] = set()
        queue: deque[EntityRef] = deque(roots)

        while queue:
            ref = queue.popleft()
            if ref in visited:
                continue
            visited.add(ref)

            node = await self._visit(ref)
            if node is None:
                continue
            nodes[ref] = node

            for edge in node.dependencies:
                target = edge.target_ref
                if target is not None and target not in visited:
                    queue.append(target)

            if discovery is not None:
                for related in discovery.related(node.entity):
                    if related not in visited:
                        logger.debug(f"Reverse discovery: {ref} brings in {related}")
                        queue.append(related)

        creation_order = topological_sort(nodes)
        logger.info(
            f"Dependency graph built: {len(nodes)} nodes from {len(roots)} roots "
            f"(reverse discovery {'on' if discovery else 'off'})"
        )
        return DependencyGraph(nodes=nodes, creation_order=creation_order, roots=roots)

    async def _visit(self, ref: EntityRef) -> DependencyNode | None:
        try:
            entity = await self._lookup.fetch(ref.kind, ref.entity_id)
        except Exception as e:
            logger.warning(f"Dropping {ref}: fetch failed: {e}")
            return None
        if entity is None:
            logger.debug(f"Dropping {ref}: not found")
            return None

        try:
            edges: list[DependencyEdge] = []
            for edge in extract_dependencies(entity):
                edges.append(await self._lookup.resolve(edge))
        except Exception as e:
            logger.warning(f"Dropping {ref}: dependency extraction failed: {e}")
            return None

        return DependencyNode(entity=entity, dependencies=tuple(edges))
