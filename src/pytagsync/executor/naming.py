"""Target name generation for the naming phase."""

from __future__ import annotations

import logging

from pytagsync.models import DependencyGraph, EntityKind, EntityRef

logger = logging.getLogger(__name__)

__all__ = ["NameGenerator"]


class NameGenerator:
    """Derives ``prefix + name + suffix`` target names.

    Templates keep their source name: tags refer to them by type key, and
    renaming would only break the duplicate check against the target.
    """

    def __init__(self, prefix: str = "", suffix: str = ""):
        self.prefix = prefix
        self.suffix = suffix

    def name_for(self, name: str) -> str:
        return f"{self.prefix}{name}{self.suffix}"

    def generate(self, graph: DependencyGraph) -> dict[EntityRef, str]:
        names = {}
        for ref in graph.creation_order:
            node = graph.nodes[ref]
            names[ref] = node.name if ref.kind is EntityKind.TEMPLATE else self.name_for(node.name)
        logger.info(f"Names generated for {len(names)} entities")
        return names
