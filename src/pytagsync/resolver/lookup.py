"""
Entity lookup strategies for the graph builder.

Design Pattern: Strategy Pattern
The graph builder fetches entities and resolves deferred references through
an EntityLookup. Two strategies exist:

- IndexedLookup: every candidate entity is supplied up front (offline
  analysis, or a run that listed the source workspace once). No I/O.
- ServiceLookup: entities are fetched on demand from an EntityService and
  cached for the lifetime of the lookup.

Both resolve deferred references the same way: by-name against a per-kind
name index, by-gallery-type against a template type index that maps both
container-scoped keys (``cvt_<containerId>_<templateId>``) and gallery keys
found in ``templateData`` to template ids. A reference that cannot be
resolved is returned unchanged.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from pytagsync.models import (
    ByGalleryType,
    ByName,
    DependencyEdge,
    Entity,
    EntityKind,
    Template,
)
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["EntityLookup", "IndexedLookup", "ServiceLookup", "build_template_type_index"]


def build_template_type_index(templates: Iterable[Template]) -> dict[str, str]:
    """Map every known type key of each template to its id."""
    index: dict[str, str] = {}
    for template in templates:
        if template.container_type_key:
            index[template.container_type_key] = template.entity_id
        if template.gallery_type_key:
            index[template.gallery_type_key] = template.entity_id
    return index


class EntityLookup(ABC):
    """Source of entities and index-backed reference resolution."""

    @abstractmethod
    async def fetch(self, kind: EntityKind, entity_id: str) -> Entity | None:
        """Return the entity, or None when it cannot be reached."""

    @abstractmethod
    async def find_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        """Return the entity of this kind with this exact name, or None."""

    @abstractmethod
    async def template_type_index(self) -> dict[str, str]:
        """Type key -> template id."""

    @abstractmethod
    async def candidates(self, kind: EntityKind) -> list[Entity]:
        """Every entity of a kind in the workspace, reachable or not."""

    async def resolve(self, edge: DependencyEdge) -> DependencyEdge:
        """Rewrite a deferred edge to a concrete one when the index knows it.

        Concrete edges and unknown references come back unchanged, so
        resolving the same edge twice yields the same result.
        """
        target = edge.target
        if isinstance(target, ByName):
            entity = await self.find_by_name(edge.target_kind, target.name)
            if entity is not None:
                return edge.resolve(entity.entity_id, entity.name)
            logger.debug(f"Unresolved name reference {target} ({edge.location})")
        elif isinstance(target, ByGalleryType):
            template_id = (await self.template_type_index()).get(target.type_key)
            if template_id is not None:
                return edge.resolve(template_id)
            logger.debug(f"Unresolved template type {target.type_key}")
        return edge


class IndexedLookup(EntityLookup):
    """Lookup over a pre-supplied, complete set of entities.

    Usage:
        lookup = IndexedLookup(tags + triggers + variables + templates)
        graph = await DependencyGraphBuilder(lookup).build_from_tags(["12"])
    """

    def __init__(self, entities: Iterable[Entity]):
        self._by_id: dict[EntityKind, dict[str, Entity]] = {kind: {} for kind in EntityKind}
        self._by_name: dict[EntityKind, dict[str, Entity]] = {kind: {} for kind in EntityKind}
        for entity in entities:
            self._by_id[entity.kind][entity.entity_id] = entity
            # First entity wins on duplicate names
            self._by_name[entity.kind].setdefault(entity.name, entity)
        self._type_index = build_template_type_index(
            e for e in self._by_id[EntityKind.TEMPLATE].values() if isinstance(e, Template)
        )

    @classmethod
    def from_lists(cls, lists: dict[EntityKind, list[Entity]]) -> IndexedLookup:
        return cls(entity for entities in lists.values() for entity in entities)

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_id.values())

    async def fetch(self, kind: EntityKind, entity_id: str) -> Entity | None:
        return self._by_id[kind].get(entity_id)

    async def find_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        return self._by_name[kind].get(name)

    async def template_type_index(self) -> dict[str, str]:
        return self._type_index

    async def candidates(self, kind: EntityKind) -> list[Entity]:
        return list(self._by_id[kind].values())


class ServiceLookup(EntityLookup):
    """Lookup that fetches from a remote service on demand.

    Fetch failures are logged and reported as unreachable (None) so a single
    broken entity never aborts a traversal.
    """

    def __init__(self, service: EntityService):
        self._service = service
        self._entities: dict[tuple[EntityKind, str], Entity | None] = {}
        self._names: dict[tuple[EntityKind, str], Entity | None] = {}
        self._lists: dict[EntityKind, list[Entity]] = {}
        self._type_index: dict[str, str] | None = None

    async def fetch(self, kind: EntityKind, entity_id: str) -> Entity | None:
        key = (kind, entity_id)
        if key not in self._entities:
            try:
                self._entities[key] = await self._service.get(kind, entity_id)
            except Exception as e:
                logger.warning(f"Could not fetch {kind.value} {entity_id}: {e}")
                self._entities[key] = None
        return self._entities[key]

    async def find_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        key = (kind, name)
        if key not in self._names:
            try:
                entity = await self._service.find_by_name(kind, name)
            except Exception as e:
                logger.warning(f"Could not look up {kind.value} {name!r}: {e}")
                entity = None
            self._names[key] = entity
            if entity is not None:
                self._entities[(kind, entity.entity_id)] = entity
        return self._names[key]

    async def candidates(self, kind: EntityKind) -> list[Entity]:
        if kind not in self._lists:
            try:
                self._lists[kind] = await self._service.list(kind)
            except Exception as e:
                logger.warning(f"Could not list {kind.value}s: {e}")
                self._lists[kind] = []
        return self._lists[kind]

    async def template_type_index(self) -> dict[str, str]:
        if self._type_index is None:
            templates = await self.candidates(EntityKind.TEMPLATE)
            self._type_index = build_template_type_index(
                t for t in templates if isinstance(t, Template)
            )
        return self._type_index
