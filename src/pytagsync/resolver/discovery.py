"""
Reverse discovery of related tags.

Two inverse relations pull extra tags into a selection:
- event producers: tags that push the event a custom-event trigger listens for
- sequence users: tags that name a selected tag as their setup or teardown tag

ReverseDiscovery only ever answers "which nodes should also be visited".
It returns entity refs, never edges, so it cannot change what depends on
what; forward edges are produced exclusively by the parsers.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from pytagsync.models import Entity, EntityKind, EntityRef, Tag, Trigger
from pytagsync.resolver.events import extract_custom_event_name, extract_pushed_events
from pytagsync.resolver.lookup import EntityLookup

logger = logging.getLogger(__name__)

__all__ = ["ReverseDiscovery"]


class ReverseDiscovery:
    """Inverse indices over every tag in a workspace.

    Build with ``await ReverseDiscovery.from_lookup(lookup)``; the indices
    cover the full candidate set, not just reachable tags.
    """

    def __init__(self, tags: list[Tag]):
        self._event_producers: dict[str, list[EntityRef]] = defaultdict(list)
        self._sequence_users: dict[str, list[EntityRef]] = defaultdict(list)

        for tag in tags:
            for event in extract_pushed_events(tag):
                self._event_producers[event].append(tag.ref)
            for entry in tag.setup_tags + tag.teardown_tags:
                name = entry.get("tagName")
                if name and tag.ref not in self._sequence_users[name]:
                    self._sequence_users[name].append(tag.ref)

    @classmethod
    async def from_lookup(cls, lookup: EntityLookup) -> ReverseDiscovery:
        tags = [t for t in await lookup.candidates(EntityKind.TAG) if isinstance(t, Tag)]
        discovery = cls(tags)
        logger.debug(
            f"Reverse discovery indexed {len(discovery._event_producers)} events, "
            f"{len(discovery._sequence_users)} sequenced tag names"
        )
        return discovery

    def producers_of(self, event: str) -> list[EntityRef]:
        return list(self._event_producers.get(event, ()))

    def users_of(self, tag_name: str) -> list[EntityRef]:
        return list(self._sequence_users.get(tag_name, ()))

    def related(self, entity: Entity) -> frozenset[EntityRef]:
        """Refs to visit because of ``entity``, excluding the entity itself."""
        refs: list[EntityRef] = []
        if isinstance(entity, Trigger):
            event = extract_custom_event_name(entity)
            if event:
                refs.extend(self.producers_of(event))
        elif isinstance(entity, Tag):
            refs.extend(self.users_of(entity.name))
        return frozenset(r for r in refs if r != entity.ref)
