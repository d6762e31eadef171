"""
EntityService - abstract interface to a remote workspace.

Design Pattern: Adapter Pattern
EntityService defines the target interface the replication core programs
against. A platform API client, a cached client or the in-memory service
used for offline runs and tests all adapt to this one interface.

Design Principle: Dependency Inversion
The graph builder, planner, builder and validator depend on this
abstraction, never on a transport.

Every operation is asynchronous and signals failure by raising an exception
whose message is human-readable; the builder classifies rate-limit failures
from that message.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pytagsync.errors import RemoteApiError
from pytagsync.models import Entity, EntityKind, WorkspaceContext

__all__ = ["EntityService", "ServiceError"]


class ServiceError(RemoteApiError):
    """A remote entity service operation failed."""


class EntityService(ABC):
    """
    Abstract remote workspace interface.

    Operations take the entity kind as their first argument. Template
    operations are optional on some platforms; supports() reports whether a
    kind can be written at all.
    """

    @property
    @abstractmethod
    def context(self) -> WorkspaceContext:
        """Workspace this service reads from and writes to."""

    @abstractmethod
    async def get(self, kind: EntityKind, entity_id: str) -> Entity | None:
        """Fetch one entity, or None if it does not exist."""

    @abstractmethod
    async def find_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        """Find an entity by exact name, or None."""

    @abstractmethod
    async def list(self, kind: EntityKind) -> list[Entity]:
        """List every entity of a kind."""

    @abstractmethod
    async def create(self, kind: EntityKind, config: dict[str, Any]) -> Entity:
        """Create an entity and return it with its new id."""

    @abstractmethod
    async def update(
        self, kind: EntityKind, entity_id: str, fingerprint: str | None, config: dict[str, Any]
    ) -> Entity:
        """Overwrite an entity's configuration."""

    @abstractmethod
    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        """Delete an entity."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection; later calls raise RemoteConnectionError."""

    def supports(self, kind: EntityKind) -> bool:
        """Whether create/delete are available for ``kind``."""
        return True

    async def list_all(self) -> dict[EntityKind, list[Entity]]:
        """List every kind concurrently."""
        kinds = list(EntityKind)
        results = await asyncio.gather(*(self.list(kind) for kind in kinds))
        return dict(zip(kinds, results))
