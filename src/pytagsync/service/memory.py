"""In-memory entity service.

Design Pattern: Adapter Pattern
InMemoryEntityService adapts per-kind dictionaries to the EntityService
interface. It backs offline replication and every test in the suite.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
import copy
import json
from dataclasses import dataclass
from typing import Any

import xxhash

from pytagsync.errors import NotFoundError, RemoteConnectionError
from pytagsync.models import Entity, EntityKind, WorkspaceContext, entity_from_api
from pytagsync.service.base import EntityService, ServiceError


@dataclass
class FailureRule:
    """Scripted failure for one operation.

    Matches calls by operation and, optionally, by kind and entity name.
    ``times=None`` fails forever.
    """

    operation: str
    error: Exception
    kind: EntityKind | None = None
    name: str | None = None
    times: int | None = 1

    def matches(self, operation: str, kind: EntityKind, name: str | None) -> bool:
        if self.operation != operation:
            return False
        if self.kind is not None and self.kind is not kind:
            return False
        if self.name is not None and self.name != name:
            return False
        return self.times is None or self.times > 0


class InMemoryEntityService(EntityService):
    """In-memory workspace for offline runs and testing.

    Can be substituted for a real API client without changing client code.

    Usage:
        service = InMemoryEntityService(WorkspaceContext("1", "100", "7"))
        service.seed(EntityKind.VARIABLE, {"variableId": "3", "name": "DLV - id", "type": "v"})
        variable = await service.get(EntityKind.VARIABLE, "3")
    """

    def __init__(
        self,
        context: WorkspaceContext | None = None,
        *,
        supported_kinds: set[EntityKind] | None = None,
        first_id: int = 1,
    ):
        self._context = context or WorkspaceContext("0", "0", "0")
        # Storage: {kind: {entity_id: payload}}
        self._entities: dict[EntityKind, dict[str, dict[str, Any]]] = {
            kind: {} for kind in EntityKind
        }
        self._next_id = first_id
        self._supported = set(supported_kinds) if supported_kinds is not None else set(EntityKind)
        self._failures: list[FailureRule] = []
        self._lock = asyncio.Lock()
        self._closed = False

        # Call log: (operation, kind, id or name), in call order
        self.calls: list[tuple[str, EntityKind, str]] = []

    def __repr__(self) -> str:
        return f"InMemoryEntityService({self._context})"

    @property
    def context(self) -> WorkspaceContext:
        return self._context

    def supports(self, kind: EntityKind) -> bool:
        return kind in self._supported

    # ------------------------------------------------------------------
    # Test and seeding helpers
    # ------------------------------------------------------------------

    def seed(self, kind: EntityKind, data: dict[str, Any]) -> Entity:
        """Insert an entity as-is, without logging a call."""
        payload = copy.deepcopy(data)
        entity_id = str(payload[kind.id_field])
        payload.setdefault("fingerprint", _fingerprint(payload))
        if kind is EntityKind.TEMPLATE:
            payload.setdefault("containerId", self._context.container_id)
        self._entities[kind][entity_id] = payload
        if entity_id.isdigit():
            self._next_id = max(self._next_id, int(entity_id) + 1)
        return entity_from_api(kind, payload)

    def fail(
        self,
        operation: str,
        error: Exception,
        *,
        kind: EntityKind | None = None,
        name: str | None = None,
        times: int | None = 1,
    ) -> None:
        """Make matching future calls raise ``error``."""
        self._failures.append(FailureRule(operation, error, kind, name, times))

    def calls_for(self, operation: str) -> list[tuple[EntityKind, str]]:
        return [(kind, key) for op, kind, key in self.calls if op == operation]

    def count(self, kind: EntityKind | None = None) -> int:
        if kind is not None:
            return len(self._entities[kind])
        return sum(len(v) for v in self._entities.values())

    async def reset(self) -> None:
        async with self._lock:
            self._closed = False
            for entities in self._entities.values():
                entities.clear()
            self._failures.clear()
            self.calls.clear()

    def _check_failure(self, operation: str, kind: EntityKind, name: str | None) -> None:
        for rule in self._failures:
            if rule.matches(operation, kind, name):
                if rule.times is not None:
                    rule.times -= 1
                raise rule.error

    def _check_connected(self) -> None:
        if self._closed:
            raise RemoteConnectionError("Service is closed")

    def _require_support(self, kind: EntityKind) -> None:
        if kind not in self._supported:
            raise ServiceError(f"{kind.value} operations are not supported by this service")

    # ------------------------------------------------------------------
    # EntityService
    # ------------------------------------------------------------------

    async def get(self, kind: EntityKind, entity_id: str) -> Entity | None:
        async with self._lock:
            self._check_connected()
            self.calls.append(("get", kind, entity_id))
            self._check_failure("get", kind, None)
            payload = self._entities[kind].get(entity_id)
            return entity_from_api(kind, copy.deepcopy(payload)) if payload else None

    async def find_by_name(self, kind: EntityKind, name: str) -> Entity | None:
        async with self._lock:
            self._check_connected()
            self.calls.append(("find_by_name", kind, name))
            self._check_failure("find_by_name", kind, name)
            for payload in self._entities[kind].values():
                if payload.get("name") == name:
                    return entity_from_api(kind, copy.deepcopy(payload))
            return None

    async def list(self, kind: EntityKind) -> list[Entity]:
        async with self._lock:
            self._check_connected()
            self.calls.append(("list", kind, ""))
            self._check_failure("list", kind, None)
            return [
                entity_from_api(kind, copy.deepcopy(payload))
                for payload in self._entities[kind].values()
            ]

    async def create(self, kind: EntityKind, config: dict[str, Any]) -> Entity:
        async with self._lock:
            self._check_connected()
            name = config.get("name")
            self.calls.append(("create", kind, name or ""))
            self._require_support(kind)
            self._check_failure("create", kind, name)

            entity_id = str(self._next_id)
            self._next_id += 1

            payload = copy.deepcopy(config)
            payload[kind.id_field] = entity_id
            payload["accountId"] = self._context.account_id
            payload["containerId"] = self._context.container_id
            payload["workspaceId"] = self._context.workspace_id
            payload["fingerprint"] = _fingerprint(payload)
            self._entities[kind][entity_id] = payload
            return entity_from_api(kind, copy.deepcopy(payload))

    async def update(
        self, kind: EntityKind, entity_id: str, fingerprint: str | None, config: dict[str, Any]
    ) -> Entity:
        async with self._lock:
            self._check_connected()
            self.calls.append(("update", kind, entity_id))
            self._check_failure("update", kind, config.get("name"))
            current = self._entities[kind].get(entity_id)
            if current is None:
                raise NotFoundError(kind.value, entity_id)
            if fingerprint is not None and current.get("fingerprint") != fingerprint:
                raise ServiceError(
                    f"Fingerprint mismatch for {kind.value} {entity_id}: entity was modified"
                )

            payload = copy.deepcopy(config)
            payload[kind.id_field] = entity_id
            for key in ("accountId", "containerId", "workspaceId"):
                if key in current:
                    payload[key] = current[key]
            payload["fingerprint"] = _fingerprint(payload)
            self._entities[kind][entity_id] = payload
            return entity_from_api(kind, copy.deepcopy(payload))

    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        async with self._lock:
            self._check_connected()
            self.calls.append(("delete", kind, entity_id))
            self._require_support(kind)
            self._check_failure("delete", kind, None)
            if self._entities[kind].pop(entity_id, None) is None:
                raise NotFoundError(kind.value, entity_id)

    async def close(self) -> None:
        """Refuse further calls until reset()."""
        async with self._lock:
            self._closed = True


def _fingerprint(payload: dict[str, Any]) -> str:
    body = {k: v for k, v in payload.items() if k != "fingerprint"}
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return str(xxhash.xxh64(canonical.encode("utf-8")).intdigest())
