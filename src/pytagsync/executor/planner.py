"""
Creation planning.

Turns a sorted dependency graph into a CreationPlan. Target entities are
listed once per run into a TargetInventory; every decision after that is a
local dictionary lookup.

Step actions:
- SKIP: an entity with the target name already exists in the target
- UPDATE: same, but the run asked to overwrite existing entities
  (templates are never updated)
- CREATE: everything else
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pytagsync.models import (
    CreationPlan,
    DependencyGraph,
    Entity,
    EntityKind,
    EntityRef,
    PlanStep,
    ReplicationConfig,
    StepAction,
    config_hash,
)
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["TargetInventory", "CreationPlanner"]


@dataclass
class TargetInventory:
    """Name-indexed snapshot of the target workspace."""

    by_name: dict[EntityKind, dict[str, Entity]] = field(default_factory=dict)

    @classmethod
    def from_lists(cls, lists: dict[EntityKind, list[Entity]]) -> TargetInventory:
        inventory = cls()
        for kind, entities in lists.items():
            index = inventory.by_name.setdefault(kind, {})
            for entity in entities:
                index.setdefault(entity.name, entity)
        return inventory

    @classmethod
    async def load(cls, service: EntityService) -> TargetInventory:
        lists = await service.list_all()
        inventory = cls.from_lists(lists)
        logger.info(
            "Target inventory loaded: "
            + ", ".join(f"{len(v)} {k.value}s" for k, v in inventory.by_name.items())
        )
        return inventory

    def find(self, kind: EntityKind, name: str) -> Entity | None:
        return self.by_name.get(kind, {}).get(name)

    def count(self, kind: EntityKind) -> int:
        return len(self.by_name.get(kind, {}))


class CreationPlanner:
    """Assigns an action and a target name to every node in creation order."""

    def __init__(self, config: ReplicationConfig | None = None):
        self._config = config or ReplicationConfig()

    def plan(
        self,
        graph: DependencyGraph,
        inventory: TargetInventory,
        names: dict[EntityRef, str] | None = None,
    ) -> CreationPlan:
        names = names or {}
        steps = []
        warnings = []

        for index, ref in enumerate(graph.creation_order, start=1):
            node = graph.nodes[ref]
            new_name = names.get(ref, node.name)
            existing = inventory.find(ref.kind, new_name)

            action = StepAction.CREATE
            target_id = None
            if existing is not None:
                target_id = existing.entity_id
                if self._config.update_existing and ref.kind is not EntityKind.TEMPLATE:
                    action = StepAction.UPDATE
                elif self._config.skip_existing:
                    action = StepAction.SKIP
                    warnings.append(
                        f'{ref.kind.value} "{new_name}" already exists in target '
                        f"(id {target_id}), skipping"
                    )
                else:
                    target_id = None

            payload = node.entity.to_api()
            steps.append(
                PlanStep(
                    step=index,
                    action=action,
                    kind=ref.kind,
                    original_id=ref.entity_id,
                    original_name=node.name,
                    new_name=new_name,
                    dependencies=tuple(d.entity_id for d in node.dependency_refs()),
                    config=payload,
                    config_hash=config_hash(payload),
                    target_id=target_id,
                )
            )

        plan = CreationPlan(steps=tuple(steps), warnings=tuple(warnings))
        logger.info(
            f"Plan ready: {plan.count(StepAction.CREATE)} create, "
            f"{plan.count(StepAction.UPDATE)} update, {plan.count(StepAction.SKIP)} skip"
        )
        return plan
