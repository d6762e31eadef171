"""Creation plan: the ordered CREATE/SKIP/UPDATE steps of one run.

A plan is built once from the topological order and never modified. Steps
carry a private copy of the source payload and an xxhash digest of it, so a
step can be audited after the run against what was actually submitted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import xxhash

from pytagsync.models.entity import EntityKind, EntityRef
from pytagsync.models.status import StepAction


def config_hash(config: dict[str, Any]) -> int:
    """Stable 63-bit digest of a payload (canonical JSON, xxh64)."""
    canonical = json.dumps(config, sort_keys=True, separators=(",", ":"), default=str)
    return xxhash.xxh64(canonical.encode("utf-8")).intdigest() & 0x7FFFFFFFFFFFFFFF


@dataclass(frozen=True)
class PlanStep:
    """One planned action against the target workspace."""

    step: int
    action: StepAction
    kind: EntityKind
    original_id: str
    original_name: str
    new_name: str
    dependencies: tuple[str, ...] = ()
    config: dict[str, Any] = field(default_factory=dict, hash=False, repr=False)
    config_hash: int = 0
    target_id: str | None = None
    """Target-side id for SKIP and UPDATE steps."""

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.kind, self.original_id)

    @property
    def is_renamed(self) -> bool:
        return self.new_name != self.original_name

    def __str__(self) -> str:
        return f"#{self.step} {self.action} {self.kind} {self.new_name!r}"


@dataclass(frozen=True)
class CreationPlan:
    steps: tuple[PlanStep, ...] = ()
    warnings: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def count(self, action: StepAction) -> int:
        return sum(1 for s in self.steps if s.action is action)

    def steps_for(self, action: StepAction) -> list[PlanStep]:
        return [s for s in self.steps if s.action is action]

    @property
    def estimated_api_calls(self) -> int:
        return self.count(StepAction.CREATE) + self.count(StepAction.UPDATE)
