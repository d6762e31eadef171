"""Notifications emitted by WorkflowRunner while a run progresses."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class WorkflowEventType(Enum):
    WORKFLOW_STARTED = "workflow_started"
    PHASE_CHANGED = "phase_changed"
    ENTITY_SKIPPED = "entity_skipped"
    ENTITY_CREATED = "entity_created"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class WorkflowEvent:
    type: WorkflowEventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict, hash=False)
    timestamp: datetime = field(default_factory=datetime.now)


EventListener = Callable[[WorkflowEvent], Any]
