"""Workflow orchestration: session state, events and the replication runner."""

from pytagsync.orchestrator.events import WorkflowEvent, WorkflowEventType
from pytagsync.orchestrator.registry import Session, SessionRegistry
from pytagsync.orchestrator.state import (
    WorkflowProgress,
    WorkflowState,
    WorkflowStateManager,
    reduce,
)
from pytagsync.orchestrator.workflow import WorkflowRunner

__all__ = [
    "WorkflowRunner",
    "WorkflowStateManager",
    "WorkflowState",
    "WorkflowProgress",
    "reduce",
    "WorkflowEvent",
    "WorkflowEventType",
    "Session",
    "SessionRegistry",
]
