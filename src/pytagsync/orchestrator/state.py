"""
Workflow state for one replication session.

Design Pattern: Reducer
WorkflowState is a frozen dataclass. Every change is described by an
action object and applied by reduce(), which returns a new state and never
mutates the old one. WorkflowStateManager is the only holder of the current
state; it validates phase transitions, runs the reducer and notifies
listeners synchronously after every dispatch.

Phase rules:
- phases move one step forward at a time
- ERROR can be entered from any phase
- a non-recoverable error moves the run to ERROR immediately
- complete() does nothing once the run is in ERROR
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from pytagsync.errors import ErrorRecord, StateTransitionError
from pytagsync.models import (
    AnalysisResult,
    CreatedEntity,
    CreationPlan,
    EntityRef,
    MappingEntry,
    ValidationReport,
    WorkflowPhase,
    WorkspaceContext,
)

logger = logging.getLogger(__name__)

__all__ = [
    "WorkflowState",
    "WorkflowProgress",
    "Start",
    "SetAnalysisResult",
    "SetNameMap",
    "SetCreationPlan",
    "AddCreatedEntity",
    "SetIdMapping",
    "SetValidationReport",
    "AddError",
    "AddWarning",
    "TransitionPhase",
    "Complete",
    "Reset",
    "WorkflowAction",
    "reduce",
    "WorkflowStateManager",
]

Listener = Callable[["WorkflowState"], Any]


@dataclass(frozen=True)
class WorkflowState:
    session_id: str
    phase: WorkflowPhase = WorkflowPhase.IDLE
    source: WorkspaceContext | None = None
    target: WorkspaceContext | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    analysis: AnalysisResult | None = None
    name_map: dict[EntityRef, str] = field(default_factory=dict, hash=False)
    plan: CreationPlan | None = None
    created: tuple[CreatedEntity, ...] = ()
    id_mapping: dict[EntityRef, MappingEntry] = field(default_factory=dict, hash=False)
    validation: ValidationReport | None = None
    errors: tuple[ErrorRecord, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def has_fatal_error(self) -> bool:
        return any(not e.recoverable for e in self.errors)


@dataclass(frozen=True)
class WorkflowProgress:
    phase: WorkflowPhase
    current_step: int
    total_steps: int
    description: str
    percentage: int


_PROGRESS = {
    WorkflowPhase.IDLE: (0, "Ready to start"),
    WorkflowPhase.ANALYZING: (1, "Analyzing source workspace"),
    WorkflowPhase.NAMING: (2, "Processing naming patterns"),
    WorkflowPhase.PLANNING: (3, "Creating execution plan"),
    WorkflowPhase.BUILDING: (4, "Building entities in target"),
    WorkflowPhase.VALIDATING: (5, "Validating results"),
    WorkflowPhase.COMPLETED: (5, "Completed"),
    WorkflowPhase.ERROR: (-1, "Error occurred"),
}
_TOTAL_STEPS = 5


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class Start:
    source: WorkspaceContext
    target: WorkspaceContext


@dataclass(frozen=True)
class SetAnalysisResult:
    analysis: AnalysisResult


@dataclass(frozen=True)
class SetNameMap:
    names: dict[EntityRef, str]


@dataclass(frozen=True)
class SetCreationPlan:
    plan: CreationPlan


@dataclass(frozen=True)
class AddCreatedEntity:
    entity: CreatedEntity


@dataclass(frozen=True)
class SetIdMapping:
    mapping: dict[EntityRef, MappingEntry]


@dataclass(frozen=True)
class SetValidationReport:
    report: ValidationReport


@dataclass(frozen=True)
class AddError:
    error: ErrorRecord


@dataclass(frozen=True)
class AddWarning:
    warning: str


@dataclass(frozen=True)
class TransitionPhase:
    phase: WorkflowPhase


@dataclass(frozen=True)
class Complete:
    pass


@dataclass(frozen=True)
class Reset:
    pass


WorkflowAction = (
    Start
    | SetAnalysisResult
    | SetNameMap
    | SetCreationPlan
    | AddCreatedEntity
    | SetIdMapping
    | SetValidationReport
    | AddError
    | AddWarning
    | TransitionPhase
    | Complete
    | Reset
)


def reduce(state: WorkflowState, action: WorkflowAction) -> WorkflowState:
    """Apply one action. Unknown actions leave the state unchanged."""
    if isinstance(action, Start):
        return WorkflowState(
            session_id=state.session_id,
            phase=WorkflowPhase.ANALYZING,
            source=action.source,
            target=action.target,
            started_at=datetime.now(),
        )
    if isinstance(action, SetAnalysisResult):
        return replace(state, analysis=action.analysis)
    if isinstance(action, SetNameMap):
        return replace(state, name_map=dict(action.names))
    if isinstance(action, SetCreationPlan):
        return replace(state, plan=action.plan)
    if isinstance(action, AddCreatedEntity):
        return replace(state, created=state.created + (action.entity,))
    if isinstance(action, SetIdMapping):
        return replace(state, id_mapping=dict(action.mapping))
    if isinstance(action, SetValidationReport):
        return replace(state, validation=action.report)
    if isinstance(action, AddError):
        return replace(state, errors=state.errors + (action.error,))
    if isinstance(action, AddWarning):
        return replace(state, warnings=state.warnings + (action.warning,))
    if isinstance(action, TransitionPhase):
        return replace(state, phase=action.phase)
    if isinstance(action, Complete):
        return replace(state, phase=WorkflowPhase.COMPLETED, completed_at=datetime.now())
    if isinstance(action, Reset):
        return WorkflowState(session_id=state.session_id)
    return state


class WorkflowStateManager:
    """
    Holds and advances the state of one session.

    Usage:
        manager = WorkflowStateManager(session_id)
        unsubscribe = manager.subscribe(lambda s: print(s.phase))
        manager.start(source_ctx, target_ctx)
        manager.transition_to(WorkflowPhase.NAMING)
        unsubscribe()
    """

    def __init__(self, session_id: str):
        self._state = WorkflowState(session_id=session_id)
        self._listeners: list[Listener] = []

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def phase(self) -> WorkflowPhase:
        return self._state.phase

    @property
    def session_id(self) -> str:
        return self._state.session_id

    def dispatch(self, action: WorkflowAction) -> WorkflowState:
        self._state = reduce(self._state, action)
        self._notify()
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"State listener failed: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, source: WorkspaceContext, target: WorkspaceContext) -> None:
        phase = self._state.phase
        if phase is not WorkflowPhase.IDLE and not phase.is_terminal:
            raise StateTransitionError(str(phase), str(WorkflowPhase.ANALYZING))
        self.dispatch(Start(source, target))

    def transition_to(self, phase: WorkflowPhase) -> None:
        current = self._state.phase
        if phase is WorkflowPhase.ERROR:
            if current is not WorkflowPhase.ERROR:
                self.dispatch(TransitionPhase(phase))
            return
        if current.next() is not phase:
            raise StateTransitionError(str(current), str(phase))
        logger.info(f"[{self.session_id}] {current} -> {phase}")
        self.dispatch(TransitionPhase(phase))

    def add_error(self, error: ErrorRecord) -> None:
        self.dispatch(AddError(error))
        if not error.recoverable:
            logger.error(f"[{self.session_id}] Unrecoverable error: {error.message}")
            self.transition_to(WorkflowPhase.ERROR)

    def add_warning(self, warning: str) -> None:
        self.dispatch(AddWarning(warning))

    def complete(self) -> None:
        current = self._state.phase
        if current is WorkflowPhase.ERROR:
            logger.warning(f"[{self.session_id}] complete() ignored: run is in error")
            return
        if current.next() is not WorkflowPhase.COMPLETED:
            raise StateTransitionError(str(current), str(WorkflowPhase.COMPLETED))
        self.dispatch(Complete())

    def reset(self) -> None:
        self.dispatch(Reset())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_progress(self) -> WorkflowProgress:
        current, description = _PROGRESS[self._state.phase]
        percentage = round(current / _TOTAL_STEPS * 100) if current >= 0 else 0
        return WorkflowProgress(
            phase=self._state.phase,
            current_step=current,
            total_steps=_TOTAL_STEPS,
            description=description,
            percentage=percentage,
        )

    def create_snapshot(self) -> WorkflowState:
        """Deep copy of the current state, detached from later dispatches."""
        return copy.deepcopy(self._state)

    def restore_from_snapshot(self, snapshot: WorkflowState) -> None:
        self._state = copy.deepcopy(snapshot)
        self._notify()
