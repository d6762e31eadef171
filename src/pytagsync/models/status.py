"""Status enumerations for replication tracking.

Defines the lifecycle phases of a replication run and the action
attached to every step of a creation plan.
"""

from enum import Enum


class WorkflowPhase(Enum):
    """Phase of a replication run.

    Lifecycle:
        IDLE → ANALYZING → NAMING → PLANNING → BUILDING → VALIDATING → COMPLETED

    ERROR is reachable from any phase. Phases only move forward; NAMING and
    VALIDATING are still entered when the caller bypasses their work.
    """

    IDLE = "idle"
    """No run has started yet."""

    ANALYZING = "analyzing"
    """Source workspace is being traversed and the dependency graph built."""

    NAMING = "naming"
    """Target names are being derived for every selected entity."""

    PLANNING = "planning"
    """The creation plan is being assembled against the target workspace."""

    BUILDING = "building"
    """Plan steps are being executed against the target workspace."""

    VALIDATING = "validating"
    """Created entities are being checked in the target workspace."""

    COMPLETED = "completed"
    """Run finished without an unrecoverable error."""

    ERROR = "error"
    """Run stopped on an unrecoverable error."""

    @property
    def is_terminal(self) -> bool:
        """Check if this phase ends the run."""
        return self in (WorkflowPhase.COMPLETED, WorkflowPhase.ERROR)

    @property
    def order(self) -> int:
        """Position in the forward lifecycle (-1 for ERROR)."""
        if self is WorkflowPhase.ERROR:
            return -1
        return _PHASE_SEQUENCE.index(self)

    def next(self) -> "WorkflowPhase | None":
        """Return the phase that follows this one, or None at the end."""
        if self.is_terminal:
            return None
        return _PHASE_SEQUENCE[self.order + 1]

    def __str__(self) -> str:
        return self.value


_PHASE_SEQUENCE = (
    WorkflowPhase.IDLE,
    WorkflowPhase.ANALYZING,
    WorkflowPhase.NAMING,
    WorkflowPhase.PLANNING,
    WorkflowPhase.BUILDING,
    WorkflowPhase.VALIDATING,
    WorkflowPhase.COMPLETED,
)


class StepAction(Enum):
    """Action a creation plan step asks the builder to perform."""

    CREATE = "CREATE"
    """Entity does not exist in the target and must be created."""

    SKIP = "SKIP"
    """Entity already exists in the target; only its id is mapped."""

    UPDATE = "UPDATE"
    """Entity exists in the target and its configuration is overwritten."""

    def __str__(self) -> str:
        return self.value
