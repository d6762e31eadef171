"""Error taxonomy for replication runs.

Every error surfaced to a caller carries a stable code, a human-readable
message, a recoverability flag and the role of the component that raised it.

Design Pattern: Exception Hierarchy
ReplicationError is the common base; one subclass per failure category lets
callers catch narrowly (DuplicateNameError) or broadly (ReplicationError)
without inspecting messages.

Errors that cross the run boundary are converted into ErrorRecord values so
that workflow state and results hold plain data, not live exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "ErrorCode",
    "ComponentRole",
    "ErrorRecord",
    "ReplicationError",
    "InvalidInputError",
    "RemoteConnectionError",
    "RemoteApiError",
    "NotFoundError",
    "AnalysisError",
    "CircularDependencyError",
    "CreationError",
    "DuplicateNameError",
    "ValidationError",
    "WorkflowAbortedError",
    "StateTransitionError",
    "RATE_LIMIT_PATTERNS",
    "is_rate_limit_error",
    "is_recoverable",
    "to_error_record",
]


class ErrorCode(Enum):
    """Stable error codes exposed to callers."""

    MCP_CONNECTION_ERROR = "MCP_CONNECTION_ERROR"
    MCP_API_ERROR = "MCP_API_ERROR"
    MCP_NOT_FOUND = "MCP_NOT_FOUND"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    CREATION_FAILED = "CREATION_FAILED"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    WORKFLOW_ABORTED = "WORKFLOW_ABORTED"
    STATE_INVALID = "STATE_INVALID"
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    def __str__(self) -> str:
        return self.value


class ComponentRole(Enum):
    """Component that originated an error."""

    ANALYZER = "analyzer"
    NAMING = "naming"
    PLANNER = "planner"
    BUILDER = "builder"
    VALIDATOR = "validator"
    ORCHESTRATOR = "orchestrator"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ErrorRecord:
    """Plain-data form of an error, stored in workflow state and results."""

    code: ErrorCode
    message: str
    recoverable: bool = False
    role: ComponentRole | None = None
    details: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "role": self.role.value if self.role else None,
            "details": dict(self.details),
        }


class ReplicationError(Exception):
    """
    Base class for all replication errors.

    Mirrors the retry control of a retryable error: is_retryable() reports
    whether a caller may reasonably try the same operation again, which for
    this taxonomy is the recoverable flag.

    Example:
        try:
            await builder.build(plan)
        except ReplicationError as e:
            record = e.to_record()
            if not e.is_retryable():
                raise
    """

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    default_recoverable: bool = False
    default_role: ComponentRole | None = None

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        recoverable: bool | None = None,
        role: ComponentRole | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.role = role or self.default_role

    def is_retryable(self) -> bool:
        return self.recoverable

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(
            code=self.code,
            message=self.message,
            recoverable=self.recoverable,
            role=self.role,
            details=dict(self.details),
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.to_record().to_dict()
        data["name"] = type(self).__name__
        return data

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code.value}, "
            f"message={self.message!r}, recoverable={self.recoverable})"
        )


class InvalidInputError(ReplicationError):
    """Required run input is missing or malformed."""

    code = ErrorCode.INVALID_INPUT
    default_recoverable = True

    def __init__(self, message: str, field_name: str | None = None):
        super().__init__(message, details={"field": field_name})


class RemoteConnectionError(ReplicationError):
    """The remote entity service could not be reached."""

    code = ErrorCode.MCP_CONNECTION_ERROR
    default_recoverable = True


class RemoteApiError(ReplicationError):
    """The remote entity service rejected a call."""

    code = ErrorCode.MCP_API_ERROR


class NotFoundError(ReplicationError):
    """An entity does not exist in the queried workspace."""

    code = ErrorCode.MCP_NOT_FOUND

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} not found: {identifier}",
            details={"kind": kind, "identifier": identifier},
        )


class AnalysisError(ReplicationError):
    """The source workspace could not be analyzed."""

    code = ErrorCode.ANALYSIS_FAILED
    default_role = ComponentRole.ANALYZER


class CircularDependencyError(ReplicationError):
    """A dependency cycle was found.

    The topological sorter absorbs cycles and never raises this;
    resolver.check_acyclic() does, for callers that treat cycles as fatal.
    """

    code = ErrorCode.CIRCULAR_DEPENDENCY
    default_role = ComponentRole.ANALYZER

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            details={"cycle": list(cycle)},
        )


class CreationError(ReplicationError):
    """An entity could not be created in the target workspace."""

    code = ErrorCode.CREATION_FAILED
    default_recoverable = True
    default_role = ComponentRole.BUILDER

    def __init__(self, kind: str, name: str, reason: str, **details: Any):
        super().__init__(
            f'Failed to create {kind} "{name}": {reason}',
            details={"kind": kind, "name": name, "reason": reason, **details},
        )


class DuplicateNameError(ReplicationError):
    """An entity with the same name already exists in the target workspace."""

    code = ErrorCode.DUPLICATE_NAME
    default_recoverable = True
    default_role = ComponentRole.BUILDER

    def __init__(self, kind: str, name: str):
        super().__init__(
            f'{kind} with name "{name}" already exists',
            details={"kind": kind, "name": name},
        )


class ValidationError(ReplicationError):
    """Post-build validation failed."""

    code = ErrorCode.VALIDATION_FAILED
    default_role = ComponentRole.VALIDATOR

    def __init__(self, message: str, issues: list[Any] | None = None):
        super().__init__(message, details={"issues": list(issues or [])})


class WorkflowAbortedError(ReplicationError):
    """The run was stopped early."""

    code = ErrorCode.WORKFLOW_ABORTED
    default_role = ComponentRole.ORCHESTRATOR

    def __init__(self, reason: str, phase: str | None = None):
        super().__init__(f"Workflow aborted: {reason}", details={"phase": phase})


class StateTransitionError(ReplicationError):
    """A workflow phase transition was rejected."""

    code = ErrorCode.STATE_INVALID
    default_role = ComponentRole.ORCHESTRATOR

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            details={"current": current, "requested": requested},
        )


# Substrings that mark a remote failure as quota or throttling related.
# 403 is included because quota errors sometimes arrive as Forbidden.
RATE_LIMIT_PATTERNS = (
    "429",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "quota",
    "too many requests",
    "exceeded",
    "403",
)


def is_rate_limit_error(error: BaseException | str) -> bool:
    """Check whether an error message looks like a rate-limit failure."""
    message = str(error).lower()
    return any(pattern in message for pattern in RATE_LIMIT_PATTERNS)


def is_recoverable(error: BaseException) -> bool:
    if isinstance(error, ReplicationError):
        return error.recoverable
    return False


def to_error_record(error: BaseException, role: ComponentRole | None = None) -> ErrorRecord:
    """Convert any exception into an ErrorRecord.

    ReplicationError subclasses keep their own code and flags (the given role
    only fills in a missing one). Anything else becomes UNKNOWN_ERROR and is
    treated as non-recoverable.
    """
    if isinstance(error, ReplicationError):
        record = error.to_record()
        if record.role is None and role is not None:
            return ErrorRecord(
                code=record.code,
                message=record.message,
                recoverable=record.recoverable,
                role=role,
                details=record.details,
            )
        return record

    return ErrorRecord(
        code=ErrorCode.UNKNOWN_ERROR,
        message=str(error) or type(error).__name__,
        recoverable=False,
        role=role,
        details={"type": type(error).__name__},
    )
