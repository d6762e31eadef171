"""Outcome records produced by the build, rollback and validation stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pytagsync.errors import ErrorRecord, ValidationError
from pytagsync.models.entity import EntityKind, EntityRef


@dataclass(frozen=True)
class MappingEntry:
    """Source-to-target identifier mapping for one entity."""

    source_id: str
    target_id: str
    kind: EntityKind
    name: str

    @property
    def source_ref(self) -> EntityRef:
        return EntityRef(self.kind, self.source_id)

    @property
    def target_ref(self) -> EntityRef:
        return EntityRef(self.kind, self.target_id)

    def to_dict(self) -> dict[str, str]:
        return {"newId": self.target_id, "type": self.kind.value, "name": self.name}


@dataclass(frozen=True)
class CreatedEntity:
    """An entity that now exists in the target because of this run."""

    kind: EntityKind
    original_id: str
    new_id: str
    name: str

    @property
    def target_ref(self) -> EntityRef:
        return EntityRef(self.kind, self.new_id)


@dataclass(frozen=True)
class RollbackFailure:
    entity_id: str
    kind: EntityKind
    error: str


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of deleting a failed run's entities.

    A partial rollback leaves the listed entities in the target workspace.
    """

    attempted: int = 0
    succeeded: int = 0
    failures: tuple[RollbackFailure, ...] = ()

    @property
    def is_partial(self) -> bool:
        return len(self.failures) > 0

    @property
    def remaining(self) -> list[str]:
        return [f"{f.kind.value}:{f.entity_id}" for f in self.failures]


@dataclass(frozen=True)
class StepFailure:
    """A plan step that did not complete."""

    entity_id: str
    entity_name: str
    kind: EntityKind
    error: ErrorRecord
    rate_limited: bool = False


@dataclass(frozen=True)
class BuildResult:
    """Outcome of executing a creation plan.

    Attributes:
        success: No step failed
        partial_success: Steps failed after at least one entity was created
        created: Entities that still exist in the target (empty after a
            complete rollback)
        updated: Existing target entities overwritten by UPDATE steps
        id_mapping: Snapshot of the identifier mapping
        skipped: Number of SKIP steps
        failures: Failed steps in execution order
        rollback: Rollback outcome, when one ran
        aborted: Processing stopped before the last step
    """

    success: bool
    partial_success: bool
    created: tuple[CreatedEntity, ...] = ()
    updated: tuple[CreatedEntity, ...] = ()
    id_mapping: dict[EntityRef, MappingEntry] = field(default_factory=dict, hash=False)
    skipped: int = 0
    failures: tuple[StepFailure, ...] = ()
    rollback: RollbackResult | None = None
    aborted: bool = False

    @property
    def errors(self) -> list[ErrorRecord]:
        return [f.error for f in self.failures]


@dataclass(frozen=True)
class MissingEntity:
    kind: EntityKind
    original_id: str
    name: str
    reason: str = "Not found in target workspace"


@dataclass(frozen=True)
class BrokenReference:
    """A reference inside a target entity that points at nothing."""

    kind: EntityKind
    entity_id: str
    entity_name: str
    reference: str
    issue: str

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.entity_name}: {self.issue}"


@dataclass(frozen=True)
class ValidationSummary:
    expected_count: int
    actual_count: int
    missing_count: int
    broken_ref_count: int


@dataclass(frozen=True)
class ValidationReport:
    success: bool
    summary: ValidationSummary
    missing: tuple[MissingEntity, ...] = ()
    broken_references: tuple[BrokenReference, ...] = ()
    warnings: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        """Render the report as plain text."""
        rule = "=" * 60
        lines = [
            rule,
            "Validation Report",
            rule,
            f"Timestamp: {self.timestamp.isoformat()}",
            f"Status: {'PASSED' if self.success else 'FAILED'}",
            "",
            f"Expected entities: {self.summary.expected_count}",
            f"Actual entities: {self.summary.actual_count}",
            f"Missing: {self.summary.missing_count}",
            f"Broken references: {self.summary.broken_ref_count}",
        ]
        if self.missing:
            lines.append("")
            lines.append("Missing entities:")
            lines.extend(f"  [{m.kind.value}] {m.name} ({m.reason})" for m in self.missing)
        if self.broken_references:
            lines.append("")
            lines.append("Broken references:")
            lines.extend(f"  {b}" for b in self.broken_references)
        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            lines.extend(f"  {w}" for w in self.warnings)
        lines.append(rule)
        return "\n".join(lines)

    def raise_if_invalid(self) -> None:
        """Raise ValidationError listing every missing entity and broken reference."""
        if self.success:
            return
        issues = [f"[{m.kind.value}] {m.name}: {m.reason}" for m in self.missing]
        issues.extend(str(b) for b in self.broken_references)
        raise ValidationError(
            f"Validation failed: {self.summary.missing_count} missing, "
            f"{self.summary.broken_ref_count} broken references",
            issues,
        )


@dataclass(frozen=True)
class ReplicationSummary:
    analyzed: int = 0
    planned: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass(frozen=True)
class ReplicationResult:
    """What run_replication() hands back to its caller.

    ``success`` holds exactly when ``errors`` is empty. ``partial_success``
    means some entities now exist in the target without the run completing;
    such runs need manual review rather than a blind retry.
    """

    success: bool
    session_id: str
    duration_ms: int
    summary: ReplicationSummary
    created: tuple[CreatedEntity, ...] = ()
    id_mapping: dict[EntityRef, MappingEntry] = field(default_factory=dict, hash=False)
    validation: ValidationReport | None = None
    errors: tuple[ErrorRecord, ...] = ()
    warnings: tuple[str, ...] = ()
    partial_success: bool = False
    rollback: RollbackResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "partialSuccess": self.partial_success,
            "sessionId": self.session_id,
            "duration": self.duration_ms,
            "summary": {
                "analyzedCount": self.summary.analyzed,
                "plannedCount": self.summary.planned,
                "createdCount": self.summary.created,
                "updatedCount": self.summary.updated,
                "skippedCount": self.summary.skipped,
                "failedCount": self.summary.failed,
            },
            "createdEntities": [
                {
                    "type": c.kind.value,
                    "originalId": c.original_id,
                    "newId": c.new_id,
                    "name": c.name,
                }
                for c in self.created
            ],
            "idMapping": {e.source_id: e.to_dict() for e in self.id_mapping.values()},
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }
