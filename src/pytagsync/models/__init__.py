"""Core data models for replication runs.

Defines entity snapshots, dependency references and graphs, creation plans,
run configuration and the records produced by each stage.

Design: Dependency-Free Models
These types depend only on pytagsync.errors, never on the resolver,
executor or orchestrator packages, to prevent circular imports and keep the
layering clean.
"""

from pytagsync.models.config import RateLimitPolicy, ReplicationConfig, WorkspaceContext
from pytagsync.models.dependency import (
    AnalysisResult,
    AnalysisSummary,
    CreationItem,
    DependencyEdge,
    DependencyGraph,
    DependencyKind,
    DependencyNode,
    NodeInfo,
)
from pytagsync.models.entity import (
    ENTITY_CLASSES,
    HUB_VARIABLE_TYPES,
    Entity,
    EntityKind,
    EntityRef,
    Tag,
    Template,
    Trigger,
    Variable,
    container_type_key,
    entity_from_api,
    gallery_type_key,
)
from pytagsync.models.plan import CreationPlan, PlanStep, config_hash
from pytagsync.models.reference import (
    BY_GALLERY_TYPE_PREFIX,
    BY_NAME_PREFIX,
    ByGalleryType,
    ByName,
    Concrete,
    Reference,
    is_deferred,
    parse_reference,
)
from pytagsync.models.results import (
    BrokenReference,
    BuildResult,
    CreatedEntity,
    MappingEntry,
    MissingEntity,
    ReplicationResult,
    ReplicationSummary,
    RollbackFailure,
    RollbackResult,
    StepFailure,
    ValidationReport,
    ValidationSummary,
)
from pytagsync.models.retry import RetryPolicy
from pytagsync.models.status import StepAction, WorkflowPhase

__all__ = [
    "EntityKind",
    "EntityRef",
    "Entity",
    "Template",
    "Variable",
    "Trigger",
    "Tag",
    "ENTITY_CLASSES",
    "HUB_VARIABLE_TYPES",
    "entity_from_api",
    "container_type_key",
    "gallery_type_key",
    "Reference",
    "BY_NAME_PREFIX",
    "BY_GALLERY_TYPE_PREFIX",
    "Concrete",
    "ByName",
    "ByGalleryType",
    "is_deferred",
    "parse_reference",
    "DependencyKind",
    "DependencyEdge",
    "DependencyNode",
    "DependencyGraph",
    "AnalysisResult",
    "AnalysisSummary",
    "CreationItem",
    "NodeInfo",
    "PlanStep",
    "CreationPlan",
    "config_hash",
    "MappingEntry",
    "CreatedEntity",
    "RollbackFailure",
    "RollbackResult",
    "StepFailure",
    "BuildResult",
    "MissingEntity",
    "BrokenReference",
    "ValidationSummary",
    "ValidationReport",
    "ReplicationSummary",
    "ReplicationResult",
    "RetryPolicy",
    "RateLimitPolicy",
    "ReplicationConfig",
    "WorkspaceContext",
    "WorkflowPhase",
    "StepAction",
]
