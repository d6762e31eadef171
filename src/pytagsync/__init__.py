"""
pytagsync: dependency-aware replication between tag-manager workspaces.

Copies a selection of tags, and every trigger, variable and custom template
they depend on, from a source workspace into a target workspace. Entities
are created in dependency order, identifiers are remapped on the way, and a
failed run rolls back what it created.

Design Pattern: Façade Pattern
This module re-exports the public surface so callers rarely need the
sub-packages directly.

Example:
    ```python
    import asyncio
    from pytagsync import (
        InMemoryEntityService,
        ReplicationConfig,
        WorkflowRunner,
        WorkspaceContext,
    )

    async def main():
        source = InMemoryEntityService(WorkspaceContext("1", "100", "7"))
        target = InMemoryEntityService(WorkspaceContext("1", "200", "3"))
        ...  # seed the source workspace

        runner = WorkflowRunner(source, target)
        result = await runner.run_replication(["12"], ReplicationConfig(name_prefix="EU - "))
        print(result.to_dict())

    asyncio.run(main())
    ```
"""

# Errors
from pytagsync.errors import (
    ErrorCode,
    ErrorRecord,
    ReplicationError,
    is_rate_limit_error,
)

# Core types
from pytagsync.models import (
    ByGalleryType,
    ByName,
    Concrete,
    CreationPlan,
    DependencyGraph,
    EntityKind,
    EntityRef,
    RateLimitPolicy,
    ReplicationConfig,
    ReplicationResult,
    RetryPolicy,
    Tag,
    Template,
    Trigger,
    Variable,
    WorkflowPhase,
    WorkspaceContext,
)

# Services (Adapter pattern)
from pytagsync.service import EntityService, InMemoryEntityService

# Dependency resolution
from pytagsync.resolver import DependencyGraphBuilder, extract_dependencies, topological_sort

# Identifier mapping
from pytagsync.mapping import IdMapper

# Execution
from pytagsync.executor import ReplicationBuilder, ValidationChecker, rollback

# Orchestration
from pytagsync.orchestrator import SessionRegistry, WorkflowRunner, WorkflowStateManager

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ErrorCode",
    "ErrorRecord",
    "ReplicationError",
    "is_rate_limit_error",

    # Core types
    "EntityKind",
    "EntityRef",
    "Tag",
    "Trigger",
    "Variable",
    "Template",
    "Concrete",
    "ByName",
    "ByGalleryType",
    "DependencyGraph",
    "CreationPlan",
    "RetryPolicy",
    "RateLimitPolicy",
    "ReplicationConfig",
    "ReplicationResult",
    "WorkflowPhase",
    "WorkspaceContext",

    # Services
    "EntityService",
    "InMemoryEntityService",

    # Resolution
    "DependencyGraphBuilder",
    "extract_dependencies",
    "topological_sort",

    # Mapping
    "IdMapper",

    # Execution
    "ReplicationBuilder",
    "ValidationChecker",
    "rollback",

    # Orchestration
    "WorkflowRunner",
    "WorkflowStateManager",
    "SessionRegistry",

    # Metadata
    "__version__",
]
