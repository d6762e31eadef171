"""Plan execution: naming, planning, building, rollback and validation."""

from pytagsync.executor.builder import ReplicationBuilder
from pytagsync.executor.naming import NameGenerator
from pytagsync.executor.planner import CreationPlanner, TargetInventory
from pytagsync.executor.rate_limit import RateLimiter
from pytagsync.executor.retry import retry_on_rate_limit
from pytagsync.executor.rollback import rollback
from pytagsync.executor.transformer import (
    METADATA_FIELDS,
    ConfigTransformer,
    extract_create_config,
)
from pytagsync.executor.validator import ValidationChecker

__all__ = [
    "ReplicationBuilder",
    "NameGenerator",
    "CreationPlanner",
    "TargetInventory",
    "RateLimiter",
    "retry_on_rate_limit",
    "rollback",
    "ConfigTransformer",
    "extract_create_config",
    "METADATA_FIELDS",
    "ValidationChecker",
]
