"""Remote workspace access.

Contains the EntityService interface and its in-memory adapter.
"""

from pytagsync.service.base import EntityService, ServiceError
from pytagsync.service.memory import FailureRule, InMemoryEntityService

__all__ = [
    "EntityService",
    "ServiceError",
    "InMemoryEntityService",
    "FailureRule",
]
