"""Best-effort removal of the entities a failed run created."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pytagsync.models import CreatedEntity, RollbackFailure, RollbackResult
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["rollback"]


async def rollback(service: EntityService, created: Sequence[CreatedEntity]) -> RollbackResult:
    """
    Delete ``created`` in reverse creation order.

    Dependents were created after their dependencies, so deleting newest
    first never removes an entity something else still points at. Every
    deletion is attempted; failures are collected into the result.
    """
    if not created:
        return RollbackResult()

    logger.warning(f"Rolling back {len(created)} created entities")
    succeeded = 0
    failures = []

    for entity in reversed(created):
        try:
            if not service.supports(entity.kind):
                raise NotImplementedError(f"target service cannot delete {entity.kind.value}s")
            await service.delete(entity.kind, entity.new_id)
            succeeded += 1
            logger.info(f"Rolled back {entity.kind.value} {entity.name!r} ({entity.new_id})")
        except Exception as e:
            logger.error(f"Rollback of {entity.kind.value} {entity.new_id} failed: {e}")
            failures.append(RollbackFailure(entity.new_id, entity.kind, str(e)))

    result = RollbackResult(attempted=len(created), succeeded=succeeded, failures=tuple(failures))
    if result.is_partial:
        logger.warning(
            f"Partial rollback: {len(failures)} entities remain in target: "
            + ", ".join(result.remaining)
        )
    return result
