"""
Replication builder: executes a creation plan against the target workspace.

Design Pattern: Template Method
build() owns the step loop and the failure policy; _skip(), _create() and
_update() handle one action each.

Step handling:
- SKIP registers the existing target entity in the IdMapper. For templates
  both the container-scoped and the gallery type keys are mapped to the
  target's container-scoped key, so tags built on either resolve later.
- CREATE waits for the rate limiter, checks the target for a duplicate
  name, transforms the payload through the IdMapper and submits it. Only
  the submission is retried.
- UPDATE reads the target fingerprint and overwrites the entity.

Failure policy:
- rate limit still failing after the last attempt: stop the run
- any other failure after something was created: roll back, then stop
- any other failure before anything was created: record it and continue
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from pytagsync.errors import (
    ComponentRole,
    CreationError,
    DuplicateNameError,
    is_rate_limit_error,
    to_error_record,
)
from pytagsync.executor.rate_limit import RateLimiter
from pytagsync.executor.retry import Sleep, retry_on_rate_limit
from pytagsync.executor.rollback import rollback
from pytagsync.executor.transformer import ConfigTransformer
from pytagsync.mapping import IdMapper
from pytagsync.models import (
    BuildResult,
    CreatedEntity,
    CreationPlan,
    Entity,
    EntityKind,
    PlanStep,
    RateLimitPolicy,
    StepAction,
    StepFailure,
    WorkspaceContext,
    container_type_key,
    gallery_type_key,
)
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["ReplicationBuilder"]

EntityCallback = Callable[[PlanStep, CreatedEntity | None], Any]


class ReplicationBuilder:
    """
    Sequential plan executor.

    Usage:
        builder = ReplicationBuilder(target, mapper, source_context=source.context)
        result = await builder.with_rate_limit(RateLimitPolicy.UNTHROTTLED).build(plan)
        if result.rollback and result.rollback.is_partial:
            ...
    """

    def __init__(
        self,
        service: EntityService,
        mapper: IdMapper,
        *,
        source_context: WorkspaceContext | None = None,
        rate_limit: RateLimitPolicy = RateLimitPolicy.DEFAULT,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._service = service
        self._mapper = mapper
        self._source_context = source_context
        self._rate_limit = rate_limit
        self._sleep = sleep
        self._clock = clock

    @property
    def rate_limit(self) -> RateLimitPolicy:
        return self._rate_limit

    def with_rate_limit(self, policy: RateLimitPolicy) -> ReplicationBuilder:
        self._rate_limit = policy
        return self

    async def build(
        self,
        plan: CreationPlan,
        *,
        dry_run: bool = False,
        preserve_notes: bool = False,
        on_created: EntityCallback | None = None,
        on_skipped: EntityCallback | None = None,
    ) -> BuildResult:
        """Execute ``plan`` in order and report what happened."""
        limiter = RateLimiter(self._rate_limit.entity_delay_ms, clock=self._clock, sleep=self._sleep)
        transformer = ConfigTransformer(
            self._mapper, _variable_renames(plan), preserve_notes=preserve_notes
        )
        retrying = retry_on_rate_limit(self._rate_limit.retry, sleep=self._sleep)
        submit_create = retrying(self._service.create)
        submit_update = retrying(self._service.update)

        created: list[CreatedEntity] = []
        updated: list[CreatedEntity] = []
        failures: list[StepFailure] = []
        skipped = 0
        rollback_result = None
        aborted = False

        logger.info(
            f"Building {len(plan)} steps "
            f"({plan.estimated_api_calls} API calls, dry_run={dry_run})"
        )

        for step in plan:
            if step.action is StepAction.SKIP:
                skipped += 1
                await self._skip(step)
                _notify(on_skipped, step, None)
                continue

            if dry_run:
                if step.action is StepAction.CREATE:
                    logger.info(f"[dry run] would create {step.kind.value} {step.new_name!r}")
                continue

            try:
                if step.action is StepAction.UPDATE:
                    record = await self._update(step, transformer, limiter, submit_update)
                    updated.append(record)
                else:
                    record = await self._create(step, transformer, limiter, submit_create)
                    created.append(record)
                    _notify(on_created, step, record)
            except Exception as e:
                rate_limited = is_rate_limit_error(e)
                error = e
                if not isinstance(e, (CreationError, DuplicateNameError)):
                    error = CreationError(step.kind.value, step.new_name, str(e), step=step.step)
                failures.append(
                    StepFailure(
                        entity_id=step.original_id,
                        entity_name=step.new_name,
                        kind=step.kind,
                        error=to_error_record(error, ComponentRole.BUILDER),
                        rate_limited=rate_limited,
                    )
                )
                logger.error(f"Step {step} failed: {e}")

                if rate_limited or created:
                    aborted = True
                    if created:
                        rollback_result = await rollback(self._service, created)
                        remaining = {(f.kind, f.entity_id) for f in rollback_result.failures}
                        created_this_run = len(created)
                        created = [c for c in created if (c.kind, c.new_id) in remaining]
                        logger.warning(
                            f"Stopping after step {step.step}: "
                            f"{created_this_run - len(created)} of {created_this_run} "
                            f"created entities rolled back"
                        )
                    else:
                        logger.warning(f"Stopping after step {step.step}: rate limit exhausted")
                    break

        had_creations = bool(created) or (rollback_result is not None and rollback_result.attempted > 0)
        result = BuildResult(
            success=not failures,
            partial_success=bool(failures) and had_creations,
            created=tuple(created),
            updated=tuple(updated),
            id_mapping=self._mapper.snapshot(),
            skipped=skipped,
            failures=tuple(failures),
            rollback=rollback_result,
            aborted=aborted,
        )
        logger.info(
            f"Build finished: {len(created)} created, {len(updated)} updated, "
            f"{skipped} skipped, {len(failures)} failed"
        )
        return result

    async def _skip(self, step: PlanStep) -> None:
        if step.target_id is None:
            logger.warning(f"SKIP {step.kind.value} {step.new_name!r} has no target id; not mapped")
            return
        await self._mapper.add_safe(step.original_id, step.target_id, step.kind, step.new_name)
        if step.kind is EntityKind.TEMPLATE:
            self._register_template_types(step, step.target_id)
        logger.info(f"Skipped {step.kind.value} {step.new_name!r}, mapped to {step.target_id}")

    async def _create(self, step, transformer, limiter, submit) -> CreatedEntity:
        await limiter.acquire()

        existing = await self._service.find_by_name(step.kind, step.new_name)
        if existing is not None:
            raise DuplicateNameError(step.kind.value, step.new_name)

        config = transformer.transform(step.kind, step.config, step.new_name)
        entity: Entity = await submit(step.kind, config)

        await self._mapper.add_safe(step.original_id, entity.entity_id, step.kind, step.new_name)
        if step.kind is EntityKind.TEMPLATE:
            self._register_template_types(step, entity.entity_id)

        logger.info(f"Created {step.kind.value} {step.new_name!r}: {step.original_id} -> {entity.entity_id}")
        return CreatedEntity(step.kind, step.original_id, entity.entity_id, step.new_name)

    async def _update(self, step, transformer, limiter, submit) -> CreatedEntity:
        await limiter.acquire()

        current = await self._service.get(step.kind, step.target_id)
        fingerprint = current.fingerprint if current is not None else None
        config = transformer.transform(step.kind, step.config, step.new_name)
        entity: Entity = await submit(step.kind, step.target_id, fingerprint, config)

        await self._mapper.add_safe(step.original_id, entity.entity_id, step.kind, step.new_name)
        logger.info(f"Updated {step.kind.value} {step.new_name!r} ({entity.entity_id})")
        return CreatedEntity(step.kind, step.original_id, entity.entity_id, step.new_name)

    def _register_template_types(self, step: PlanStep, target_id: str) -> None:
        target_key = container_type_key(self._service.context.container_id, target_id)

        source_container = step.config.get("containerId") or (
            self._source_context.container_id if self._source_context else None
        )
        if source_container:
            self._mapper.add_template_type_equivalence(
                container_type_key(str(source_container), step.original_id), target_key
            )

        gallery_key = gallery_type_key(step.config.get("templateData"))
        if gallery_key:
            self._mapper.add_template_type_equivalence(gallery_key, target_key)


def _variable_renames(plan: CreationPlan) -> dict[str, str]:
    return {
        s.original_name: s.new_name
        for s in plan
        if s.kind is EntityKind.VARIABLE and s.is_renamed
    }


def _notify(callback: EntityCallback | None, step: PlanStep, record: CreatedEntity | None) -> None:
    if callback is None:
        return
    try:
        callback(step, record)
    except Exception as e:
        logger.warning(f"Step callback failed for {step}: {e}")
