"""
WorkflowRunner - end-to-end replication of selected entities.

Design Pattern: Façade Pattern
run_replication() hides the analyzer, naming, planner, builder and
validator behind one call and one result object.

Run outline:
    analyzing   build the dependency graph from the source, list the target
    naming      derive target names (bypassed with skip_naming)
    planning    decide CREATE/SKIP/UPDATE per entity
    building    execute the plan
    validating  check the target (bypassed with skip_validation or dry_run)
    completed

Errors raised by any phase are recorded on the session state; a build that
stopped early adds a WorkflowAbortedError, which moves the run to ERROR and
skips validation. The result's ``success`` holds exactly when no error was
recorded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable

from uuid_extensions import uuid7

from pytagsync.errors import (
    AnalysisError,
    ComponentRole,
    InvalidInputError,
    WorkflowAbortedError,
    to_error_record,
)
from pytagsync.executor import (
    CreationPlanner,
    NameGenerator,
    ReplicationBuilder,
    TargetInventory,
    ValidationChecker,
)
from pytagsync.executor.retry import Sleep
from pytagsync.mapping import IdMapper
from pytagsync.models import (
    BuildResult,
    ByName,
    CreatedEntity,
    DependencyGraph,
    EntityKind,
    EntityRef,
    PlanStep,
    RateLimitPolicy,
    ReplicationConfig,
    ReplicationResult,
    ReplicationSummary,
    WorkflowPhase,
)
from pytagsync.orchestrator.events import EventListener, WorkflowEvent, WorkflowEventType
from pytagsync.orchestrator.registry import SessionRegistry
from pytagsync.orchestrator.state import (
    AddCreatedEntity,
    SetAnalysisResult,
    SetCreationPlan,
    SetIdMapping,
    SetNameMap,
    SetValidationReport,
    WorkflowState,
    WorkflowStateManager,
)
from pytagsync.resolver import DependencyGraphBuilder, ServiceLookup
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["WorkflowRunner"]


class WorkflowRunner:
    """
    Replicates a selection of source entities into a target workspace.

    Usage:
        runner = WorkflowRunner(source, target).with_rate_limit(RateLimitPolicy.DEFAULT)
        runner.on_event(lambda event: print(event.type, event.data))
        result = await runner.run_replication(["12", "15"], ReplicationConfig(name_prefix="EU - "))
        if result.partial_success:
            ...  # manual review, not a blind retry
    """

    def __init__(
        self,
        source: EntityService,
        target: EntityService,
        *,
        session_id: str | None = None,
        registry: SessionRegistry | None = None,
        rate_limit: RateLimitPolicy = RateLimitPolicy.DEFAULT,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._target = target
        self._session_id = session_id or str(uuid7())
        self._rate_limit = rate_limit
        self._sleep = sleep
        self._clock = clock
        self._listeners: list[EventListener] = []
        self._registry: SessionRegistry | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._attach(IdMapper(), WorkflowStateManager(self._session_id))
        if registry is not None:
            self.with_registry(registry)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def mapper(self) -> IdMapper:
        return self._mapper

    @property
    def state(self) -> WorkflowStateManager:
        return self._state

    def with_registry(self, registry: SessionRegistry) -> WorkflowRunner:
        """Take the mapper and state manager from a shared session registry."""
        session = registry.get_or_create(self._session_id)
        self._registry = registry
        self._attach(session.mapper, session.state)
        return self

    def _attach(self, mapper: IdMapper, state: WorkflowStateManager) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._mapper = mapper
        self._state = state
        self._last_phase = state.phase
        self._unsubscribe = state.subscribe(self._on_state_change)

    def with_rate_limit(self, policy: RateLimitPolicy) -> WorkflowRunner:
        self._rate_limit = policy
        return self

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Subscribe to workflow events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: WorkflowEventType, **data) -> None:
        event = WorkflowEvent(type=event_type, session_id=self._session_id, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed on {event_type}: {e}")

    def _on_state_change(self, state: WorkflowState) -> None:
        if state.phase is not self._last_phase:
            previous, self._last_phase = self._last_phase, state.phase
            self._emit(WorkflowEventType.PHASE_CHANGED, previous=previous, phase=state.phase)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run_replication(
        self,
        selection: Iterable[str | EntityRef],
        config: ReplicationConfig | None = None,
    ) -> ReplicationResult:
        """
        Replicate ``selection`` and everything it depends on.

        The identifier mapping is cleared when the run starts; the result's
        id_mapping covers this run only.

        Args:
            selection: Root tag ids, or kind-qualified refs
            config: Run flags; defaults to ReplicationConfig()

        Raises:
            InvalidInputError: Empty selection or incomplete workspace
                context. Raised before any remote call.
        """
        config = config or ReplicationConfig()
        roots = [
            r if isinstance(r, EntityRef) else EntityRef(EntityKind.TAG, str(r)) for r in selection
        ]
        if not roots:
            raise InvalidInputError("Selection is empty", "selection")
        for name, service in (("source", self._source), ("target", self._target)):
            if not service.context.is_complete():
                raise InvalidInputError(
                    f"{name} workspace context is incomplete: {service.context}", name
                )

        started = time.monotonic()
        state = self._state
        state.start(self._source.context, self._target.context)
        self._mapper.clear()
        self._emit(
            WorkflowEventType.WORKFLOW_STARTED,
            selection=[str(r) for r in roots],
            dry_run=config.dry_run,
        )
        logger.info(
            f"[{self._session_id}] Replicating {len(roots)} roots: "
            f"{self._source.context} -> {self._target.context}"
        )

        graph = None
        plan = None
        build: BuildResult | None = None
        report = None

        try:
            # analyzing
            builder = DependencyGraphBuilder(
                ServiceLookup(self._source), reverse_discovery=config.reverse_discovery
            )
            graph = await builder.build_from(roots)
            state.dispatch(SetAnalysisResult(graph.to_analysis_result()))
            if len(graph) == 0:
                raise AnalysisError("No selected entity could be loaded from the source")
            inventory = await TargetInventory.load(self._target)

            # naming
            state.transition_to(WorkflowPhase.NAMING)
            names = {}
            if not config.skip_naming:
                names = NameGenerator(config.name_prefix, config.name_suffix).generate(graph)
            state.dispatch(SetNameMap(names))

            # planning
            state.transition_to(WorkflowPhase.PLANNING)
            plan = CreationPlanner(config).plan(graph, inventory, names)
            state.dispatch(SetCreationPlan(plan))
            for warning in plan.warnings:
                state.add_warning(warning)

            # building
            state.transition_to(WorkflowPhase.BUILDING)
            build = await ReplicationBuilder(
                self._target,
                self._mapper,
                source_context=self._source.context,
                rate_limit=self._rate_limit,
                sleep=self._sleep,
                clock=self._clock,
            ).build(
                plan,
                dry_run=config.dry_run,
                preserve_notes=config.preserve_notes,
                on_created=self._entity_created,
                on_skipped=self._entity_skipped,
            )
            state.dispatch(SetIdMapping(build.id_mapping))
            for failure in build.failures:
                state.add_error(failure.error)
            if build.rollback is not None and build.rollback.is_partial:
                state.add_warning(
                    "Partial rollback, entities left in target: " + ", ".join(build.rollback.remaining)
                )
            if build.aborted:
                reason = (
                    "rate limit retries exhausted"
                    if any(f.rate_limited for f in build.failures)
                    else "creation failed after entities were created"
                )
                state.add_error(
                    WorkflowAbortedError(reason, phase=str(WorkflowPhase.BUILDING)).to_record()
                )

            # validating
            if state.phase is not WorkflowPhase.ERROR:
                state.transition_to(WorkflowPhase.VALIDATING)
                if not config.skip_validation and not config.dry_run:
                    report = await ValidationChecker(
                        self._target, ignore_variables=_unresolved_names(graph)
                    ).validate(
                        self._mapper, [node.entity for node in graph.ordered_nodes()]
                    )
                    state.dispatch(SetValidationReport(report))
                    if not report.success:
                        state.add_warning(
                            f"Validation found {report.summary.missing_count} missing entities "
                            f"and {report.summary.broken_ref_count} broken references"
                        )
                state.complete()
        except Exception as e:
            logger.error(f"[{self._session_id}] Run failed in {state.phase}: {e}")
            state.add_error(to_error_record(e, ComponentRole.ORCHESTRATOR))
            state.transition_to(WorkflowPhase.ERROR)

        final = state.state
        result = ReplicationResult(
            success=not final.errors,
            session_id=self._session_id,
            duration_ms=int((time.monotonic() - started) * 1000),
            summary=ReplicationSummary(
                analyzed=len(graph) if graph is not None else 0,
                planned=len(plan) if plan is not None else 0,
                created=len(build.created) if build else 0,
                updated=len(build.updated) if build else 0,
                skipped=build.skipped if build else 0,
                failed=len(build.failures) if build else 0,
            ),
            created=build.created if build else (),
            id_mapping=self._mapper.snapshot(),
            validation=report,
            errors=final.errors,
            warnings=final.warnings,
            partial_success=build.partial_success if build else False,
            rollback=build.rollback if build else None,
        )

        if result.success:
            self._emit(WorkflowEventType.WORKFLOW_COMPLETED, summary=result.summary)
        else:
            self._emit(WorkflowEventType.WORKFLOW_FAILED, errors=list(result.errors))
        logger.info(
            f"[{self._session_id}] Run finished in {result.duration_ms}ms: "
            f"success={result.success}, {result.summary.created} created"
        )
        return result

    def _entity_created(self, step: PlanStep, entity: CreatedEntity | None) -> None:
        if entity is not None:
            self._state.dispatch(AddCreatedEntity(entity))
        self._emit(WorkflowEventType.ENTITY_CREATED, step=step, entity=entity)

    def _entity_skipped(self, step: PlanStep, entity: CreatedEntity | None) -> None:
        self._emit(WorkflowEventType.ENTITY_SKIPPED, step=step)


def _unresolved_names(graph: DependencyGraph) -> set[str]:
    """Variable names the source itself could not resolve (built-ins)."""
    return {
        edge.target.name
        for node in graph.ordered_nodes()
        for edge in node.dependencies
        if isinstance(edge.target, ByName)
    }
