"""
Post-build validation.

The checker re-lists the target workspace and compares it with what the
run mapped:

- missing: mapped target ids that no longer exist in the target
- broken references: ids and ``{{name}}`` references inside the mapped
  target entities that do not resolve against the target lists
- warnings: source entities that were never mapped

Problems are reported in a ValidationReport and never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pytagsync.mapping import IdMapper
from pytagsync.models import (
    BrokenReference,
    Entity,
    EntityKind,
    EntityRef,
    MissingEntity,
    Tag,
    Trigger,
    ValidationReport,
    ValidationSummary,
)
from pytagsync.resolver.parsers import extract_variable_references
from pytagsync.service import EntityService

logger = logging.getLogger(__name__)

__all__ = ["ValidationChecker"]


def _texts(value) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from _texts(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _texts(item)


class ValidationChecker:
    """Compares the target workspace against a run's identifier mapping.

    Args:
        service: Target workspace
        ignore_variables: Variable names that always resolve (built-in
            variables the platform does not list)
    """

    def __init__(self, service: EntityService, *, ignore_variables: Iterable[str] = ()):
        self._service = service
        self._ignore = frozenset(ignore_variables)

    async def _load_target(self) -> dict[EntityKind, list[Entity]]:
        lists = {}
        for kind in EntityKind:
            try:
                lists[kind] = await self._service.list(kind)
            except Exception as e:
                logger.warning(f"Could not list target {kind.value}s: {e}")
                lists[kind] = []
        return lists

    async def validate(self, mapper: IdMapper, source: Iterable[Entity] = ()) -> ValidationReport:
        source = list(source)
        target = await self._load_target()

        target_ids = {kind: {e.entity_id for e in entities} for kind, entities in target.items()}
        missing = [
            MissingEntity(kind=e.kind, original_id=e.source_id, name=e.name)
            for e in mapper.entries()
            if e.target_id not in target_ids.get(e.kind, set())
        ]

        scope = {e.target_ref for e in mapper.entries()}
        broken = self.check_integrity(target, scope)

        warnings = []
        for kind in (EntityKind.TAG, EntityKind.TRIGGER, EntityKind.VARIABLE):
            unmapped = [e for e in source if e.kind is kind and not mapper.has_mapping(e.ref)]
            if unmapped:
                warnings.append(f"{len(unmapped)} source {kind.value}s were not mapped")

        summary = ValidationSummary(
            expected_count=len(source),
            actual_count=sum(len(v) for v in target.values()),
            missing_count=len(missing),
            broken_ref_count=len(broken),
        )
        report = ValidationReport(
            success=not missing and not broken,
            summary=summary,
            missing=tuple(missing),
            broken_references=tuple(broken),
            warnings=tuple(warnings),
        )
        if report.success:
            logger.info(f"Validation passed: {len(scope)} mapped entities present")
        else:
            logger.warning(
                f"Validation failed: {len(missing)} missing, {len(broken)} broken references"
            )
        return report

    def check_integrity(
        self,
        entities: dict[EntityKind, list[Entity]],
        scope: set[EntityRef] | None = None,
    ) -> list[BrokenReference]:
        """Find dangling references.

        Every entity in ``entities`` is a valid reference target; only
        entities in ``scope`` (all of them when None) are inspected.
        """
        trigger_ids = {e.entity_id for e in entities.get(EntityKind.TRIGGER, [])}
        variable_names = {e.name for e in entities.get(EntityKind.VARIABLE, [])} | self._ignore
        tag_ids = {e.entity_id for e in entities.get(EntityKind.TAG, [])}
        tag_names = {e.name for e in entities.get(EntityKind.TAG, [])}

        broken = []

        def report(entity: Entity, reference: str, issue: str) -> None:
            broken.append(
                BrokenReference(
                    kind=entity.kind,
                    entity_id=entity.entity_id,
                    entity_name=entity.name,
                    reference=reference,
                    issue=issue,
                )
            )

        def check_variables(entity: Entity, fields: Iterable[str]) -> None:
            for field_name in fields:
                for text in _texts(entity.payload.get(field_name)):
                    for name in extract_variable_references(text):
                        if name not in variable_names and name != entity.name:
                            report(entity, name, f'Variable "{name}" not found')

        for kind in (EntityKind.TAG, EntityKind.TRIGGER, EntityKind.VARIABLE):
            for entity in entities.get(kind, []):
                if scope is not None and entity.ref not in scope:
                    continue

                if isinstance(entity, Tag):
                    for label, ids in (
                        ("Firing", entity.firing_trigger_ids),
                        ("Blocking", entity.blocking_trigger_ids),
                    ):
                        for trigger_id in ids:
                            if trigger_id not in trigger_ids:
                                report(entity, trigger_id, f"{label} trigger {trigger_id} not found")
                    for label, entries in (
                        ("Setup", entity.setup_tags),
                        ("Teardown", entity.teardown_tags),
                    ):
                        for entry in entries:
                            if entry.get("tagId"):
                                found = str(entry["tagId"]) in tag_ids
                                reference = str(entry["tagId"])
                            elif entry.get("tagName"):
                                found = entry["tagName"] in tag_names
                                reference = entry["tagName"]
                            else:
                                continue
                            if not found:
                                report(entity, reference, f"{label} tag {reference} not found")
                    check_variables(entity, ("parameter",))
                elif isinstance(entity, Trigger):
                    check_variables(entity, ("parameter",) + Trigger.FILTER_FIELDS)
                else:
                    check_variables(entity, ("parameter",))

        return broken
