"""
Dependency extraction for each entity kind.

Design Pattern: Dispatch Table
extract_dependencies() looks up the parser registered for the entity's kind.
Parsers are pure functions: same entity in, same edges out, no I/O.

Recognized references:
- Direct ids in structured fields (firing/blocking triggers, setup/teardown
  tags, configTagId)
- ``{{name}}`` text references anywhere in parameters, including nested
  list/map parameters, as deferred by-name variable edges
- Variable references inside trigger condition blocks
- Custom template tags (type ``cvt_*``) as a deferred by-gallery-type edge
  to their template

Hub variables and templates never produce edges.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any

from pytagsync.models import (
    ByGalleryType,
    ByName,
    Concrete,
    DependencyEdge,
    DependencyKind,
    Entity,
    EntityKind,
    Tag,
    Trigger,
    Variable,
)

__all__ = [
    "VARIABLE_REFERENCE_PATTERN",
    "extract_variable_references",
    "extract_dependencies",
    "parse_tag",
    "parse_trigger",
    "parse_variable",
    "parse_template",
    "PARSERS",
]

VARIABLE_REFERENCE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

Parser = Callable[[Any], list[DependencyEdge]]


def extract_variable_references(text: str | None) -> list[str]:
    """Return the distinct ``{{name}}`` references in text, in order of appearance."""
    if not text:
        return []
    names: dict[str, None] = {}
    for match in VARIABLE_REFERENCE_PATTERN.finditer(text):
        names.setdefault(match.group(1).strip(), None)
    return list(names)


def _variable_edges(
    text: str | None,
    edge_kind: DependencyKind,
    location: str,
    note: str | None = None,
) -> list[DependencyEdge]:
    return [
        DependencyEdge(
            target=ByName(name),
            target_kind=EntityKind.VARIABLE,
            edge_kind=edge_kind,
            location=location,
            resolved_name=name,
            note=note,
        )
        for name in extract_variable_references(text)
    ]


def _parameter_edges(parameters: Iterable[dict[str, Any]], base_path: str) -> list[DependencyEdge]:
    edges: list[DependencyEdge] = []
    for param in parameters:
        path = f"{base_path}.{param.get('key')}"
        value = param.get("value")
        if isinstance(value, str):
            edges.extend(_variable_edges(value, DependencyKind.DIRECT_REFERENCE, path))
        if param.get("list"):
            edges.extend(_parameter_edges(param["list"], f"{path}.list"))
        if param.get("map"):
            edges.extend(_parameter_edges(param["map"], f"{path}.map"))
    return edges


def _filter_edges(filters: list[dict[str, Any]], base_path: str) -> list[DependencyEdge]:
    edges: list[DependencyEdge] = []
    for index, condition in enumerate(filters):
        path = f"{base_path}[{index}]"
        for param in condition.get("parameter") or []:
            value = param.get("value")
            if isinstance(value, str):
                edges.extend(
                    _variable_edges(
                        value, DependencyKind.TRIGGER_CONDITION, f"{path}.{param.get('key')}"
                    )
                )
    return edges


def _sequence_edges(entries: list[dict[str, Any]], edge_kind: DependencyKind, location: str):
    edges = []
    for entry in entries:
        tag_id = entry.get("tagId")
        tag_name = entry.get("tagName")
        if tag_id:
            target = Concrete(str(tag_id))
        elif tag_name:
            target = ByName(tag_name)
        else:
            continue
        edges.append(
            DependencyEdge(
                target=target,
                target_kind=EntityKind.TAG,
                edge_kind=edge_kind,
                location=location,
                resolved_name=tag_name,
            )
        )
    return edges


def parse_tag(tag: Tag) -> list[DependencyEdge]:
    edges = [
        DependencyEdge(
            target=Concrete(trigger_id),
            target_kind=EntityKind.TRIGGER,
            edge_kind=DependencyKind.FIRING_TRIGGER,
            location="firingTriggerId",
        )
        for trigger_id in tag.firing_trigger_ids
    ]
    edges.extend(
        DependencyEdge(
            target=Concrete(trigger_id),
            target_kind=EntityKind.TRIGGER,
            edge_kind=DependencyKind.BLOCKING_TRIGGER,
            location="blockingTriggerId",
        )
        for trigger_id in tag.blocking_trigger_ids
    )
    edges.extend(_sequence_edges(tag.setup_tags, DependencyKind.SETUP_TAG, "setupTag"))
    edges.extend(_sequence_edges(tag.teardown_tags, DependencyKind.TEARDOWN_TAG, "teardownTag"))

    if tag.parameters:
        edges.extend(_parameter_edges(tag.parameters, "parameter"))
        config_tag_id = tag.parameter_value("configTagId")
        if config_tag_id:
            edges.append(
                DependencyEdge(
                    target=Concrete(config_tag_id),
                    target_kind=EntityKind.TAG,
                    edge_kind=DependencyKind.CONFIG_TAG_REF,
                    location="parameter.configTagId",
                )
            )

    if tag.uses_custom_template:
        edges.append(
            DependencyEdge(
                target=ByGalleryType(tag.entity_type),
                target_kind=EntityKind.TEMPLATE,
                edge_kind=DependencyKind.TEMPLATE_PARAM,
                location="type",
                note=f"Custom template type: {tag.entity_type}",
            )
        )
    return edges


def parse_trigger(trigger: Trigger) -> list[DependencyEdge]:
    edges = _parameter_edges(trigger.parameters, "parameter")
    for field_name in Trigger.FILTER_FIELDS:
        edges.extend(_filter_edges(trigger.filters(field_name), field_name))
    return edges


def parse_variable(variable: Variable) -> list[DependencyEdge]:
    if variable.is_hub:
        return []

    edges = _parameter_edges(variable.parameters, "parameter")

    if variable.entity_type == "jsm":
        edges.extend(
            _variable_edges(
                variable.parameter_value("javascript"),
                DependencyKind.JS_INTERNAL_REF,
                "javascript",
                note="Reference inside custom JavaScript",
            )
        )
    elif variable.entity_type in ("smm", "remm"):
        edges.extend(
            _variable_edges(
                variable.parameter_value("input"),
                DependencyKind.LOOKUP_INPUT,
                "parameter.input",
            )
        )
        if variable.entity_type == "smm":
            edges.extend(_lookup_output_edges(variable))
    return edges


def _lookup_output_edges(variable: Variable) -> list[DependencyEdge]:
    table = variable.parameter("map") or {}
    edges = []
    for row in table.get("list") or []:
        for cell in row.get("map") or []:
            if cell.get("key") == "value":
                edges.extend(
                    _variable_edges(
                        cell.get("value"), DependencyKind.LOOKUP_OUTPUT, "parameter.map.value"
                    )
                )
    return edges


def parse_template(template: Entity) -> list[DependencyEdge]:
    return []


PARSERS: dict[EntityKind, Parser] = {
    EntityKind.TAG: parse_tag,
    EntityKind.TRIGGER: parse_trigger,
    EntityKind.VARIABLE: parse_variable,
    EntityKind.TEMPLATE: parse_template,
}


def extract_dependencies(entity: Entity) -> list[DependencyEdge]:
    """Return the typed dependency edges of any entity."""
    return PARSERS[entity.kind](entity)
