"""
Dependency graph data model.

Defines typed dependency edges, graph nodes, the graph itself and the
reporting views derived from it (analysis result, level view).

Design: Immutable Edges
DependencyEdge is frozen. Resolving a deferred target produces a new edge
via resolve(), so an edge observed by one component is never rewritten
underneath another.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from pytagsync.models.entity import Entity, EntityKind, EntityRef
from pytagsync.models.reference import Concrete, Reference, is_deferred


class DependencyKind(Enum):
    """How a dependency was found in the source payload."""

    DIRECT_REFERENCE = "direct"
    TRIGGER_CONDITION = "trigger_cond"
    PARAMETER_VALUE = "param_value"
    JS_INTERNAL_REF = "js_internal"
    LOOKUP_INPUT = "lookup_input"
    LOOKUP_OUTPUT = "lookup_output"
    TEMPLATE_PARAM = "template_param"
    CONFIG_TAG_REF = "config_ref"
    SETUP_TAG = "setup_tag"
    TEARDOWN_TAG = "teardown_tag"
    FIRING_TRIGGER = "firing_trigger"
    BLOCKING_TRIGGER = "blocking_trigger"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DependencyEdge:
    """One outgoing dependency of an entity.

    Attributes:
        target: Concrete id or deferred reference
        target_kind: Kind of the entity the edge points at
        edge_kind: Where in the payload the reference was found
        location: Dotted path inside the payload
        resolved_name: Display name of the target, when known
        note: Free-form annotation
    """

    target: Reference
    target_kind: EntityKind
    edge_kind: DependencyKind
    location: str
    resolved_name: str | None = None
    note: str | None = None

    @property
    def is_resolved(self) -> bool:
        return not is_deferred(self.target)

    @property
    def target_ref(self) -> EntityRef | None:
        """Kind-qualified target, or None while the reference is deferred."""
        if isinstance(self.target, Concrete):
            return EntityRef(self.target_kind, self.target.entity_id)
        return None

    def resolve(self, entity_id: str, name: str | None = None) -> DependencyEdge:
        """Return a copy pointing at a concrete id."""
        return replace(
            self,
            target=Concrete(entity_id),
            resolved_name=name if name is not None else self.resolved_name,
        )


@dataclass(frozen=True)
class DependencyNode:
    """An entity included in the graph together with its outgoing edges."""

    entity: Entity
    dependencies: tuple[DependencyEdge, ...] = ()

    @property
    def ref(self) -> EntityRef:
        return self.entity.ref

    @property
    def kind(self) -> EntityKind:
        return self.entity.kind

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def is_hub(self) -> bool:
        return getattr(self.entity, "is_hub", False)

    def dependency_refs(self) -> list[EntityRef]:
        """Resolved dependency targets, de-duplicated, in edge order."""
        seen: dict[EntityRef, None] = {}
        for edge in self.dependencies:
            ref = edge.target_ref
            if ref is not None and ref != self.ref:
                seen.setdefault(ref, None)
        return list(seen)


@dataclass(frozen=True)
class AnalysisSummary:
    total: int
    by_kind: dict[EntityKind, int]
    js_variables_with_internal_refs: int = 0

    def count(self, kind: EntityKind) -> int:
        return self.by_kind.get(kind, 0)


@dataclass(frozen=True)
class CreationItem:
    step: int
    kind: EntityKind
    entity_id: str
    name: str

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.kind, self.entity_id)


@dataclass(frozen=True)
class NodeInfo:
    kind: EntityKind
    name: str
    entity_type: str
    dependency_ids: tuple[str, ...]


@dataclass(frozen=True)
class AnalysisResult:
    """Reporting view of a dependency graph."""

    summary: AnalysisSummary
    creation_order: tuple[CreationItem, ...]
    nodes: dict[EntityRef, NodeInfo]


@dataclass
class DependencyGraph:
    """Node map plus creation order.

    Invariant: creation_order holds every key of ``nodes`` exactly once.
    """

    nodes: dict[EntityRef, DependencyNode] = field(default_factory=dict)
    creation_order: list[EntityRef] = field(default_factory=list)
    roots: list[EntityRef] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, ref: object) -> bool:
        return ref in self.nodes

    def node(self, ref: EntityRef) -> DependencyNode:
        return self.nodes[ref]

    def edges(self) -> set[tuple[EntityRef, EntityRef]]:
        """Resolved edges whose target is part of the graph, as (from, to)."""
        result = set()
        for ref, node in self.nodes.items():
            for target in node.dependency_refs():
                if target in self.nodes:
                    result.add((ref, target))
        return result

    def ordered_nodes(self) -> list[DependencyNode]:
        return [self.nodes[ref] for ref in self.creation_order]

    def to_analysis_result(self) -> AnalysisResult:
        counts = Counter(node.kind for node in self.nodes.values())
        js_with_refs = sum(
            1
            for node in self.nodes.values()
            if node.kind is EntityKind.VARIABLE
            and node.entity.entity_type == "jsm"
            and any(e.edge_kind is DependencyKind.JS_INTERNAL_REF for e in node.dependencies)
        )
        summary = AnalysisSummary(
            total=len(self.nodes),
            by_kind={kind: counts.get(kind, 0) for kind in EntityKind},
            js_variables_with_internal_refs=js_with_refs,
        )

        order = tuple(
            CreationItem(
                step=index + 1,
                kind=ref.kind,
                entity_id=ref.entity_id,
                name=self.nodes[ref].name,
            )
            for index, ref in enumerate(self.creation_order)
        )

        nodes = {
            ref: NodeInfo(
                kind=node.kind,
                name=node.name,
                entity_type=node.entity.entity_type,
                dependency_ids=tuple(str(edge.target) for edge in node.dependencies),
            )
            for ref, node in self.nodes.items()
        }
        return AnalysisResult(summary=summary, creation_order=order, nodes=nodes)

    def levels(self) -> dict[EntityRef, int]:
        """Depth of every node: 0 for nodes without in-graph dependencies."""
        levels: dict[EntityRef, int] = {}
        visiting: set[EntityRef] = set()

        def depth(ref: EntityRef) -> int:
            if ref in levels:
                return levels[ref]
            if ref in visiting:
                # Cycle: cut it here
                return 0
            visiting.add(ref)
            deps = [d for d in self.nodes[ref].dependency_refs() if d in self.nodes]
            value = 1 + max(depth(d) for d in deps) if deps else 0
            visiting.discard(ref)
            levels[ref] = value
            return value

        for ref in self.creation_order or self.nodes:
            depth(ref)
        return levels

    def level_view(self) -> str:
        """Render the graph level by level, leaves first."""
        levels = self.levels()
        by_level: dict[int, list[EntityRef]] = {}
        for ref in self.creation_order or self.nodes:
            by_level.setdefault(levels[ref], []).append(ref)

        lines = [f"Dependency graph ({len(self.nodes)} entities)"]
        for level in sorted(by_level):
            lines.append(f"Level {level}:")
            for ref in by_level[level]:
                node = self.nodes[ref]
                deps = ", ".join(str(d) for d in node.dependency_refs() if d in self.nodes)
                suffix = f" <- {deps}" if deps else ""
                lines.append(f"  [{ref.kind.value}] {node.name} ({ref.entity_id}){suffix}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roots": [str(r) for r in self.roots],
            "creation_order": [str(r) for r in self.creation_order],
            "nodes": {
                str(ref): {
                    "name": node.name,
                    "type": node.entity.entity_type,
                    "dependencies": [str(e.target) for e in node.dependencies],
                }
                for ref, node in self.nodes.items()
            },
        }
