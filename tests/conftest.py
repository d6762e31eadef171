"""
Pytest configuration and fixtures for pytagsync tests.

Provides in-memory workspaces, payload builders, a recording sleep for
rate-limit tests, and hypothesis strategies for graph properties.
"""

from dataclasses import dataclass, field

import pytest
from hypothesis import strategies as st

from pytagsync.models import (
    Concrete,
    DependencyEdge,
    DependencyKind,
    DependencyNode,
    EntityKind,
    EntityRef,
    Tag,
    Template,
    Trigger,
    Variable,
    WorkspaceContext,
)
from pytagsync.service import InMemoryEntityService

SOURCE_CONTEXT = WorkspaceContext("1", "100", "7")
TARGET_CONTEXT = WorkspaceContext("1", "200", "3")


# Payload builders


def tag_payload(tag_id, name, *, type="gaawe", firing=(), blocking=(), parameters=(), **extra):
    payload = {
        "tagId": str(tag_id),
        "name": name,
        "type": type,
        "firingTriggerId": [str(t) for t in firing],
        "blockingTriggerId": [str(t) for t in blocking],
        "parameter": list(parameters),
    }
    payload.update(extra)
    return payload


def trigger_payload(trigger_id, name, *, type="pageview", **extra):
    payload = {"triggerId": str(trigger_id), "name": name, "type": type}
    payload.update(extra)
    return payload


def custom_event_trigger(trigger_id, name, event):
    return trigger_payload(
        trigger_id,
        name,
        type="customEvent",
        customEventFilter=[
            {
                "type": "equals",
                "parameter": [
                    {"type": "template", "key": "arg0", "value": "{{_event}}"},
                    {"type": "template", "key": "arg1", "value": event},
                ],
            }
        ],
    )


def variable_payload(variable_id, name, *, type="v", parameters=(), **extra):
    payload = {
        "variableId": str(variable_id),
        "name": name,
        "type": type,
        "parameter": list(parameters),
    }
    payload.update(extra)
    return payload


def template_payload(template_id, name, *, gallery_key=None, container_id=None):
    data = '{"displayName": "%s"}' % name
    if gallery_key:
        data = '{"id": "%s", "displayName": "%s"}' % (gallery_key, name)
    payload = {"templateId": str(template_id), "name": name, "templateData": data}
    if container_id:
        payload["containerId"] = container_id
    return payload


def param(key, value, type="template"):
    return {"type": type, "key": key, "value": value}


# Recording sleep


@dataclass
class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


# Workspaces


@pytest.fixture
def source() -> InMemoryEntityService:
    """Empty source workspace."""
    return InMemoryEntityService(SOURCE_CONTEXT)


@pytest.fixture
def target() -> InMemoryEntityService:
    """Empty target workspace; ids start at 500 to stay distinct from source ids."""
    return InMemoryEntityService(TARGET_CONTEXT, first_id=500)


@pytest.fixture
def purchase_workspace(source) -> InMemoryEntityService:
    """
    One tag with two firing triggers and one variable referenced by name:

        Tag 10 "GA4 - purchase"
          firing: Trigger 20 "CE - purchase", Trigger 21 "All Pages"
          parameter: {{DLV - user_id}}  -> Variable 30
    """
    source.seed(
        EntityKind.TAG,
        tag_payload(
            10,
            "GA4 - purchase",
            firing=[20, 21],
            parameters=[param("eventName", "purchase"), param("userId", "{{DLV - user_id}}")],
        ),
    )
    source.seed(EntityKind.TRIGGER, custom_event_trigger(20, "CE - purchase", "purchase"))
    source.seed(EntityKind.TRIGGER, trigger_payload(21, "All Pages"))
    source.seed(
        EntityKind.VARIABLE,
        variable_payload(30, "DLV - user_id", parameters=[param("name", "user_id")]),
    )
    return source


# Hypothesis strategies


def make_node(kind: EntityKind, entity_id: str, deps=()) -> DependencyNode:
    """Bare graph node whose edges point at ``deps`` (EntityRefs)."""
    classes = {
        EntityKind.TAG: Tag,
        EntityKind.TRIGGER: Trigger,
        EntityKind.VARIABLE: Variable,
        EntityKind.TEMPLATE: Template,
    }
    entity = classes[kind](entity_id=entity_id, name=f"{kind.value} {entity_id}")
    edges = tuple(
        DependencyEdge(
            target=Concrete(d.entity_id),
            target_kind=d.kind,
            edge_kind=DependencyKind.DIRECT_REFERENCE,
            location="test",
        )
        for d in deps
    )
    return DependencyNode(entity=entity, dependencies=edges)


@st.composite
def acyclic_graphs(draw, max_nodes: int = 12):
    """Node maps whose edges only point at earlier-generated nodes.

    Edges never point at a kind created later (a variable never depends on
    a tag), which holds for every payload the parsers read.
    """
    count = draw(st.integers(min_value=1, max_value=max_nodes))
    refs = [
        EntityRef(draw(st.sampled_from(list(EntityKind))), str(i)) for i in range(count)
    ]
    nodes = {}
    for index, ref in enumerate(refs):
        allowed = [r for r in refs[:index] if r.kind.priority <= ref.kind.priority]
        deps = draw(st.lists(st.sampled_from(allowed), max_size=3)) if allowed else []
        nodes[ref] = make_node(ref.kind, ref.entity_id, deps)
    # Insertion order independent of dependency order
    keys = draw(st.permutations(list(nodes)))
    return {k: nodes[k] for k in keys}


@st.composite
def arbitrary_graphs(draw, max_nodes: int = 12):
    """Node maps with arbitrary edges, including cycles and dangling targets."""
    count = draw(st.integers(min_value=1, max_value=max_nodes))
    refs = [
        EntityRef(draw(st.sampled_from(list(EntityKind))), str(i)) for i in range(count)
    ]
    dangling = EntityRef(EntityKind.VARIABLE, "missing")
    nodes = {}
    for ref in refs:
        deps = draw(st.lists(st.sampled_from(refs + [dangling]), max_size=3))
        nodes[ref] = make_node(ref.kind, ref.entity_id, deps)
    return nodes
