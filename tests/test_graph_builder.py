"""
Tests for DependencyGraphBuilder.

Covers BFS traversal, deferred reference resolution, unreachable entities,
custom templates and reverse discovery.
"""

import pytest

from conftest import (
    custom_event_trigger,
    param,
    tag_payload,
    template_payload,
    variable_payload,
)
from pytagsync.models import (
    ByName,
    DependencyEdge,
    DependencyKind,
    EntityKind,
    EntityRef,
    Tag,
    Template,
    Variable,
)
from pytagsync.resolver import DependencyGraphBuilder, IndexedLookup, ServiceLookup
from pytagsync.service import ServiceError


def ref(kind, entity_id):
    return EntityRef(kind, str(entity_id))


# ==============================================================================
# Traversal
# ==============================================================================


@pytest.mark.asyncio
async def test_tag_with_triggers_and_named_variable(purchase_workspace):
    """One tag, two triggers, one by-name variable: four nodes, tag last."""
    builder = DependencyGraphBuilder(ServiceLookup(purchase_workspace))
    graph = await builder.build_from_tags(["10"])

    assert len(graph) == 4
    order = graph.creation_order
    tag_pos = order.index(ref(EntityKind.TAG, 10))
    for dep in (
        ref(EntityKind.TRIGGER, 20),
        ref(EntityKind.TRIGGER, 21),
        ref(EntityKind.VARIABLE, 30),
    ):
        assert order.index(dep) < tag_pos

    tag_node = graph.node(ref(EntityKind.TAG, 10))
    variable_edges = [e for e in tag_node.dependencies if e.target_kind is EntityKind.VARIABLE]
    assert variable_edges[0].is_resolved
    assert variable_edges[0].target_ref == ref(EntityKind.VARIABLE, 30)


@pytest.mark.asyncio
async def test_variable_chain_is_followed(source):
    source.seed(EntityKind.TAG, tag_payload(1, "t", parameters=[param("v", "{{A}}")]))
    source.seed(EntityKind.VARIABLE, variable_payload(2, "A", parameters=[param("x", "{{B}}")]))
    source.seed(EntityKind.VARIABLE, variable_payload(3, "B"))

    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(["1"])

    assert graph.creation_order == [
        ref(EntityKind.VARIABLE, 3),
        ref(EntityKind.VARIABLE, 2),
        ref(EntityKind.TAG, 1),
    ]
    assert graph.levels()[ref(EntityKind.TAG, 1)] == 2


@pytest.mark.asyncio
async def test_ids_are_qualified_by_kind(source):
    """A tag and a trigger sharing id 5 are distinct nodes."""
    source.seed(EntityKind.TAG, tag_payload(5, "tag five", firing=[5]))
    source.seed(EntityKind.TRIGGER, {"triggerId": "5", "name": "trigger five", "type": "click"})

    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(["5"])

    assert len(graph) == 2
    assert graph.creation_order == [ref(EntityKind.TRIGGER, 5), ref(EntityKind.TAG, 5)]


@pytest.mark.asyncio
async def test_unresolvable_name_stays_deferred(source):
    """Built-in variables are not listed; their edges never enter the graph."""
    source.seed(EntityKind.TAG, tag_payload(1, "t", parameters=[param("url", "{{Page URL}}")]))

    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(["1"])

    assert len(graph) == 1
    edge = graph.node(ref(EntityKind.TAG, 1)).dependencies[0]
    assert edge.target == ByName("Page URL")
    assert graph.edges() == set()


@pytest.mark.asyncio
async def test_unreachable_entity_is_dropped_without_error(source):
    source.seed(EntityKind.TAG, tag_payload(1, "t", firing=[2]))
    source.seed(EntityKind.TRIGGER, {"triggerId": "2", "name": "click", "type": "click"})
    source.fail("get", ServiceError("backend unavailable"), kind=EntityKind.TRIGGER, times=None)

    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(["1"])

    assert list(graph.nodes) == [ref(EntityKind.TAG, 1)]
    assert graph.creation_order == [ref(EntityKind.TAG, 1)]


@pytest.mark.asyncio
async def test_missing_root_gives_empty_graph(source):
    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(["404"])
    assert len(graph) == 0
    assert graph.creation_order == []


@pytest.mark.asyncio
async def test_custom_template_resolved_through_gallery_key():
    template = Template.from_api(template_payload(7, "Consent", gallery_key="cvt_GALLERY"))
    tag = Tag.from_api(tag_payload(1, "consent tag", type="cvt_GALLERY"))

    graph = await DependencyGraphBuilder(IndexedLookup([template, tag])).build_from_tags(["1"])

    assert graph.creation_order == [ref(EntityKind.TEMPLATE, 7), ref(EntityKind.TAG, 1)]


@pytest.mark.asyncio
async def test_custom_template_resolved_through_container_key():
    template = Template.from_api(template_payload(7, "Consent", container_id="100"))
    tag = Tag.from_api(tag_payload(1, "consent tag", type="cvt_100_7"))

    graph = await DependencyGraphBuilder(IndexedLookup([template, tag])).build_from_tags(["1"])

    assert ref(EntityKind.TEMPLATE, 7) in graph


@pytest.mark.asyncio
async def test_analysis_result_counts_kinds(purchase_workspace):
    graph = await DependencyGraphBuilder(ServiceLookup(purchase_workspace)).build_from_tags(["10"])
    analysis = graph.to_analysis_result()

    assert analysis.summary.total == 4
    assert analysis.summary.count(EntityKind.TRIGGER) == 2
    assert [item.step for item in analysis.creation_order] == [1, 2, 3, 4]
    assert analysis.creation_order[-1].kind is EntityKind.TAG
    assert "Level 0" in graph.level_view()


# ==============================================================================
# Deferred resolution
# ==============================================================================


@pytest.mark.asyncio
async def test_resolving_same_edge_twice_is_stable():
    lookup = IndexedLookup([Variable.from_api(variable_payload(8, "DLV - id"))])
    edge = DependencyEdge(
        target=ByName("DLV - id"),
        target_kind=EntityKind.VARIABLE,
        edge_kind=DependencyKind.DIRECT_REFERENCE,
        location="parameter.v",
    )

    first = await lookup.resolve(edge)
    second = await lookup.resolve(edge)

    assert first == second
    assert first.target_ref == ref(EntityKind.VARIABLE, 8)
    assert await lookup.resolve(first) == first


# ==============================================================================
# Reverse discovery
# ==============================================================================


@pytest.fixture
def event_workspace(source):
    """
    Tag 1 fires on custom event "lead" (trigger 2).
    Tag 3 is an HTML tag that pushes "lead".
    Tag 4 uses tag 1 as its setup tag (by name).
    """
    source.seed(EntityKind.TAG, tag_payload(1, "GA4 - lead", firing=[2]))
    source.seed(EntityKind.TRIGGER, custom_event_trigger(2, "CE - lead", "lead"))
    source.seed(
        EntityKind.TAG,
        tag_payload(
            3,
            "HTML - push lead",
            type="html",
            parameters=[param("html", "<script>dataLayer.push({'event': 'lead'});</script>")],
        ),
    )
    source.seed(EntityKind.TAG, tag_payload(4, "After lead", setupTag=[{"tagName": "GA4 - lead"}]))
    return source


@pytest.mark.asyncio
async def test_reverse_discovery_adds_producers_and_sequence_users(event_workspace):
    lookup = ServiceLookup(event_workspace)
    plain = await DependencyGraphBuilder(lookup).build_from_tags(["1"])
    discovered = await DependencyGraphBuilder(lookup, reverse_discovery=True).build_from_tags(["1"])

    assert ref(EntityKind.TAG, 3) not in plain
    assert ref(EntityKind.TAG, 3) in discovered
    assert ref(EntityKind.TAG, 4) in discovered


@pytest.mark.asyncio
async def test_reverse_discovery_never_adds_edges_between_shared_nodes(event_workspace):
    lookup = ServiceLookup(event_workspace)
    plain = await DependencyGraphBuilder(lookup).build_from_tags(["1"])
    discovered = await DependencyGraphBuilder(lookup).with_reverse_discovery().build_from_tags(["1"])

    assert set(plain.nodes) <= set(discovered.nodes)
    shared = set(plain.nodes)
    restricted = {(a, b) for a, b in discovered.edges() if a in shared and b in shared}
    assert restricted == plain.edges()
    # The producer tag depends on nothing and nothing depends on it
    producer = ref(EntityKind.TAG, 3)
    assert not [e for e in discovered.edges() if producer in e]
