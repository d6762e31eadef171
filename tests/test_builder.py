"""
Tests for ReplicationBuilder and rollback.

Covers end-to-end creation through the IdMapper, template skip mapping,
the failure policy (continue, rollback, abort), dry runs and updates.
"""

import pytest

from conftest import SOURCE_CONTEXT, param, tag_payload, template_payload, variable_payload
from pytagsync.errors import ErrorCode
from pytagsync.executor import CreationPlanner, ReplicationBuilder, TargetInventory, rollback
from pytagsync.mapping import IdMapper
from pytagsync.models import (
    ByName,
    CreatedEntity,
    CreationPlan,
    EntityKind,
    PlanStep,
    RateLimitPolicy,
    StepAction,
)
from pytagsync.resolver import DependencyGraphBuilder, ServiceLookup
from pytagsync.service import InMemoryEntityService, ServiceError


def variable_step(number, name, action=StepAction.CREATE, target_id=None, **config):
    payload = variable_payload(number, name, **config)
    return PlanStep(
        step=number,
        action=action,
        kind=EntityKind.VARIABLE,
        original_id=str(number),
        original_name=name,
        new_name=name,
        config=payload,
        target_id=target_id,
    )


def plan_of(*steps):
    return CreationPlan(steps=tuple(steps))


def make_builder(target, sleeper, mapper=None, rate_limit=RateLimitPolicy.UNTHROTTLED):
    return ReplicationBuilder(
        target,
        mapper if mapper is not None else IdMapper(),
        source_context=SOURCE_CONTEXT,
        rate_limit=rate_limit,
        sleep=sleeper,
    )


async def plan_from_source(source, target, tag_ids):
    graph = await DependencyGraphBuilder(ServiceLookup(source)).build_from_tags(tag_ids)
    inventory = await TargetInventory.load(target)
    return CreationPlanner().plan(graph, inventory)


# ==============================================================================
# End-to-end creation
# ==============================================================================


@pytest.mark.asyncio
async def test_tag_is_created_with_target_trigger_ids(purchase_workspace, target, sleeper):
    mapper = IdMapper()
    plan = await plan_from_source(purchase_workspace, target, ["10"])

    result = await make_builder(target, sleeper, mapper).build(plan)

    assert result.success
    assert len(result.created) == 4
    assert result.created[-1].kind is EntityKind.TAG

    tag = await target.find_by_name(EntityKind.TAG, "GA4 - purchase")
    assert tag.firing_trigger_ids == [
        mapper.get_new_id("20", EntityKind.TRIGGER),
        mapper.get_new_id("21", EntityKind.TRIGGER),
    ]
    assert all(int(t) >= 500 for t in tag.firing_trigger_ids)
    assert tag.parameter_value("userId") == "{{DLV - user_id}}"
    assert mapper.get_new_id(ByName("DLV - user_id")) == mapper.get_new_id("30", EntityKind.VARIABLE)


@pytest.mark.asyncio
async def test_skipped_template_maps_container_and_gallery_types(source, target, sleeper):
    source.seed(EntityKind.TEMPLATE, template_payload(7, "Consent", gallery_key="cvt_GALLERY"))
    source.seed(EntityKind.TAG, tag_payload(1, "consent (container)", type="cvt_100_7"))
    source.seed(EntityKind.TAG, tag_payload(2, "consent (gallery)", type="cvt_GALLERY"))
    target.seed(EntityKind.TEMPLATE, template_payload(900, "Consent", gallery_key="cvt_GALLERY"))

    mapper = IdMapper()
    plan = await plan_from_source(source, target, ["1", "2"])
    assert plan.steps[0].action is StepAction.SKIP

    result = await make_builder(target, sleeper, mapper).build(plan)

    assert result.success
    assert result.skipped == 1
    assert mapper.get_template_type_equivalence("cvt_100_7") == "cvt_200_900"
    assert mapper.get_template_type_equivalence("cvt_GALLERY") == "cvt_200_900"
    for name in ("consent (container)", "consent (gallery)"):
        tag = await target.find_by_name(EntityKind.TAG, name)
        assert tag.entity_type == "cvt_200_900"
    assert target.calls_for("create") == [
        (EntityKind.TAG, "consent (container)"),
        (EntityKind.TAG, "consent (gallery)"),
    ]


@pytest.mark.asyncio
async def test_created_template_registers_type_keys(source, target, sleeper):
    source.seed(EntityKind.TEMPLATE, template_payload(7, "Consent", gallery_key="cvt_GALLERY"))
    source.seed(EntityKind.TAG, tag_payload(1, "consent", type="cvt_100_7"))

    mapper = IdMapper()
    plan = await plan_from_source(source, target, ["1"])
    await make_builder(target, sleeper, mapper).build(plan)

    new_template = mapper.get_new_id("7", EntityKind.TEMPLATE)
    tag = await target.find_by_name(EntityKind.TAG, "consent")
    assert tag.entity_type == f"cvt_200_{new_template}"


# ==============================================================================
# Failure policy
# ==============================================================================


@pytest.mark.asyncio
async def test_failure_after_creation_rolls_back_and_stops(target, sleeper):
    target.fail("create", ServiceError("invalid parameter"), name="b")
    plan = plan_of(*(variable_step(i, name) for i, name in enumerate("abcde", start=1)))

    result = await make_builder(target, sleeper).build(plan)

    assert not result.success
    assert result.partial_success
    assert result.aborted
    assert result.rollback.attempted == 1
    assert result.rollback.succeeded == 1
    assert result.created == ()
    assert [name for _, name in target.calls_for("create")] == ["a", "b"]
    assert target.count(EntityKind.VARIABLE) == 0
    assert result.failures[0].entity_name == "b"
    assert result.failures[0].error.code is ErrorCode.CREATION_FAILED


@pytest.mark.asyncio
async def test_rollback_deletes_newest_first(target, sleeper):
    target.fail("create", ServiceError("invalid parameter"), name="d")
    plan = plan_of(*(variable_step(i, name) for i, name in enumerate("abcd", start=1)))

    result = await make_builder(target, sleeper).build(plan)

    assert target.calls_for("delete") == [
        (EntityKind.VARIABLE, "502"),
        (EntityKind.VARIABLE, "501"),
        (EntityKind.VARIABLE, "500"),
    ]
    assert result.rollback.attempted == 3


@pytest.mark.asyncio
async def test_partial_rollback_reports_what_remains(target, sleeper):
    target.fail("create", ServiceError("invalid parameter"), name="c")
    target.fail("delete", ServiceError("backend error"), kind=EntityKind.VARIABLE)
    plan = plan_of(*(variable_step(i, name) for i, name in enumerate("abc", start=1)))

    result = await make_builder(target, sleeper).build(plan)

    assert result.rollback.is_partial
    assert result.rollback.remaining == ["variable:501"]
    assert [c.name for c in result.created] == ["b"]
    assert target.count(EntityKind.VARIABLE) == 1


@pytest.mark.asyncio
async def test_exhausted_rate_limit_aborts_without_rollback(target, sleeper):
    target.fail("create", ServiceError("429 Too Many Requests"), name="a", times=None)
    plan = plan_of(variable_step(1, "a"), variable_step(2, "b"))

    result = await make_builder(target, sleeper, rate_limit=RateLimitPolicy.DEFAULT).build(plan)

    assert result.aborted
    assert result.rollback is None
    assert not result.partial_success
    assert result.failures[0].rate_limited
    assert target.calls_for("create") == [(EntityKind.VARIABLE, "a")] * 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_rate_limit_after_creation_rolls_back(target, sleeper):
    target.fail("create", ServiceError("429"), name="b", times=None)
    builder = ReplicationBuilder(
        target, IdMapper(), rate_limit=RateLimitPolicy.DEFAULT, sleep=sleeper, clock=lambda: 0.0
    )

    result = await builder.build(plan_of(variable_step(1, "a"), variable_step(2, "b")))

    assert result.aborted
    assert result.partial_success
    assert result.failures[0].rate_limited
    assert result.rollback.attempted == 1
    assert result.created == ()
    # Retries resubmit the create only; the duplicate check runs once per step
    assert target.calls_for("create") == [(EntityKind.VARIABLE, "a")] + [
        (EntityKind.VARIABLE, "b")
    ] * 3
    assert target.calls_for("find_by_name") == [
        (EntityKind.VARIABLE, "a"),
        (EntityKind.VARIABLE, "b"),
    ]
    assert target.calls_for("delete") == [(EntityKind.VARIABLE, "500")]
    assert sleeper.delays == [4.0, 1.0, 2.0]
    assert target.count() == 0


@pytest.mark.asyncio
async def test_failure_before_any_creation_continues(target, sleeper):
    target.fail("create", ServiceError("invalid parameter"), name="a")
    plan = plan_of(variable_step(1, "a"), variable_step(2, "b"))

    result = await make_builder(target, sleeper).build(plan)

    assert not result.aborted
    assert result.partial_success
    assert [c.name for c in result.created] == ["b"]
    assert len(result.failures) == 1


@pytest.mark.asyncio
async def test_duplicate_name_is_reported_without_create_call(target, sleeper):
    target.seed(EntityKind.VARIABLE, variable_payload(900, "a"))
    plan = plan_of(variable_step(1, "a"))

    result = await make_builder(target, sleeper).build(plan)

    assert result.failures[0].error.code is ErrorCode.DUPLICATE_NAME
    assert target.calls_for("create") == []


@pytest.mark.asyncio
async def test_entity_delay_spaces_creations(target, sleeper):
    policy = RateLimitPolicy.UNTHROTTLED.with_entity_delay(4000)
    builder = ReplicationBuilder(
        target, IdMapper(), rate_limit=policy, sleep=sleeper, clock=lambda: 0.0
    )

    await builder.build(plan_of(variable_step(1, "a"), variable_step(2, "b"), variable_step(3, "c")))

    assert sleeper.delays == [4.0, 4.0]


# ==============================================================================
# Dry run, skip and update
# ==============================================================================


@pytest.mark.asyncio
async def test_dry_run_creates_nothing(target, sleeper):
    plan = plan_of(variable_step(1, "a"), variable_step(2, "b"))

    result = await make_builder(target, sleeper).build(plan, dry_run=True)

    assert result.success
    assert result.created == ()
    assert target.calls == []


@pytest.mark.asyncio
async def test_skip_without_target_id_is_not_mapped(target, sleeper):
    mapper = IdMapper()
    plan = plan_of(variable_step(1, "a", action=StepAction.SKIP))

    result = await make_builder(target, sleeper, mapper).build(plan)

    assert result.skipped == 1
    assert len(mapper) == 0


@pytest.mark.asyncio
async def test_update_overwrites_existing_entity(target, sleeper):
    target.seed(EntityKind.VARIABLE, variable_payload(900, "a", parameters=[param("name", "old")]))
    mapper = IdMapper()
    plan = plan_of(
        variable_step(
            1, "a", action=StepAction.UPDATE, target_id="900", parameters=[param("name", "new")]
        )
    )

    result = await make_builder(target, sleeper, mapper).build(plan)

    assert result.success
    assert [u.new_id for u in result.updated] == ["900"]
    variable = await target.get(EntityKind.VARIABLE, "900")
    assert variable.parameter_value("name") == "new"
    assert mapper.get_new_id("1", EntityKind.VARIABLE) == "900"


@pytest.mark.asyncio
async def test_callbacks_receive_created_entities(target, sleeper):
    seen = []

    def on_created(step, record):
        seen.append((step.new_name, record.new_id))
        raise RuntimeError("listener bug")

    plan = plan_of(variable_step(1, "a"), variable_step(2, "b"))
    result = await make_builder(target, sleeper).build(plan, on_created=on_created)

    assert result.success
    assert seen == [("a", "500"), ("b", "501")]


# ==============================================================================
# Rollback
# ==============================================================================


@pytest.mark.asyncio
async def test_rollback_records_unsupported_kinds(sleeper):
    service = InMemoryEntityService(supported_kinds={EntityKind.VARIABLE})
    await service.create(EntityKind.VARIABLE, {"name": "v", "type": "v"})
    created = [
        CreatedEntity(EntityKind.VARIABLE, "1", "1", "v"),
        CreatedEntity(EntityKind.TEMPLATE, "2", "2", "t"),
    ]

    result = await rollback(service, created)

    assert result.attempted == 2
    assert result.succeeded == 1
    assert result.remaining == ["template:2"]


@pytest.mark.asyncio
async def test_rollback_of_nothing():
    result = await rollback(InMemoryEntityService(), [])
    assert result.attempted == 0
    assert not result.is_partial
