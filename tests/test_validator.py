"""Tests for post-build validation."""

import pytest

from conftest import custom_event_trigger, param, tag_payload, trigger_payload, variable_payload
from pytagsync.errors import ValidationError
from pytagsync.executor import ValidationChecker
from pytagsync.mapping import IdMapper
from pytagsync.models import EntityKind, Tag, Trigger, Variable
from pytagsync.service import ServiceError


@pytest.fixture
def replicated(target):
    """Target holding a replicated tag, its trigger and its variable."""
    target.seed(EntityKind.VARIABLE, variable_payload(530, "DLV - user_id"))
    target.seed(EntityKind.TRIGGER, trigger_payload(520, "All Pages"))
    target.seed(
        EntityKind.TAG,
        tag_payload(510, "GA4", firing=[520], parameters=[param("userId", "{{DLV - user_id}}")]),
    )
    mapper = IdMapper()
    mapper.add("30", "530", EntityKind.VARIABLE, "DLV - user_id")
    mapper.add("21", "520", EntityKind.TRIGGER, "All Pages")
    mapper.add("10", "510", EntityKind.TAG, "GA4")
    return target, mapper


@pytest.mark.asyncio
async def test_clean_run_passes(replicated):
    target, mapper = replicated

    report = await ValidationChecker(target).validate(mapper)

    assert report.success
    assert report.summary.missing_count == 0
    assert report.summary.actual_count == 3
    assert "PASSED" in report.format()
    report.raise_if_invalid()


@pytest.mark.asyncio
async def test_deleted_entity_is_missing(replicated):
    target, mapper = replicated
    await target.delete(EntityKind.VARIABLE, "530")

    report = await ValidationChecker(target).validate(mapper)

    assert not report.success
    assert [(m.kind, m.original_id) for m in report.missing] == [(EntityKind.VARIABLE, "30")]
    # The tag now points at a variable that no longer exists
    assert [b.reference for b in report.broken_references] == ["DLV - user_id"]

    with pytest.raises(ValidationError) as exc_info:
        report.raise_if_invalid()
    assert exc_info.value.details["issues"] == [
        "[variable] DLV - user_id: Not found in target workspace",
        '[tag] GA4: Variable "DLV - user_id" not found',
    ]


@pytest.mark.asyncio
async def test_unmapped_source_entities_are_warned(replicated):
    target, mapper = replicated
    source = [
        Tag.from_api(tag_payload(10, "GA4")),
        Tag.from_api(tag_payload(11, "never copied")),
        Variable.from_api(variable_payload(30, "DLV - user_id")),
    ]

    report = await ValidationChecker(target).validate(mapper, source)

    assert report.success
    assert report.warnings == ("1 source tags were not mapped",)
    assert report.summary.expected_count == 3


@pytest.mark.asyncio
async def test_list_failure_is_a_warning_not_an_error(replicated):
    target, mapper = replicated
    target.fail("list", ServiceError("unavailable"), kind=EntityKind.TRIGGER)

    report = await ValidationChecker(target).validate(mapper)

    assert not report.success
    assert report.summary.missing_count == 1
    assert any("Firing trigger 520" in b.issue for b in report.broken_references)


def test_integrity_checks_triggers_and_sequences():
    tag = Tag.from_api(
        tag_payload(1, "t", firing=[5], blocking=[6], setupTag=[{"tagName": "Init"}])
    )
    entities = {EntityKind.TAG: [tag], EntityKind.TRIGGER: []}

    issues = [b.issue for b in ValidationChecker(None).check_integrity(entities)]

    assert issues == [
        "Firing trigger 5 not found",
        "Blocking trigger 6 not found",
        "Setup tag Init not found",
    ]


def test_integrity_ignores_builtins_and_self_references():
    trigger = Trigger.from_api(custom_event_trigger(2, "CE", "purchase"))
    variable = Variable.from_api(
        variable_payload(3, "Recursive", parameters=[param("x", "{{Recursive}}")])
    )
    entities = {EntityKind.TRIGGER: [trigger], EntityKind.VARIABLE: [variable]}

    checker = ValidationChecker(None, ignore_variables=["_event"])

    assert checker.check_integrity(entities) == []
    assert [b.reference for b in ValidationChecker(None).check_integrity(entities)] == ["_event"]


def test_integrity_scope_limits_inspected_entities():
    inside = Tag.from_api(tag_payload(1, "inside", firing=[9]))
    outside = Tag.from_api(tag_payload(2, "outside", firing=[9]))
    entities = {EntityKind.TAG: [inside, outside]}

    broken = ValidationChecker(None).check_integrity(entities, scope={inside.ref})

    assert [b.entity_name for b in broken] == ["inside"]
