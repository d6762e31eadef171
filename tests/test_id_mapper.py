"""
Tests for IdMapper.

Covers forward/reverse lookups, by-name resolution, template type
equivalence, text and field transformation, persistence, and concurrent
registration through add_safe().
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pytagsync.mapping import IdMapper
from pytagsync.models import ByGalleryType, ByName, Concrete, EntityKind, EntityRef

# ==============================================================================
# Lookups
# ==============================================================================


def test_forward_and_reverse_lookup():
    mapper = IdMapper()
    mapper.add("12", "301", EntityKind.VARIABLE, "DLV - user_id")

    assert mapper.get_new_id("12") == "301"
    assert mapper.get_new_id("12", EntityKind.VARIABLE) == "301"
    assert mapper.get_new_id(Concrete("12")) == "301"
    assert mapper.get_new_id(EntityRef(EntityKind.VARIABLE, "12")) == "301"
    assert mapper.get_original_id("301") == "12"
    assert mapper.get_new_id("12", EntityKind.TAG) is None


def test_by_name_lookup_respects_kind():
    mapper = IdMapper()
    mapper.add("12", "301", EntityKind.VARIABLE, "DLV - user_id")

    assert mapper.get_new_id(ByName("DLV - user_id")) == "301"
    assert mapper.get_new_id("by-name:DLV - user_id") == "301"
    assert mapper.get_new_id(ByName("DLV - user_id"), EntityKind.TRIGGER) is None
    assert mapper.get_new_id_by_name("DLV - user_id") == "301"
    assert mapper.get_mapping(ByName("DLV - user_id")).source_id == "12"


def test_same_id_in_different_kinds_stays_separate():
    mapper = IdMapper()
    mapper.add("5", "600", EntityKind.TAG, "tag five")
    mapper.add("5", "700", EntityKind.TRIGGER, "trigger five")

    assert mapper.get_new_id("5", EntityKind.TAG) == "600"
    assert mapper.get_new_id("5", EntityKind.TRIGGER) == "700"
    assert mapper.get_original_id("700", EntityKind.TRIGGER) == "5"
    assert len(mapper) == 2


def test_template_type_equivalence():
    mapper = IdMapper()
    mapper.add_template_type_equivalence("cvt_100_7", "cvt_200_501")
    mapper.add_template_type_equivalence("cvt_SAME", "cvt_SAME")

    assert mapper.get_template_type_equivalence("cvt_100_7") == "cvt_200_501"
    assert mapper.get_new_id(ByGalleryType("cvt_100_7")) == "cvt_200_501"
    assert mapper.get_new_id("by-gallery-type:cvt_100_7") == "cvt_200_501"
    assert mapper.template_types == {"cvt_100_7": "cvt_200_501"}


def test_membership():
    mapper = IdMapper()
    mapper.add("1", "2", EntityKind.TAG, "t")

    assert "1" in mapper
    assert ByName("t") in mapper
    assert "9" not in mapper
    assert 1 not in mapper


@pytest.mark.property
@given(
    ids=st.lists(
        st.text(alphabet="0123456789", min_size=1, max_size=6),
        unique=True,
        min_size=1,
        max_size=30,
    )
)
@settings(max_examples=100)
def test_original_id_inverts_new_id(ids):
    mapper = IdMapper()
    for index, source_id in enumerate(ids):
        mapper.add(source_id, f"t{index}", EntityKind.VARIABLE, f"var {index}")

    for source_id in ids:
        new_id = mapper.get_new_id(source_id, EntityKind.VARIABLE)
        assert mapper.get_original_id(new_id, EntityKind.VARIABLE) == source_id


# ==============================================================================
# Transformation
# ==============================================================================


def test_transform_id_references_is_single_pass():
    mapper = IdMapper()
    mapper.add("1", "2", EntityKind.TRIGGER, "a")
    mapper.add("2", "3", EntityKind.TRIGGER, "b")

    assert mapper.transform_id_references("ids 1, 2 and 12") == "ids 2, 3 and 12"


def test_transform_id_references_leaves_deferred_markers():
    mapper = IdMapper()
    mapper.add("7", "70", EntityKind.TEMPLATE, "t")

    text = "by-name:7 by-gallery-type:7 7"
    assert mapper.transform_id_references(text) == "by-name:7 by-gallery-type:7 70"


def test_transform_fields_maps_only_named_fields():
    mapper = IdMapper()
    mapper.add("20", "520", EntityKind.TRIGGER, "CE")
    mapper.add("20", "900", EntityKind.TAG, "other")
    record = {"firingTriggerId": ["20", "99"], "tagId": "20", "name": "20"}

    result = mapper.transform_fields(record, {"firingTriggerId": EntityKind.TRIGGER})

    assert result["firingTriggerId"] == ["520", "99"]
    assert result["tagId"] == "20"
    assert result["name"] == "20"
    assert record["firingTriggerId"] == ["20", "99"]


# ==============================================================================
# Persistence
# ==============================================================================


def test_serialize_round_trip_with_colliding_ids():
    mapper = IdMapper()
    mapper.add("5", "600", EntityKind.TAG, "tag five")
    mapper.add("5", "700", EntityKind.TRIGGER, "trigger five")
    mapper.add("8", "800", EntityKind.VARIABLE, "var eight")

    data = mapper.to_dict()
    assert set(data) == {"tag:5", "trigger:5", "8"}
    assert data["8"] == {"newId": "800", "type": "variable", "name": "var eight"}

    restored = IdMapper.deserialize(mapper.serialize())
    assert restored.snapshot() == mapper.snapshot()


def test_log_string_and_clear():
    mapper = IdMapper()
    mapper.add("1", "2", EntityKind.TAG, "GA4 - purchase")
    mapper.add_template_type_equivalence("cvt_A", "cvt_B")

    text = mapper.to_log_string()
    assert "[TAG]" in text
    assert '"GA4 - purchase": 1 -> 2' in text
    assert "cvt_A -> cvt_B" in text

    mapper.clear()
    assert len(mapper) == 0
    assert mapper.get_template_type_equivalence("cvt_A") is None


# ==============================================================================
# Concurrency
# ==============================================================================


@pytest.mark.asyncio
@pytest.mark.concurrency
async def test_concurrent_add_safe_registers_every_entry():
    mapper = IdMapper()

    async def register(i):
        await asyncio.sleep(0)
        return await mapper.add_safe(str(i), str(1000 + i), EntityKind.VARIABLE, f"v{i}")

    entries = await asyncio.gather(*(register(i) for i in range(200)))

    assert len(entries) == 200
    assert len(mapper) == 200
    for i in range(200):
        assert mapper.get_new_id(str(i), EntityKind.VARIABLE) == str(1000 + i)
        assert mapper.get_new_id(ByName(f"v{i}")) == str(1000 + i)
