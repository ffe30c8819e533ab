"""Tests for source value objects, attributes and key generators."""

from __future__ import annotations

import threading

import pytest
from pydantic import ValidationError as PydanticValidationError

from domain.sources import catalog
from domain.sources.attributes import ATTR_IS_PROPOSAL, Attributes
from domain.sources.keys import StudyKeyGenerator, make_key_list
from domain.sources.value_objects import (
    GeoPoint,
    ServiceAreaMode,
    SourceIdentity,
    SourceRole,
)


# ===========================================================================
# Identity
# ===========================================================================
def test_identity_drops_ext_db_key_without_record_id():
    """ext_db_key is meaningless without an external record id."""
    identity = SourceIdentity(
        key=10,
        service=catalog.get_service("DT"),
        country=catalog.get_country("US"),
        ext_db_key=3,
    )
    assert identity.ext_db_key is None
    assert not identity.has_primary_ids


def test_identity_parent_requires_dts_service():
    with pytest.raises(ValueError, match="not a DTS service"):
        SourceIdentity(
            key=10,
            service=catalog.get_service("DT"),
            country=catalog.get_country("US"),
            is_parent=True,
        )


def test_identity_parent_cannot_have_parent():
    with pytest.raises(ValueError, match="cannot itself have a parent"):
        SourceIdentity(
            key=10,
            service=catalog.get_service("DD"),
            country=catalog.get_country("US"),
            is_parent=True,
            parent_source_key=5,
        )


def test_identity_is_immutable():
    identity = SourceIdentity(
        key=10, service=catalog.get_service("DT"), country=catalog.get_country("US")
    )
    with pytest.raises(PydanticValidationError):
        identity.key = 11


@pytest.mark.parametrize(
    "is_parent, parent_key, site_number, expected",
    [
        (True, None, 0, SourceRole.GROUP_PARENT),
        (False, None, 0, SourceRole.STANDALONE),
        (False, 4, 0, SourceRole.GROUP_REFERENCE_FACILITY),
        (False, 4, 2, SourceRole.GROUP_SITE),
    ],
)
def test_source_role_from_hierarchy_fields(
    is_parent, parent_key, site_number, expected
):
    assert SourceRole.of(is_parent, parent_key, site_number) is expected


def test_service_area_mode_argument_usage():
    assert ServiceAreaMode.RADIUS.uses_argument
    assert not ServiceAreaMode.CONTOUR_FCC.uses_argument
    assert ServiceAreaMode.GEOGRAPHY_FIXED.uses_geography
    assert not ServiceAreaMode.NO_BOUNDS.uses_contour_level


def test_geopoint_rejects_out_of_range_latitude():
    with pytest.raises(ValueError):
        GeoPoint(latitude=91.0, longitude=0.0)


# ===========================================================================
# Catalog
# ===========================================================================
class TestCatalog:
    def test_digital_equivalent_of_analog(self):
        assert catalog.digital_equivalent(catalog.get_service("TV")).code == "DT"
        assert catalog.digital_equivalent(catalog.get_service("TX")).code == "LD"

    def test_digital_equivalent_of_digital_is_itself(self):
        dd = catalog.get_service("DD")
        assert catalog.digital_equivalent(dd) is dd

    def test_reference_facility_service_is_never_dts(self):
        assert catalog.default_dts_member_service(None).code == "DT"
        dd, ld = catalog.get_service("DD"), catalog.get_service("LD")
        assert catalog.default_dts_member_service(dd).code == "DT"
        assert catalog.default_dts_member_service(ld).code == "LD"

    def test_selection_lookup_null_and_invalid(self):
        assert catalog.get_zone(0).key == 0
        assert catalog.get_zone(2).name == "II"
        assert catalog.get_emission_mask(99).key == -1

    def test_unknown_codes(self):
        assert catalog.get_service("XX") is None
        assert catalog.get_country_by_key(99) is None


# ===========================================================================
# Attributes
# ===========================================================================
class TestAttributes:
    def test_set_get_and_flags(self):
        attrs = Attributes()
        attrs.set("licensee", "Example Broadcasting")
        attrs.set("isBaseline")
        assert attrs.get("licensee") == "Example Broadcasting"
        assert attrs.get("isBaseline") == ""
        assert "isBaseline" in attrs
        assert attrs.get("missing") is None

    def test_serialize_and_parse(self):
        attrs = Attributes({"licensee": "Example", "isBaseline": ""})
        text = attrs.serialize()
        assert text == "licensee=Example\nisBaseline"
        assert Attributes.parse(text) == attrs

    @pytest.mark.parametrize(
        "value", ["A\rB", "A\x0bB", "A\x0cB", "A\x1cB", "A\x85B", "A\u2028B"]
    )
    def test_other_line_separators_survive_parse(self, value):
        attrs = Attributes({"licensee": value, "isBaseline": ""})
        parsed = Attributes.parse(attrs.serialize())
        assert parsed == attrs
        assert parsed.names() == ["licensee", "isBaseline"]

    def test_transient_attributes_can_be_stripped(self):
        attrs = Attributes({"licensee": "Example", ATTR_IS_PROPOSAL: ""})
        assert attrs.serialize(transient=False) == "licensee=Example"
        parsed = Attributes.parse(attrs.serialize(), transient=False)
        assert ATTR_IS_PROPOSAL not in parsed
        assert len(parsed) == 1

    def test_copy_is_independent(self):
        attrs = Attributes({"licensee": "Example"})
        clone = attrs.copy()
        clone.set("licensee", "Other")
        assert attrs.get("licensee") == "Example"

    def test_rejects_bad_names_and_multiline_values(self):
        attrs = Attributes()
        with pytest.raises(ValueError):
            attrs.set("a=b", "x")
        with pytest.raises(ValueError):
            attrs.set("note", "line one\nline two")


# ===========================================================================
# Key generation
# ===========================================================================
class TestStudyKeyGenerator:
    def test_skips_used_keys(self):
        keys = StudyKeyGenerator(used_keys=[1, 2, 4])
        assert keys.next_key() == 3
        assert keys.next_key() == 5

    def test_wraps_around_to_released_keys(self):
        keys = StudyKeyGenerator(max_key=3)
        assert [keys.next_key() for _ in range(3)] == [1, 2, 3]
        keys.release(2)
        assert keys.next_key() == 2

    def test_exhaustion_returns_none(self):
        keys = StudyKeyGenerator(used_keys=[1, 2], max_key=2)
        assert keys.next_key() is None

    def test_concurrent_allocation_is_unique(self):
        keys = StudyKeyGenerator(max_key=2000)
        results: list[int] = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                key = keys.next_key()
                with lock:
                    results.append(key)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1600
        assert len(set(results)) == 1600


def test_make_key_list():
    assert make_key_list([3, 1, 7]) == "(3,1,7)"
