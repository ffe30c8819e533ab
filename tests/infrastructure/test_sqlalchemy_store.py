"""Integration tests for SqlAlchemyStore against SQLite files in tmp_path.

These run the persistence coordinator end to end: save, reload, lazy
pattern loading, member removal, delete and radius search.
"""

from __future__ import annotations

import numpy as np
import pytest
from sqlalchemy.exc import SQLAlchemyError

from domain.sources import catalog
from domain.sources.derivation import create_source, derive_source
from domain.sources.errors import StoreFailureError
from domain.sources.patterns import AntennaPattern, PatternKind
from domain.sources.persistence import (
    delete_source,
    find_sources,
    load_source,
    load_sources,
    save_source,
)
from domain.sources.value_objects import GeoPoint, SourceRole
from infrastructure.sources import SqlAlchemyStore


@pytest.fixture
def sql_store(tmp_path):
    store = SqlAlchemyStore(f"sqlite:///{tmp_path / 'sources.db'}")
    yield store
    store.close()


def count_rows(store, table: str) -> int:
    return store.query(f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]


# ===========================================================================
# Round trip
# ===========================================================================
class TestRoundTrip:
    def test_standalone_record(self, make_source, sql_store, study):
        source = make_source()
        source.set_attribute("licensee", "Example Broadcasting")
        source.populate({"zone": 2})
        save_source(source, sql_store)

        loaded = load_source(sql_store, source.key, study)

        assert loaded is not None
        assert loaded.key == source.key
        assert loaded.service == source.service
        assert loaded.field_values() == source.field_values()
        assert loaded.get_attribute("licensee") == "Example Broadcasting"
        assert loaded.is_persisted
        assert not loaded.is_data_changed()

    def test_missing_key(self, sql_store):
        assert load_source(sql_store, 999) is None

    def test_mod_count_persisted(self, make_source, sql_store):
        source = make_source()
        save_source(source, sql_store)
        source.channel = 31
        save_source(source, sql_store)

        loaded = load_source(sql_store, source.key)
        assert loaded.mod_count == 1
        assert loaded.channel == 31

    def test_group_with_members(self, make_group, sql_store, study):
        group = make_group(site_count=2)
        save_source(group, sql_store)

        loaded = load_source(sql_store, group.key, study)

        assert loaded.is_parent
        assert [m.key for m in loaded.dts_sources] == [
            m.key for m in group.dts_sources
        ]
        for original, member in zip(group.dts_sources, loaded.dts_sources):
            assert member.field_values() == original.field_values()
            assert member.parent_source_key == group.key
        assert not loaded.is_data_changed()
        assert loaded.is_data_valid()

    def test_load_sources_returns_top_level_only(
        self, make_group, make_source, sql_store
    ):
        group = make_group()
        source = make_source()
        save_source(group, sql_store)
        save_source(source, sql_store)

        loaded = load_sources(sql_store)
        assert [s.key for s in loaded] == sorted([group.key, source.key])

        filtered = load_sources(sql_store, "service_key = :key", {"key": 1})
        assert [s.key for s in filtered] == [source.key]

    def test_locked_record_reloads_locked(self, study, sql_store):
        source = create_source(
            study, 5, catalog.get_service("DT"), catalog.get_country("US"), True
        )
        save_source(source, sql_store)
        loaded = load_source(sql_store, source.key, study)
        loaded.channel = 44
        assert loaded.locked
        assert loaded.channel == 0


# ===========================================================================
# Patterns
# ===========================================================================
class TestPatterns:
    def test_patterns_load_lazily(self, make_source, sql_store):
        source = make_source()
        source.horizontal_pattern = AntennaPattern(
            kind=PatternKind.HORIZONTAL,
            name="H1",
            angles=np.array([0.0, 90.0, 180.0, 270.0]),
            relative_fields=np.array([1.0, 0.7, 0.4, 0.7]),
        )
        source.matrix_pattern = AntennaPattern(
            kind=PatternKind.MATRIX,
            name="M1",
            angles=np.array([-5.0, 0.0, 5.0]),
            relative_fields=np.array([[0.5, 1.0, 0.5], [0.4, 0.9, 0.4]]),
            slice_azimuths=np.array([0.0, 180.0]),
        )
        save_source(source, sql_store)

        loaded = load_source(sql_store, source.key)
        assert loaded.has_horizontal_pattern
        assert loaded.horizontal_pattern is None
        assert loaded.get_pattern(PatternKind.HORIZONTAL) == source.horizontal_pattern
        assert loaded.get_pattern(PatternKind.MATRIX) == source.matrix_pattern
        assert loaded.get_pattern(PatternKind.VERTICAL) is None
        assert not loaded.is_data_changed()

    def test_cleared_pattern_rows_deleted(self, make_source, sql_store):
        source = make_source()
        source.horizontal_pattern = AntennaPattern(
            kind=PatternKind.HORIZONTAL,
            angles=np.array([0.0, 180.0]),
            relative_fields=np.array([1.0, 0.5]),
        )
        save_source(source, sql_store)
        assert count_rows(sql_store, "source_horizontal_pattern") == 2

        source.horizontal_pattern = None
        save_source(source, sql_store)
        assert count_rows(sql_store, "source_horizontal_pattern") == 0
        assert not load_source(sql_store, source.key).has_horizontal_pattern


# ===========================================================================
# Removal and deletion
# ===========================================================================
class TestRemoval:
    def test_removed_member_deleted_from_store(self, make_group, sql_store):
        group = make_group(site_count=2)
        save_source(group, sql_store)
        removed = group.dts_sources[1]
        group.remove_dts_source(removed)
        save_source(group, sql_store)

        assert load_source(sql_store, removed.key) is None
        reloaded = load_source(sql_store, group.key)
        assert removed.key not in [m.key for m in reloaded.dts_sources]

    def test_site_derived_out_stays_out_of_group(self, make_group, sql_store):
        group = make_group(site_count=2)
        save_source(group, sql_store)
        site = group.dts_sources[1]
        derived = derive_source(site, service=catalog.get_service("DT"))
        save_source(derived, sql_store)

        reloaded = load_source(sql_store, group.key)
        assert [m.key for m in reloaded.dts_sources] == [
            m.key for m in group.dts_sources
        ]
        standalone = load_source(sql_store, derived.key)
        assert standalone.role is SourceRole.STANDALONE

    def test_delete_source_cascades(self, make_group, sql_store):
        group = make_group(site_count=2)
        save_source(group, sql_store)
        delete_source(group, sql_store)
        assert count_rows(sql_store, "source") == 0


# ===========================================================================
# Search
# ===========================================================================
def test_find_sources_by_radius(make_source, make_group, sql_store):
    near = make_source()
    far = make_source(location=GeoPoint(latitude=45.0, longitude=-75.0))
    group = make_group(site_count=2)
    for source in (near, far, group):
        save_source(source, sql_store)

    center = GeoPoint(latitude=40.05, longitude=-75.0)
    found = find_sources(sql_store, center, 30.0)

    assert sorted(s.key for s in found) == sorted([near.key, group.key])


# ===========================================================================
# Failures
# ===========================================================================
class TestFailures:
    def test_bad_sql_translated(self, sql_store):
        with pytest.raises(StoreFailureError) as exc_info:
            sql_store.query("SELECT * FROM no_such_table")
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    def test_failed_save_rolls_back_members(self, make_group, sql_store, monkeypatch):
        group = make_group(site_count=2)
        original_update = sql_store.update

        def failing_update(sql, params=None):
            is_parent_row = sql.startswith("INSERT INTO source ")
            if is_parent_row and params["source_key"] == group.key:
                raise StoreFailureError("Update failed: disk full")
            return original_update(sql, params)

        monkeypatch.setattr(sql_store, "update", failing_update)
        with pytest.raises(StoreFailureError, match="disk full"):
            save_source(group, sql_store)

        assert count_rows(sql_store, "source") == 0
        assert not group.is_persisted

    def test_nested_begin_refused(self, sql_store):
        sql_store.begin()
        with pytest.raises(StoreFailureError):
            sql_store.begin()
        sql_store.rollback()
