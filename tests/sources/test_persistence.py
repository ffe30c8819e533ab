"""Tests for the persistence coordinator's write ordering and transactions.

Uses the RecordingStore fake from conftest.py; real SQL round-trips are in
tests/infrastructure/.
"""

from __future__ import annotations

import numpy as np
import pytest

from domain.sources.errors import ErrorCollector, StoreFailureError, ValidationError
from domain.sources.patterns import AntennaPattern, PatternKind
from domain.sources.persistence import save_source, source_to_row


def statement_index(store, prefix: str, start: int = 0) -> int:
    for i, sql in enumerate(store.statements[start:], start):
        if sql.startswith(prefix):
            return i
    raise AssertionError(f"No statement starting with {prefix!r}")


# ===========================================================================
# Standalone records
# ===========================================================================
class TestSaveStandalone:
    def test_new_record_written_in_one_transaction(self, make_source, store):
        source = make_source()
        assert save_source(source, store)

        assert store.statements[0] == "begin"
        assert store.statements[-1] == "commit"
        assert store.inserted_keys() == [source.key]
        assert source.is_persisted
        assert not source.is_data_changed()
        assert source.mod_count == 0

    def test_row_carries_flattened_fields(self, make_source, store):
        source = make_source()
        source.set_attribute("licensee", "Example")
        source.populate({"zone": 3})
        save_source(source, store)

        row = store.inserted_row(source.key)
        assert row["zone_key"] == 3
        assert row["latitude"] == 40.0
        assert row["longitude"] == -75.0
        assert row["service_key"] == source.service.key
        assert row["attributes"] == "licensee=Example"
        assert row["parent_source_key"] is None

    def test_unchanged_record_is_not_written(self, make_source, store):
        source = make_source()
        save_source(source, store)
        store.calls.clear()

        assert not save_source(source, store)
        assert store.calls == []

    def test_mod_count_increments_on_resave(self, make_source, store):
        source = make_source()
        save_source(source, store)
        source.channel = 30
        save_source(source, store)
        rows = [
            params
            for sql, params in store.calls
            if sql.startswith("INSERT INTO source ")
        ]
        assert [row["mod_count"] for row in rows] == [0, 1]
        assert source.mod_count == 1
        assert source_to_row(source, source.mod_count)["channel"] == 30

    def test_invalid_record_raises_before_any_write(self, make_source, store):
        source = make_source(city="")
        errors = ErrorCollector()
        with pytest.raises(ValidationError) as exc_info:
            save_source(source, store, errors)
        assert exc_info.value.messages == ["A city name must be provided."]
        assert errors.messages == ["A city name must be provided."]
        assert store.calls == []

    def test_store_failure_rolls_back(self, make_source, store):
        source = make_source()
        store.fail_on = "INSERT INTO source "
        with pytest.raises(StoreFailureError):
            save_source(source, store)

        assert store.statements[-1] == "rollback"
        assert "commit" not in store.statements
        assert not source.is_persisted
        assert source.is_data_changed()

    def test_patterns_rewritten_only_when_changed(self, make_source, store):
        source = make_source()
        source.horizontal_pattern = AntennaPattern(
            kind=PatternKind.HORIZONTAL,
            name="H1",
            angles=np.array([0.0, 180.0]),
            relative_fields=np.array([1.0, 0.5]),
        )
        save_source(source, store)
        inserts = [
            (sql, params)
            for sql, params in store.calls
            if sql.startswith("INSERT INTO source_horizontal_pattern")
        ]
        assert len(inserts) == 1
        assert [p["azimuth"] for p in inserts[0][1]] == [0.0, 180.0]
        assert store.inserted_row(source.key)["horizontal_pattern_name"] == "H1"

        store.calls.clear()
        source.channel = 30
        save_source(source, store)
        assert not any(
            sql.startswith(("INSERT INTO source_", "DELETE FROM source_"))
            for sql in store.statements
        )


# ===========================================================================
# DTS groups
# ===========================================================================
class TestSaveGroup:
    def test_members_written_before_parent(self, make_group, store):
        group = make_group()
        save_source(group, store)

        keys = store.inserted_keys()
        assert sorted(keys) == sorted([group.key] + [m.key for m in group.dts_sources])
        assert keys[-1] == group.key
        assert all(m.is_persisted for m in group.dts_sources)
        assert all(m.mod_count == 0 for m in group.dts_sources)

    def test_removed_member_deleted_first(self, make_group, store):
        group = make_group(site_count=2)
        save_source(group, store)
        removed = group.dts_sources[1]
        group.remove_dts_source(removed)
        group.dts_sources[1].peak_erp = 30.0
        store.calls.clear()

        save_source(group, store)

        delete_at = statement_index(
            store, f"DELETE FROM source WHERE source_key IN ({removed.key})"
        )
        pattern_delete_at = statement_index(
            store,
            "DELETE FROM source_horizontal_pattern "
            f"WHERE source_key IN ({removed.key})",
        )
        first_insert = statement_index(store, "INSERT INTO source ")
        assert pattern_delete_at < delete_at < first_insert
        assert store.inserted_keys() == [group.dts_sources[1].key, group.key]
        assert group.dts_members.removed_keys == frozenset()
        assert group.mod_count == 1

    def test_only_changed_members_rewritten(self, make_group, store):
        group = make_group(site_count=2)
        save_source(group, store)
        store.calls.clear()

        site = group.dts_sources[2]
        site.dts_time_delay = 12.5
        save_source(group, store)

        assert store.inserted_keys() == [site.key, group.key]

    def test_failed_group_save_keeps_tracking(self, make_group, store):
        group = make_group()
        save_source(group, store)
        removed = group.dts_sources[1]
        group.remove_dts_source(removed)

        store.fail_on = "INSERT INTO source "
        with pytest.raises(StoreFailureError):
            save_source(group, store)
        assert store.statements[-1] == "rollback"
        assert group.dts_members.removed_keys == {removed.key}
        assert group.is_data_changed()
