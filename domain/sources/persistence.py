"""Sources Bounded Context - Persistence Coordinator.

Orders the writes for a record and its DTS members against a SourceStore
inside one transaction, then rebuilds the in-memory persisted snapshots.
Also reads records back, with their members, and deletes them.

Write order for a DTS parent is a hard contract:

1) delete members removed since the last save (pattern rows, then rows)
2) save every member that was added or changed
3) save the parent row and its patterns

The parent row is written last so anything it aggregates from its members
reads their current state. Nothing is retried; on failure the transaction
is rolled back and the store's error propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import numpy as np

from domain.sources import catalog
from domain.sources.attributes import Attributes
from domain.sources.entities import Source
from domain.sources.errors import ErrorCollector, ValidationError
from domain.sources.keys import make_key_list
from domain.sources.patterns import AntennaPattern, PatternKind
from domain.sources.repositories import SourceStore
from domain.sources.services import within_radius
from domain.sources.study import StudyContext
from domain.sources.value_objects import (
    GeoPoint,
    ServiceAreaMode,
    SourceIdentity,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Table layout
# ---------------------------------------------------------------------------
SOURCE_TABLE = "source"

PATTERN_TABLES = {
    PatternKind.HORIZONTAL: "source_horizontal_pattern",
    PatternKind.VERTICAL: "source_vertical_pattern",
    PatternKind.MATRIX: "source_matrix_pattern",
}

_SELECTION_COLUMNS = {
    "zone": "zone_key",
    "signal_type": "signal_type_key",
    "frequency_offset": "frequency_offset_key",
    "emission_mask": "emission_mask_key",
}


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------
def source_to_row(source: Source, mod_count: int) -> dict[str, Any]:
    """Flatten a record into a row of the source table."""
    row: dict[str, Any] = {
        "source_key": source.key,
        "parent_source_key": source.parent_source_key,
        "original_source_key": source.original_source_key,
        "facility_id": source.facility_id,
        "service_key": source.service.key,
        "country_key": source.country.key,
        "is_locked": source.locked,
        "is_drt": source.is_drt,
        "is_parent": source.is_parent,
        "user_record_id": source.user_record_id,
        "ext_db_key": source.ext_db_key,
        "ext_record_id": source.ext_record_id,
        "mod_count": mod_count,
    }
    for name, value in source.field_values().items():
        if name in _SELECTION_COLUMNS:
            row[_SELECTION_COLUMNS[name]] = value.key
        elif name == "location":
            row["latitude"] = value.latitude
            row["longitude"] = value.longitude
        elif name == "service_area_mode":
            row[name] = int(value)
        else:
            row[name] = value
    for kind in PatternKind:
        pattern = getattr(source, f"{kind.value}_pattern")
        row[f"{kind.value}_pattern_name"] = pattern.name if pattern is not None else ""
    row["attributes"] = source.attributes.serialize()
    return row


def source_from_row(
    row: Mapping[str, Any],
    study: StudyContext | None = None,
    pattern_repository: "StorePatternRepository | None" = None,
) -> Source:
    """Rebuild an unsealed record from a source table row."""
    service = catalog.get_service_by_key(row["service_key"])
    country = catalog.get_country_by_key(row["country_key"])
    if service is None or country is None:
        raise ValidationError(
            [f"Source {row['source_key']} has an unknown service or country key"]
        )
    identity = SourceIdentity(
        key=row["source_key"],
        db_id=study.db_id if study is not None else None,
        facility_id=row["facility_id"],
        service=service,
        country=country,
        locked=bool(row["is_locked"]),
        is_drt=bool(row["is_drt"]),
        user_record_id=row["user_record_id"],
        ext_db_key=row["ext_db_key"],
        ext_record_id=row["ext_record_id"],
        original_source_key=row["original_source_key"],
        parent_source_key=row["parent_source_key"],
        is_parent=bool(row["is_parent"]),
    )
    source = Source(identity, study, pattern_repository)
    fields: dict[str, Any] = {}
    for name, column in _SELECTION_COLUMNS.items():
        fields[name] = int(row[column])
    fields["location"] = GeoPoint(latitude=row["latitude"], longitude=row["longitude"])
    fields["service_area_mode"] = ServiceAreaMode(row["service_area_mode"])
    for name in (
        "call_sign",
        "channel",
        "city",
        "state",
        "status",
        "file_number",
        "dts_maximum_distance",
        "dts_sectors",
        "height_amsl",
        "overall_haat",
        "peak_erp",
        "antenna_id",
        "horizontal_pattern_orientation",
        "vertical_pattern_electrical_tilt",
        "vertical_pattern_mechanical_tilt",
        "vertical_pattern_mechanical_tilt_orientation",
        "site_number",
        "service_area_arg",
        "service_area_cl",
        "service_area_key",
        "dts_time_delay",
    ):
        fields[name] = row[name]
    for name in (
        "has_horizontal_pattern",
        "has_vertical_pattern",
        "has_matrix_pattern",
        "use_generic_vertical_pattern",
    ):
        fields[name] = bool(row[name])
    source.populate(fields)
    source.replace_attributes(Attributes.parse(row["attributes"]))
    source.mod_count = row["mod_count"]
    return source


# ---------------------------------------------------------------------------
# Pattern rows
# ---------------------------------------------------------------------------
def pattern_to_rows(source_key: int, pattern: AntennaPattern) -> list[dict[str, Any]]:
    if pattern.kind is PatternKind.MATRIX:
        return [
            {
                "source_key": source_key,
                "azimuth": float(azimuth),
                "depression": float(angle),
                "relative_field": float(pattern.relative_fields[i, j]),
            }
            for i, azimuth in enumerate(pattern.slice_azimuths)
            for j, angle in enumerate(pattern.angles)
        ]
    angle_column = "azimuth" if pattern.kind is PatternKind.HORIZONTAL else "depression"
    return [
        {
            "source_key": source_key,
            angle_column: float(angle),
            "relative_field": float(field),
        }
        for angle, field in zip(pattern.angles, pattern.relative_fields)
    ]


class StorePatternRepository:
    """PatternRepository reading pattern rows through a SourceStore."""

    def __init__(self, store: SourceStore) -> None:
        self.store = store

    def _name(self, source_key: int, kind: PatternKind) -> str:
        rows = self.store.query(
            f"SELECT {kind.value}_pattern_name AS name FROM {SOURCE_TABLE} "
            "WHERE source_key = :key",
            {"key": source_key},
        )
        if not rows:
            return ""
        return rows[0]["name"] or ""

    def load_horizontal(self, source_key: int) -> AntennaPattern | None:
        return self._load_simple(source_key, PatternKind.HORIZONTAL, "azimuth")

    def load_vertical(self, source_key: int) -> AntennaPattern | None:
        return self._load_simple(source_key, PatternKind.VERTICAL, "depression")

    def _load_simple(
        self, source_key: int, kind: PatternKind, angle_column: str
    ) -> AntennaPattern | None:
        rows = self.store.query(
            f"SELECT {angle_column} AS angle, relative_field "
            f"FROM {PATTERN_TABLES[kind]} "
            f"WHERE source_key = :key ORDER BY {angle_column}",
            {"key": source_key},
        )
        if not rows:
            return None
        return AntennaPattern(
            kind=kind,
            name=self._name(source_key, kind),
            angles=np.array([r["angle"] for r in rows]),
            relative_fields=np.array([r["relative_field"] for r in rows]),
        )

    def load_matrix(self, source_key: int) -> AntennaPattern | None:
        rows = self.store.query(
            "SELECT azimuth, depression, relative_field "
            f"FROM {PATTERN_TABLES[PatternKind.MATRIX]} "
            "WHERE source_key = :key ORDER BY azimuth, depression",
            {"key": source_key},
        )
        if not rows:
            return None
        azimuths = sorted({r["azimuth"] for r in rows})
        depressions = sorted({r["depression"] for r in rows})
        grid = np.full((len(azimuths), len(depressions)), np.nan)
        az_index = {az: i for i, az in enumerate(azimuths)}
        dep_index = {dep: j for j, dep in enumerate(depressions)}
        for r in rows:
            i, j = az_index[r["azimuth"]], dep_index[r["depression"]]
            grid[i, j] = r["relative_field"]
        return AntennaPattern(
            kind=PatternKind.MATRIX,
            name=self._name(source_key, PatternKind.MATRIX),
            angles=np.array(depressions),
            relative_fields=grid,
            slice_azimuths=np.array(azimuths),
        )


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------
def _next_mod_count(source: Source) -> int:
    if source.is_persisted and source.parent_source_key is None:
        return source.mod_count + 1
    return 0


def save_source(
    source: Source, store: SourceStore, errors: ErrorCollector | None = None
) -> bool:
    """Validate and persist a record and its DTS members.

    Returns False without touching the store when nothing changed.

    Raises:
        ValidationError: The record (or a member) is not valid.
        StoreFailureError: Propagated from the store after rollback.
    """
    collector = ErrorCollector()
    if not source.is_data_valid(collector):
        for message in collector.messages:
            if errors is not None:
                errors.report_validation_error(message)
        raise ValidationError(collector.messages)

    if not source.is_data_changed():
        logger.debug("Source %d unchanged, nothing to save", source.key)
        return False

    saved: list[tuple[Source, int]] = []
    store.begin()
    try:
        _write_source(source, store, saved)
        store.commit()
    except Exception:
        logger.error("Save of source %d failed, rolling back", source.key)
        store.rollback()
        raise

    for record, mod_count in saved:
        record.mark_saved(mod_count)
    logger.info("Saved source %d (%d records written)", source.key, len(saved))
    return True


def _write_source(
    source: Source, store: SourceStore, saved: list[tuple[Source, int]]
) -> None:
    members = source.dts_members
    if members is not None:
        removed = sorted(members.removed_keys)
        if removed:
            key_list = make_key_list(removed)
            for table in PATTERN_TABLES.values():
                store.update(f"DELETE FROM {table} WHERE source_key IN {key_list}")
            store.update(f"DELETE FROM {SOURCE_TABLE} WHERE source_key IN {key_list}")
            logger.debug("Deleted removed DTS sources %s", key_list)
        for member in members.changed:
            _write_source(member, store, saved)

    mod_count = _next_mod_count(source)
    row = source_to_row(source, mod_count)
    columns = ", ".join(row)
    values = ", ".join(f":{name}" for name in row)
    store.update(
        f"DELETE FROM {SOURCE_TABLE} WHERE source_key = :key", {"key": source.key}
    )
    store.update(f"INSERT INTO {SOURCE_TABLE} ({columns}) VALUES ({values})", row)

    for kind, table in PATTERN_TABLES.items():
        name = kind.value
        if source.is_persisted and not getattr(source, f"{name}_pattern_changed"):
            continue
        pattern = getattr(source, f"_{name}_pattern")
        if pattern is None and getattr(source, f"has_{name}_pattern"):
            # Unchanged pattern not resident in memory, rows stay as they are
            continue
        store.update(
            f"DELETE FROM {table} WHERE source_key = :key", {"key": source.key}
        )
        if pattern is not None:
            rows = pattern_to_rows(source.key, pattern)
            columns = ", ".join(rows[0])
            values = ", ".join(f":{column}" for column in rows[0])
            store.update(f"INSERT INTO {table} ({columns}) VALUES ({values})", rows)

    saved.append((source, mod_count))


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_source(source: Source, store: SourceStore) -> None:
    """Delete a record, its DTS members and all their pattern rows."""
    keys = [source.key] + [m.key for m in source.dts_sources]
    if source.dts_members is not None:
        keys.extend(source.dts_members.removed_keys)
    key_list = make_key_list(sorted(set(keys)))
    store.begin()
    try:
        for table in PATTERN_TABLES.values():
            store.update(f"DELETE FROM {table} WHERE source_key IN {key_list}")
        store.update(
            f"DELETE FROM {SOURCE_TABLE} WHERE source_key IN {key_list} "
            "OR parent_source_key = :key",
            {"key": source.key},
        )
        store.commit()
    except Exception:
        logger.error("Delete of source %d failed, rolling back", source.key)
        store.rollback()
        raise
    logger.info("Deleted source %d and %d related records", source.key, len(keys) - 1)


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------
def _build(
    row: Mapping[str, Any],
    store: SourceStore,
    study: StudyContext | None,
    repository: StorePatternRepository,
) -> Source:
    source = source_from_row(row, study, repository)
    if source.is_parent:
        member_rows = store.query(
            f"SELECT * FROM {SOURCE_TABLE} WHERE parent_source_key = :key "
            "ORDER BY source_key",
            {"key": source.key},
        )
        for member_row in member_rows:
            member = source_from_row(member_row, study, repository)
            member.mark_saved(member.mod_count)
            member.seal()
            source.dts_members.load(member)
    source.mark_saved(source.mod_count)
    source.seal()
    return source


def load_source(
    store: SourceStore, key: int, study: StudyContext | None = None
) -> Source | None:
    """Read one top-level record, with its members, or None if absent."""
    rows = store.query(
        f"SELECT * FROM {SOURCE_TABLE} WHERE source_key = :key", {"key": key}
    )
    if not rows:
        return None
    return _build(rows[0], store, study, StorePatternRepository(store))


def load_sources(
    store: SourceStore,
    where: str = "",
    params: Mapping[str, Any] | None = None,
    study: StudyContext | None = None,
) -> list[Source]:
    """Read all top-level records matching an optional SQL condition."""
    sql = f"SELECT * FROM {SOURCE_TABLE} WHERE parent_source_key IS NULL"
    if where:
        sql += f" AND ({where})"
    sql += " ORDER BY source_key"
    repository = StorePatternRepository(store)
    return [_build(row, store, study, repository) for row in store.query(sql, params)]


def find_sources(
    store: SourceStore,
    center: GeoPoint,
    radius_km: float,
    where: str = "",
    params: Mapping[str, Any] | None = None,
    study: StudyContext | None = None,
) -> list[Source]:
    """Records within a radius of a point; a DTS group matches on any site."""
    found = [
        source
        for source in load_sources(store, where, params, study)
        if within_radius(source, center, radius_km)
    ]
    logger.debug(
        "Found %d sources within %.1f km of (%.4f, %.4f)",
        len(found),
        radius_km,
        center.latitude,
        center.longitude,
    )
    return found
