"""Sources Bounded Context - Source Record Entity.

A Source is one transmitting facility, or one site of a DTS (distributed
transmission) operation. Its identity is an immutable SourceIdentity; its
operational fields are mutable and compared against the snapshot taken when
the record was last persisted to answer `is_data_changed()` without reading
the store.

A locked record mirrors a primary data record and cannot be edited. Once a
factory seals a locked record, every field setter, attribute setter and
member mutator becomes a silent no-op.

A DTS parent owns its members through DTSMembers; members refer back to the
parent only by key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from domain.sources import catalog
from domain.sources.attributes import Attributes
from domain.sources.errors import ErrorCollector, ValidationError
from domain.sources.hierarchy import DTSMembers
from domain.sources.patterns import AntennaPattern, PatternKind
from domain.sources.repositories import PatternRepository
from domain.sources.services import frequency_mhz, validate_sectors
from domain.sources.value_objects import (
    CHANNEL_MAX,
    CHANNEL_MIN,
    CONTOUR_LEVEL_DEFAULT,
    CONTOUR_LEVEL_MAX,
    CONTOUR_LEVEL_MIN,
    DISTANCE_MAX,
    DISTANCE_MIN,
    ERP_DEF,
    ERP_MAX,
    ERP_MIN,
    HEIGHT_MAX,
    HEIGHT_MIN,
    LATITUDE_MAX,
    LATITUDE_MIN,
    LONGITUDE_MAX,
    LONGITUDE_MIN,
    SERVICE_AREA_ARG_MAX,
    SERVICE_AREA_ARG_MIN,
    TILT_MAX,
    TILT_MIN,
    TIME_DELAY_MAX,
    TIME_DELAY_MIN,
    Country,
    EmissionMask,
    FrequencyOffset,
    GeoPoint,
    Service,
    ServiceAreaMode,
    SignalType,
    SourceIdentity,
    SourceRole,
    SourceSnapshot,
    Zone,
)

if TYPE_CHECKING:
    from domain.sources.study import StudyContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Field Registry
# ---------------------------------------------------------------------------
# Mutable fields compared against the persisted snapshot, in display order.
FIELD_NAMES: tuple[str, ...] = (
    "call_sign",
    "channel",
    "city",
    "state",
    "zone",
    "status",
    "file_number",
    "signal_type",
    "frequency_offset",
    "emission_mask",
    "location",
    "dts_maximum_distance",
    "dts_sectors",
    "height_amsl",
    "overall_haat",
    "peak_erp",
    "antenna_id",
    "has_horizontal_pattern",
    "horizontal_pattern_orientation",
    "has_vertical_pattern",
    "vertical_pattern_electrical_tilt",
    "vertical_pattern_mechanical_tilt",
    "vertical_pattern_mechanical_tilt_orientation",
    "has_matrix_pattern",
    "use_generic_vertical_pattern",
    "site_number",
    "service_area_mode",
    "service_area_arg",
    "service_area_cl",
    "service_area_key",
    "dts_time_delay",
)

# Fields copied from a DTS parent onto a group created by promotion
DISPLAY_FIELD_NAMES: tuple[str, ...] = (
    "call_sign",
    "channel",
    "city",
    "state",
    "zone",
    "status",
    "file_number",
    "signal_type",
    "location",
)

_PATTERN_NAMES = ("horizontal_pattern", "vertical_pattern", "matrix_pattern")

_GUARDED = frozenset(FIELD_NAMES) | frozenset(_PATTERN_NAMES)

STATUS_TYPES = ("APP", "CP", "LIC", "STA", "PRE", "EXP", "AMD")


class Source:
    """Mutable broadcast source record (Entity).

    Identity is by key: two Source objects with the same key are the same
    record, typically an editor copy and the original.
    """

    def __init__(
        self,
        identity: SourceIdentity,
        study: StudyContext | None = None,
        pattern_repository: PatternRepository | None = None,
    ) -> None:
        object.__setattr__(self, "_sealed", False)
        self._identity = identity
        self.study = study
        self.pattern_repository = pattern_repository

        service = identity.service
        self.call_sign = ""
        self.channel = 0
        self.city = ""
        self.state = ""
        self.zone: Zone = Zone.null()
        self.status = ""
        self.file_number = ""
        self.signal_type: SignalType = (
            SignalType.default() if service.is_digital else SignalType.null()
        )
        self.frequency_offset: FrequencyOffset = FrequencyOffset.null()
        self.emission_mask: EmissionMask = (
            EmissionMask.invalid()
            if service.needs_emission_mask
            else EmissionMask.null()
        )
        self.location = GeoPoint()
        self.dts_maximum_distance = 0.0
        self.dts_sectors = ""
        self.height_amsl = 0.0
        self.overall_haat = 0.0
        self.peak_erp = ERP_DEF
        self.antenna_id: str | None = None
        self.has_horizontal_pattern = False
        self.horizontal_pattern_orientation = 0.0
        self.has_vertical_pattern = False
        self.vertical_pattern_electrical_tilt = 0.0
        self.vertical_pattern_mechanical_tilt = 0.0
        self.vertical_pattern_mechanical_tilt_orientation = 0.0
        self.has_matrix_pattern = False
        self.use_generic_vertical_pattern = True
        self.site_number = 0
        self.service_area_mode = ServiceAreaMode.CONTOUR_DEFAULT
        self.service_area_arg = 0.0
        self.service_area_cl = CONTOUR_LEVEL_DEFAULT
        self.service_area_key = 0
        self.dts_time_delay = 0.0

        self._horizontal_pattern: AntennaPattern | None = None
        self._vertical_pattern: AntennaPattern | None = None
        self._matrix_pattern: AntennaPattern | None = None
        self.horizontal_pattern_changed = False
        self.vertical_pattern_changed = False
        self.matrix_pattern_changed = False

        self._attributes = Attributes()
        self._snapshot: SourceSnapshot | None = None
        self.mod_count = 0
        self._dts_members: DTSMembers | None = (
            DTSMembers(identity.key) if identity.is_parent else None
        )

    # -----------------------------------------------------------------------
    # Lock guard
    # -----------------------------------------------------------------------
    def __setattr__(self, name: str, value: Any) -> None:
        if name in _GUARDED and self._is_frozen():
            logger.debug("Ignoring edit of %s on locked source %d", name, self.key)
            return
        object.__setattr__(self, name, value)

    def _is_frozen(self) -> bool:
        return self._sealed and self._identity.locked

    def seal(self) -> None:
        """Mark construction complete.

        Factories call this once a new or loaded record is fully populated;
        from then on a locked record ignores all edits.
        """
        object.__setattr__(self, "_sealed", True)
        if self._dts_members is not None and self._identity.locked:
            self._dts_members.lock()

    # -----------------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------------
    @property
    def identity(self) -> SourceIdentity:
        return self._identity

    @property
    def key(self) -> int:
        return self._identity.key

    @property
    def db_id(self) -> str | None:
        return self._identity.db_id

    @property
    def facility_id(self) -> int:
        return self._identity.facility_id

    @property
    def service(self) -> Service:
        return self._identity.service

    @property
    def country(self) -> Country:
        return self._identity.country

    @property
    def locked(self) -> bool:
        return self._identity.locked

    @property
    def is_drt(self) -> bool:
        return self._identity.is_drt

    @property
    def user_record_id(self) -> int | None:
        return self._identity.user_record_id

    @property
    def ext_db_key(self) -> int | None:
        return self._identity.ext_db_key

    @property
    def ext_record_id(self) -> str | None:
        return self._identity.ext_record_id

    @property
    def original_source_key(self) -> int | None:
        return self._identity.original_source_key

    @property
    def parent_source_key(self) -> int | None:
        return self._identity.parent_source_key

    @property
    def is_parent(self) -> bool:
        return self._identity.is_parent

    @property
    def is_replication(self) -> bool:
        return self._identity.original_source_key is not None

    @property
    def role(self) -> SourceRole:
        return SourceRole.of(self.is_parent, self.parent_source_key, self.site_number)

    @property
    def is_persisted(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> SourceSnapshot | None:
        return self._snapshot

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Source):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return (
            f"Source(key={self.key}, call_sign={self.call_sign!r}, "
            f"service={self.service.code}, channel={self.channel}, "
            f"role={self.role.value})"
        )

    # -----------------------------------------------------------------------
    # Derived display values
    # -----------------------------------------------------------------------
    @property
    def status_type(self) -> str | None:
        code = self.status.strip().upper()
        return code if code in STATUS_TYPES else None

    @property
    def app_arn(self) -> str:
        """Application reference number, the file number after its prefix."""
        _, sep, arn = self.file_number.partition("-")
        return arn if sep else self.file_number

    @property
    def frequency(self) -> float | None:
        if CHANNEL_MIN <= self.channel <= CHANNEL_MAX:
            return frequency_mhz(self.channel)
        return None

    @property
    def geography_key(self) -> int:
        if ServiceAreaMode(self.service_area_mode).uses_geography:
            return self.service_area_key
        return 0

    def is_geography_in_use(self, geo_key: int) -> bool:
        if self.geography_key == geo_key:
            return True
        return any(m.is_geography_in_use(geo_key) for m in self.dts_sources)

    # -----------------------------------------------------------------------
    # Attributes
    # -----------------------------------------------------------------------
    @property
    def attributes(self) -> Attributes:
        """A copy of the attribute bag; edit through set_attribute."""
        return self._attributes.copy()

    def get_attribute(self, name: str) -> str | None:
        return self._attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    def set_attribute(self, name: str, value: str | None = "") -> None:
        if self._is_frozen():
            logger.debug("Ignoring attribute %s on locked source %d", name, self.key)
            return
        self._attributes.set(name, value)

    def remove_attribute(self, name: str) -> None:
        if self._is_frozen():
            return
        self._attributes.remove(name)

    def replace_attributes(self, attributes: Attributes) -> None:
        if self._is_frozen():
            return
        self._attributes = attributes.copy()

    # -----------------------------------------------------------------------
    # Patterns
    # -----------------------------------------------------------------------
    @property
    def horizontal_pattern(self) -> AntennaPattern | None:
        return self._horizontal_pattern

    @horizontal_pattern.setter
    def horizontal_pattern(self, pattern: AntennaPattern | None) -> None:
        self._set_pattern(PatternKind.HORIZONTAL, pattern)

    @property
    def vertical_pattern(self) -> AntennaPattern | None:
        return self._vertical_pattern

    @vertical_pattern.setter
    def vertical_pattern(self, pattern: AntennaPattern | None) -> None:
        self._set_pattern(PatternKind.VERTICAL, pattern)

    @property
    def matrix_pattern(self) -> AntennaPattern | None:
        return self._matrix_pattern

    @matrix_pattern.setter
    def matrix_pattern(self, pattern: AntennaPattern | None) -> None:
        self._set_pattern(PatternKind.MATRIX, pattern)

    def _set_pattern(self, kind: PatternKind, pattern: AntennaPattern | None) -> None:
        if pattern is not None and pattern.kind is not kind:
            raise ValueError(
                f"Expected a {kind.value} pattern, got {pattern.kind.value}"
            )
        name = kind.value
        object.__setattr__(self, f"_{name}_pattern", pattern)
        object.__setattr__(self, f"has_{name}_pattern", pattern is not None)
        object.__setattr__(self, f"{name}_pattern_changed", True)

    def get_pattern(self, kind: PatternKind) -> AntennaPattern | None:
        """Resident pattern of a kind, loading it from the repository if needed."""
        name = kind.value
        pattern = getattr(self, f"_{name}_pattern")
        if pattern is not None or not getattr(self, f"has_{name}_pattern"):
            return pattern
        if self.pattern_repository is None:
            return None
        loader = getattr(self.pattern_repository, f"load_{name}")
        pattern = loader(self.key)
        if pattern is not None:
            object.__setattr__(self, f"_{name}_pattern", pattern)
        return pattern

    @property
    def pattern_changed(self) -> bool:
        return (
            self.horizontal_pattern_changed
            or self.vertical_pattern_changed
            or self.matrix_pattern_changed
        )

    # -----------------------------------------------------------------------
    # Field access for codecs and persistence
    # -----------------------------------------------------------------------
    def field_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in FIELD_NAMES}

    def populate(
        self, fields: dict[str, Any], errors: ErrorCollector | None = None
    ) -> bool:
        """Set mutable fields by name, converting keys to catalog selections.

        Unknown names are reported and nothing is changed. On a sealed locked
        record this is a no-op like every other edit.
        """
        unknown = [name for name in fields if name not in FIELD_NAMES]
        if unknown:
            if errors is not None:
                errors.report_error(f"Unknown source field(s): {', '.join(unknown)}")
            return False
        for name, value in fields.items():
            setattr(self, name, _convert_field(name, value))
        return True

    # -----------------------------------------------------------------------
    # DTS members
    # -----------------------------------------------------------------------
    @property
    def dts_members(self) -> DTSMembers | None:
        """Member collection of a group parent, None for other records.

        Edits go through `add_or_replace_dts_source` and `remove_dts_source`.
        """
        return self._dts_members

    @property
    def dts_sources(self) -> list[Source]:
        if self._dts_members is None:
            return []
        return self._dts_members.members()

    def get_dts_source(self, key: int) -> Source | None:
        if self._dts_members is None:
            return None
        return self._dts_members.get(key)

    def add_or_replace_dts_source(self, member: Source) -> bool:
        if self._dts_members is None or self._is_frozen():
            return False
        return self._dts_members.add_or_replace(member)

    def remove_dts_source(self, member: Source | int) -> bool:
        if self._dts_members is None or self._is_frozen():
            return False
        return self._dts_members.remove(member)

    def next_dts_site_number(self) -> int:
        if self._dts_members is None:
            return 0
        return self._dts_members.next_site_number()

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------
    def is_data_valid(self, errors: ErrorCollector | None = None) -> bool:
        """Check the record, stopping at the first problem found.

        A locked record is always valid since it cannot have been edited.
        Signal type and emission mask are first normalized to what the
        service requires.
        """
        if self.locked:
            return True

        def fail(message: str) -> bool:
            if errors is not None:
                errors.report_validation_error(message)
            return False

        self._normalize_selections()
        role = self.role

        if (
            self.study is None
            or role is SourceRole.GROUP_PARENT
            or role is SourceRole.GROUP_REFERENCE_FACILITY
        ):
            min_channel, max_channel = CHANNEL_MIN, CHANNEL_MAX
        else:
            min_channel, max_channel = self.study.min_channel, self.study.max_channel
        if not (min_channel <= self.channel <= max_channel):
            return fail(f"Bad channel, must be {min_channel} to {max_channel}.")

        if not self.city.strip():
            return fail("A city name must be provided.")
        if not self.state.strip():
            return fail("A state code must be provided.")
        if self.zone.key < 0:
            return fail("A zone must be selected.")
        if self.signal_type.key < 0:
            return fail("A signal type must be selected.")
        if self.emission_mask.key < 0:
            return fail("An emission mask must be selected.")

        if role is SourceRole.GROUP_PARENT:
            if self.dts_maximum_distance != 0.0 and not (
                DISTANCE_MIN <= self.dts_maximum_distance <= DISTANCE_MAX
            ):
                return fail(
                    f"Bad DTS boundary distance, must be {DISTANCE_MIN} to "
                    f"{DISTANCE_MAX}."
                )
            if self.dts_sectors.strip():
                message = validate_sectors(self.dts_sectors)
                if message is not None:
                    return fail(f"Bad DTS boundary: {message}")

        if self.site_number < 0:
            return fail("Bad site number, must be >= 0.")

        mode = ServiceAreaMode(self.service_area_mode)
        if mode.uses_argument and not (
            SERVICE_AREA_ARG_MIN <= self.service_area_arg <= SERVICE_AREA_ARG_MAX
        ):
            return fail(
                f"Bad contour mode argument, must be {SERVICE_AREA_ARG_MIN} to "
                f"{SERVICE_AREA_ARG_MAX}."
            )
        if (
            mode.uses_contour_level
            and self.service_area_cl != CONTOUR_LEVEL_DEFAULT
            and not (CONTOUR_LEVEL_MIN <= self.service_area_cl <= CONTOUR_LEVEL_MAX)
        ):
            return fail(
                f"Bad contour level, must be {CONTOUR_LEVEL_MIN} to "
                f"{CONTOUR_LEVEL_MAX}."
            )
        if mode.uses_geography and self.service_area_key <= 0:
            return fail("Bad or missing service area geography.")

        if role is SourceRole.GROUP_SITE and not (
            TIME_DELAY_MIN <= self.dts_time_delay <= TIME_DELAY_MAX
        ):
            return fail(
                f"Bad DTS time delay, must be {TIME_DELAY_MIN} to {TIME_DELAY_MAX}."
            )

        if not self._is_base_data_valid(fail, errors):
            return False

        if role is SourceRole.GROUP_PARENT:
            return self._is_group_valid(fail, errors)
        return True

    def _normalize_selections(self) -> None:
        service = self.service
        if service.is_digital:
            if self.signal_type.key == 0:
                self.signal_type = SignalType.default()
        elif self.signal_type.key != 0:
            self.signal_type = SignalType.null()
        if service.needs_emission_mask:
            if self.emission_mask.key == 0:
                self.emission_mask = EmissionMask.invalid()
        elif self.emission_mask.key != 0:
            self.emission_mask = EmissionMask.null()

    def _is_base_data_valid(self, fail, errors: ErrorCollector | None) -> bool:
        if not self.call_sign.strip():
            return fail("A call sign must be provided.")

        lat, lon = self.location.latitude, self.location.longitude
        if lat == 0.0 or not (LATITUDE_MIN <= lat <= LATITUDE_MAX):
            return fail(f"Bad latitude, must be {LATITUDE_MIN} to {LATITUDE_MAX}.")
        if lon == 0.0 or not (LONGITUDE_MIN <= lon <= LONGITUDE_MAX):
            return fail(f"Bad longitude, must be {LONGITUDE_MIN} to {LONGITUDE_MAX}.")

        if not (HEIGHT_MIN <= self.height_amsl <= HEIGHT_MAX):
            return fail(f"Bad height AMSL, must be {HEIGHT_MIN} to {HEIGHT_MAX}.")
        if not (HEIGHT_MIN <= self.overall_haat <= HEIGHT_MAX):
            return fail(f"Bad HAAT, must be {HEIGHT_MIN} to {HEIGHT_MAX}.")
        if not (ERP_MIN <= self.peak_erp <= ERP_MAX):
            return fail(f"Bad peak ERP, must be {ERP_MIN} to {ERP_MAX}.")

        for pattern in (
            self._horizontal_pattern,
            self._vertical_pattern,
            self._matrix_pattern,
        ):
            if pattern is not None and not pattern.is_data_valid(errors):
                return False

        if not (0.0 <= self.horizontal_pattern_orientation < 360.0):
            return fail("Bad pattern orientation, must be 0 to less than 360.")
        if not (TILT_MIN <= self.vertical_pattern_electrical_tilt <= TILT_MAX):
            return fail(f"Bad electrical tilt, must be {TILT_MIN} to {TILT_MAX}.")
        if not (TILT_MIN <= self.vertical_pattern_mechanical_tilt <= TILT_MAX):
            return fail(f"Bad mechanical tilt, must be {TILT_MIN} to {TILT_MAX}.")
        if not (0.0 <= self.vertical_pattern_mechanical_tilt_orientation < 360.0):
            return fail("Bad mechanical tilt orientation, must be 0 to less than 360.")
        return True

    def _is_group_valid(self, fail, errors: ErrorCollector | None) -> bool:
        if self.site_number != 0:
            return fail("Bad site number for DTS parent, must be 0.")
        has_reference = False
        has_site = False
        for member in self.dts_sources:
            if not member.is_data_valid(errors):
                return False
            if member.site_number == 0:
                if has_reference:
                    return fail(
                        "Multiple reference facilities (site number 0) for DTS parent."
                    )
                has_reference = True
            else:
                has_site = True
        if not has_reference:
            return fail("DTS parent must have a reference facility.")
        if not has_site:
            return fail("DTS parent must have at least one transmitter site.")
        return True

    def validate(self) -> None:
        """Raise ValidationError with all messages if the record is not valid."""
        collector = ErrorCollector()
        if not self.is_data_valid(collector):
            raise ValidationError(collector.messages)

    # -----------------------------------------------------------------------
    # Change detection
    # -----------------------------------------------------------------------
    def is_data_changed(self) -> bool:
        """True if the record differs from its last-persisted state.

        For a DTS parent this also refreshes the list of members needing a
        save; a never-persisted parent marks all of its members.
        """
        if self._snapshot is None:
            if self._dts_members is not None:
                self._dts_members.mark_all_changed()
            return True
        if self.locked:
            return False

        changed = False
        if self._dts_members is not None:
            changed = self._dts_members.refresh_changed()
        if self._attributes.serialize() != self._snapshot.attributes:
            changed = True
        if self.pattern_changed:
            changed = True
        if self._snapshot.changed_fields(self.field_values()):
            changed = True
        return changed

    def changed_fields(self) -> list[str]:
        if self._snapshot is None:
            return list(FIELD_NAMES)
        return self._snapshot.changed_fields(self.field_values())

    def mark_saved(self, mod_count: int) -> None:
        """Take a new persisted snapshot and reset change tracking."""
        object.__setattr__(self, "mod_count", mod_count)
        object.__setattr__(self, "horizontal_pattern_changed", False)
        object.__setattr__(self, "vertical_pattern_changed", False)
        object.__setattr__(self, "matrix_pattern_changed", False)
        self._snapshot = SourceSnapshot(
            values=tuple(self.field_values().items()),
            attributes=self._attributes.serialize(),
            mod_count=mod_count,
        )
        if self._dts_members is not None:
            self._dts_members.clear_tracking()

    # -----------------------------------------------------------------------
    # Copy and persistence
    # -----------------------------------------------------------------------
    def copy(self) -> Source:
        """Editor copy: same key and snapshot, independent mutable state."""
        clone = Source(self._identity, self.study, self.pattern_repository)
        for name in FIELD_NAMES:
            object.__setattr__(clone, name, getattr(self, name))
        for name in _PATTERN_NAMES:
            object.__setattr__(clone, f"_{name}", getattr(self, f"_{name}"))
            changed = getattr(self, f"{name}_changed")
            object.__setattr__(clone, f"{name}_changed", changed)
        clone._attributes = self._attributes.copy()
        clone._snapshot = self._snapshot
        clone.mod_count = self.mod_count
        if self._dts_members is not None:
            clone._dts_members = self._dts_members.copy()
        if self._sealed:
            clone.seal()
        return clone

    def save(self, store, errors: ErrorCollector | None = None) -> bool:
        """Persist this record and its members, see persistence.save_source."""
        from domain.sources.persistence import save_source

        return save_source(self, store, errors)


# ---------------------------------------------------------------------------
# Field conversion
# ---------------------------------------------------------------------------
def _convert_field(name: str, value: Any) -> Any:
    if name == "zone" and isinstance(value, int):
        return catalog.get_zone(value)
    if name == "signal_type" and isinstance(value, int):
        return catalog.get_signal_type(value)
    if name == "emission_mask" and isinstance(value, int):
        return catalog.get_emission_mask(value)
    if name == "frequency_offset" and isinstance(value, int):
        return catalog.get_frequency_offset(value)
    if name == "service_area_mode":
        return ServiceAreaMode(value)
    if name == "location":
        if isinstance(value, GeoPoint):
            return value
        if isinstance(value, dict):
            return GeoPoint(**value)
        latitude, longitude = value
        return GeoPoint(latitude=latitude, longitude=longitude)
    return value
