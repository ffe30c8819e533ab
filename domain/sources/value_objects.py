"""Sources Bounded Context - Value Objects.

Immutable data structures describing broadcast source identity and the
enumerated selections a source record refers to. All structural validation
occurs at construction time via Pydantic; range checks that a user can
fix by editing a record live in the record's own validation.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Numeric Limits
# ---------------------------------------------------------------------------
CHANNEL_MIN = 2
CHANNEL_MAX = 69

LATITUDE_MIN = -73.0
LATITUDE_MAX = 73.0
LONGITUDE_MIN = -180.0
LONGITUDE_MAX = 180.0

# DTS boundary distance in km; 0 means use the regulatory table value
DISTANCE_MIN = 50.0
DISTANCE_MAX = 200.0

HEIGHT_MIN = -1000.0
HEIGHT_MAX = 10000.0
HEIGHT_DERIVE = -999.0  # Height to be derived by the study engine

ERP_MIN = 0.00001
ERP_MAX = 5000.0
ERP_DEF = 0.001  # Placeholder ERP, kW

TIME_DELAY_MIN = -500.0
TIME_DELAY_MAX = 500.0

SERVICE_AREA_ARG_MIN = 0.0
SERVICE_AREA_ARG_MAX = 500.0

CONTOUR_LEVEL_MIN = 0.0
CONTOUR_LEVEL_MAX = 120.0
CONTOUR_LEVEL_DEFAULT = -999.0

TILT_MIN = -10.0
TILT_MAX = 11.1

SECTOR_RADIUS_MIN = 1.0
SECTOR_RADIUS_MAX = 3000.0

DEFAULT_RULE_EXTRA_DISTANCE = 163.0  # km

# Source keys are 16-bit unsigned, 0 is never assigned
SOURCE_KEY_MAX = 65535


class ServiceAreaMode(IntEnum):
    """How the service area of a source is defined."""

    CONTOUR_DEFAULT = 0
    CONTOUR_FCC = 1
    CONTOUR_LR_PERCENT = 2
    CONTOUR_LR_RUN_ABOVE = 3
    CONTOUR_LR_RUN_BELOW = 4
    GEOGRAPHY_FIXED = 5
    GEOGRAPHY_RELOCATED = 6
    NO_BOUNDS = 7
    CONTOUR_FCC_ADD_DIST = 8
    CONTOUR_FCC_ADD_PCNT = 9
    RADIUS = 10

    @property
    def uses_argument(self) -> bool:
        return self in (
            ServiceAreaMode.CONTOUR_LR_PERCENT,
            ServiceAreaMode.CONTOUR_LR_RUN_ABOVE,
            ServiceAreaMode.CONTOUR_LR_RUN_BELOW,
            ServiceAreaMode.CONTOUR_FCC_ADD_DIST,
            ServiceAreaMode.CONTOUR_FCC_ADD_PCNT,
            ServiceAreaMode.RADIUS,
        )

    @property
    def uses_contour_level(self) -> bool:
        return self in (
            ServiceAreaMode.CONTOUR_DEFAULT,
            ServiceAreaMode.CONTOUR_FCC,
            ServiceAreaMode.CONTOUR_LR_PERCENT,
            ServiceAreaMode.CONTOUR_LR_RUN_ABOVE,
            ServiceAreaMode.CONTOUR_LR_RUN_BELOW,
        )

    @property
    def uses_geography(self) -> bool:
        return self in (
            ServiceAreaMode.GEOGRAPHY_FIXED,
            ServiceAreaMode.GEOGRAPHY_RELOCATED,
        )


class SourceRole(Enum):
    """Position of a record within the DTS hierarchy.

    Computed from (parent_source_key, site_number, is_parent); validation and
    derivation branch on this instead of the raw fields.
    """

    STANDALONE = "standalone"
    GROUP_PARENT = "group_parent"
    GROUP_REFERENCE_FACILITY = "group_reference_facility"
    GROUP_SITE = "group_site"

    @classmethod
    def of(
        cls, is_parent: bool, parent_source_key: int | None, site_number: int
    ) -> "SourceRole":
        if is_parent:
            return cls.GROUP_PARENT
        if parent_source_key is None:
            return cls.STANDALONE
        if site_number == 0:
            return cls.GROUP_REFERENCE_FACILITY
        return cls.GROUP_SITE

    @property
    def is_member(self) -> bool:
        return self in (SourceRole.GROUP_REFERENCE_FACILITY, SourceRole.GROUP_SITE)


# ---------------------------------------------------------------------------
# GeoPoint
# ---------------------------------------------------------------------------
class GeoPoint(BaseModel):
    """Geographic coordinate in NAD83/WGS84 decimal degrees (Value Object).

    Longitude is positive east. The regulatory latitude limits are checked
    by record validation, not here, so records can hold a not-yet-entered
    (0, 0) location.
    """

    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Enumerated Selections
# ---------------------------------------------------------------------------
class ServiceType(BaseModel):
    """Broad classification of a service (full-service digital, LPTV, ...)."""

    key: int = Field(ge=1)
    name: str
    digital: bool
    needs_emission_mask: bool = False
    low_power: bool = False  # Class A and LPTV use their own contour levels

    model_config = ConfigDict(frozen=True)


class Service(BaseModel):
    """A regulatory service code (DT, TV, DD, LD, ...).

    Attributes:
        digital_code: For an analog service, code of its digital
            equivalent used by replication.
    """

    key: int = Field(ge=1)
    code: str = Field(min_length=1, max_length=2)
    name: str
    service_type: ServiceType
    is_dts: bool = False
    digital_code: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_digital(self) -> bool:
        return self.service_type.digital

    @property
    def needs_emission_mask(self) -> bool:
        return self.service_type.needs_emission_mask


class Country(BaseModel):
    key: int = Field(ge=1)
    code: str
    name: str

    model_config = ConfigDict(frozen=True)


class KeyedChoice(BaseModel):
    """Base for selections where key 0 means none and a negative key invalid."""

    key: int
    name: str = ""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def null(cls):
        return cls(key=0, name="(none)")

    @classmethod
    def invalid(cls):
        return cls(key=-1, name="(invalid)")


class Zone(KeyedChoice):
    pass


class SignalType(KeyedChoice):
    @classmethod
    def default(cls) -> "SignalType":
        return cls(key=1, name="ATSC 1.0")


class EmissionMask(KeyedChoice):
    @classmethod
    def default(cls) -> "EmissionMask":
        return cls(key=1, name="Simple")


class FrequencyOffset(KeyedChoice):
    pass


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
class SourceIdentity(BaseModel):
    """Immutable identity of a source record (Value Object).

    Only derivation may produce a record with a different identity.

    Invariants:
        ext_db_key is None whenever ext_record_id is None
        a record cannot be both a parent and a member
    """

    key: int = Field(ge=1)
    db_id: str | None = None
    facility_id: int = 0
    service: Service
    country: Country
    locked: bool = False
    is_drt: bool = False
    user_record_id: int | None = None
    ext_db_key: int | None = None
    ext_record_id: str | None = None
    original_source_key: int | None = None
    parent_source_key: int | None = None
    is_parent: bool = False

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_identity(self) -> "SourceIdentity":
        if self.ext_record_id is None and self.ext_db_key is not None:
            object.__setattr__(self, "ext_db_key", None)
        if self.is_parent and self.parent_source_key is not None:
            raise ValueError("A DTS parent cannot itself have a parent")
        if self.is_parent and not self.service.is_dts:
            raise ValueError(f"Service {self.service.code} is not a DTS service")
        return self

    @property
    def has_primary_ids(self) -> bool:
        return self.ext_record_id is not None or self.user_record_id is not None


class SourceSnapshot(BaseModel):
    """Last-persisted state of a record's mutable fields (Value Object).

    Rebuilt whole after every save, never updated in place.
    """

    values: tuple[tuple[str, Any], ...]
    attributes: str = ""
    mod_count: int = 0

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.values)

    def changed_fields(self, current: dict[str, Any]) -> list[str]:
        """Names of fields whose current value differs from the snapshot."""
        saved = self.as_dict()
        return [
            name
            for name, value in current.items()
            if name not in saved or saved[name] != value
        ]


class ExternalRecord(BaseModel):
    """A primary data record as delivered by an external station data set.

    Attributes:
        fields: Operational field values keyed by record field name
        dts_records: Member records of a DTS operation, site numbers > 0,
            plus optionally the reference facility at site 0
    """

    ext_db_key: int | None = None
    ext_record_id: str
    facility_id: int
    service_code: str
    country_code: str
    is_drt: bool = False
    fields: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, str] = Field(default_factory=dict)
    dts_records: tuple["ExternalRecord", ...] = ()

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


ExternalRecord.model_rebuild()
