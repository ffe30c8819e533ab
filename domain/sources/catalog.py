"""Standard lookup tables for services, countries and enumerated selections.

Lookups return None for an unknown key or code; callers decide whether that
is an error.
"""

from __future__ import annotations

from domain.sources.value_objects import (
    Country,
    EmissionMask,
    FrequencyOffset,
    Service,
    ServiceType,
    SignalType,
    Zone,
)

# ---------------------------------------------------------------------------
# Service Types
# ---------------------------------------------------------------------------
FULL_SERVICE_DIGITAL = ServiceType(key=1, name="Full-service digital", digital=True)
FULL_SERVICE_ANALOG = ServiceType(key=2, name="Full-service analog", digital=False)
CLASS_A_DIGITAL = ServiceType(
    key=3,
    name="Class A digital",
    digital=True,
    needs_emission_mask=True,
    low_power=True,
)
CLASS_A_ANALOG = ServiceType(
    key=4, name="Class A analog", digital=False, low_power=True
)
LPTV_DIGITAL = ServiceType(
    key=5,
    name="LPTV digital",
    digital=True,
    needs_emission_mask=True,
    low_power=True,
)
LPTV_ANALOG = ServiceType(key=6, name="LPTV analog", digital=False, low_power=True)

# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
SERVICES: tuple[Service, ...] = (
    Service(
        key=1,
        code="DT",
        name="Digital full service",
        service_type=FULL_SERVICE_DIGITAL,
    ),
    Service(
        key=2,
        code="TV",
        name="Analog full service",
        service_type=FULL_SERVICE_ANALOG,
        digital_code="DT",
    ),
    Service(
        key=3,
        code="DD",
        name="Digital full service DTS",
        service_type=FULL_SERVICE_DIGITAL,
        is_dts=True,
    ),
    Service(
        key=4,
        code="CA",
        name="Analog Class A",
        service_type=CLASS_A_ANALOG,
        digital_code="DC",
    ),
    Service(key=5, code="DC", name="Digital Class A", service_type=CLASS_A_DIGITAL),
    Service(key=6, code="LD", name="Digital LPTV", service_type=LPTV_DIGITAL),
    Service(
        key=7,
        code="TX",
        name="Analog LPTV / translator",
        service_type=LPTV_ANALOG,
        digital_code="LD",
    ),
)

COUNTRIES: tuple[Country, ...] = (
    Country(key=1, code="US", name="United States"),
    Country(key=2, code="CA", name="Canada"),
    Country(key=3, code="MX", name="Mexico"),
)

ZONES: tuple[Zone, ...] = (
    Zone(key=1, name="I"),
    Zone(key=2, name="II"),
    Zone(key=3, name="III"),
)

SIGNAL_TYPES: tuple[SignalType, ...] = (
    SignalType.default(),
    SignalType(key=2, name="ATSC 3.0"),
)

EMISSION_MASKS: tuple[EmissionMask, ...] = (
    EmissionMask.default(),
    EmissionMask(key=2, name="Stringent"),
    EmissionMask(key=3, name="Full Service"),
)

FREQUENCY_OFFSETS: tuple[FrequencyOffset, ...] = (
    FrequencyOffset(key=1, name="Plus"),
    FrequencyOffset(key=2, name="Zero"),
    FrequencyOffset(key=3, name="Minus"),
)

_SERVICES_BY_CODE = {s.code: s for s in SERVICES}
_SERVICES_BY_KEY = {s.key: s for s in SERVICES}
_COUNTRIES_BY_CODE = {c.code: c for c in COUNTRIES}
_COUNTRIES_BY_KEY = {c.key: c for c in COUNTRIES}


def get_service(code: str) -> Service | None:
    return _SERVICES_BY_CODE.get(code.upper())


def get_service_by_key(key: int) -> Service | None:
    return _SERVICES_BY_KEY.get(key)


def get_country(code: str) -> Country | None:
    return _COUNTRIES_BY_CODE.get(code.upper())


def get_country_by_key(key: int) -> Country | None:
    return _COUNTRIES_BY_KEY.get(key)


def digital_equivalent(service: Service) -> Service | None:
    """Digital service replacing an analog one, or the service itself if digital."""
    if service.is_digital:
        return service
    if service.digital_code is None:
        return None
    return get_service(service.digital_code)


def default_dts_member_service(service: Service | None) -> Service:
    """Service for a DTS reference facility, which is never itself DTS."""
    if service is None or service.is_dts:
        return _SERVICES_BY_CODE["DT"]
    return service


def _lookup(choices, cls, key: int):
    if key == 0:
        return cls.null()
    for choice in choices:
        if choice.key == key:
            return choice
    return cls.invalid()


def get_zone(key: int) -> Zone:
    return _lookup(ZONES, Zone, key)


def get_signal_type(key: int) -> SignalType:
    return _lookup(SIGNAL_TYPES, SignalType, key)


def get_emission_mask(key: int) -> EmissionMask:
    return _lookup(EMISSION_MASKS, EmissionMask, key)


def get_frequency_offset(key: int) -> FrequencyOffset:
    return _lookup(FREQUENCY_OFFSETS, FrequencyOffset, key)
