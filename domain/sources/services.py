"""Sources Bounded Context - Domain Services.

Pure domain logic used alongside source records: geodesic radius checks,
DTS sector list parsing, channel frequencies and the rule extra distance
lookup. NO I/O operations.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pyproj import Geod

from domain.sources.repositories import ParameterLookup
from domain.sources.value_objects import (
    DEFAULT_RULE_EXTRA_DISTANCE,
    SECTOR_RADIUS_MAX,
    SECTOR_RADIUS_MIN,
    GeoPoint,
)

if TYPE_CHECKING:
    from domain.sources.entities import Source

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
CURVE_F50 = 0
CURVE_F10 = 1
CURVE_F90 = 2

# Rule extra distance for F(50,10) service, km
F10_RULE_EXTRA_DISTANCE = 300.0

# F(50,90) and F(50,50) curves differ by about 8 dB at service distances
CURVE_SET_OFFSET_DB = 8.0

UHF_REFERENCE_CHANNEL = 14
US_COUNTRY_KEY = 1

# WGS84 ellipsoid for geodesic calculations
_geod = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Geodesic Distance
# ---------------------------------------------------------------------------
def geodesic_distance_km(start: GeoPoint, end: GeoPoint) -> float:
    """Distance between two points in kilometers on the WGS84 ellipsoid."""
    _, _, distance = _geod.inv(
        start.longitude, start.latitude, end.longitude, end.latitude
    )
    return float(abs(distance)) / 1000.0


def within_radius(source: "Source", center: GeoPoint, radius_km: float) -> bool:
    """Check whether a source lies within a search radius.

    A DTS parent matches when any of its transmitter sites is inside; the
    reference facility is not an operating transmitter and is ignored. A
    parent with no sites falls back to its own location.
    """
    if source.is_parent:
        sites = [m for m in source.dts_sources if m.site_number > 0]
        if sites:
            return any(
                geodesic_distance_km(center, site.location) <= radius_km
                for site in sites
            )
    return geodesic_distance_km(center, source.location) <= radius_km


# ---------------------------------------------------------------------------
# Channel Frequency
# ---------------------------------------------------------------------------
def frequency_mhz(channel: int) -> float:
    """Center frequency of a 6 MHz TV channel."""
    if channel < 2 or channel > 69:
        raise ValueError(f"No TV frequency for channel {channel}")
    if channel < 5:
        low = 54.0 + (channel - 2) * 6.0
    elif channel < 7:
        low = 76.0 + (channel - 5) * 6.0
    elif channel < 14:
        low = 174.0 + (channel - 7) * 6.0
    else:
        low = 470.0 + (channel - 14) * 6.0
    return low + 3.0


# ---------------------------------------------------------------------------
# DTS Sectors
# ---------------------------------------------------------------------------
def parse_sectors(text: str) -> list[tuple[float, float]]:
    """Parse a DTS sector list into (start azimuth, radius km) pairs.

    Format is ``start,radius,end;start,radius,end;...``. Sectors must be
    contiguous, there must be at least two, and the last must end where the
    first started. Raises ValueError with a user-facing message otherwise.
    """
    sectors: list[tuple[float, float]] = []
    first_az: float | None = None
    last_az: float | None = None

    for chunk in text.split(";"):
        if not chunk.strip():
            continue
        parts = chunk.split(",")
        if len(parts) != 3:
            raise ValueError("Bad format in sector list")

        az = _parse_float(parts[0])
        if az is None or az < 0.0 or az > 360.0:
            if last_az is None:
                raise ValueError("Bad sector list, missing or bad start azimuth")
            raise ValueError(
                f"Bad sector list, missing or bad start azimuth after {last_az:.1f}"
            )
        if first_az is None:
            first_az = az + 360.0
        elif az != last_az:
            raise ValueError(
                f"Bad sector list, out of sequence or gap after {last_az:.1f}"
            )

        radius = _parse_float(parts[1])
        if radius is None or not (SECTOR_RADIUS_MIN <= radius <= SECTOR_RADIUS_MAX):
            raise ValueError(f"Bad sector list, missing or bad radius at {az:.1f}")

        end = _parse_float(parts[2])
        if end is None or end <= az:
            raise ValueError(f"Bad sector list, missing or bad end azimuth at {az:.1f}")
        if end - az < 1.0:
            raise ValueError(
                f"Bad sector list, sector at {az:.1f} spans less than 1 degree"
            )

        sectors.append((az, radius))
        last_az = end

    if len(sectors) < 2:
        raise ValueError("Bad sector list, must have at least 2 sectors")
    if last_az != first_az:
        raise ValueError("Bad sector list, gap at start/end")
    return sectors


def validate_sectors(text: str) -> str | None:
    """Return an error message for a bad sector list, None if it is valid."""
    try:
        parse_sectors(text)
    except ValueError as e:
        return str(e)
    return None


def _parse_float(text: str) -> float | None:
    text = text.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Rule Extra Distance
# ---------------------------------------------------------------------------
def rule_extra_distance(
    source: "Source", parameters: ParameterLookup | None = None
) -> float:
    """Extra search distance beyond the interference rule distance, km.

    The source's ERP is normalized to a US full-service digital UHF station
    using the study contour levels and curve sets, then bucketed against the
    study's ERP thresholds.
    """
    if parameters is None and source.study is not None:
        parameters = source.study.parameters
    if parameters is None:
        return DEFAULT_RULE_EXTRA_DISTANCE
    if parameters.use_max_rule_extra_distance:
        return parameters.maximum_distance
    if source.is_parent or source.peak_erp <= 0.0:
        return DEFAULT_RULE_EXTRA_DISTANCE

    service_type = source.service.service_type
    country_key = source.country.key
    contour_level = parameters.contour_level(
        country_key, source.channel, service_type.digital, service_type.low_power
    )
    curve = parameters.curve_set(country_key, service_type.digital)
    if curve == CURVE_F10:
        return F10_RULE_EXTRA_DISTANCE

    reference_level = parameters.contour_level(
        US_COUNTRY_KEY, UHF_REFERENCE_CHANNEL, True, False
    )
    erp_dbk = 10.0 * math.log10(source.peak_erp) + (reference_level - contour_level)

    reference_curve = parameters.curve_set(US_COUNTRY_KEY, True)
    if reference_curve == CURVE_F90 and curve == CURVE_F50:
        erp_dbk += CURVE_SET_OFFSET_DB
    elif reference_curve == CURVE_F50 and curve == CURVE_F90:
        erp_dbk -= CURVE_SET_OFFSET_DB

    erp_low, erp_medium, erp_high = parameters.rule_extra_distance_erp()
    low, low_medium, medium_high, high = parameters.rule_extra_distances()
    if erp_dbk < erp_low:
        return low
    if erp_dbk < erp_medium:
        return low_medium
    if erp_dbk < erp_high:
        return medium_high
    return high
