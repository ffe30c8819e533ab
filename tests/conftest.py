"""Root pytest configuration for all tests.

Shared fixtures build a study and factories for valid source records and
DTS groups. Records come out of the real factories in domain.sources so
tests exercise the same construction path as application code.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from domain.sources import catalog
from domain.sources.derivation import (
    add_dts_reference_source,
    create_dts_source,
    create_source,
)
from domain.sources.entities import Source
from domain.sources.study import StudyContext
from domain.sources.value_objects import GeoPoint

# Philadelphia area, used as the default transmitter location
BASE_LATITUDE = 40.0
BASE_LONGITUDE = -75.0


def fill_valid_fields(
    source: Source,
    channel: int = 20,
    latitude: float = BASE_LATITUDE,
    longitude: float = BASE_LONGITUDE,
) -> Source:
    """Set the minimum field values for a record to pass validation."""
    source.call_sign = "WAAA"
    source.channel = channel
    source.city = "PHILADELPHIA"
    source.state = "PA"
    source.status = "LIC"
    source.file_number = "BLCDT-20200101AAA"
    source.location = GeoPoint(latitude=latitude, longitude=longitude)
    source.height_amsl = 300.0
    source.overall_haat = 250.0
    source.peak_erp = 100.0
    return source


@pytest.fixture
def study() -> StudyContext:
    return StudyContext(db_id="test-db", name="Test study")


@pytest.fixture
def make_source(study: StudyContext) -> Callable[..., Source]:
    """Factory for a valid, unlocked standalone record in the study."""

    def _make(service_code: str = "DT", facility_id: int = 1000, **fields) -> Source:
        source = create_source(
            study,
            facility_id,
            catalog.get_service(service_code),
            catalog.get_country("US"),
        )
        fill_valid_fields(source)
        for name, value in fields.items():
            setattr(source, name, value)
        return source

    return _make


@pytest.fixture
def make_group(study: StudyContext) -> Callable[..., Source]:
    """Factory for a valid DTS group: a reference facility plus N sites.

    Sites are spread 0.1 degree apart in latitude north of the parent.
    """

    def _make(site_count: int = 2, facility_id: int = 2000) -> Source:
        parent = create_source(
            study,
            facility_id,
            catalog.get_service("DD"),
            catalog.get_country("US"),
        )
        fill_valid_fields(parent)
        add_dts_reference_source(parent)
        for _ in range(site_count):
            site_number = parent.next_dts_site_number()
            site = create_dts_source(parent, site_number)
            site.location = GeoPoint(
                latitude=BASE_LATITUDE + 0.1 * site_number, longitude=BASE_LONGITUDE
            )
            site.height_amsl = 200.0
            site.overall_haat = 150.0
            site.peak_erp = 15.0
            parent.add_or_replace_dts_source(site)
        return parent

    return _make
