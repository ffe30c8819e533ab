"""SQLAlchemy table definitions for source records.

Column names match the rows written by domain.sources.persistence; the
pattern tables hold one row per pattern point.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Integer, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SourceRow(Base):
    __tablename__ = "source"

    source_key = Column(Integer, primary_key=True)
    parent_source_key = Column(Integer, index=True, nullable=True)
    original_source_key = Column(Integer, nullable=True)
    facility_id = Column(Integer, nullable=False, default=0)
    service_key = Column(Integer, nullable=False)
    country_key = Column(Integer, nullable=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    is_drt = Column(Boolean, nullable=False, default=False)
    is_parent = Column(Boolean, nullable=False, default=False)
    user_record_id = Column(Integer, nullable=True)
    ext_db_key = Column(Integer, nullable=True)
    ext_record_id = Column(String, nullable=True)
    mod_count = Column(Integer, nullable=False, default=0)

    call_sign = Column(String, nullable=False, default="")
    channel = Column(Integer, nullable=False, default=0)
    city = Column(String, nullable=False, default="")
    state = Column(String, nullable=False, default="")
    zone_key = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="")
    file_number = Column(String, nullable=False, default="")
    signal_type_key = Column(Integer, nullable=False, default=0)
    frequency_offset_key = Column(Integer, nullable=False, default=0)
    emission_mask_key = Column(Integer, nullable=False, default=0)
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)
    dts_maximum_distance = Column(Float, nullable=False, default=0.0)
    dts_sectors = Column(Text, nullable=False, default="")
    height_amsl = Column(Float, nullable=False, default=0.0)
    overall_haat = Column(Float, nullable=False, default=0.0)
    peak_erp = Column(Float, nullable=False)
    antenna_id = Column(String, nullable=True)
    has_horizontal_pattern = Column(Boolean, nullable=False, default=False)
    horizontal_pattern_name = Column(String, nullable=False, default="")
    horizontal_pattern_orientation = Column(Float, nullable=False, default=0.0)
    has_vertical_pattern = Column(Boolean, nullable=False, default=False)
    vertical_pattern_name = Column(String, nullable=False, default="")
    vertical_pattern_electrical_tilt = Column(Float, nullable=False, default=0.0)
    vertical_pattern_mechanical_tilt = Column(Float, nullable=False, default=0.0)
    vertical_pattern_mechanical_tilt_orientation = Column(
        Float, nullable=False, default=0.0
    )
    has_matrix_pattern = Column(Boolean, nullable=False, default=False)
    matrix_pattern_name = Column(String, nullable=False, default="")
    use_generic_vertical_pattern = Column(Boolean, nullable=False, default=True)
    site_number = Column(Integer, nullable=False, default=0)
    service_area_mode = Column(Integer, nullable=False, default=0)
    service_area_arg = Column(Float, nullable=False, default=0.0)
    service_area_cl = Column(Float, nullable=False)
    service_area_key = Column(Integer, nullable=False, default=0)
    dts_time_delay = Column(Float, nullable=False, default=0.0)
    attributes = Column(Text, nullable=False, default="")


class HorizontalPatternRow(Base):
    __tablename__ = "source_horizontal_pattern"

    source_key = Column(Integer, primary_key=True)
    azimuth = Column(Float, primary_key=True)
    relative_field = Column(Float, nullable=False)


class VerticalPatternRow(Base):
    __tablename__ = "source_vertical_pattern"

    source_key = Column(Integer, primary_key=True)
    depression = Column(Float, primary_key=True)
    relative_field = Column(Float, nullable=False)


class MatrixPatternRow(Base):
    __tablename__ = "source_matrix_pattern"

    source_key = Column(Integer, primary_key=True)
    azimuth = Column(Float, primary_key=True)
    depression = Column(Float, primary_key=True)
    relative_field = Column(Float, nullable=False)


def init_db(engine: Engine) -> None:
    """Create any missing source tables."""
    Base.metadata.create_all(bind=engine)
