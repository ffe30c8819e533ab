"""Sources Bounded Context - Antenna Pattern Value Object.

Pattern point data is held in read-only numpy arrays. Only structural
checks happen at construction; range checks are done by `is_data_valid`
so a record carrying a bad pattern can report it through its own
validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from domain.sources.errors import ErrorCollector

AZIMUTH_MIN = 0.0
AZIMUTH_MAX = 359.999
DEPRESSION_MIN = -90.0
DEPRESSION_MAX = 90.0
FIELD_MIN = 0.001
FIELD_MAX = 1.0
PATTERN_REQUIRED_POINTS = 2


class PatternKind(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    MATRIX = "matrix"


def _frozen(values: NDArray, ndim: int, label: str) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64, copy=True, order="C")
    if arr.ndim != ndim:
        raise ValueError(f"{label} must be {ndim}D, got {arr.ndim}D")
    arr.flags.writeable = False
    return arr


class AntennaPattern(BaseModel):
    """Relative-field antenna pattern (Value Object).

    For horizontal and vertical patterns `relative_fields` is 1D and aligned
    with `angles` (azimuth or depression angle). A matrix pattern is a set of
    vertical slices: `relative_fields` is 2D with one row per entry of
    `slice_azimuths`.
    """

    kind: PatternKind
    name: str = ""
    angles: NDArray[np.float64]
    relative_fields: NDArray[np.float64]
    slice_azimuths: NDArray[np.float64] | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @field_validator("angles", "relative_fields", "slice_azimuths", mode="before")
    @classmethod
    def as_array(cls, value: Any) -> Any:
        """Accept any numeric sequence; shape checks happen after."""
        if value is None:
            return None
        return np.asarray(value, dtype=np.float64)

    @model_validator(mode="after")
    def validate_shape(self) -> "AntennaPattern":
        angles = _frozen(self.angles, 1, "angles")
        if self.kind is PatternKind.MATRIX:
            if self.slice_azimuths is None:
                raise ValueError("Matrix pattern requires slice_azimuths")
            azimuths = _frozen(self.slice_azimuths, 1, "slice_azimuths")
            fields = _frozen(self.relative_fields, 2, "relative_fields")
            if fields.shape != (azimuths.size, angles.size):
                raise ValueError(
                    f"Matrix fields shape {fields.shape} does not match "
                    f"({azimuths.size}, {angles.size})"
                )
            object.__setattr__(self, "slice_azimuths", azimuths)
        else:
            if self.slice_azimuths is not None:
                raise ValueError(f"{self.kind.value} pattern cannot have slices")
            fields = _frozen(self.relative_fields, 1, "relative_fields")
            if fields.size != angles.size:
                raise ValueError(
                    f"Got {fields.size} field values for {angles.size} angles"
                )
        object.__setattr__(self, "angles", angles)
        object.__setattr__(self, "relative_fields", fields)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AntennaPattern):
            return NotImplemented
        if self.kind is not other.kind or self.name != other.name:
            return False
        if (self.slice_azimuths is None) != (other.slice_azimuths is None):
            return False
        if self.slice_azimuths is not None and not np.array_equal(
            self.slice_azimuths, other.slice_azimuths
        ):
            return False
        return np.array_equal(self.angles, other.angles) and np.array_equal(
            self.relative_fields, other.relative_fields
        )

    __hash__ = None  # type: ignore[assignment]

    def copy(self) -> "AntennaPattern":  # type: ignore[override]
        """Return an equal pattern that shares no arrays with this one."""
        return AntennaPattern(
            kind=self.kind,
            name=self.name,
            angles=self.angles,
            relative_fields=self.relative_fields,
            slice_azimuths=self.slice_azimuths,
        )

    @property
    def point_count(self) -> int:
        return int(self.angles.size)

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------
    def is_data_valid(self, errors: ErrorCollector | None = None) -> bool:
        def fail(message: str) -> bool:
            if errors is not None:
                errors.report_validation_error(message)
            return False

        if self.kind is PatternKind.HORIZONTAL:
            lo, hi, label = AZIMUTH_MIN, AZIMUTH_MAX, "azimuth"
        else:
            lo, hi, label = DEPRESSION_MIN, DEPRESSION_MAX, "vertical angle"

        if self.kind is PatternKind.MATRIX:
            azimuths = self.slice_azimuths
            if azimuths.size < PATTERN_REQUIRED_POINTS:
                return fail(
                    f"Bad matrix elevation pattern, must have "
                    f"{PATTERN_REQUIRED_POINTS} or more azimuths."
                )
            if np.any(azimuths < AZIMUTH_MIN) or np.any(azimuths > AZIMUTH_MAX):
                return fail(
                    f"Bad matrix elevation pattern azimuth, must be "
                    f"{AZIMUTH_MIN} to {AZIMUTH_MAX}."
                )
            if np.any(np.diff(azimuths) <= 0):
                return fail(
                    "Bad matrix elevation pattern, duplicate or out-of-order azimuths."
                )

        if self.angles.size < PATTERN_REQUIRED_POINTS:
            return fail(
                f"Bad {self.kind.value} pattern, must have "
                f"{PATTERN_REQUIRED_POINTS} or more points."
            )
        if np.any(self.angles < lo) or np.any(self.angles > hi):
            return fail(f"Bad pattern point {label}, must be {lo} to {hi}.")
        if np.any(np.diff(self.angles) <= 0):
            return fail(
                f"Bad {self.kind.value} pattern, duplicate or out-of-order points."
            )
        fields = self.relative_fields
        if np.any(fields < FIELD_MIN) or np.any(fields > FIELD_MAX):
            return fail(
                f"Bad pattern point relative field, must be {FIELD_MIN} to {FIELD_MAX}."
            )
        return True
