"""Domain Port(s) for Source I/O.

Defines interfaces (Protocols) that infrastructure adapters must implement.
No concrete I/O here.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .patterns import AntennaPattern


class SourceStore(Protocol):
    """Port for the backing relational store.

    Statements use named parameters (``:name``). `update` accepts either one
    parameter mapping or a sequence of mappings to execute the statement
    once per entry. Failures surface as StoreFailureError.
    """

    def query(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[Mapping[str, Any]]:
        """Run a SELECT and return rows as mappings keyed by column name."""
        ...

    def update(
        self,
        sql: str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    ) -> int:
        """Run an INSERT/UPDATE/DELETE and return the affected row count."""
        ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class PatternRepository(Protocol):
    """Port for loading antenna patterns that are not resident in memory.

    Returns None when the source has no pattern of that kind.
    """

    def load_horizontal(self, source_key: int) -> AntennaPattern | None: ...

    def load_vertical(self, source_key: int) -> AntennaPattern | None: ...

    def load_matrix(self, source_key: int) -> AntennaPattern | None: ...


class ParameterLookup(Protocol):
    """Port for the study's regulatory parameter tables.

    The numeric contents are owned by the study engine; records only ask
    for the values needed to pick a rule extra distance.
    """

    use_max_rule_extra_distance: bool
    maximum_distance: float

    def contour_level(
        self, country_key: int, channel: int, digital: bool, low_power: bool
    ) -> float:
        """Protected contour level in dBu for the band containing `channel`."""
        ...

    def curve_set(self, country_key: int, digital: bool) -> int: ...

    def rule_extra_distance_erp(self) -> tuple[float, float, float]:
        """ERP thresholds (low, medium, high) in dBk."""
        ...

    def rule_extra_distances(self) -> tuple[float, float, float, float]:
        """Distances (low, low-medium, medium-high, high) in km."""
        ...
