"""Pytest configuration for sources domain tests.

Provides a recording SourceStore fake so persistence ordering can be
asserted statement by statement without a database.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from domain.sources.errors import StoreFailureError


class RecordingStore:
    """SourceStore fake that records every call in order.

    `fail_on` makes the first statement containing that text raise
    StoreFailureError, the way the SQLAlchemy adapter reports driver errors.
    """

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fail_on = fail_on

    def query(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[Mapping[str, Any]]:
        self.calls.append(("query", sql))
        return []

    def update(
        self,
        sql: str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    ) -> int:
        if self.fail_on is not None and self.fail_on in sql:
            raise StoreFailureError(f"Update failed: {sql}")
        self.calls.append((sql, params))
        return 1

    def begin(self) -> None:
        self.calls.append(("begin", None))

    def commit(self) -> None:
        self.calls.append(("commit", None))

    def rollback(self) -> None:
        self.calls.append(("rollback", None))

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.calls]

    def inserted_keys(self) -> list[int]:
        """Source keys of rows inserted into the source table, in order."""
        return [
            params["source_key"]
            for sql, params in self.calls
            if sql.startswith("INSERT INTO source ")
        ]

    def inserted_row(self, key: int) -> Mapping[str, Any]:
        for sql, params in self.calls:
            if sql.startswith("INSERT INTO source ") and params["source_key"] == key:
                return params
        raise KeyError(key)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()
