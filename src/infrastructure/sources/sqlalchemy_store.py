"""SQLAlchemy adapter for SourceStore.

Runs the persistence coordinator's textual SQL on one SQLAlchemy connection.
Statements outside an explicit transaction are committed as they go; between
`begin()` and `commit()`/`rollback()` they share one transaction.

Every SQLAlchemyError is translated to StoreFailureError so the domain never
sees driver exceptions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from domain.sources.errors import StoreFailureError
from infrastructure.sources.models import init_db

logger = logging.getLogger(__name__)


class SqlAlchemyStore:
    """Infrastructure adapter backing source records with a SQL database.

    Parameters
    ----------
    url: str
        SQLAlchemy database URL, e.g. ``sqlite:///sources.db``.
    echo: bool
        Log every statement through the ``sqlalchemy.engine`` logger.
    create_tables: bool
        Create missing source tables on open.
    """

    def __init__(self, url: str, echo: bool = False, create_tables: bool = True):
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        try:
            self.engine: Engine = create_engine(
                url, echo=echo, connect_args=connect_args
            )
            if create_tables:
                init_db(self.engine)
            self._conn: Connection = self.engine.connect()
        except SQLAlchemyError as e:
            raise StoreFailureError(f"Cannot open store: {e}") from e
        self._lock = threading.RLock()
        self._in_transaction = False
        logger.debug("Opened source store %s", self.engine.url)

    # -----------------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------------
    def begin(self) -> None:
        with self._lock:
            if self._in_transaction:
                raise StoreFailureError("Transaction already in progress")
            # Close out any autobegun transaction before starting our own
            if self._conn.in_transaction():
                self._conn.commit()
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            try:
                self._conn.commit()
            except SQLAlchemyError as e:
                raise StoreFailureError(f"Commit failed: {e}") from e
            finally:
                self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            try:
                self._conn.rollback()
            except SQLAlchemyError as e:
                raise StoreFailureError(f"Rollback failed: {e}") from e
            finally:
                self._in_transaction = False

    # -----------------------------------------------------------------------
    # Statements
    # -----------------------------------------------------------------------
    def query(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        with self._lock:
            try:
                result = self._conn.execute(text(sql), dict(params or {}))
                rows = [dict(row) for row in result.mappings()]
            except SQLAlchemyError as e:
                self._end_statement(failed=True)
                raise StoreFailureError(f"Query failed: {e}") from e
            self._end_statement()
            return rows

    def update(
        self,
        sql: str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    ) -> int:
        if params is None:
            bound: Any = {}
        elif isinstance(params, Mapping):
            bound = dict(params)
        else:
            bound = [dict(p) for p in params]
            if not bound:
                return 0
        with self._lock:
            try:
                result = self._conn.execute(text(sql), bound)
                count = max(result.rowcount, 0)
            except SQLAlchemyError as e:
                self._end_statement(failed=True)
                raise StoreFailureError(f"Update failed: {e}") from e
            self._end_statement()
            return count

    def _end_statement(self, failed: bool = False) -> None:
        if self._in_transaction:
            return
        if failed:
            self._conn.rollback()
        else:
            self._conn.commit()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    def close(self) -> None:
        with self._lock:
            if self._in_transaction:
                logger.warning("Closing source store with an open transaction")
                self._conn.rollback()
                self._in_transaction = False
            self._conn.close()
            self.engine.dispose()

    def __enter__(self) -> "SqlAlchemyStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
