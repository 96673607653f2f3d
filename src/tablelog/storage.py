"""Storage boundary (SQL executors).

The synchronizer and handler only talk to storage through `SQLExecutor`.
Executors are synchronous and translate driver exceptions into `StorageError`
so callers never see driver-specific types.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import duckdb

from .dialects import Dialect, DuckDBDialect, SQLiteDialect
from .errors import StorageConnectionError, StorageError


class SQLExecutor(Protocol):
    """A blocking SQL execution interface."""

    dialect: Dialect

    def execute(self, sql: str) -> None:
        """Run a statement that returns no rows."""

    def query_columns(self, sql: str) -> list[str]:
        """Run a query and return the names of its result columns."""

    def query_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Run a query and return all rows."""

    def execute_params(self, sql: str, params: Mapping[str, Any]) -> None:
        """Run a statement with named bound parameters."""

    def close(self) -> None:
        """Close any underlying resources."""


class DBAPIExecutor:
    """Executor over any PEP 249 connection.

    Statements run on a fresh cursor and are committed right away, so DDL and
    inserts behave the same on engines with and without transactional DDL.
    """

    # Driver exception types translated into StorageError.
    driver_errors: tuple[type[BaseException], ...] = (Exception,)

    def __init__(self, connection: Any, *, dialect: Dialect, autocommit: bool = True) -> None:
        self._conn = connection
        self._lock = threading.Lock()
        self._autocommit = autocommit
        self.dialect = dialect

    @property
    def connection(self) -> Any:
        """The wrapped PEP 249 connection."""
        return self._conn

    def _commit(self) -> None:
        if self._autocommit:
            self._conn.commit()

    def execute(self, sql: str) -> None:
        """Run a statement that returns no rows and commit it."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                try:
                    cur.execute(sql)
                finally:
                    cur.close()
                self._commit()
            except self.driver_errors as exc:
                raise StorageError(f"Statement failed: {exc}") from exc

    def query_columns(self, sql: str) -> list[str]:
        """Run a query and return its column names from the cursor description."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                try:
                    cur.execute(sql)
                    description = cur.description or []
                finally:
                    cur.close()
            except self.driver_errors as exc:
                raise StorageError(f"Query failed: {exc}") from exc
        return [column[0] for column in description]

    def query_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Run a query and return all rows as tuples."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                try:
                    cur.execute(sql)
                    rows = cur.fetchall()
                finally:
                    cur.close()
            except self.driver_errors as exc:
                raise StorageError(f"Query failed: {exc}") from exc
        return [tuple(row) for row in rows]

    def execute_params(self, sql: str, params: Mapping[str, Any]) -> None:
        """Run a statement with bound parameters and commit it."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                try:
                    cur.execute(sql, dict(params))
                finally:
                    cur.close()
                self._commit()
            except self.driver_errors as exc:
                raise StorageError(f"Statement failed: {exc}") from exc

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()


class SQLiteExecutor(DBAPIExecutor):
    """`sqlite3` executor (`:name` placeholders)."""

    driver_errors = (sqlite3.Error,)

    def __init__(self, connection: sqlite3.Connection) -> None:
        super().__init__(connection, dialect=SQLiteDialect())

    @classmethod
    def connect(cls, path: str | Path = ":memory:") -> SQLiteExecutor:
        """Open (or create) a SQLite database at `path`."""
        try:
            # The handler serializes access itself; allow use from logging threads.
            conn = sqlite3.connect(str(path), check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageConnectionError(f"Cannot open SQLite database at {path!s}: {exc}") from exc
        return cls(conn)


class DuckDBExecutor:
    """DuckDB executor for durable local persistence (`$name` placeholders)."""

    def __init__(self, connection: duckdb.DuckDBPyConnection) -> None:
        self._conn = connection
        self._lock = threading.Lock()
        self.dialect: Dialect = DuckDBDialect()

    @classmethod
    def connect(cls, path: str | Path = ":memory:") -> DuckDBExecutor:
        """Create (or open) a DuckDB database at the given path."""
        try:
            conn = duckdb.connect(str(path))
        except duckdb.Error as exc:
            raise StorageConnectionError(f"Cannot open DuckDB database at {path!s}: {exc}") from exc
        return cls(conn)

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """The wrapped DuckDB connection."""
        return self._conn

    def execute(self, sql: str) -> None:
        """Run a statement that returns no rows."""
        with self._lock:
            try:
                self._conn.execute(sql)
            except duckdb.Error as exc:
                raise StorageError(f"Statement failed: {exc}") from exc

    def query_columns(self, sql: str) -> list[str]:
        """Run a query and return the names of its result columns."""
        with self._lock:
            try:
                description = self._conn.execute(sql).description or []
            except duckdb.Error as exc:
                raise StorageError(f"Query failed: {exc}") from exc
        return [column[0] for column in description]

    def query_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Run a query and return all rows as tuples."""
        with self._lock:
            try:
                rows = self._conn.execute(sql).fetchall()
            except duckdb.Error as exc:
                raise StorageError(f"Query failed: {exc}") from exc
        return [tuple(row) for row in rows]

    def execute_params(self, sql: str, params: Mapping[str, Any]) -> None:
        """Run a statement with `$name` bound parameters."""
        with self._lock:
            try:
                self._conn.execute(sql, dict(params))
            except duckdb.Error as exc:
                raise StorageError(f"Statement failed: {exc}") from exc

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()
