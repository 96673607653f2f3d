from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from typing import Any

import pytest

from tablelog.dialects import MySQLDialect
from tablelog.errors import StorageError
from tablelog.schema import DEFAULT_COLUMNS
from tablelog.storage import DuckDBExecutor, SQLiteExecutor

_DROP_RE = re.compile(r"^ALTER TABLE `[^`]+` DROP `([^`]+)`;$")
_ADD_RE = re.compile(r"^ALTER TABLE `[^`]+` ADD `([^`]+)` ")


class RecordingExecutor:
    """Fake executor speaking the MySQL dialect.

    Keeps an in-memory column list so ADD/DROP statements have visible effects,
    and records every statement for assertions.
    """

    def __init__(self, columns: list[str] | None = None) -> None:
        self.dialect = MySQLDialect()
        self.columns: list[str] | None = list(columns) if columns is not None else None
        self.statements: list[str] = []
        self.queries: list[str] = []
        self.inserts: list[tuple[str, dict[str, Any]]] = []
        self.fail_on: str | None = None
        self.closed = False

    @property
    def io_count(self) -> int:
        return len(self.statements) + len(self.queries) + len(self.inserts)

    def _maybe_fail(self, sql: str) -> None:
        if self.fail_on is not None and self.fail_on in sql:
            raise StorageError(f"boom: {sql}")

    def execute(self, sql: str) -> None:
        self._maybe_fail(sql)
        self.statements.append(sql)
        if sql.startswith("CREATE TABLE IF NOT EXISTS") and self.columns is None:
            self.columns = list(DEFAULT_COLUMNS)
        elif (m := _DROP_RE.match(sql)) is not None:
            assert self.columns is not None
            self.columns.remove(m.group(1))
        elif (m := _ADD_RE.match(sql)) is not None:
            assert self.columns is not None
            self.columns.append(m.group(1))

    def query_columns(self, sql: str) -> list[str]:
        self._maybe_fail(sql)
        self.queries.append(sql)
        if self.columns is None:
            raise StorageError("no such table")
        return list(self.columns)

    def query_rows(self, sql: str) -> list[tuple[Any, ...]]:
        self._maybe_fail(sql)
        self.queries.append(sql)
        return []

    def execute_params(self, sql: str, params: Mapping[str, Any]) -> None:
        self._maybe_fail(sql)
        self.inserts.append((sql, dict(params)))

    def close(self) -> None:
        self.closed = True

    def ddl(self, keyword: str) -> list[str]:
        return [s for s in self.statements if f" {keyword} " in s]


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def sqlite_executor() -> Iterator[SQLiteExecutor]:
    executor = SQLiteExecutor.connect(":memory:")
    yield executor
    executor.close()


@pytest.fixture
def duckdb_executor() -> Iterator[DuckDBExecutor]:
    executor = DuckDBExecutor.connect(":memory:")
    yield executor
    executor.close()


@pytest.fixture(params=["sqlite", "duckdb"])
def real_executor(request: pytest.FixtureRequest) -> Iterator[SQLiteExecutor | DuckDBExecutor]:
    """Each end-to-end test runs once per bundled backend."""
    if request.param == "sqlite":
        executor: SQLiteExecutor | DuckDBExecutor = SQLiteExecutor.connect(":memory:")
    else:
        executor = DuckDBExecutor.connect(":memory:")
    yield executor
    executor.close()
