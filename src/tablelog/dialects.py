"""SQL statement text per storage engine.

A dialect only renders strings; it never touches a connection. The MySQL
dialect emits backtick-quoted statements with `:name` placeholders; the
SQLite and DuckDB dialects render the same operations with the types, quoting
and placeholders those engines understand.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import ClassVar, Final

from .schema import IDENTITY_COLUMN, TIME_COLUMN, TimeEncoding

# Placeholder templates keyed by parameter style.
_PLACEHOLDERS: Final[dict[str, str]] = {
    "named": ":{name}",
    "pyformat": "%({name})s",
    "dollar": "${name}",
}


class Dialect:
    """Base dialect: ANSI double-quoted identifiers, `:name` placeholders."""

    name: ClassVar[str] = "ansi"
    default_paramstyle: ClassVar[str] = "named"
    # MySQL, SQLite and DuckDB all resolve column names case-insensitively.
    case_sensitive: ClassVar[bool] = False

    def __init__(self, *, paramstyle: str | None = None) -> None:
        paramstyle = paramstyle or self.default_paramstyle
        if paramstyle not in _PLACEHOLDERS:
            raise ValueError(
                f"Unsupported paramstyle: {paramstyle!r}. Supported: {', '.join(_PLACEHOLDERS)}"
            )
        self.paramstyle = paramstyle

    def __repr__(self) -> str:
        return f"{type(self).__name__}(paramstyle={self.paramstyle!r})"

    # Building blocks

    def quote(self, identifier: str) -> str:
        return f'"{identifier}"'

    def placeholder(self, column: str) -> str:
        return _PLACEHOLDERS[self.paramstyle].format(name=column)

    def time_type(self, encoding: TimeEncoding) -> str:
        if encoding is TimeEncoding.DATETIME:
            return "TIMESTAMP"
        return "INTEGER"

    def additional_column_type(self) -> str:
        return "TEXT"

    # Table creation

    def create_table_statements(self, table: str, time_encoding: TimeEncoding) -> list[str]:
        """Statements that create the table (and its indexes) when absent."""
        raise NotImplementedError

    def time_index_statements(self, table: str) -> list[str]:
        """Statements that (re)create the index on the time column."""
        return []

    def drop_time_index_statements(self, table: str) -> list[str]:
        return []

    # Introspection and column changes

    def select_columns_sql(self, table: str) -> str:
        return f"SELECT * FROM {self.quote(table)} LIMIT 0;"

    def drop_column_sql(self, table: str, column: str) -> str:
        return f"ALTER TABLE {self.quote(table)} DROP COLUMN {self.quote(column)};"

    def add_column_sql(self, table: str, column: str) -> str:
        return (
            f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.quote(column)} "
            f"{self.additional_column_type()} DEFAULT NULL;"
        )

    def add_typed_column_sql(self, table: str, column: str, column_type: str) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.quote(column)} {column_type} DEFAULT NULL;"

    def rename_column_sql(self, table: str, old: str, new: str) -> str:
        return f"ALTER TABLE {self.quote(table)} RENAME COLUMN {self.quote(old)} TO {self.quote(new)};"

    # Data statements

    def insert_sql(self, table: str, columns: Sequence[str]) -> str:
        names = ", ".join(self.quote(c) for c in columns)
        values = ", ".join(self.placeholder(c) for c in columns)
        return f"INSERT INTO {self.quote(table)} ({names}) VALUES ({values});"

    def select_time_values_sql(self, table: str) -> str:
        return f"SELECT {self.quote(IDENTITY_COLUMN)}, {self.quote(TIME_COLUMN)} FROM {self.quote(table)};"

    def update_by_id_sql(self, table: str, column: str) -> str:
        """UPDATE binding `value` and `id` parameters."""
        return (
            f"UPDATE {self.quote(table)} SET {self.quote(column)} = {self.placeholder('value')} "
            f"WHERE {self.quote(IDENTITY_COLUMN)} = {self.placeholder(IDENTITY_COLUMN)};"
        )


class MySQLDialect(Dialect):
    """MySQL statements (backtick quoting, AUTO_INCREMENT identity)."""

    name = "mysql"

    def quote(self, identifier: str) -> str:
        return f"`{identifier}`"

    def time_type(self, encoding: TimeEncoding) -> str:
        if encoding is TimeEncoding.DATETIME:
            return "DATETIME"
        return "INTEGER UNSIGNED"

    def create_table_statements(self, table: str, time_encoding: TimeEncoding) -> list[str]:
        return [
            f"CREATE TABLE IF NOT EXISTS {self.quote(table)} ("
            "id BIGINT(20) UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY, "
            "channel VARCHAR(255), "
            "level INTEGER, "
            "message LONGTEXT, "
            f"time {self.time_type(time_encoding)}, "
            "INDEX(channel) USING HASH, "
            "INDEX(level) USING HASH, "
            "INDEX(time) USING BTREE)"
        ]

    def time_index_statements(self, table: str) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} ADD INDEX(time) USING BTREE;"]

    def drop_time_index_statements(self, table: str) -> list[str]:
        # MySQL names an unnamed single-column index after its column.
        return [f"ALTER TABLE {self.quote(table)} DROP INDEX {self.quote(TIME_COLUMN)};"]

    def drop_column_sql(self, table: str, column: str) -> str:
        return f"ALTER TABLE {self.quote(table)} DROP {self.quote(column)};"

    def add_column_sql(self, table: str, column: str) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD {self.quote(column)} TEXT NULL DEFAULT NULL;"

    def add_typed_column_sql(self, table: str, column: str, column_type: str) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD {self.quote(column)} {column_type} NULL DEFAULT NULL;"

class SQLiteDialect(Dialect):
    name = "sqlite"

    def time_type(self, encoding: TimeEncoding) -> str:
        if encoding is TimeEncoding.DATETIME:
            return "DATETIME"
        return "INTEGER UNSIGNED"

    def create_table_statements(self, table: str, time_encoding: TimeEncoding) -> list[str]:
        q = self.quote
        return [
            f"CREATE TABLE IF NOT EXISTS {q(table)} ("
            f"{q('id')} INTEGER PRIMARY KEY AUTOINCREMENT, "
            f"{q('channel')} VARCHAR(255), "
            f"{q('level')} INTEGER, "
            f"{q('message')} TEXT, "
            f"{q('time')} {self.time_type(time_encoding)})",
            f"CREATE INDEX IF NOT EXISTS {q(table + '_channel_idx')} ON {q(table)} ({q('channel')})",
            f"CREATE INDEX IF NOT EXISTS {q(table + '_level_idx')} ON {q(table)} ({q('level')})",
            *self.time_index_statements(table),
        ]

    def time_index_statements(self, table: str) -> list[str]:
        q = self.quote
        return [f"CREATE INDEX IF NOT EXISTS {q(table + '_time_idx')} ON {q(table)} ({q('time')})"]

    def drop_time_index_statements(self, table: str) -> list[str]:
        return [f"DROP INDEX IF EXISTS {self.quote(table + '_time_idx')}"]


class DuckDBDialect(Dialect):
    """DuckDB statements.

    The identity column is a primary key fed by a sequence. No secondary indexes
    are created: DuckDB refuses DROP COLUMN on tables carrying secondary indexes,
    and its min-max zonemaps already prune scans on channel/level/time.
    """

    name = "duckdb"
    default_paramstyle = "dollar"

    def time_type(self, encoding: TimeEncoding) -> str:
        if encoding is TimeEncoding.DATETIME:
            return "TIMESTAMP"
        return "UINTEGER"

    def sequence_name(self, table: str) -> str:
        return f"{table}_id_seq"

    def create_table_statements(self, table: str, time_encoding: TimeEncoding) -> list[str]:
        q = self.quote
        seq = self.sequence_name(table)
        return [
            f"CREATE SEQUENCE IF NOT EXISTS {q(seq)}",
            f"CREATE TABLE IF NOT EXISTS {q(table)} ("
            f"{q('id')} UBIGINT PRIMARY KEY DEFAULT nextval('{seq}'), "
            f"{q('channel')} VARCHAR(255), "
            f"{q('level')} INTEGER, "
            f"{q('message')} TEXT, "
            f"{q('time')} {self.time_type(time_encoding)})",
        ]


_DIALECTS: Final[dict[str, type[Dialect]]] = {
    MySQLDialect.name: MySQLDialect,
    SQLiteDialect.name: SQLiteDialect,
    DuckDBDialect.name: DuckDBDialect,
}
ALLOWED_DIALECTS = list(_DIALECTS.keys())


def get_dialect(name: str, *, paramstyle: str | None = None) -> Dialect:
    """Return a dialect instance by engine name (case-insensitive)."""
    key = name.strip().lower()
    if key not in _DIALECTS:
        raise ValueError(f"Unsupported dialect: {name!r}. Supported dialects: {', '.join(ALLOWED_DIALECTS)}")
    return _DIALECTS[key](paramstyle=paramstyle)
