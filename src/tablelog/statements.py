"""INSERT statement building.

Statement text depends on which columns a row carries, so it is keyed by the
row's column tuple rather than built once per handler.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .dialects import Dialect
from .errors import InsertError
from .schema import IDENTITY_COLUMN


def build_insert(table: str, row: Mapping[str, Any], dialect: Dialect) -> tuple[str, dict[str, Any]]:
    """Return `(sql, params)` inserting `row` into `table`.

    Columns keep the row's order; the identity column is never written.
    """
    params = {column: value for column, value in row.items() if column != IDENTITY_COLUMN}
    if not params:
        raise InsertError(f"Cannot build an INSERT for {table!r} without columns")
    return dialect.insert_sql(table, list(params)), params


class InsertBuilder:
    """Caches INSERT text per column signature for one table."""

    def __init__(self, table: str, dialect: Dialect) -> None:
        self.table = table
        self.dialect = dialect
        self._statements: dict[tuple[str, ...], str] = {}

    def build(self, row: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        """Return `(sql, params)` for `row`, reusing text for a known column signature."""
        params = {column: value for column, value in row.items() if column != IDENTITY_COLUMN}
        signature = tuple(params)
        sql = self._statements.get(signature)
        if sql is None:
            sql, params = build_insert(self.table, params, self.dialect)
            self._statements[signature] = sql
        return sql, params

    def clear(self) -> None:
        """Forget cached statements (after the table's columns changed)."""
        self._statements.clear()

    def cache_info(self) -> int:
        """Number of distinct column signatures seen so far."""
        return len(self._statements)
