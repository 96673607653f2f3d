"""Schema synchronizer: converge a live log table onto a `Schema`.

`reconcile` creates the table when absent, reads its live columns, then drops
columns that are neither default nor declared and adds declared columns that
are missing. Nothing is rolled back on failure; the DDL of most engines
auto-commits anyway.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from .dialects import Dialect
from .errors import DDLError, SchemaIntrospectionError, StorageError
from .schema import DATETIME_FORMAT, DEFAULT_COLUMNS, IDENTITY_COLUMN, TIME_COLUMN, Schema, TimeEncoding
from .storage import SQLExecutor

_RECODE_COLUMN = "time__recode"


def _key(name: str, case_sensitive: bool) -> str:
    return name if case_sensitive else name.casefold()


@dataclass(frozen=True)
class SchemaDiff:
    removed: tuple[str, ...] = ()
    added: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.removed and not self.added


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation run."""

    table: str
    live_before: tuple[str, ...]
    dropped: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    live_after: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.dropped or self.added)


def compute_diff(schema: Schema, live_columns: Iterable[str], *, case_sensitive: bool = False) -> SchemaDiff:
    """Compare live columns against the schema.

    `removed` keeps live order, `added` keeps declaration order. Default columns
    never appear in either set.
    """
    live = list(live_columns)
    declared = schema.declared_additional()

    defaults = {_key(c, case_sensitive) for c in DEFAULT_COLUMNS}
    keep = defaults | {_key(c, case_sensitive) for c in declared}
    live_keys = {_key(c, case_sensitive) for c in live}

    removed = tuple(c for c in live if _key(c, case_sensitive) not in keep)
    added = tuple(c for c in declared if _key(c, case_sensitive) not in live_keys)
    return SchemaDiff(removed=removed, added=added)


def read_live_columns(executor: SQLExecutor, dialect: Dialect, table: str) -> list[str]:
    """Column names of `table`, discovered from an empty result set."""
    sql = dialect.select_columns_sql(table)
    try:
        return executor.query_columns(sql)
    except StorageError as exc:
        raise SchemaIntrospectionError(f"Cannot read columns of table {table!r}: {exc}") from exc


def _run_ddl(executor: SQLExecutor, sql: str, *, table: str) -> None:
    try:
        executor.execute(sql)
    except StorageError as exc:
        raise DDLError(f"Schema change on table {table!r} failed: {exc}", statement=sql) from exc


def create_table(executor: SQLExecutor, dialect: Dialect, schema: Schema) -> None:
    """Create the log table with the default columns if it does not exist."""
    for sql in dialect.create_table_statements(schema.table, schema.time_encoding):
        _run_ddl(executor, sql, table=schema.table)


def reconcile(schema: Schema, executor: SQLExecutor, dialect: Dialect | None = None) -> ReconcileResult:
    """Create and alter the table until its columns equal the schema's columns."""
    dialect = dialect or executor.dialect
    table = schema.table

    create_table(executor, dialect, schema)
    live = read_live_columns(executor, dialect, table)
    logger.debug("Live columns of {}: {}", table, live)

    diff = compute_diff(schema, live, case_sensitive=dialect.case_sensitive)

    for column in diff.removed:
        _run_ddl(executor, dialect.drop_column_sql(table, column), table=table)
        logger.info("Dropped column {} from {}", column, table)

    for column in diff.added:
        _run_ddl(executor, dialect.add_column_sql(table, column), table=table)
        logger.info("Added column {} to {}", column, table)

    removed = {_key(c, dialect.case_sensitive) for c in diff.removed}
    live_after = tuple(c for c in live if _key(c, dialect.case_sensitive) not in removed) + diff.added

    return ReconcileResult(
        table=table,
        live_before=tuple(live),
        dropped=diff.removed,
        added=diff.added,
        live_after=live_after,
    )


def convert_time_value(value: Any, source: TimeEncoding, target: TimeEncoding) -> Any:
    """Convert one stored time value between encodings (UTC both ways)."""
    if value is None or source is target:
        return value
    if target is TimeEncoding.DATETIME:
        moment = datetime.fromtimestamp(int(value), tz=timezone.utc)
        return moment.strftime(DATETIME_FORMAT)
    # DATETIME -> EPOCH; drivers hand back either a datetime or its text form.
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.strptime(str(value)[:19], DATETIME_FORMAT)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def _holds_encoding(value: Any, encoding: TimeEncoding) -> bool:
    """Whether a stored time value is already written in `encoding`."""
    if encoding is TimeEncoding.EPOCH:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, str) and value.isdigit())
    if isinstance(value, datetime):
        return True
    try:
        datetime.strptime(str(value)[:19], DATETIME_FORMAT)
    except ValueError:
        return False
    return True


def recode_time_column(
    executor: SQLExecutor,
    dialect: Dialect,
    table: str,
    source: TimeEncoding,
    target: TimeEncoding,
) -> int:
    """Rewrite the time column from `source` to `target` encoding.

    Every value is converted before the table is touched, so values that are
    not in `source` encoding raise `DDLError` with the table unchanged. A table
    whose values are all in `target` encoding already is left alone. A
    temporary column left behind by an interrupted run is dropped first.
    Returns the number of rows rewritten.
    """
    if source is target:
        return 0

    try:
        rows: Sequence[tuple[Any, ...]] = executor.query_rows(dialect.select_time_values_sql(table))
    except StorageError as exc:
        raise DDLError(f"Cannot read time values of table {table!r}: {exc}") from exc

    stored = [value for _, value in rows if value is not None]
    if stored and all(_holds_encoding(v, target) and not _holds_encoding(v, source) for v in stored):
        logger.info("Time column of {} is already {}; nothing to recode", table, target.value)
        return 0

    converted: list[tuple[Any, Any]] = []
    for row_id, value in rows:
        try:
            converted.append((row_id, convert_time_value(value, source, target)))
        except (ValueError, TypeError, OverflowError, OSError) as exc:
            raise DDLError(
                f"Time value {value!r} of row {row_id} in {table!r} is not {source.value}: {exc}"
            ) from exc

    live = read_live_columns(executor, dialect, table)
    leftover = _key(_RECODE_COLUMN, dialect.case_sensitive)
    for column in live:
        if _key(column, dialect.case_sensitive) == leftover:
            _run_ddl(executor, dialect.drop_column_sql(table, column), table=table)
            logger.info("Dropped leftover column {} from {}", column, table)

    _run_ddl(executor, dialect.add_typed_column_sql(table, _RECODE_COLUMN, dialect.time_type(target)), table=table)

    update_sql = dialect.update_by_id_sql(table, _RECODE_COLUMN)
    for row_id, value in converted:
        params = {"value": value, IDENTITY_COLUMN: row_id}
        try:
            executor.execute_params(update_sql, params)
        except StorageError as exc:
            raise DDLError(f"Cannot rewrite time value of row {row_id} in {table!r}: {exc}", statement=update_sql) from exc

    for sql in dialect.drop_time_index_statements(table):
        _run_ddl(executor, sql, table=table)
    _run_ddl(executor, dialect.drop_column_sql(table, TIME_COLUMN), table=table)
    _run_ddl(executor, dialect.rename_column_sql(table, _RECODE_COLUMN, TIME_COLUMN), table=table)
    for sql in dialect.time_index_statements(table):
        _run_ddl(executor, sql, table=table)

    logger.info("Recoded {} rows of {}.{} from {} to {}", len(rows), table, TIME_COLUMN, source.value, target.value)
    return len(rows)
