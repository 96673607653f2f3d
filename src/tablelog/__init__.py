"""Log sink for relational tables with a caller-defined column set.

This package provides:
- A `logging.Handler` that stores each record as one row.
- Schema reconciliation: the table grows and shrinks with the declared
  additional columns before the first write.
- Projection of record payloads onto exactly the columns that exist.

Internal diagnostics go through loguru and are disabled by default; call
`loguru.logger.enable("tablelog")` to see them.
"""

from loguru import logger

from .dialects import Dialect, DuckDBDialect, MySQLDialect, SQLiteDialect, get_dialect
from .errors import (
    DDLError,
    InsertError,
    SchemaIntrospectionError,
    StorageConnectionError,
    StorageError,
    SynchronizationError,
    TableLogError,
)
from .handler import Lifecycle, SinkState, TableLogHandler, dispatch
from .projector import LogEntry, merge_payload, project
from .schema import DEFAULT_COLUMNS, IDENTITY_COLUMN, ColumnRole, Schema, TimeEncoding
from .statements import InsertBuilder, build_insert
from .storage import DBAPIExecutor, DuckDBExecutor, SQLExecutor, SQLiteExecutor
from .synchronizer import ReconcileResult, SchemaDiff, compute_diff, reconcile, recode_time_column

logger.disable("tablelog")

__all__ = [
    "DEFAULT_COLUMNS",
    "IDENTITY_COLUMN",
    "ColumnRole",
    "DBAPIExecutor",
    "DDLError",
    "Dialect",
    "DuckDBDialect",
    "DuckDBExecutor",
    "InsertBuilder",
    "InsertError",
    "Lifecycle",
    "LogEntry",
    "MySQLDialect",
    "ReconcileResult",
    "SQLExecutor",
    "SQLiteDialect",
    "SQLiteExecutor",
    "Schema",
    "SchemaDiff",
    "SchemaIntrospectionError",
    "SinkState",
    "StorageConnectionError",
    "StorageError",
    "SynchronizationError",
    "TableLogError",
    "TableLogHandler",
    "TimeEncoding",
    "build_insert",
    "compute_diff",
    "dispatch",
    "get_dialect",
    "merge_payload",
    "project",
    "reconcile",
    "recode_time_column",
]
