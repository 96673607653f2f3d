"""Wiring helpers that turn configuration into a ready handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from .handler import TableLogHandler
from .storage import DuckDBExecutor, SQLExecutor, SQLiteExecutor

if TYPE_CHECKING:
    from config import SinkConfig, StorageConfig

# Supported storage backends
backend_class_map: Final = {"duckdb": DuckDBExecutor, "sqlite": SQLiteExecutor}
ALLOWED_BACKENDS = list(backend_class_map.keys())


def build_executor(storage: StorageConfig) -> SQLExecutor:
    """Open the executor for the configured backend.

    Raises:
        ValueError: If the backend is unsupported.
        StorageConnectionError: If the database cannot be opened.
    """
    backend = storage.backend.lower()
    if backend not in backend_class_map:
        raise ValueError(
            f"Unsupported storage backend: '{storage.backend}'. "
            f"Supported backends: {', '.join(ALLOWED_BACKENDS)}"
        )
    return backend_class_map[backend].connect(storage.database)


def build_handler(sink: SinkConfig, storage: StorageConfig) -> TableLogHandler:
    """Create a handler that owns (and closes) its own executor."""
    executor = build_executor(storage)
    return TableLogHandler(
        executor,
        sink.table,
        sink.additional_columns,
        initialize=sink.initialize,
        skip_schema_sync=sink.skip_schema_sync,
        level=sink.level,
        bubble=sink.bubble,
        time_encoding=sink.time_encoding,
        owns_executor=True,
    )
