"""`logging.Handler` that writes records into a dynamically shaped table.

Flow per accepted record:

- Threshold gate (before any I/O, so quiet records never create a table).
- Lazy, exactly-once schema reconciliation (`Lifecycle`).
- Projection onto the schema, INSERT building, execution.

Errors are not routed to `logging.Handler.handleError`; they propagate to the
code that logged the record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from .dialects import Dialect
from .errors import InsertError, StorageError
from .projector import LogEntry, project
from .schema import Schema, TimeEncoding
from .statements import InsertBuilder
from .storage import SQLExecutor
from .synchronizer import ReconcileResult, reconcile, recode_time_column

_T = TypeVar("_T")


class SinkState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


class Lifecycle:
    """Two-state machine guarding one-time initialization.

    `ensure` runs the initializer only while UNINITIALIZED. A failing
    initializer leaves the state unchanged.
    """

    def __init__(self) -> None:
        self._state = SinkState.UNINITIALIZED
        self.runs = 0

    @property
    def state(self) -> SinkState:
        """Current lifecycle state."""
        return self._state

    @property
    def initialized(self) -> bool:
        """Whether the initializer has completed."""
        return self._state is SinkState.INITIALIZED

    def ensure(self, initializer: Callable[[], _T]) -> _T | None:
        """Run `initializer` unless already initialized; return its result or None."""
        if self.initialized:
            return None
        result = initializer()
        self._state = SinkState.INITIALIZED
        self.runs += 1
        return result

    def mark_initialized(self) -> None:
        """Enter INITIALIZED without running an initializer."""
        self._state = SinkState.INITIALIZED

    def reset(self) -> None:
        """Return to UNINITIALIZED so the next `ensure` runs again."""
        self._state = SinkState.UNINITIALIZED


class TableLogHandler(logging.Handler):
    """Persist log records into `table`, one column per declared field."""

    def __init__(
        self,
        executor: SQLExecutor,
        table: str,
        additional_columns: Sequence[str] = (),
        *,
        dialect: Dialect | None = None,
        initialize: bool = False,
        skip_schema_sync: bool = False,
        level: int | str = logging.NOTSET,
        bubble: bool = True,
        time_encoding: TimeEncoding | str = TimeEncoding.EPOCH,
        owns_executor: bool = False,
    ) -> None:
        """Create a handler.

        Args:
            executor: Storage boundary used for DDL and inserts.
            table: Log table name.
            additional_columns: Record fields stored in their own columns.
            dialect: Statement dialect; defaults to the executor's.
            initialize: Reconcile the table now instead of on the first write.
            skip_schema_sync: Trust the live table as is and never run DDL.
            level: Threshold; records below it are not handled.
            bubble: Whether records continue to sibling handlers (see `dispatch`).
            time_encoding: Storage encoding of the `time` column.
            owns_executor: Close the executor when the handler is closed.
        """
        super().__init__(level)
        self._schema = Schema(
            table=table,
            additional_columns=additional_columns,
            time_encoding=TimeEncoding(time_encoding),
        )
        self._executor = executor
        self._dialect = dialect or executor.dialect
        self._lifecycle = Lifecycle()
        self._live_columns: tuple[str, ...] | None = None
        self._inserts = InsertBuilder(table, self._dialect)
        self._owns_executor = owns_executor
        self._closed = False
        self.bubble = bubble

        if skip_schema_sync:
            self._lifecycle.mark_initialized()
        elif initialize:
            self.synchronize()

    def __repr__(self) -> str:
        level = logging.getLevelName(self.level)
        return f"<{type(self).__name__} {self._schema.table} ({level}, {self.state.value})>"

    @property
    def schema(self) -> Schema:
        """The column layout this handler writes."""
        return self._schema

    @property
    def executor(self) -> SQLExecutor:
        """Storage boundary used for DDL and inserts."""
        return self._executor

    @property
    def dialect(self) -> Dialect:
        """Dialect rendering this handler's statements."""
        return self._dialect

    @property
    def state(self) -> SinkState:
        """Lifecycle state of the table behind this handler."""
        return self._lifecycle.state

    @property
    def lifecycle(self) -> Lifecycle:
        """The initialization state machine."""
        return self._lifecycle

    @property
    def live_columns(self) -> tuple[str, ...] | None:
        """Columns seen by the last reconciliation (None if it never ran)."""
        return self._live_columns

    def synchronize(self, *, force: bool = False) -> ReconcileResult | None:
        """Reconcile the table now; a no-op once initialized unless forced."""
        self.acquire()
        try:
            if force:
                self._lifecycle.reset()
            return self._lifecycle.ensure(self._reconcile)
        finally:
            self.release()

    def _reconcile(self) -> ReconcileResult:
        result = reconcile(self._schema, self._executor, self._dialect)
        self._live_columns = result.live_after
        self._inserts.clear()
        logger.debug("Initialized log table {} with columns {}", self._schema.table, result.live_after)
        return result

    def recode_time(self, source: TimeEncoding | str) -> int:
        """Rewrite stored times from `source` to this handler's encoding."""
        self.synchronize()
        self.acquire()
        try:
            return recode_time_column(
                self._executor,
                self._dialect,
                self._schema.table,
                TimeEncoding(source),
                self._schema.time_encoding,
            )
        finally:
            self.release()

    def handle(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        """Write `record` if it passes the threshold and filters.

        Returns True when the record was written.
        """
        if record.levelno < self.level:
            return False
        rv = self.filter(record)
        if not rv:
            return False
        if isinstance(rv, logging.LogRecord):
            record = rv
        self.acquire()
        try:
            self.emit(record)
        finally:
            self.release()
        return True

    def handle_entry(self, entry: LogEntry) -> bool:
        """Same contract as `handle`, for entries built without `logging`."""
        if entry.level < self.level:
            return False
        self.acquire()
        try:
            self.write(entry)
        finally:
            self.release()
        return True

    def emit(self, record: logging.LogRecord) -> None:
        """Write `record` without the threshold or filters."""
        message = self.format(record) if self.formatter is not None else None
        self.write(LogEntry.from_log_record(record, message=message))

    def write(self, entry: LogEntry) -> None:
        """Project `entry` and insert it, initializing the table first if needed."""
        self.synchronize()
        row = project(
            entry,
            self._schema,
            self._live_columns,
            case_sensitive=self._dialect.case_sensitive,
        )
        sql, params = self._inserts.build(row)
        try:
            self._executor.execute_params(sql, params)
        except StorageError as exc:
            raise InsertError(
                f"Cannot insert log record into {self._schema.table!r}: {exc}",
                statement=sql,
                params=params,
            ) from exc

    def close(self) -> None:
        """Close the executor when owned, then detach from `logging`."""
        self.acquire()
        try:
            if self._owns_executor and not self._closed:
                self._executor.close()
            self._closed = True
        finally:
            self.release()
        super().close()


def dispatch(handlers: Iterable[Any], record: logging.LogRecord) -> bool:
    """Offer `record` to `handlers` in order, honouring each handler's `bubble`.

    Stops after the first handler that handled the record with `bubble=False`.
    Handlers without a `bubble` attribute always let the record through.
    Returns whether any handler handled the record.
    """
    handled = False
    for handler in handlers:
        if not handler.handle(record):
            continue
        handled = True
        if not getattr(handler, "bubble", True):
            break
    return handled
