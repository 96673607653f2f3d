"""Error hierarchy for the table log sink.

Every failure raised by this package derives from `TableLogError`, so hosts can
catch one type. Driver exceptions are always chained (`raise ... from exc`).
"""

from __future__ import annotations

from typing import Any


class TableLogError(Exception):
    """Base class for all table log sink errors."""


class StorageError(TableLogError):
    """A driver call failed at the storage boundary."""


class StorageConnectionError(StorageError):
    """Storage could not be opened or reached."""


class SynchronizationError(TableLogError):
    """Schema reconciliation failed; the write that triggered it is aborted."""


class SchemaIntrospectionError(SynchronizationError):
    """Live columns of the log table could not be read."""


class DDLError(SynchronizationError):
    """A create/add/drop/recode statement failed.

    Changes applied before the failing statement are not rolled back.
    """

    def __init__(self, message: str, *, statement: str | None = None) -> None:
        super().__init__(message)
        self.statement = statement


class InsertError(TableLogError):
    """A log row could not be inserted."""

    def __init__(
        self,
        message: str,
        *,
        statement: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.statement = statement
        self.params = params
