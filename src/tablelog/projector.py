"""Record projection: turn one log event into a row for the current schema.

Projection is a pure function. It never mutates the schema or the entry, so
successive writes with different payload shapes cannot influence each other.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .schema import DATETIME_FORMAT, IDENTITY_COLUMN, TIME_COLUMN, Schema, TimeEncoding


# Attributes every `logging.LogRecord` carries; anything else was attached by the
# caller (`extra=`) or a filter.
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


class LogEntry(BaseModel):
    """One log event as seen by the sink."""

    model_config = ConfigDict(frozen=True)

    channel: str
    level: int
    message: str
    timestamp: datetime
    # Values passed by the caller with the log call.
    context: dict[str, Any] = Field(default_factory=dict)
    # Values attached by filters; merged after `context` and wins on collision.
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    def ensure_aware(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_log_record(cls, record: logging.LogRecord, *, message: str | None = None) -> LogEntry:
        """Adapt a stdlib `LogRecord`.

        Args:
            record: The record handed to the handler.
            message: Pre-formatted message; defaults to `record.getMessage()`.
        """
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_ATTRS and key != "extra"
        }
        attached = getattr(record, "extra", None)
        extra = dict(attached) if isinstance(attached, Mapping) else {}
        return cls(
            channel=record.name,
            level=record.levelno,
            message=record.getMessage() if message is None else message,
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
            context=context,
            extra=extra,
        )


def encode_time(moment: datetime, encoding: TimeEncoding) -> int | str:
    if encoding is TimeEncoding.DATETIME:
        return moment.astimezone(timezone.utc).strftime(DATETIME_FORMAT)
    return int(moment.timestamp())


def merge_payload(context: Mapping[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    """Merge both extension maps; `extra` is merged later and wins."""
    merged = dict(context)
    merged.update(extra)
    return merged


def project(
    entry: LogEntry,
    schema: Schema,
    live_columns: Iterable[str] | None = None,
    *,
    case_sensitive: bool = False,
) -> dict[str, Any]:
    """Map `entry` onto the writable columns of `schema`.

    Unknown keys are dropped silently and declared additional columns missing
    from the payload are filled with None. When `live_columns` is given, the row
    is also restricted to columns that actually exist.
    """
    content: dict[str, Any] = {
        "channel": entry.channel,
        "level": entry.level,
        "message": entry.message,
        TIME_COLUMN: encode_time(entry.timestamp, schema.time_encoding),
    }
    content.update(merge_payload(entry.context, entry.extra))
    content.pop(IDENTITY_COLUMN, None)

    allowed = schema.writable_columns()
    if live_columns is not None:
        norm = (lambda c: c) if case_sensitive else str.casefold
        live = {norm(c) for c in live_columns}
        allowed = tuple(c for c in allowed if norm(c) in live)

    return {column: content.get(column) for column in allowed}
