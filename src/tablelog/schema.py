"""Schema model for the log table.

The column set is plain data: a fixed tuple of default columns plus the
additional column names a caller declares when building a handler. Everything
downstream (synchronizer, projector, insert builder) reads the same `Schema`
value instead of subclassing per table.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator


IDENTITY_COLUMN: Final = "id"
DEFAULT_COLUMNS: Final[tuple[str, ...]] = (IDENTITY_COLUMN, "channel", "level", "message", "time")
TIME_COLUMN: Final = "time"
DATETIME_FORMAT: Final = "%Y-%m-%d %H:%M:%S"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ColumnRole(str, Enum):
    IDENTITY = "identity"
    DEFAULT = "default"
    ADDITIONAL = "additional"


class TimeEncoding(str, Enum):
    """How the `time` column is stored."""

    # Unsigned integer seconds since the epoch.
    EPOCH = "epoch"
    # "YYYY-MM-DD HH:MM:SS" in UTC, stored in the engine's date/time type.
    DATETIME = "datetime"


def is_valid_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name))


class Schema(BaseModel):
    """Desired columns of one log table."""

    model_config = ConfigDict(frozen=True)

    table: str
    additional_columns: tuple[str, ...] = Field(default_factory=tuple)
    time_encoding: TimeEncoding = TimeEncoding.EPOCH

    @field_validator("table")
    def validate_table(cls, v: str) -> str:
        """Table names are interpolated into DDL, so only plain identifiers are allowed."""
        if not v or not is_valid_identifier(v):
            raise ValueError(f"Table name must be a plain identifier. Got: {v!r}")
        return v

    @field_validator("additional_columns", mode="before")
    def validate_additional_columns(cls, v: object) -> tuple[str, ...]:
        """Accept any iterable of names; reject names that are not plain identifiers."""
        if v is None:
            return ()
        if isinstance(v, str):
            raise ValueError("additional_columns must be a sequence of names, not a single string")
        names = tuple(v)  # type: ignore[arg-type]
        for name in names:
            if not isinstance(name, str) or not is_valid_identifier(name):
                raise ValueError(f"Additional column names must be plain identifiers. Got: {name!r}")
        return names

    def default_columns(self) -> tuple[str, ...]:
        return DEFAULT_COLUMNS

    def declared_additional(self) -> tuple[str, ...]:
        """Additional columns with default-column collisions and duplicates removed.

        Collisions are compared case-insensitively, first occurrence wins.
        """
        seen = {c.casefold() for c in DEFAULT_COLUMNS}
        declared: list[str] = []
        for name in self.additional_columns:
            key = name.casefold()
            if key in seen:
                continue
            seen.add(key)
            declared.append(name)
        return tuple(declared)

    def columns(self) -> tuple[str, ...]:
        """All columns of the table, defaults first."""
        return DEFAULT_COLUMNS + self.declared_additional()

    def writable_columns(self) -> tuple[str, ...]:
        """Columns the sink may write (everything except the identity column)."""
        return tuple(c for c in self.columns() if c != IDENTITY_COLUMN)

    def role_of(self, name: str) -> ColumnRole | None:
        if name == IDENTITY_COLUMN:
            return ColumnRole.IDENTITY
        if name in DEFAULT_COLUMNS:
            return ColumnRole.DEFAULT
        if name in self.declared_additional():
            return ColumnRole.ADDITIONAL
        return None
