"""
Typed field values observed in tabular datasets.

Every value read from a dataset is a FieldValue: a closed tagged union over
FieldKind {null, bool, int, float, text, timestamp, duration, error}. Consumers
switch on ``kind`` instead of inspecting Python runtime types.

Projections
- canonical_text(): the comparison key used for joins, grouping and table cells.
  Heterogeneous representations of the same logical key compare equal (int 3 and
  float 3.0 both project to "3"; a timestamp and its RFC 3339 text project alike).
- to_json(): the value written into chart documents (timestamps as RFC 3339 UTC
  strings, durations as float seconds, errors as null).

Notes:
    - Naive datetimes are treated as UTC; dates are midnight UTC.
    - Zero-IO, stdlib-only.

Examples:
    >>> FieldValue.of(3).canonical_text() == FieldValue.of(3.0).canonical_text()
    True
    >>> FieldValue.of(None).kind
    <FieldKind.NULL: 'null'>
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

__all__ = [
    "FieldKind",
    "FieldValue",
    "format_timestamp",
    "format_number",
    "as_utc",
]

_RFC3339 = "%Y-%m-%dT%H:%M:%SZ"


class FieldKind(Enum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    TEXT = "text"
    TIMESTAMP = "timestamp"
    DURATION = "duration"
    ERROR = "error"


def as_utc(ts: datetime) -> datetime:
    """Convert to UTC; naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def format_timestamp(ts: datetime) -> str:
    """Format a timestamp as second-precision RFC 3339 in UTC (e.g. 2023-05-08T10:00:00Z)."""
    return as_utc(ts).strftime(_RFC3339)


def format_number(n: int | float) -> str:
    """
    Deterministic text for a number.

    Integral floats print without a fractional part so that 3 and 3.0 share a key;
    other floats use repr(), which round-trips exactly.
    """
    if isinstance(n, bool):
        return "true" if n else "false"
    if isinstance(n, int):
        return str(n)
    if math.isfinite(n) and n.is_integer():
        return str(int(n))
    return repr(n)


@dataclass(slots=True, frozen=True)
class FieldValue:
    """
    A single typed value read from a dataset row.

    Attributes:
        kind (FieldKind): Tag selecting the interpretation of ``value``.
        value (Any): Payload. None for NULL, bool/int/float/str for scalars, an aware
            UTC datetime for TIMESTAMP, a timedelta for DURATION and an exception for
            ERROR.
    """

    kind: FieldKind
    value: Any = None

    @classmethod
    def of(cls, v: Any) -> FieldValue:
        """
        Wrap a Python value in the matching FieldValue variant.

        Args:
            v (Any): Value as produced by a data source (Polars rows yield plain
                Python scalars, datetimes, timedeltas and Decimals).

        Returns:
            FieldValue: Tagged value. Unrecognized types are carried as TEXT via str().
        """
        if isinstance(v, FieldValue):
            return v
        if v is None:
            return cls(FieldKind.NULL)
        if isinstance(v, bool):
            return cls(FieldKind.BOOL, v)
        if isinstance(v, int):
            return cls(FieldKind.INT, v)
        if isinstance(v, float):
            return cls(FieldKind.FLOAT, v)
        if isinstance(v, Decimal):
            return cls(FieldKind.FLOAT, float(v))
        if isinstance(v, str):
            return cls(FieldKind.TEXT, v)
        if isinstance(v, datetime):
            return cls(FieldKind.TIMESTAMP, as_utc(v))
        if isinstance(v, date):
            return cls(FieldKind.TIMESTAMP, datetime(v.year, v.month, v.day, tzinfo=UTC))
        if isinstance(v, timedelta):
            return cls(FieldKind.DURATION, v)
        if isinstance(v, BaseException):
            return cls(FieldKind.ERROR, v)
        return cls(FieldKind.TEXT, str(v))

    @classmethod
    def error(cls, message: str | BaseException) -> FieldValue:
        exc = message if isinstance(message, BaseException) else LookupError(message)
        return cls(FieldKind.ERROR, exc)

    @property
    def is_error(self) -> bool:
        return self.kind is FieldKind.ERROR

    @property
    def is_null(self) -> bool:
        return self.kind is FieldKind.NULL

    @property
    def is_numeric(self) -> bool:
        return self.kind in (FieldKind.INT, FieldKind.FLOAT)

    def as_float(self) -> float | None:
        """Return the value as a float for INT/FLOAT kinds, otherwise None."""
        if self.is_numeric:
            return float(self.value)
        return None

    def canonical_text(self) -> str:
        """
        Canonical text projection used for every key comparison.

        Returns:
            str: "" for null, "true"/"false" for bools, deterministic number text for
            numerics, RFC 3339 UTC for timestamps, seconds for durations, the text
            itself for text and the error message for errors.
        """
        match self.kind:
            case FieldKind.NULL:
                return ""
            case FieldKind.BOOL:
                return "true" if self.value else "false"
            case FieldKind.INT | FieldKind.FLOAT:
                return format_number(self.value)
            case FieldKind.TEXT:
                return self.value
            case FieldKind.TIMESTAMP:
                return format_timestamp(self.value)
            case FieldKind.DURATION:
                return format_number(self.value.total_seconds())
            case FieldKind.ERROR:
                return str(self.value)
        raise AssertionError(f"unhandled field kind {self.kind!r}")

    def to_json(self) -> Any:
        """JSON-ready projection written into chart documents."""
        match self.kind:
            case FieldKind.TIMESTAMP:
                return format_timestamp(self.value)
            case FieldKind.DURATION:
                return self.value.total_seconds()
            case FieldKind.ERROR:
                return None
            case _:
                return self.value

    def __str__(self) -> str:
        return self.canonical_text()
