"""
Tabular dataset cursor over a materialized Polars DataFrame.

Contract (DataSet protocol)
- next() advances the cursor; False once the rows are exhausted.
- err() returns the error sentinel (set by the producer when iteration ended in
  error), or None.
- field(name) returns the current row's FieldValue; unknown fields and reads without
  a current row yield an ERROR-kind value rather than raising.
- reset_iterator() rewinds to before the first row. It may be called any number of
  times and never re-runs the producing query: rows are materialized once.
- fields lists the declared field names.

Invariants
- A full scan after reset_iterator() observes exactly the values of any earlier
  full scan.
- Datasets belong to a single generation run and are not shared across threads.

Notes
- Every column has a single Polars dtype, so values read back with one kind per
  column: ints in a column that also holds floats come back as FLOAT.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import polars as pl

from plotdeck.core.errors import DataAccessError
from plotdeck.core.values import FieldValue

__all__ = ["DataSet", "FrameDataSet"]


@runtime_checkable
class DataSet(Protocol):
    @property
    def fields(self) -> tuple[str, ...]: ...

    def next(self) -> bool: ...

    def err(self) -> Exception | None: ...

    def field(self, name: str) -> FieldValue: ...

    def reset_iterator(self) -> None: ...


class FrameDataSet:
    """
    DataSet implementation backed by a Polars DataFrame.

    Args:
        frame (pl.DataFrame): Materialized rows. Column values are converted to
            Python objects once at construction.
        error (Exception | None): Optional error sentinel reported by err().

    Examples:
        >>> ds = FrameDataSet.from_columns({"k": ["a", "b"], "v": [1, 2]})
        >>> ds.next(), ds.field("v").value
        (True, 1)
    """

    def __init__(self, frame: pl.DataFrame, *, error: Exception | None = None) -> None:
        self._frame = frame
        self._columns: dict[str, list[Any]] = frame.to_dict(as_series=False)
        self._height = frame.height
        self._pos = -1
        self._error = error

    @classmethod
    def from_columns(cls, data: Mapping[str, Sequence[Any]]) -> FrameDataSet:
        """
        Build a dataset from a mapping of column name to values.

        FieldValue entries are unwrapped to their payloads first.

        Raises:
            DataAccessError: Columns have different lengths or cannot form a frame.
        """
        cols = {
            name: [v.value if isinstance(v, FieldValue) else v for v in values]
            for name, values in data.items()
        }
        try:
            frame = pl.DataFrame(cols, strict=False)
        except (pl.exceptions.PolarsError, ValueError, TypeError) as exc:
            raise DataAccessError(f"cannot build dataset from columns {list(cols)}: {exc}") from exc
        return cls(frame)

    @property
    def frame(self) -> pl.DataFrame:
        return self._frame

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self._frame.columns)

    def __len__(self) -> int:
        return self._height

    def next(self) -> bool:
        if self._pos + 1 < self._height:
            self._pos += 1
            return True
        self._pos = self._height
        return False

    def err(self) -> Exception | None:
        return self._error

    def fail(self, error: Exception) -> None:
        """Set the error sentinel reported by err()."""
        self._error = error

    def field(self, name: str) -> FieldValue:
        col = self._columns.get(name)
        if col is None:
            return FieldValue.error(f"unknown field {name!r}")
        if not 0 <= self._pos < self._height:
            return FieldValue.error(f"no current row when reading field {name!r}")
        return FieldValue.of(col[self._pos])

    def reset_iterator(self) -> None:
        self._pos = -1
