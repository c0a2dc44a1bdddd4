"""
Enumerations used by plot definitions.

Provides the canonical vocabularies for plot frequency, series/scalar/table kinds,
fills, markers and deltas. String values are exactly the tokens accepted in plot
definition YAML.

Notes:
    - PlotFrequency.truncate() defines the granularity of an artifact's dated path:
      hourly plots truncate to the hour, daily and weekly plots truncate to the day.
      Weekly plots are therefore day-grained on disk.
    - Zero-IO, stdlib-only.

Examples:
    >>> from datetime import datetime, UTC
    >>> PlotFrequency.HOURLY.truncate(datetime(2023, 5, 8, 10, 42, tzinfo=UTC)).hour
    10
    >>> PlotFrequency("weekly").truncate(datetime(2023, 5, 8, 10, 42, tzinfo=UTC)).hour
    0
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

__all__ = [
    "PlotFrequency",
    "SeriesType",
    "FillType",
    "MarkerType",
    "ScalarType",
    "DeltaType",
    "TableType",
]


class PlotFrequency(str, Enum):
    WEEKLY = "weekly"
    DAILY = "daily"
    HOURLY = "hourly"

    def truncate(self, ts: datetime) -> datetime:
        """
        Truncate a basis time (converted to UTC) to this frequency's path granularity.

        Args:
            ts (datetime): Basis time. Naive values are taken as UTC.

        Returns:
            datetime: Aware UTC datetime at the start of the hour (hourly) or day
            (daily, weekly).
        """
        ts = ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts.astimezone(UTC)
        if self is PlotFrequency.HOURLY:
            return ts.replace(minute=0, second=0, microsecond=0)
        return ts.replace(hour=0, minute=0, second=0, microsecond=0)


class SeriesType(str, Enum):
    BAR = "bar"  # vertical bars
    HBAR = "hbar"  # horizontal bars
    LINE = "line"
    BOX = "box"  # vertical box plot
    HBOX = "hbox"  # horizontal box plot


class FillType(str, Enum):
    NONE = ""
    TOZERO = "tozero"


class MarkerType(str, Enum):
    # Subset of the marker symbols plotly supports.
    NONE = ""
    CIRCLE = "circle"
    SQUARE = "square"
    DIAMOND = "diamond"
    TRIANGLE = "triangle"
    HEXAGON = "hexagon"

    @property
    def symbol(self) -> str:
        """Plotly marker symbol name."""
        return "triangle-up" if self is MarkerType.TRIANGLE else self.value


class ScalarType(str, Enum):
    NUMBER = "number"


class DeltaType(str, Enum):
    NONE = ""
    RELATIVE = "relative"  # rendered as a % change against the delta dataset's value


class TableType(str, Enum):
    HEATMAP = "heatmap"
