"""
Path and layout helpers for the dated artifact hierarchy.

Overview (file protocol baseline)
- hourly:        <base>/YYYY/MM/DD/HH/<name>.json
- daily, weekly: <base>/YYYY/MM/DD/<name>.json
- latest copy:   <base>/latest/<name>.json

Source of truth
- Truncation granularity: plotdeck.core.grammar.PlotFrequency.truncate.
- Directory and suffix names: plotdeck.core.constants.

Notes
- Every date component is zero-padded and fixed-width, so lexicographic order of
  dated paths of one frequency is chronological order.
"""

from __future__ import annotations

import glob
import os
import uuid
from datetime import datetime
from typing import Final

from plotdeck.core.constants import ARTIFACT_SUFFIX, LATEST_DIR
from plotdeck.core.grammar import PlotFrequency

__all__ = [
    "dated_dir",
    "dated_pattern",
    "artifact_name",
    "canonical_path",
    "glob_pattern",
    "latest_path",
    "temp_path",
]

_DAY_PATTERN: Final[str] = "20[0-9][0-9]/[0-9][0-9]/[0-9][0-9]"
_HOUR_PATTERN: Final[str] = _DAY_PATTERN + "/[0-9][0-9]"


def artifact_name(name: str) -> str:
    return name + ARTIFACT_SUFFIX


def dated_dir(frequency: PlotFrequency, basis_time: datetime) -> str:
    """
    Relative dated directory for a basis time.

    Args:
        frequency (PlotFrequency): Governs the depth (hour directory for hourly).
        basis_time (datetime): Basis time; converted to UTC, naive values are UTC.

    Returns:
        str: "YYYY/MM/DD" or "YYYY/MM/DD/HH" using the OS path separator.

    Examples:
        >>> from datetime import datetime, UTC
        >>> dated_dir(PlotFrequency.HOURLY, datetime(2023, 5, 8, 10, 30, tzinfo=UTC)).split(os.sep)
        ['2023', '05', '08', '10']
    """
    t = frequency.truncate(basis_time)
    parts = [f"{t.year:04d}", f"{t.month:02d}", f"{t.day:02d}"]
    if frequency is PlotFrequency.HOURLY:
        parts.append(f"{t.hour:02d}")
    return os.path.join(*parts)


def dated_pattern(frequency: PlotFrequency) -> str:
    """Glob pattern matching any dated directory of the given frequency."""
    pattern = _HOUR_PATTERN if frequency is PlotFrequency.HOURLY else _DAY_PATTERN
    return os.path.join(*pattern.split("/"))


def canonical_path(base: str, name: str, frequency: PlotFrequency, basis_time: datetime) -> str:
    """Path "<base>/<dated dir>/<name>.json"."""
    return os.path.join(base, dated_dir(frequency, basis_time), artifact_name(name))


def glob_pattern(base: str, name: str, frequency: PlotFrequency) -> str:
    """
    Glob pattern matching every dated artifact of ``name`` under ``base``.

    ``base`` and ``name`` are matched literally; glob metacharacters in them are escaped.
    """
    return os.path.join(glob.escape(base), dated_pattern(frequency), glob.escape(artifact_name(name)))


def latest_path(base: str, name: str) -> str:
    """Path "<base>/latest/<name>.json"."""
    return os.path.join(base, LATEST_DIR, artifact_name(name))


def temp_path(final_path: str) -> str:
    """Sibling temporary path used for atomic writes (same directory, so same filesystem)."""
    head, tail = os.path.split(final_path)
    return os.path.join(head, f".{tail}.{uuid.uuid4().hex}.tmp")
