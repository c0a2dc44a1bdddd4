"""
Organizer: places artifacts into the dated hierarchy and maintains the latest copy.

A plot called demo with a daily frequency generated for 2023-05-08 is written to

    <base>/2023/05/08/demo.json
    <base>/latest/demo.json   (only when it is the most recent dated artifact)

Hourly plots get an extra hour directory. Weekly plots are day-grained.

Notes
- Staleness is purely timestamp based: an artifact is stale when its mtime is
  strictly earlier than the expected freshness (usually the definition file's mtime).
- The dated write and the latest write are not transactional. A crash between them
  leaves the dated artifact correct and the latest copy stale until the next
  successful run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from plotdeck.core.constants import DEFAULT_OUT_DIR
from plotdeck.core.errors import PersistenceError
from plotdeck.core.grammar import PlotFrequency
from plotdeck.core.values import as_utc

from . import fs, paths

__all__ = ["Organizer"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Organizer:
    """
    Artifact placement under a base directory.

    Examples:
        >>> from datetime import datetime, UTC
        >>> org = Organizer("base")
        >>> org.canonical_path("x", PlotFrequency.DAILY, datetime(2023, 5, 8, 10, tzinfo=UTC))
        'base/2023/05/08/x.json'
    """

    base: str = DEFAULT_OUT_DIR

    def canonical_path(self, name: str, frequency: PlotFrequency, basis_time: datetime) -> str:
        return paths.canonical_path(self.base, name, frequency, basis_time)

    def latest_path(self, name: str) -> str:
        return paths.latest_path(self.base, name)

    def glob_existing(self, name: str, frequency: PlotFrequency) -> list[str]:
        """All dated artifacts of ``name`` present on disk for the frequency's layout."""
        return fs.glob_paths(paths.glob_pattern(self.base, name, frequency))

    def is_stale_or_missing(
        self,
        name: str,
        frequency: PlotFrequency,
        basis_time: datetime,
        expected_freshness: datetime,
    ) -> bool:
        """
        Whether the canonical artifact must be (re)generated.

        Returns:
            bool: True when the file is missing or its mtime is strictly earlier
            than ``expected_freshness`` (naive values are taken as UTC).

        Raises:
            PersistenceError: The file exists but cannot be stat'ed.
        """
        path = self.canonical_path(name, frequency, basis_time)
        try:
            modified = fs.mtime(path)
        except OSError as exc:
            raise PersistenceError(f"stat file {path}: {exc}") from exc
        if modified is None:
            return True
        return modified < as_utc(expected_freshness)

    def is_latest(self, name: str, frequency: PlotFrequency, basis_time: datetime) -> bool:
        """True iff the candidate dated path sorts last among all dated artifacts of ``name``."""
        candidate = self.canonical_path(name, frequency, basis_time)
        try:
            existing = self.glob_existing(name, frequency)
        except OSError as exc:
            raise PersistenceError(f"glob artifacts of {name!r}: {exc}") from exc
        return sorted([*existing, candidate])[-1] == candidate

    def write_artifact(
        self, data: bytes, name: str, frequency: PlotFrequency, basis_time: datetime
    ) -> str:
        """
        Write the dated artifact, then mirror it to the latest path when it is the newest.

        Args:
            data (bytes): Serialized figure document.
            name (str): Plot name.
            frequency (PlotFrequency): Plot frequency.
            basis_time (datetime): Basis time of the generation.

        Returns:
            str: The dated path written.

        Raises:
            PersistenceError: Either write failed.
        """
        path = self.canonical_path(name, frequency, basis_time)
        try:
            fs.write_atomic(path, data)
        except OSError as exc:
            raise PersistenceError(f"write plot {path}: {exc}") from exc
        logger.info("wrote plot %s to %s", name, path)

        if not self.is_latest(name, frequency, basis_time):
            return path

        latest = self.latest_path(name)
        try:
            fs.write_atomic(latest, data)
        except OSError as exc:
            raise PersistenceError(f"write latest {latest}: {exc}") from exc
        logger.info("updated latest copy of plot %s", name)
        return path
