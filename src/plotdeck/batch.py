"""
Batch generation of plot definitions covered by processing profiles.

Flow (per profile)
1. Resolve the definition files of the profile (optionally filtered by a glob).
2. Submit one job per (variant, file) pair to a bounded thread pool.
3. Each job templates and parses its definition, checks staleness, and either
   prints a summary (validate mode), skips an up-to-date artifact, or generates the
   figure and writes it through the Organizer.

Failure model
- Fail-fast: the first failing job sets the shared cancellation event, cancels jobs
  that have not started, and its error is raised to the caller once running jobs
  have finished. Running jobs stop at their next cancellation checkpoint.
- Validate mode forces a single worker so printed summaries do not interleave.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, TextIO

from plotdeck.core.constants import DEFAULT_CONCURRENCY, DEFAULT_HEARTBEAT_SECONDS
from plotdeck.core.errors import ConfigurationError, GenerationCancelled, PlotError
from plotdeck.core.schema import ProcessingProfile
from plotdeck.engine.figure import FigureDocument, PlotConfig, generate_figure
from plotdeck.io.definitions import describe, list_definitions, read_plot_def
from plotdeck.io.organizer import Organizer

__all__ = [
    "BatchOptions",
    "PlotResult",
    "heartbeat",
    "parse_basis",
    "process_definition",
    "run_batch",
]

logger = logging.getLogger(__name__)

_BASIS_OFFSET = re.compile(r"^-(\d+)([hdw])$")
_OFFSET_UNITS = {"h": timedelta(hours=1), "d": timedelta(days=1), "w": timedelta(weeks=1)}


def parse_basis(value: str, now: datetime | None = None) -> datetime:
    """
    Parse a basis time specification.

    Accepted forms: "now", an offset into the past ("-2h", "-4d", "-1w"), an
    RFC 3339 timestamp or Unix seconds.

    Args:
        value (str): Basis specification.
        now (datetime | None): Reference "now" (defaults to the current UTC time).

    Returns:
        datetime: Aware UTC basis time.

    Raises:
        ConfigurationError: Unparseable value, or an absolute time in the future.

    Examples:
        >>> ref = datetime(2023, 5, 8, 10, tzinfo=UTC)
        >>> parse_basis("-2d", now=ref).isoformat()
        '2023-05-06T10:00:00+00:00'
        >>> parse_basis("1683540000", now=ref).isoformat()
        '2023-05-08T10:00:00+00:00'
    """
    now = now or datetime.now(UTC)
    value = value.strip()
    if value == "now":
        return now.astimezone(UTC)

    if m := _BASIS_OFFSET.match(value):
        return (now - int(m.group(1)) * _OFFSET_UNITS[m.group(2)]).astimezone(UTC)

    if value.isdigit():
        basis = datetime.fromtimestamp(int(value), tz=UTC)
    else:
        try:
            basis = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(f"invalid basis time: {value!r}") from None
        if basis.tzinfo is None:
            raise ConfigurationError(f"basis time must include a UTC offset: {value!r}")
    if basis > now:
        raise ConfigurationError(f"basis time should not be in the future: {value}")
    return basis.astimezone(UTC)


@contextmanager
def heartbeat(name: str, interval: float = DEFAULT_HEARTBEAT_SECONDS) -> Iterator[None]:
    """
    Log "still generating plot" every ``interval`` seconds while the block runs.

    The background thread is stopped and joined on every exit path of the block.
    """
    stop = threading.Event()
    start = time.monotonic()

    def _loop() -> None:
        while not stop.wait(interval):
            logger.info("still generating plot %s (elapsed %ds)", name, round(time.monotonic() - start))

    thread = threading.Thread(target=_loop, daemon=True, name=f"heartbeat-{name}")
    thread.start()
    try:
        yield
    finally:
        stop.set()
        thread.join()


@dataclass(frozen=True)
class BatchOptions:
    """
    Options of one batch run.

    Attributes:
        out_dir (str): Base directory of the dated hierarchy.
        basis_time (datetime): Basis time of every generation in the run.
        concurrency (int): Worker pool width (forced to 1 when validating).
        compact (bool): Write compact JSON.
        validate (bool): Print definition summaries instead of generating.
        force (bool): Regenerate artifacts even when they are up to date.
        match (str): Glob replacing each profile's file pattern.
        heartbeat_seconds (float): Progress log interval per plot.
    """

    out_dir: str
    basis_time: datetime
    concurrency: int = DEFAULT_CONCURRENCY
    compact: bool = False
    validate: bool = False
    force: bool = False
    match: str = ""
    heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS


@dataclass(frozen=True)
class PlotResult:
    name: str
    path: str
    status: Literal["written", "skipped", "validated"]


def _definition_mtime(fname: str) -> datetime:
    try:
        return datetime.fromtimestamp(os.stat(fname).st_mtime, tz=UTC)
    except OSError as exc:
        raise ConfigurationError(f"failed to stat plot definition {fname}: {exc}") from exc


def process_definition(
    fname: str,
    variant: Mapping[str, Any],
    config: PlotConfig,
    organizer: Organizer,
    options: BatchOptions,
    cancel: threading.Event | None = None,
    out: TextIO | None = None,
) -> PlotResult:
    """
    Generate (or validate) one definition for one variant.

    Returns:
        PlotResult: What happened to the artifact.

    Raises:
        PlotError: Any failure of templating, parsing, generation or persistence.
    """
    basis = options.basis_time
    pd = read_plot_def(fname, basis, variant)
    path = organizer.canonical_path(pd.name, pd.frequency, basis)
    logger.debug("plot %s filename %s", pd.name, path)

    stale = organizer.is_stale_or_missing(pd.name, pd.frequency, basis, _definition_mtime(fname))
    should_write = options.force or stale
    latest = organizer.is_latest(pd.name, pd.frequency, basis)
    logger.debug("plot %s: should write %s, is latest %s", pd.name, should_write, latest)

    if options.validate:
        summary = describe(
            pd,
            Output=path,
            Is_missing_or_stale=str(stale).lower(),
            Is_latest_version=str(latest).lower(),
        )
        print(summary, file=out or sys.stdout)
        return PlotResult(pd.name, path, "validated")

    if not should_write:
        logger.info("skipping plot %s, output already exists", pd.name)
        return PlotResult(pd.name, path, "skipped")

    logger.info("generating plot %s", pd.name)
    with heartbeat(pd.name, options.heartbeat_seconds):
        fig = generate_figure(pd, config, cancel)

    doc = FigureDocument(fig, params=dict(pd.parameters))
    logger.info("writing plot output %s to %s", pd.name, path)
    organizer.write_artifact(doc.to_bytes(compact=options.compact), pd.name, pd.frequency, basis)
    return PlotResult(pd.name, path, "written")


def _run_profile(
    profile: ProcessingProfile,
    config: PlotConfig,
    organizer: Organizer,
    options: BatchOptions,
    out: TextIO | None,
) -> list[PlotResult]:
    fnames = list_definitions(profile, options.match)
    if not fnames:
        logger.warning("no plot definitions found for profile source %s", profile.source)
        return []

    workers = 1 if options.validate else max(1, options.concurrency)
    cancel = threading.Event()
    futures: list[Future[PlotResult]] = []
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="plotdeck") as executor:
        for variant in profile.variants:
            for fname in fnames:
                futures.append(
                    executor.submit(
                        process_definition, fname, variant, config, organizer, options, cancel, out
                    )
                )
        try:
            for future in as_completed(futures):
                future.result()
        except BaseException as exc:
            cancel.set()
            for f in futures:
                f.cancel()
            if not isinstance(exc, GenerationCancelled):
                logger.error("batch stopped: %s", exc)
            raise
    return [f.result() for f in futures]


def run_batch(
    profiles: Sequence[ProcessingProfile],
    config: PlotConfig,
    options: BatchOptions,
    out: TextIO | None = None,
) -> list[PlotResult]:
    """
    Run every profile in order; each profile uses its own fail-fast worker pool.

    Args:
        profiles (Sequence[ProcessingProfile]): Profiles with resolved sources.
        config (PlotConfig): Sources and colors shared by all generations.
        options (BatchOptions): Run options.
        out (TextIO | None): Destination of validate-mode summaries (stdout).

    Returns:
        list[PlotResult]: Results in submission order (variants x files per profile).

    Raises:
        PlotError: The first failure of any job.
    """
    organizer = Organizer(os.path.abspath(options.out_dir))
    logger.info("plots will be generated for time %s", options.basis_time.isoformat())
    logger.info("plot output directory: %s", organizer.base)
    logger.info("using concurrency %d", 1 if options.validate else options.concurrency)

    results: list[PlotResult] = []
    for profile in profiles:
        try:
            results.extend(_run_profile(profile, config, organizer, options, out))
        except PlotError as exc:
            raise type(exc)(f"processing plot definitions of {profile.source}: {exc}") from exc
    return results
