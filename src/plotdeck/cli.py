from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from plotdeck.batch import BatchOptions, parse_basis, run_batch
from plotdeck.core.colors import ColorTable
from plotdeck.core.errors import ConfigurationError, PlotError
from plotdeck.data.sources import DataSource, SqlDataSource, build_sources
from plotdeck.engine.figure import FigureDocument, PlotConfig, generate_figure
from plotdeck.io.config import Settings
from plotdeck.io.definitions import describe, load_colors, load_profiles, read_plot_def

logger = logging.getLogger("plotdeck")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(verbosity: int, json_logs: bool = False) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(_LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def _parse_params(items: Iterable[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigurationError("params option not valid, use format 'key=value'")
        if key in params:
            raise ConfigurationError(f"duplicate template parameter {key!r} specified")
        params[key] = value
    return params


def _close_sources(sources: Mapping[str, DataSource]) -> None:
    for src in sources.values():
        if isinstance(src, SqlDataSource):
            src.dispose()


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-s",
        "--source",
        action="append",
        default=[],
        help="Data source as name=url (repeatable), e.g. db=postgresql://user:pw@host:5432/db.",
    )
    p.add_argument("--conf", type=str, default=None, help="Directory containing colors.yaml/profiles.yaml.")
    p.add_argument(
        "--basis",
        type=str,
        default="now",
        help="Basis time: 'now', an offset (-2h, -4d, -1w), RFC 3339 or Unix seconds.",
    )
    p.add_argument(
        "--compact",
        action="store_true",
        default=None,
        help="Emit compact json instead of pretty-printed.",
    )
    p.add_argument(
        "--validate",
        action="store_true",
        help="Print what would be generated without running queries.",
    )
    p.add_argument("--settings", type=str, default=None, help="Explicit settings TOML file.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")


def _cmd_plot(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="plotdeck plot", description="Generate a single plot.")
    p.add_argument("definition", type=str, help="Path to the plot definition YAML.")
    _add_common_args(p)
    p.add_argument(
        "-p",
        "--params",
        action="append",
        default=[],
        help="Template parameter as key=value (repeatable).",
    )
    p.add_argument("-o", "--output", type=str, default="", help="Output file (default: stdout).")
    p.add_argument("--preview", action="store_true", help="Preview the plot in a browser window.")
    args = p.parse_args(argv)
    setup_logging(args.verbose, args.json_logs)

    sources: dict[str, DataSource] = {}
    try:
        settings = Settings.load(args.settings)
        sources = build_sources(args.source)
        params = _parse_params(args.params)
        conf_dir = args.conf if args.conf is not None else settings.conf_dir
        colors = load_colors(conf_dir) if conf_dir else ColorTable()
        basis = parse_basis(args.basis)

        pd = read_plot_def(args.definition, basis, params)
        if args.validate:
            print(describe(pd))
            return 0

        logger.info("generating figure from %s", args.definition)
        fig = generate_figure(pd, PlotConfig(sources=sources, colors=colors))
        compact = settings.compact if args.compact is None else args.compact
        text = FigureDocument(fig, params=dict(pd.parameters)).to_json(compact=compact)

        if args.output:
            try:
                Path(args.output).write_text(text + "\n", encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(f"failed to create output file {args.output}: {exc}") from exc
        else:
            print(text)

        if args.preview:
            from plotdeck.preview import preview

            preview(fig)
    except PlotError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        _close_sources(sources)
    return 0


def _cmd_batch(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        prog="plotdeck batch",
        description="Generate every plot covered by the processing profiles of a config directory.",
    )
    _add_common_args(p)
    p.add_argument("--out", type=str, default=None, help="Base directory of the dated hierarchy.")
    p.add_argument("--force", action="store_true", help="Regenerate plots even if output exists.")
    p.add_argument("--concurrency", type=int, default=None, help="Number of concurrent generations.")
    p.add_argument("--match", type=str, default="", help="Only generate definitions matching this glob.")
    args = p.parse_args(argv)
    setup_logging(args.verbose, args.json_logs)

    sources: dict[str, DataSource] = {}
    try:
        settings = Settings.load(args.settings)
        conf_dir = args.conf if args.conf is not None else settings.conf_dir
        if not conf_dir:
            raise ConfigurationError("a configuration directory is required (--conf or PLOTDECK_CONF_DIR)")
        concurrency = settings.concurrency if args.concurrency is None else args.concurrency
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")

        options = BatchOptions(
            out_dir=args.out if args.out is not None else settings.out_dir,
            basis_time=parse_basis(args.basis),
            concurrency=concurrency,
            compact=settings.compact if args.compact is None else args.compact,
            validate=args.validate,
            force=args.force,
            match=args.match,
            heartbeat_seconds=settings.heartbeat_seconds,
        )
        sources = build_sources(args.source)
        logger.info("reading config from %s", conf_dir)
        config = PlotConfig(sources=sources, colors=load_colors(conf_dir, required=True))
        results = run_batch(load_profiles(conf_dir), config, options)
    except PlotError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        _close_sources(sources)

    written = sum(1 for r in results if r.status == "written")
    skipped = sum(1 for r in results if r.status == "skipped")
    logger.info("batch finished: %d written, %d skipped", written, skipped)
    return 0


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="plotdeck", description="Generate Plotly chart documents.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("plot", help="Generate a single plot.")
    sub.add_parser("batch", help="Generate a group of plots from processing profiles.")
    return p


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        build_argparser().print_help()
        return
    cmd, rest = argv[0], argv[1:]
    if cmd == "plot":
        code = _cmd_plot(rest)
    elif cmd == "batch":
        code = _cmd_batch(rest)
    else:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        code = 2
    raise SystemExit(code)


if __name__ == "__main__":
    main()
