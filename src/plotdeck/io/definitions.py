"""
Loading of plot definitions, colors.yaml and profiles.yaml.

Responsibilities
- Read definition text, render it as a template, decode YAML and validate it into
  a PlotDef (name defaults to the file stem).
- Load the color table and processing profiles from a configuration directory.
- Resolve which definition files a profile covers.

Notes
- All decoding errors surface as ConfigurationError naming the file.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from plotdeck.core.colors import ColorTable
from plotdeck.core.errors import ConfigurationError
from plotdeck.core.schema import ColorDoc, PlotDef, ProcessingProfile
from plotdeck.core.template import render_template

__all__ = [
    "COLORS_FILE",
    "PROFILES_FILE",
    "DEFINITION_GLOB",
    "plot_name",
    "parse_plot_def",
    "read_plot_def",
    "load_colors",
    "load_profiles",
    "list_definitions",
    "describe",
]

logger = logging.getLogger(__name__)

COLORS_FILE = "colors.yaml"
PROFILES_FILE = "profiles.yaml"
DEFINITION_GLOB = "*.yaml"

_PROFILES = TypeAdapter(list[ProcessingProfile])


def plot_name(filename: str | os.PathLike[str]) -> str:
    """Default plot name: the file name without directory or extension."""
    return Path(filename).stem


def _load_yaml(content: str | bytes, source: str) -> Any:
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"failed to decode {source}: {exc}") from exc


def _read_text(path: str | os.PathLike[str], what: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"failed to read {what} {os.fspath(path)}: {exc}") from exc


def parse_plot_def(filename: str | os.PathLike[str], content: str | bytes) -> PlotDef:
    """
    Decode and validate (already templated) plot definition text.

    Args:
        filename: File the content came from; used for the default name and errors.
        content: YAML text.

    Returns:
        PlotDef: Validated definition.

    Raises:
        ConfigurationError: Invalid YAML, unknown keys or enum tokens, missing fields.
    """
    fname = os.fspath(filename)
    logger.info("parsing plot definition file %s", fname)
    doc = _load_yaml(content, f"plot definition {fname}")
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigurationError(f"plot definition {fname} must be a mapping")
    try:
        pd = PlotDef.model_validate(doc)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid plot definition {fname}: {exc}") from exc
    if not pd.name:
        pd.name = plot_name(fname)
    return pd


def read_plot_def(
    path: str | os.PathLike[str],
    basis_time: datetime,
    params: Mapping[str, Any] | None = None,
) -> PlotDef:
    """Read, render and parse a plot definition file."""
    text = _read_text(path, "plot definition")
    try:
        templated = render_template(text, basis_time, params)
    except ConfigurationError as exc:
        raise ConfigurationError(f"plot definition {os.fspath(path)}: {exc}") from exc
    return parse_plot_def(path, templated)


def load_colors(conf_dir: str | os.PathLike[str], *, required: bool = False) -> ColorTable:
    """
    Load ``colors.yaml`` from a configuration directory.

    Args:
        conf_dir: Configuration directory.
        required (bool): When False a missing file yields an empty ColorTable.

    Raises:
        ConfigurationError: The file is required but missing, or cannot be decoded.
    """
    path = Path(conf_dir) / COLORS_FILE
    if not path.exists() and not required:
        logger.debug("no %s in %s", COLORS_FILE, conf_dir)
        return ColorTable()
    logger.info("parsing %s", path)
    doc = _load_yaml(_read_text(path, "colors"), str(path)) or {}
    try:
        return ColorTable.from_doc(ColorDoc.model_validate(doc))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid colors file {path}: {exc}") from exc


def load_profiles(conf_dir: str | os.PathLike[str]) -> list[ProcessingProfile]:
    """
    Load ``profiles.yaml``; each profile source is resolved against ``conf_dir``.

    Raises:
        ConfigurationError: Missing or invalid profiles file.
    """
    path = Path(conf_dir) / PROFILES_FILE
    doc = _load_yaml(_read_text(path, "profiles"), str(path)) or []
    try:
        profiles = _PROFILES.validate_python(doc)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid processing profiles {path}: {exc}") from exc
    return [
        p.model_copy(update={"source": os.path.join(os.fspath(conf_dir), p.source)}) for p in profiles
    ]


def list_definitions(profile: ProcessingProfile, match: str = "") -> list[str]:
    """
    Definition files covered by a profile, sorted by name.

    A directory source covers its ``*.yaml`` files; a file source covers that file.
    A non-empty ``match`` glob replaces either pattern and is applied to file names
    in the source's directory.
    """
    if os.path.isdir(profile.source):
        directory, pattern = profile.source, DEFINITION_GLOB
        logger.info("using plot definitions in %s", directory)
    else:
        directory, pattern = os.path.dirname(profile.source), os.path.basename(profile.source)
    if match:
        pattern = match
    try:
        names = os.listdir(directory or ".")
    except OSError as exc:
        raise ConfigurationError(f"failed to read input directory {directory}: {exc}") from exc
    return [
        os.path.join(directory, n)
        for n in sorted(names)
        if fnmatch.fnmatchcase(n, pattern) and os.path.isfile(os.path.join(directory or ".", n))
    ]


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line for line in text.splitlines())


def describe(pd: PlotDef, **extra: Any) -> str:
    """
    Human-readable summary of a definition, printed in validate mode.

    Keyword arguments are rendered as additional ``Key: value`` lines after the
    frequency (e.g. ``Output=...``).
    """
    lines = [f"Name: {pd.name}", f"Frequency: {pd.frequency.value}"]
    lines.extend(f"{k.replace('_', ' ')}: {v}" for k, v in extra.items())
    lines.append("Datasets:")
    for ds in pd.datasets:
        lines.append(f"  Name: {ds.name}")
        lines.append(f"  Source: {ds.source}")
        lines.append("  Query:")
        lines.append(_indent(ds.query, "      "))
    return "\n".join(lines)
