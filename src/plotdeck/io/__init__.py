"""
plotdeck.io: settings, definition loading and artifact persistence.

## Public API
- Settings: runtime settings (env > TOML > defaults).
- Organizer: dated artifact placement and the latest copy.
- parse_plot_def, read_plot_def, load_colors, load_profiles, list_definitions, describe

## Import DAG discipline
- Depends on stdlib, pyyaml, pydantic and plotdeck.core.
- Must not import plotdeck.engine, plotdeck.batch or the CLI.
"""

from __future__ import annotations

from .config import Settings
from .definitions import (
    describe,
    list_definitions,
    load_colors,
    load_profiles,
    parse_plot_def,
    read_plot_def,
)
from .organizer import Organizer

__all__ = [
    "Settings",
    "Organizer",
    "parse_plot_def",
    "read_plot_def",
    "load_colors",
    "load_profiles",
    "list_definitions",
    "describe",
]
