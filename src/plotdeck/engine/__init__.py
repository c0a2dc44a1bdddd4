"""
plotdeck.engine: compute and trace generation.

## Public API
- derive, diff, register_predicate, get_predicate, PREDICATES, ComputeInput
- series_traces, scalar_traces, table_traces
- PlotConfig, Figure, FigureDocument, generate_figure

## Import DAG discipline
- Depends on plotdeck.core, plotdeck.data and plotly (JSON encoding only).
- Must not import plotdeck.io, plotdeck.batch or the CLI.
"""

from __future__ import annotations

from .compute import PREDICATES, ComputeInput, derive, diff, get_predicate, register_predicate
from .figure import Figure, FigureDocument, PlotConfig, generate_figure
from .traces import scalar_traces, series_traces, table_traces

__all__ = [
    "PREDICATES",
    "ComputeInput",
    "derive",
    "diff",
    "get_predicate",
    "register_predicate",
    "Figure",
    "FigureDocument",
    "PlotConfig",
    "generate_figure",
    "series_traces",
    "scalar_traces",
    "table_traces",
]
