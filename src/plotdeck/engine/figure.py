"""
Per-plot orchestration: resolve datasets, derive computed datasets, run the trace passes.

Flow
1. For each declared dataset (in order): check cancellation, look up its source,
   fetch the dataset.
2. For each computed dataset (in order): check cancellation, validate the
   definition, derive it with the registered predicate.
3. Run the series, scalar and table passes and assemble the Figure.

Cancellation
- Observed only at the checkpoints before each dataset fetch and each derivation.
  A query already submitted to a source runs to completion.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from plotly.utils import PlotlyJSONEncoder

from plotdeck.core.colors import ColorTable
from plotdeck.core.errors import ConfigurationError, DataAccessError, GenerationCancelled, PlotError
from plotdeck.core.schema import ComputedDef, PlotDef
from plotdeck.data.dataset import DataSet
from plotdeck.data.sources import DataSource

from .compute import ComputeInput, derive
from .traces import Trace, scalar_traces, series_traces, table_traces

__all__ = ["PlotConfig", "Figure", "FigureDocument", "generate_figure"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlotConfig:
    """
    Collaborators shared by every generation in a run.

    Attributes:
        sources (Mapping[str, DataSource]): Data source registry by name.
        colors (ColorTable): Color lookup for all traces.
    """

    sources: Mapping[str, DataSource]
    colors: ColorTable = field(default_factory=ColorTable)


@dataclass(slots=True)
class Figure:
    data: list[Trace]
    layout: dict[str, Any]
    config: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "layout": self.layout, "config": self.config}


@dataclass(slots=True, frozen=True)
class FigureDocument:
    """
    Output artifact: the figure plus the template parameters it was generated with.

    Examples:
        >>> doc = FigureDocument(Figure(data=[], layout={}, config={}), params={"env": "dev"})
        >>> doc.to_json(compact=True)
        '{"data": [], "layout": {}, "config": {}, "params": {"env": "dev"}}'
    """

    figure: Figure
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**self.figure.to_dict(), "params": self.params}

    def to_json(self, *, compact: bool = False) -> str:
        return json.dumps(self.to_dict(), cls=PlotlyJSONEncoder, indent=None if compact else 2)

    def to_bytes(self, *, compact: bool = False) -> bytes:
        return self.to_json(compact=compact).encode("utf-8")


def _checkpoint(cancel: threading.Event | None, plot: str) -> None:
    if cancel is not None and cancel.is_set():
        raise GenerationCancelled(f"generation of plot {plot!r} cancelled")


def _derive_computed(cds: ComputedDef, datasets: Mapping[str, DataSet]) -> DataSet:
    if cds.name in datasets:
        raise ConfigurationError(f"computed dataset name conflicts with existing dataset: {cds.name!r}")
    for ref in cds.datasets:
        if ref.dataset not in datasets:
            raise ConfigurationError(f"unknown dataset in computed dataset {cds.name!r}: {ref.dataset!r}")
    if len(cds.datasets) != 2:
        raise ConfigurationError(
            f"unexpected number of datasets in computed dataset {cds.name!r}: {len(cds.datasets)}"
        )
    left, right = cds.datasets
    logger.debug(
        "computing dataset %s with %s(%s, %s)", cds.name, cds.function, left.dataset, right.dataset
    )
    try:
        return derive(
            cds.function,
            ComputeInput(left, datasets[left.dataset]),
            ComputeInput(right, datasets[right.dataset]),
        )
    except ConfigurationError as exc:
        raise ConfigurationError(f"computed dataset {cds.name!r}: {exc}") from exc
    except DataAccessError as exc:
        raise type(exc)(f"failed to compute dataset {cds.name!r}: {exc}") from exc


def generate_figure(
    plot_def: PlotDef, config: PlotConfig, cancel: threading.Event | None = None
) -> Figure:
    """
    Generate the Plotly figure for one plot definition.

    Args:
        plot_def (PlotDef): Parsed (already templated) plot definition.
        config (PlotConfig): Sources and colors.
        cancel (threading.Event | None): Shared cancellation token, checked before
            each dataset fetch and each computed derivation.

    Returns:
        Figure: Series, then scalar, then table traces; the definition's layout
        with ``annotations`` added when tables produced any; the config passthrough.

    Raises:
        ConfigurationError: Unknown source, invalid computed dataset, unsupported
            element kind or duplicate table cell.
        DataAccessError: A source failed or a dataset ended in error.
        GenerationCancelled: ``cancel`` was set at a checkpoint.
    """
    name = plot_def.name
    datasets: dict[str, DataSet] = {}

    for dsdef in plot_def.datasets:
        _checkpoint(cancel, name)
        src = config.sources.get(dsdef.source)
        if src is None:
            raise ConfigurationError(f"unknown dataset source {dsdef.source!r} in dataset {dsdef.name!r}")
        logger.debug(
            "getting dataset %s from source %s: %s",
            dsdef.name,
            dsdef.source,
            dsdef.query.replace("\n", " "),
        )
        try:
            datasets[dsdef.name] = src.get_dataset(dsdef.query)
        except PlotError as exc:
            raise DataAccessError(
                f"failed to get dataset {dsdef.name!r} from source {dsdef.source!r}: {exc}"
            ) from exc

    for cds in plot_def.computed:
        _checkpoint(cancel, name)
        datasets[cds.name] = _derive_computed(cds, datasets)

    data: list[Trace] = []
    data.extend(series_traces(datasets, plot_def.series, config.colors))
    data.extend(scalar_traces(datasets, plot_def.scalars, config.colors))
    tables, annotations = table_traces(datasets, plot_def.tables)
    data.extend(tables)

    layout = dict(plot_def.layout)
    if annotations:
        layout["annotations"] = [*(layout.get("annotations") or []), *annotations]
    logger.info("generated plot %s with %d traces", name, len(data))
    return Figure(data=data, layout=layout, config=dict(plot_def.config))
