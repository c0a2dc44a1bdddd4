"""
Trace passes: turn chart element definitions plus resolved datasets into Plotly traces.

Passes
- series_traces: bar, hbar, line, box and hbox traces. Rows can be fanned out into
  one trace per distinct group value, or filtered to a single group value.
- scalar_traces: indicator traces read from the first row of a dataset, optionally
  with a relative delta against a second dataset.
- table_traces: heatmap traces plus one annotation per grid cell.

Each pass partitions its definitions by backing dataset so every dataset is scanned
once per pass. Definitions that reference an unknown dataset, or a field the
dataset does not declare, are logged and skipped; the remaining elements still
render.

Notes:
    - Traces are plain dicts in Plotly's figure JSON shape. Colors are resolved
      through the ColorTable and written verbatim, including unregistered names.
    - Output order is deterministic: accumulators are sorted by (declaration index,
      display name).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from plotdeck.core.colors import ColorTable
from plotdeck.core.constants import DEFAULT_COLORSCALE, WILDCARD_GROUP
from plotdeck.core.errors import ConfigurationError, DataAccessError, LookupMiss
from plotdeck.core.grammar import DeltaType, FillType, MarkerType, ScalarType, SeriesType, TableType
from plotdeck.core.schema import ScalarDef, SeriesDef, TableDef
from plotdeck.core.values import FieldValue
from plotdeck.data.dataset import DataSet

__all__ = [
    "Trace",
    "Annotation",
    "LabeledSeries",
    "LabeledTable",
    "series_traces",
    "scalar_traces",
    "table_traces",
]

logger = logging.getLogger(__name__)

Trace = dict[str, Any]
Annotation = dict[str, Any]

_D = TypeVar("_D", SeriesDef, ScalarDef, TableDef)


def _element_label(kind: str, definition: SeriesDef | ScalarDef | TableDef) -> str:
    return f"{kind} {definition.name!r}" if definition.name else f"{kind} #{definition.order}"


def _require(
    datasets: Mapping[str, DataSet], name: str, fields: Iterable[str], element: str
) -> DataSet:
    ds = datasets.get(name)
    if ds is None:
        raise LookupMiss(f"unknown dataset name {name!r} in {element}")
    declared = set(ds.fields)
    for f in fields:
        if f and f not in declared:
            raise LookupMiss(f"field {f!r} not found in dataset {name!r} for {element}")
    return ds


def _partition(
    definitions: Sequence[_D],
    datasets: Mapping[str, DataSet],
    kind: str,
    fields_of: Callable[[_D], Iterable[str]],
) -> dict[str, list[_D]]:
    grouped: dict[str, list[_D]] = {}
    for d in definitions:
        try:
            _require(datasets, d.dataset, fields_of(d), _element_label(kind, d))
        except LookupMiss as exc:
            logger.warning("skipping %s: %s", kind, exc)
            continue
        grouped.setdefault(d.dataset, []).append(d)
    return grouped


def _check_iteration(ds: DataSet, name: str) -> None:
    if (err := ds.err()) is not None:
        raise DataAccessError(f"dataset {name!r} iteration ended with an error: {err}") from err


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class LabeledSeries:
    """Accumulator for one rendered series: parallel label and value lists."""

    name: str
    definition: SeriesDef
    labels: list[Any] = field(default_factory=list)
    values: list[Any] = field(default_factory=list)


def _series_fields(s: SeriesDef) -> tuple[str, ...]:
    return (s.values, s.labels, s.group_field)


def _display_name(s: SeriesDef, ds: DataSet) -> str | None:
    """
    Display name for the current row, or None when the row is filtered out.

    Under the wildcard a null group value keeps the base name alone.
    """
    if not s.group_field:
        return s.name
    group = ds.field(s.group_field).canonical_text()
    if s.group_value == WILDCARD_GROUP:
        return f"{s.name}-{group}" if s.name and group else (group or s.name)
    if group != s.group_value:
        return None
    return s.name


def _scan_series(dsname: str, ds: DataSet, series: Sequence[SeriesDef]) -> list[LabeledSeries]:
    data: list[LabeledSeries] = []
    index: dict[str, LabeledSeries] = {}
    rowcount = 0

    logger.info("reading dataset %s", dsname)
    ds.reset_iterator()
    while ds.next():
        rowcount += 1
        for s in series:
            name = _display_name(s, ds)
            if name is None:
                continue
            ls = index.get(name)
            if ls is None:
                logger.debug("creating series %r from dataset %s", name, dsname)
                ls = LabeledSeries(name=name, definition=s)
                data.append(ls)
                index[name] = ls
            if s.labels:
                ls.labels.append(ds.field(s.labels).to_json())
            ls.values.append(ds.field(s.values).to_json())
    _check_iteration(ds, dsname)
    logger.info("finished reading dataset %s (%d rows)", dsname, rowcount)
    return data


def _render_series(ls: LabeledSeries, colors: ColorTable) -> Trace:
    s = ls.definition
    trace: Trace
    match s.type:
        case SeriesType.BAR:
            trace = {"type": "bar", "name": ls.name, "orientation": "v"}
            if s.labels:
                trace["x"] = ls.labels
            trace["y"] = ls.values
        case SeriesType.HBAR:
            trace = {"type": "bar", "name": ls.name, "orientation": "h", "x": ls.values}
            if s.labels:
                trace["y"] = ls.labels
        case SeriesType.LINE:
            trace = {"type": "scatter", "name": ls.name, "mode": "lines"}
            if s.labels:
                trace["x"] = ls.labels
            trace["y"] = ls.values
            if s.fill is FillType.TOZERO:
                trace["fill"] = "tozeroy"
            if s.marker is not MarkerType.NONE:
                trace["mode"] = "lines+markers"
                trace["marker"] = {"symbol": s.marker.symbol}
        case SeriesType.BOX:
            trace = {"type": "box", "name": ls.name, "y": ls.values}
        case SeriesType.HBOX:
            trace = {"type": "box", "name": ls.name, "x": ls.values}
        case _:
            raise ConfigurationError(f"unsupported series type {s.type!r} in series {ls.name!r}")

    if s.hovertemplate is not None:
        trace["hovertemplate"] = s.hovertemplate
    if c := colors.lookup(s.color):
        trace.setdefault("marker", {})["color"] = c
    return trace


def series_traces(
    datasets: Mapping[str, DataSet], definitions: Sequence[SeriesDef], colors: ColorTable
) -> list[Trace]:
    """
    Render series definitions into bar/scatter/box traces.

    Args:
        datasets (Mapping[str, DataSet]): Resolved datasets by name.
        definitions (Sequence[SeriesDef]): Series definitions in declaration order.
        colors (ColorTable): Color lookup.

    Returns:
        list[Trace]: One trace per display name, sorted by (declaration index, name).

    Raises:
        DataAccessError: A backing dataset ended its iteration in error.
        ConfigurationError: A series has an unsupported shape.
    """
    grouped = _partition(definitions, datasets, "series", _series_fields)

    accumulated: list[LabeledSeries] = []
    for dsname, series in grouped.items():
        accumulated.extend(_scan_series(dsname, datasets[dsname], series))

    accumulated.sort(key=lambda ls: (ls.definition.order, ls.name))
    return [_render_series(ls, colors) for ls in accumulated]


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _first_number(datasets: Mapping[str, DataSet], dsname: str, fieldname: str, element: str) -> float:
    ds = _require(datasets, dsname, (fieldname,), element)
    ds.reset_iterator()
    if not ds.next():
        _check_iteration(ds, dsname)
        raise LookupMiss(f"no rows found in dataset {dsname!r} for {element}")
    v: FieldValue = ds.field(fieldname)
    number = v.as_float()
    if number is None:
        raise LookupMiss(
            f"field {fieldname!r} of dataset {dsname!r} is {v.kind.value}, not a number, for {element}"
        )
    return number


def _render_scalar(
    s: ScalarDef, value: float, reference: float | None, count: int, colors: ColorTable
) -> Trace:
    if s.type is not ScalarType.NUMBER:
        raise ConfigurationError(f"unsupported scalar type {s.type!r} in {_element_label('scalar', s)}")

    idx = s.order
    trace: Trace = {
        "type": "indicator",
        "name": s.name,
        "mode": "number",
        "value": value,
        "title": {"text": s.name},
        "domain": {"column": idx, "x": [idx / count, (idx + 1) / count]},
    }
    number: dict[str, Any] = {}
    if s.value_prefix:
        number["prefix"] = s.value_prefix
    if s.value_suffix:
        number["suffix"] = s.value_suffix
    if c := colors.lookup(s.color):
        number["font"] = {"color": c}
    if number:
        trace["number"] = number

    if reference is None:
        return trace

    if s.delta_type is not DeltaType.RELATIVE:
        raise ConfigurationError(
            f"unsupported delta type {s.delta_type.value!r} in {_element_label('scalar', s)}"
        )
    delta: dict[str, Any] = {"reference": reference, "relative": True, "valueformat": ".2%"}
    if value > reference and (c := colors.lookup(s.increase_color)):
        delta["increasing"] = {"color": c}
    elif value < reference and (c := colors.lookup(s.decrease_color)):
        delta["decreasing"] = {"color": c}
    trace["mode"] = "number+delta"
    trace["delta"] = delta
    return trace


def scalar_traces(
    datasets: Mapping[str, DataSet], definitions: Sequence[ScalarDef], colors: ColorTable
) -> list[Trace]:
    """
    Render scalar definitions into indicator traces laid out side by side.

    Each scalar occupies an equal horizontal fraction of the figure, indexed by its
    declaration order. Only the first row of each referenced dataset is read.
    """
    traces: list[Trace] = []
    count = len(definitions)
    for s in definitions:
        element = _element_label("scalar", s)
        try:
            value = _first_number(datasets, s.dataset, s.value, element)
            reference = None
            if s.delta_dataset:
                reference = _first_number(datasets, s.delta_dataset, s.delta_value, f"delta of {element}")
        except LookupMiss as exc:
            logger.warning("skipping scalar: %s", exc)
            continue
        traces.append(_render_scalar(s, value, reference, count, colors))
    return traces


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class LabeledTable:
    """Accumulator for one table: first-seen axis labels and cells keyed by canonical text."""

    name: str
    definition: TableDef
    labels_x: list[Any] = field(default_factory=list)
    labels_y: list[Any] = field(default_factory=list)
    keys_x: list[str] = field(default_factory=list)
    keys_y: list[str] = field(default_factory=list)
    cells: dict[tuple[str, str], FieldValue] = field(default_factory=dict)

    def add(self, x: FieldValue, y: FieldValue, value: FieldValue) -> None:
        kx, ky = x.canonical_text(), y.canonical_text()
        if (kx, ky) in self.cells:
            raise ConfigurationError(f"found two values for {kx}/{ky} in table {self.name!r}")
        if kx not in self.keys_x:
            self.keys_x.append(kx)
            self.labels_x.append(x.to_json())
        if ky not in self.keys_y:
            self.keys_y.append(ky)
            self.labels_y.append(y.to_json())
        self.cells[kx, ky] = value

    def value_z(self) -> list[list[Any]]:
        """Dense len(y) x len(x) grid; absent cells are None."""
        return [[self._json(kx, ky) for kx in self.keys_x] for ky in self.keys_y]

    def annotations(self) -> list[Annotation]:
        out: list[Annotation] = []
        for ky, ly in zip(self.keys_y, self.labels_y):
            for kx, lx in zip(self.keys_x, self.labels_x):
                out.append(
                    {
                        "xref": "x1",
                        "yref": "y1",
                        "x": lx,
                        "y": ly,
                        "text": self._text(kx, ky),
                        "showarrow": False,
                    }
                )
        return out

    def _json(self, kx: str, ky: str) -> Any:
        v = self.cells.get((kx, ky))
        return None if v is None else v.to_json()

    def _text(self, kx: str, ky: str) -> str:
        v = self.cells.get((kx, ky))
        if v is None:
            return ""
        if v.is_numeric:
            return f"{v.value:.3f}"
        j = v.to_json()
        return "" if j is None else str(j)


def _table_fields(t: TableDef) -> tuple[str, ...]:
    return (t.labels_x, t.labels_y, t.values)


def _render_table(lt: LabeledTable) -> Trace:
    t = lt.definition
    if t.type is not TableType.HEATMAP:
        raise ConfigurationError(f"unsupported table type {t.type!r} in table {lt.name!r}")
    trace: Trace = {
        "type": "heatmap",
        "name": lt.name,
        "x": lt.labels_x,
        "y": lt.labels_y,
        "z": lt.value_z(),
        "colorscale": t.colorscale or DEFAULT_COLORSCALE,
        "reversescale": True,
    }
    if t.colorbar is not None:
        trace["colorbar"] = t.colorbar
    return trace


def table_traces(
    datasets: Mapping[str, DataSet], definitions: Sequence[TableDef]
) -> tuple[list[Trace], list[Annotation]]:
    """
    Render table definitions into heatmap traces and per-cell annotations.

    Returns:
        tuple[list[Trace], list[Annotation]]: Heatmaps in (declaration index, name)
        order and the annotations of every table, in the same order.

    Raises:
        ConfigurationError: The same (x, y) cell appears twice, or a table has an
            unsupported type.
        DataAccessError: A backing dataset ended its iteration in error.
    """
    grouped = _partition(definitions, datasets, "table", _table_fields)

    accumulated: list[LabeledTable] = []
    for dsname, tables in grouped.items():
        ds = datasets[dsname]
        index: dict[str, LabeledTable] = {}

        logger.info("reading dataset %s", dsname)
        ds.reset_iterator()
        while ds.next():
            for t in tables:
                lt = index.get(t.name)
                if lt is None:
                    logger.debug("creating table %r from dataset %s", t.name, dsname)
                    lt = LabeledTable(name=t.name, definition=t)
                    index[t.name] = lt
                    accumulated.append(lt)
                lt.add(ds.field(t.labels_x), ds.field(t.labels_y), ds.field(t.values))
        _check_iteration(ds, dsname)

    accumulated.sort(key=lambda lt: (lt.definition.order, lt.name))
    traces: list[Trace] = []
    annotations: list[Annotation] = []
    for lt in accumulated:
        traces.append(_render_table(lt))
        annotations.extend(lt.annotations())
    return traces, annotations
