from __future__ import annotations

import logging
from datetime import datetime

import pytest

from plotdeck.core.colors import ColorTable
from plotdeck.core.errors import DataAccessError
from plotdeck.core.schema import PlotDef, SeriesDef
from plotdeck.data.dataset import FrameDataSet
from plotdeck.engine.traces import series_traces

COLORS = ColorTable({"brand": "#1f77b4"})


def _series(*defs: dict) -> list[SeriesDef]:
    return PlotDef.model_validate({"series": list(defs)}).series


def _sales() -> dict[str, FrameDataSet]:
    return {
        "sales": FrameDataSet.from_columns(
            {
                "month": ["jan", "jan", "feb", "feb", "mar"],
                "region": ["north", "south", "north", "west", "south"],
                "amount": [1, 2, 3, 4, 5],
            }
        )
    }


def test_wildcard_group_fans_out_one_trace_per_value() -> None:
    defs = _series(
        {"type": "bar", "dataset": "sales", "labels": "month", "values": "amount", "groupField": "region", "groupValue": "*"}
    )

    traces = series_traces(_sales(), defs, COLORS)

    assert [t["name"] for t in traces] == ["north", "south", "west"]
    assert [t["y"] for t in traces] == [[1, 3], [2, 5], [4]]
    assert [t["x"] for t in traces] == [["jan", "feb"], ["jan", "mar"], ["feb"]]
    # every row lands in exactly one trace
    assert sorted(v for t in traces for v in t["y"]) == [1, 2, 3, 4, 5]


def test_wildcard_group_with_base_name_prefixes() -> None:
    defs = _series(
        {"type": "bar", "name": "sales", "dataset": "sales", "values": "amount", "groupfield": "region", "groupvalue": "*"}
    )
    traces = series_traces(_sales(), defs, COLORS)
    assert [t["name"] for t in traces] == ["sales-north", "sales-south", "sales-west"]


def test_fixed_group_value_filters_rows() -> None:
    defs = _series(
        {"type": "line", "name": "north", "dataset": "sales", "labels": "month", "values": "amount", "groupField": "region", "groupValue": "north"}
    )
    (trace,) = series_traces(_sales(), defs, COLORS)
    assert trace["x"] == ["jan", "feb"]
    assert trace["y"] == [1, 3]


def test_shapes() -> None:
    defs = _series(
        {"type": "bar", "name": "a", "dataset": "sales", "labels": "month", "values": "amount"},
        {"type": "hbar", "name": "b", "dataset": "sales", "labels": "month", "values": "amount"},
        {"type": "line", "name": "c", "dataset": "sales", "labels": "month", "values": "amount", "marker": "triangle", "fill": "tozero"},
        {"type": "box", "name": "d", "dataset": "sales", "values": "amount"},
        {"type": "hbox", "name": "e", "dataset": "sales", "values": "amount"},
    )
    bar, hbar, line, box, hbox = series_traces(_sales(), defs, COLORS)

    assert bar["type"] == "bar" and bar["orientation"] == "v"
    assert bar["x"] == ["jan", "jan", "feb", "feb", "mar"]
    assert hbar["orientation"] == "h"
    assert hbar["x"] == [1, 2, 3, 4, 5]
    assert hbar["y"] == ["jan", "jan", "feb", "feb", "mar"]
    assert line["type"] == "scatter"
    assert line["mode"] == "lines+markers"
    assert line["marker"] == {"symbol": "triangle-up"}
    assert line["fill"] == "tozeroy"
    assert box == {"type": "box", "name": "d", "y": [1, 2, 3, 4, 5]}
    assert hbox == {"type": "box", "name": "e", "x": [1, 2, 3, 4, 5]}


def test_plain_line_has_no_marker_or_fill() -> None:
    defs = _series({"type": "line", "dataset": "sales", "labels": "month", "values": "amount"})
    (line,) = series_traces(_sales(), defs, COLORS)
    assert line["mode"] == "lines"
    assert "marker" not in line and "fill" not in line


def test_colors_and_hovertemplate() -> None:
    defs = _series(
        {"type": "bar", "name": "a", "dataset": "sales", "values": "amount", "color": "brand", "hovertemplate": "%{y}"},
        {"type": "bar", "name": "b", "dataset": "sales", "values": "amount", "color": "tomato"},
        {"type": "bar", "name": "c", "dataset": "sales", "values": "amount"},
    )
    a, b, c = series_traces(_sales(), defs, COLORS)
    assert a["marker"] == {"color": "#1f77b4"}
    assert a["hovertemplate"] == "%{y}"
    assert b["marker"] == {"color": "tomato"}
    assert "marker" not in c
    assert "x" not in c


def test_output_sorted_by_declaration_then_name() -> None:
    data = _sales()
    data["other"] = FrameDataSet.from_columns({"v": [9]})
    defs = _series(
        {"type": "bar", "name": "z-first", "dataset": "other", "values": "v"},
        {"type": "bar", "dataset": "sales", "values": "amount", "groupField": "region", "groupValue": "*"},
    )
    traces = series_traces(data, defs, COLORS)
    assert [t["name"] for t in traces] == ["z-first", "north", "south", "west"]


def test_timestamps_are_rfc3339_strings() -> None:
    data = {"ts": FrameDataSet.from_columns({"t": [datetime(2023, 5, 8, 10)], "v": [1.5]})}
    defs = _series({"type": "line", "dataset": "ts", "labels": "t", "values": "v"})
    (trace,) = series_traces(data, defs, COLORS)
    assert trace["x"] == ["2023-05-08T10:00:00Z"]


def test_unknown_dataset_or_field_skips_only_that_series(caplog: pytest.LogCaptureFixture) -> None:
    defs = _series(
        {"type": "bar", "name": "ghost", "dataset": "missing", "values": "amount"},
        {"type": "bar", "name": "typo", "dataset": "sales", "values": "amout"},
        {"type": "bar", "name": "ok", "dataset": "sales", "values": "amount"},
    )
    with caplog.at_level(logging.WARNING, logger="plotdeck.engine.traces"):
        traces = series_traces(_sales(), defs, COLORS)

    assert [t["name"] for t in traces] == ["ok"]
    assert "'missing'" in caplog.text
    assert "'amout'" in caplog.text


def test_iteration_error_aborts() -> None:
    data = _sales()
    data["sales"].fail(RuntimeError("lost connection"))
    defs = _series({"type": "bar", "dataset": "sales", "values": "amount"})
    with pytest.raises(DataAccessError):
        series_traces(data, defs, COLORS)


def test_wildcard_null_group_keeps_base_name() -> None:
    data = {"s": FrameDataSet.from_columns({"region": ["north", None], "amount": [1, 2]})}
    defs = _series(
        {"type": "bar", "name": "sales", "dataset": "s", "values": "amount", "groupField": "region", "groupValue": "*"}
    )
    traces = series_traces(data, defs, COLORS)
    assert [(t["name"], t["y"]) for t in traces] == [("sales", [2]), ("sales-north", [1])]
