from __future__ import annotations

import json
import threading

import pytest

from plotdeck.core.colors import ColorTable
from plotdeck.core.errors import ConfigurationError, DataAccessError, GenerationCancelled
from plotdeck.core.schema import PlotDef
from plotdeck.data.sources import StaticDataSource, build_sources
from plotdeck.engine.figure import Figure, FigureDocument, PlotConfig, generate_figure


def _config() -> PlotConfig:
    return PlotConfig(sources=build_sources(), colors=ColorTable({"brand": "#123456"}))


def _plot(**overrides) -> PlotDef:
    doc = {
        "name": "dashboard",
        "datasets": [
            {"name": "now", "source": "static", "query": "{k: [a, b, c], v: [10, 20, 30]}"},
            {"name": "before", "source": "static", "query": "{k: [b, c, d], v: [1, 2, 3]}"},
            {"name": "grid", "source": "static", "query": "{x: [a, b], y: [r, r], z: [1, 2]}"},
        ],
        "computed": [
            {
                "name": "change",
                "function": "diff",
                "datasets": [
                    {"dataset": "now", "joinField": "k", "valueField": "v"},
                    {"dataset": "before", "joinField": "k", "valueField": "v"},
                ],
            }
        ],
        "series": [{"type": "bar", "name": "change", "dataset": "change", "labels": "key", "values": "value", "color": "brand"}],
        "scalars": [{"name": "total", "dataset": "now", "value": "v"}],
        "tables": [{"name": "grid", "dataset": "grid", "labelsX": "x", "labelsY": "y", "values": "z"}],
        "layout": {"title": {"text": "Dashboard"}},
        "config": {"displayModeBar": False},
    }
    doc.update(overrides)
    return PlotDef.model_validate(doc)


def test_generate_figure_orders_series_scalars_tables() -> None:
    fig = generate_figure(_plot(), _config())

    assert [t["type"] for t in fig.data] == ["bar", "indicator", "heatmap"]
    bar = fig.data[0]
    assert bar["x"] == ["b", "c"]
    assert bar["y"] == [19, 28]
    assert bar["marker"] == {"color": "#123456"}
    assert fig.data[1]["value"] == 10.0

    assert fig.layout["title"] == {"text": "Dashboard"}
    assert [a["text"] for a in fig.layout["annotations"]] == ["1.000", "2.000"]
    assert fig.config == {"displayModeBar": False}


def test_layout_annotations_are_extended_not_replaced() -> None:
    existing = {"text": "note", "showarrow": False}
    fig = generate_figure(_plot(layout={"annotations": [existing]}), _config())
    assert fig.layout["annotations"][0] == existing
    assert len(fig.layout["annotations"]) == 3


def test_no_tables_means_no_annotations_key() -> None:
    fig = generate_figure(_plot(tables=[]), _config())
    assert "annotations" not in fig.layout


def test_generation_does_not_mutate_definition() -> None:
    plot = _plot()
    generate_figure(plot, _config())
    assert "annotations" not in plot.layout


def test_unknown_source_is_configuration_error() -> None:
    plot = _plot(datasets=[{"name": "now", "source": "warehouse", "query": "select 1"}], computed=[])
    with pytest.raises(ConfigurationError, match="warehouse"):
        generate_figure(plot, _config())


def test_source_failure_names_the_dataset() -> None:
    plot = _plot(datasets=[{"name": "broken", "source": "static", "query": "[not, a, mapping]"}], computed=[])
    with pytest.raises(DataAccessError, match="'broken'"):
        generate_figure(plot, _config())


@pytest.mark.parametrize(
    "computed, message",
    [
        ({"name": "now", "function": "diff", "datasets": []}, "conflicts"),
        (
            {
                "name": "c",
                "function": "diff",
                "datasets": [
                    {"dataset": "now", "joinField": "k", "valueField": "v"},
                    {"dataset": "ghost", "joinField": "k", "valueField": "v"},
                ],
            },
            "ghost",
        ),
        (
            {"name": "c", "function": "diff", "datasets": [{"dataset": "now", "joinField": "k", "valueField": "v"}]},
            "number of datasets",
        ),
        (
            {
                "name": "c",
                "function": "nope",
                "datasets": [
                    {"dataset": "now", "joinField": "k", "valueField": "v"},
                    {"dataset": "before", "joinField": "k", "valueField": "v"},
                ],
            },
            "'c'",
        ),
    ],
)
def test_invalid_computed_dataset(computed: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        generate_figure(_plot(computed=[computed], series=[]), _config())


def test_cancelled_before_first_fetch() -> None:
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(GenerationCancelled):
        generate_figure(_plot(), _config(), cancel=cancel)


def test_unknown_element_dataset_still_generates() -> None:
    plot = _plot(series=[{"type": "bar", "dataset": "ghost", "values": "v"}])
    fig = generate_figure(plot, _config())
    assert [t["type"] for t in fig.data] == ["indicator", "heatmap"]


def test_document_json_carries_params() -> None:
    doc = FigureDocument(Figure(data=[{"type": "bar", "y": [1]}], layout={}, config={}), params={"env": "dev"})

    compact = doc.to_json(compact=True)
    assert "\n" not in compact
    assert json.loads(compact) == {
        "data": [{"type": "bar", "y": [1]}],
        "layout": {},
        "config": {},
        "params": {"env": "dev"},
    }

    pretty = doc.to_json()
    assert "\n  " in pretty
    assert json.loads(pretty) == json.loads(compact)
    assert doc.to_bytes(compact=True) == compact.encode("utf-8")


class _CancellingSource:
    """Static source that sets the cancel event once ``limit`` datasets were fetched."""

    def __init__(self, cancel: threading.Event, limit: int) -> None:
        self.cancel = cancel
        self.limit = limit
        self.fetched = 0

    def get_dataset(self, query: str, *params):
        self.fetched += 1
        if self.fetched >= self.limit:
            self.cancel.set()
        return StaticDataSource().get_dataset(query)


def test_cancelled_before_computed_derivation(monkeypatch: pytest.MonkeyPatch) -> None:
    derived: list[str] = []
    monkeypatch.setattr("plotdeck.engine.figure.derive", lambda *a, **kw: derived.append("x"))
    cancel = threading.Event()
    source = _CancellingSource(cancel, limit=2)
    plot = _plot(
        datasets=[
            {"name": "now", "source": "live", "query": "{k: [a], v: [1]}"},
            {"name": "before", "source": "live", "query": "{k: [a], v: [0]}"},
        ],
        series=[],
        scalars=[],
        tables=[],
    )

    with pytest.raises(GenerationCancelled):
        generate_figure(plot, PlotConfig(sources={"live": source}), cancel=cancel)

    assert source.fetched == 2
    assert derived == []


def test_cancelled_between_fetches() -> None:
    cancel = threading.Event()
    source = _CancellingSource(cancel, limit=1)
    plot = _plot(
        datasets=[
            {"name": "now", "source": "live", "query": "{k: [a], v: [1]}"},
            {"name": "before", "source": "live", "query": "{k: [a], v: [0]}"},
        ],
        computed=[],
        series=[],
        scalars=[],
        tables=[],
    )
    with pytest.raises(GenerationCancelled):
        generate_figure(plot, PlotConfig(sources={"live": source}), cancel=cancel)
    assert source.fetched == 1


def test_null_layout_annotations() -> None:
    fig = generate_figure(_plot(layout={"annotations": None}), _config())
    assert [a["text"] for a in fig.layout["annotations"]] == ["1.000", "2.000"]
