from __future__ import annotations

import io
import json
import logging
import os
import time
from datetime import UTC, datetime
from pathlib import Path

import pytest

from plotdeck import batch
from plotdeck.batch import BatchOptions, heartbeat, parse_basis, run_batch
from plotdeck.core.errors import ConfigurationError, GenerationCancelled
from plotdeck.core.schema import ProcessingProfile
from plotdeck.data.sources import StaticDataSource, build_sources
from plotdeck.engine.figure import PlotConfig

NOW = datetime(2023, 5, 8, 10, 30, tzinfo=UTC)

SALES = """\
name: sales-{{ Params.region }}
parameters:
  region: "{{ Params.region }}"
datasets:
  - name: sales
    source: static
    query: "{month: [jan, feb], amount: [1, 2]}"
series:
  - type: bar
    name: amount
    dataset: sales
    labels: month
    values: amount
"""


@pytest.mark.parametrize(
    "value, expected",
    [
        ("now", NOW),
        ("-2h", datetime(2023, 5, 8, 8, 30, tzinfo=UTC)),
        ("-1d", datetime(2023, 5, 7, 10, 30, tzinfo=UTC)),
        ("-1w", datetime(2023, 5, 1, 10, 30, tzinfo=UTC)),
        ("2023-05-01T12:00:00Z", datetime(2023, 5, 1, 12, tzinfo=UTC)),
        ("2023-05-01T12:00:00+02:00", datetime(2023, 5, 1, 10, tzinfo=UTC)),
        ("1683540000", datetime(2023, 5, 8, 10, tzinfo=UTC)),
    ],
)
def test_parse_basis(value: str, expected: datetime) -> None:
    assert parse_basis(value, now=NOW) == expected


@pytest.mark.parametrize("value", ["yesterday", "-3m", "2023-05-01T12:00:00", "2030-01-01T00:00:00Z"])
def test_parse_basis_rejects(value: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_basis(value, now=NOW)


def test_heartbeat_logs_until_block_exits(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="plotdeck.batch"):
        with heartbeat("slow", interval=0.01):
            time.sleep(0.1)
        seen = caplog.text.count("still generating plot slow")
        time.sleep(0.05)
    assert seen >= 1
    assert caplog.text.count("still generating plot slow") == seen


def _conf(tmp_path: Path) -> ProcessingProfile:
    plots = tmp_path / "conf" / "plots"
    plots.mkdir(parents=True)
    (plots / "sales.yaml").write_text(SALES)
    return ProcessingProfile(
        source=str(plots), variants=[{"region": "north"}, {"region": "south"}]
    )


def _options(tmp_path: Path, **kw) -> BatchOptions:
    return BatchOptions(out_dir=str(tmp_path / "out"), basis_time=NOW, concurrency=2, **kw)


def _config() -> PlotConfig:
    return PlotConfig(sources=build_sources())


def test_run_batch_writes_every_variant(tmp_path: Path) -> None:
    profile = _conf(tmp_path)

    results = run_batch([profile], _config(), _options(tmp_path))

    assert [(r.name, r.status) for r in results] == [("sales-north", "written"), ("sales-south", "written")]
    dated = tmp_path / "out" / "2023" / "05" / "08" / "sales-north.json"
    assert results[0].path == str(dated)
    doc = json.loads(dated.read_text())
    assert doc["params"] == {"region": "north"}
    assert doc["data"][0]["x"] == ["jan", "feb"]
    assert (tmp_path / "out" / "latest" / "sales-south.json").exists()


def test_run_batch_skips_fresh_artifacts_unless_forced(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    run_batch([profile], _config(), _options(tmp_path))

    again = run_batch([profile], _config(), _options(tmp_path))
    assert {r.status for r in again} == {"skipped"}

    forced = run_batch([profile], _config(), _options(tmp_path, force=True))
    assert {r.status for r in forced} == {"written"}


def test_edited_definition_makes_artifact_stale(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    results = run_batch([profile], _config(), _options(tmp_path))
    for r in results:
        os.utime(r.path, (0, 0))

    again = run_batch([profile], _config(), _options(tmp_path))
    assert {r.status for r in again} == {"written"}


def test_compact_output(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    results = run_batch([profile], _config(), _options(tmp_path, compact=True))
    assert "\n" not in Path(results[0].path).read_text()


def test_validate_prints_summaries_and_writes_nothing(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    out = io.StringIO()

    results = run_batch([profile], _config(), _options(tmp_path, validate=True), out=out)

    assert {r.status for r in results} == {"validated"}
    text = out.getvalue()
    assert "Name: sales-north" in text
    assert "Name: sales-south" in text
    assert "Is missing or stale: true" in text
    assert "Is latest version: true" in text
    assert not (tmp_path / "out").exists()


def test_match_filters_definitions(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    (Path(profile.source) / "other.yaml").write_text(
        "datasets: []\n"
    )
    results = run_batch([profile], _config(), _options(tmp_path, match="other*"))
    assert [r.name for r in results] == ["other", "other"]


def test_first_failure_stops_the_batch(tmp_path: Path) -> None:
    profile = _conf(tmp_path)
    (Path(profile.source) / "broken.yaml").write_text(
        "datasets:\n  - name: d\n    source: warehouse\n    query: select 1\n"
    )
    with pytest.raises(ConfigurationError, match="warehouse") as exc:
        run_batch([profile], _config(), _options(tmp_path))
    assert profile.source in str(exc.value)


def test_empty_profile_yields_no_results(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()
    assert run_batch([ProcessingProfile(source=str(empty))], _config(), _options(tmp_path)) == []


class _WaitForCancelSource:
    """Blocks each fetch until the batch's cancel event is set (or a timeout passes)."""

    def __init__(self, seen: dict) -> None:
        self.seen = seen

    def get_dataset(self, query: str, *params):
        cancel = self.seen["cancel"]
        cancel.wait(5)
        return StaticDataSource().get_dataset(query)


def test_failure_cancels_running_jobs_at_next_checkpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    plots = tmp_path / "plots"
    plots.mkdir()
    (plots / "broken.yaml").write_text("datasets:\n  - name: d\n    source: warehouse\n")
    (plots / "slow.yaml").write_text(
        "datasets:\n"
        "  - {name: a, source: slow, query: '{v: [1]}'}\n"
        "  - {name: b, source: slow, query: '{v: [2]}'}\n"
    )

    seen: dict = {}
    outcomes: dict[str, BaseException | None] = {}
    original = batch.process_definition

    def recording(fname, variant, config, organizer, options, cancel, out):
        seen["cancel"] = cancel
        try:
            result = original(fname, variant, config, organizer, options, cancel, out)
        except BaseException as exc:
            outcomes[Path(fname).stem] = exc
            raise
        outcomes[Path(fname).stem] = None
        return result

    monkeypatch.setattr(batch, "process_definition", recording)
    sources = {**build_sources(), "slow": _WaitForCancelSource(seen)}

    with pytest.raises(ConfigurationError, match="warehouse"):
        run_batch([ProcessingProfile(source=str(plots))], PlotConfig(sources=sources), _options(tmp_path))

    assert isinstance(outcomes["broken"], ConfigurationError)
    assert isinstance(outcomes["slow"], GenerationCancelled)
    assert not (tmp_path / "out").exists()
