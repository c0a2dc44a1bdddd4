from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from plotdeck.core.errors import ConfigurationError, DataAccessError
from plotdeck.core.values import FieldKind
from plotdeck.data.dataset import DataSet
from plotdeck.data.sources import (
    DemoDataSource,
    SqlDataSource,
    StaticDataSource,
    build_sources,
)


def _column(ds: DataSet, field: str) -> list:
    ds.reset_iterator()
    out = []
    while ds.next():
        out.append(ds.field(field).value)
    return out


def _sqlite_db(tmp_path: Path) -> str:
    path = tmp_path / "items.db"
    with sqlite3.connect(path) as conn:
        conn.execute("create table items (name text, qty integer, price real)")
        conn.executemany(
            "insert into items values (?, ?, ?)",
            [("apple", 3, 0.5), ("pear", 7, 0.75), ("plum", 1, 1.25)],
        )
    return f"sqlite:///{path}"


def test_static_source_reads_inline_mapping() -> None:
    ds = StaticDataSource().get_dataset("{k: [a, b], v: [1, 2]}")
    assert ds.fields == ("k", "v")
    assert _column(ds, "k") == ["a", "b"]
    assert _column(ds, "v") == [1, 2]


@pytest.mark.parametrize("query", ["[1, 2]", "{k: 1}", "{k: [1, 2"])
def test_static_source_rejects_malformed_queries(query: str) -> None:
    with pytest.raises(DataAccessError):
        StaticDataSource().get_dataset(query)


def test_demo_source() -> None:
    ds = DemoDataSource().get_dataset("populations")
    assert _column(ds, "creature") == ["giraffes", "orangutans", "monkeys"]
    with pytest.raises(DataAccessError):
        DemoDataSource().get_dataset("unicorns")


def test_sql_source_runs_query_with_positional_params(tmp_path: Path) -> None:
    src = SqlDataSource(_sqlite_db(tmp_path))
    try:
        ds = src.get_dataset("select name, qty from items where qty > :p1 order by name", 2)
        assert ds.fields == ("name", "qty")
        assert _column(ds, "name") == ["apple", "pear"]
        assert _column(ds, "qty") == [3, 7]
    finally:
        src.dispose()


def test_sql_source_query_failure_is_data_access_error(tmp_path: Path) -> None:
    src = SqlDataSource(_sqlite_db(tmp_path))
    try:
        with pytest.raises(DataAccessError):
            src.get_dataset("select * from missing_table")
    finally:
        src.dispose()


def test_sql_source_caches_initialization_failure() -> None:
    src = SqlDataSource("nosuchdialect://host/db")
    with pytest.raises(DataAccessError) as first:
        src.get_dataset("select 1")
    with pytest.raises(DataAccessError) as second:
        src.get_dataset("select 1")
    assert first.value is second.value


def test_build_sources_has_builtins() -> None:
    sources = build_sources()
    assert set(sources) == {"static", "demo"}


def test_build_sources_normalizes_postgres_urls() -> None:
    sources = build_sources(["db=postgres://user:pw@localhost:5432/app"])
    src = sources["db"]
    assert isinstance(src, SqlDataSource)
    assert src.url == "postgresql://user:pw@localhost:5432/app"
    assert "pw" not in src.display_url


@pytest.mark.parametrize(
    "spec",
    [
        "no-equals-sign",
        "=sqlite://",
        "static=sqlite://",
        "cache=redis://localhost",
    ],
)
def test_build_sources_rejects_bad_specs(spec: str) -> None:
    with pytest.raises(ConfigurationError):
        build_sources([spec])


def test_build_sources_rejects_duplicates() -> None:
    with pytest.raises(ConfigurationError):
        build_sources(["db=sqlite://", "db=sqlite://"])


def test_static_source_rejects_mixed_kind_columns() -> None:
    with pytest.raises(DataAccessError, match="'v'"):
        StaticDataSource().get_dataset("{v: [5, x]}")


def test_static_source_widens_mixed_numbers() -> None:
    ds = StaticDataSource().get_dataset("{v: [1, 2.5, null]}")
    ds.reset_iterator()
    assert ds.next()
    first = ds.field("v")
    assert first.kind is FieldKind.FLOAT and first.value == 1.0


def test_sql_source_caches_unexpected_initialization_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    def explode(self: SqlDataSource):
        calls.append(self.url)
        raise RuntimeError("driver crashed")

    monkeypatch.setattr(SqlDataSource, "_create_engine", explode)
    src = SqlDataSource("sqlite://")
    with pytest.raises(DataAccessError, match="driver crashed") as first:
        src.get_dataset("select 1")
    with pytest.raises(DataAccessError) as second:
        src.get_dataset("select 1")
    assert first.value is second.value
    assert calls == ["sqlite://"]


def test_sql_source_is_shared_across_threads(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[int] = []
    original = SqlDataSource._create_engine

    def counting(self: SqlDataSource):
        created.append(1)
        return original(self)

    monkeypatch.setattr(SqlDataSource, "_create_engine", counting)
    src = SqlDataSource(_sqlite_db(tmp_path))

    def names(threshold: int) -> list:
        ds = src.get_dataset("select name from items where qty > :p1 order by name", threshold)
        return _column(ds, "name")

    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(names, [0, 2, 5] * 8))
    finally:
        src.dispose()

    assert results == [["apple", "pear", "plum"], ["apple", "pear"], ["pear"]] * 8
    assert len(created) == 1
