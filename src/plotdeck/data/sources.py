"""
Data sources: named providers resolving a query string into a DataSet.

Implementors
- StaticDataSource ("static"): the query text itself is a YAML/JSON mapping of
  column name to a list of values. Used for fixtures and small inline tables.
  Each column holds one kind of value (nulls aside); ints and floats may mix and
  are read back as floats.
- DemoDataSource ("demo"): a few canned datasets addressed by name.
- SqlDataSource: any SQLAlchemy URL. The engine (and its connection pool) is created
  lazily, at most once per instance; the outcome of that initialization is cached and
  a failure is re-raised on every later call without retrying. Results are read with
  polars.read_database and materialized once.

Concurrency
- Sources are shared by concurrent generations. SqlDataSource guards initialization
  with a lock and relies on the SQLAlchemy pool for per-query connections.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any, Protocol

import polars as pl
import yaml
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from plotdeck.core.errors import ConfigurationError, DataAccessError
from plotdeck.core.values import FieldKind, FieldValue

from .dataset import DataSet, FrameDataSet

__all__ = [
    "DataSource",
    "StaticDataSource",
    "DemoDataSource",
    "SqlDataSource",
    "build_sources",
    "SQL_SCHEMES",
]

logger = logging.getLogger(__name__)

SQL_SCHEMES: tuple[str, ...] = ("postgres", "postgresql", "sqlite", "mysql", "mariadb", "duckdb")

_NUMERIC = frozenset({FieldKind.INT, FieldKind.FLOAT})


class DataSource(Protocol):
    def get_dataset(self, query: str, *params: Any) -> DataSet: ...


def _check_column_kinds(name: str, values: list[Any]) -> None:
    kinds = {FieldValue.of(v).kind for v in values} - {FieldKind.NULL}
    if len(kinds - _NUMERIC) + (1 if kinds & _NUMERIC else 0) > 1:
        found = ", ".join(sorted(k.value for k in kinds))
        raise DataAccessError(f"static column {name!r} mixes value kinds: {found}")


class StaticDataSource:
    """
    Inline data: the query is a mapping of column name to list of values.

    Examples:
        >>> ds = StaticDataSource().get_dataset("{k: [a, b], v: [1, 2]}")
        >>> ds.fields
        ('k', 'v')
    """

    def get_dataset(self, query: str, *params: Any) -> DataSet:
        try:
            doc = yaml.safe_load(query)
        except yaml.YAMLError as exc:
            raise DataAccessError(f"static dataset is not valid yaml: {exc}") from exc
        if doc is None:
            doc = {}
        if not isinstance(doc, dict) or not all(isinstance(v, list) for v in doc.values()):
            raise DataAccessError("static dataset must be a mapping of field name to list of values")
        for k, v in doc.items():
            _check_column_kinds(str(k), v)
        return FrameDataSet.from_columns({str(k): v for k, v in doc.items()})


class DemoDataSource:
    _DATASETS: dict[str, dict[str, list[Any]]] = {
        "populations": {
            "creature": ["giraffes", "orangutans", "monkeys"],
            "month1": [20, 14, 23],
            "month2": [2, 18, 29],
        },
    }

    def get_dataset(self, query: str, *params: Any) -> DataSet:
        data = self._DATASETS.get(query.strip())
        if data is None:
            raise DataAccessError(f"unknown demo dataset: {query.strip()!r}")
        return FrameDataSet.from_columns(data)


class SqlDataSource:
    """
    SQL-backed source using a lazily created, shared SQLAlchemy engine.

    Args:
        url (str): SQLAlchemy database URL.
        pool_size (int): Connections kept in the pool (ignored by dialects that do
            not pool, such as in-memory SQLite).

    Notes:
        Positional query parameters are bound as ``:p1``, ``:p2``, ... in order.
    """

    def __init__(self, url: str, *, pool_size: int = 5) -> None:
        self.url = url
        self.pool_size = pool_size
        self._lock = threading.Lock()
        self._initialized = False
        self._engine: Engine | None = None
        self._init_error: DataAccessError | None = None

    @property
    def display_url(self) -> str:
        try:
            return make_url(self.url).render_as_string(hide_password=True)
        except ArgumentError:
            return "<invalid url>"

    def _create_engine(self) -> Engine:
        kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if not self.url.startswith("sqlite"):
            kwargs["pool_size"] = self.pool_size
        return create_engine(self.url, **kwargs)

    def _get_engine(self) -> Engine:
        with self._lock:
            if not self._initialized:
                self._initialized = True
                try:
                    self._engine = self._create_engine()
                    logger.debug("created connection pool for %s", self.display_url)
                except Exception as exc:
                    self._init_error = DataAccessError(
                        f"unable to create connection pool for {self.display_url}: {exc}"
                    )
        if self._engine is None:
            raise self._init_error or DataAccessError(f"no connection pool for {self.display_url}")
        return self._engine

    def get_dataset(self, query: str, *params: Any) -> DataSet:
        engine = self._get_engine()
        bound = {f"p{i}": v for i, v in enumerate(params, start=1)}
        try:
            with engine.connect() as conn:
                frame = pl.read_database(
                    query=text(query),
                    connection=conn,
                    execute_options={"parameters": bound} if bound else None,
                )
        except (SQLAlchemyError, pl.exceptions.PolarsError) as exc:
            raise DataAccessError(f"execute query: {exc}") from exc
        return FrameDataSet(frame)

    def dispose(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()


def _normalize_sql_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


def build_sources(specs: Iterable[str] = ()) -> dict[str, DataSource]:
    """
    Build the source registry from ``name=url`` specifications.

    Args:
        specs (Iterable[str]): Source specs, e.g. ``"db=postgres://user:pw@host/db"``.

    Returns:
        dict[str, DataSource]: Builtin "static" and "demo" sources plus one
        SqlDataSource per spec.

    Raises:
        ConfigurationError: Malformed spec, duplicate name or unsupported URL scheme.
    """
    sources: dict[str, DataSource] = {
        "static": StaticDataSource(),
        "demo": DemoDataSource(),
    }
    for spec in specs:
        name, sep, url = spec.partition("=")
        name = name.strip()
        url = url.strip()
        if not sep or not name or not url:
            raise ConfigurationError("source option not valid, use format 'name=url'")
        if name in sources:
            raise ConfigurationError(f"duplicate source {name!r} specified")
        scheme = url.split(":", 1)[0].split("+", 1)[0].lower()
        if scheme not in SQL_SCHEMES:
            raise ConfigurationError(f"unsupported source url: {url!r}")
        sources[name] = SqlDataSource(_normalize_sql_url(url))
    return sources
