"""
plotdeck.data: tabular datasets and the data sources that produce them.

## Public API
- DataSet: cursor protocol (next/err/field/reset_iterator/fields).
- FrameDataSet: Polars-backed implementation, materialized once.
- DataSource: protocol resolving (query, *params) into a DataSet.
- StaticDataSource, DemoDataSource, SqlDataSource: the provided sources.
- build_sources: registry from ``name=url`` specs.

## Import DAG discipline
- Depends on stdlib, polars, pyyaml, sqlalchemy and plotdeck.core.
- Must not import plotdeck.engine, plotdeck.io or the CLI.
"""

from __future__ import annotations

from .dataset import DataSet, FrameDataSet
from .sources import DataSource, DemoDataSource, SqlDataSource, StaticDataSource, build_sources

__all__ = [
    "DataSet",
    "FrameDataSet",
    "DataSource",
    "StaticDataSource",
    "DemoDataSource",
    "SqlDataSource",
    "build_sources",
]
