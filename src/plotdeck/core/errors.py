"""
Exception types raised while generating and persisting plots.

Taxonomy:
- ConfigurationError for definitions or settings that cannot be honored (unknown
  dataset/source/predicate/shape, computed-dataset arity, duplicate table cell).
  Aborts the whole document.
- DataAccessError for datasets that fail during iteration or sources that fail to
  resolve a query. PredicateTypeError is the variant raised when a join predicate
  receives operands it cannot combine. Aborts the whole document.
- LookupMiss for a single chart element whose dataset or field cannot be found.
  Callers log it and skip only that element.
- PersistenceError for organizer stat/write failures.
- GenerationCancelled when a cancellation checkpoint observes a cancelled run.

Notes:
    - Messages always name the offending entity (dataset, series, table,
      predicate or path) so failures can be localized without a traceback.
    - This module uses only the Python standard library and has no side effects.

Examples:
    >>> from plotdeck.core.errors import PredicateTypeError
    >>> try:
    ...     raise PredicateTypeError("cannot calculate diff of text and int")
    ... except TypeError as e:
    ...     msg = str(e)
    >>> "diff" in msg
    True
"""

from __future__ import annotations

__all__ = [
    "PlotError",
    "ConfigurationError",
    "DataAccessError",
    "PredicateTypeError",
    "LookupMiss",
    "PersistenceError",
    "GenerationCancelled",
]


class PlotError(Exception):
    """Base class for all plotdeck failures."""


class ConfigurationError(PlotError, ValueError):
    """A definition, profile or setting references something that does not exist or is invalid."""


class DataAccessError(PlotError):
    """A data source or dataset failed while producing rows."""


class PredicateTypeError(DataAccessError, TypeError):
    """A join predicate received operand kinds it cannot combine."""


class LookupMiss(PlotError, LookupError):
    """A chart element references a dataset or field that is absent; the element is skipped."""


class PersistenceError(PlotError, OSError):
    """The organizer could not stat or write an artifact."""


class GenerationCancelled(PlotError):
    """A generation observed cancellation at a checkpoint."""
