"""
Computed datasets: a streaming join of two datasets plus a binary predicate.

Algorithm (derive)
1. Reset and scan the right dataset once, materializing canonical join key text ->
   value. Later rows with the same key overwrite earlier ones (last-write-wins).
2. Reset and stream the left dataset once. Rows whose key has no right-side match
   are skipped (logged at debug level). Matched rows apply the predicate to
   (left value, right value).
3. Emit (key, result) into a new dataset with the two fields "key" and "value",
   in left-scan order.

Predicates
- Registered by name in PREDICATES via @register_predicate. Each is a pure function
  (FieldValue, FieldValue) -> FieldValue raising PredicateTypeError for operand kinds
  it cannot combine.
- "diff": left - right. int - int stays int; any int/float mix is float.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from plotdeck.core.errors import ConfigurationError, DataAccessError, PredicateTypeError
from plotdeck.core.schema import ComputeDataSetDef
from plotdeck.core.values import FieldKind, FieldValue
from plotdeck.data.dataset import DataSet, FrameDataSet

__all__ = [
    "BinaryPredicate",
    "ComputeInput",
    "PREDICATES",
    "register_predicate",
    "get_predicate",
    "diff",
    "derive",
    "KEY_FIELD",
    "VALUE_FIELD",
]

logger = logging.getLogger(__name__)

KEY_FIELD = "key"
VALUE_FIELD = "value"

BinaryPredicate = Callable[[FieldValue, FieldValue], FieldValue]

PREDICATES: dict[str, BinaryPredicate] = {}


def register_predicate(name: str) -> Callable[[BinaryPredicate], BinaryPredicate]:
    """Decorator registering a predicate under ``name``."""

    def _register(fn: BinaryPredicate) -> BinaryPredicate:
        PREDICATES[name] = fn
        return fn

    return _register


def get_predicate(name: str) -> BinaryPredicate:
    try:
        return PREDICATES[name]
    except KeyError:
        raise ConfigurationError(f"unknown compute function: {name!r}") from None


@register_predicate("diff")
def diff(x: FieldValue, y: FieldValue) -> FieldValue:
    """
    Numeric difference x - y.

    Examples:
        >>> diff(FieldValue.of(5), FieldValue.of(2))
        FieldValue(kind=<FieldKind.INT: 'int'>, value=3)
        >>> diff(FieldValue.of(5.0), FieldValue.of(2)).value
        3.0
    """
    if x.kind is FieldKind.INT and y.kind is FieldKind.INT:
        return FieldValue(FieldKind.INT, x.value - y.value)
    if x.is_numeric and y.is_numeric:
        return FieldValue(FieldKind.FLOAT, float(x.value) - float(y.value))
    raise PredicateTypeError(f"cannot calculate diff of {x.kind.value} and {y.kind.value}")


@dataclass(frozen=True)
class ComputeInput:
    """One side of a derive: the dataset and which of its fields to join on and combine."""

    definition: ComputeDataSetDef
    dataset: DataSet


def _read(inp: ComputeInput, field: str) -> FieldValue:
    v = inp.dataset.field(field)
    if v.is_error:
        raise DataAccessError(
            f"did not get field {field!r} from dataset {inp.definition.dataset!r}: {v.value}"
        )
    return v


def _check_iteration(inp: ComputeInput) -> None:
    if (err := inp.dataset.err()) is not None:
        raise DataAccessError(
            f"dataset {inp.definition.dataset!r} iteration ended with an error: {err}"
        ) from err


def derive(predicate: str | BinaryPredicate, left: ComputeInput, right: ComputeInput) -> DataSet:
    """
    Join two datasets on their join fields and combine matched values.

    Args:
        predicate (str | BinaryPredicate): Registered predicate name or a predicate.
        left (ComputeInput): Streamed side; determines output order.
        right (ComputeInput): Materialized side.

    Returns:
        DataSet: Fields "key" (the left join value) and "value" (predicate result).

    Raises:
        ConfigurationError: Unknown predicate name.
        DataAccessError: A field read failed or either dataset ended in error.
        PredicateTypeError: The predicate cannot combine a pair of values.
    """
    fn = get_predicate(predicate) if isinstance(predicate, str) else predicate

    right.dataset.reset_iterator()
    lookup: dict[str, FieldValue] = {}
    while right.dataset.next():
        key = _read(right, right.definition.join_field).canonical_text()
        if key in lookup:
            logger.debug(
                "duplicate join key %r in dataset %r, keeping later row", key, right.definition.dataset
            )
        lookup[key] = _read(right, right.definition.value_field)
    _check_iteration(right)

    keys: list[Any] = []
    values: list[Any] = []
    left.dataset.reset_iterator()
    while left.dataset.next():
        join = _read(left, left.definition.join_field)
        other = lookup.get(join.canonical_text())
        if other is None:
            logger.debug(
                "no matching row for join field value %r in dataset %r",
                join.canonical_text(),
                right.definition.dataset,
            )
            continue
        result = fn(_read(left, left.definition.value_field), other)
        keys.append(join.value)
        values.append(result.value)
    _check_iteration(left)

    return FrameDataSet.from_columns({KEY_FIELD: keys, VALUE_FIELD: values})
