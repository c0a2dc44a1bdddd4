"""
Pydantic v2 models for plot definitions, color tables and processing profiles.

Responsibilities
- Define the declarative plot definition (datasets, computed datasets, series,
  scalars, tables, passthrough layout/config/parameters).
- Reject unknown enum tokens (series/scalar/table/delta types, fills, markers) at
  parse time.
- Stamp each series/scalar/table with its declaration-order index, used for
  deterministic output ordering.

Style
- Zero-IO (stdlib + pydantic only); YAML decoding lives in plotdeck.io.definitions.
- Field names are snake_case; YAML keys are accepted through aliases (e.g.
  ``groupfield``, ``joinField``, ``deltaDataset``) as well as by field name.
- Chart element models are frozen once parsed.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_COLORSCALE
from .grammar import (
    DeltaType,
    FillType,
    MarkerType,
    PlotFrequency,
    ScalarType,
    SeriesType,
    TableType,
)

__all__ = [
    "DataSetDef",
    "ComputeDataSetDef",
    "ComputedDef",
    "SeriesDef",
    "ScalarDef",
    "TableDef",
    "PlotDef",
    "NamedColor",
    "ColorDoc",
    "ProcessingProfile",
]

_ELEMENT_CONFIG = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class DataSetDef(BaseModel):
    """
    A dataset fetched from a named data source.

    Attributes:
        name (str): Name other declarations use to reference the dataset.
        source (str): Data source name (builtin "static"/"demo" or a configured source).
        query (str): Query text passed verbatim to the source.
    """

    model_config = _ELEMENT_CONFIG

    name: str
    source: str
    query: str = ""


class ComputeDataSetDef(BaseModel):
    """One side of a computed dataset: the dataset plus its join and value fields."""

    model_config = _ELEMENT_CONFIG

    dataset: str
    join_field: str = Field(validation_alias=AliasChoices("joinField", "join_field"))
    value_field: str = Field(validation_alias=AliasChoices("valueField", "value_field"))


class ComputedDef(BaseModel):
    """
    A dataset derived from exactly two other datasets by a join predicate.

    Attributes:
        name (str): Name of the derived dataset (must not clash with another dataset).
        function (str): Predicate name in the compute registry (e.g. "diff").
        datasets (list[ComputeDataSetDef]): Left and right inputs, in that order.

    Notes:
        Arity is checked when the dataset is derived so that the error names the
        computed dataset.
    """

    model_config = _ELEMENT_CONFIG

    name: str
    function: str
    datasets: list[ComputeDataSetDef] = Field(default_factory=list)


class SeriesDef(BaseModel):
    """
    A series chart element (bar, hbar, line, box, hbox).

    Attributes:
        type (SeriesType): Rendered shape.
        name (str): Display name, or the prefix of fanned-out names when grouping
            with the wildcard.
        color (str): Color name or literal, resolved through the color table.
        marker (MarkerType): Point marker for line series.
        fill (FillType): Fill mode for line series.
        dataset (str): Backing dataset name.
        labels (str): Field used for labels (categories / x values). Optional.
        values (str): Field used for values.
        group_field (str): Optional field used to group rows.
        group_value (str): "*" fans out one series per distinct group value; any
            other value keeps only rows whose group field equals it.
        hovertemplate (str | None): Passed through to the trace.
        order (int): Declaration index, assigned by PlotDef.
    """

    model_config = _ELEMENT_CONFIG

    type: SeriesType
    name: str = ""
    color: str = ""
    marker: MarkerType = MarkerType.NONE
    fill: FillType = FillType.NONE
    dataset: str
    labels: str = ""
    values: str
    group_field: str = Field(
        default="", validation_alias=AliasChoices("groupfield", "groupField", "group_field")
    )
    group_value: str = Field(
        default="", validation_alias=AliasChoices("groupvalue", "groupValue", "group_value")
    )
    hovertemplate: str | None = None
    order: int = Field(default=0, exclude=True)


class ScalarDef(BaseModel):
    """
    A single-number indicator, optionally with a relative delta against a second dataset.

    Attributes:
        type (ScalarType): Only "number".
        name (str): Title shown above the number.
        dataset (str): Dataset whose first row supplies the value.
        value (str): Numeric field name.
        value_prefix / value_suffix (str): Text around the number.
        delta_dataset (str): Dataset whose first row supplies the reference value.
        delta_value (str): Numeric field in the delta dataset.
        delta_type (DeltaType): "" (no delta) or "relative".
        increase_color / decrease_color (str): Colors applied to rising/falling deltas.
        order (int): Declaration index, assigned by PlotDef.
    """

    model_config = _ELEMENT_CONFIG

    type: ScalarType = ScalarType.NUMBER
    name: str = ""
    color: str = ""
    dataset: str
    value: str
    value_prefix: str = Field(default="", validation_alias=AliasChoices("valuePrefix", "value_prefix"))
    value_suffix: str = Field(default="", validation_alias=AliasChoices("valueSuffix", "value_suffix"))
    delta_dataset: str = Field(
        default="", validation_alias=AliasChoices("deltaDataset", "delta_dataset")
    )
    delta_value: str = Field(default="", validation_alias=AliasChoices("deltaValue", "delta_value"))
    delta_type: DeltaType = Field(
        default=DeltaType.NONE, validation_alias=AliasChoices("deltaType", "delta_type")
    )
    increase_color: str = Field(
        default="", validation_alias=AliasChoices("increaseColor", "increase_color")
    )
    decrease_color: str = Field(
        default="", validation_alias=AliasChoices("decreaseColor", "decrease_color")
    )
    order: int = Field(default=0, exclude=True)


class TableDef(BaseModel):
    """A two-dimensional table of values rendered as a heatmap with per-cell annotations."""

    model_config = _ELEMENT_CONFIG

    type: TableType = TableType.HEATMAP
    name: str = ""
    dataset: str
    labels_x: str = Field(validation_alias=AliasChoices("labelsX", "labelsx", "labels_x"))
    labels_y: str = Field(validation_alias=AliasChoices("labelsY", "labelsy", "labels_y"))
    values: str
    colorscale: str = DEFAULT_COLORSCALE
    colorbar: dict[str, Any] | None = None
    order: int = Field(default=0, exclude=True)


def _stamp_order(items: list[Any]) -> list[Any]:
    return [item.model_copy(update={"order": i}) for i, item in enumerate(items)]


class PlotDef(BaseModel):
    """
    A complete plot definition.

    Attributes:
        name (str): Plot name (defaults to the definition file stem when empty).
        frequency (PlotFrequency): Governs the dated path granularity.
        datasets (list[DataSetDef]): Ordered dataset declarations.
        computed (list[ComputedDef]): Ordered computed-dataset declarations.
        series / scalars / tables: Ordered chart element declarations.
        layout (dict): Opaque layout forwarded into the output document.
        config (dict): Opaque chart config forwarded into the output document.
        parameters (dict): Opaque values echoed into the output document.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = ""
    frequency: PlotFrequency = PlotFrequency.DAILY
    datasets: list[DataSetDef] = Field(default_factory=list)
    computed: list[ComputedDef] = Field(default_factory=list)
    series: list[SeriesDef] = Field(default_factory=list)
    scalars: list[ScalarDef] = Field(default_factory=list)
    tables: list[TableDef] = Field(default_factory=list)
    layout: dict[str, Any] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("datasets", "computed", "series", "scalars", "tables", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("layout", "config", "parameters", mode="before")
    @classmethod
    def _none_as_empty_mapping(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("series", "scalars", "tables", mode="after")
    @classmethod
    def _declaration_order(cls, v: list[Any]) -> list[Any]:
        return _stamp_order(v)


class NamedColor(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    color: str


class ColorDoc(BaseModel):
    """Document shape of colors.yaml: a default color and a list of named colors."""

    model_config = ConfigDict(extra="forbid")

    default: str = ""
    colors: list[NamedColor] = Field(default_factory=list)


class ProcessingProfile(BaseModel):
    """
    One entry of profiles.yaml.

    Attributes:
        source (str): Definition file or directory, relative to the config directory.
            Accepted under the key "source" or "directory".
        variants (list[dict]): Template parameter sets; each definition is generated
            once per variant. An empty list means a single variant with no parameters.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str = Field(validation_alias=AliasChoices("source", "directory"))
    variants: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("variants", mode="after")
    @classmethod
    def _at_least_one_variant(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return v or [{}]
