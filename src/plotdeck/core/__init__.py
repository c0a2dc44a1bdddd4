"""
Core package aggregator for plotdeck contracts (values, grammar, schema, colors, errors).

## Contracts (single source of truth)
- Values: the FieldValue tagged union and its canonical text / JSON projections.
- Grammar: enums for frequencies and chart element kinds.
- Schema: pydantic models for plot definitions, color tables and profiles.
- Colors: named color lookup.
- Template: Jinja2 pre-processing of definition text.
- Errors/Constants: exception taxonomy and defaults.

## Notes
- Zero-IO policy: stdlib, pydantic and jinja2 only; no file/network IO.
- Downstream: plotdeck.data (datasets/sources), plotdeck.engine (compute/traces),
  plotdeck.io (settings, definitions loading, organizer).

## Examples
```python
from plotdeck.core.values import FieldValue
FieldValue.of(3).canonical_text()  # '3'

from plotdeck.core.schema import PlotDef
pd = PlotDef(name="demo", series=[{"type": "bar", "dataset": "d", "values": "v"}])
pd.series[0].order  # 0
```
"""
