"""
Template pre-processing of plot definition text.

Definitions are rendered with Jinja2 before YAML parsing so queries and names can
depend on the basis time and on profile variant parameters.

Variables
- Now, StartOfHour, StartOfDay, StartOfWeek (weeks start Monday 00:00 UTC)
- EndOfPreviousHour, EndOfPreviousDay, EndOfPreviousWeek: one microsecond before the
  start of the current period; useful for display, not as range bounds
- StartOfPreviousWeek
- Params: variant/CLI template parameters

Filters
- timestamptz / timestamp: SQL literals ('2023-05-08 10:00:00 Z'::timestamptz)
- simpledate ("8 May 2023"), isodate (RFC 3339)
- day_modify(n), week_modify(n), month_modify(n): shift a datetime

Examples:
    >>> from datetime import datetime, UTC
    >>> render_template("{{ Now | isodate }}", datetime(2023, 5, 8, 10, tzinfo=UTC))
    '2023-05-08T10:00:00Z'
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import jinja2

from .errors import ConfigurationError
from .values import format_timestamp

__all__ = ["render_template", "template_context"]


def pg_timestamptz(t: datetime) -> str:
    return "'" + t.strftime("%Y-%m-%d %H:%M:%S") + " Z'::timestamptz"


def pg_timestamp(t: datetime) -> str:
    return "'" + t.strftime("%Y-%m-%d %H:%M:%S") + "'::timestamp"


def simple_date(t: datetime) -> str:
    return f"{t.day} {t.strftime('%b %Y')}"


def day_modify(t: datetime, n: int | str) -> datetime:
    return t + timedelta(days=int(n))


def week_modify(t: datetime, n: int | str) -> datetime:
    return t + timedelta(weeks=int(n))


def month_modify(t: datetime, n: int | str) -> datetime:
    months = t.month - 1 + int(n)
    year = t.year + months // 12
    month = months % 12 + 1
    # Clamp to the last day of the target month.
    day = min(t.day, calendar.monthrange(year, month)[1])
    return t.replace(year=year, month=month, day=day)


def template_context(basis_time: datetime, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """
    Build the variables available to definition templates.

    Args:
        basis_time (datetime): Reference time of the run (naive values are UTC).
        params (Mapping | None): Template parameters exposed as ``Params``.

    Returns:
        dict[str, Any]: Template variables.
    """
    now = basis_time.replace(tzinfo=UTC) if basis_time.tzinfo is None else basis_time.astimezone(UTC)
    start_of_hour = now.replace(minute=0, second=0, microsecond=0)
    start_of_day = start_of_hour.replace(hour=0)
    start_of_week = start_of_day - timedelta(days=start_of_day.weekday())
    tick = timedelta(microseconds=1)
    return {
        "Now": now,
        "StartOfHour": start_of_hour,
        "StartOfDay": start_of_day,
        "StartOfWeek": start_of_week,
        "EndOfPreviousHour": start_of_hour - tick,
        "EndOfPreviousDay": start_of_day - tick,
        "EndOfPreviousWeek": start_of_week - tick,
        "StartOfPreviousWeek": start_of_week - timedelta(weeks=1),
        "Params": dict(params or {}),
    }


def _environment() -> jinja2.Environment:
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.filters.update(
        {
            "timestamptz": pg_timestamptz,
            "timestamp": pg_timestamp,
            "simpledate": simple_date,
            "isodate": format_timestamp,
            "day_modify": day_modify,
            "week_modify": week_modify,
            "month_modify": month_modify,
        }
    )
    return env


_ENV = _environment()


def render_template(
    source: str, basis_time: datetime, params: Mapping[str, Any] | None = None
) -> str:
    """
    Render definition text.

    Raises:
        ConfigurationError: The template does not parse or references an undefined
            variable/parameter.
    """
    try:
        return _ENV.from_string(source).render(template_context(basis_time, params))
    except jinja2.TemplateError as exc:
        raise ConfigurationError(f"execute definition template: {exc}") from exc
