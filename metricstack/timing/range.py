# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Range Resolution — Named timeframes to UTC date ranges.

    24h      -> [anchor - 24h, anchor]
    1w       -> [anchor - 7d, anchor]
    1m       -> [anchor - 1 calendar month, anchor]
    1y       -> [anchor - 1 calendar year, anchor]
    lifetime -> [epoch, anchor]
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from metricstack.core.errors import UndefinedPreviousPeriod
from metricstack.core.types import (
    DateRange,
    MetricScope,
    Timeframe,
    as_timeframe,
    ensure_utc,
)
from metricstack.timing.utils import EPOCH, add_months, add_years


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _sub_duration(anchor: datetime, timeframe: Timeframe) -> datetime:
    if timeframe is Timeframe.H24:
        return anchor - timedelta(hours=24)
    if timeframe is Timeframe.WEEK:
        return anchor - timedelta(days=7)
    if timeframe is Timeframe.MONTH:
        return add_months(anchor, -1)
    if timeframe is Timeframe.YEAR:
        return add_years(anchor, -1)
    raise ValueError(f"Unsupported timeframe: {timeframe}")


def resolve_range(
    value: Union[Timeframe, str, datetime],
    anchor: Optional[datetime] = None,
) -> DateRange:
    """
    Resolve a timeframe (or a raw datetime) to a DateRange.

    A raw datetime is a single-instant range unless `anchor` supplies the end.
    """
    if isinstance(value, datetime):
        return DateRange(value, anchor if anchor is not None else value)

    timeframe = as_timeframe(value)
    end = ensure_utc(anchor) if anchor is not None else utc_now()
    if timeframe is Timeframe.LIFETIME:
        return DateRange(EPOCH, end)
    return DateRange(_sub_duration(end, timeframe), end)


def bounded_timeframe(value: Union[Timeframe, str]) -> Timeframe:
    """A timeframe with a finite window; "lifetime" is rejected."""
    timeframe = as_timeframe(value)
    if timeframe is Timeframe.LIFETIME:
        raise ValueError('"lifetime" has no finite window; use 24h, 1w, 1m or 1y')
    return timeframe


def to_range(scope: MetricScope, anchor: Optional[datetime] = None) -> DateRange:
    if isinstance(scope, DateRange):
        return scope
    return resolve_range(scope, anchor)


def previous_period(scope: MetricScope, anchor: Optional[datetime] = None) -> DateRange:
    """Same-length window immediately before `scope`."""
    if not isinstance(scope, DateRange) and as_timeframe(scope) is Timeframe.LIFETIME:
        raise UndefinedPreviousPeriod('no window precedes "lifetime"')

    current = to_range(scope, anchor)
    span = current.end - current.start
    if span <= timedelta(0):
        raise UndefinedPreviousPeriod("empty range")

    return DateRange(current.start - span, current.start)
