# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Core Types — Timeframes, buckets, ranges and points shared by every layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, NamedTuple, Union


class Timeframe(str, Enum):
    """Named relative window resolved against "now"."""

    H24 = "24h"
    WEEK = "1w"
    MONTH = "1m"
    YEAR = "1y"
    LIFETIME = "lifetime"


class Bucket(str, Enum):
    """Fixed-width time window used for downsampling and series."""

    HOUR = "h"
    DAY = "d"
    MONTH = "m"


class TSAggregation(str, Enum):
    SUM = "SUM"
    AVG = "AVG"
    COUNT = "COUNT"
    LAST = "LAST"
    MAX = "MAX"
    MIN = "MIN"


class DuplicatePolicy(str, Enum):
    SUM = "SUM"
    LAST = "LAST"
    FIRST = "FIRST"
    MIN = "MIN"
    MAX = "MAX"
    BLOCK = "BLOCK"


TIMEFRAME_TO_DEFAULT_BUCKET: Dict[Timeframe, Bucket] = {
    Timeframe.H24: Bucket.HOUR,
    Timeframe.WEEK: Bucket.DAY,
    Timeframe.MONTH: Bucket.DAY,
    Timeframe.YEAR: Bucket.MONTH,
    Timeframe.LIFETIME: Bucket.MONTH,
}

# 100 years: one bucket spanning any realistic range
FOREVER_MS = 3_153_600_000_000


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DateRange:
    """Half-open UTC range [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))


MetricScope = Union[Timeframe, str, DateRange]


def is_timeframe(scope: MetricScope) -> bool:
    return isinstance(scope, (Timeframe, str))


def as_timeframe(scope: Union[Timeframe, str]) -> Timeframe:
    return scope if isinstance(scope, Timeframe) else Timeframe(scope)


def as_bucket(bucket: Union[Bucket, str]) -> Bucket:
    return bucket if isinstance(bucket, Bucket) else Bucket(bucket)


def as_aggregation(agg: Union[TSAggregation, str]) -> TSAggregation:
    return agg if isinstance(agg, TSAggregation) else TSAggregation(agg.upper())


class AnalyticBucket(NamedTuple):
    """One bucketed aggregate: (bucket start, value)."""

    timestamp: datetime
    value: float


@dataclass
class TSPoint:
    timestamp: datetime
    value: float


@dataclass
class DimensionalPoint:
    timestamp: datetime
    value: float
    dimensions: Dict[str, str] = field(default_factory=dict)


@dataclass
class UniquePoint:
    """An identifier observed at a point in time (HLL / Bloom stores)."""

    id: str
    timestamp: datetime
