# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Standard Query — Named scalar series read together.

    query = TSQuery(ctx, {"volume": ts("tx:volume", "SUM"), "peak": ts("tx:volume", "MAX")})
    await query.timeframe("24h")          # {"volume": 42.0, "peak": 9.0}
    await query.buckets(range_, "h")      # {"volume": [AnalyticBucket, ...], ...}

Every metric is read concurrently. Scalar reads collapse the whole range
into one FOREVER_MS bucket; missing results are 0.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Mapping, TypeVar, Union

from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import to_buckets
from metricstack.core.types import (
    FOREVER_MS,
    AnalyticBucket,
    Bucket,
    DateRange,
    TSAggregation,
    Timeframe,
    as_aggregation,
    as_bucket,
    as_timeframe,
)
from metricstack.timing.bucket import bucket_ms
from metricstack.timing.range import resolve_range
from metricstack.timing.utils import from_ms, to_ms

T = TypeVar("T")


@dataclass(frozen=True)
class TSMetricDef:
    key: str
    agg: TSAggregation

    def __post_init__(self):
        object.__setattr__(self, "agg", as_aggregation(self.agg))


def ts(key: str, agg: Union[TSAggregation, str]) -> TSMetricDef:
    return TSMetricDef(key, agg)


def gap_fill(
    samples: List[AnalyticBucket],
    range_: DateRange,
    width_ms: int,
) -> List[AnalyticBucket]:
    """Materialise a zero bucket for every aligned slot in [start, end) without a sample."""
    by_ts = {bucket.timestamp: bucket.value for bucket in samples}
    start, end = to_ms(range_.start), to_ms(range_.end)
    filled = []
    for slot in range(start, end, width_ms):
        when = from_ms(slot)
        filled.append(AnalyticBucket(when, by_ts.pop(when, 0.0)))
    # Samples outside the aligned grid are kept rather than dropped
    filled.extend(AnalyticBucket(when, value) for when, value in by_ts.items())
    filled.sort(key=lambda b: b.timestamp)
    return filled


class TSQuery:
    def __init__(self, ctx: BackendContext, defs: Mapping[str, TSMetricDef]) -> None:
        self._ctx = ctx
        self.defs: Dict[str, TSMetricDef] = dict(defs)

    async def _each(self, fn: Callable[[TSMetricDef], Awaitable[T]]) -> Dict[str, T]:
        names = list(self.defs)
        values = await asyncio.gather(*(fn(self.defs[name]) for name in names))
        return dict(zip(names, values))

    # ── Scalars ────────────────────────────────────────────────

    async def _scalar(self, metric: TSMetricDef, from_ts, to_ts) -> float:
        samples = await self._ctx.timeseries.range(
            metric.key, from_ts, to_ts, FOREVER_MS, metric.agg
        )
        return samples[0][1] if samples else 0

    async def lifetime(self) -> Dict[str, float]:
        return await self._each(lambda m: self._scalar(m, "-", "+"))

    async def range(self, range_: DateRange) -> Dict[str, float]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return {name: 0 for name in self.defs}
        return await self._each(lambda m: self._scalar(m, start, end - 1))

    async def timeframe(self, timeframe: Union[Timeframe, str]) -> Dict[str, float]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime()
        return await self.range(resolve_range(timeframe))

    # ── Series ─────────────────────────────────────────────────

    async def _series(self, metric: TSMetricDef, range_: DateRange, width_ms: int) -> List[AnalyticBucket]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        samples = await self._ctx.timeseries.range(
            metric.key, start, end - 1, width_ms, metric.agg, align=start, empty=True
        )
        return gap_fill(to_buckets(samples), range_, width_ms)

    async def buckets(
        self,
        range_: DateRange,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, List[AnalyticBucket]]:
        if range_.end - range_.start <= timedelta(0):
            return {name: [] for name in self.defs}
        width_ms = bucket_ms(as_bucket(bucket))
        return await self._each(lambda m: self._series(m, range_, width_ms))

    async def lifetime_buckets(
        self,
        bucket: Union[Bucket, str] = Bucket.MONTH,
    ) -> Dict[str, List[AnalyticBucket]]:
        width_ms = bucket_ms(as_bucket(bucket))

        async def read(metric: TSMetricDef) -> List[AnalyticBucket]:
            samples = await self._ctx.timeseries.range(
                metric.key, "-", "+", width_ms, metric.agg, empty=True
            )
            return to_buckets(samples)

        return await self._each(read)

    async def buckets_by_timeframe(
        self,
        timeframe: Union[Timeframe, str],
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, List[AnalyticBucket]]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime_buckets(bucket)
        return await self.buckets(resolve_range(timeframe), bucket)
