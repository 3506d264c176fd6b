# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Dimensional Queries — Cross-series aggregates over labelled series.

DimensionalQuery collapses every series matching a filter into one value
(grouped by the shared baseKey label). GroupedQuery breaks the same
filter down by one dimension and maps backend group labels back onto the
declared values, case-insensitively.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

from metricstack.backend.client import MRangeSeries
from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSFilter, to_buckets
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
from metricstack.store.dimensional import BASE_KEY_LABEL
from metricstack.timing.bucket import bucket_ms
from metricstack.timing.range import resolve_range
from metricstack.timing.utils import from_ms, to_ms


class _FilteredQuery:
    group_label: str

    def __init__(
        self,
        ctx: BackendContext,
        filter: TSFilter,
        agg: Union[TSAggregation, str],
        reducer: Union[TSAggregation, str] = TSAggregation.SUM,
    ) -> None:
        self._ctx = ctx
        self.filter = dict(filter)
        self.agg = as_aggregation(agg)
        self.reducer = as_aggregation(reducer)

    async def _read(self, from_ts, to_ts, width_ms: int, align: int = 0, empty: bool = False) -> List[MRangeSeries]:
        return await self._ctx.timeseries.mrange_group_by(
            self.filter,
            from_ts,
            to_ts,
            width_ms,
            self.agg,
            self.group_label,
            self.reducer,
            align=align,
            empty=empty,
        )


class DimensionalQuery(_FilteredQuery):
    """One scalar or series for everything the filter matches."""

    group_label = BASE_KEY_LABEL

    @staticmethod
    def _value(series: List[MRangeSeries]) -> float:
        if not series or not series[0].samples:
            return 0
        return series[0].samples[0][1]

    @staticmethod
    def _buckets(series: List[MRangeSeries]) -> List[AnalyticBucket]:
        if not series:
            return []
        return to_buckets(series[0].samples)

    async def lifetime(self) -> float:
        return self._value(await self._read("-", "+", FOREVER_MS))

    async def range(self, range_: DateRange) -> float:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return 0
        return self._value(await self._read(start, end - 1, FOREVER_MS, align=start))

    async def timeframe(self, timeframe: Union[Timeframe, str]) -> float:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime()
        return await self.range(resolve_range(timeframe))

    async def buckets(
        self,
        range_: DateRange,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return []
        series = await self._read(
            start, end - 1, bucket_ms(as_bucket(bucket)), align=start, empty=True
        )
        return self._buckets(series)

    async def buckets_by_timeframe(
        self,
        timeframe: Union[Timeframe, str],
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            series = await self._read("-", "+", bucket_ms(as_bucket(bucket)), empty=True)
            return self._buckets(series)
        return await self.buckets(resolve_range(timeframe), bucket)


class GroupedQuery(_FilteredQuery):
    """Per-value breakdown along `group_by`; absent groups read as 0 / []."""

    def __init__(
        self,
        ctx: BackendContext,
        filter: TSFilter,
        agg: Union[TSAggregation, str],
        group_by: str,
        values: Sequence[str],
        reducer: Union[TSAggregation, str] = TSAggregation.SUM,
    ) -> None:
        super().__init__(ctx, filter, agg, reducer)
        self.group_label = group_by
        self.values = list(values)
        self._exact = set(self.values)
        self._canonical = {value.lower(): value for value in self.values}

    def canonical(self, raw: Optional[str]) -> Optional[str]:
        """Declared value for a backend label, or None when unrecognised."""
        if not raw:
            return None
        if raw in self._exact:
            return raw
        return self._canonical.get(raw.lower())

    def _to_values(self, series: List[MRangeSeries]) -> Dict[str, float]:
        out: Dict[str, float] = {value: 0 for value in self.values}
        for s in series:
            group = self.canonical(s.labels.get(self.group_label))
            if group is None:
                continue
            out[group] += s.samples[0][1] if s.samples else 0
        return out

    def _to_buckets(self, series: List[MRangeSeries]) -> Dict[str, List[AnalyticBucket]]:
        merged: Dict[str, Dict[int, float]] = defaultdict(lambda: defaultdict(float))
        for s in series:
            group = self.canonical(s.labels.get(self.group_label))
            if group is None:
                continue
            for ts, value in s.samples:
                merged[group][ts] += value

        out: Dict[str, List[AnalyticBucket]] = {value: [] for value in self.values}
        for group, by_ts in merged.items():
            out[group] = [AnalyticBucket(from_ms(ts), value) for ts, value in sorted(by_ts.items())]
        return out

    async def lifetime(self) -> Dict[str, float]:
        return self._to_values(await self._read("-", "+", FOREVER_MS))

    async def range(self, range_: DateRange) -> Dict[str, float]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return {value: 0 for value in self.values}
        return self._to_values(await self._read(start, end - 1, end - start, align=start))

    async def timeframe(self, timeframe: Union[Timeframe, str]) -> Dict[str, float]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime()
        return await self.range(resolve_range(timeframe))

    async def buckets(
        self,
        range_: DateRange,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, List[AnalyticBucket]]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return {value: [] for value in self.values}
        series = await self._read(
            start, end - 1, bucket_ms(as_bucket(bucket)), align=start, empty=True
        )
        return self._to_buckets(series)

    async def buckets_by_timeframe(
        self,
        timeframe: Union[Timeframe, str],
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, List[AnalyticBucket]]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            series = await self._read("-", "+", bucket_ms(as_bucket(bucket)), empty=True)
            return self._to_buckets(series)
        return await self.buckets(resolve_range(timeframe), bucket)
