# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Bloom Counter Store — Count first occurrences of identifiers.

    {base}:bloom   Bloom filter of every id ever registered
    {base}:count   TimeSeries of first-seen counts (SUM on duplicate timestamps)

An id reported new by the filter is new. A false positive drops a truly
new id from the count with probability `error_rate`; nothing is ever
counted twice.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional, Union

from metricstack.backend.bloom import BloomConfig
from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSConfig, to_buckets
from metricstack.core.config import settings
from metricstack.core.types import (
    FOREVER_MS,
    AnalyticBucket,
    Bucket,
    DateRange,
    DuplicatePolicy,
    TSAggregation,
    Timeframe,
    UniquePoint,
    as_bucket,
    as_timeframe,
)
from metricstack.timing.bucket import bucket_ms
from metricstack.timing.range import bounded_timeframe, resolve_range
from metricstack.timing.utils import to_ms

logger = logging.getLogger("metricstack.store.bloom_counter")


class BloomCounterStore:
    def __init__(
        self,
        ctx: BackendContext,
        base_key: str,
        bloom: Optional[BloomConfig] = None,
        lifetime_series_timeframe: Union[Timeframe, str, None] = None,
    ) -> None:
        self._ctx = ctx
        self.base_key = base_key
        self.bloom_key = f"{base_key}:bloom"
        self.count_key = f"{base_key}:count"
        self.bloom = bloom or BloomConfig()
        self.lifetime_series_timeframe = bounded_timeframe(
            lifetime_series_timeframe or settings.LIFETIME_SERIES_TIMEFRAME
        )

    async def init(self) -> None:
        await self._ctx.bloom.reserve_first(self.bloom_key, self.bloom)
        await self._ctx.timeseries.ensure_key(
            self.count_key,
            TSConfig(duplicate_policy=DuplicatePolicy.SUM),
        )

    async def record_with_result(self, points: List[UniquePoint]) -> List[bool]:
        """Register ids; returns True for every point whose id was new."""
        if not points:
            return []

        seen = await self._ctx.bloom.check_and_register(
            self.bloom_key, [p.id for p in points]
        )
        is_new = [not s for s in seen]

        per_ms = Counter(to_ms(p.timestamp) for p, new in zip(points, is_new) if new)
        if per_ms:
            await self._ctx.timeseries.add(
                [(self.count_key, ts, float(n)) for ts, n in sorted(per_ms.items())]
            )
        logger.debug(
            "Bloom counter %s: %d new of %d", self.base_key, sum(per_ms.values()), len(points),
            extra={"key": self.base_key},
        )
        return is_new

    async def record(self, points: List[UniquePoint]) -> None:
        await self.record_with_result(points)

    async def seen(self, ids: List[str]) -> List[bool]:
        return await self._ctx.bloom.exists(self.bloom_key, ids)

    async def total(self, range_: DateRange) -> int:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return 0
        samples = await self._ctx.timeseries.range(
            self.count_key, start, end - 1, FOREVER_MS, TSAggregation.SUM
        )
        return int(sum(value for _, value in samples))

    async def lifetime(self) -> int:
        samples = await self._ctx.timeseries.range(
            self.count_key, "-", "+", FOREVER_MS, TSAggregation.SUM
        )
        return int(sum(value for _, value in samples))

    async def buckets(
        self,
        range_: DateRange,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        start, end = to_ms(range_.start), to_ms(range_.end)
        if end <= start:
            return []
        samples = await self._ctx.timeseries.range(
            self.count_key,
            start,
            end - 1,
            bucket_ms(as_bucket(bucket)),
            TSAggregation.SUM,
            empty=True,
        )
        return to_buckets(samples)

    async def get(self, timeframe: Union[Timeframe, str]) -> int:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime()
        return await self.total(resolve_range(timeframe))

    async def get_buckets(
        self,
        timeframe: Union[Timeframe, str],
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.buckets(resolve_range(self.lifetime_series_timeframe), bucket)
        return await self.buckets(resolve_range(timeframe), bucket)
