# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
HLL Rollup Store — Approximate unique counts over arbitrary ranges.

Every recorded id is added to four HyperLogLogs in one pipeline:

    {key}:h:YYYY-MM-DD:HH   hourly
    {key}:d:YYYY-MM-DD      daily
    {key}:m:YYYY-MM         monthly
    {key}:all               lifetime

Range counts pick a bucket resolution, cover the range with whole buckets
and take the union cardinality (PFCOUNT over all covered keys).
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Union

from metricstack.backend.context import BackendContext
from metricstack.backend.hll import HLLEntry
from metricstack.core.config import settings
from metricstack.core.types import (
    TIMEFRAME_TO_DEFAULT_BUCKET,
    AnalyticBucket,
    Bucket,
    DateRange,
    MetricScope,
    Timeframe,
    UniquePoint,
    as_bucket,
    as_timeframe,
)
from metricstack.timing.bucket import get_bucket_expiration, get_bucket_key
from metricstack.timing.range import bounded_timeframe, resolve_range, to_range
from metricstack.timing.series import generate_time_series, normalize_range
from metricstack.timing.utils import floor_to_bucket

logger = logging.getLogger("metricstack.store.hll")


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class HllStore:
    def __init__(
        self,
        ctx: BackendContext,
        key: str,
        lifetime_series_timeframe: Union[Timeframe, str, None] = None,
        bucket_retention: Optional[Dict[Bucket, int]] = None,
    ) -> None:
        self._ctx = ctx
        self.key = key
        self.lifetime_series_timeframe = bounded_timeframe(
            lifetime_series_timeframe or settings.LIFETIME_SERIES_TIMEFRAME
        )
        self.bucket_retention = {as_bucket(b): n for b, n in (bucket_retention or {}).items()}

    @property
    def lifetime_key(self) -> str:
        return f"{self.key}:all"

    def key_for_bucket(self, bucket: Union[Bucket, str], when: datetime) -> str:
        bucket = as_bucket(bucket)
        return f"{self.key}:{bucket.value}:{get_bucket_key(when, bucket)}"

    async def init(self) -> None:
        """HyperLogLogs are created on first add."""

    async def record(self, points: List[UniquePoint]) -> None:
        if not points:
            return

        grouped: Dict[str, List[str]] = defaultdict(list)
        for point in points:
            for bucket in Bucket:
                start = floor_to_bucket(point.timestamp, bucket)
                grouped[self.key_for_bucket(bucket, start)].append(point.id)

        entries = [HLLEntry(key, _unique(ids)) for key, ids in grouped.items()]
        entries.append(HLLEntry(self.lifetime_key, _unique([p.id for p in points])))
        await self._ctx.hll.add_multi(entries)
        logger.debug(
            "HLL %s: %d ids across %d keys", self.key, len(points), len(entries),
            extra={"key": self.key},
        )

        if self.bucket_retention:
            await self._apply_retention(grouped.keys())

    async def _apply_retention(self, keys) -> None:
        ttls = {
            f"{self.key}:{bucket.value}:": get_bucket_expiration(bucket, count)
            for bucket, count in self.bucket_retention.items()
        }
        jobs = []
        for key in keys:
            for prefix, ttl in ttls.items():
                if key.startswith(prefix):
                    jobs.append(self._ctx.hll.expire(key, ttl))
        await asyncio.gather(*jobs)

    @staticmethod
    def _periods(range_: DateRange, bucket: Bucket) -> List[datetime]:
        if range_.end <= range_.start:
            return []
        return list(generate_time_series(normalize_range(range_, bucket), bucket))

    def _covering_keys(self, range_: DateRange, bucket: Bucket) -> List[str]:
        return [self.key_for_bucket(bucket, period) for period in self._periods(range_, bucket)]

    async def total(self, range_: DateRange) -> int:
        return await self.total_by_bucket(range_, Bucket.DAY)

    async def total_by_bucket(self, range_: DateRange, bucket: Union[Bucket, str]) -> int:
        keys = self._covering_keys(range_, as_bucket(bucket))
        if not keys:
            return 0
        return await self._ctx.hll.count(keys)

    async def lifetime(self) -> int:
        return await self._ctx.hll.count(self.lifetime_key)

    async def buckets(
        self,
        range_: DateRange,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        bucket = as_bucket(bucket)
        periods = self._periods(range_, bucket)
        if not periods:
            return []

        counts = await self._ctx.hll.count_each(
            [self.key_for_bucket(bucket, p) for p in periods]
        )
        return [AnalyticBucket(p, counts[i] if i < len(counts) else 0) for i, p in enumerate(periods)]

    async def get(self, timeframe: Union[Timeframe, str]) -> int:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.lifetime()
        return await self.total_by_bucket(
            resolve_range(timeframe), TIMEFRAME_TO_DEFAULT_BUCKET[timeframe]
        )

    async def get_buckets(
        self,
        timeframe: Union[Timeframe, str],
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> List[AnalyticBucket]:
        timeframe = as_timeframe(timeframe)
        if timeframe is Timeframe.LIFETIME:
            return await self.buckets(resolve_range(self.lifetime_series_timeframe), bucket)
        return await self.buckets(resolve_range(timeframe), bucket)

    async def merge_into(
        self,
        dest_key: str,
        scope: MetricScope,
        bucket: Union[Bucket, str] = Bucket.DAY,
        ttl_seconds: Optional[int] = None,
    ) -> int:
        """Materialise the union of a scope's buckets into `dest_key`."""
        if not isinstance(scope, DateRange) and as_timeframe(scope) is Timeframe.LIFETIME:
            sources = [self.lifetime_key]
        else:
            sources = self._covering_keys(to_range(scope), as_bucket(bucket))

        await self._ctx.hll.merge(dest_key, sources, ttl_seconds)
        return await self._ctx.hll.count(dest_key)
