# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Scalar TimeSeries Store — One series key plus optional compactions.

Same-millisecond writes on one key are kept apart by shifting each
repeat 1 ms earlier, in input order: t, t-1, t-2, ... A shift never
lands on a millisecond already taken by another point of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import CompactionRule, TSConfig
from metricstack.core.errors import CompactionAlreadyExists
from metricstack.core.types import Bucket, TSAggregation, TSPoint, as_aggregation, as_bucket
from metricstack.timing.bucket import BUCKET_MS
from metricstack.timing.utils import to_ms

logger = logging.getLogger("metricstack.store.timeseries")


def spread_collisions(points: Iterable[Tuple[str, int, float]]) -> List[Tuple[str, int, float]]:
    """Move every point whose (key, timestamp) is taken to the nearest earlier free millisecond."""
    taken: Dict[str, Set[int]] = {}
    out = []
    for key, ts, value in points:
        used = taken.setdefault(key, set())
        while ts in used:
            ts -= 1
        used.add(ts)
        out.append((key, ts, value))
    return out


class CompactedStore:
    """A backend-maintained downsampled child of a source series."""

    def __init__(self, ctx: BackendContext, source_key: str, key: str, rule: CompactionRule) -> None:
        self._ctx = ctx
        self.source_key = source_key
        self.key = key
        self.rule = rule

    async def init(self) -> None:
        await self._ctx.timeseries.ensure_compaction_rule(self.source_key, self.key, self.rule)


class TimeseriesStore:
    def __init__(
        self,
        ctx: BackendContext,
        key: str,
        config: Optional[TSConfig] = None,
        time_buckets: Optional[Dict[Bucket, int]] = None,
    ) -> None:
        self._ctx = ctx
        self.key = key
        self.config = config or TSConfig()
        self._time_buckets = time_buckets or BUCKET_MS
        self.compactions: Dict[str, CompactedStore] = {}

    async def init(self) -> None:
        await self._ctx.timeseries.ensure_key(self.key, self.config)
        for compaction in self.compactions.values():
            await compaction.init()

    def compact(
        self,
        agg: Union[TSAggregation, str],
        bucket: Union[Bucket, str] = Bucket.HOUR,
    ) -> str:
        """Declare a `{key}:{AGG}` compaction; returns the compaction key."""
        agg = as_aggregation(agg)
        compaction_key = f"{self.key}:{agg.value}"
        if compaction_key in self.compactions:
            raise CompactionAlreadyExists(compaction_key, self.key)

        rule = CompactionRule(agg=agg, bucket_ms=self._time_buckets[as_bucket(bucket)])
        self.compactions[compaction_key] = CompactedStore(self._ctx, self.key, compaction_key, rule)
        logger.debug(
            "Compaction declared: %s (%s/%dms)", compaction_key, agg.value, rule.bucket_ms,
            extra={"key": self.key},
        )
        return compaction_key

    async def record(self, points: List[TSPoint]) -> None:
        if not points:
            return
        await self._ctx.timeseries.add(
            spread_collisions((self.key, to_ms(p.timestamp), p.value) for p in points)
        )

    async def backfill_compactions(self) -> None:
        """Populate compactions declared after the source already held data."""
        await asyncio.gather(
            *(
                self._ctx.timeseries.backfill_compaction(
                    self.key, key, compaction.rule.agg, compaction.rule.bucket_ms
                )
                for key, compaction in self.compactions.items()
            )
        )
