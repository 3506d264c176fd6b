# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
TimeSeries Service — Key provisioning, writes and range reads.

Provisioning is idempotent: a "key already exists" reply from TS.CREATE is
success, and existing keys are only altered when reconcile_existing is set.
Grouped multi-range reads use the backend GROUPBY/REDUCE when available and
are emulated from plain TS.MRANGE otherwise.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field
from redis.exceptions import ResponseError

from metricstack.backend.client import MRangeSeries, RangeBound
from metricstack.core.types import (
    AnalyticBucket,
    Bucket,
    DuplicatePolicy,
    TSAggregation,
    as_aggregation,
)
from metricstack.timing.bucket import BUCKET_MS
from metricstack.timing.utils import from_ms

logger = logging.getLogger("metricstack.timeseries")

TSFilter = Dict[str, Union[str, Sequence[str]]]
Sample = Tuple[int, float]

_RULE_EXISTS_MARKERS = (
    "DUPLICATE",
    "already exists",
    "the destination key already has a src rule",
)


class TSConfig(BaseModel):
    """Per-key settings applied on creation."""

    labels: Dict[str, str] = Field(default_factory=dict)
    retention_hrs: float = Field(default=0, ge=0)
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.LAST
    reconcile_existing: bool = Field(
        default=False,
        description="Alter retention/policy/labels of keys that already exist",
    )

    @property
    def retention_ms(self) -> int:
        return int(self.retention_hrs * 60 * 60 * 1000)


class CompactionRule(BaseModel):
    agg: TSAggregation
    bucket_ms: int = Field(default=BUCKET_MS[Bucket.HOUR], gt=0)
    retention_hrs: float = Field(default=0, ge=0)


def build_filter(filter: TSFilter) -> List[str]:
    """{"coin": ["btc", "eth"], "baseKey": "x"} -> ["coin=(btc,eth)", "baseKey=x"]"""
    expressions = []
    for name, value in filter.items():
        if isinstance(value, str):
            expressions.append(f"{name}={value}")
        else:
            expressions.append(f"{name}=({','.join(value)})")
    return expressions


def to_buckets(samples: Sequence[Sample]) -> List[AnalyticBucket]:
    return [AnalyticBucket(from_ms(ts), value) for ts, value in samples]


def effective_reducer(reducer: Union[TSAggregation, str]) -> TSAggregation:
    """LAST has no meaning across series; it is reduced as SUM."""
    reducer = as_aggregation(reducer)
    return TSAggregation.SUM if reducer is TSAggregation.LAST else reducer


def _reduce(values: List[float], reducer: TSAggregation) -> float:
    if reducer is TSAggregation.SUM:
        return sum(values)
    if reducer is TSAggregation.AVG:
        return sum(values) / len(values)
    if reducer is TSAggregation.MIN:
        return min(values)
    if reducer is TSAggregation.MAX:
        return max(values)
    if reducer is TSAggregation.COUNT:
        return float(len(values))
    raise ValueError(f"Unsupported reducer: {reducer}")


def _zero_missing(series: List[MRangeSeries]) -> List[MRangeSeries]:
    for s in series:
        s.samples = [(ts, value if value is not None else 0.0) for ts, value in s.samples]
    return series


class TimeSeriesService:
    """TimeSeries primitives bound to one analytics client."""

    def __init__(self, client: Any, supports_native_group_by: bool = True) -> None:
        self._client = client
        self._native_group_by = supports_native_group_by

    # ── Provisioning ────────────────────────────────────────────

    async def ensure_key(self, key: str, config: Optional[TSConfig] = None) -> None:
        config = config or TSConfig()
        try:
            await self._client.ts.create(
                key,
                retention_ms=config.retention_ms,
                duplicate_policy=config.duplicate_policy.value,
                labels=config.labels,
            )
            logger.debug("TS key created: %s", key, extra={"key": key})
        except ResponseError as e:
            if "key already exists" not in str(e):
                raise
            if not config.reconcile_existing:
                logger.debug("TS key already exists, left untouched: %s", key, extra={"key": key})
                return
            await self._client.ts.alter(
                key,
                retention_ms=config.retention_ms,
                duplicate_policy=config.duplicate_policy.value,
                labels=config.labels,
            )
            logger.info("TS key reconciled: %s", key, extra={"key": key})

    async def ensure_compaction_rule(
        self,
        source_key: str,
        dest_key: str,
        rule: CompactionRule,
    ) -> None:
        await self.ensure_key(
            dest_key,
            TSConfig(retention_hrs=rule.retention_hrs, duplicate_policy=DuplicatePolicy.LAST),
        )
        try:
            await self._client.ts.createrule(
                source_key, dest_key, rule.agg.value, rule.bucket_ms, 0
            )
            logger.info(
                "Compaction rule created: %s -> %s (%s/%dms)",
                source_key, dest_key, rule.agg.value, rule.bucket_ms,
                extra={"key": dest_key},
            )
        except ResponseError as e:
            if not any(marker in str(e) for marker in _RULE_EXISTS_MARKERS):
                raise
            logger.debug(
                "Compaction rule already exists: %s -> %s", source_key, dest_key,
                extra={"key": dest_key},
            )

    # ── Writes ──────────────────────────────────────────────────

    async def add(self, points: List[Tuple[str, int, float]]) -> None:
        if not points:
            return
        await self._client.ts.madd(points)

    # ── Reads ───────────────────────────────────────────────────

    async def range(
        self,
        key: str,
        from_ts: RangeBound,
        to_ts: RangeBound,
        bucket_ms: int,
        aggregation: Union[TSAggregation, str],
        align: int = 0,
        empty: bool = False,
    ) -> List[Sample]:
        samples = await self._client.ts.range(
            key,
            from_ts,
            to_ts,
            aggregation=as_aggregation(aggregation).value,
            bucket_ms=bucket_ms,
            align=align,
            empty=empty,
        )
        return [(ts, value if value is not None else 0.0) for ts, value in samples]

    async def range_raw(
        self,
        key: str,
        from_ts: RangeBound = "-",
        to_ts: RangeBound = "+",
    ) -> List[Sample]:
        samples = await self._client.ts.range(key, from_ts, to_ts)
        return [(ts, value if value is not None else 0.0) for ts, value in samples]

    async def mrange(
        self,
        filter: TSFilter,
        from_ts: RangeBound,
        to_ts: RangeBound,
        bucket_ms: int,
        aggregation: Union[TSAggregation, str],
        align: int = 0,
        empty: bool = False,
    ) -> List[MRangeSeries]:
        series = await self._client.ts.mrange(
            from_ts,
            to_ts,
            build_filter(filter),
            aggregation=as_aggregation(aggregation).value,
            bucket_ms=bucket_ms,
            align=align,
            empty=empty,
        )
        return _zero_missing(series)

    async def mrange_group_by(
        self,
        filter: TSFilter,
        from_ts: RangeBound,
        to_ts: RangeBound,
        bucket_ms: int,
        aggregation: Union[TSAggregation, str],
        group_label: str,
        reducer: Union[TSAggregation, str],
        align: int = 0,
        empty: bool = False,
    ) -> List[MRangeSeries]:
        reducer = effective_reducer(reducer)
        if not self._native_group_by:
            series = await self.mrange(
                filter, from_ts, to_ts, bucket_ms, aggregation, align=align, empty=empty
            )
            return self._group_locally(series, group_label, reducer)

        series = await self._client.ts.mrange_groupby(
            from_ts,
            to_ts,
            build_filter(filter),
            group_label,
            reducer.value,
            aggregation=as_aggregation(aggregation).value,
            bucket_ms=bucket_ms,
            align=align,
            empty=empty,
        )
        return _zero_missing(series)

    @staticmethod
    def _group_locally(
        series: List[MRangeSeries],
        group_label: str,
        reducer: TSAggregation,
    ) -> List[MRangeSeries]:
        """Client-side GROUPBY/REDUCE with the backend's output shape."""
        grouped: Dict[str, Dict[int, List[float]]] = defaultdict(lambda: defaultdict(list))
        for s in series:
            group = s.labels.get(group_label)
            if group is None:
                continue
            for ts, value in s.samples:
                grouped[group][ts].append(value)

        out = []
        for group, by_ts in grouped.items():
            out.append(
                MRangeSeries(
                    key=f"{group_label}={group}",
                    labels={group_label: group},
                    samples=[(ts, _reduce(values, reducer)) for ts, values in sorted(by_ts.items())],
                )
            )
        return out

    # ── Compaction backfill ─────────────────────────────────────

    async def backfill_compaction(
        self,
        source_key: str,
        dest_key: str,
        aggregation: Union[TSAggregation, str],
        bucket_ms: int,
    ) -> int:
        """Rewrite pre-aggregated history of `source_key` into `dest_key`."""
        samples = await self.range(source_key, "-", "+", bucket_ms, aggregation)
        if not samples:
            return 0

        await self.add([(dest_key, ts, value) for ts, value in samples])
        logger.info(
            "Compaction backfilled: %s -> %s (%d buckets)", source_key, dest_key, len(samples),
            extra={"key": dest_key},
        )
        return len(samples)
