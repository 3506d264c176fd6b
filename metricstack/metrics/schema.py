# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Metric Schemas — Declarative assembly of stores and queries.

Scalar metrics (`define_metrics`):

    metrics = define_metrics(ctx, "app", {
        "volume":  TimeseriesMetricDef(aggregations={"volume_sum": "SUM", "volume_max": "MAX"}),
        "visitors": HllMetricDef(),
        "signups": BloomCounterMetricDef(),
    })
    await metrics.get_stats("24h")   # {"volume_sum": .., "volume_max": .., "visitors": .., "signups": ..}

Dimensional metrics (`define_dimensional_metrics`): a query with a
breakdown yields {"overall": x, "breakdown": {value: x}}.

A schema is plain data validated once when it is defined.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from metricstack.backend.bloom import BloomConfig
from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSConfig
from metricstack.core.errors import UnknownDimension
from metricstack.core.types import (
    AnalyticBucket,
    Bucket,
    MetricScope,
    TSAggregation,
    as_aggregation,
    is_timeframe,
)
from metricstack.metrics.dimension import DimensionalMetric, DimensionFilter, MetricDimension
from metricstack.query.dimensional import DimensionalQuery, GroupedQuery
from metricstack.query.standard import TSQuery, ts
from metricstack.store.bloom_counter import BloomCounterStore
from metricstack.store.dimensional import DimensionalTSStore
from metricstack.store.hll import HllStore
from metricstack.store.timeseries import TimeseriesStore

logger = logging.getLogger("metricstack.schema")

CountingStore = Union[HllStore, BloomCounterStore]
ScalarStore = Union[TimeseriesStore, HllStore, BloomCounterStore]


# ── Scalar metric definitions ──────────────────────────────────


@dataclass
class TimeseriesMetricDef:
    """Each aggregation name becomes one stat read from the metric's series."""

    aggregations: Dict[str, Union[TSAggregation, str]]
    config: Optional[TSConfig] = None


@dataclass
class HllMetricDef:
    pass


@dataclass
class BloomCounterMetricDef:
    bloom: Optional[BloomConfig] = None


ScalarMetricDef = Union[TimeseriesMetricDef, HllMetricDef, BloomCounterMetricDef]


class DefinedMetrics:
    def __init__(self, ctx: BackendContext, prefix: str, metrics: Mapping[str, ScalarMetricDef]) -> None:
        self.prefix = prefix
        self.definitions = dict(metrics)
        self.stores: Dict[str, ScalarStore] = {}
        self._counting: Dict[str, CountingStore] = {}
        ts_defs = {}

        for name, definition in self.definitions.items():
            key = f"{prefix}:{name}"
            if isinstance(definition, TimeseriesMetricDef):
                store = TimeseriesStore(ctx, key, definition.config)
                for stat_name, agg in definition.aggregations.items():
                    ts_defs[stat_name] = ts(key, agg)
            elif isinstance(definition, HllMetricDef):
                store = self._counting[name] = HllStore(ctx, key)
            elif isinstance(definition, BloomCounterMetricDef):
                store = self._counting[name] = BloomCounterStore(ctx, key, definition.bloom)
            else:
                raise TypeError(f"Unsupported metric definition for {name!r}: {definition!r}")
            self.stores[name] = store

        self._ts_query = TSQuery(ctx, ts_defs) if ts_defs else None

    async def init(self) -> None:
        await asyncio.gather(*(store.init() for store in self.stores.values()))

    async def get_stats(self, scope: MetricScope) -> Dict[str, float]:
        timeframe = is_timeframe(scope)

        async def ts_stats() -> Dict[str, float]:
            if self._ts_query is None:
                return {}
            if timeframe:
                return await self._ts_query.timeframe(scope)
            return await self._ts_query.range(scope)

        async def count(store: CountingStore) -> int:
            return await store.get(scope) if timeframe else await store.total(scope)

        names = list(self._counting)
        ts_result, *counts = await asyncio.gather(
            ts_stats(), *(count(self._counting[n]) for n in names)
        )
        return {**ts_result, **dict(zip(names, counts))}

    async def get_series(
        self,
        scope: MetricScope,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, List[AnalyticBucket]]:
        timeframe = is_timeframe(scope)

        async def ts_series() -> Dict[str, List[AnalyticBucket]]:
            if self._ts_query is None:
                return {}
            if timeframe:
                return await self._ts_query.buckets_by_timeframe(scope, bucket)
            return await self._ts_query.buckets(scope, bucket)

        async def series(store: CountingStore) -> List[AnalyticBucket]:
            if timeframe:
                return await store.get_buckets(scope, bucket)
            return await store.buckets(scope, bucket)

        names = list(self._counting)
        ts_result, *results = await asyncio.gather(
            ts_series(), *(series(self._counting[n]) for n in names)
        )
        return {**ts_result, **dict(zip(names, results))}


def define_metrics(
    ctx: BackendContext,
    prefix: str,
    metrics: Mapping[str, ScalarMetricDef],
) -> DefinedMetrics:
    return DefinedMetrics(ctx, prefix, metrics)


# ── Dimensional metric definitions ─────────────────────────────


@dataclass
class DimensionalStoreDef:
    """Dimension name -> declared values (None keeps the vocabulary open)."""

    dimensions: Dict[str, Optional[Sequence[str]]]
    config: Optional[TSConfig] = None
    static_labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class DimensionalQueryDef:
    store: str
    agg: Union[TSAggregation, str]
    reducer: Optional[Union[TSAggregation, str]] = None
    filter: Optional[DimensionFilter] = None
    breakdown: Optional[str] = None


@dataclass
class _QueryPlan:
    name: str
    overall: DimensionalQuery
    breakdown: Optional[GroupedQuery] = None


class DefinedDimensionalMetrics:
    def __init__(
        self,
        ctx: BackendContext,
        prefix: str,
        stores: Mapping[str, DimensionalStoreDef],
        queries: Mapping[str, DimensionalQueryDef],
    ) -> None:
        self.prefix = prefix
        self.metrics: Dict[str, DimensionalMetric] = {}
        self.stores: Dict[str, DimensionalTSStore] = {}

        for name, definition in stores.items():
            metric = DimensionalMetric(
                prefix,
                name,
                [MetricDimension(dim, values) for dim, values in definition.dimensions.items()],
                config=definition.config,
                static_labels=definition.static_labels,
            )
            self.metrics[name] = metric
            self.stores[name] = metric.create_store(ctx)

        self.plans = [self._plan(ctx, name, q, stores) for name, q in queries.items()]
        logger.debug(
            "Dimensional metrics defined: %s (%d stores, %d queries)",
            prefix, len(self.stores), len(self.plans),
            extra={"prefix": prefix},
        )

    def _plan(
        self,
        ctx: BackendContext,
        name: str,
        query: DimensionalQueryDef,
        stores: Mapping[str, DimensionalStoreDef],
    ) -> _QueryPlan:
        if query.store not in self.metrics:
            raise KeyError(f'Unknown store "{query.store}" for query "{name}"')

        metric = self.metrics[query.store]
        filter = metric.filter(query.filter)
        agg = as_aggregation(query.agg)
        reducer = as_aggregation(query.reducer or TSAggregation.SUM)
        plan = _QueryPlan(name, DimensionalQuery(ctx, filter, agg, reducer))

        if query.breakdown:
            by = query.breakdown
            if by not in metric.dim_names:
                raise UnknownDimension(by, metric.base_key, metric.dim_names)
            values = stores[query.store].dimensions[by]
            if not values:
                raise ValueError(
                    f'Breakdown dimension "{by}" for query "{name}" has no declared values'
                )
            plan.breakdown = GroupedQuery(ctx, filter, agg, by, values, reducer)
        return plan

    async def init(self) -> None:
        await asyncio.gather(*(store.init() for store in self.stores.values()))

    async def get_stats(self, scope: MetricScope) -> Dict[str, Any]:
        timeframe = is_timeframe(scope)

        async def run(plan: _QueryPlan) -> Any:
            def read(query):
                return query.timeframe(scope) if timeframe else query.range(scope)

            if plan.breakdown is None:
                return await read(plan.overall)
            overall, breakdown = await asyncio.gather(read(plan.overall), read(plan.breakdown))
            return {"overall": overall, "breakdown": breakdown}

        results = await asyncio.gather(*(run(plan) for plan in self.plans))
        return {plan.name: result for plan, result in zip(self.plans, results)}

    async def get_series(
        self,
        scope: MetricScope,
        bucket: Union[Bucket, str] = Bucket.DAY,
    ) -> Dict[str, Any]:
        timeframe = is_timeframe(scope)

        async def run(plan: _QueryPlan) -> Any:
            def read(query):
                if timeframe:
                    return query.buckets_by_timeframe(scope, bucket)
                return query.buckets(scope, bucket)

            if plan.breakdown is None:
                return await read(plan.overall)
            overall, breakdown = await asyncio.gather(read(plan.overall), read(plan.breakdown))
            return {"overall": overall, "breakdown": breakdown}

        results = await asyncio.gather(*(run(plan) for plan in self.plans))
        return {plan.name: result for plan, result in zip(self.plans, results)}


def define_dimensional_metrics(
    ctx: BackendContext,
    prefix: str,
    stores: Mapping[str, DimensionalStoreDef],
    queries: Mapping[str, DimensionalQueryDef],
) -> DefinedDimensionalMetrics:
    return DefinedDimensionalMetrics(ctx, prefix, stores, queries)
