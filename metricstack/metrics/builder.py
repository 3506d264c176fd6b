# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Domain Builders — Fluent assembly of analytics domains.

Dimensional domain:

    tx = (
        AnalyticsDomainBuilder(ctx, "analytics")
        .timeseries_store("tx", dimensions={"coin": ["btc", "eth"],
                                            "category": ["deposit", "withdrawal"]})
        .measure("deposits_usd_total", lambda m: (
            m.from_("tx").agg("SUM").where({"category": "deposit"}).breakdown("coin").done()
        ))
        .build()
    )
    await tx.init()
    await tx.stats("24h")   # {"deposits_usd_total": {"overall": 15, "breakdown": {"btc": 10, "eth": 5}}}

Scalar domain:

    app = (
        AnalyticsMetricsBuilder(ctx, "app")
        .timeseries_metric("volume", aggregations={"volume_sum": "SUM"})
        .hll_metric("visitors")
        .bloom_counter_metric("signups")
        .build()
    )
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from metricstack.backend.bloom import BloomConfig
from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSConfig
from metricstack.core.types import (
    Bucket,
    DimensionalPoint,
    MetricScope,
    TSAggregation,
    TSPoint,
    UniquePoint,
)
from metricstack.metrics.compare import build_absolute_change_tree, build_percent_change_tree
from metricstack.metrics.dimension import DimensionFilter
from metricstack.metrics.schema import (
    BloomCounterMetricDef,
    DefinedDimensionalMetrics,
    DefinedMetrics,
    DimensionalQueryDef,
    DimensionalStoreDef,
    HllMetricDef,
    ScalarMetricDef,
    TimeseriesMetricDef,
    define_dimensional_metrics,
    define_metrics,
)
from metricstack.store.timeseries import TimeseriesStore
from metricstack.timing.range import previous_period

logger = logging.getLogger("metricstack.builder")


@dataclass
class ChangeResult:
    current: Dict[str, Any]
    previous: Dict[str, Any]
    percent: Dict[str, Any]
    absolute: Dict[str, Any]


async def _change(
    stats: Callable[[MetricScope], Any],
    scope: MetricScope,
    previous_scope: Optional[MetricScope],
) -> ChangeResult:
    if previous_scope is None:
        previous_scope = previous_period(scope)
    current, previous = await asyncio.gather(stats(scope), stats(previous_scope))
    return ChangeResult(
        current=current,
        previous=previous,
        percent=build_percent_change_tree(current, previous),
        absolute=build_absolute_change_tree(current, previous),
    )


# ── Measure builder ────────────────────────────────────────────


class MeasureChain:
    """Mutable state behind m.from_(store).agg(..).reducer(..).where(..).breakdown(..).done()."""

    def __init__(self, store: str) -> None:
        self._store = store
        self._agg: Optional[Union[TSAggregation, str]] = None
        self._reducer: Optional[Union[TSAggregation, str]] = None
        self._filter: Optional[DimensionFilter] = None
        self._breakdown: Optional[str] = None

    def agg(self, value: Union[TSAggregation, str]) -> "MeasureChain":
        self._agg = value
        return self

    def reducer(self, value: Union[TSAggregation, str]) -> "MeasureChain":
        self._reducer = value
        return self

    def where(self, value: DimensionFilter) -> "MeasureChain":
        self._filter = value
        return self

    filter = where

    def breakdown(self, by: str) -> "MeasureChain":
        self._breakdown = by
        return self

    def done(self) -> DimensionalQueryDef:
        if not self._agg:
            raise ValueError(f'Measure from store "{self._store}" is missing agg()')
        return DimensionalQueryDef(
            store=self._store,
            agg=self._agg,
            reducer=self._reducer,
            filter=self._filter,
            breakdown=self._breakdown,
        )


class MeasureBuilder:
    def __init__(self, stores: Sequence[str]) -> None:
        self._stores = list(stores)

    def from_(self, store: str) -> MeasureChain:
        if store not in self._stores:
            raise KeyError(f'Unknown store "{store}". Declared stores: {", ".join(self._stores)}')
        return MeasureChain(store)


# ── Dimensional domain ─────────────────────────────────────────


def _pick(values: Mapping[str, Any], selected: Sequence[str]) -> Dict[str, Any]:
    if not selected:
        return dict(values)
    return {name: values[name] for name in selected}


class DomainQueryRunner:
    """stats/series/change restricted to a selection of measures (all when empty)."""

    def __init__(self, metrics: DefinedDimensionalMetrics, selected: Sequence[str] = ()) -> None:
        self._metrics = metrics
        self.selected = list(selected)

    async def stats(self, scope: MetricScope) -> Dict[str, Any]:
        return _pick(await self._metrics.get_stats(scope), self.selected)

    async def series(self, scope: MetricScope, bucket: Union[Bucket, str] = Bucket.DAY) -> Dict[str, Any]:
        return _pick(await self._metrics.get_series(scope, bucket), self.selected)

    async def change(
        self,
        scope: MetricScope,
        previous_scope: Optional[MetricScope] = None,
    ) -> ChangeResult:
        return await _change(self.stats, scope, previous_scope)


class AnalyticsDomain:
    def __init__(self, prefix: str, metrics: DefinedDimensionalMetrics, measure_names: List[str]) -> None:
        self.prefix = prefix
        self._metrics = metrics
        self.stores = metrics.stores
        self.measure_names = measure_names
        self._all = DomainQueryRunner(metrics)

    async def init(self) -> None:
        await self._metrics.init()

    async def stats(self, scope: MetricScope) -> Dict[str, Any]:
        return await self._metrics.get_stats(scope)

    async def series(self, scope: MetricScope, bucket: Union[Bucket, str] = Bucket.DAY) -> Dict[str, Any]:
        return await self._metrics.get_series(scope, bucket)

    async def change(
        self,
        scope: MetricScope,
        previous_scope: Optional[MetricScope] = None,
    ) -> ChangeResult:
        return await self._all.change(scope, previous_scope)

    def query(self, *measures: str) -> DomainQueryRunner:
        for name in measures:
            if name not in self.measure_names:
                raise KeyError(f'Unknown measure "{name}" in domain "{self.prefix}"')
        return DomainQueryRunner(self._metrics, measures)

    async def record(self, store: str, points: Sequence[Union[DimensionalPoint, Mapping[str, Any]]]) -> None:
        metric = self._metrics.metrics[store]
        validated = []
        for point in points:
            if isinstance(point, DimensionalPoint):
                validated.append(metric.point(point.timestamp, point.value, point.dimensions))
            else:
                validated.append(metric.point(point["timestamp"], point["value"], point["dimensions"]))
        await self.stores[store].record(validated)


class AnalyticsDomainBuilder:
    def __init__(self, ctx: BackendContext, prefix: str) -> None:
        self._ctx = ctx
        self.prefix = prefix
        self._stores: Dict[str, DimensionalStoreDef] = {}
        self._measures: Dict[str, DimensionalQueryDef] = {}

    def timeseries_store(
        self,
        name: str,
        dimensions: Mapping[str, Optional[Sequence[str]]],
        config: Optional[TSConfig] = None,
        static_labels: Optional[Mapping[str, str]] = None,
    ) -> "AnalyticsDomainBuilder":
        self._stores[name] = DimensionalStoreDef(
            dimensions=dict(dimensions),
            config=config,
            static_labels=dict(static_labels or {}),
        )
        return self

    def measure(
        self,
        name: str,
        build: Callable[[MeasureBuilder], DimensionalQueryDef],
    ) -> "AnalyticsDomainBuilder":
        self._measures[name] = build(MeasureBuilder(list(self._stores)))
        return self

    def build(self) -> AnalyticsDomain:
        metrics = define_dimensional_metrics(self._ctx, self.prefix, self._stores, self._measures)
        logger.info(
            "Analytics domain built: %s (measures: %s)", self.prefix, ", ".join(self._measures),
            extra={"prefix": self.prefix},
        )
        return AnalyticsDomain(self.prefix, metrics, list(self._measures))


# ── Scalar domain ──────────────────────────────────────────────


class AnalyticsMetricsDomain:
    def __init__(self, prefix: str, metrics: DefinedMetrics) -> None:
        self.prefix = prefix
        self._metrics = metrics
        self.stores = metrics.stores
        self.metric_names = list(metrics.definitions)

    async def init(self) -> None:
        await self._metrics.init()

    async def stats(self, scope: MetricScope) -> Dict[str, float]:
        return await self._metrics.get_stats(scope)

    async def series(self, scope: MetricScope, bucket: Union[Bucket, str] = Bucket.DAY) -> Dict[str, Any]:
        return await self._metrics.get_series(scope, bucket)

    async def change(
        self,
        scope: MetricScope,
        previous_scope: Optional[MetricScope] = None,
    ) -> ChangeResult:
        return await _change(self.stats, scope, previous_scope)

    async def record(self, metric: str, points: Sequence[Any]) -> None:
        store = self.stores[metric]
        if isinstance(store, TimeseriesStore):
            converted = [
                p if isinstance(p, TSPoint) else TSPoint(p["timestamp"], float(p["value"]))
                for p in points
            ]
        else:
            converted = [
                p if isinstance(p, UniquePoint) else UniquePoint(str(p["id"]), p["timestamp"])
                for p in points
            ]
        await store.record(converted)

    async def backfill_compactions(self, *metrics: str) -> None:
        """Backfill compactions of the named timeseries metrics (all when none given)."""
        names = metrics or [
            name for name, store in self.stores.items() if isinstance(store, TimeseriesStore)
        ]
        targets = [self.stores[name] for name in names]
        await asyncio.gather(
            *(store.backfill_compactions() for store in targets if isinstance(store, TimeseriesStore))
        )


class AnalyticsMetricsBuilder:
    def __init__(self, ctx: BackendContext, prefix: str) -> None:
        self._ctx = ctx
        self.prefix = prefix
        self._metrics: Dict[str, ScalarMetricDef] = {}

    def timeseries_metric(
        self,
        name: str,
        aggregations: Mapping[str, Union[TSAggregation, str]],
        config: Optional[TSConfig] = None,
    ) -> "AnalyticsMetricsBuilder":
        self._metrics[name] = TimeseriesMetricDef(dict(aggregations), config)
        return self

    def hll_metric(self, name: str) -> "AnalyticsMetricsBuilder":
        self._metrics[name] = HllMetricDef()
        return self

    def bloom_counter_metric(
        self,
        name: str,
        bloom: Optional[BloomConfig] = None,
    ) -> "AnalyticsMetricsBuilder":
        self._metrics[name] = BloomCounterMetricDef(bloom)
        return self

    def build(self) -> AnalyticsMetricsDomain:
        return AnalyticsMetricsDomain(self.prefix, define_metrics(self._ctx, self.prefix, self._metrics))
