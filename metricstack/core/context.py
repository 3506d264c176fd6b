# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Analytics Context — Entry point that binds every component to one client.

    client = connect("redis://localhost:6379/0")
    analytics = create_analytics(client)

    visitors = analytics.hll_store("app:visitors")
    domain = analytics.domain("analytics").timeseries_store(...).measure(...).build()
    await analytics.bootstrap([visitors, domain])

Every store, query and builder created here holds this context; two
contexts over two clients never share state.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence, Union

from metricstack.backend.bloom import BloomConfig
from metricstack.backend.context import BackendCapabilities, BackendContext
from metricstack.backend.timeseries import TSConfig, TSFilter
from metricstack.core.bootstrap import BootstrapTarget, bootstrap
from metricstack.core.config import settings
from metricstack.core.types import Bucket, TSAggregation, Timeframe
from metricstack.metrics.builder import AnalyticsDomainBuilder, AnalyticsMetricsBuilder
from metricstack.metrics.dimension import DimensionalMetric, MetricDimension
from metricstack.metrics.schema import (
    DefinedDimensionalMetrics,
    DefinedMetrics,
    DimensionalQueryDef,
    DimensionalStoreDef,
    ScalarMetricDef,
    define_dimensional_metrics,
    define_metrics,
)
from metricstack.query.dimensional import DimensionalQuery, GroupedQuery
from metricstack.query.standard import TSMetricDef, TSQuery
from metricstack.store.bloom_counter import BloomCounterStore
from metricstack.store.dimensional import DimensionalTSStore, DimensionDef
from metricstack.store.hll import HllStore
from metricstack.store.timeseries import TimeseriesStore

logger = logging.getLogger("metricstack.context")


class AnalyticsContext(BackendContext):
    """
    Holds the client, its capabilities and the backend services.
    Factories below hand this context to everything they build.
    """

    # ── Stores ──────────────────────────────────────────────────

    def timeseries_store(self, key: str, config: Optional[TSConfig] = None) -> TimeseriesStore:
        return TimeseriesStore(self, key, config)

    def dimensional_store(
        self,
        base_key: str,
        dimensions: Sequence[DimensionDef],
        config: Optional[TSConfig] = None,
        static_labels: Optional[Mapping[str, str]] = None,
    ) -> DimensionalTSStore:
        return DimensionalTSStore(self, base_key, dimensions, config, static_labels)

    def hll_store(
        self,
        key: str,
        lifetime_series_timeframe: Union[Timeframe, str, None] = None,
        bucket_retention: Optional[Mapping[Bucket, int]] = None,
    ) -> HllStore:
        return HllStore(self, key, lifetime_series_timeframe, bucket_retention)

    def bloom_counter_store(
        self,
        base_key: str,
        bloom: Optional[BloomConfig] = None,
        lifetime_series_timeframe: Union[Timeframe, str, None] = None,
    ) -> BloomCounterStore:
        return BloomCounterStore(self, base_key, bloom, lifetime_series_timeframe)

    # ── Queries ─────────────────────────────────────────────────

    def ts_query(self, defs: Mapping[str, TSMetricDef]) -> TSQuery:
        return TSQuery(self, defs)

    def dimensional_query(
        self,
        filter: TSFilter,
        agg: Union[TSAggregation, str],
        reducer: Union[TSAggregation, str] = TSAggregation.SUM,
    ) -> DimensionalQuery:
        return DimensionalQuery(self, filter, agg, reducer)

    def grouped_query(
        self,
        filter: TSFilter,
        agg: Union[TSAggregation, str],
        group_by: str,
        values: Sequence[str],
        reducer: Union[TSAggregation, str] = TSAggregation.SUM,
    ) -> GroupedQuery:
        return GroupedQuery(self, filter, agg, group_by, values, reducer)

    # ── Metrics ─────────────────────────────────────────────────

    def dimensional_metric(
        self,
        prefix: str,
        suffix: str,
        dimensions: Sequence[MetricDimension] = (),
        config: Optional[TSConfig] = None,
        static_labels: Optional[Mapping[str, str]] = None,
    ) -> DimensionalMetric:
        return DimensionalMetric(prefix, suffix, dimensions, config, static_labels)

    def define_metrics(self, prefix: str, metrics: Mapping[str, ScalarMetricDef]) -> DefinedMetrics:
        return define_metrics(self, prefix, metrics)

    def define_dimensional_metrics(
        self,
        prefix: str,
        stores: Mapping[str, DimensionalStoreDef],
        queries: Mapping[str, DimensionalQueryDef],
    ) -> DefinedDimensionalMetrics:
        return define_dimensional_metrics(self, prefix, stores, queries)

    def domain(self, prefix: str) -> AnalyticsDomainBuilder:
        return AnalyticsDomainBuilder(self, prefix)

    def metrics(self, prefix: str) -> AnalyticsMetricsBuilder:
        return AnalyticsMetricsBuilder(self, prefix)

    # ── Lifecycle ───────────────────────────────────────────────

    async def bootstrap(
        self,
        targets: Sequence[BootstrapTarget],
        backfill_compactions: bool = False,
    ) -> None:
        await bootstrap(targets, backfill_compactions=backfill_compactions)


def create_analytics(
    client: Any,
    capabilities: Optional[BackendCapabilities] = None,
    validate_client_contract: Optional[bool] = None,
) -> AnalyticsContext:
    if validate_client_contract is None:
        validate_client_contract = settings.VALIDATE_CLIENT_CONTRACT

    ctx = AnalyticsContext(client, capabilities, validate_contract=validate_client_contract)
    logger.info("Analytics context created: %r", ctx)
    return ctx
