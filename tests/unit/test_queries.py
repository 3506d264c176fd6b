# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.
"""Unit tests for standard, dimensional and grouped queries."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from metricstack.backend.context import BackendCapabilities
from metricstack.backend.timeseries import TSConfig
from metricstack.core.context import create_analytics
from metricstack.core.types import AnalyticBucket, Bucket, DateRange, DimensionalPoint, DuplicatePolicy, TSPoint
from metricstack.query.dimensional import DimensionalQuery, GroupedQuery
from metricstack.query.standard import TSQuery, gap_fill, ts
from metricstack.store.dimensional import DimensionalTSStore, DimensionDef
from metricstack.store.timeseries import TimeseriesStore
from metricstack.timing.range import utc_now

UTC = timezone.utc


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


DAY_ONE = DateRange(utc(2024, 1, 1), utc(2024, 1, 2))


async def _volume_store(ctx) -> TimeseriesStore:
    store = TimeseriesStore(ctx, "app:volume", TSConfig(duplicate_policy=DuplicatePolicy.SUM))
    await store.init()
    return store


class TestGapFill:
    def test_fills_missing_slots(self):
        r = DateRange(utc(2024, 1, 1, 0), utc(2024, 1, 1, 3))
        out = gap_fill([AnalyticBucket(utc(2024, 1, 1, 1), 4.0)], r, 3_600_000)
        assert out == [
            AnalyticBucket(utc(2024, 1, 1, 0), 0.0),
            AnalyticBucket(utc(2024, 1, 1, 1), 4.0),
            AnalyticBucket(utc(2024, 1, 1, 2), 0.0),
        ]


class TestTSQuery:
    @pytest_asyncio.fixture
    async def query(self, analytics):
        store = await _volume_store(analytics)
        await store.record([
            TSPoint(utc(2024, 1, 1, 10), 1),
            TSPoint(utc(2024, 1, 1, 10, 30), 2),
            TSPoint(utc(2024, 1, 1, 12), 4),
        ])
        return TSQuery(analytics, {"volume": ts("app:volume", "SUM"), "peak": ts("app:volume", "max")})

    @pytest.mark.asyncio
    async def test_range_reads_one_value_per_metric(self, query, fake_client):
        assert await query.range(DAY_ONE) == {"volume": 7.0, "peak": 4.0}

        reads = [c for c in fake_client.calls if c[0] == "ts.range"]
        assert reads[0][3] == int(DAY_ONE.end.timestamp() * 1000) - 1
        assert reads[0][5] == 3153600000000

    @pytest.mark.asyncio
    async def test_lifetime(self, query):
        assert await query.lifetime() == {"volume": 7.0, "peak": 4.0}
        assert await query.timeframe("lifetime") == {"volume": 7.0, "peak": 4.0}

    @pytest.mark.asyncio
    async def test_empty_range_is_zero(self, query, fake_client):
        before = len(fake_client.calls)
        result = await query.range(DateRange(DAY_ONE.end, DAY_ONE.start))
        assert result == {"volume": 0, "peak": 0}
        assert len(fake_client.calls) == before

    @pytest.mark.asyncio
    async def test_buckets_are_aligned_and_gap_filled(self, query):
        r = DateRange(utc(2024, 1, 1, 10), utc(2024, 1, 1, 14))
        result = await query.buckets(r, Bucket.HOUR)
        assert result["volume"] == [
            AnalyticBucket(utc(2024, 1, 1, 10), 3.0),
            AnalyticBucket(utc(2024, 1, 1, 11), 0.0),
            AnalyticBucket(utc(2024, 1, 1, 12), 4.0),
            AnalyticBucket(utc(2024, 1, 1, 13), 0.0),
        ]
        assert [b.value for b in result["peak"]] == [2.0, 0.0, 4.0, 0.0]

    @pytest.mark.asyncio
    async def test_empty_buckets(self, query):
        assert await query.buckets(DateRange(DAY_ONE.start, DAY_ONE.start)) == {"volume": [], "peak": []}

    @pytest.mark.asyncio
    async def test_timeframe_reads_recent_window(self, analytics):
        store = await _volume_store(analytics)
        await store.record([TSPoint(utc_now() - timedelta(hours=1), 5)])
        query = TSQuery(analytics, {"volume": ts("app:volume", "SUM")})

        assert await query.timeframe("24h") == {"volume": 5.0}
        series = (await query.buckets_by_timeframe("24h", Bucket.HOUR))["volume"]
        assert len(series) == 24
        assert sum(b.value for b in series) == 5.0


class TestDimensionalQueries:
    @pytest_asyncio.fixture
    async def store(self, analytics):
        store = DimensionalTSStore(
            analytics,
            "analytics:tx",
            [DimensionDef("coin"), DimensionDef("category", ["deposit", "withdrawal"])],
            config=TSConfig(duplicate_policy=DuplicatePolicy.SUM),
        )
        await store.init()
        noon = utc(2024, 1, 1, 12)
        await store.record([
            DimensionalPoint(noon, 10, {"coin": "btc", "category": "deposit"}),
            DimensionalPoint(noon, 5, {"coin": "eth", "category": "deposit"}),
            DimensionalPoint(noon, 2, {"coin": "Solana", "category": "deposit"}),
            DimensionalPoint(noon, 7, {"coin": "doge", "category": "deposit"}),
            DimensionalPoint(noon, 3, {"coin": "btc", "category": "withdrawal"}),
            DimensionalPoint(noon + timedelta(hours=1), 1, {"coin": "btc", "category": "deposit"}),
        ])
        return store

    def _grouped(self, ctx, store, **kwargs) -> GroupedQuery:
        return GroupedQuery(
            ctx,
            store.filter({"category": "deposit"}),
            "SUM",
            group_by="coin",
            values=["btc", "eth", "solana"],
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_dimensional_range_sums_all_matching_series(self, analytics, store):
        query = DimensionalQuery(analytics, store.filter({"category": "deposit"}), "SUM")
        assert await query.range(DAY_ONE) == 25.0
        assert await query.lifetime() == 25.0

    @pytest.mark.asyncio
    async def test_dimensional_buckets(self, analytics, store):
        query = DimensionalQuery(analytics, store.filter({"category": "deposit"}), "SUM")
        result = await query.buckets(DateRange(utc(2024, 1, 1, 12), utc(2024, 1, 1, 14)), Bucket.HOUR)
        assert result == [
            AnalyticBucket(utc(2024, 1, 1, 12), 24.0),
            AnalyticBucket(utc(2024, 1, 1, 13), 1.0),
        ]

    @pytest.mark.asyncio
    async def test_dimensional_no_match(self, analytics, store):
        query = DimensionalQuery(analytics, {"baseKey": "analytics:missing"}, "SUM")
        assert await query.range(DAY_ONE) == 0
        assert await query.buckets(DAY_ONE, Bucket.HOUR) == []

    @pytest.mark.asyncio
    async def test_last_reducer_is_sent_as_sum(self, analytics, fake_client, store):
        query = DimensionalQuery(analytics, store.filter({"category": "deposit"}), "SUM", reducer="LAST")
        assert await query.range(DAY_ONE) == 25.0
        grouped_calls = [c for c in fake_client.calls if c[0] == "ts.mrange_groupby"]
        assert grouped_calls[-1][3] == "SUM"

    @pytest.mark.asyncio
    async def test_grouped_range_maps_labels_case_insensitively(self, analytics, fake_client, store):
        query = self._grouped(analytics, store)
        assert await query.range(DAY_ONE) == {"btc": 11.0, "eth": 5.0, "solana": 2.0}

        grouped_calls = [c for c in fake_client.calls if c[0] == "ts.mrange_groupby"]
        assert grouped_calls[-1][4] == 86_400_000

    @pytest.mark.asyncio
    async def test_grouped_lifetime(self, analytics, store):
        assert await self._grouped(analytics, store).lifetime() == {"btc": 11.0, "eth": 5.0, "solana": 2.0}

    @pytest.mark.asyncio
    async def test_grouped_buckets(self, analytics, store):
        r = DateRange(utc(2024, 1, 1, 12), utc(2024, 1, 1, 14))
        result = await self._grouped(analytics, store).buckets(r, Bucket.HOUR)
        assert result["btc"] == [
            AnalyticBucket(utc(2024, 1, 1, 12), 10.0),
            AnalyticBucket(utc(2024, 1, 1, 13), 1.0),
        ]
        assert result["eth"] == [AnalyticBucket(utc(2024, 1, 1, 12), 5.0)]
        assert result["solana"] == [AnalyticBucket(utc(2024, 1, 1, 12), 2.0)]

    @pytest.mark.asyncio
    async def test_grouped_absent_values_are_zero(self, analytics, store):
        query = GroupedQuery(analytics, store.filter(), "SUM", "coin", ["btc", "xrp"])
        assert await query.range(DAY_ONE) == {"btc": 14.0, "xrp": 0}
        assert (await query.buckets(DAY_ONE, Bucket.HOUR))["xrp"] == []

    @pytest.mark.asyncio
    async def test_grouped_with_max_reducer(self, analytics, store):
        query = GroupedQuery(
            analytics, store.filter(), "SUM", "category", ["deposit", "withdrawal"], reducer="MAX"
        )
        assert await query.range(DAY_ONE) == {"deposit": 11.0, "withdrawal": 3.0}

    @pytest.mark.asyncio
    async def test_local_group_by_matches_native(self, fake_client, store):
        ctx = create_analytics(fake_client, BackendCapabilities(supports_native_group_by=False))
        query = self._grouped(ctx, store)
        assert await query.range(DAY_ONE) == {"btc": 11.0, "eth": 5.0, "solana": 2.0}
        assert "ts.mrange" in fake_client.call_names()
        assert "ts.mrange_groupby" not in fake_client.call_names()

    def test_canonical(self, analytics):
        query = GroupedQuery(analytics, {}, "SUM", "coin", ["btc", "solana"])
        assert query.canonical("SOLANA") == "solana"
        assert query.canonical("btc") == "btc"
        assert query.canonical("doge") is None
        assert query.canonical(None) is None
