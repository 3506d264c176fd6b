# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.
"""Integration tests against a REAL Redis Stack."""

from datetime import timedelta

import pytest

from metricstack.backend.timeseries import TSConfig
from metricstack.core.types import Bucket, DimensionalPoint, DuplicatePolicy, TSPoint, UniquePoint
from metricstack.query.standard import ts
from metricstack.timing.range import utc_now

pytestmark = pytest.mark.integration


class TestRealStores:
    @pytest.mark.asyncio
    async def test_timeseries_and_query(self, real_analytics):
        store = real_analytics.timeseries_store(
            "itest:volume", TSConfig(duplicate_policy=DuplicatePolicy.SUM)
        )
        store.compact("SUM", Bucket.HOUR)
        await real_analytics.bootstrap([store])
        await real_analytics.bootstrap([store])

        when = utc_now() - timedelta(hours=2)
        await store.record([TSPoint(when, 3), TSPoint(when, 4)])

        query = real_analytics.ts_query({"volume": ts("itest:volume", "SUM")})
        assert await query.timeframe("24h") == {"volume": 7.0}
        series = (await query.buckets_by_timeframe("24h", Bucket.HOUR))["volume"]
        assert len(series) == 24
        assert sum(b.value for b in series) == 7.0

    @pytest.mark.asyncio
    async def test_hll_and_bloom(self, real_analytics):
        visitors = real_analytics.hll_store("itest:visitors")
        signups = real_analytics.bloom_counter_store("itest:signups")
        await real_analytics.bootstrap([visitors, signups])

        now = utc_now() - timedelta(minutes=1)
        points = [UniquePoint("u1", now), UniquePoint("u2", now), UniquePoint("u1", now)]
        await visitors.record(points)
        await signups.record(points)

        assert await visitors.get("24h") == 2
        assert await visitors.lifetime() == 2
        assert await signups.lifetime() == 2
        assert await signups.seen(["u2", "u9"]) == [True, False]


class TestRealDomain:
    @pytest.mark.asyncio
    async def test_deposits_breakdown(self, real_analytics):
        tx = (
            real_analytics.domain("itest")
            .timeseries_store("tx", dimensions={"coin": ["btc", "eth"], "category": ["deposit", "withdrawal"]})
            .measure("deposits_usd_total", lambda m: (
                m.from_("tx").agg("SUM").where({"category": "deposit"}).breakdown("coin").done()
            ))
            .build()
        )
        await real_analytics.bootstrap([tx])

        hour_ago = utc_now() - timedelta(hours=1)
        await tx.record("tx", [
            DimensionalPoint(hour_ago, 10, {"coin": "btc", "category": "deposit"}),
            DimensionalPoint(hour_ago, 5, {"coin": "eth", "category": "deposit"}),
        ])

        stats = await tx.stats("24h")
        assert stats["deposits_usd_total"] == {"overall": 15, "breakdown": {"btc": 10, "eth": 5}}
