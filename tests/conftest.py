# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Shared test fixtures for all MetricStack tests.

FakeStackClient is an in-memory implementation of the analytics client
contract with Redis Stack semantics close enough for end-to-end tests:
duplicate policies, bucketed aggregation with ALIGN/EMPTY, label filters,
GROUPBY/REDUCE, Bloom membership and (exact) HyperLogLog counts.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

import fakeredis.aioredis
import pytest
from redis.exceptions import ResponseError

from metricstack.backend.client import MRangeSeries, RedisStackClient
from metricstack.core.context import create_analytics


def _aggregate(agg: str, values: List[float]) -> float:
    agg = agg.upper()
    if agg == "SUM":
        return sum(values)
    if agg == "AVG":
        return sum(values) / len(values)
    if agg == "COUNT":
        return float(len(values))
    if agg == "MIN":
        return min(values)
    if agg == "MAX":
        return max(values)
    if agg == "LAST":
        return values[-1]
    if agg == "FIRST":
        return values[0]
    raise ResponseError(f"TSDB: unknown aggregation {agg}")


def _parse_filters(filters: List[str]) -> List[Tuple[str, List[str]]]:
    parsed = []
    for expr in filters:
        name, _, value = expr.partition("=")
        if value.startswith("(") and value.endswith(")"):
            parsed.append((name, value[1:-1].split(",")))
        else:
            parsed.append((name, [value]))
    return parsed


class FakeSeries:
    def __init__(self, retention_ms: int, duplicate_policy: Optional[str], labels: Dict[str, str]):
        self.retention_ms = retention_ms
        self.duplicate_policy = (duplicate_policy or "BLOCK").upper()
        self.labels = dict(labels or {})
        self.samples: Dict[int, float] = {}

    def add(self, ts: int, value: float) -> None:
        if ts in self.samples:
            policy = self.duplicate_policy
            if policy == "BLOCK":
                raise ResponseError("TSDB: Error at upsert, update is not supported when DUPLICATE_POLICY is set to BLOCK mode")
            if policy == "SUM":
                self.samples[ts] += value
            elif policy == "MIN":
                self.samples[ts] = min(self.samples[ts], value)
            elif policy == "MAX":
                self.samples[ts] = max(self.samples[ts], value)
            elif policy == "LAST":
                self.samples[ts] = value
            return
        self.samples[ts] = value

    def read(
        self,
        from_ts,
        to_ts,
        aggregation: Optional[str] = None,
        bucket_ms: Optional[int] = None,
        align: Optional[int] = None,
        empty: bool = False,
    ) -> List[Tuple[int, Optional[float]]]:
        lo = -math.inf if from_ts == "-" else int(from_ts)
        hi = math.inf if to_ts == "+" else int(to_ts)
        rows = sorted((ts, v) for ts, v in self.samples.items() if lo <= ts <= hi)
        if aggregation is None:
            return rows
        if not rows:
            return []

        align = align or 0
        buckets: Dict[int, List[float]] = defaultdict(list)
        for ts, value in rows:
            start = align + ((ts - align) // bucket_ms) * bucket_ms
            buckets[start].append(value)

        out = [(start, _aggregate(aggregation, values)) for start, values in sorted(buckets.items())]
        if not empty:
            return out

        filled = []
        by_start = dict(out)
        first, last = out[0][0], out[-1][0]
        for start in range(first, last + 1, bucket_ms):
            if start in by_start:
                filled.append((start, by_start[start]))
            elif aggregation.upper() in ("SUM", "COUNT"):
                filled.append((start, 0.0))
            else:
                filled.append((start, None))
        return filled


class _FakeBloom:
    def __init__(self, owner: "FakeStackClient"):
        self._owner = owner
        self.filters: Dict[str, set] = {}

    async def reserve(self, key: str, error_rate: float, capacity: int) -> None:
        self._owner.calls.append(("bf.reserve", key, error_rate, capacity))
        if key in self.filters:
            raise ResponseError("item exists")
        self.filters[key] = set()

    async def madd(self, key: str, items: List[str]) -> List[bool]:
        members = self.filters.setdefault(key, set())
        added = []
        for item in items:
            added.append(item not in members)
            members.add(item)
        return added

    async def mexists(self, key: str, items: List[str]) -> List[bool]:
        members = self.filters.get(key, set())
        return [item in members for item in items]


class _FakeTimeSeries:
    def __init__(self, owner: "FakeStackClient"):
        self._owner = owner
        self.series: Dict[str, FakeSeries] = {}
        self.rules: Dict[str, Tuple[str, str, int]] = {}

    async def create(self, key, retention_ms=0, duplicate_policy=None, labels=None) -> None:
        self._owner.calls.append(("ts.create", key))
        if key in self.series:
            raise ResponseError("TSDB: key already exists")
        self.series[key] = FakeSeries(retention_ms, duplicate_policy, labels or {})

    async def alter(self, key, retention_ms=0, duplicate_policy=None, labels=None) -> None:
        self._owner.calls.append(("ts.alter", key))
        if key not in self.series:
            raise ResponseError("TSDB: the key does not exist")
        series = self.series[key]
        series.retention_ms = retention_ms
        if duplicate_policy:
            series.duplicate_policy = duplicate_policy.upper()
        if labels:
            series.labels = dict(labels)

    async def createrule(self, source_key, dest_key, aggregation, bucket_ms, align=0) -> None:
        self._owner.calls.append(("ts.createrule", source_key, dest_key))
        if dest_key in self.rules:
            raise ResponseError("TSDB: the destination key already has a src rule")
        self.rules[dest_key] = (source_key, aggregation, bucket_ms)

    async def madd(self, points) -> None:
        for key, ts, value in points:
            if key not in self.series:
                raise ResponseError("TSDB: the key does not exist")
            self.series[key].add(int(ts), float(value))

    async def range(self, key, from_ts, to_ts, aggregation=None, bucket_ms=None, align=None, empty=False):
        self._owner.calls.append(("ts.range", key, from_ts, to_ts, aggregation, bucket_ms, align, empty))
        if key not in self.series:
            raise ResponseError("TSDB: the key does not exist")
        return self.series[key].read(from_ts, to_ts, aggregation, bucket_ms, align, empty)

    def _matching(self, filters: List[str]) -> List[Tuple[str, FakeSeries]]:
        parsed = _parse_filters(filters)
        return [
            (key, series)
            for key, series in sorted(self.series.items())
            if all(series.labels.get(name) in values for name, values in parsed)
        ]

    async def mrange(self, from_ts, to_ts, filters, aggregation=None, bucket_ms=None, align=None, empty=False):
        self._owner.calls.append(("ts.mrange", tuple(filters), aggregation, bucket_ms, align))
        return [
            MRangeSeries(key, dict(series.labels), series.read(from_ts, to_ts, aggregation, bucket_ms, align, empty))
            for key, series in self._matching(filters)
        ]

    async def mrange_groupby(
        self, from_ts, to_ts, filters, group_label, reducer,
        aggregation=None, bucket_ms=None, align=None, empty=False,
    ):
        self._owner.calls.append(("ts.mrange_groupby", tuple(filters), group_label, reducer, bucket_ms, align))
        groups: Dict[str, Dict[int, List[float]]] = defaultdict(lambda: defaultdict(list))
        for _, series in self._matching(filters):
            group = series.labels.get(group_label)
            if group is None:
                continue
            for ts, value in series.read(from_ts, to_ts, aggregation, bucket_ms, align, empty):
                groups[group][ts].append(value if value is not None else 0.0)
        return [
            MRangeSeries(
                f"{group_label}={group}",
                {group_label: group, "__reducer__": reducer.lower()},
                [(ts, _aggregate(reducer, values)) for ts, values in sorted(by_ts.items())],
            )
            for group, by_ts in sorted(groups.items())
        ]


class _FakePipeline:
    def __init__(self, owner: "FakeStackClient"):
        self._owner = owner
        self._ops: List[Tuple[str, tuple]] = []

    def pfadd(self, key, items) -> None:
        self._ops.append(("pfadd", (key, items)))

    def pfcount(self, key) -> None:
        self._ops.append(("pfcount", (key,)))

    async def execute(self) -> List[Any]:
        self._owner.pipelines_executed += 1
        results = []
        for name, args in self._ops:
            if name == "pfadd":
                results.append(self._owner._pfadd(*args))
            else:
                results.append(self._owner._pfcount([args[0]]))
        self._ops = []
        return results


class FakeStackClient:
    def __init__(self):
        self.calls: List[tuple] = []
        self.bf = _FakeBloom(self)
        self.ts = _FakeTimeSeries(self)
        self.hll: Dict[str, set] = {}
        self.ttls: Dict[str, int] = {}
        self.pipelines_executed = 0

    def _pfadd(self, key, items) -> int:
        members = self.hll.setdefault(key, set())
        before = len(members)
        members.update(items)
        return int(len(members) != before)

    def _pfcount(self, keys) -> int:
        union = set()
        for key in keys:
            union |= self.hll.get(key, set())
        return len(union)

    async def pfadd(self, key, items) -> int:
        return self._pfadd(key, items)

    async def pfcount(self, keys) -> int:
        return self._pfcount(keys)

    async def pfmerge(self, dest_key, source_keys) -> None:
        merged = set(self.hll.get(dest_key, set()))
        for key in source_keys:
            merged |= self.hll.get(key, set())
        self.hll[dest_key] = merged

    async def expire(self, key, ttl_seconds) -> None:
        self.ttls[key] = ttl_seconds

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_client() -> FakeStackClient:
    """In-memory Redis Stack stand-in implementing the analytics client contract."""
    return FakeStackClient()


@pytest.fixture
def analytics(fake_client):
    """AnalyticsContext bound to the fake client."""
    return create_analytics(fake_client)


@pytest.fixture
def mock_redis():
    """FakeRedis async instance (native HLL / pipeline commands)."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def stack_client(mock_redis) -> RedisStackClient:
    return RedisStackClient(mock_redis)
