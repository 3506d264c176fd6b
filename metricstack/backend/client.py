# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Redis Stack Client — Adapts redis.asyncio to the analytics client contract.

The analytics layer talks to a small command surface (bf.*, ts.*, pf*,
expire, pipeline). RedisStackClient maps that surface onto redis-py's
RedisBloom / RedisTimeSeries command objects and normalises replies:

    ts.range  -> [(timestamp_ms, value | None), ...]
    ts.mrange -> [MRangeSeries(key, labels, samples), ...]

Any other object exposing the same callables (mocks, alternative
backends) can be used instead; see contract.assert_client_contract.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.exceptions import BusyLoadingError, ConnectionError, TimeoutError
from redis.retry import Retry

from metricstack.core.config import settings

RangeBound = Union[int, str]
Sample = Tuple[int, Optional[float]]

_RETRY = Retry(ExponentialBackoff(cap=2, base=0.1), retries=3)
_RETRY_ERRORS = [ConnectionError, TimeoutError, BusyLoadingError, OSError]


@dataclass
class MRangeSeries:
    """One series (or one group) returned by a multi-range query."""

    key: str
    labels: Dict[str, str] = field(default_factory=dict)
    samples: List[Sample] = field(default_factory=list)


def _to_value(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    value = float(raw)
    if math.isnan(value):
        return None
    return value


def _parse_samples(raw: Iterable[Sequence[Any]]) -> List[Sample]:
    return [(int(row[0]), _to_value(row[1])) for row in raw or []]


def _parse_mrange(reply: Any) -> List[MRangeSeries]:
    """
    Normalise TS.MRANGE replies.

    RESP2 (redis-py parse_m_range): [{key: [labels, samples]}, ...]
    RESP3: {key: [labels, meta?, samples]}
    """
    series: List[MRangeSeries] = []
    if isinstance(reply, dict):
        items = list(reply.items())
    else:
        items = [entry for row in reply or [] for entry in row.items()]

    for key, data in items:
        labels = data[0] if data else {}
        samples = data[-1] if len(data) > 1 else []
        if isinstance(labels, list):
            labels = {str(k): str(v) for k, v in labels}
        series.append(
            MRangeSeries(
                key=str(key),
                labels={str(k): str(v) for k, v in (labels or {}).items()},
                samples=_parse_samples(samples),
            )
        )
    return series


def _aggregation_kwargs(
    aggregation: Optional[str],
    bucket_ms: Optional[int],
    align: Optional[int],
    empty: bool,
) -> Dict[str, Any]:
    if aggregation is None:
        return {}
    kwargs: Dict[str, Any] = {
        "aggregation_type": str(aggregation).lower(),
        "bucket_size_msec": int(bucket_ms or 0),
    }
    if align is not None:
        kwargs["align"] = align
    if empty:
        kwargs["empty"] = True
    return kwargs


class _BloomCommands:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._bf = redis.bf()

    async def reserve(self, key: str, error_rate: float, capacity: int) -> None:
        await self._bf.reserve(key, error_rate, capacity)

    async def madd(self, key: str, items: List[str]) -> List[bool]:
        reply = await self._bf.madd(key, *items)
        return [int(x) == 1 for x in reply]

    async def mexists(self, key: str, items: List[str]) -> List[bool]:
        reply = await self._bf.mexists(key, *items)
        return [int(x) == 1 for x in reply]


class _TimeSeriesCommands:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._ts = redis.ts()

    async def create(
        self,
        key: str,
        retention_ms: int = 0,
        duplicate_policy: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        await self._ts.create(
            key,
            retention_msecs=retention_ms,
            duplicate_policy=duplicate_policy.lower() if duplicate_policy else None,
            labels=labels or None,
        )

    async def alter(
        self,
        key: str,
        retention_ms: int = 0,
        duplicate_policy: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        await self._ts.alter(
            key,
            retention_msecs=retention_ms,
            duplicate_policy=duplicate_policy.lower() if duplicate_policy else None,
            labels=labels or None,
        )

    async def createrule(
        self,
        source_key: str,
        dest_key: str,
        aggregation: str,
        bucket_ms: int,
        align: int = 0,
    ) -> None:
        await self._ts.createrule(
            source_key, dest_key, str(aggregation).lower(), bucket_ms, align_timestamp=align
        )

    async def madd(self, points: List[Tuple[str, int, float]]) -> None:
        await self._ts.madd([(k, int(t), float(v)) for k, t, v in points])

    async def range(
        self,
        key: str,
        from_ts: RangeBound,
        to_ts: RangeBound,
        aggregation: Optional[str] = None,
        bucket_ms: Optional[int] = None,
        align: Optional[int] = None,
        empty: bool = False,
    ) -> List[Sample]:
        reply = await self._ts.range(
            key, from_ts, to_ts, **_aggregation_kwargs(aggregation, bucket_ms, align, empty)
        )
        return _parse_samples(reply)

    async def mrange(
        self,
        from_ts: RangeBound,
        to_ts: RangeBound,
        filters: List[str],
        aggregation: Optional[str] = None,
        bucket_ms: Optional[int] = None,
        align: Optional[int] = None,
        empty: bool = False,
    ) -> List[MRangeSeries]:
        reply = await self._ts.mrange(
            from_ts,
            to_ts,
            filters,
            with_labels=True,
            **_aggregation_kwargs(aggregation, bucket_ms, align, empty),
        )
        return _parse_mrange(reply)

    async def mrange_groupby(
        self,
        from_ts: RangeBound,
        to_ts: RangeBound,
        filters: List[str],
        group_label: str,
        reducer: str,
        aggregation: Optional[str] = None,
        bucket_ms: Optional[int] = None,
        align: Optional[int] = None,
        empty: bool = False,
    ) -> List[MRangeSeries]:
        reply = await self._ts.mrange(
            from_ts,
            to_ts,
            filters,
            with_labels=True,
            groupby=group_label,
            reduce=str(reducer).lower(),
            **_aggregation_kwargs(aggregation, bucket_ms, align, empty),
        )
        return _parse_mrange(reply)


class _Pipeline:
    """Deferred pf* command buffer executed in one round trip."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._pipe = redis.pipeline(transaction=False)

    def pfadd(self, key: str, items: List[str]) -> None:
        self._pipe.pfadd(key, *items)

    def pfcount(self, key: str) -> None:
        self._pipe.pfcount(key)

    async def execute(self) -> List[Any]:
        return await self._pipe.execute()


class RedisStackClient:
    """Analytics client contract implemented over a redis.asyncio connection."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis
        self.bf = _BloomCommands(redis)
        self.ts = _TimeSeriesCommands(redis)

    async def pfadd(self, key: str, items: List[str]) -> None:
        await self.redis.pfadd(key, *items)

    async def pfcount(self, keys: List[str]) -> int:
        return int(await self.redis.pfcount(*keys))

    async def pfmerge(self, dest_key: str, source_keys: List[str]) -> None:
        await self.redis.pfmerge(dest_key, *source_keys)

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self.redis.expire(key, ttl_seconds)

    def pipeline(self) -> _Pipeline:
        return _Pipeline(self.redis)

    async def aclose(self) -> None:
        await self.redis.aclose()


def connect(url: Optional[str] = None, **overrides: Any) -> RedisStackClient:
    """
    Build a RedisStackClient over a fresh async connection pool.

    Reads the URL from MetricStackSettings unless given. Uses retry-on-error
    so stale pool connections are transparently reconnected.
    """
    options: Dict[str, Any] = dict(
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        health_check_interval=15,
        retry_on_timeout=True,
        retry_on_error=_RETRY_ERRORS,
        retry=_RETRY,
        socket_connect_timeout=5,
        socket_timeout=10,
        socket_keepalive=True,
    )
    options.update(overrides)
    redis = aioredis.from_url(url or settings.REDIS_URL, **options)
    return RedisStackClient(redis)
