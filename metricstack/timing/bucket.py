# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""Bucket widths, keys and rollup expirations."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Union

from metricstack.core.types import Bucket, as_bucket
from metricstack.timing.utils import format_bucket_key, to_utc

BUCKET_MS: Dict[Bucket, int] = {
    Bucket.HOUR: 60 * 60 * 1000,
    Bucket.DAY: 24 * 60 * 60 * 1000,
    Bucket.MONTH: 28 * 24 * 60 * 60 * 1000,
}

_BUCKET_TTL_SECONDS: Dict[Bucket, int] = {
    Bucket.HOUR: 3600,
    Bucket.DAY: 86400,
    Bucket.MONTH: 2678400,  # 31 days
}


def bucket_ms(bucket: Union[Bucket, str]) -> int:
    return BUCKET_MS[as_bucket(bucket)]


def get_bucket_key(value: Union[datetime, int], bucket: Union[Bucket, str]) -> str:
    return format_bucket_key(to_utc(value), bucket)


def get_bucket_ttl_seconds(bucket: Union[Bucket, str]) -> int:
    return _BUCKET_TTL_SECONDS[as_bucket(bucket)]


def get_bucket_expiration(bucket: Union[Bucket, str], retention_count: int) -> int:
    """TTL in seconds that keeps `retention_count` full buckets plus the live one."""
    return get_bucket_ttl_seconds(bucket) * (retention_count + 1)
