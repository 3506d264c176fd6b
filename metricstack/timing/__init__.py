# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""Time resolution helpers: ranges, buckets and bucket sequences."""

from metricstack.timing.bucket import (
    BUCKET_MS,
    bucket_ms,
    get_bucket_expiration,
    get_bucket_key,
    get_bucket_ttl_seconds,
)
from metricstack.timing.range import previous_period, resolve_range, to_range, utc_now
from metricstack.timing.series import generate_time_series, normalize_range
from metricstack.timing.utils import (
    ceil_to_bucket,
    floor_to_bucket,
    format_bucket_key,
    from_ms,
    month_start,
    snap_to_day,
    snap_to_hour,
    to_ms,
    to_utc,
)

__all__ = [
    "BUCKET_MS",
    "bucket_ms",
    "ceil_to_bucket",
    "floor_to_bucket",
    "format_bucket_key",
    "from_ms",
    "generate_time_series",
    "get_bucket_expiration",
    "get_bucket_key",
    "get_bucket_ttl_seconds",
    "month_start",
    "normalize_range",
    "previous_period",
    "resolve_range",
    "snap_to_day",
    "snap_to_hour",
    "to_ms",
    "to_range",
    "to_utc",
    "utc_now",
]
