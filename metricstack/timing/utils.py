# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
UTC helpers — millisecond conversion, snapping and bucket key formatting.

All functions take and return timezone-aware UTC datetimes; naive inputs
are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Union

from metricstack.core.types import Bucket, as_bucket, ensure_utc

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def to_ms(value: datetime) -> int:
    """UTC datetime -> integer epoch milliseconds."""
    return (ensure_utc(value) - EPOCH) // _ONE_MS


def from_ms(timestamp: int) -> datetime:
    """Epoch milliseconds -> UTC datetime."""
    return EPOCH + timedelta(milliseconds=int(timestamp))


def to_utc(value: Union[datetime, int]) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return from_ms(value)


def snap_to_hour(value: Union[datetime, int]) -> datetime:
    return to_utc(value).replace(minute=0, second=0, microsecond=0)


def snap_to_day(value: Union[datetime, int]) -> datetime:
    return to_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def month_start(value: Union[datetime, int]) -> datetime:
    return snap_to_day(value).replace(day=1)


def add_hours(value: datetime, hours: int) -> datetime:
    return value + timedelta(hours=hours)


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, _days_in_month(year, month))
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    return add_months(value, years * 12)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        following = datetime(year + 1, 1, 1)
    else:
        following = datetime(year, month + 1, 1)
    return (following - timedelta(days=1)).day


def floor_to_bucket(value: datetime, bucket: Union[Bucket, str]) -> datetime:
    bucket = as_bucket(bucket)
    if bucket is Bucket.HOUR:
        return snap_to_hour(value)
    if bucket is Bucket.DAY:
        return snap_to_day(value)
    return month_start(value)


def ceil_to_bucket(value: datetime, bucket: Union[Bucket, str]) -> datetime:
    """Smallest bucket boundary >= value."""
    bucket = as_bucket(bucket)
    value = to_utc(value)
    start = floor_to_bucket(value, bucket)
    if start == value:
        return start
    return next_bucket(start, bucket)


def next_bucket(value: datetime, bucket: Union[Bucket, str]) -> datetime:
    bucket = as_bucket(bucket)
    if bucket is Bucket.HOUR:
        return add_hours(value, 1)
    if bucket is Bucket.DAY:
        return add_days(value, 1)
    return add_months(value, 1)


def format_bucket_key(value: datetime, bucket: Union[Bucket, str]) -> str:
    """Canonical key: YYYY-MM-DD:HH, YYYY-MM-DD or YYYY-MM."""
    bucket = as_bucket(bucket)
    value = to_utc(value)
    if bucket is Bucket.HOUR:
        return value.strftime("%Y-%m-%d:%H")
    if bucket is Bucket.DAY:
        return value.strftime("%Y-%m-%d")
    return value.strftime("%Y-%m")
