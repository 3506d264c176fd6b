# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""Bucket sequences over a date range."""

from __future__ import annotations

from datetime import datetime
from typing import Iterator, Union

from metricstack.core.types import Bucket, DateRange
from metricstack.timing.utils import ceil_to_bucket, floor_to_bucket, next_bucket


def generate_time_series(range_: DateRange, bucket: Union[Bucket, str]) -> Iterator[datetime]:
    """
    Yield ascending bucket starts from the bucket containing `range_.start`
    while strictly before `range_.end`.

    Each call returns a fresh generator.
    """
    if range_.end <= range_.start:
        return
    current = floor_to_bucket(range_.start, bucket)
    while current < range_.end:
        yield current
        current = next_bucket(current, bucket)


def normalize_range(range_: DateRange, bucket: Union[Bucket, str]) -> DateRange:
    """Floor start and ceil end so partial edge buckets are fully covered."""
    return DateRange(
        floor_to_bucket(range_.start, bucket),
        ceil_to_bucket(range_.end, bucket),
    )
