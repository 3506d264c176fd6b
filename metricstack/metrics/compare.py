# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Change Calculator — Period-over-period percent and absolute change.

Status taxonomy:

    unavailable     either side missing or non-numeric
    new             previous = 0, current > 0 (ratio undefined, value None)
    stable_at_zero  previous = 0, current <= 0 (value 0)
    vanished        current = 0, previous != 0 (value -100)
    no_change       current = previous (value 0)
    increase/decrease  value = (current - previous) / previous * 100

Tree variants recurse over nested mappings (e.g. dimensional breakdowns)
using the union of keys on both sides.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class ChangeStatus(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    NO_CHANGE = "no_change"
    NEW = "new"
    VANISHED = "vanished"
    STABLE_AT_ZERO = "stable_at_zero"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class PercentChange:
    status: ChangeStatus
    value: Optional[float]


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def calculate_percent_change(current: Any, previous: Any) -> PercentChange:
    cur = _to_number(current)
    prev = _to_number(previous)

    if cur is None or prev is None:
        return PercentChange(ChangeStatus.UNAVAILABLE, None)

    if prev == 0:
        if cur > 0:
            return PercentChange(ChangeStatus.NEW, None)
        return PercentChange(ChangeStatus.STABLE_AT_ZERO, 0.0)

    if cur == 0:
        return PercentChange(ChangeStatus.VANISHED, -100.0)

    if cur == prev:
        return PercentChange(ChangeStatus.NO_CHANGE, 0.0)

    pct = (cur - prev) / prev * 100
    return PercentChange(ChangeStatus.INCREASE if pct > 0 else ChangeStatus.DECREASE, pct)


def _union_keys(current: Mapping, previous: Mapping) -> list:
    return list(dict.fromkeys([*current.keys(), *previous.keys()]))


def build_percent_change_tree(current: Any, previous: Any) -> Any:
    if not isinstance(current, Mapping) or not isinstance(previous, Mapping):
        return calculate_percent_change(current, previous)
    return {
        key: build_percent_change_tree(current.get(key), previous.get(key))
        for key in _union_keys(current, previous)
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def build_absolute_change_tree(current: Any, previous: Any) -> Any:
    if _is_number(current) and _is_number(previous):
        return current - previous
    if not isinstance(current, Mapping) or not isinstance(previous, Mapping):
        return 0
    return {
        key: build_absolute_change_tree(current.get(key), previous.get(key))
        for key in _union_keys(current, previous)
    }
