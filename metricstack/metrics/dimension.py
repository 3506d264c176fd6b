# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Dimensional Metric — Validated key/label model for one metric.

    tx = DimensionalMetric(
        prefix="analytics",
        suffix="tx",
        dimensions=[MetricDimension("coin", ["btc", "eth"]),
                    MetricDimension("category", ["deposit", "withdrawal"])],
    )
    tx.key({"coin": "btc", "category": "deposit"})
    # -> "analytics:tx:coin=btc:category=deposit"

Identifiers are checked once at construction; dimension assignments are
checked on every key/label/point/filter call. Nothing is silently
corrected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Union

from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSConfig, TSFilter
from metricstack.core.errors import (
    InvalidDimensionValue,
    InvalidIdentifier,
    MissingDimension,
    UnknownDimension,
)
from metricstack.core.types import DimensionalPoint
from metricstack.store.dimensional import BASE_KEY_LABEL, DimensionalTSStore, DimensionDef

KEY_DELIMITER = "="

DimensionFilter = Mapping[str, Union[str, Sequence[str], None]]


def assert_valid_identifier(value: str, field: str) -> str:
    if not value:
        raise InvalidIdentifier(field, value)
    if KEY_DELIMITER in value:
        raise InvalidIdentifier(field, value, f'"{KEY_DELIMITER}" is not allowed')
    return value


@dataclass(frozen=True)
class MetricDimension:
    """A named axis; `values=None` leaves the vocabulary open."""

    name: str
    values: Optional[Sequence[str]] = None


class DimensionalMetric:
    def __init__(
        self,
        prefix: str,
        suffix: str,
        dimensions: Sequence[MetricDimension] = (),
        config: Optional[TSConfig] = None,
        static_labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        assert_valid_identifier(prefix, "prefix")
        assert_valid_identifier(suffix, "suffix")
        for dim in dimensions:
            assert_valid_identifier(dim.name, "dimension name")
            for value in dim.values or ():
                assert_valid_identifier(value, f"dimension value for {dim.name}")

        self.static_labels = {str(k): str(v) for k, v in (static_labels or {}).items()}
        for label, value in self.static_labels.items():
            assert_valid_identifier(label, "static label name")
            assert_valid_identifier(value, "static label value")

        self.base_key = f"{prefix}:{suffix}"
        self.dimensions = list(dimensions)
        self.dim_names = [d.name for d in self.dimensions]
        self.config = config
        self._known: Dict[str, Optional[frozenset]] = {
            d.name: frozenset(d.values) if d.values is not None else None
            for d in self.dimensions
        }

    # ── Validation ─────────────────────────────────────────────

    def _check_name(self, name: str) -> None:
        if name not in self._known:
            raise UnknownDimension(name, self.base_key, self.dim_names)

    def _check_value(self, name: str, value: str) -> None:
        assert_valid_identifier(value, f"dimension value for {name}")
        known = self._known[name]
        if known is not None and value not in known:
            raise InvalidDimensionValue(name, value, self.base_key)

    def validate(self, dimensions: Mapping[str, object]) -> Dict[str, str]:
        """Full assignment: every declared dimension, known values only."""
        normalized = {str(k): str(v) for k, v in dimensions.items() if v is not None}
        for name in normalized:
            self._check_name(name)
        for name in self.dim_names:
            if not normalized.get(name):
                raise MissingDimension(name, self.base_key)
        for name, value in normalized.items():
            self._check_value(name, value)
        return normalized

    # ── Keys and labels ────────────────────────────────────────

    def key(self, dimensions: Mapping[str, object]) -> str:
        normalized = self.validate(dimensions)
        segments = [f"{name}={normalized[name]}" for name in self.dim_names]
        return ":".join([self.base_key, *segments])

    def labels(self, dimensions: Mapping[str, object]) -> Dict[str, str]:
        normalized = self.validate(dimensions)
        return {
            BASE_KEY_LABEL: self.base_key,
            **self.static_labels,
            **{name: normalized[name] for name in self.dim_names},
        }

    def point(
        self,
        timestamp: datetime,
        value: float,
        dimensions: Mapping[str, object],
    ) -> DimensionalPoint:
        return DimensionalPoint(timestamp, float(value), self.validate(dimensions))

    def points(self, inputs: Sequence[Mapping[str, object]]) -> List[DimensionalPoint]:
        """Each input is a mapping with timestamp, value and dimensions."""
        return [
            self.point(item["timestamp"], item["value"], item["dimensions"])
            for item in inputs
        ]

    def filter(self, dimensions: Optional[DimensionFilter] = None) -> TSFilter:
        out: TSFilter = {BASE_KEY_LABEL: self.base_key, **self.static_labels}
        for name, value in (dimensions or {}).items():
            if value is None:
                continue
            self._check_name(name)
            if isinstance(value, str):
                self._check_value(name, value)
                out[name] = value
                continue
            values = [str(v) for v in value]
            if not values:
                raise InvalidIdentifier(f"dimension value for {name}", "")
            for item in values:
                self._check_value(name, item)
            out[name] = values
        return out

    def create_store(self, ctx: BackendContext) -> DimensionalTSStore:
        return DimensionalTSStore(
            ctx,
            self.base_key,
            [DimensionDef(d.name, d.values) for d in self.dimensions],
            config=self.config,
            static_labels=self.static_labels,
        )
