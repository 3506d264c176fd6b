# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Dimensional TimeSeries Store — One series per dimension combination.

Keys:   {base_key}:{dim1}={v1}:{dim2}={v2}   (declaration order)
Labels: {"baseKey": base_key, **static_labels, dim1: v1, dim2: v2}

When every dimension declares its values the full Cartesian product is
provisioned at init(); otherwise keys are created lazily on first write.
The in-memory `created` set only saves redundant TS.CREATE calls; the
backend remains the source of truth.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union

from metricstack.backend.context import BackendContext
from metricstack.backend.timeseries import TSConfig, TSFilter
from metricstack.core.errors import MissingDimension
from metricstack.core.types import DimensionalPoint
from metricstack.store.timeseries import spread_collisions
from metricstack.timing.utils import to_ms

logger = logging.getLogger("metricstack.store.dimensional")

BASE_KEY_LABEL = "baseKey"


@dataclass(frozen=True)
class DimensionDef:
    name: str
    known_values: Optional[Sequence[str]] = None


class DimensionalTSStore:
    def __init__(
        self,
        ctx: BackendContext,
        base_key: str,
        dimensions: Sequence[DimensionDef],
        config: Optional[TSConfig] = None,
        static_labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._ctx = ctx
        self.base_key = base_key
        self.dimensions = list(dimensions)
        self.dim_names = [d.name for d in self.dimensions]
        self.config = config or TSConfig()
        self.static_labels = dict(static_labels or {})
        self.known_combinations = self._compute_known_combinations()
        self._created: Set[str] = set()

    def _compute_known_combinations(self) -> List[Dict[str, str]]:
        if not all(d.known_values for d in self.dimensions):
            return []
        product = itertools.product(*(d.known_values for d in self.dimensions))
        return [dict(zip(self.dim_names, values)) for values in product]

    def build_key(self, dimensions: Mapping[str, str]) -> str:
        parts = []
        for name in self.dim_names:
            value = dimensions.get(name)
            if not value:
                raise MissingDimension(name, self.base_key)
            parts.append(f"{name}={value}")
        return ":".join([self.base_key, *parts])

    def labels(self, dimensions: Mapping[str, str]) -> Dict[str, str]:
        return {
            BASE_KEY_LABEL: self.base_key,
            **self.static_labels,
            **{name: dimensions[name] for name in self.dim_names},
        }

    async def _provision(self, key: str, dimensions: Mapping[str, str]) -> None:
        config = self.config.model_copy(update={"labels": self.labels(dimensions)})
        await self._ctx.timeseries.ensure_key(key, config)
        self._created.add(key)

    async def init(self) -> None:
        if not self.known_combinations:
            return

        await asyncio.gather(
            *(self._provision(self.build_key(dims), dims) for dims in self.known_combinations)
        )
        logger.info(
            "Provisioned %d series for %s", len(self.known_combinations), self.base_key,
            extra={"key": self.base_key},
        )

    async def record(self, points: List[DimensionalPoint]) -> None:
        if not points:
            return

        keyed = [(self.build_key(p.dimensions), p) for p in points]

        pending: Dict[str, Mapping[str, str]] = {}
        for key, point in keyed:
            if key not in self._created and key not in pending:
                pending[key] = point.dimensions
        if pending:
            await asyncio.gather(*(self._provision(k, dims) for k, dims in pending.items()))

        await self._ctx.timeseries.add(
            spread_collisions((key, to_ms(p.timestamp), p.value) for key, p in keyed)
        )

    def filter(
        self,
        dimensions: Optional[Mapping[str, Union[str, Sequence[str], None]]] = None,
    ) -> TSFilter:
        """Backend filter for this base key, optionally narrowed per dimension."""
        out: TSFilter = {BASE_KEY_LABEL: self.base_key, **self.static_labels}
        for name, value in (dimensions or {}).items():
            if value is None:
                continue
            out[name] = value if isinstance(value, str) else list(value)
        return out
