# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Bloom Service — Probabilistic first-seen detection.

A Bloom filter never reports a previously inserted item as absent, so an
id flagged "new" is new. The reverse may be wrong with probability
`error_rate`: such ids are treated as already seen.
"""

from __future__ import annotations

import logging
from typing import Any, List

from pydantic import BaseModel, Field
from redis.exceptions import ResponseError

from metricstack.core.config import settings

logger = logging.getLogger("metricstack.bloom")

_RESERVED_MARKERS = ("item exists", "key already exists")


class BloomConfig(BaseModel):
    error_rate: float = Field(default_factory=lambda: settings.BLOOM_ERROR_RATE, gt=0, lt=1)
    capacity: int = Field(default_factory=lambda: settings.BLOOM_CAPACITY, gt=0)


class BloomService:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def reserve(self, key: str, config: BloomConfig) -> None:
        await self._client.bf.reserve(key, config.error_rate, config.capacity)

    async def reserve_first(self, key: str, config: BloomConfig) -> None:
        """Reserve `key`; an existing filter counts as success."""
        try:
            await self.reserve(key, config)
            logger.debug(
                "Bloom reserved: %s (error_rate=%s, capacity=%d)",
                key, config.error_rate, config.capacity,
                extra={"key": key},
            )
        except ResponseError as e:
            if not any(marker in str(e) for marker in _RESERVED_MARKERS):
                raise
            logger.debug("Bloom already reserved: %s", key, extra={"key": key})

    async def check_and_register(self, key: str, ids: List[str]) -> List[bool]:
        """Insert `ids`; returns True for every id that was seen before."""
        if not ids:
            return []
        added = await self._client.bf.madd(key, ids)
        return [not x for x in added]

    async def exists(self, key: str, ids: List[str]) -> List[bool]:
        if not ids:
            return []
        return list(await self._client.bf.mexists(key, ids))
