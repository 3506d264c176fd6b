# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
HLL Service — Approximate-cardinality adds, counts and merges.

Multi-key writes and per-key counts go through one pipeline round trip
when the backend supports pipelining, and fall back to individual
commands otherwise.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union

logger = logging.getLogger("metricstack.hll")


@dataclass
class HLLEntry:
    key: str
    ids: List[str]


class HLLService:
    def __init__(self, client: Any, supports_pipelining: bool = True) -> None:
        self._client = client
        self._pipelining = supports_pipelining

    async def add(self, key: str, ids: List[str]) -> None:
        if not ids:
            return
        await self._client.pfadd(key, ids)

    async def add_multi(self, entries: Sequence[HLLEntry]) -> None:
        non_empty = [e for e in entries if e.ids]
        if not non_empty:
            return

        if not self._pipelining:
            await asyncio.gather(*(self._client.pfadd(e.key, e.ids) for e in non_empty))
            return

        pipeline = self._client.pipeline()
        for entry in non_empty:
            pipeline.pfadd(entry.key, entry.ids)
        await pipeline.execute()

    async def count(self, keys: Union[str, Sequence[str]]) -> int:
        """Union cardinality across `keys`."""
        key_list = [keys] if isinstance(keys, str) else list(keys)
        if not key_list:
            return 0
        return int(await self._client.pfcount(key_list))

    async def count_each(self, keys: Sequence[str]) -> List[int]:
        """Cardinality of every key independently, in input order."""
        if not keys:
            return []

        if not self._pipelining:
            counts = await asyncio.gather(*(self._client.pfcount([k]) for k in keys))
            return [int(c) for c in counts]

        pipeline = self._client.pipeline()
        for key in keys:
            pipeline.pfcount(key)
        results = await pipeline.execute()
        return [int(c or 0) for c in results]

    async def merge(
        self,
        dest_key: str,
        source_keys: Sequence[str],
        ttl_seconds: Optional[int] = None,
    ) -> None:
        if not source_keys:
            return

        await self._client.pfmerge(dest_key, list(source_keys))
        if ttl_seconds:
            await self._client.expire(dest_key, ttl_seconds)
        logger.debug("HLL merged %d keys into %s", len(source_keys), dest_key, extra={"key": dest_key})

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self._client.expire(key, ttl_seconds)
