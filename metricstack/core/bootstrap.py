# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""Bootstrap — init() every target concurrently, then optionally backfill compactions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

logger = logging.getLogger("metricstack.bootstrap")

# Anything with `async init()`; `async backfill_compactions()` is optional
BootstrapTarget = Any


async def bootstrap(
    targets: Sequence[BootstrapTarget],
    backfill_compactions: bool = False,
) -> None:
    if not targets:
        return

    await asyncio.gather(*(target.init() for target in targets))
    logger.info("Bootstrapped %d analytics targets", len(targets))

    if not backfill_compactions:
        return

    backfillable = [t for t in targets if callable(getattr(t, "backfill_compactions", None))]
    await asyncio.gather(*(t.backfill_compactions() for t in backfillable))
    logger.info("Backfilled compactions for %d targets", len(backfillable))
