# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Integration test fixtures — Real Redis Stack.

These tests require a running Redis Stack (TimeSeries + Bloom modules)
at METRICSTACK_REDIS_URL (default redis://localhost:6379/0). They are
skipped when it is unreachable.
"""

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError, ResponseError

from metricstack.backend.client import connect
from metricstack.core.context import create_analytics

KEY_PREFIX = "itest"


@pytest_asyncio.fixture
async def stack_redis():
    """Connect to real Redis Stack and delete test keys after each test."""
    client = connect()
    try:
        await client.redis.ping()
        await client.redis.execute_command("TS.INFO", f"{KEY_PREFIX}:probe")
    except ConnectionError:
        await client.aclose()
        pytest.skip("Redis Stack not reachable")
    except ResponseError as e:
        if "unknown command" in str(e).lower():
            await client.aclose()
            pytest.skip("Redis TimeSeries module not loaded")

    yield client

    async for key in client.redis.scan_iter(match=f"{KEY_PREFIX}:*"):
        await client.redis.delete(key)
    await client.aclose()


@pytest.fixture
def real_analytics(stack_redis):
    return create_analytics(stack_redis)
