# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Client Contract — Fail fast when a backend handle lacks a primitive.

Checked once when an AnalyticsContext is created so that a missing
capability is reported by path ("ts.range", "pipeline().execute")
instead of surfacing deep inside a query.
"""

from __future__ import annotations

from typing import Any

from metricstack.core.errors import ContractViolation

_NAMESPACED = {
    "bf": ("reserve", "madd", "mexists"),
    "ts": (
        "create",
        "alter",
        "createrule",
        "madd",
        "range",
        "mrange",
        "mrange_groupby",
    ),
}
_TOP_LEVEL = ("pfadd", "pfcount", "pfmerge", "expire", "pipeline")
_PIPELINE = ("pfadd", "pfcount", "execute")


def _assert_callable(value: Any, path: str) -> None:
    if not callable(value):
        raise ContractViolation(path)


def assert_client_contract(client: Any) -> Any:
    """Return `client` unchanged if it exposes every required primitive."""
    for namespace, methods in _NAMESPACED.items():
        group = getattr(client, namespace, None)
        for method in methods:
            _assert_callable(getattr(group, method, None), f"{namespace}.{method}")

    for method in _TOP_LEVEL:
        _assert_callable(getattr(client, method, None), method)

    pipeline = client.pipeline()
    for method in _PIPELINE:
        _assert_callable(getattr(pipeline, method, None), f"pipeline().{method}")

    return client
