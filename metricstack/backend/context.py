# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Backend Context — One client, its capabilities and the services bound to it.

Stores and queries receive a BackendContext in their constructor; nothing
reads a backend handle from module state, so independently configured
contexts can run side by side in one process.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from metricstack.backend.bloom import BloomService
from metricstack.backend.contract import assert_client_contract
from metricstack.backend.hll import HLLService
from metricstack.backend.timeseries import TimeSeriesService


@dataclass(frozen=True)
class BackendCapabilities:
    supports_pipelining: bool = True
    supports_native_group_by: bool = True


class BackendContext:
    def __init__(
        self,
        client: Any,
        capabilities: Optional[BackendCapabilities] = None,
        validate_contract: bool = True,
    ) -> None:
        self.client = assert_client_contract(client) if validate_contract else client
        self.capabilities = capabilities or BackendCapabilities()
        self.timeseries = TimeSeriesService(
            self.client,
            supports_native_group_by=self.capabilities.supports_native_group_by,
        )
        self.hll = HLLService(
            self.client,
            supports_pipelining=self.capabilities.supports_pipelining,
        )
        self.bloom = BloomService(self.client)

    def __repr__(self) -> str:
        return f"BackendContext(client={type(self.client).__name__}, {self.capabilities!r})"
