# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
MetricStack Configuration — Environment-driven settings.

All configuration is loaded from environment variables (or .env file).
Settings only provide defaults; the backend handle is always passed
explicitly through an AnalyticsContext.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class MetricStackSettings(BaseSettings):
    """Library-wide defaults loaded from environment."""

    # --- Redis ---
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis Stack connection URL (TimeSeries + Bloom modules)",
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=20,
        description="Connection pool size for connect()",
    )

    # --- Stores ---
    BLOOM_ERROR_RATE: float = Field(
        default=0.01,
        gt=0,
        lt=1,
        description="Default false-positive rate for Bloom-gated counters",
    )
    BLOOM_CAPACITY: int = Field(
        default=1_000_000,
        gt=0,
        description="Default Bloom filter capacity",
    )
    LIFETIME_SERIES_TIMEFRAME: str = Field(
        default="1y",
        description="Window used for bucket series when 'lifetime' is requested from counting stores",
    )

    # --- Platform ---
    LOG_LEVEL: str = Field(default="INFO")
    VALIDATE_CLIENT_CONTRACT: bool = Field(
        default=True,
        description="Check the client exposes every required primitive at create_analytics()",
    )

    @field_validator("LIFETIME_SERIES_TIMEFRAME")
    @classmethod
    def _finite_series_timeframe(cls, value: str) -> str:
        if value not in ("24h", "1w", "1m", "1y"):
            raise ValueError("LIFETIME_SERIES_TIMEFRAME must be one of 24h, 1w, 1m, 1y")
        return value

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "env_prefix": "METRICSTACK_",
    }


# Global singleton
settings = MetricStackSettings()
