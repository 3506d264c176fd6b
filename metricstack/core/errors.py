# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Error Taxonomy — Unified error structure.

Caller input errors (identifiers, dimensions) are raised immediately and
never corrected. Contract violations and duplicate compactions are
programming errors. Backend errors other than the idempotent
"already exists" replies propagate unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MetricStackError(Exception):
    """Base error with a stable code and structured details."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ContractViolation(MetricStackError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(
            code="CONTRACT_VIOLATION",
            message=f'Redis analytics client contract violation at "{path}"',
            details={"path": path},
        )


class InvalidIdentifier(MetricStackError, ValueError):
    def __init__(self, field: str, value: str, reason: str = ""):
        self.field = field
        self.value = value
        if not value:
            message = f"Invalid empty {field}"
        else:
            message = f'Invalid {field}. {reason or "value not allowed"}: {value}'
        super().__init__(
            code="INVALID_IDENTIFIER",
            message=message,
            details={"field": field, "value": value},
        )


class UnknownDimension(MetricStackError, ValueError):
    def __init__(self, dimension: str, metric: str, known: list[str]):
        self.dimension = dimension
        super().__init__(
            code="UNKNOWN_DIMENSION",
            message=(
                f'Unknown dimension "{dimension}" for metric "{metric}". '
                f"Known dimensions: {', '.join(known)}"
            ),
            details={"dimension": dimension, "metric": metric, "known": list(known)},
        )


class InvalidDimensionValue(MetricStackError, ValueError):
    def __init__(self, dimension: str, value: str, metric: str):
        self.dimension = dimension
        self.value = value
        super().__init__(
            code="INVALID_DIMENSION_VALUE",
            message=f'Invalid value "{value}" for dimension "{dimension}" in metric "{metric}"',
            details={"dimension": dimension, "value": value, "metric": metric},
        )


class MissingDimension(MetricStackError, ValueError):
    def __init__(self, dimension: str, metric: str):
        self.dimension = dimension
        super().__init__(
            code="MISSING_DIMENSION",
            message=f'Missing dimension "{dimension}" for metric "{metric}"',
            details={"dimension": dimension, "metric": metric},
        )


class CompactionAlreadyExists(MetricStackError):
    def __init__(self, compaction_key: str, source_key: str):
        super().__init__(
            code="COMPACTION_EXISTS",
            message=f"Compaction key {compaction_key} exists within {source_key}",
            details={"compaction_key": compaction_key, "source_key": source_key},
        )


class UndefinedPreviousPeriod(MetricStackError, ValueError):
    def __init__(self, reason: str):
        super().__init__(
            code="UNDEFINED_PREVIOUS_PERIOD",
            message=f"Cannot infer previous period: {reason}. Pass previous_scope explicitly.",
            details={"reason": reason},
        )
