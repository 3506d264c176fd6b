# Copyright (c) 2026 MetricStack Contributors. All Rights Reserved.

"""
Structured Logging — One JSON object per record.

Library log calls tag records through `extra`: stores and services pass
the backend key they touched, metric registries pass their key prefix.

    logger.info("TS key reconciled: %s", key, extra={"key": key})
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Optional, TextIO

CONTEXT_FIELDS = ("prefix", "key")


class StructuredFormatter(logging.Formatter):
    """JSON formatter that lifts `prefix`/`key` extras into the entry."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in CONTEXT_FIELDS
            if getattr(record, name, None)
        )
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    level: str = "INFO",
    logger_name: str = "metricstack",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Route `logger_name` records to `stream` (stdout) as JSON lines.

    Unknown level names fall back to INFO. Calling again replaces the
    handler rather than stacking a second one.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())

    target = logging.getLogger(logger_name)
    target.setLevel(getattr(logging, level.upper(), logging.INFO))
    target.handlers.clear()
    target.addHandler(handler)
    return target
