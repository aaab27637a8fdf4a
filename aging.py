"""Elapsed-time and aging severity helpers for work-order blockers."""

from __future__ import annotations

import math
from enum import Enum

import pandas as pd

from analytics_config import FlowConfig


class AgingSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _to_utc_timestamp(value):
    """Parse a timestamp-like value to a tz-aware UTC Timestamp, or None."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is pd.NaT or pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def elapsed_hours(created_at, now, warnings=None, label=None):
    """Whole hours between ``created_at`` and ``now`` (floored, never negative).

    An unparsable or missing ``created_at`` yields 0; the problem is appended
    to ``warnings`` (when given) instead of being raised.  Naive timestamps
    are read as UTC.
    """
    now_ts = _to_utc_timestamp(now)
    if now_ts is None:
        raise ValueError(f"Reference time 'now' is not a valid timestamp: {now!r}")

    created_ts = _to_utc_timestamp(created_at)
    if created_ts is None:
        if warnings is not None:
            who = f"{label}: " if label else ""
            warnings.append(f"{who}unparsable creation timestamp {created_at!r}; aging treated as 0h.")
        return 0

    seconds = (now_ts - created_ts).total_seconds()
    if seconds <= 0:
        return 0
    return int(math.floor(seconds / 3600))


def aging_severity(hours, config=None):
    """Map elapsed hours to a band; lower bound inclusive, upper exclusive."""
    config = config or FlowConfig()
    if hours < config.medium_aging_hours:
        return AgingSeverity.LOW
    if hours < config.high_aging_hours:
        return AgingSeverity.MEDIUM
    return AgingSeverity.HIGH


def format_aging(hours):
    """Short badge text: hours under a day, whole days beyond."""
    hours = int(hours)
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"

