"""Explicit, immutable configuration passed into every analytics pass."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from shared import (
    CRITICAL_AGED_COUNT,
    CRITICAL_BLOCKED_RATIO,
    DEFAULT_REVIEW_THRESHOLD,
    DEFAULT_SHIFT_MINUTES,
    DISPLAY_CAP_PCT,
    DOWNTIME_REASONS,
    HIGH_AGING_HOURS,
    MEDIUM_AGING_HOURS,
    WARNING_BLOCKED_RATIO,
    WARNING_BUCKET_SHARE,
    DowntimeCategory,
    build_reason_lookup,
)


@dataclass(frozen=True)
class FlowConfig:
    critical_blocked_ratio: float = CRITICAL_BLOCKED_RATIO
    critical_aged_count: int = CRITICAL_AGED_COUNT
    warning_blocked_ratio: float = WARNING_BLOCKED_RATIO
    warning_bucket_share: float = WARNING_BUCKET_SHARE
    medium_aging_hours: int = MEDIUM_AGING_HOURS
    high_aging_hours: int = HIGH_AGING_HOURS
    # Bucket names that are shown but do not count as blocked flow
    informational_categories: frozenset[str] = frozenset({"external_processing"})

    def __post_init__(self):
        if not 0 <= self.medium_aging_hours <= self.high_aging_hours:
            raise ValueError(
                f"Aging bands must satisfy 0 <= medium ({self.medium_aging_hours}) "
                f"<= high ({self.high_aging_hours})"
            )
        object.__setattr__(self, "informational_categories", frozenset(self.informational_categories))


@dataclass(frozen=True)
class UtilizationConfig:
    default_shift_minutes: int = DEFAULT_SHIFT_MINUTES
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD
    display_cap_pct: float = DISPLAY_CAP_PCT

    def __post_init__(self):
        if self.default_shift_minutes < 0:
            raise ValueError(f"default_shift_minutes must be >= 0, got {self.default_shift_minutes}")


@dataclass(frozen=True)
class AnalyticsConfig:
    flow: FlowConfig = field(default_factory=FlowConfig)
    utilization: UtilizationConfig = field(default_factory=UtilizationConfig)
    reason_categories: Mapping[str, DowntimeCategory] = field(
        default_factory=lambda: MappingProxyType(dict(DOWNTIME_REASONS))
    )

    def __post_init__(self):
        table = {str(k): DowntimeCategory(v) for k, v in dict(self.reason_categories).items()}
        object.__setattr__(self, "reason_categories", MappingProxyType(table))

    @property
    def reason_lookup(self) -> dict[str, DowntimeCategory]:
        return build_reason_lookup(self.reason_categories)


def _apply_overrides(base, overrides: dict[str, Any], section: str):
    known = {f.name: f for f in fields(base)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ValueError(f"Unknown {section} config keys: {', '.join(unknown)}")
    coerced = {}
    for key, value in overrides.items():
        current = getattr(base, key)
        if isinstance(current, frozenset):
            if not isinstance(value, (list, tuple, set)):
                raise ValueError(f"{section}.{key} must be a list, got {type(value).__name__}")
            coerced[key] = frozenset(str(v) for v in value)
        elif isinstance(current, (int, float)) and not isinstance(current, bool):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{section}.{key} must be numeric, got {value!r}")
            coerced[key] = type(current)(value) if isinstance(current, int) and float(value).is_integer() else value
        else:
            coerced[key] = value
    return replace(base, **coerced)


def config_from_dict(data: dict[str, Any]) -> AnalyticsConfig:
    """Build an AnalyticsConfig from a nested override dict.

    Shape::

        {"flow": {...}, "utilization": {...}, "reason_categories": {"Reason": "Machine"}}
    """
    unknown = sorted(set(data) - {"flow", "utilization", "reason_categories"})
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(unknown)}")

    flow = _apply_overrides(FlowConfig(), data.get("flow", {}), "flow")
    utilization = _apply_overrides(UtilizationConfig(), data.get("utilization", {}), "utilization")

    table = dict(DOWNTIME_REASONS)
    for reason, category in data.get("reason_categories", {}).items():
        try:
            table[str(reason)] = DowntimeCategory(category)
        except ValueError:
            valid = ", ".join(c.value for c in DowntimeCategory)
            raise ValueError(f"Unknown downtime category {category!r} for {reason!r} (expected one of: {valid})")

    return AnalyticsConfig(flow=flow, utilization=utilization, reason_categories=table)


def load_config(path: str | Path | None = None) -> AnalyticsConfig:
    """Load config overrides from a JSON file; defaults when no path given."""
    if path is None:
        return AnalyticsConfig()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return config_from_dict(data)
