"""
Production flow blockers
========================
Classifies in-flight work orders into mutually exclusive blocker buckets,
annotates each with its age, and scores overall flow health.

Pure functions only: every call takes an already-fetched snapshot list and an
explicit ``now`` and returns new values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

import pandas as pd

from aging import AgingSeverity, aging_severity, elapsed_hours, format_aging
from analytics_config import FlowConfig

EXTERNAL_ACTIVE_STATUSES = frozenset({"pending", "in_progress"})


class BlockerCategory(str, Enum):
    MATERIAL_QC = "material_qc"
    FIRST_PIECE_QC = "first_piece_qc"
    EXTERNAL_PROCESSING = "external_processing"
    READY_NOT_STARTED = "ready_not_started"


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self):
        return _HEALTH_RANK[self]


_HEALTH_RANK = {HealthLevel.HEALTHY: 0, HealthLevel.WARNING: 1, HealthLevel.CRITICAL: 2}


@dataclass(frozen=True)
class WorkOrderSnapshot:
    wo_id: str
    created_at: Any
    material_qc_passed: bool
    first_piece_qc_passed: bool
    progress_pct: float = 0.0
    external_status: str | None = None
    customer: str | None = None
    item_code: str | None = None
    quantity: int = 0
    due_date: date | datetime | str | None = None


def progress_from_output(ok_qty, quantity):
    """Progress % from logged OK quantity, capped at 100."""
    if not quantity or quantity <= 0:
        return 0
    return min(100, int((ok_qty or 0) / quantity * 100 + 0.5))


@dataclass(frozen=True)
class BucketItem:
    work_order: WorkOrderSnapshot
    aging_hours: int
    severity: AgingSeverity

    @property
    def aging_display(self):
        return format_aging(self.aging_hours)


@dataclass(frozen=True)
class BucketInfo:
    title: str
    owner: str
    is_blocker: bool
    action_label: str
    description: str


BUCKET_INFO = {
    BlockerCategory.MATERIAL_QC: BucketInfo(
        title="Blocked – Material QC",
        owner="Quality",
        is_blocker=True,
        action_label="Approve Material QC",
        description="Awaiting material inspection approval",
    ),
    BlockerCategory.FIRST_PIECE_QC: BucketInfo(
        title="Blocked – First Piece QC",
        owner="QC / Production",
        is_blocker=True,
        action_label="Perform First Piece Inspection",
        description="Awaiting first piece approval",
    ),
    BlockerCategory.EXTERNAL_PROCESSING: BucketInfo(
        title="External Processing",
        owner="Procurement / External Ops",
        is_blocker=False,
        action_label="View External Status",
        description="At external partner – informational",
    ),
    BlockerCategory.READY_NOT_STARTED: BucketInfo(
        title="Ready but Not Started",
        owner="Production Planning",
        is_blocker=True,
        action_label="Start Production",
        description="All gates passed, awaiting production start",
    ),
}


# ---------------------------------------------------------------------------
# Classification rules: evaluated top to bottom, first match wins
# ---------------------------------------------------------------------------
def _material_qc_pending(wo):
    return not wo.material_qc_passed


def _first_piece_pending(wo):
    return not wo.first_piece_qc_passed


def _at_external_partner(wo):
    status = (wo.external_status or "").strip().lower()
    return status in EXTERNAL_ACTIVE_STATUSES


def _not_started(wo):
    return wo.progress_pct == 0


BLOCKER_RULES: tuple[tuple[BlockerCategory, Callable[[WorkOrderSnapshot], bool]], ...] = (
    (BlockerCategory.MATERIAL_QC, _material_qc_pending),
    (BlockerCategory.FIRST_PIECE_QC, _first_piece_pending),
    (BlockerCategory.EXTERNAL_PROCESSING, _at_external_partner),
    (BlockerCategory.READY_NOT_STARTED, _not_started),
)


def classify_blocker(wo, rules=BLOCKER_RULES):
    """Return the single blocker category for a work order, or None if flowing."""
    for category, predicate in rules:
        if predicate(wo):
            return category
    return None


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------
def _bucket_sort_key(item):
    # Oldest first; wo_id keeps equal ages in a stable, repeatable order
    return (-item.aging_hours, str(item.work_order.wo_id))


def build_buckets(work_orders, now, config=None, warnings=None):
    """Partition work orders into blocker buckets, oldest blocker first.

    Every category is present in the result (possibly empty).  Flowing work
    orders are left out of all buckets.
    """
    config = config or FlowConfig()
    buckets: dict[BlockerCategory, list[BucketItem]] = {c: [] for c in BlockerCategory}

    for wo in work_orders:
        category = classify_blocker(wo)
        if category is None:
            continue
        hours = elapsed_hours(wo.created_at, now, warnings=warnings, label=f"WO {wo.wo_id}")
        buckets[category].append(BucketItem(wo, hours, aging_severity(hours, config)))

    for items in buckets.values():
        items.sort(key=_bucket_sort_key)
    return buckets


def flowing_work_orders(work_orders):
    """Work orders no rule matched (in progress, not blocked)."""
    return [wo for wo in work_orders if classify_blocker(wo) is None]


def counts_by_category(buckets):
    return {category: len(items) for category, items in buckets.items()}


def blocking_categories(config=None):
    config = config or FlowConfig()
    return [c for c in BlockerCategory if c.value not in config.informational_categories]


# ---------------------------------------------------------------------------
# Flow health
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class FlowHealth:
    level: HealthLevel
    reasons: tuple[str, ...]
    blocked_ratio: float = 0.0
    max_bucket_share: float = 0.0
    total_blocked: int = 0
    total_active: int = 0
    severely_aged: int = 0


def _plural(n, word):
    return f"{n} {word}{'' if n == 1 else 's'}"


def score_flow_health(bucket_counts, total_active, severely_aged, config=None):
    """Three-level verdict from bucket sizes, active WO count and aged blockers.

    ``bucket_counts`` maps category -> count.  Categories marked informational
    in the config are ignored.  Reasons are listed in the order ratio, aging,
    imbalance.
    """
    config = config or FlowConfig()
    counted = {
        BlockerCategory(c): int(n)
        for c, n in bucket_counts.items()
        if BlockerCategory(c).value not in config.informational_categories
    }
    total_blocked = sum(counted.values())

    blocked_ratio = total_blocked / total_active if total_active > 0 else 0.0
    max_bucket_share = max(counted.values()) / total_blocked if total_blocked > 0 else 0.0

    ratio_critical = blocked_ratio > config.critical_blocked_ratio
    aged_critical = severely_aged > config.critical_aged_count
    ratio_warning = blocked_ratio > config.warning_blocked_ratio
    aged_warning = severely_aged > 0
    imbalance_warning = max_bucket_share > config.warning_bucket_share

    if ratio_critical or aged_critical:
        level = HealthLevel.CRITICAL
    elif ratio_warning or aged_warning or imbalance_warning:
        level = HealthLevel.WARNING
    else:
        level = HealthLevel.HEALTHY

    reasons = []
    if ratio_critical or ratio_warning:
        limit = config.critical_blocked_ratio if ratio_critical else config.warning_blocked_ratio
        reasons.append(
            f"{total_blocked} of {_plural(total_active, 'active WO')} blocked "
            f"({blocked_ratio:.0%}, above {limit:.0%})"
        )
    if aged_critical or aged_warning:
        reasons.append(f"{_plural(severely_aged, 'WO')} blocked for {config.high_aging_hours}h or more")
    if imbalance_warning:
        largest = max(counted, key=lambda c: (counted[c], -list(BlockerCategory).index(c)))
        reasons.append(
            f"{BUCKET_INFO[largest].title} holds {max_bucket_share:.0%} of blockers "
            f"(above {config.warning_bucket_share:.0%})"
        )
    if not reasons:
        if total_blocked:
            reasons.append(f"Flow is moving smoothly ({_plural(total_blocked, 'blocker')}, none aged)")
        else:
            reasons.append("Flow is moving smoothly")

    return FlowHealth(
        level=level,
        reasons=tuple(reasons),
        blocked_ratio=blocked_ratio,
        max_bucket_share=max_bucket_share,
        total_blocked=total_blocked,
        total_active=int(total_active),
        severely_aged=int(severely_aged),
    )


# ---------------------------------------------------------------------------
# One full pass
# ---------------------------------------------------------------------------
@dataclass
class FlowReport:
    buckets: dict[BlockerCategory, list[BucketItem]]
    flowing_count: int
    total_active: int
    health: FlowHealth
    warnings: list[str] = field(default_factory=list)

    @property
    def bucketed_count(self):
        return sum(len(items) for items in self.buckets.values())

    def to_frame(self) -> pd.DataFrame:
        """Flatten bucket items for tables (one row per blocked work order)."""
        rows = []
        for category, items in self.buckets.items():
            info = BUCKET_INFO[category]
            for rank, item in enumerate(items, start=1):
                wo = item.work_order
                rows.append({
                    "bucket": category.value,
                    "bucket_title": info.title,
                    "owner": info.owner,
                    "rank": rank,
                    "wo_id": wo.wo_id,
                    "customer": wo.customer,
                    "item_code": wo.item_code,
                    "quantity": wo.quantity,
                    "due_date": wo.due_date,
                    "aging_hours": item.aging_hours,
                    "aging": item.aging_display,
                    "severity": item.severity.value,
                })
        columns = ["bucket", "bucket_title", "owner", "rank", "wo_id", "customer", "item_code",
                   "quantity", "due_date", "aging_hours", "aging", "severity"]
        return pd.DataFrame(rows, columns=columns)

    def to_record(self) -> dict:
        return {
            "health": self.health.level.value,
            "reasons": list(self.health.reasons),
            "blocked_ratio": round(self.health.blocked_ratio, 4),
            "max_bucket_share": round(self.health.max_bucket_share, 4),
            "total_active": self.total_active,
            "flowing": self.flowing_count,
            "buckets": {
                c.value: [
                    {"wo_id": i.work_order.wo_id, "aging_hours": i.aging_hours, "severity": i.severity.value}
                    for i in items
                ]
                for c, items in self.buckets.items()
            },
        }


def evaluate_flow(work_orders, now, config=None):
    """Buckets + flow health for one snapshot of active work orders."""
    config = config or FlowConfig()
    work_orders = list(work_orders)
    warnings: list[str] = []

    buckets = build_buckets(work_orders, now, config=config, warnings=warnings)
    flowing = len(work_orders) - sum(len(items) for items in buckets.values())

    counted = blocking_categories(config)
    severely_aged = sum(
        1 for c in counted for item in buckets[c] if item.severity == AgingSeverity.HIGH
    )
    health = score_flow_health(
        counts_by_category(buckets), len(work_orders), severely_aged, config=config
    )
    return FlowReport(
        buckets=buckets,
        flowing_count=flowing,
        total_active=len(work_orders),
        health=health,
        warnings=warnings,
    )
