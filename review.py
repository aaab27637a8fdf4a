"""
Utilization review requirement
==============================
A machine-day below the utilization threshold needs a documented reason.
Reviews are written elsewhere; this module only reads them to report
whether "needs review" still holds.

    NoReviewNeeded  utilization >= threshold
    NeedsReview     below threshold, no reason recorded
    Reviewed        below threshold, reason recorded
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

import numpy as np
import pandas as pd

from analytics_config import UtilizationConfig
from data_normalization import normalize_machine_id
from shared import DEFAULT_REVIEW_THRESHOLD, round_half_up


class ReviewState(str, Enum):
    NO_REVIEW_NEEDED = "no_review_needed"
    NEEDS_REVIEW = "needs_review"
    REVIEWED = "reviewed"


@dataclass(frozen=True)
class UtilizationReview:
    machine_id: str
    review_date: date | str | None
    reason: str | None
    expected_runtime: float | None = None
    actual_runtime: float | None = None
    utilization_pct: float | None = None
    action_taken: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | str | None = None

    @property
    def has_reason(self):
        return bool(self.reason and self.reason.strip())


def review_state(utilization_pct, threshold=DEFAULT_REVIEW_THRESHOLD, review=None):
    if utilization_pct >= threshold:
        return ReviewState.NO_REVIEW_NEEDED
    if review is not None and review.has_reason:
        return ReviewState.REVIEWED
    return ReviewState.NEEDS_REVIEW


def needs_review(utilization_pct, threshold=DEFAULT_REVIEW_THRESHOLD, review=None):
    """True when below threshold and no non-empty reason is on record."""
    return review_state(utilization_pct, threshold, review) is ReviewState.NEEDS_REVIEW


def utilization_band(pct, threshold=DEFAULT_REVIEW_THRESHOLD):
    if pct >= 90:
        return "good"
    if pct >= threshold:
        return "ok"
    if pct >= 50:
        return "low"
    return "critical"


def _text(value):
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return str(value)


def _number(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if np.isnan(number) else number


def reviews_from_frame(df, review_date=None):
    """Read-only review records keyed by machine_id.

    When ``review_date`` is given only reviews for that date are kept.  If a
    machine has several rows the latest ``reviewed_at`` wins.
    """
    if df is None or len(df) == 0:
        return {}
    records = df.to_dict("records") if isinstance(df, pd.DataFrame) else list(df)
    wanted = None if review_date is None else pd.Timestamp(review_date).strftime("%Y-%m-%d")

    reviews: dict[str, UtilizationReview] = {}
    for rec in records:
        machine_id = normalize_machine_id(rec.get("machine_id"))
        if not machine_id:
            continue
        rdate = rec.get("review_date")
        if wanted is not None:
            try:
                if pd.Timestamp(rdate).strftime("%Y-%m-%d") != wanted:
                    continue
            except (TypeError, ValueError):
                continue
        review = UtilizationReview(
            machine_id=machine_id,
            review_date=_text(rdate),
            reason=_text(rec.get("reason")),
            expected_runtime=_number(rec.get("expected_runtime_minutes", rec.get("expected_runtime"))),
            actual_runtime=_number(rec.get("actual_runtime_minutes", rec.get("actual_runtime"))),
            utilization_pct=_number(rec.get("utilisation_percentage", rec.get("utilization_pct"))),
            action_taken=_text(rec.get("action_taken")),
            reviewed_by=_text(rec.get("reviewed_by")),
            reviewed_at=_text(rec.get("reviewed_at")),
        )
        current = reviews.get(review.machine_id)
        if current is None or str(review.reviewed_at or "") >= str(current.reviewed_at or ""):
            reviews[review.machine_id] = review
    return reviews


def review_table(metrics, reviews=None, config=None):
    """Per-machine review status, lowest utilization first."""
    config = config or UtilizationConfig()
    reviews = reviews or {}
    threshold = config.review_threshold
    rows = []
    for m in metrics:
        review = reviews.get(m.machine_id)
        state = review_state(m.utilization_pct, threshold, review)
        rows.append({
            "machine_id": m.machine_id,
            "machine_name": m.machine_name,
            "expected_runtime": m.expected_runtime,
            "actual_runtime": m.actual_runtime,
            "utilization_pct": m.utilization_pct,
            "band": utilization_band(m.utilization_pct, threshold),
            "state": state.value,
            "needs_review": state is ReviewState.NEEDS_REVIEW,
            "reason": review.reason if review else None,
            "action_taken": review.action_taken if review else None,
        })
    cols = ["machine_id", "machine_name", "expected_runtime", "actual_runtime", "utilization_pct",
            "band", "state", "needs_review", "reason", "action_taken"]
    out = pd.DataFrame(rows, columns=cols)
    if len(out):
        out = out.sort_values(["utilization_pct", "machine_id"], kind="mergesort")
    return out.reset_index(drop=True)


def review_summary(table, threshold=DEFAULT_REVIEW_THRESHOLD):
    """Headline counts for a review table."""
    total = int(len(table))
    if total == 0:
        return {"total": 0, "below_threshold": 0, "needing_review": 0, "avg_utilization": 0}
    return {
        "total": total,
        "below_threshold": int((table["utilization_pct"] < threshold).sum()),
        "needing_review": int(table["needs_review"].sum()),
        "avg_utilization": int(round_half_up(float(table["utilization_pct"].mean()))),
    }
