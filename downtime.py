"""
Downtime Pareto and scrap contribution
======================================
Rolls logged downtime events up into reason categories and per-machine /
per-shift totals, and rejection counts into per-machine scrap %.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from shared import (
    DOWNTIME_REASONS,
    REJECTION_FIELDS,
    DowntimeCategory,
    build_reason_lookup,
    classify_reason,
    round_half_up,
    safe_pct,
)
from utilization import MachineMetric, ensure_log_frame

_CATEGORY_ORDER = {c: i for i, c in enumerate(DowntimeCategory)}

EVENT_COLUMNS = ["machine_id", "machine_name", "shift", "log_date", "reason", "minutes"]


@dataclass(frozen=True)
class DowntimeCategoryTotal:
    category: DowntimeCategory
    minutes: float
    hours: float
    percent: float


def category_for_reason(reason, reason_categories=None):
    """Parent category for a free-text reason; unmapped reasons fall into Other."""
    table = DOWNTIME_REASONS if reason_categories is None else reason_categories
    return classify_reason(reason, build_reason_lookup(table))


def _event_minutes(event):
    for key in ("duration_minutes", "minutes"):
        value = event.get(key)
        if value is None:
            continue
        try:
            minutes = float(value)
        except (TypeError, ValueError):
            continue
        if minutes == minutes and minutes:
            return minutes
    return 0.0


def explode_downtime_events(logs, warnings=None):
    """One row per downtime event, carrying its log row's machine/shift/date."""
    df = ensure_log_frame(logs, warnings)
    rows = []
    for rec in df[["machine_id", "machine_name", "shift", "log_date", "downtime_events"]].to_dict("records"):
        for event in rec["downtime_events"]:
            if not isinstance(event, dict):
                continue
            reason = event.get("reason") or event.get("type") or "Other"
            rows.append({
                "machine_id": rec["machine_id"],
                "machine_name": rec["machine_name"],
                "shift": rec["shift"],
                "log_date": rec["log_date"],
                "reason": str(reason).strip(),
                "minutes": _event_minutes(event),
            })
    return pd.DataFrame(rows, columns=EVENT_COLUMNS)


def _events_frame(events):
    """Accept an events DataFrame, (reason, minutes) pairs, or event dicts."""
    if isinstance(events, pd.DataFrame):
        df = events.copy()
    else:
        rows = []
        for e in events or []:
            if isinstance(e, dict):
                rows.append({"reason": e.get("reason") or e.get("type"), "minutes": _event_minutes(e)})
            else:
                reason, minutes = e
                rows.append({"reason": reason, "minutes": minutes})
        df = pd.DataFrame(rows, columns=["reason", "minutes"])
    for col in EVENT_COLUMNS:
        if col not in df.columns:
            df[col] = "Unknown" if col in ("machine_id", "machine_name", "shift") else None
    df["minutes"] = pd.to_numeric(df["minutes"], errors="coerce").fillna(0).clip(lower=0)
    df["reason"] = df["reason"].fillna("Other").astype(str).str.strip().replace("", "Other")
    return df


def downtime_pareto(events, reason_categories=None):
    """Category totals, biggest first, zero-minute categories dropped."""
    df = _events_frame(events)
    lookup = build_reason_lookup(DOWNTIME_REASONS if reason_categories is None else reason_categories)

    totals = {c: 0.0 for c in DowntimeCategory}
    for reason, minutes in zip(df["reason"], df["minutes"]):
        totals[classify_reason(reason, lookup)] += float(minutes)

    grand_total = sum(totals.values())
    ranked = sorted(
        ((c, m) for c, m in totals.items() if m > 0),
        key=lambda cm: (-cm[1], _CATEGORY_ORDER[cm[0]]),
    )
    return [
        DowntimeCategoryTotal(
            category=c,
            minutes=m,
            hours=round_half_up(m / 60, 1),
            percent=safe_pct(m, grand_total),
        )
        for c, m in ranked
    ]


def pareto_frame(pareto):
    """Pareto totals as a table with a cumulative % column."""
    df = pd.DataFrame(
        [{"category": t.category.value, "minutes": t.minutes, "hours": t.hours, "percent": t.percent}
         for t in pareto],
        columns=["category", "minutes", "hours", "percent"],
    )
    total = df["minutes"].sum()
    df["cumulative_pct"] = (df["minutes"].cumsum() / total * 100).round(1) if total > 0 else 0.0
    return df


def downtime_by_reason(events, reason_categories=None, paid_capacity=0):
    """Per-reason minutes, occurrences and share of downtime / paid capacity."""
    df = _events_frame(events)
    cols = ["reason", "category", "minutes", "hours", "occurrences",
            "pct_of_downtime", "pct_of_capacity"]
    if len(df) == 0:
        return pd.DataFrame(columns=cols)

    lookup = build_reason_lookup(DOWNTIME_REASONS if reason_categories is None else reason_categories)
    out = (
        df.groupby("reason", sort=True)
        .agg(minutes=("minutes", "sum"), occurrences=("minutes", "count"))
        .reset_index()
    )
    total = float(out["minutes"].sum())
    out["category"] = out["reason"].map(lambda r: classify_reason(r, lookup).value)
    out["hours"] = out["minutes"].map(lambda m: round_half_up(m / 60, 1))
    out["pct_of_downtime"] = out["minutes"].map(lambda m: safe_pct(m, total))
    out["pct_of_capacity"] = out["minutes"].map(lambda m: safe_pct(m, paid_capacity))
    out = out.sort_values(["minutes", "reason"], ascending=[False, True], kind="mergesort")
    return out[cols].reset_index(drop=True)


def _top_reason(group):
    by_reason = group.groupby("reason")["minutes"].sum()
    by_reason = by_reason[by_reason > 0]
    if by_reason.empty:
        return "N/A"
    # Largest minutes; alphabetical among ties
    return sorted(by_reason.items(), key=lambda rm: (-rm[1], rm[0]))[0][0]


def _by_dimension(df, key, extra_cols):
    rows = []
    total = float(df["minutes"].sum())
    for value, group in df.groupby(key, sort=True):
        row = {key: value}
        for col in extra_cols:
            row[col] = group[col].iloc[0]
        row["minutes"] = float(group["minutes"].sum())
        row["occurrences"] = int(len(group))
        row["pct_of_total"] = safe_pct(row["minutes"], total)
        row["top_reason"] = _top_reason(group)
        rows.append(row)
    cols = [key, *extra_cols, "minutes", "occurrences", "pct_of_total", "top_reason"]
    out = pd.DataFrame(rows, columns=cols)
    if len(out):
        out = out.sort_values(["minutes", key], ascending=[False, True], kind="mergesort")
    return out.reset_index(drop=True)


def downtime_by_machine(events):
    """Downtime minutes per machine with its biggest reason."""
    return _by_dimension(_events_frame(events), "machine_id", ["machine_name"])


def downtime_by_shift(events):
    """Downtime minutes per shift with its biggest reason."""
    return _by_dimension(_events_frame(events), "shift", [])


def downtime_trend(current_minutes, previous_minutes):
    """% change against the previous period; 0 when there is no baseline."""
    if not previous_minutes:
        return 0.0
    return round_half_up((current_minutes - previous_minutes) / previous_minutes * 100, 1)


# ---------------------------------------------------------------------------
# Scrap / rejections
# ---------------------------------------------------------------------------
def _scrap_inputs(machines):
    if isinstance(machines, pd.DataFrame):
        df = machines.copy()
        if "machine_name" not in df.columns:
            df["machine_name"] = df["machine_id"]
        return df[["machine_id", "machine_name", "rejections", "output"]]
    rows = []
    for m in machines or []:
        if isinstance(m, MachineMetric):
            rows.append({"machine_id": m.machine_id, "machine_name": m.machine_name,
                         "rejections": m.total_rejections, "output": m.total_output})
        else:
            machine_id, rejections, output = m
            rows.append({"machine_id": machine_id, "machine_name": machine_id,
                         "rejections": rejections, "output": output})
    return pd.DataFrame(rows, columns=["machine_id", "machine_name", "rejections", "output"])


def scrap_by_machine(machines):
    """Scrap % = rejections / (rejections + output) * 100, most rejections first.

    ``machines`` is a list of MachineMetric, ``(machine_id, rejections, output)``
    tuples, or a DataFrame with those columns.
    """
    df = _scrap_inputs(machines)
    for col in ("rejections", "output"):
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    df["scrap_pct"] = [safe_pct(r, r + o) for r, o in zip(df["rejections"], df["output"])]
    df = df.sort_values(["rejections", "machine_id"], ascending=[False, True], kind="mergesort")
    return df.reset_index(drop=True)


def rejection_pareto(logs, warnings=None):
    """Counts per rejection type across the logs, biggest first."""
    df = ensure_log_frame(logs, warnings)
    total = float(df["total_rejection_quantity"].sum())
    rows = []
    for field, label in REJECTION_FIELDS.items():
        if field not in df.columns:
            continue
        count = float(df[field].sum())
        if count > 0:
            rows.append({"reason": label, "count": count, "percent": safe_pct(count, total)})
    out = pd.DataFrame(rows, columns=["reason", "count", "percent"])
    if len(out):
        out = out.sort_values(["count", "reason"], ascending=[False, True], kind="mergesort")
    return out.reset_index(drop=True)
