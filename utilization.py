"""
Machine utilization from production logs
========================================
Expected runtime comes from each log row's shift window (crossing midnight
when the end is before the start) or the configured default shift.  Totals
are summed over the whole date range, never averaged per day.

    Utilization % = actual runtime / expected runtime * 100
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, time

import numpy as np
import pandas as pd

from analytics_config import UtilizationConfig
from canonical_schema import validate_and_coerce_log_frame
from data_normalization import normalize_machine_id
from shared import DISPLAY_CAP_PCT, MINUTES_PER_DAY, round_half_up, safe_pct


@dataclass
class MachineMetric:
    machine_id: str
    machine_name: str
    expected_runtime: float
    actual_runtime: float
    utilization_pct: float
    avg_efficiency: float | None
    total_output: float = 0
    total_rejections: float = 0
    total_downtime: float = 0
    log_count: int = 0
    display_cap_pct: float = DISPLAY_CAP_PCT

    @property
    def display_utilization_pct(self):
        return min(self.utilization_pct, self.display_cap_pct)

    @property
    def is_idle(self):
        return self.actual_runtime <= 0


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------
def ensure_log_frame(logs, warnings=None):
    """Accept a DataFrame or a list of row dicts; return the canonical frame."""
    if not isinstance(logs, pd.DataFrame):
        logs = pd.DataFrame(list(logs or []))
    if len(logs.columns) == 0:
        logs = pd.DataFrame(columns=["machine_id", "actual_runtime_minutes"])
    df, frame_warnings = validate_and_coerce_log_frame(logs)
    if warnings is not None:
        warnings.extend(frame_warnings)
    return df


def machine_roster(machines):
    """Normalize a roster to ``[(machine_id, machine_name), ...]`` in input order.

    Accepts plain ids, ``(id, name)`` pairs, dicts with ``machine_id``/``id``
    and ``name``/``machine_name``, or a DataFrame with those columns.
    """
    if isinstance(machines, pd.DataFrame):
        machines = machines.to_dict("records")

    roster = []
    seen = set()
    for m in machines or []:
        if isinstance(m, dict):
            machine_id = m.get("machine_id", m.get("id"))
            name = m.get("machine_name", m.get("name"))
        elif isinstance(m, (tuple, list)):
            machine_id, name = (m[0], m[1]) if len(m) > 1 else (m[0], None)
        else:
            machine_id, name = m, None
        machine_id = normalize_machine_id(machine_id)
        if machine_id is None:
            continue
        if machine_id in seen:
            continue
        seen.add(machine_id)
        if name is None or (isinstance(name, float) and np.isnan(name)):
            name = machine_id
        roster.append((machine_id, str(name)))
    return roster


def parse_clock(value):
    """Minutes since midnight for 'HH:MM', 'HH:MM:SS', time or datetime; else None."""
    if value is None:
        return None
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.hour * 60 + value.minute
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if isinstance(value, float) and np.isnan(value):
        return None
    text = str(value).strip()
    if not text:
        return None
    parts = text.split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def _is_blank(value):
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def shift_minutes(start, end, config=None, warnings=None):
    """Paid minutes for one shift window; default shift when either end is missing."""
    config = config or UtilizationConfig()
    start_min, end_min = parse_clock(start), parse_clock(end)
    if start_min is None or end_min is None:
        bad = [v for v, parsed in ((start, start_min), (end, end_min)) if parsed is None and not _is_blank(v)]
        if bad and warnings is not None:
            warnings.append(
                f"Unparsable shift time {bad[0]!r}; using default {config.default_shift_minutes} min shift."
            )
        return config.default_shift_minutes
    if end_min < start_min:
        end_min += MINUTES_PER_DAY
    return end_min - start_min


def with_expected_runtime(df, config=None, warnings=None):
    """Add ``expected_runtime_minutes`` per log row."""
    config = config or UtilizationConfig()
    out = df.copy()
    out["expected_runtime_minutes"] = [
        shift_minutes(s, e, config, warnings)
        for s, e in zip(out["shift_start_time"], out["shift_end_time"])
    ]
    return out


def _positive_mean(series):
    """Mean of values > 0; NaN when there are none."""
    vals = series[series > 0]
    return float(vals.mean()) if len(vals) else np.nan


# ---------------------------------------------------------------------------
# Per-machine aggregation
# ---------------------------------------------------------------------------
def aggregate_utilization(machines, logs, config=None, days=1, warnings=None):
    """One MachineMetric per roster machine, in roster order.

    Machines with no log rows still appear with zero actual runtime and
    ``default_shift_minutes * days`` expected runtime.  Rows for machines not
    on the roster are ignored.
    """
    config = config or UtilizationConfig()
    df = with_expected_runtime(ensure_log_frame(logs, warnings), config, warnings)
    roster = machine_roster(machines)

    per_machine = {}
    if len(df) > 0:
        per_machine = (
            df.groupby("machine_id")
            .agg(
                expected=("expected_runtime_minutes", "sum"),
                actual=("actual_runtime_minutes", "sum"),
                output=("ok_quantity", "sum"),
                rejections=("total_rejection_quantity", "sum"),
                downtime=("total_downtime_minutes", "sum"),
                efficiency=("efficiency_percentage", _positive_mean),
                log_count=("actual_runtime_minutes", "count"),
            )
            .to_dict("index")
        )

    metrics = []
    for machine_id, name in roster:
        row = per_machine.get(machine_id)
        if row is None:
            expected = float(config.default_shift_minutes * max(int(days), 1))
            metrics.append(MachineMetric(
                machine_id=machine_id,
                machine_name=name,
                expected_runtime=expected,
                actual_runtime=0.0,
                utilization_pct=0.0,
                avg_efficiency=None,
                display_cap_pct=config.display_cap_pct,
            ))
            continue

        expected = float(row["expected"])
        actual = float(row["actual"])
        efficiency = row["efficiency"]
        metrics.append(MachineMetric(
            machine_id=machine_id,
            machine_name=name,
            expected_runtime=expected,
            actual_runtime=actual,
            utilization_pct=safe_pct(actual, expected, ndigits=2),
            avg_efficiency=None if pd.isna(efficiency) else round_half_up(efficiency, 1),
            total_output=float(row["output"]),
            total_rejections=float(row["rejections"]),
            total_downtime=float(row["downtime"]),
            log_count=int(row["log_count"]),
            display_cap_pct=config.display_cap_pct,
        ))
    return metrics


def metrics_frame(metrics):
    """MachineMetric list as a DataFrame (adds the display-capped utilization)."""
    columns = [
        "machine_id", "machine_name", "expected_runtime", "actual_runtime",
        "utilization_pct", "display_utilization_pct", "avg_efficiency",
        "total_output", "total_rejections", "total_downtime", "log_count", "is_idle",
    ]
    rows = []
    for m in metrics:
        rec = asdict(m)
        rec.pop("display_cap_pct")
        rec["display_utilization_pct"] = m.display_utilization_pct
        rec["is_idle"] = m.is_idle
        rows.append(rec)
    return pd.DataFrame(rows, columns=columns)


def average_utilization(metrics):
    """Mean of raw (uncapped) utilization across machines; 0 for no machines."""
    if not metrics:
        return 0.0
    return round_half_up(sum(m.utilization_pct for m in metrics) / len(metrics), 2)


# ---------------------------------------------------------------------------
# Range summaries
# ---------------------------------------------------------------------------
def _breakdown(df, key, columns_out):
    if len(df) == 0:
        return pd.DataFrame(columns=columns_out)
    out = (
        df.groupby(key, sort=True)
        .agg(
            total_output=("ok_quantity", "sum"),
            total_target=("target_quantity", "sum"),
            total_rejections=("total_rejection_quantity", "sum"),
            total_downtime_minutes=("total_downtime_minutes", "sum"),
            total_runtime_minutes=("actual_runtime_minutes", "sum"),
            avg_efficiency=("efficiency_percentage", _positive_mean),
            log_count=("machine_id", "count"),
        )
        .reset_index()
    )
    denom = out["total_output"] + out["total_rejections"]
    out["rejection_pct"] = np.where(
        denom > 0, out["total_rejections"] / denom.where(denom > 0, 1) * 100, 0.0
    ).round(1)
    out["avg_efficiency"] = out["avg_efficiency"].fillna(0).round(1)
    return out[columns_out]


def daily_breakdown(logs, warnings=None):
    """Output, rejections, downtime and efficiency per log date."""
    df = ensure_log_frame(logs, warnings)
    df = df[df["log_date"].notna()]
    cols = ["log_date", "total_output", "total_target", "total_rejections", "rejection_pct",
            "total_downtime_minutes", "total_runtime_minutes", "avg_efficiency", "log_count"]
    return _breakdown(df, "log_date", cols)


def shift_breakdown(logs, warnings=None):
    """Same measures per shift label (missing shift reads 'Unknown')."""
    df = ensure_log_frame(logs, warnings)
    cols = ["shift", "total_output", "total_target", "total_rejections", "rejection_pct",
            "total_downtime_minutes", "total_runtime_minutes", "avg_efficiency", "log_count"]
    return _breakdown(df, "shift", cols)


def production_summary(logs, warnings=None):
    """Headline production KPIs for the range."""
    df = ensure_log_frame(logs, warnings)
    total_output = float(df["ok_quantity"].sum())
    total_rejections = float(df["total_rejection_quantity"].sum())
    efficiency = _positive_mean(df["efficiency_percentage"])
    return {
        "total_output": total_output,
        "total_target": float(df["target_quantity"].sum()),
        "total_rejections": total_rejections,
        "rejection_rate": safe_pct(total_rejections, total_output + total_rejections),
        "overall_efficiency": 0.0 if pd.isna(efficiency) else round_half_up(efficiency, 1),
        "total_downtime_minutes": float(df["total_downtime_minutes"].sum()),
        "total_runtime_minutes": float(df["actual_runtime_minutes"].sum()),
        "log_count": int(len(df)),
    }


def capacity_summary(logs, config=None, warnings=None):
    """Paid capacity vs productive runtime across all machines in the range."""
    config = config or UtilizationConfig()
    df = with_expected_runtime(ensure_log_frame(logs, warnings), config, warnings)

    paid = float(df["expected_runtime_minutes"].sum())
    productive = float(df["actual_runtime_minutes"].sum())
    downtime = float(df["total_downtime_minutes"].sum())
    active_paid = paid - downtime

    shift_lower = df["shift"].str.lower()
    all_machines = set(df["machine_id"])
    active_machines = set(df.loc[df["actual_runtime_minutes"] > 0, "machine_id"])

    return {
        "total_manned_shifts": int(shift_lower.isin(["day", "night"]).sum()),
        "day_shifts": int((shift_lower == "day").sum()),
        "night_shifts": int((shift_lower == "night").sum()),
        "paid_capacity_minutes": paid,
        "productive_runtime_minutes": productive,
        "downtime_minutes": downtime,
        "active_paid_capacity_minutes": active_paid,
        "idle_minutes": max(active_paid - productive, 0.0),
        "active_machines": len(active_machines),
        "inactive_machines": len(all_machines - active_machines),
        "utilization_pct": min(safe_pct(productive, paid), config.display_cap_pct),
    }
