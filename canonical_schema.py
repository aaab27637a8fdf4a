"""Canonical dataframe validation/coercion for the analytics boundary."""

from __future__ import annotations

import json

import numpy as np
import pandas as pd

from data_normalization import coerce_numerics, normalize_machine_id, smart_rename
from flow_analysis import WorkOrderSnapshot, progress_from_output
from shared import REJECTION_FIELDS

_REQUIRED_LOG = ["machine_id", "actual_runtime_minutes"]

_LOG_DEFAULTS = {
    "total_downtime_minutes": 0,
    "ok_quantity": np.nan,
    "actual_quantity": 0,
    "target_quantity": 0,
    "total_rejection_quantity": 0,
}

_REQUIRED_WO = ["wo_id", "created_at"]

_TRUE_STRINGS = {"true", "t", "yes", "y", "1", "passed", "pass", "ok"}


def _parse_events(value, warnings, row_label):
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, float) and np.isnan(value):
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            warnings.append(f"{row_label}: `downtime_events` is not valid JSON; ignored.")
            return []
        if isinstance(parsed, list):
            return parsed
    warnings.append(f"{row_label}: `downtime_events` is not a list; ignored.")
    return []


def validate_and_coerce_log_frame(logs: pd.DataFrame):
    """Ensure production-log rows satisfy the aggregators' frame contract.

    Returns ``(frame, warnings)``.  Raises ValueError when the frame cannot be
    used at all (missing machine or runtime columns).
    """
    warnings: list[str] = []
    df = smart_rename(logs.copy())

    missing = [c for c in _REQUIRED_LOG if c not in df.columns]
    if missing:
        raise ValueError(f"Production log missing required columns: {', '.join(missing)}")

    df["machine_id"] = df["machine_id"].map(normalize_machine_id)
    blank = df["machine_id"].isna()
    if blank.any():
        warnings.append(f"Dropped {int(blank.sum())} log row(s) with blank `machine_id`.")
        df = df[~blank].copy()

    for col, default in _LOG_DEFAULTS.items():
        if col not in df.columns:
            df[col] = default

    # OK quantity falls back to actual quantity when not logged
    df["ok_quantity"] = pd.to_numeric(df["ok_quantity"], errors="coerce")
    df["ok_quantity"] = df["ok_quantity"].fillna(pd.to_numeric(df["actual_quantity"], errors="coerce"))

    bad_runtime = pd.to_numeric(df["actual_runtime_minutes"], errors="coerce").isna() & df["actual_runtime_minutes"].notna()
    if bad_runtime.any():
        warnings.append(f"{int(bad_runtime.sum())} row(s) had non-numeric `actual_runtime_minutes`; treated as 0.")
    df = coerce_numerics(df)

    for col in REJECTION_FIELDS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)

    # Efficiency stays NaN when absent so it drops out of averages
    if "efficiency_percentage" in df.columns:
        df["efficiency_percentage"] = pd.to_numeric(df["efficiency_percentage"], errors="coerce")
    else:
        df["efficiency_percentage"] = np.nan

    for col in ["shift_start_time", "shift_end_time"]:
        if col not in df.columns:
            df[col] = None

    if "shift" in df.columns:
        df["shift"] = df["shift"].fillna("").astype(str).str.strip().replace("", "Unknown")
    else:
        df["shift"] = "Unknown"

    if "log_date" in df.columns:
        parsed = pd.to_datetime(df["log_date"], errors="coerce")
        n_bad = int((parsed.isna() & df["log_date"].notna()).sum())
        if n_bad:
            warnings.append(f"{n_bad} row(s) had unparsable `log_date`.")
        df["log_date"] = parsed.dt.strftime("%Y-%m-%d")
    else:
        df["log_date"] = None

    if "downtime_events" in df.columns:
        events = [_parse_events(v, warnings, f"Log row {i}") for i, v in zip(df.index, df["downtime_events"])]
    else:
        events = [[] for _ in range(len(df))]
    df["downtime_events"] = pd.Series(events, index=df.index, dtype=object)

    if "machine_name" not in df.columns:
        df["machine_name"] = df["machine_id"]

    return df.reset_index(drop=True), warnings


def _as_bool(value):
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return False
    if isinstance(value, (int, float, np.integer, np.floating)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def _num(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if np.isnan(number) else number


def _clean(value):
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def work_orders_from_frame(df: pd.DataFrame, warnings=None) -> list[WorkOrderSnapshot]:
    """Build work-order snapshots from a flat table.

    Progress comes from ``progress_pct`` when present, otherwise from
    ``ok_qty`` against ``quantity``.  Missing QC gate columns read as not
    passed.
    """
    warnings = warnings if warnings is not None else []
    missing = [c for c in _REQUIRED_WO if c not in df.columns]
    if missing:
        raise ValueError(f"Work-order table missing required columns: {', '.join(missing)}")

    snapshots = []
    for record in df.to_dict("records"):
        wo_id = str(record["wo_id"]).strip()
        quantity = _num(record.get("quantity"))
        quantity = 0 if quantity is None else int(quantity)

        progress = _num(record.get("progress_pct"))
        if progress is None:
            progress = progress_from_output(_num(record.get("ok_qty")) or 0, quantity)
        else:
            clipped = min(max(progress, 0.0), 100.0)
            if clipped != progress:
                warnings.append(f"WO {wo_id}: progress {progress} outside 0-100; clipped.")
            progress = clipped

        for gate in ("material_qc_passed", "first_piece_qc_passed"):
            if gate not in record:
                warnings.append(f"WO {wo_id}: `{gate}` missing; treated as not passed.")

        status = _clean(record.get("external_status"))
        snapshots.append(WorkOrderSnapshot(
            wo_id=wo_id,
            created_at=_clean(record.get("created_at")),
            material_qc_passed=_as_bool(record.get("material_qc_passed")),
            first_piece_qc_passed=_as_bool(record.get("first_piece_qc_passed")),
            progress_pct=progress,
            external_status=str(status) if status is not None else None,
            customer=_clean(record.get("customer")),
            item_code=_clean(record.get("item_code")),
            quantity=quantity,
            due_date=_clean(record.get("due_date")),
        ))
    return snapshots
