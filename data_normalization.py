"""Shared dataframe normalization utilities for production-log ingestion."""

import re

import numpy as np
import pandas as pd


# Maps normalized header names found in exports to internal column names.
HEADER_TO_INTERNAL = {
    # Identity
    "machine": "machine_id",
    "machineid": "machine_id",
    "machinecode": "machine_id",
    "machinename": "machine_name",
    "name": "machine_name",
    "wo": "wo_id",
    "woid": "wo_id",
    "workorder": "wo_id",
    "workorderid": "wo_id",
    "operator": "operator_id",
    "operatorid": "operator_id",
    # Date / shift
    "date": "log_date",
    "logdate": "log_date",
    "shift": "shift",
    "shiftstart": "shift_start_time",
    "shiftstarttime": "shift_start_time",
    "starttime": "shift_start_time",
    "shiftend": "shift_end_time",
    "shiftendtime": "shift_end_time",
    "endtime": "shift_end_time",
    # Runtime / downtime
    "runtime": "actual_runtime_minutes",
    "runtimemin": "actual_runtime_minutes",
    "runtimeminutes": "actual_runtime_minutes",
    "actualruntime": "actual_runtime_minutes",
    "actualruntimeminutes": "actual_runtime_minutes",
    "downtime": "total_downtime_minutes",
    "downtimemin": "total_downtime_minutes",
    "totaldowntimeminutes": "total_downtime_minutes",
    "downtimeevents": "downtime_events",
    # Output / quality
    "okqty": "ok_quantity",
    "okquantity": "ok_quantity",
    "actualqty": "actual_quantity",
    "actualquantity": "actual_quantity",
    "targetqty": "target_quantity",
    "targetquantity": "target_quantity",
    "rejections": "total_rejection_quantity",
    "rejectionqty": "total_rejection_quantity",
    "totalrejectionquantity": "total_rejection_quantity",
    "efficiency": "efficiency_percentage",
    "efficiencypct": "efficiency_percentage",
    "efficiencypercentage": "efficiency_percentage",
}

NUMERIC_COLUMNS = {
    "actual_runtime_minutes", "total_downtime_minutes", "ok_quantity",
    "actual_quantity", "target_quantity", "total_rejection_quantity",
}


def normalize_col(name):
    """Normalize a column header for fuzzy matching."""
    s = str(name).lower().strip()
    return re.sub(r"[^a-z0-9]+", "", s)


def smart_rename(df):
    """Rename loosely-named export headers to internal column names.

    Columns already using an internal name are left alone; the first header
    that claims an internal name wins.
    """
    internal_names = set(HEADER_TO_INTERNAL.values())
    claimed = {c for c in df.columns if c in internal_names}
    header_map = {}
    for col in df.columns:
        if col in internal_names:
            continue
        internal = HEADER_TO_INTERNAL.get(normalize_col(col))
        if internal and internal not in claimed:
            header_map[col] = internal
            claimed.add(internal)
    return df.rename(columns=header_map)


def normalize_machine_id(value):
    """Canonical text form of a machine id; None when blank.

    Integral floats (ids read from a column with gaps) lose their '.0' so
    they match the same id given as an int.
    """
    if value is None:
        return None
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return None
        if float(value).is_integer():
            value = int(value)
    elif isinstance(value, np.integer):
        value = int(value)
    text = str(value).strip()
    return text or None


def coerce_numerics(df, columns=NUMERIC_COLUMNS):
    """Ensure columns that should be numeric are numeric; blanks become 0."""
    for col in columns:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    return df
