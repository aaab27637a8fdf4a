"""
Shared constants and utilities for the Flow & Utilization Analyzer
==================================================================
Single source of truth for downtime reason categories, rejection fields,
business thresholds, and related helpers used across flow_analysis.py,
utilization.py, downtime.py and review.py.
"""

from enum import Enum

import pandas as pd

# ---------------------------------------------------------------------------
# Shift / runtime defaults
# ---------------------------------------------------------------------------
# 11.5 hour paid shift (08:30 - 20:00)
DEFAULT_SHIFT_MINUTES = 690
MINUTES_PER_DAY = 24 * 60

# Machine-days below this utilization need a documented reason
DEFAULT_REVIEW_THRESHOLD = 80.0
DISPLAY_CAP_PCT = 100.0

# ---------------------------------------------------------------------------
# Flow health thresholds
# ---------------------------------------------------------------------------
CRITICAL_BLOCKED_RATIO = 0.5
CRITICAL_AGED_COUNT = 3
WARNING_BLOCKED_RATIO = 0.25
WARNING_BUCKET_SHARE = 0.6

# Aging bands (hours since the work order was created)
MEDIUM_AGING_HOURS = 24
HIGH_AGING_HOURS = 72


# ---------------------------------------------------------------------------
# Downtime reason categories
# ---------------------------------------------------------------------------
class DowntimeCategory(str, Enum):
    MATERIAL = "Material"
    MACHINE = "Machine"
    POWER = "Power"
    QC = "QC"
    OPERATOR = "Operator"
    TOOLING = "Tooling"
    OTHER = "Other"


FALLBACK_CATEGORY = DowntimeCategory.OTHER

DOWNTIME_REASONS = {
    # Material-related
    "Material Not Available": DowntimeCategory.MATERIAL,
    "Material Shortage": DowntimeCategory.MATERIAL,
    "Wrong Material": DowntimeCategory.MATERIAL,
    "Material Quality Issue": DowntimeCategory.MATERIAL,
    # Machine-related
    "Machine Repair": DowntimeCategory.MACHINE,
    "Machine Breakdown": DowntimeCategory.MACHINE,
    "Machine Maintenance": DowntimeCategory.MACHINE,
    "Machine Calibration": DowntimeCategory.MACHINE,
    "Machine Warmup": DowntimeCategory.MACHINE,
    # Power-related
    "No Power": DowntimeCategory.POWER,
    "Power Fluctuation": DowntimeCategory.POWER,
    "Compressor Issue": DowntimeCategory.POWER,
    # QC-related
    "Quality Problem": DowntimeCategory.QC,
    "QC Hold": DowntimeCategory.QC,
    "First Piece Approval": DowntimeCategory.QC,
    "Inspection Delay": DowntimeCategory.QC,
    "Rework": DowntimeCategory.QC,
    # Operator-related
    "No Operator": DowntimeCategory.OPERATOR,
    "Operator Training": DowntimeCategory.OPERATOR,
    "Operator Shifted to Other Work": DowntimeCategory.OPERATOR,
    "Tea Break": DowntimeCategory.OPERATOR,
    "Lunch Break": DowntimeCategory.OPERATOR,
    "Operator Fatigue": DowntimeCategory.OPERATOR,
    # Tooling-related
    "Tool Change": DowntimeCategory.TOOLING,
    "Tool Not Available": DowntimeCategory.TOOLING,
    "Tool Damage": DowntimeCategory.TOOLING,
    "Tool Setup": DowntimeCategory.TOOLING,
    "Insert Change": DowntimeCategory.TOOLING,
    # Other / general
    "Job Setting": DowntimeCategory.OTHER,
    "Setting Change": DowntimeCategory.OTHER,
    "Cleaning": DowntimeCategory.OTHER,
    "Program Upload": DowntimeCategory.OTHER,
    "Shift Handover": DowntimeCategory.OTHER,
    "Other": DowntimeCategory.OTHER,
}


def build_reason_lookup(table):
    """Lower-cased reason -> category index for case-insensitive matching."""
    return {str(reason).strip().lower(): DowntimeCategory(cat) for reason, cat in table.items()}


def classify_reason(reason, lookup):
    """Classify a free-text downtime reason into its parent category."""
    if reason is None or (not isinstance(reason, str) and pd.isna(reason)):
        return FALLBACK_CATEGORY
    key = str(reason).strip().lower()
    if not key:
        return FALLBACK_CATEGORY
    return lookup.get(key, FALLBACK_CATEGORY)


# ---------------------------------------------------------------------------
# Rejection fields logged per production entry
# ---------------------------------------------------------------------------
REJECTION_FIELDS = {
    "rejection_dent": "Dent",
    "rejection_dimension": "Dimension",
    "rejection_face_not_ok": "Face Not OK",
    "rejection_forging_mark": "Forging Mark",
    "rejection_lining": "Lining",
    "rejection_material_not_ok": "Material Not OK",
    "rejection_previous_setup_fault": "Previous Setup Fault",
    "rejection_scratch": "Scratch",
    "rejection_setting": "Setting",
    "rejection_tool_mark": "Tool Mark",
}


def round_half_up(value, ndigits=0):
    """Round like a spreadsheet does (2.5 -> 3), not banker's rounding."""
    factor = 10 ** ndigits
    scaled = abs(float(value)) * factor
    rounded = float(int(scaled + 0.5)) / factor
    return rounded if value >= 0 else -rounded


def safe_pct(numerator, denominator, ndigits=1):
    """numerator / denominator * 100, or 0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return round_half_up(numerator / denominator * 100, ndigits)
