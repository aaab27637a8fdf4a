"""
Unit tests for downtime categorization, Pareto and scrap contribution.

Run: python -m pytest test_downtime.py -v
"""

import json

import pandas as pd
import pytest

from downtime import (
    category_for_reason,
    downtime_by_machine,
    downtime_by_reason,
    downtime_by_shift,
    downtime_pareto,
    downtime_trend,
    explode_downtime_events,
    pareto_frame,
    rejection_pareto,
    scrap_by_machine,
)
from shared import DOWNTIME_REASONS, DowntimeCategory
from utilization import aggregate_utilization


class TestCategoryForReason:

    def test_known_reasons(self):
        assert category_for_reason("Tool Change") == DowntimeCategory.TOOLING
        assert category_for_reason("No Power") == DowntimeCategory.POWER
        assert category_for_reason("QC Hold") == DowntimeCategory.QC

    def test_case_and_whitespace_insensitive(self):
        assert category_for_reason("  machine breakdown ") == DowntimeCategory.MACHINE

    @pytest.mark.parametrize("reason", ["Alien invasion", "", None, float("nan")])
    def test_unknown_falls_back_to_other(self, reason):
        assert category_for_reason(reason) == DowntimeCategory.OTHER

    def test_custom_table(self):
        table = {"Alien invasion": DowntimeCategory.OPERATOR}
        assert category_for_reason("alien invasion", table) == DowntimeCategory.OPERATOR
        # A custom table replaces the built-in one
        assert category_for_reason("Tool Change", table) == DowntimeCategory.OTHER

    def test_every_built_in_reason_keeps_its_category(self):
        for reason, category in DOWNTIME_REASONS.items():
            assert category_for_reason(reason.upper()) == category


# =====================================================================
# downtime_pareto
# =====================================================================

class TestDowntimePareto:

    def test_sorted_and_percent_of_total(self):
        events = [("Tool Change", 30), ("Machine Breakdown", 90), ("Insert Change", 30), ("Mystery", 50)]
        pareto = downtime_pareto(events)
        assert [t.category for t in pareto] == [
            DowntimeCategory.MACHINE, DowntimeCategory.TOOLING, DowntimeCategory.OTHER,
        ]
        assert pareto[0].minutes == 90
        assert pareto[0].hours == 1.5
        assert pareto[0].percent == 45.0
        assert pareto[1].minutes == 60

    def test_zero_categories_omitted(self):
        pareto = downtime_pareto([("No Power", 0), ("QC Hold", 10)])
        assert [t.category for t in pareto] == [DowntimeCategory.QC]
        assert pareto[0].percent == 100.0

    def test_ties_follow_category_order(self):
        pareto = downtime_pareto([("Tool Change", 20), ("No Power", 20), ("Material Shortage", 20)])
        assert [t.category for t in pareto] == [
            DowntimeCategory.MATERIAL, DowntimeCategory.POWER, DowntimeCategory.TOOLING,
        ]

    def test_empty(self):
        assert downtime_pareto([]) == []
        assert len(pareto_frame([])) == 0

    def test_event_dicts_and_cumulative(self):
        events = [{"reason": "Tool Setup", "duration_minutes": 75}, {"reason": "Cleaning", "minutes": 25}]
        df = pareto_frame(downtime_pareto(events))
        assert list(df["category"]) == ["Tooling", "Other"]
        assert list(df["cumulative_pct"]) == [75.0, 100.0]


# =====================================================================
# Event-level breakdowns from production logs
# =====================================================================

class TestEventBreakdowns:

    def _logs(self):
        return pd.DataFrame([
            {"machine_id": "M1", "machine_name": "Lathe 1", "shift": "Day", "log_date": "2025-01-15",
             "actual_runtime_minutes": 500,
             "downtime_events": json.dumps([{"reason": "Tool Change", "duration_minutes": 40},
                                            {"reason": "Tea Break", "duration_minutes": 15}])},
            {"machine_id": "M2", "machine_name": "Mill 2", "shift": "Night", "log_date": "2025-01-15",
             "actual_runtime_minutes": 300,
             "downtime_events": [{"reason": "Machine Breakdown", "duration_minutes": 120}]},
            {"machine_id": "M3", "machine_name": "Press", "shift": "Day", "log_date": "2025-01-15",
             "actual_runtime_minutes": 400, "downtime_events": "{not json"},
        ])

    def test_explode(self):
        warnings = []
        events = explode_downtime_events(self._logs(), warnings)
        assert len(events) == 3
        assert list(events["machine_id"]) == ["M1", "M1", "M2"]
        assert any("not valid JSON" in w for w in warnings)

    def test_by_reason(self):
        df = downtime_by_reason(explode_downtime_events(self._logs()), paid_capacity=1750)
        assert list(df["reason"]) == ["Machine Breakdown", "Tool Change", "Tea Break"]
        assert df.iloc[0]["category"] == "Machine"
        assert df.iloc[0]["pct_of_capacity"] == 6.9

    def test_by_machine(self):
        df = downtime_by_machine(explode_downtime_events(self._logs()))
        assert list(df["machine_id"]) == ["M2", "M1"]
        assert df.iloc[1]["top_reason"] == "Tool Change"
        assert df.iloc[1]["occurrences"] == 2

    def test_by_shift(self):
        df = downtime_by_shift(explode_downtime_events(self._logs()))
        assert list(df["shift"]) == ["Night", "Day"]
        assert df.iloc[1]["minutes"] == 55

    def test_trend(self):
        assert downtime_trend(120, 100) == 20.0
        assert downtime_trend(50, 0) == 0.0


# =====================================================================
# Scrap
# =====================================================================

class TestScrap:

    def test_scrap_pct_and_order(self):
        df = scrap_by_machine([("M1", 5, 95), ("M2", 20, 180), ("M3", 0, 0)])
        assert list(df["machine_id"]) == ["M2", "M1", "M3"]
        assert list(df["scrap_pct"]) == [10.0, 5.0, 0.0]

    def test_from_machine_metrics(self):
        logs = [{"machine_id": "M1", "actual_runtime_minutes": 100, "ok_quantity": 75,
                 "total_rejection_quantity": 25}]
        df = scrap_by_machine(aggregate_utilization(["M1"], logs))
        assert df.iloc[0]["scrap_pct"] == 25.0

    def test_rejection_pareto(self):
        logs = [
            {"machine_id": "M1", "actual_runtime_minutes": 100, "total_rejection_quantity": 10,
             "rejection_dent": 6, "rejection_scratch": 4},
            {"machine_id": "M2", "actual_runtime_minutes": 100, "total_rejection_quantity": 5,
             "rejection_scratch": 5},
        ]
        df = rejection_pareto(logs)
        assert list(df["reason"]) == ["Scratch", "Dent"]
        assert list(df["count"]) == [9, 6]
        assert df.iloc[0]["percent"] == 60.0
