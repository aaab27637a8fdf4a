"""
End-to-end tests for analyze() and the command-line entry point.

Run: python -m pytest test_analyze.py -v
"""

import json

import pandas as pd
import pytest

from analyze import analyze, main, to_jsonable
from flow_analysis import BlockerCategory, HealthLevel, WorkOrderSnapshot
from review import UtilizationReview


NOW = pd.Timestamp("2025-01-15T18:00:00Z")


def _work_orders():
    def wo(wo_id, hours, material=True, first_piece=True, progress=50):
        return WorkOrderSnapshot(wo_id, NOW - pd.Timedelta(hours=hours), material, first_piece, progress)

    return [
        wo("W1", 100, material=False),
        wo("W2", 10, first_piece=False),
        wo("W3", 5, progress=0),
        wo("W4", 1),
    ]


def _logs():
    return [
        {"machine_id": "M1", "machine_name": "Lathe 1", "log_date": "2025-01-15", "shift": "Day",
         "shift_start_time": "08:30", "shift_end_time": "20:00", "actual_runtime_minutes": 517.5,
         "ok_quantity": 95, "total_rejection_quantity": 5, "total_downtime_minutes": 60,
         "efficiency_percentage": 88,
         "downtime_events": [{"reason": "Tool Change", "duration_minutes": 60}]},
        {"machine_id": "M2", "machine_name": "Mill 2", "log_date": "2025-01-15", "shift": "Day",
         "shift_start_time": "08:30", "shift_end_time": "20:00", "actual_runtime_minutes": 690,
         "ok_quantity": 200, "total_rejection_quantity": 0, "total_downtime_minutes": 0},
    ]


class TestAnalyze:

    def test_full_pass(self):
        result = analyze(_work_orders(), _logs(), now=NOW)
        flow = result["flow"]
        assert flow.total_active == 4
        assert flow.flowing_count == 1
        assert [i.work_order.wo_id for i in flow.buckets[BlockerCategory.MATERIAL_QC]] == ["W1"]
        # 3 of 4 blocked
        assert flow.health.level == HealthLevel.CRITICAL

        metrics = {m.machine_id: m for m in result["machine_metrics"]}
        assert metrics["M1"].utilization_pct == 75.0
        assert metrics["M2"].utilization_pct == 100.0
        assert result["average_utilization_pct"] == 87.5
        assert not result["machine_table"]["is_idle"].any()
        assert [t.category.value for t in result["downtime_pareto"]] == ["Tooling"]
        assert list(result["scrap_by_machine"]["machine_id"]) == ["M1", "M2"]
        assert result["review_summary"]["needing_review"] == 1
        assert result["capacity"]["paid_capacity_minutes"] == 1380

    def test_review_clears_machine(self):
        reviews = {"M1": UtilizationReview("M1", "2025-01-15", "Waiting for tools")}
        result = analyze([], _logs(), now=NOW, reviews=reviews)
        assert result["review_summary"]["needing_review"] == 0

    def test_roster_adds_idle_machine(self):
        result = analyze([], _logs(), machines=["M1", "M2", "M3"], now=NOW)
        idle = result["machine_metrics"][2]
        assert idle.machine_id == "M3"
        assert idle.utilization_pct == 0
        assert bool(result["machine_table"]["is_idle"].iloc[2])

    def test_previous_period_trend(self):
        previous = [{"machine_id": "M1", "actual_runtime_minutes": 400, "total_downtime_minutes": 40}]
        result = analyze([], _logs(), now=NOW, previous_logs=previous)
        assert result["downtime_trend_pct"] == 50.0

    def test_requires_now(self):
        with pytest.raises(ValueError):
            analyze([], _logs())

    def test_jsonable(self):
        out = to_jsonable(analyze(_work_orders(), _logs(), now=NOW))
        text = json.dumps(out, default=str)
        assert "machine_metrics" not in out
        assert json.loads(text)["flow"]["health"] == "critical"


class TestCli:

    def test_main_writes_json(self, tmp_path, capsys):
        wo_path = tmp_path / "work_orders.csv"
        pd.DataFrame([
            {"wo_id": "W1", "created_at": "2025-01-14T18:00:00Z", "material_qc_passed": True,
             "first_piece_qc_passed": True, "progress_pct": 0},
            {"wo_id": "W2", "created_at": "2025-01-15T12:00:00Z", "material_qc_passed": True,
             "first_piece_qc_passed": True, "progress_pct": 40},
        ]).to_csv(wo_path, index=False)
        logs_path = tmp_path / "logs.json"
        logs_path.write_text(json.dumps(_logs()), encoding="utf-8")
        out_path = tmp_path / "result.json"

        main([
            "--work-orders", str(wo_path),
            "--logs", str(logs_path),
            "--now", "2025-01-15T18:00:00Z",
            "--json-out", str(out_path),
        ])

        printed = capsys.readouterr().out
        assert "QUICK SUMMARY" in printed
        assert "Flow health: WARNING" in printed

        result = json.loads(out_path.read_text(encoding="utf-8"))
        assert result["flow"]["buckets"]["ready_not_started"][0]["aging_hours"] == 24
        assert {r["machine_id"] for r in result["machine_table"]} == {"M1", "M2"}

    def test_main_without_inputs_exits(self):
        with pytest.raises(SystemExit):
            main([])
