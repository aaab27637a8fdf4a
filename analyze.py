"""
Production Flow + Machine Utilization Analyzer
one pass over work orders and production logs: blocker buckets, flow health,
machine utilization, downtime Pareto, scrap and utilization review status.

Usage:
  python analyze.py --work-orders work_orders.csv --logs production_logs.csv
  python analyze.py --logs logs.json --machines machines.csv --reviews reviews.csv \
      --now 2025-01-15T18:00 --days 1 --json-out result.json
"""

from __future__ import annotations

import argparse
import json
import os

import pandas as pd

from analytics_config import AnalyticsConfig, load_config
from canonical_schema import work_orders_from_frame
from downtime import (
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
from flow_analysis import evaluate_flow
from review import review_summary, review_table, reviews_from_frame
from utilization import (
    aggregate_utilization,
    average_utilization,
    capacity_summary,
    daily_breakdown,
    ensure_log_frame,
    metrics_frame,
    production_summary,
    shift_breakdown,
)


def analyze(work_orders, logs, machines=None, now=None, config=None, reviews=None,
            days=1, previous_logs=None):
    """Run every analytics component over one already-fetched snapshot.

    ``machines`` defaults to every machine seen in the logs.  ``reviews`` maps
    machine_id -> UtilizationReview for the reviewed date.  Returns a dict of
    plain values and DataFrames; nothing is written anywhere.
    """
    config = config or AnalyticsConfig()
    if now is None:
        raise ValueError("analyze() needs an explicit reference time 'now'")
    warnings: list[str] = []

    flow = evaluate_flow(work_orders or [], now, config.flow)
    warnings.extend(flow.warnings)

    log_df = ensure_log_frame(logs, warnings)
    if machines is None:
        machines = (
            log_df[["machine_id", "machine_name"]].drop_duplicates("machine_id").to_dict("records")
            if len(log_df) else []
        )

    metrics = aggregate_utilization(machines, log_df, config.utilization, days=days, warnings=warnings)
    events = explode_downtime_events(log_df)
    pareto = downtime_pareto(events, config.reason_categories)
    capacity = capacity_summary(log_df, config.utilization)
    reviews_df = review_table(metrics, reviews, config.utilization)

    current_downtime = float(log_df["total_downtime_minutes"].sum())
    trend = 0.0
    if previous_logs is not None:
        prev_df = ensure_log_frame(previous_logs, warnings)
        trend = downtime_trend(current_downtime, float(prev_df["total_downtime_minutes"].sum()))

    return {
        "flow": flow,
        "machine_metrics": metrics,
        "machine_table": metrics_frame(metrics),
        "average_utilization_pct": average_utilization(metrics),
        "downtime_pareto": pareto,
        "downtime_pareto_table": pareto_frame(pareto),
        "downtime_by_reason": downtime_by_reason(
            events, config.reason_categories, paid_capacity=capacity["paid_capacity_minutes"]
        ),
        "downtime_by_machine": downtime_by_machine(events),
        "downtime_by_shift": downtime_by_shift(events),
        "downtime_trend_pct": trend,
        "scrap_by_machine": scrap_by_machine(metrics),
        "rejection_pareto": rejection_pareto(log_df),
        "daily": daily_breakdown(log_df),
        "shifts": shift_breakdown(log_df),
        "production": production_summary(log_df),
        "capacity": capacity,
        "review_table": reviews_df,
        "review_summary": review_summary(reviews_df, config.utilization.review_threshold),
        "warnings": warnings,
    }


def to_jsonable(results):
    """Flatten analyze() output into JSON-serialisable structures."""
    out = {}
    for key, value in results.items():
        if isinstance(value, pd.DataFrame):
            out[key] = json.loads(value.to_json(orient="records"))
        elif key == "flow":
            out[key] = value.to_record()
        elif key == "machine_metrics":
            continue
        elif key == "downtime_pareto":
            out[key] = [
                {"category": t.category.value, "minutes": t.minutes, "hours": t.hours, "percent": t.percent}
                for t in value
            ]
        else:
            out[key] = value
    return out


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------
def read_table(path):
    """CSV or JSON (list of records) into a DataFrame."""
    path = os.path.abspath(path)
    if not os.path.exists(path):
        raise SystemExit(f"Error: file not found: {path}")
    print(f"Reading: {path}")
    if path.lower().endswith(".json"):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("records", [data])
        return pd.DataFrame(data)
    return pd.read_csv(path)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Production flow + machine utilization analyzer")
    p.add_argument("--work-orders", help="Active work orders (CSV/JSON)")
    p.add_argument("--logs", help="Production log rows for the date range (CSV/JSON)")
    p.add_argument("--machines", help="Machine roster (CSV/JSON); defaults to machines in the logs")
    p.add_argument("--reviews", help="Utilization reviews (CSV/JSON)")
    p.add_argument("--previous-logs", help="Previous period logs for the downtime trend")
    p.add_argument("--config", help="JSON file with threshold / category overrides")
    p.add_argument("--now", help="Reference time (ISO); defaults to the current time")
    p.add_argument("--days", type=int, default=1, help="Days in the log range (idle machine capacity)")
    p.add_argument("--review-date", help="Only use reviews recorded for this date")
    p.add_argument("--json-out", help="Write the full result as JSON")
    return p


def main(argv=None) -> None:
    args = _build_parser().parse_args(argv)
    if not args.work_orders and not args.logs:
        raise SystemExit("Nothing to analyze: pass --work-orders and/or --logs")

    config = load_config(args.config)
    now = pd.Timestamp(args.now) if args.now else pd.Timestamp.now(tz="UTC")

    load_warnings: list[str] = []
    work_orders = []
    if args.work_orders:
        work_orders = work_orders_from_frame(read_table(args.work_orders), load_warnings)
    logs = read_table(args.logs) if args.logs else pd.DataFrame(columns=["machine_id", "actual_runtime_minutes"])
    machines = read_table(args.machines) if args.machines else None
    reviews = reviews_from_frame(read_table(args.reviews), args.review_date) if args.reviews else None
    previous = read_table(args.previous_logs) if args.previous_logs else None

    print(f"\n{'='*60}")
    print(f"  Analyzing {len(work_orders)} work order(s), {len(logs)} log row(s) as of {now:%Y-%m-%d %H:%M}")
    print(f"{'='*60}")

    results = analyze(work_orders, logs, machines, now=now, config=config, reviews=reviews,
                      days=args.days, previous_logs=previous)
    results["warnings"] = load_warnings + results["warnings"]

    _print_summary(results, config)

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            json.dump(to_jsonable(results), f, indent=2, default=str)
        print(f"\nFull result: {os.path.abspath(args.json_out)}")


def _print_summary(results, config):
    """Print console summary for the analysis."""
    print("\n" + "=" * 60)
    print("QUICK SUMMARY")
    print("=" * 60)

    flow = results["flow"]
    print(f"\n  Flow health: {flow.health.level.value.upper()}")
    for reason in flow.health.reasons:
        print(f"    - {reason}")
    for category, items in flow.buckets.items():
        if items:
            oldest = items[0]
            print(f"    {category.value}: {len(items)} (oldest {oldest.work_order.wo_id}, {oldest.aging_display})")
    print(f"    flowing: {flow.flowing_count}")

    cap = results["capacity"]
    print(f"\n  Utilization: {cap['utilization_pct']:.1f}% "
          f"({cap['productive_runtime_minutes']:,.0f} of {cap['paid_capacity_minutes']:,.0f} min)")
    print(f"  Machine average: {results['average_utilization_pct']:.2f}%")
    for m in results["machine_metrics"]:
        eff = f"{m.avg_efficiency:.1f}%" if m.avg_efficiency is not None else "n/a"
        idle = " (idle)" if m.is_idle else ""
        print(f"    {m.machine_name}: {m.display_utilization_pct:.1f}% util, efficiency {eff}{idle}")

    summary = results["review_summary"]
    print(f"\n  Below {config.utilization.review_threshold:g}%: {summary['below_threshold']} machine(s), "
          f"{summary['needing_review']} still need a reason")

    if results["downtime_pareto"]:
        print("\n  DOWNTIME BY CATEGORY:")
        for t in results["downtime_pareto"]:
            print(f"    {t.category.value}: {t.hours:.1f} h ({t.percent:.1f}%)")

    if results["warnings"]:
        print("\n  Data quality:")
        for w in results["warnings"]:
            print(f"    ! {w}")


if __name__ == "__main__":
    main()
