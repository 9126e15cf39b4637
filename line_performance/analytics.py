"""
Analysis builders over scored rows and quality measurements.

Each builder takes typed records, works on a pandas frame where grouping
helps, and returns plain dicts/lists ready for the report assembler.
Per-line results follow first-seen line order; values inside a line are in
date order.
"""

import logging
from collections import Counter
from typing import Iterable, Sequence

import pandas as pd

from .aggregation import records, to_frame
from .config import (
    BOTTLENECK_EFFICIENCY,
    BOTTLENECK_EFFICIENCY_CRITICAL,
    BOTTLENECK_FAILURE_CRITICAL,
    BOTTLENECK_FAILURE_RATE,
    BOTTLENECK_MANNING_CRITICAL,
    BOTTLENECK_MANNING_RATE,
    DAILY_COST_BUDGET,
    DOWNTIME_COST_SHARE_LIMIT,
    EFFICIENCY_STD_LIMIT,
    HIGH_ABSENT_RATE,
    HIGH_COST_PER_UNIT,
    HIGH_DOWNTIME_MINUTES,
    LOW_EFFICIENCY,
    LOW_PERFORMING_COMPLETION,
    LOW_PERFORMING_EFFICIENCY,
    OEE_COMPONENT_LIMITS,
    OT_COST_SHARE_LIMIT,
    STANDARD_COST_PER_UNIT,
)
from .formulas import (
    benchmark_oee,
    classify_trend,
    cost_metrics,
    manpower_metrics,
    mean,
    oee_rating,
    safe_div,
    standard_deviation,
)
from .models import ComputedMetrics, PerformanceRecord, QualityMeasurement

logger = logging.getLogger(__name__)


def _by_line(metrics: Sequence[ComputedMetrics]) -> dict[str, list[ComputedMetrics]]:
    """Group rows per line/shift (first-seen order), each sorted by date."""
    grouped: dict[str, list[ComputedMetrics]] = {}
    for m in metrics:
        grouped.setdefault(m.line_shift, []).append(m)
    return {line: sorted(rows, key=lambda m: m.date) for line, rows in grouped.items()}


def _day(m: ComputedMetrics) -> dict:
    return {
        "date": m.date.isoformat(),
        "efficiency": m.efficiency,
        "plan_completion": m.plan_completion,
        "actual_output": m.record.actual_output,
    }


# ---------------------------------------------------------------------------
# Line performance
# ---------------------------------------------------------------------------

def improvement_areas(rows: Sequence[ComputedMetrics]) -> list[str]:
    """Static checks over one line's rows."""
    areas = []
    if mean(m.efficiency for m in rows) < LOW_EFFICIENCY:
        areas.append("Low overall efficiency - consider training or process optimization")
    if mean(m.record.downtime_minutes for m in rows) > HIGH_DOWNTIME_MINUTES:
        areas.append("High machine downtime - preventive maintenance recommended")
    if standard_deviation([m.efficiency for m in rows]) > EFFICIENCY_STD_LIMIT:
        areas.append("Inconsistent performance - standardize procedures")
    return areas


def analyze_line_performance(metrics: Sequence[ComputedMetrics]) -> list[dict]:
    """Per line/shift averages, trends, variance and best/worst days.

    Efficiency trends are classified on the percentage scale so that the
    same five-point band applies to efficiency and plan completion.
    """
    analysis = []
    for line, rows in _by_line(metrics).items():
        efficiencies = [m.efficiency for m in rows]
        best = max(rows, key=lambda m: m.efficiency)
        worst = min(rows, key=lambda m: m.efficiency)
        analysis.append({
            "line_shift": line,
            "records": len(rows),
            "avg_efficiency": mean(efficiencies),
            "avg_completion": mean(m.plan_completion for m in rows),
            "efficiency_trend": classify_trend([e * 100 for e in efficiencies]),
            "completion_trend": classify_trend([m.plan_completion for m in rows]),
            "avg_variance": mean(m.record.plan - m.record.actual_output for m in rows),
            "efficiency_std": standard_deviation(efficiencies),
            "best_day": _day(best),
            "worst_day": _day(worst),
            "improvement_areas": improvement_areas(rows),
        })

    logger.info("Built line performance analysis with %d rows", len(analysis))
    return analysis


def production_performance(metrics: Sequence[ComputedMetrics]) -> dict:
    """Overall completion plus the lines flagged as low performing."""
    low_performing = []
    for m in metrics:
        issues = []
        if m.plan_completion < LOW_PERFORMING_COMPLETION:
            issues.append("Low plan completion")
        if m.efficiency < LOW_PERFORMING_EFFICIENCY:
            issues.append("Poor efficiency")
        if m.absent_rate > HIGH_ABSENT_RATE:
            issues.append("High absenteeism")
        if issues:
            low_performing.append({
                "line_shift": m.line_shift,
                "date": m.date.isoformat(),
                "plan_completion": m.plan_completion,
                "efficiency": m.efficiency,
                "issues": issues,
            })

    total_plan = sum(m.record.plan for m in metrics)
    total_actual = sum(m.record.actual_output for m in metrics)
    return {
        "total_plan": total_plan,
        "total_actual": total_actual,
        "overall_completion": safe_div(total_actual, total_plan) * 100,
        "avg_efficiency": mean(m.efficiency for m in metrics),
        "low_performing_lines": low_performing,
    }


# ---------------------------------------------------------------------------
# OEE
# ---------------------------------------------------------------------------

def oee_rows(metrics: Sequence[ComputedMetrics]) -> list[dict]:
    return [
        {
            "line_shift": m.line_shift,
            "date": m.date.isoformat(),
            "availability": m.availability,
            "performance": m.performance,
            "quality": m.quality,
            "oee": m.oee,
            "oee_rating": oee_rating(m.oee),
        }
        for m in metrics
    ]


def oee_summary(metrics: Sequence[ComputedMetrics]) -> dict:
    if not metrics:
        return {}
    oees = [m.oee for m in metrics]
    return {
        "avg_oee": mean(oees),
        "avg_availability": mean(m.availability for m in metrics),
        "avg_performance": mean(m.performance for m in metrics),
        "avg_quality": mean(m.quality for m in metrics),
        "best_oee": max(oees),
        "worst_oee": min(oees),
        "oee_std_dev": standard_deviation(oees),
    }


def oee_by_line(metrics: Sequence[ComputedMetrics]) -> list[dict]:
    out = []
    for line, rows in _by_line(metrics).items():
        out.append({
            "line_shift": line,
            "avg_oee": mean(m.oee for m in rows),
            "avg_availability": mean(m.availability for m in rows),
            "avg_performance": mean(m.performance for m in rows),
            "avg_quality": mean(m.quality for m in rows),
            "oee_trend": classify_trend([m.oee for m in rows]),
            "performance_trend": classify_trend([m.performance for m in rows]),
        })
    return out


def oee_by_date(metrics: Sequence[ComputedMetrics]) -> list[dict]:
    if not metrics:
        return []
    df = to_frame(metrics)
    daily = (
        df.groupby("date", sort=True)[["oee", "availability", "performance", "quality"]]
        .mean()
        .add_prefix("avg_")
        .reset_index()
    )
    return records(daily)


def oee_recommendations(metrics: Sequence[ComputedMetrics]) -> list[dict]:
    """One entry per row and component that falls below its limit."""
    checks = [
        ("availability", "Availability", "Low availability",
         "Reduce unplanned downtime through preventive maintenance"),
        ("performance", "Performance", "Low performance",
         "Optimize production speed and reduce minor stops"),
        ("quality", "Quality", "Low quality rate",
         "Improve quality control processes and reduce defects"),
        ("oee", "Overall OEE", "Low OEE",
         "Comprehensive improvement initiative required"),
    ]
    out = []
    for m in metrics:
        for field_name, component, issue, advice in checks:
            value = getattr(m, field_name)
            if value < OEE_COMPONENT_LIMITS[field_name]:
                out.append({
                    "line": m.line_shift,
                    "component": component,
                    "issue": f"{issue} ({value:.1f}%)",
                    "recommendation": advice,
                })
    return out


def oee_analysis(metrics: Sequence[ComputedMetrics]) -> dict:
    result = {
        "rows": oee_rows(metrics),
        "summary": oee_summary(metrics),
        "by_line": oee_by_line(metrics),
        "trends": oee_by_date(metrics),
        "benchmarking": [
            {"line_shift": m.line_shift, **benchmark_oee(m.oee)} for m in metrics
        ],
        "recommendations": oee_recommendations(metrics),
    }
    logger.info("Built OEE analysis with %d rows", len(result["rows"]))
    return result


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------

def quality_summary(measurements: Sequence[QualityMeasurement]) -> dict:
    total = len(measurements)
    conforming = sum(1 for q in measurements if q.is_conforming)
    return {
        "total_measurements": total,
        "conforming_measurements": conforming,
        "yield_rate": safe_div(conforming, total) * 100,
        "defect_rate": safe_div(total - conforming, total) * 100,
    }


def defect_frequency(measurements: Iterable[QualityMeasurement]) -> dict[str, int]:
    """Non-conforming defect descriptions, most frequent first."""
    counts = Counter(
        q.defect_description for q in measurements
        if not q.is_conforming and q.defect_description
    )
    return dict(counts.most_common())


def checkpoint_performance(measurements: Sequence[QualityMeasurement]) -> list[dict]:
    checkpoints: dict[str, dict] = {}
    for q in measurements:
        entry = checkpoints.setdefault(q.checkpoint_id, {
            "checkpoint_id": q.checkpoint_id,
            "name": q.checkpoint_name,
            "process_category": q.process_category,
            "total": 0,
            "conforming": 0,
        })
        entry["total"] += 1
        entry["conforming"] += int(q.is_conforming)
    for entry in checkpoints.values():
        entry["yield"] = safe_div(entry["conforming"], entry["total"]) * 100
        entry["failure_rate"] = 100 - entry["yield"] if entry["total"] else 0.0
    return list(checkpoints.values())


def root_causes(measurements: Sequence[QualityMeasurement]) -> list[dict]:
    """Non-conforming results grouped by (process category, defect)."""
    patterns: dict[tuple[str, str], dict] = {}
    for q in measurements:
        if q.is_conforming:
            continue
        entry = patterns.setdefault((q.process_category, q.defect_description), {
            "process_category": q.process_category,
            "defect": q.defect_description,
            "frequency": 0,
            "affected_checkpoints": [],
        })
        entry["frequency"] += 1
        checkpoint = q.checkpoint_name or q.checkpoint_id
        if checkpoint not in entry["affected_checkpoints"]:
            entry["affected_checkpoints"].append(checkpoint)
    return sorted(patterns.values(), key=lambda p: p["frequency"], reverse=True)


def corrective_action_effectiveness(measurements: Sequence[QualityMeasurement]) -> list[dict]:
    """Share of defects that disappeared after each corrective action.

    Measurements are taken in the order supplied. Non-conformances before
    the action's first appearance are compared with those after it; an
    action with no prior defects counts as 100 % effective.
    """
    out = []
    seen = set()
    for q in measurements:
        action = q.corrective_action
        if not action or action in seen:
            continue
        seen.add(action)

        before = after = 0
        found = False
        for other in measurements:
            if other.corrective_action == action:
                found = True
                continue
            if not other.is_conforming:
                if found:
                    after += 1
                else:
                    before += 1
        effectiveness = 100.0 if before == 0 else (before - after) / before * 100
        out.append({"action": action, "effectiveness": effectiveness})
    return out


def quality_trend(measurements: Sequence[QualityMeasurement]) -> list[dict]:
    dated = [q for q in measurements if q.date is not None]
    if not dated:
        return []
    df = pd.DataFrame({
        "date": [q.date.isoformat() for q in dated],
        "conforming": [int(q.is_conforming) for q in dated],
    })
    daily = df.groupby("date", sort=True)["conforming"].agg(["size", "sum"]).reset_index()
    daily["yield_rate"] = daily["sum"] / daily["size"] * 100
    daily["defect_rate"] = 100 - daily["yield_rate"]
    return records(daily[["date", "yield_rate", "defect_rate"]])


def quality_analysis(measurements: Sequence[QualityMeasurement]) -> dict:
    measurements = list(measurements)
    result = {
        "summary": quality_summary(measurements),
        "defects": defect_frequency(measurements),
        "by_checkpoint": checkpoint_performance(measurements),
        "root_causes": root_causes(measurements),
        "corrective_actions": corrective_action_effectiveness(measurements),
        "trends": quality_trend(measurements),
    }
    logger.info("Built quality analysis with %d measurements", len(measurements))
    return result


# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------

def cost_rows(performance: Iterable[PerformanceRecord]) -> list[dict]:
    return [
        {
            "line_shift": r.line_shift,
            "date": r.date.isoformat(),
            "actual_output": r.actual_output,
            **cost_metrics(r),
        }
        for r in performance
    ]


def cost_summary(rows: Sequence[dict]) -> dict:
    if not rows:
        return {}
    totals = {
        key: sum(r[key] for r in rows)
        for key in ("total_cost", "total_labor_cost", "maintenance_cost",
                    "material_cost", "downtime_cost", "actual_output")
    }
    total = totals["total_cost"]
    return {
        "total_costs": total,
        "total_labor_costs": totals["total_labor_cost"],
        "total_maintenance_costs": totals["maintenance_cost"],
        "total_material_costs": totals["material_cost"],
        "total_downtime_costs": totals["downtime_cost"],
        "total_output": totals["actual_output"],
        "average_cost_per_unit": safe_div(total, totals["actual_output"]),
        "labor_cost_percentage": safe_div(totals["total_labor_cost"], total) * 100,
        "maintenance_cost_percentage": safe_div(totals["maintenance_cost"], total) * 100,
        "material_cost_percentage": safe_div(totals["material_cost"], total) * 100,
        "downtime_cost_percentage": safe_div(totals["downtime_cost"], total) * 100,
    }


def cost_per_unit_by_line(rows: Sequence[dict]) -> list[dict]:
    lines: dict[str, list[dict]] = {}
    for r in rows:
        lines.setdefault(r["line_shift"], []).append(r)
    out = []
    for line, items in lines.items():
        items = sorted(items, key=lambda r: r["date"])
        values = [r["cost_per_unit"] for r in items]
        out.append({
            "line_shift": line,
            "total_costs": sum(r["total_cost"] for r in items),
            "total_output": sum(r["actual_output"] for r in items),
            "avg_cost_per_unit": safe_div(
                sum(r["total_cost"] for r in items), sum(r["actual_output"] for r in items)
            ),
            "min_cost_per_unit": min(values),
            "max_cost_per_unit": max(values),
            "cost_per_unit_trend": classify_trend(values),
        })
    return out


def cost_variances(rows: Sequence[dict], standard: float = STANDARD_COST_PER_UNIT) -> list[dict]:
    out = []
    for r in rows:
        variance = r["cost_per_unit"] - standard
        out.append({
            "line_shift": r["line_shift"],
            "date": r["date"],
            "actual_cost_per_unit": r["cost_per_unit"],
            "standard_cost_per_unit": standard,
            "variance": variance,
            "variance_percentage": safe_div(variance, standard) * 100,
            "variance_type": "unfavorable" if variance > 0 else "favorable",
        })
    return out


def cost_opportunities(rows: Sequence[dict]) -> list[dict]:
    checks = [
        ("Overtime Management",
         lambda r: safe_div(r["ot_labor_cost"], r["total_labor_cost"]) > OT_COST_SHARE_LIMIT,
         "Optimize staffing levels to reduce overtime requirements"),
        ("Downtime Reduction",
         lambda r: r["downtime_cost"] > r["total_cost"] * DOWNTIME_COST_SHARE_LIMIT,
         "Implement preventive maintenance program"),
        ("Cost Per Unit",
         lambda r: r["cost_per_unit"] > HIGH_COST_PER_UNIT,
         "Review process efficiency and material usage"),
    ]
    out = []
    for area, flagged, advice in checks:
        affected = [r["line_shift"] for r in rows if flagged(r)]
        if affected:
            out.append({
                "area": area,
                "recommendation": advice,
                "affected_lines": list(dict.fromkeys(affected)),
            })
    return out


def budget_compliance(rows: Sequence[dict], daily_budget: float = DAILY_COST_BUDGET) -> list[dict]:
    return [
        {
            "line_shift": r["line_shift"],
            "date": r["date"],
            "daily_budget": daily_budget,
            "actual_cost": r["total_cost"],
            "budget_variance": r["total_cost"] - daily_budget,
            "budget_variance_percentage": safe_div(r["total_cost"] - daily_budget, daily_budget) * 100,
            "is_over_budget": r["total_cost"] > daily_budget,
        }
        for r in rows
    ]


def cost_analysis(performance: Sequence[PerformanceRecord]) -> dict:
    rows = cost_rows(performance)
    result = {
        "rows": rows,
        "summary": cost_summary(rows),
        "by_line": cost_per_unit_by_line(rows),
        "variances": cost_variances(rows),
        "opportunities": cost_opportunities(rows),
        "budget_compliance": budget_compliance(rows),
    }
    logger.info("Built cost analysis with %d rows", len(rows))
    return result


# ---------------------------------------------------------------------------
# Bottlenecks
# ---------------------------------------------------------------------------

def detect_bottlenecks(
    metrics: Sequence[ComputedMetrics],
    quality: Sequence[QualityMeasurement] = (),
) -> dict:
    """Flag efficiency, manpower and quality-checkpoint bottlenecks."""
    found = []

    for m in metrics:
        if m.record.plan > 0 and m.efficiency < BOTTLENECK_EFFICIENCY:
            found.append({
                "type": "efficiency",
                "line": m.line_shift,
                "leader": m.record.leader,
                "severity": "critical" if m.efficiency < BOTTLENECK_EFFICIENCY_CRITICAL else "high",
                "description": f"Very low efficiency ({m.efficiency * 100:.1f}%) detected",
                "impact": {
                    "efficiency_percentage": m.efficiency * 100,
                    "actual_output": m.record.actual_output,
                    "production_loss": round(m.record.plan * (1 - m.efficiency)),
                },
            })

        manning = manpower_metrics(m.record.manpower, m.record.absent, m.record.separated)
        if m.record.manpower > 0 and manning["manning_rate"] < BOTTLENECK_MANNING_RATE:
            found.append({
                "type": "manpower",
                "line": m.line_shift,
                "leader": m.record.leader,
                "severity": (
                    "critical" if manning["manning_rate"] < BOTTLENECK_MANNING_CRITICAL else "high"
                ),
                "description": f"Insufficient manpower coverage ({manning['manning_rate']:.1f}%)",
                "impact": {
                    "total_mp": m.record.manpower,
                    "absent": m.record.absent,
                    "separated": m.record.separated,
                    **manning,
                },
            })

    for checkpoint in checkpoint_performance(quality):
        if checkpoint["failure_rate"] > BOTTLENECK_FAILURE_RATE:
            found.append({
                "type": "quality",
                "line": checkpoint["process_category"],
                "severity": (
                    "critical" if checkpoint["failure_rate"] > BOTTLENECK_FAILURE_CRITICAL else "high"
                ),
                "description": f"High failure rate at {checkpoint['name'] or checkpoint['checkpoint_id']}",
                "impact": {
                    "checkpoint": checkpoint["checkpoint_id"],
                    "total_checks": checkpoint["total"],
                    "failures": checkpoint["total"] - checkpoint["conforming"],
                    "failure_rate": checkpoint["failure_rate"],
                },
            })

    by_type: dict[str, dict] = {}
    for b in found:
        entry = by_type.setdefault(b["type"], {"count": 0, "critical_count": 0})
        entry["count"] += 1
        entry["critical_count"] += int(b["severity"] == "critical")

    return {
        "total": len(found),
        "bottlenecks": found,
        "critical_count": sum(1 for b in found if b["severity"] == "critical"),
        "high_count": sum(1 for b in found if b["severity"] == "high"),
        "by_type": by_type,
    }
