"""
Optimisation suggestion generation.

Rules run per line/shift (needing SUGGESTION_MIN_RECORDS rows) and per
quality checkpoint (needing SUGGESTION_MIN_MEASUREMENTS measurements).
Every suggestion starts in status "pending"; review happens elsewhere.
"""

import logging
from typing import Sequence

from .config import (
    DEFECT_SAVING_PER_UNIT,
    EFFICIENCY_SAVING_PER_UNIT,
    MANPOWER_SAVING_PER_MHR,
    REGULAR_HOURS_PER_HEAD,
    SUGGESTION_CRITICAL_DOWNTIME,
    SUGGESTION_CRITICAL_EFFICIENCY,
    SUGGESTION_CRITICAL_PRODUCTIVITY,
    SUGGESTION_CRITICAL_UNDERPERFORMANCE,
    SUGGESTION_CRITICAL_YIELD,
    SUGGESTION_HIGH_DOWNTIME,
    SUGGESTION_LOW_EFFICIENCY,
    SUGGESTION_LOW_PRODUCTIVITY,
    SUGGESTION_LOW_YIELD,
    SUGGESTION_MIN_MEASUREMENTS,
    SUGGESTION_MIN_RECORDS,
    SUGGESTION_STATUSES,
    SUGGESTION_TARGET_DOWNTIME,
    SUGGESTION_TARGET_EFFICIENCY,
    SUGGESTION_TARGET_PRODUCTIVITY,
    SUGGESTION_TARGET_YIELD,
    SUGGESTION_UNDERPERFORMANCE_COMPLETION,
    SUGGESTION_UNDERPERFORMANCE_RATE,
)
from .formulas import mean, safe_div
from .loaders.sources import WriteSink
from .models import ComputedMetrics, OptimizationSuggestion, QualityMeasurement

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Savings estimates
# ---------------------------------------------------------------------------

def efficiency_cost_savings(avg_efficiency: float, rows: Sequence[ComputedMetrics]) -> float:
    """Value of the output gap if the line ran at full efficiency."""
    total_output = sum(m.record.actual_output for m in rows)
    target_output = safe_div(total_output, avg_efficiency)
    if target_output == 0:
        return 0.0
    return round((target_output - total_output) * EFFICIENCY_SAVING_PER_UNIT, 2)


def quality_cost_savings(current_yield: float, measurement_count: int) -> float:
    defect_rate = (100 - current_yield) / 100
    target_rate = (100 - SUGGESTION_TARGET_YIELD) / 100
    return round((defect_rate - target_rate) * measurement_count * DEFECT_SAVING_PER_UNIT, 2)


def regular_mhr(rows: Sequence[ComputedMetrics]) -> float:
    return sum(
        (m.record.no_ot_manpower + m.record.ot_manpower) * REGULAR_HOURS_PER_HEAD for m in rows
    )


def manpower_cost_savings(productivity: float, rows: Sequence[ComputedMetrics]) -> float:
    improvement = safe_div(SUGGESTION_TARGET_PRODUCTIVITY - productivity, productivity)
    return round(regular_mhr(rows) * improvement * MANPOWER_SAVING_PER_MHR, 2)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _efficiency_suggestion(line: str, rows: Sequence[ComputedMetrics]) -> OptimizationSuggestion | None:
    avg = mean(m.efficiency for m in rows)
    if avg >= SUGGESTION_LOW_EFFICIENCY:
        return None
    return OptimizationSuggestion(
        suggestion_type="process_improvement",
        title=f"Improve Efficiency for {line}",
        description=(
            f"Average efficiency of {line} is {avg * 100:.1f}%, which is below target. "
            "Consider operator training or process optimization."
        ),
        target_line_shift=line,
        priority="high" if avg < SUGGESTION_CRITICAL_EFFICIENCY else "medium",
        estimated_impact={
            "efficiency_improvement": round((SUGGESTION_TARGET_EFFICIENCY - avg) * 100, 1),
            "cost_savings": efficiency_cost_savings(avg, rows),
        },
        implementation_effort="moderate",
        required_resources=["training_program", "process_analysis", "equipment_maintenance"],
        success_metrics=["efficiency > 85%", "reduced_variation", "consistent_output"],
    )


def _downtime_suggestion(line: str, rows: Sequence[ComputedMetrics]) -> OptimizationSuggestion | None:
    avg = mean(m.record.downtime_minutes for m in rows)
    if avg <= SUGGESTION_HIGH_DOWNTIME:
        return None
    return OptimizationSuggestion(
        suggestion_type="maintenance_scheduling",
        title=f"Reduce Downtime for {line}",
        description=(
            f"Average downtime is {avg:.1f} minutes per shift. "
            "Implement preventive maintenance program."
        ),
        target_line_shift=line,
        priority="critical" if avg > SUGGESTION_CRITICAL_DOWNTIME else "high",
        estimated_impact={
            "downtime_reduction": round(safe_div(avg - SUGGESTION_TARGET_DOWNTIME, avg) * 100, 1),
            "availability_improvement": 15,
        },
        implementation_effort="moderate",
        required_resources=["maintenance_team", "spare_parts", "training"],
        success_metrics=["downtime < 30 minutes", "availability > 90%", "reduced emergency repairs"],
    )


def _productivity_suggestion(line: str, rows: Sequence[ComputedMetrics]) -> OptimizationSuggestion | None:
    productivity = safe_div(sum(m.record.actual_output for m in rows), regular_mhr(rows))
    if productivity >= SUGGESTION_LOW_PRODUCTIVITY:
        return None
    return OptimizationSuggestion(
        suggestion_type="resource_optimization",
        title=f"Optimize Manpower for {line}",
        description=(
            f"Current productivity is {productivity:.1f} units per MHR. "
            "Resource optimization can improve efficiency."
        ),
        target_line_shift=line,
        priority="high" if productivity < SUGGESTION_CRITICAL_PRODUCTIVITY else "medium",
        estimated_impact={
            "productivity_improvement": round(
                (SUGGESTION_TARGET_PRODUCTIVITY - productivity) / SUGGESTION_TARGET_PRODUCTIVITY * 100, 1
            ),
            "manpower_optimization": "15-20%",
            "cost_reduction": manpower_cost_savings(productivity, rows),
        },
        implementation_effort="moderate",
        required_resources=["workforce_analysis", "skill_assessment", "training", "process_balancing"],
        success_metrics=["productivity > 50 units/MHR", "balanced workload", "reduced overtime"],
    )


def _underperformance_suggestion(line: str, rows: Sequence[ComputedMetrics]) -> OptimizationSuggestion | None:
    short_days = sum(1 for m in rows if m.plan_completion < SUGGESTION_UNDERPERFORMANCE_COMPLETION)
    rate = safe_div(short_days, len(rows)) * 100
    if rate <= SUGGESTION_UNDERPERFORMANCE_RATE:
        return None
    return OptimizationSuggestion(
        suggestion_type="process_improvement",
        title=f"Resolve Bottleneck at {line}",
        description=(
            f"Line {line} underperforms {rate:.1f}% of the time. "
            "Bottleneck analysis and resolution needed."
        ),
        target_line_shift=line,
        priority="critical" if rate > SUGGESTION_CRITICAL_UNDERPERFORMANCE else "high",
        estimated_impact={
            "bottleneck_resolution": round(rate * 0.7, 1),
            "throughput_improvement": "20-30%",
            "plan_completion_improvement": "15-25%",
        },
        implementation_effort="difficult",
        required_resources=[
            "process_engineering", "equipment_upgrade", "root_cause_analysis", "cross_functional_team",
        ],
        success_metrics=["plan_completion > 95%", "reduced bottlenecks", "consistent performance"],
    )


def _quality_suggestions(measurements: Sequence[QualityMeasurement]) -> list[OptimizationSuggestion]:
    checkpoints: dict[str, list[QualityMeasurement]] = {}
    for q in measurements:
        checkpoints.setdefault(q.checkpoint_id, []).append(q)

    out = []
    for checkpoint_id, items in checkpoints.items():
        if len(items) < SUGGESTION_MIN_MEASUREMENTS:
            continue
        yield_rate = safe_div(sum(1 for q in items if q.is_conforming), len(items)) * 100
        if yield_rate >= SUGGESTION_LOW_YIELD:
            continue
        name = items[0].checkpoint_name or checkpoint_id
        out.append(OptimizationSuggestion(
            suggestion_type="quality_enhancement",
            title=f"Improve Quality at {name}",
            description=(
                f"Yield rate is {yield_rate:.1f}% for {name} in {items[0].process_category}. "
                "Quality improvement initiative needed."
            ),
            priority="critical" if yield_rate < SUGGESTION_CRITICAL_YIELD else "high",
            estimated_impact={
                "yield_improvement": round(SUGGESTION_TARGET_YIELD - yield_rate, 1),
                "defect_reduction": round((100 - yield_rate) * 0.5, 1),
                "cost_savings": quality_cost_savings(yield_rate, len(items)),
            },
            implementation_effort="moderate",
            required_resources=["quality_team", "training", "process_validation", "measurement_equipment"],
            success_metrics=["yield > 98%", "reduced variation", "consistent measurements"],
        ))
    return out


def _maintenance_programme() -> OptimizationSuggestion:
    return OptimizationSuggestion(
        suggestion_type="maintenance_scheduling",
        title="Implement Preventive Maintenance Program",
        description=(
            "No systematic maintenance data available. "
            "Implement comprehensive preventive maintenance program."
        ),
        priority="medium",
        estimated_impact={
            "downtime_reduction": "40-60%",
            "equipment_reliability": "25-35%",
            "maintenance_cost_reduction": "15-20%",
        },
        implementation_effort="moderate",
        required_resources=[
            "maintenance_planning", "CMMS_system", "trained_technicians", "spare_parts_inventory",
        ],
        success_metrics=[
            "planned_maintenance > 80%", "emergency_repairs < 10%", "equipment_availability > 95%",
        ],
    )


_LINE_RULES = (
    _efficiency_suggestion,
    _downtime_suggestion,
    _productivity_suggestion,
    _underperformance_suggestion,
)


def generate_suggestions(
    metrics: Sequence[ComputedMetrics],
    quality: Sequence[QualityMeasurement] = (),
    maintenance_history: Sequence[dict] = (),
) -> list[OptimizationSuggestion]:
    """Run every suggestion rule over the supplied window.

    Parameters
    ----------
    metrics : Scored rows, typically the last 30 days.
    quality : Checkpoint measurements for the same window.
    maintenance_history : Maintenance schedule rows; when empty a preventive
        maintenance programme is suggested.
    """
    lines: dict[str, list[ComputedMetrics]] = {}
    for m in metrics:
        lines.setdefault(m.line_shift, []).append(m)

    suggestions = []
    for line, rows in lines.items():
        if len(rows) < SUGGESTION_MIN_RECORDS:
            logger.debug("Skipping %s: only %d records", line, len(rows))
            continue
        for rule in _LINE_RULES:
            suggestion = rule(line, rows)
            if suggestion is not None:
                suggestions.append(suggestion)

    suggestions.extend(_quality_suggestions(quality))
    if not maintenance_history:
        suggestions.append(_maintenance_programme())

    logger.info("Built %d optimization suggestions", len(suggestions))
    return suggestions


def store_suggestions(suggestions: Sequence[OptimizationSuggestion], sink: WriteSink) -> int:
    """Insert suggestions through the sink; returns how many were stored."""
    stored = 0
    for suggestion in suggestions:
        try:
            sink.insert_optimization_suggestion(suggestion)
        except Exception:
            logger.exception("Could not store suggestion %r", suggestion.title)
            continue
        stored += 1
    return stored


def set_status(suggestion: OptimizationSuggestion, status: str) -> OptimizationSuggestion:
    if status not in SUGGESTION_STATUSES:
        raise ValueError(f"Unknown suggestion status: {status!r}")
    suggestion.status = status
    return suggestion
