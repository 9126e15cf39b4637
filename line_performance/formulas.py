"""
Metric formulas. Pure functions with no side effects.

Every ratio goes through safe_div, so a zero, missing or non-finite
denominator yields 0 instead of raising or returning NaN/inf.
"""

import logging
import math
from typing import Iterable, Sequence

from .config import (
    DEFAULT_QUALITY_PROXY,
    OEE_BENCHMARK_FLOOR,
    OEE_BENCHMARKS,
    OEE_DEFAULT_RATING,
    OEE_RATINGS,
    OT_HOUR_NORMALISATION,
    OT_LABOR_RATE,
    RECENT_TREND_WINDOW,
    REGULAR_HOURS_PER_HEAD,
    REGULAR_LABOR_RATE,
    SCHEDULED_MINUTES_PER_SHIFT,
    TREND_BAND,
)
from .models import PerformanceRecord

logger = logging.getLogger(__name__)


def _finite(value: float | None) -> float:
    if value is None:
        return 0.0
    value = float(value)
    return value if math.isfinite(value) else 0.0


def safe_div(numerator: float | None, denominator: float | None) -> float:
    """numerator / denominator, or 0 when the denominator is unusable."""
    num = _finite(numerator)
    den = _finite(denominator)
    if den == 0:
        return 0.0
    return _finite(num / den)


# ---------------------------------------------------------------------------
# Labour and throughput
# ---------------------------------------------------------------------------

def used_labor_hours(no_ot_manpower: float, ot_manpower: float, ot_hours: float) -> float:
    """Regular hours for every head plus OT hours normalised by 1.5."""
    regular = (_finite(no_ot_manpower) + _finite(ot_manpower)) * REGULAR_HOURS_PER_HEAD
    overtime = safe_div(_finite(ot_manpower) * _finite(ot_hours), OT_HOUR_NORMALISATION)
    return regular + overtime


def efficiency(output_hours: float, used_hours: float) -> float:
    """Return output hours / used hours as a ratio (1.0 == 100 %)."""
    return safe_div(output_hours, used_hours)


def plan_completion(actual: float, plan: float) -> float:
    """Return actual output as a percentage of plan."""
    return safe_div(actual, plan) * 100


def cph(circuit_output: float, used_hours: float) -> float:
    """Circuits per used man-hour."""
    return safe_div(circuit_output, used_hours)


def absent_rate(absent: float, manpower: float) -> float:
    return safe_div(absent, manpower) * 100


def separation_rate(separated: float, manpower: float) -> float:
    return safe_div(separated, manpower) * 100


def manpower_metrics(manpower: int, absent: int, separated: int) -> dict:
    """Effective/available headcount and manning rate (percent)."""
    effective = manpower - absent
    available = effective - separated
    return {
        "effective_manpower": effective,
        "available_manpower": available,
        "manning_rate": safe_div(available, manpower) * 100,
    }


# ---------------------------------------------------------------------------
# OEE
# ---------------------------------------------------------------------------

def oee_components(
    downtime_minutes: float,
    actual: float,
    plan: float,
    quality_proxy: float | None = None,
    scheduled_minutes: float = SCHEDULED_MINUTES_PER_SHIFT,
) -> dict[str, float]:
    """Compute availability, performance, quality and OEE (all percent).

    Parameters
    ----------
    downtime_minutes : Minutes lost during the shift.
    actual : Units produced.
    plan : Units planned. When 0, actual output is used as the ideal.
    quality_proxy : Line utilisation standing in for measured quality;
        DEFAULT_QUALITY_PROXY when None.
    scheduled_minutes : Scheduled shift length.

    Returns
    -------
    dict with availability, performance, quality, oee.
    """
    scheduled = _finite(scheduled_minutes)
    availability = max(safe_div(scheduled - _finite(downtime_minutes), scheduled) * 100, 0.0)

    ideal = _finite(plan) if _finite(plan) > 0 else _finite(actual)
    performance = min(safe_div(actual, ideal) * 100, 100.0)

    quality = DEFAULT_QUALITY_PROXY if quality_proxy is None else _finite(quality_proxy)

    oee = _finite(availability * performance * quality / 10000)
    return {
        "availability": availability,
        "performance": performance,
        "quality": quality,
        "oee": oee,
    }


def oee_rating(oee: float) -> str:
    for threshold, label in OEE_RATINGS:
        if oee >= threshold:
            return label
    return OEE_DEFAULT_RATING


def benchmark_oee(oee: float) -> dict:
    """Place an OEE value against the industry benchmark ladder."""
    category = OEE_BENCHMARK_FLOOR
    for label, threshold in sorted(OEE_BENCHMARKS.items(), key=lambda kv: -kv[1]):
        if oee >= threshold:
            category = label
            break
    return {
        "oee": oee,
        "category": category,
        "gap_to_world_class": max(OEE_BENCHMARKS["world_class"] - oee, 0.0),
        "gap_to_excellent": max(OEE_BENCHMARKS["excellent"] - oee, 0.0),
    }


# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------

def cost_metrics(record: PerformanceRecord) -> dict[str, float]:
    """Labour and overhead cost for one record plus cost per unit."""
    regular = record.no_ot_manpower * REGULAR_HOURS_PER_HEAD * REGULAR_LABOR_RATE
    overtime = record.ot_manpower * _finite(record.ot_hours) * OT_LABOR_RATE
    total = (
        regular
        + overtime
        + _finite(record.maintenance_cost)
        + _finite(record.material_cost)
        + _finite(record.downtime_cost)
    )
    return {
        "regular_labor_cost": regular,
        "ot_labor_cost": overtime,
        "total_labor_cost": regular + overtime,
        "maintenance_cost": _finite(record.maintenance_cost),
        "material_cost": _finite(record.material_cost),
        "downtime_cost": _finite(record.downtime_cost),
        "total_cost": total,
        "cost_per_unit": safe_div(total, record.actual_output),
    }


# ---------------------------------------------------------------------------
# Statistics and trends
# ---------------------------------------------------------------------------

def mean(values: Iterable[float]) -> float:
    values = [_finite(v) for v in values]
    return safe_div(sum(values), len(values))


def standard_deviation(values: Sequence[float]) -> float:
    """Sample standard deviation; 0 for fewer than two values."""
    n = len(values)
    if n < 2:
        return 0.0
    avg = mean(values)
    variance = sum((_finite(v) - avg) ** 2 for v in values) / (n - 1)
    return math.sqrt(variance)


def _label(recent: float, prior: float, band: float) -> str:
    if recent > prior + band:
        return "improving"
    if recent < prior - band:
        return "declining"
    return "stable"


def classify_trend(values: Sequence[float], band: float = TREND_BAND) -> str:
    """Compare the later half of a chronological series with the earlier half.

    The split point is floor(n/2): for [80, 90, 95] the earlier half is [80]
    and the later half is [90, 95]. Movement must exceed the band strictly.
    """
    if len(values) < 2:
        return "stable"
    mid = len(values) // 2
    return _label(mean(values[mid:]), mean(values[:mid]), band)


def classify_recent_trend(
    history: Sequence[float],
    band: float = TREND_BAND,
    window: int = RECENT_TREND_WINDOW,
) -> str:
    """Trend over a most-recent-first history: first `window` vs the rest."""
    if len(history) < 2:
        return "stable"
    recent = mean(history[:window])
    rest = history[window:]
    prior = mean(rest) if rest else recent
    return _label(recent, prior, band)


def compute_metrics(record: PerformanceRecord) -> dict[str, float]:
    """Derive every unscored metric for one record."""
    used = used_labor_hours(record.no_ot_manpower, record.ot_manpower, record.ot_hours)
    oee = oee_components(
        record.downtime_minutes,
        record.actual_output,
        record.plan,
        record.utilization_pct,
    )
    return {
        "used_labor_hours": used,
        "efficiency": efficiency(record.output_hours, used),
        "plan_completion": plan_completion(record.actual_output, record.plan),
        "cph": cph(record.circuit_output, used),
        "absent_rate": absent_rate(record.absent, record.manpower),
        "separation_rate": separation_rate(record.separated, record.manpower),
        **oee,
    }
