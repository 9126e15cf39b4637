"""
Composite performance scoring.

Each scored metric is mapped through its breakpoint table in
config.SCORE_BREAKPOINTS; the sub-scores are summed into total_score, which
is then classified via RATING_THRESHOLDS.
"""

import logging
from datetime import date
from typing import Iterable

from .config import DEFAULT_RATING, RATING_THRESHOLDS, SCORE_BREAKPOINTS
from .formulas import safe_div, compute_metrics
from .models import ComputedMetrics, PerformanceRecord

logger = logging.getLogger(__name__)


def rate_score(metric: str, value: float, tables: dict[str, dict] = SCORE_BREAKPOINTS) -> float:
    """Look up the sub-score for one metric value.

    The raw value is multiplied by the table's scale, then matched against
    segments in ascending upper-bound order; the first segment whose bound
    is >= the scaled value supplies (intercept, slope). Result is floored
    at 0 and rounded to one decimal.
    """
    table = tables[metric]
    x = value * table["scale"]
    for upper, intercept, slope in table["breakpoints"]:
        if x <= upper:
            return round(max(intercept + slope * x, 0.0), 1)
    return 0.0


def classify_rating(
    total_score: float,
    thresholds: list[tuple[float, str]] = RATING_THRESHOLDS,
    default: str = DEFAULT_RATING,
) -> str:
    for threshold, label in thresholds:
        if total_score >= threshold:
            return label
    return default


def score_record(
    record: PerformanceRecord,
    max_cph: float | None,
    tables: dict[str, dict] = SCORE_BREAKPOINTS,
) -> ComputedMetrics:
    """Compute metrics and sub-scores for one record.

    Parameters
    ----------
    record : The observation to score.
    max_cph : Highest CPH recorded on the record's date across all lines.
        A missing or zero maximum scores CPH as 0.
    tables : Breakpoint tables; defaults to config.SCORE_BREAKPOINTS.
    """
    metrics = compute_metrics(record)

    cph_ratio = safe_div(metrics["cph"], max_cph)
    subscores = {
        "absent_rate_score": rate_score("absent_rate", metrics["absent_rate"], tables),
        "separation_rate_score": rate_score("separation_rate", metrics["separation_rate"], tables),
        "plan_completion_score": rate_score("plan_completion", metrics["plan_completion"], tables),
        "cph_score": rate_score("cph", cph_ratio, tables) if cph_ratio > 0 else 0.0,
    }
    total = round(sum(subscores.values()), 1)

    return ComputedMetrics(
        record=record,
        **metrics,
        **subscores,
        total_score=total,
        performance_rating=classify_rating(total),
    )


def max_cph_by_date(records: Iterable[PerformanceRecord]) -> dict[date, float]:
    """Highest CPH per date across every supplied record."""
    best: dict[date, float] = {}
    for record in records:
        value = compute_metrics(record)["cph"]
        if value > best.get(record.date, 0.0):
            best[record.date] = value
        else:
            best.setdefault(record.date, 0.0)
    return best


def score_records(
    records: Iterable[PerformanceRecord],
    tables: dict[str, dict] = SCORE_BREAKPOINTS,
    day_max: dict[date, float] | None = None,
) -> list[ComputedMetrics]:
    """Score a batch, normalising CPH against each date's own maximum.

    Parameters
    ----------
    records : Observations to score.
    tables : Breakpoint tables; defaults to config.SCORE_BREAKPOINTS.
    day_max : Per-date maximum CPH across every line. Pass it when records
        is a filtered subset of the plant; otherwise it is taken from
        records themselves.
    """
    records = list(records)
    if not records:
        logger.warning("score_records called with no records")
        return []

    if day_max is None:
        day_max = max_cph_by_date(records)
    scored = [score_record(r, day_max.get(r.date), tables) for r in records]
    logger.info("Scored %d records across %d dates", len(scored), len(day_max))
    return scored
