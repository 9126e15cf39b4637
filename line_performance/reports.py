"""
Report assembly: title, date-range subtitle, rows, summary block, extra
sections and rule-based recommendation strings.

Builders fetch from a row source, score and analyse the rows, then hand the
pieces to assemble_report(). A DataSourceError never escapes a builder; it
comes back as a Report whose `error` is set. Row dicts keep the key order
produced upstream because exporters use it for column headers.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable

from .aggregation import by_line_shift, aggregate, records, summarize
from .analytics import (
    analyze_line_performance,
    cost_analysis,
    detect_bottlenecks,
    oee_analysis,
    production_performance,
    quality_analysis,
)
from .config import (
    DATE_RANGE_PRESETS,
    LOW_EFFICIENCY,
    LOW_PLAN_COMPLETION,
    MAX_LOW_PERFORMING_LINES,
    POOR_EFFICIENCY,
    RECENT_TREND_HISTORY,
    REGULAR_HOURS_PER_HEAD,
    REPORT_DEFAULT_LOOKBACK_DAYS,
    REPORT_PERMISSIONS,
    REPORT_TITLES,
    SUGGESTION_LOW_YIELD,
    TREND_HISTORY_LOOKBACK_DAYS,
)
from .formulas import classify_recent_trend, mean, plan_completion, safe_div
from .loaders.sources import DataSourceError, RecordFilter, RowSource
from .models import ComputedMetrics, PerformanceRecord, Principal
from .scoring import max_cph_by_date, score_records

logger = logging.getLogger(__name__)


class PermissionDenied(PermissionError):
    """The principal's role may not generate the requested report."""


def authorize(principal: Principal, report_type: str) -> None:
    allowed = REPORT_PERMISSIONS.get(report_type)
    if allowed is None:
        raise ValueError(f"Unknown report type: {report_type!r}")
    if principal.role not in allowed:
        raise PermissionDenied(
            f"Role {principal.role!r} may not generate {report_type} reports"
        )


def resolve_date_range(preset: str, today: date | None = None) -> tuple[date, date]:
    """Translate a named range (see DATE_RANGE_PRESETS) into (from, to)."""
    today = today or date.today()
    if preset == "today":
        return today, today
    if preset == "last_7_days":
        return today - timedelta(days=6), today
    if preset == "last_30_days":
        return today - timedelta(days=29), today
    if preset == "this_month":
        return today.replace(day=1), today
    if preset == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return last_day.replace(day=1), last_day
    raise ValueError(f"Unknown date range {preset!r}; expected one of {DATE_RANGE_PRESETS}")


def _date_window(report_type, date_from, date_to, today) -> tuple[date, date]:
    date_to = date_to or today or date.today()
    date_from = date_from or date_to - timedelta(days=REPORT_DEFAULT_LOOKBACK_DAYS[report_type])
    return date_from, date_to


# ---------------------------------------------------------------------------
# Report object
# ---------------------------------------------------------------------------

@dataclass
class Report:
    report_type: str
    title: str
    subtitle: str
    generated_at: datetime
    generated_by: str
    data: list[dict] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, Any] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def columns(self) -> list[str]:
        return list(self.data[0].keys()) if self.data else []

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"title": self.title, "subtitle": self.subtitle, "error": self.error}
        return {
            "report_type": self.report_type,
            "title": self.title,
            "subtitle": self.subtitle,
            "generated_at": self.generated_at.isoformat(timespec="seconds"),
            "generated_by": self.generated_by,
            "data": self.data,
            "summary": self.summary,
            "sections": self.sections,
            "recommendations": self.recommendations,
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


def assemble_report(
    report_type: str,
    principal: Principal,
    date_from: date,
    date_to: date,
    data: list[dict],
    summary: dict,
    sections: dict | None = None,
    recommendations: list[str] | None = None,
    error: str | None = None,
) -> Report:
    return Report(
        report_type=report_type,
        title=REPORT_TITLES[report_type],
        subtitle=f"Date Range: {date_from.isoformat()} to {date_to.isoformat()}",
        generated_at=datetime.now(),
        generated_by=principal.username,
        data=data,
        summary=summary,
        sections=sections or {},
        recommendations=recommendations or [],
        error=error,
    )


def _failed(report_type, principal, date_from, date_to, exc: Exception) -> Report:
    logger.error("Could not build %s report: %s", report_type, exc)
    return assemble_report(
        report_type, principal, date_from, date_to, [], {}, error=str(exc)
    )


# ---------------------------------------------------------------------------
# Recommendation rules
# ---------------------------------------------------------------------------

def production_recommendations(summary: dict, production: dict) -> list[str]:
    recs = []
    if summary and summary["average_efficiency"] < LOW_EFFICIENCY:
        recs.append("Average efficiency below target - schedule operator training and review line balancing")
    if summary and production["overall_completion"] < LOW_PLAN_COMPLETION:
        recs.append("Overall production targets not being met - review capacity planning")
    low_lines = {row["line_shift"] for row in production["low_performing_lines"]}
    if len(low_lines) > MAX_LOW_PERFORMING_LINES:
        recs.append("Multiple lines showing poor performance - requires management intervention")
    return recs


def performance_recommendations(analysis: list[dict]) -> list[str]:
    recs = []
    for line in analysis:
        name = line["line_shift"]
        if line["avg_efficiency"] < POOR_EFFICIENCY:
            recs.append(f"{name}: Low efficiency - conduct root cause analysis and operator training")
        if line["avg_completion"] < LOW_PLAN_COMPLETION:
            recs.append(f"{name}: Poor plan completion - review production planning and resource allocation")
        if line["efficiency_trend"] == "declining":
            recs.append(f"{name}: Declining performance trend - implement daily performance monitoring")
    return recs


def oee_recommendation_strings(items: list[dict]) -> list[str]:
    recs = [f"{i['line']}: {i['issue']} - {i['recommendation']}" for i in items]
    return list(dict.fromkeys(recs))


def quality_recommendations(checkpoints: list[dict]) -> list[str]:
    problem = [c for c in checkpoints if c["yield"] < SUGGESTION_LOW_YIELD]
    if not problem:
        return []
    names = ", ".join(c["name"] or c["checkpoint_id"] for c in problem)
    return [
        f"Review quality procedures for identified problem areas ({names})",
        "Provide additional training for quality checkpoints",
    ]


def cost_recommendations(opportunities: list[dict]) -> list[str]:
    return [
        f"{o['area']}: {o['recommendation']} ({', '.join(o['affected_lines'])})"
        for o in opportunities
    ]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _plant_day_max(
    source: RowSource,
    date_from: date,
    date_to: date,
    filters: RecordFilter | None,
) -> dict[date, float] | None:
    """Per-date maximum CPH over every line, ignoring the line/shift filter.

    None when the fetch was unfiltered, so score_records derives it from
    the rows it is given.
    """
    if filters is None or not (filters.lines or filters.shifts):
        return None
    return max_cph_by_date(source.fetch_performance_records(date_from, date_to, None))


def _with_trend(scored: list[ComputedMetrics], history: list[PerformanceRecord]) -> list[dict]:
    """Production rows (newest first) each tagged with its recent trend."""
    prior: dict[str, list[PerformanceRecord]] = {}
    for record in sorted(history, key=lambda r: r.date, reverse=True):
        prior.setdefault(record.line_shift, []).append(record)

    rows = []
    ordered = sorted(scored, key=lambda m: m.line_shift)
    ordered = sorted(ordered, key=lambda m: m.date, reverse=True)
    for m in ordered:
        earlier = [r for r in prior.get(m.line_shift, []) if r.date < m.date]
        completions = [plan_completion(r.actual_output, r.plan) for r in earlier[:RECENT_TREND_HISTORY]]
        row = m.to_dict()
        row["performance_trend"] = classify_recent_trend(completions)
        rows.append(row)
    return rows


def production_summary_block(scored: list[ComputedMetrics]) -> dict:
    if not scored:
        return {}
    total_output = sum(m.record.actual_output for m in scored)
    total_plan = sum(m.record.plan for m in scored)
    return {
        "total_lines": len({m.line_shift for m in scored}),
        "total_output": total_output,
        "total_plan": total_plan,
        "overall_plan_completion": safe_div(total_output, total_plan) * 100,
        "average_efficiency": mean(m.efficiency for m in scored),
        "average_plan_completion": mean(m.plan_completion for m in scored),
        "total_mhr_used": sum(
            (m.record.no_ot_manpower + m.record.ot_manpower) * REGULAR_HOURS_PER_HEAD
            for m in scored
        ),
        "total_ot_hours": sum(m.record.ot_hours for m in scored),
    }


def build_production_summary(
    source: RowSource,
    principal: Principal,
    date_from: date | None = None,
    date_to: date | None = None,
    filters: RecordFilter | None = None,
    today: date | None = None,
) -> Report:
    """All line/shift rows in range with scores, trends and totals."""
    report_type = "production_summary"
    authorize(principal, report_type)
    date_from, date_to = _date_window(report_type, date_from, date_to, today)

    try:
        history = source.fetch_performance_records(
            date_from - timedelta(days=TREND_HISTORY_LOOKBACK_DAYS), date_to, filters
        )
        day_max = _plant_day_max(source, date_from, date_to, filters)
    except DataSourceError as exc:
        return _failed(report_type, principal, date_from, date_to, exc)

    in_range = [r for r in history if r.date >= date_from]
    scored = score_records(in_range, day_max=day_max)
    summary = production_summary_block(scored)
    production = production_performance(scored)

    report = assemble_report(
        report_type, principal, date_from, date_to,
        data=_with_trend(scored, history),
        summary=summary,
        sections={
            "by_line_shift": records(aggregate(scored, by_line_shift)),
            "low_performing_lines": production["low_performing_lines"],
            "bottlenecks": detect_bottlenecks(scored),
        },
        recommendations=production_recommendations(summary, production),
    )
    logger.info("Built %s with %d rows", report_type, len(report.data))
    return report


def build_performance_analysis(
    source: RowSource,
    principal: Principal,
    date_from: date | None = None,
    date_to: date | None = None,
    filters: RecordFilter | None = None,
    today: date | None = None,
) -> Report:
    report_type = "performance_analysis"
    authorize(principal, report_type)
    date_from, date_to = _date_window(report_type, date_from, date_to, today)

    try:
        performance = source.fetch_performance_records(date_from, date_to, filters)
        day_max = _plant_day_max(source, date_from, date_to, filters)
    except DataSourceError as exc:
        return _failed(report_type, principal, date_from, date_to, exc)

    scored = score_records(performance, day_max=day_max)
    analysis = analyze_line_performance(scored)
    flat = [
        {k: v for k, v in line.items() if k not in ("best_day", "worst_day", "improvement_areas")}
        for line in analysis
    ]

    report = assemble_report(
        report_type, principal, date_from, date_to,
        data=flat,
        summary=summarize(scored),
        sections={"line_analysis": analysis},
        recommendations=performance_recommendations(analysis),
    )
    logger.info("Built %s with %d rows", report_type, len(report.data))
    return report


def build_quality_report(
    source: RowSource,
    principal: Principal,
    date_from: date | None = None,
    date_to: date | None = None,
    filters: RecordFilter | None = None,
    today: date | None = None,
) -> Report:
    report_type = "quality_reports"
    authorize(principal, report_type)
    date_from, date_to = _date_window(report_type, date_from, date_to, today)

    try:
        measurements = source.fetch_quality_measurements(date_from, date_to, filters)
    except DataSourceError as exc:
        return _failed(report_type, principal, date_from, date_to, exc)

    analysis = quality_analysis(measurements)
    report = assemble_report(
        report_type, principal, date_from, date_to,
        data=[m.to_dict() for m in measurements],
        summary=analysis.pop("summary"),
        sections=analysis,
        recommendations=quality_recommendations(analysis["by_checkpoint"]),
    )
    logger.info("Built %s with %d rows", report_type, len(report.data))
    return report


def build_oee_report(
    source: RowSource,
    principal: Principal,
    date_from: date | None = None,
    date_to: date | None = None,
    filters: RecordFilter | None = None,
    today: date | None = None,
) -> Report:
    report_type = "oee_reports"
    authorize(principal, report_type)
    date_from, date_to = _date_window(report_type, date_from, date_to, today)

    try:
        performance = source.fetch_performance_records(date_from, date_to, filters)
        day_max = _plant_day_max(source, date_from, date_to, filters)
    except DataSourceError as exc:
        return _failed(report_type, principal, date_from, date_to, exc)

    analysis = oee_analysis(score_records(performance, day_max=day_max))
    report = assemble_report(
        report_type, principal, date_from, date_to,
        data=analysis["rows"],
        summary=analysis["summary"],
        sections={
            "by_line": analysis["by_line"],
            "trends": analysis["trends"],
            "benchmarking": analysis["benchmarking"],
            "improvement_items": analysis["recommendations"],
        },
        recommendations=oee_recommendation_strings(analysis["recommendations"]),
    )
    logger.info("Built %s with %d rows", report_type, len(report.data))
    return report


def build_cost_report(
    source: RowSource,
    principal: Principal,
    date_from: date | None = None,
    date_to: date | None = None,
    filters: RecordFilter | None = None,
    today: date | None = None,
) -> Report:
    report_type = "cost_analysis"
    authorize(principal, report_type)
    date_from, date_to = _date_window(report_type, date_from, date_to, today)

    try:
        performance = source.fetch_performance_records(date_from, date_to, filters)
    except DataSourceError as exc:
        return _failed(report_type, principal, date_from, date_to, exc)

    analysis = cost_analysis(performance)
    report = assemble_report(
        report_type, principal, date_from, date_to,
        data=analysis["rows"],
        summary=analysis["summary"],
        sections={
            "cost_per_unit": analysis["by_line"],
            "variance_analysis": analysis["variances"],
            "optimization_opportunities": analysis["opportunities"],
            "budget_compliance": analysis["budget_compliance"],
        },
        recommendations=cost_recommendations(analysis["opportunities"]),
    )
    logger.info("Built %s with %d rows", report_type, len(report.data))
    return report


REPORT_BUILDERS: dict[str, Callable[..., Report]] = {
    "production_summary": build_production_summary,
    "performance_analysis": build_performance_analysis,
    "quality_reports": build_quality_report,
    "oee_reports": build_oee_report,
    "cost_analysis": build_cost_report,
}


def generate_report(report_type: str, source: RowSource, principal: Principal, **kwargs) -> Report:
    """Dispatch to the builder for report_type (see REPORT_BUILDERS)."""
    builder = REPORT_BUILDERS.get(report_type)
    if builder is None:
        raise ValueError(f"Unknown report type: {report_type!r}")
    return builder(source, principal, **kwargs)
