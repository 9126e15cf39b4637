"""
Configuration: shift constants, score breakpoint tables, rating thresholds,
rule tolerances, report permissions and the default workflow set.

SCORE_BREAKPOINTS maps each scored metric to the scale applied to its raw
value and an ordered list of (upper_bound, intercept, slope) segments.
Segments are evaluated low-to-high; the first whose upper bound is >= the
scaled value wins, and the score is intercept + slope * value, floored at 0.
"""

import math

# ---------------------------------------------------------------------------
# Shift and labour constants
# ---------------------------------------------------------------------------
REGULAR_HOURS_PER_HEAD = 8.0
OT_HOUR_NORMALISATION = 1.5
SCHEDULED_MINUTES_PER_SHIFT = 480.0
DEFAULT_QUALITY_PROXY = 100.0

# ---------------------------------------------------------------------------
# Cost assumptions
# ---------------------------------------------------------------------------
REGULAR_LABOR_RATE = 100.0  # per head per regular hour
OT_LABOR_RATE = 150.0  # per OT hour
EFFICIENCY_SAVING_PER_UNIT = 10.0
DEFECT_SAVING_PER_UNIT = 50.0
MANPOWER_SAVING_PER_MHR = 25.0
STANDARD_COST_PER_UNIT = 50.0
HIGH_COST_PER_UNIT = 60.0
DAILY_COST_BUDGET = 5000.0
OT_COST_SHARE_LIMIT = 0.3  # of labour cost
DOWNTIME_COST_SHARE_LIMIT = 0.1  # of total cost

# ---------------------------------------------------------------------------
# Score breakpoint tables
# ---------------------------------------------------------------------------
# scale: multiplier applied to the raw metric before lookup
#        (rates arrive as percentages, scored as decimals)
# max_points: ceiling used for display only
SCORE_BREAKPOINTS: dict[str, dict] = {
    "absent_rate": {
        "scale": 0.01,
        "max_points": 30.0,
        "breakpoints": [
            (0.05, 30.0, -30.0),
            (math.inf, 21.0, -30.0),
        ],
    },
    "separation_rate": {
        "scale": 0.01,
        "max_points": 30.0,
        "breakpoints": [
            (0.0, 30.0, 0.0),
            (math.inf, 15.0, -30.0),
        ],
    },
    "plan_completion": {
        "scale": 0.01,
        "max_points": 20.0,
        "breakpoints": [
            (math.inf, 0.0, 20.0),
        ],
    },
    "cph": {
        "scale": 1.0,  # applied to cph / max cph of the day
        "max_points": 20.0,
        "breakpoints": [
            (math.inf, 0.0, 20.0),
        ],
    },
}

# Ordered high-to-low; anything below the last threshold is DEFAULT_RATING
RATING_THRESHOLDS: list[tuple[float, str]] = [
    (90.0, "Excellent"),
    (80.0, "Good"),
]
DEFAULT_RATING = "Needs Improvement"

# ---------------------------------------------------------------------------
# OEE bands
# ---------------------------------------------------------------------------
OEE_RATINGS: list[tuple[float, str]] = [
    (85.0, "world_class"),
    (75.0, "good"),
    (65.0, "acceptable"),
    (50.0, "needs_improvement"),
]
OEE_DEFAULT_RATING = "critical"

OEE_BENCHMARKS: dict[str, float] = {
    "world_class": 85.0,
    "excellent": 75.0,
    "good": 65.0,
    "average": 55.0,
}
OEE_BENCHMARK_FLOOR = "poor"

# Per-component recommendation limits
OEE_COMPONENT_LIMITS: dict[str, float] = {
    "availability": 85.0,
    "performance": 85.0,
    "quality": 95.0,
    "oee": 65.0,
}

# ---------------------------------------------------------------------------
# Trend classification
# ---------------------------------------------------------------------------
TREND_BAND = 5.0
RECENT_TREND_WINDOW = 3
RECENT_TREND_HISTORY = 7

# ---------------------------------------------------------------------------
# Ranking windows
# ---------------------------------------------------------------------------
TRAILING_WINDOW_DAYS = 7
RANK_WINDOWS: dict[str, str] = {
    "overall": "rank",
    "trailing_7_days": "daily_rank",
    "current_week": "weekly_rank",
    "current_month": "monthly_rank",
}

# ---------------------------------------------------------------------------
# Recommendation and analysis thresholds
# ---------------------------------------------------------------------------
LOW_EFFICIENCY = 0.8
POOR_EFFICIENCY = 0.7
HIGH_DOWNTIME_MINUTES = 60.0
EFFICIENCY_STD_LIMIT = 0.2
LOW_PLAN_COMPLETION = 80.0
LOW_PERFORMING_COMPLETION = 70.0
LOW_PERFORMING_EFFICIENCY = 0.5
MAX_LOW_PERFORMING_LINES = 3
HIGH_ABSENT_RATE = 5.0

# Bottleneck detection
BOTTLENECK_EFFICIENCY = 0.4
BOTTLENECK_EFFICIENCY_CRITICAL = 0.25
BOTTLENECK_MANNING_RATE = 80.0
BOTTLENECK_MANNING_CRITICAL = 60.0
BOTTLENECK_FAILURE_RATE = 5.0
BOTTLENECK_FAILURE_CRITICAL = 10.0

# Optimization suggestion rules
SUGGESTION_MIN_RECORDS = 5
SUGGESTION_MIN_MEASUREMENTS = 10
SUGGESTION_LOW_EFFICIENCY = 0.75
SUGGESTION_CRITICAL_EFFICIENCY = 0.6
SUGGESTION_TARGET_EFFICIENCY = 0.85
SUGGESTION_HIGH_DOWNTIME = 60.0
SUGGESTION_CRITICAL_DOWNTIME = 120.0
SUGGESTION_TARGET_DOWNTIME = 30.0
SUGGESTION_LOW_PRODUCTIVITY = 40.0
SUGGESTION_CRITICAL_PRODUCTIVITY = 30.0
SUGGESTION_TARGET_PRODUCTIVITY = 50.0
SUGGESTION_UNDERPERFORMANCE_COMPLETION = 85.0
SUGGESTION_UNDERPERFORMANCE_RATE = 50.0
SUGGESTION_CRITICAL_UNDERPERFORMANCE = 75.0
SUGGESTION_LOW_YIELD = 95.0
SUGGESTION_CRITICAL_YIELD = 90.0
SUGGESTION_TARGET_YIELD = 98.0

SUGGESTION_STATUSES = ("pending", "approved", "in_progress", "implemented", "rejected")

# ---------------------------------------------------------------------------
# Workflow engine
# ---------------------------------------------------------------------------
# Seconds that must elapse since last_executed; None means always eligible
FREQUENCY_INTERVALS: dict[str, int | None] = {
    "real_time": None,
    "hourly": 3600,
    "daily": 86400,
    "weekly": 604800,
}

# Relative deviation (%) a percent_below / percent_above condition must exceed
PERCENT_OPERATOR_TOLERANCE = 10.0

OPERATOR_ALIASES: dict[str, str] = {
    "greater_than": ">",
    "less_than": "<",
    "equals": "=",
    "==": "=",
    "greater_than_or_equals": ">=",
    "less_than_or_equals": "<=",
    "percentage_below": "percent_below",
    "percentage_above": "percent_above",
}

ACTION_ALIASES: dict[str, str] = {
    "adjust_production_parameters": "adjust_parameters",
}

RESOURCE_OPTIMIZATION_TYPES = ("manpower_rebalancing", "equipment_reallocation", "shift_optimization")

DEFAULT_WORKFLOWS: list[dict] = [
    {
        "id": 1,
        "name": "Low line efficiency alert",
        "workflow_type": "performance_monitoring",
        "execution_frequency": "hourly",
        "priority": 3,
        "trigger_conditions": [
            {"metric": "line_efficiency", "operator": "<", "threshold": 0.75},
        ],
        "actions": [
            {
                "type": "create_alert",
                "parameters": {
                    "alert_type": "efficiency",
                    "severity": "high",
                    "title": "Line efficiency below target",
                    "message": "Average line efficiency dropped below 75%",
                    "line_shift": None,
                },
            },
            {
                "type": "notify_supervisor",
                "parameters": {
                    "supervisor_id": 1,
                    "notification_type": "performance",
                    "title": "Efficiency alert",
                    "message": "Review manpower allocation on affected lines",
                    "priority": "high",
                },
            },
        ],
    },
    {
        "id": 2,
        "name": "Plan completion escalation",
        "workflow_type": "production_optimization",
        "execution_frequency": "daily",
        "priority": 2,
        "trigger_conditions": [
            {"metric": "plan_completion_rate", "operator": "percent_below", "threshold": 95.0},
            {"metric": "bottleneck_count", "operator": ">", "threshold": 2},
        ],
        "actions": [
            {
                "type": "escalate_issue",
                "parameters": {
                    "issue_id": 0,
                    "escalated_to": 1,
                    "escalation_level": "manager",
                    "reason": "Plan completion more than 10% below target",
                },
            },
            {
                "type": "generate_report",
                "parameters": {"report_type": "performance_analysis", "parameters": {}},
            },
        ],
    },
    {
        "id": 3,
        "name": "Downtime maintenance scheduling",
        "workflow_type": "maintenance",
        "execution_frequency": "daily",
        "priority": 2,
        "trigger_conditions": [
            {"metric": "machine_downtime", "operator": ">", "threshold": 60.0},
        ],
        "actions": [
            {
                "type": "schedule_maintenance",
                "parameters": {
                    "line_shift": None,
                    "maintenance_type": "preventive",
                    "scheduled_date": None,
                    "priority": "high",
                    "description": "Average downtime above 60 minutes per shift",
                },
            },
        ],
    },
    {
        "id": 4,
        "name": "Quality yield checkpoint",
        "workflow_type": "quality_control",
        "execution_frequency": "weekly",
        "priority": 1,
        "trigger_conditions": [
            {"metric": "quality_yield_rate", "operator": "<", "threshold": 95.0},
        ],
        "actions": [
            {
                "type": "quality_control_checkpoint",
                "parameters": {
                    "checkpoint_id": 1,
                    "line_shift": None,
                    "shift": None,
                    "measure_value": None,
                    "is_conforming": False,
                    "operator_name": "workflow",
                },
            },
        ],
    },
]

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
REPORT_PERMISSIONS: dict[str, set[str]] = {
    "production_summary": {"operator", "supervisor", "manager", "executive", "admin"},
    "performance_analysis": {"supervisor", "manager", "executive", "admin"},
    "quality_reports": {"supervisor", "manager", "executive", "admin"},
    "oee_reports": {"manager", "executive", "admin"},
    "cost_analysis": {"manager", "executive", "admin"},
}

REPORT_TITLES: dict[str, str] = {
    "production_summary": "Production Summary Report",
    "performance_analysis": "Performance Analysis Report",
    "quality_reports": "Quality Report",
    "oee_reports": "OEE Analysis Report",
    "cost_analysis": "Cost Analysis Report",
}

# Days before date_to used when a report is requested without date_from
REPORT_DEFAULT_LOOKBACK_DAYS: dict[str, int] = {
    "production_summary": 6,
    "performance_analysis": 29,
    "quality_reports": 29,
    "oee_reports": 29,
    "cost_analysis": 29,
}

DATE_RANGE_PRESETS = ("today", "last_7_days", "last_30_days", "this_month", "last_month")

# Prior records consulted for each production-summary row's trend
TREND_HISTORY_LOOKBACK_DAYS = 30

EXPORT_FORMATS = ("csv", "html-excel", "html-pdf", "json")

PLANT_NAME = "Assembly Plant"
