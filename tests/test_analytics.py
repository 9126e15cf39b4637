"""
Unit tests for line, OEE, quality, cost and bottleneck analysis.

Run: python -m pytest tests/test_analytics.py -v
"""

from datetime import date, timedelta

import pytest

from line_performance.analytics import (
    analyze_line_performance,
    checkpoint_performance,
    corrective_action_effectiveness,
    cost_analysis,
    defect_frequency,
    detect_bottlenecks,
    oee_analysis,
    oee_recommendations,
    production_performance,
    quality_analysis,
    root_causes,
)
from line_performance.scoring import score_records

DAY = date(2024, 3, 6)


class TestLinePerformance:
    def _line(self, make_record, actuals, **overrides):
        return score_records([
            make_record(date=DAY + timedelta(days=i), actual_output=a, **overrides)
            for i, a in enumerate(actuals)
        ])

    def test_three_day_scenario(self, make_record):
        analysis = analyze_line_performance(self._line(make_record, [80, 90, 95]))
        line = analysis[0]
        assert line["line_shift"] == "L1_DAY"
        assert line["records"] == 3
        assert line["avg_completion"] == pytest.approx(88.33, abs=0.01)
        assert line["completion_trend"] == "improving"
        assert line["efficiency_trend"] == "stable"
        assert line["avg_variance"] == pytest.approx(35 / 3)

    def test_rows_sorted_by_date_before_trend(self, make_record):
        metrics = self._line(make_record, [80, 90, 95])
        line = analyze_line_performance(list(reversed(metrics)))[0]
        assert line["completion_trend"] == "improving"

    def test_best_and_worst_day(self, make_record):
        metrics = score_records([
            make_record(date=DAY, output_hours=160.0),
            make_record(date=DAY + timedelta(days=1), output_hours=320.0),
        ])
        line = analyze_line_performance(metrics)[0]
        assert line["best_day"]["date"] == "2024-03-07"
        assert line["worst_day"]["date"] == "2024-03-06"

    def test_improvement_areas(self, make_record):
        metrics = self._line(make_record, [100, 100], output_hours=200.0, downtime_minutes=90.0)
        areas = analyze_line_performance(metrics)[0]["improvement_areas"]
        assert any("efficiency" in a for a in areas)
        assert any("downtime" in a for a in areas)

    def test_low_performing_lines(self, make_record):
        metrics = score_records([
            make_record(line_shift="GOOD"),
            make_record(line_shift="BAD", actual_output=60.0, absent=4),
        ])
        out = production_performance(metrics)
        assert out["overall_completion"] == pytest.approx(80.0)
        assert [row["line_shift"] for row in out["low_performing_lines"]] == ["BAD"]
        assert out["low_performing_lines"][0]["issues"] == ["Low plan completion", "High absenteeism"]


class TestOEEAnalysis:
    def test_summary_and_rating(self, make_record):
        metrics = score_records([
            make_record(line_shift="A", downtime_minutes=48.0, actual_output=90.0),
            make_record(line_shift="B"),
        ])
        out = oee_analysis(metrics)
        assert [r["oee_rating"] for r in out["rows"]] == ["good", "world_class"]
        assert out["summary"]["best_oee"] == pytest.approx(100.0)
        assert out["summary"]["avg_oee"] == pytest.approx(90.5)
        assert [b["category"] for b in out["benchmarking"]] == ["excellent", "world_class"]

    def test_trends_by_date(self, make_record):
        metrics = score_records([
            make_record(date=DAY + timedelta(days=1)),
            make_record(date=DAY, actual_output=50.0),
        ])
        trends = oee_analysis(metrics)["trends"]
        assert [t["date"] for t in trends] == ["2024-03-06", "2024-03-07"]
        assert trends[0]["avg_oee"] == pytest.approx(50.0)

    def test_recommendations_below_limits(self, make_record):
        metrics = score_records([make_record(downtime_minutes=96.0, utilization_pct=90.0)])
        components = [r["component"] for r in oee_recommendations(metrics)]
        assert components == ["Availability", "Quality"]

    def test_empty(self):
        out = oee_analysis([])
        assert out["rows"] == []
        assert out["summary"] == {}
        assert out["trends"] == []


class TestQualityAnalysis:
    def _measurements(self, make_measurement):
        return [
            make_measurement("QC-01", True),
            make_measurement("QC-01", False, defect_description="Cold solder joint"),
            make_measurement("QC-02", False, defect_description="Cold solder joint"),
            make_measurement("QC-02", False, defect_description="Missing screw",
                             date=DAY + timedelta(days=1)),
        ]

    def test_summary(self, make_measurement):
        summary = quality_analysis(self._measurements(make_measurement))["summary"]
        assert summary["total_measurements"] == 4
        assert summary["yield_rate"] == pytest.approx(25.0)
        assert summary["defect_rate"] == pytest.approx(75.0)

    def test_defect_frequency_most_common_first(self, make_measurement):
        assert defect_frequency(self._measurements(make_measurement)) == {
            "Cold solder joint": 2, "Missing screw": 1,
        }

    def test_checkpoint_yield(self, make_measurement):
        rows = {c["checkpoint_id"]: c for c in checkpoint_performance(self._measurements(make_measurement))}
        assert rows["QC-01"]["yield"] == pytest.approx(50.0)
        assert rows["QC-02"]["failure_rate"] == pytest.approx(100.0)

    def test_root_cause_frequency_is_plain_count(self, make_measurement):
        causes = root_causes(self._measurements(make_measurement))
        top = causes[0]
        assert top["defect"] == "Cold solder joint"
        assert top["frequency"] == 2
        assert top["affected_checkpoints"] == ["Checkpoint QC-01", "Checkpoint QC-02"]

    def test_corrective_action_effectiveness(self, make_measurement):
        measurements = [
            make_measurement(conforming=False),
            make_measurement(conforming=False),
            make_measurement(conforming=False, corrective_action="Rework at station"),
            make_measurement(conforming=False),
        ]
        out = corrective_action_effectiveness(measurements)
        assert out == [{"action": "Rework at station", "effectiveness": pytest.approx(50.0)}]

    def test_daily_trend(self, make_measurement):
        trends = quality_analysis(self._measurements(make_measurement))["trends"]
        assert [t["date"] for t in trends] == ["2024-03-06", "2024-03-07"]
        assert trends[0]["yield_rate"] == pytest.approx(100 / 3)
        assert trends[1]["defect_rate"] == pytest.approx(100.0)


class TestCostAnalysis:
    def test_summary_and_opportunities(self, make_record):
        records = [
            make_record(line_shift="A", no_ot_manpower=10, actual_output=200.0),
            make_record(line_shift="B", no_ot_manpower=10, ot_manpower=10, ot_hours=4.0,
                        actual_output=100.0),
        ]
        out = cost_analysis(records)
        # A: 8000 labour, B: 8000 + 6000
        assert out["summary"]["total_costs"] == pytest.approx(22000.0)
        assert out["summary"]["average_cost_per_unit"] == pytest.approx(22000 / 300)

        areas = {o["area"]: o["affected_lines"] for o in out["opportunities"]}
        assert areas["Overtime Management"] == ["B"]
        assert areas["Cost Per Unit"] == ["B"]

    def test_budget_compliance(self, make_record):
        out = cost_analysis([make_record(no_ot_manpower=5, actual_output=100.0)])
        row = out["budget_compliance"][0]
        assert row["actual_cost"] == pytest.approx(4000.0)
        assert row["is_over_budget"] is False

    def test_variance_against_standard(self, make_record):
        out = cost_analysis([make_record(no_ot_manpower=10, actual_output=100.0)])
        variance = out["variances"][0]
        assert variance["actual_cost_per_unit"] == pytest.approx(80.0)
        assert variance["variance_type"] == "unfavorable"


class TestBottlenecks:
    def test_efficiency_and_manpower(self, make_record):
        metrics = score_records([
            make_record(line_shift="SLOW", output_hours=64.0),
            make_record(line_shift="SHORT", absent=10),
            make_record(line_shift="FINE"),
        ])
        out = detect_bottlenecks(metrics)
        assert out["total"] == 2
        assert out["critical_count"] == 1
        assert out["by_type"] == {
            "efficiency": {"count": 1, "critical_count": 1},
            "manpower": {"count": 1, "critical_count": 0},
        }

    def test_quality_checkpoint(self, make_measurement):
        quality = [make_measurement("QC-09", i >= 3) for i in range(40)]
        out = detect_bottlenecks([], quality)
        assert out["total"] == 1
        assert out["bottlenecks"][0]["severity"] == "high"
