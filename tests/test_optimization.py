"""
Unit tests for optimisation suggestion rules.

Run: python -m pytest tests/test_optimization.py -v
"""

from datetime import date, timedelta

import pytest

from line_performance.loaders import InMemoryStore
from line_performance.optimization import (
    efficiency_cost_savings,
    generate_suggestions,
    set_status,
    store_suggestions,
)
from line_performance.scoring import score_records

DAY = date(2024, 3, 6)
MAINTENANCE = [{"id": 1, "maintenance_type": "preventive"}]


def _line(make_record, days=5, **overrides):
    return score_records([
        make_record(date=DAY + timedelta(days=i), **overrides) for i in range(days)
    ])


class TestLineRules:
    def test_healthy_line_yields_nothing(self, make_record):
        # default output is far below 40 units/MHR, so raise it
        metrics = _line(make_record, actual_output=15000.0, plan=15000.0)
        assert generate_suggestions(metrics, maintenance_history=MAINTENANCE) == []

    def test_too_few_records_skipped(self, make_record):
        metrics = _line(make_record, days=4, output_hours=100.0)
        assert generate_suggestions(metrics, maintenance_history=MAINTENANCE) == []

    def test_low_efficiency(self, make_record):
        metrics = _line(make_record, output_hours=160.0, actual_output=15000.0, plan=15000.0)
        suggestions = generate_suggestions(metrics, maintenance_history=MAINTENANCE)
        assert [s.title for s in suggestions] == ["Improve Efficiency for L1_DAY"]
        s = suggestions[0]
        assert s.priority == "high"
        assert s.suggestion_type == "process_improvement"
        assert s.estimated_impact["efficiency_improvement"] == pytest.approx(35.0)
        assert s.status == "pending"

    def test_downtime(self, make_record):
        metrics = _line(make_record, downtime_minutes=150.0, actual_output=15000.0, plan=15000.0)
        suggestions = generate_suggestions(metrics, maintenance_history=MAINTENANCE)
        assert [s.suggestion_type for s in suggestions] == ["maintenance_scheduling"]
        assert suggestions[0].priority == "critical"
        assert suggestions[0].estimated_impact["downtime_reduction"] == pytest.approx(80.0)

    def test_productivity_and_underperformance(self, make_record):
        metrics = _line(make_record, actual_output=50.0)
        titles = [s.title for s in generate_suggestions(metrics, maintenance_history=MAINTENANCE)]
        assert titles == ["Optimize Manpower for L1_DAY", "Resolve Bottleneck at L1_DAY"]

    def test_efficiency_savings(self, make_record):
        metrics = _line(make_record, actual_output=80.0)
        # 400 units at 0.8 efficiency -> 500 target, 100 units short at 10 each
        assert efficiency_cost_savings(0.8, metrics) == pytest.approx(1000.0)


class TestQualityRule:
    def test_low_yield_checkpoint(self, make_measurement):
        quality = [make_measurement("QC-04", i >= 2) for i in range(12)]
        suggestions = generate_suggestions([], quality, maintenance_history=MAINTENANCE)
        assert len(suggestions) == 1
        assert suggestions[0].suggestion_type == "quality_enhancement"
        assert suggestions[0].priority == "critical"

    def test_needs_ten_measurements(self, make_measurement):
        quality = [make_measurement("QC-04", False) for _ in range(9)]
        assert generate_suggestions([], quality, maintenance_history=MAINTENANCE) == []


class TestMaintenanceProgramme:
    def test_suggested_without_history(self):
        suggestions = generate_suggestions([])
        assert [s.title for s in suggestions] == ["Implement Preventive Maintenance Program"]


class TestStorage:
    def test_store_and_status(self):
        store = InMemoryStore()
        suggestions = generate_suggestions([])
        assert store_suggestions(suggestions, store) == 1
        assert store.tables["optimization_suggestions"][0]["status"] == "pending"

        set_status(suggestions[0], "approved")
        assert suggestions[0].status == "approved"

    def test_failed_insert_is_skipped(self):
        class BrokenSink:
            def insert_optimization_suggestion(self, suggestion):
                raise ConnectionError("db down")

        assert store_suggestions(generate_suggestions([]), BrokenSink()) == 0

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            set_status(generate_suggestions([])[0], "shelved")
