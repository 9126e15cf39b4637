"""
Unit tests for the threshold rule evaluator.

Run: python -m pytest tests/test_workflow.py -v
"""

from datetime import date, datetime, timedelta

import pytest

from line_performance.config import DEFAULT_WORKFLOWS
from line_performance.loaders import InMemoryStore
from line_performance.models import Action, WorkflowRule
from line_performance.scoring import score_records
from line_performance.workflow import (
    AggregateMetricResolver,
    RuleState,
    WorkflowBusy,
    WorkflowEngine,
    compare,
    is_due,
    workflow_statistics,
)

NOW = datetime(2024, 3, 6, 10, 0, 0)

ALERT = {
    "type": "create_alert",
    "parameters": {"alert_type": "efficiency", "severity": "high", "title": "Low efficiency"},
}


class StubResolver:
    def __init__(self, values):
        self.values = values

    def resolve(self, metric, timeframe="current"):
        if metric == "explode":
            raise RuntimeError("metric store offline")
        return self.values.get(metric, 0.0)


def make_engine(rules, values=None, store=None):
    store = store if store is not None else InMemoryStore()
    return WorkflowEngine(rules, StubResolver(values or {}), store, clock=lambda: NOW), store


# =====================================================================
# Operators
# =====================================================================

class TestCompare:
    @pytest.mark.parametrize("value,operator,threshold,expected", [
        (5, ">", 4, True),
        (4, ">", 4, False),
        (4, ">=", 4, True),
        (3, "<", 4, True),
        (4, "<=", 4, True),
        (4, "=", 4, True),
        (4, "equals", 4, True),
        (5, "greater_than", 4, True),
        (3, "less_than", 4, True),
    ])
    def test_basic_operators(self, value, operator, threshold, expected):
        assert compare(value, operator, threshold) is expected

    def test_percent_below_needs_more_than_tolerance(self):
        assert compare(89, "percent_below", 100) is True
        assert compare(90, "percent_below", 100) is False

    def test_percent_above(self):
        assert compare(111, "percent_above", 100) is True
        assert compare(110, "percent_above", 100) is False

    def test_percent_operators_never_fire_on_zero_threshold(self):
        assert compare(-50, "percent_below", 0) is False
        assert compare(50, "percent_above", 0) is False

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            compare(1, "between", 2)


# =====================================================================
# Frequency gate
# =====================================================================

class TestIsDue:
    def _rule(self, frequency, last_executed=None):
        rule = WorkflowRule(id=1, name="r", execution_frequency=frequency)
        rule.last_executed = last_executed
        return rule

    def test_never_run_is_due(self):
        assert is_due(self._rule("daily"), NOW)

    def test_real_time_always_due(self):
        assert is_due(self._rule("real_time", NOW), NOW)

    def test_hourly_gate(self):
        assert not is_due(self._rule("hourly", NOW - timedelta(minutes=59)), NOW)
        assert is_due(self._rule("hourly", NOW - timedelta(hours=1)), NOW)

    def test_unknown_frequency_never_due(self):
        assert not is_due(self._rule("fortnightly"), NOW)


# =====================================================================
# Rule evaluation
# =====================================================================

class TestEvaluateRule:
    def test_any_condition_triggers(self, make_rule):
        rule = make_rule(
            [
                {"metric": "line_efficiency", "operator": "<", "threshold": 0.5},
                {"metric": "machine_downtime", "operator": ">", "threshold": 60},
            ],
            [ALERT],
        )
        engine, store = make_engine([rule], {"line_efficiency": 0.9, "machine_downtime": 90})
        result = engine.evaluate_rule(rule)

        assert result.result == "success"
        assert result.state == RuleState.COMPLETED.value
        assert [c["condition_met"] for c in result.trigger_data["conditions"]] == [False, True]
        assert len(store.tables["alerts"]) == 1

    def test_no_trigger_touches_only_execution_count(self, make_rule):
        rule = make_rule([{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}], [ALERT])
        engine, store = make_engine([rule], {"line_efficiency": 0.9})
        result = engine.evaluate_rule(rule)

        assert result.result == "no_trigger"
        assert result.state == RuleState.NOT_TRIGGERED.value
        assert (rule.execution_count, rule.success_count, rule.failure_count) == (1, 0, 0)
        assert rule.last_executed == NOW
        assert store.tables["alerts"] == []

    def test_execution_count_increments_every_evaluation(self, make_rule):
        rule = make_rule([{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}], [ALERT])
        engine, _ = make_engine([rule], {"line_efficiency": 0.1})
        for _ in range(3):
            engine.evaluate_rule(rule)
        assert rule.execution_count == 3
        assert rule.success_count == 3

    def test_partial_success(self, make_rule):
        rule = make_rule(
            [{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}],
            [ALERT, {"type": "teleport_operator", "parameters": {}}],
        )
        engine, _ = make_engine([rule], {"line_efficiency": 0.1})
        result = engine.evaluate_rule(rule)

        assert result.result == "partial_success"
        assert [a.success for a in result.actions_executed] == [True, False]
        assert "Unknown action type" in result.actions_executed[1].error
        assert rule.failure_count == 1

    def test_all_actions_failing(self, make_rule):
        rule = make_rule(
            [{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}],
            [{"type": "optimize_resource_allocation", "parameters": {"optimization_type": "magic"}}],
        )
        engine, _ = make_engine([rule], {"line_efficiency": 0.1})
        assert engine.evaluate_rule(rule).result == "failed"

    def test_triggered_rule_without_actions_is_success(self, make_rule):
        rule = make_rule([{"metric": "alert_count", "operator": ">", "threshold": 0}], [])
        engine, _ = make_engine([rule], {"alert_count": 5})
        result = engine.evaluate_rule(rule)

        assert result.result == "success"
        assert result.actions_executed == []
        assert (rule.execution_count, rule.success_count, rule.failure_count) == (1, 1, 0)

    def test_evaluation_exception_counts_as_failed(self, make_rule):
        rule = make_rule([{"metric": "explode", "operator": ">", "threshold": 1}], [ALERT])
        engine, store = make_engine([rule])
        result = engine.evaluate_rule(rule)

        assert result.result == "failed"
        assert "metric store offline" in result.error_message
        assert rule.failure_count == 1
        assert rule.last_error == "metric store offline"
        assert len(store.tables["execution_log"]) == 1

    def test_every_evaluation_is_logged(self, make_rule):
        rule = make_rule([{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}], [ALERT])
        engine, store = make_engine([rule], {"line_efficiency": 0.9})
        engine.evaluate_rule(rule)
        entry = store.tables["execution_log"][0]
        assert entry["workflow_id"] == 1
        assert entry["result"] == "no_trigger"


# =====================================================================
# Batch runs
# =====================================================================

class TestRunScheduled:
    def _rules(self, make_rule):
        trigger = [{"metric": "line_efficiency", "operator": "<", "threshold": 0.5}]
        return [
            make_rule(trigger, [ALERT], id=1, name="low", priority=1),
            make_rule(trigger, [ALERT], id=2, name="high", priority=5),
            make_rule(trigger, [ALERT], id=3, name="off", priority=9, is_active=False),
            make_rule(trigger, [ALERT], id=4, name="gated", priority=3, execution_frequency="daily"),
        ]

    def test_priority_order_and_gate(self, make_rule):
        rules = self._rules(make_rule)
        rules[3].last_executed = NOW - timedelta(hours=2)
        engine, _ = make_engine(rules, {"line_efficiency": 0.1})

        results = engine.run_scheduled()
        assert [r.workflow_name for r in results] == ["high", "low"]
        assert rules[2].execution_count == 0
        assert rules[3].execution_count == 0

    def test_concurrent_run_rejected(self, make_rule):
        engine, _ = make_engine(self._rules(make_rule), {"line_efficiency": 0.1})
        engine._lock.acquire()
        try:
            with pytest.raises(WorkflowBusy):
                engine.run_scheduled()
        finally:
            engine._lock.release()
        assert engine.run_scheduled()


# =====================================================================
# Actions
# =====================================================================

class TestActions:
    def test_adjust_parameters_updates_records(self, make_record):
        store = InMemoryStore([make_record(date=NOW.date(), plan=100.0)])
        engine, _ = make_engine([], store=store)
        outcome = engine.execute_action(Action("adjust_parameters", {
            "target_line_shift": "L1_DAY",
            "adjustments": [{"field": "plan", "change": -10, "type": "percentage"}],
        }), {})

        assert outcome.success
        assert outcome.affected_records == 1
        assert store.performance[0].plan == pytest.approx(90.0)

    def test_adjust_parameters_absolute_on_given_date(self, make_record):
        day = date(2024, 3, 1)
        store = InMemoryStore([make_record(date=day, downtime_minutes=10.0)])
        engine, _ = make_engine([], store=store)
        outcome = engine.execute_action(Action("adjust_parameters", {
            "target_line_shift": "L1_DAY",
            "date": "2024-03-01",
            "adjustments": [{"field": "downtime_minutes", "change": 5, "type": "absolute"}],
        }), {})
        assert outcome.success
        assert store.performance[0].downtime_minutes == 15.0

    def test_adjust_parameters_without_match_fails(self):
        engine, _ = make_engine([])
        outcome = engine.execute_action(Action("adjust_parameters", {
            "target_line_shift": "NOPE",
            "adjustments": [{"field": "plan", "change": 5}],
        }), {})
        assert not outcome.success
        assert outcome.error == "No records updated"

    def test_schedule_maintenance_defaults_to_tomorrow(self):
        engine, store = make_engine([])
        outcome = engine.execute_action(Action("schedule_maintenance", {"line_shift": "L2_DAY"}), {})
        row = store.tables["maintenance_schedules"][0]
        assert outcome.details == {"maintenance_id": 1}
        assert row["scheduled_date"] == NOW.date() + timedelta(days=1)
        assert row["maintenance_type"] == "preventive"

    def test_optimize_resources_records_suggestion(self):
        engine, store = make_engine([])
        outcome = engine.execute_action(Action("optimize_resource_allocation", {
            "optimization_type": "manpower_rebalancing", "line_shift": "L2_DAY",
        }), {"conditions": []})
        assert outcome.success
        row = store.tables["optimization_suggestions"][0]
        assert row["suggestion_type"] == "resource_optimization"
        assert row["target_line_shift"] == "L2_DAY"

    def test_generate_report_and_escalation(self):
        engine, store = make_engine([])
        engine.execute_action(Action("generate_report", {"report_type": "oee_reports"}), {})
        engine.execute_action(Action("escalate_issue", {"escalated_to": 7, "reason": "stuck"}), {})
        assert store.tables["report_requests"][0]["created_by"] == "workflow"
        assert store.tables["escalations"][0]["status"] == "pending"

    def test_handler_exception_is_captured(self):
        engine, _ = make_engine([])
        outcome = engine.execute_action(Action("create_alert", {}), {})
        assert not outcome.success
        assert "alert_type" in outcome.error


# =====================================================================
# Metric resolution and statistics
# =====================================================================

class TestAggregateMetricResolver:
    def test_resolves_from_scored_rows(self, make_record, make_measurement):
        metrics = score_records([
            make_record(output_hours=160.0, downtime_minutes=30.0),
            make_record(line_shift="L2_DAY", downtime_minutes=90.0, actual_output=80.0),
        ])
        quality = [make_measurement(conforming=True), make_measurement(conforming=False)]
        resolver = AggregateMetricResolver(metrics, quality, alert_count=4)

        assert resolver.resolve("line_efficiency") == pytest.approx(0.75)
        assert resolver.resolve("machine_downtime") == pytest.approx(60.0)
        assert resolver.resolve("production_variance") == pytest.approx(10.0)
        assert resolver.resolve("quality_yield_rate") == pytest.approx(50.0)
        assert resolver.resolve("alert_count") == 4.0

    def test_no_measurements_means_full_yield(self):
        assert AggregateMetricResolver([]).resolve("quality_yield_rate") == 100.0

    def test_unknown_metric_is_zero(self):
        assert AggregateMetricResolver([]).resolve("moon_phase") == 0.0


class TestDefaultWorkflows:
    def test_definitions_load(self):
        rules = [WorkflowRule.from_dict(d) for d in DEFAULT_WORKFLOWS]
        assert len(rules) == len(DEFAULT_WORKFLOWS)
        assert all(rule.conditions and rule.actions for rule in rules)


class TestWorkflowStatistics:
    def test_totals(self):
        a = WorkflowRule(id=1, name="a", execution_count=4, success_count=3, failure_count=1)
        b = WorkflowRule(id=2, name="b", execution_count=2, success_count=1, failure_count=1,
                         is_active=False)
        c = WorkflowRule(id=3, name="c")
        stats = workflow_statistics([a, b, c])
        assert stats["total_workflows"] == 3
        assert stats["active_workflows"] == 2
        assert stats["total_executions"] == 6
        assert stats["total_successes"] == 4
        assert stats["total_failures"] == 2
        # never-run rule c counts as 0 %: (75 + 50 + 0) / 3
        assert stats["avg_success_rate"] == pytest.approx(125 / 3)

    def test_unexecuted_rule_lowers_average(self):
        perfect = WorkflowRule(id=1, name="perfect", execution_count=4, success_count=4)
        idle = WorkflowRule(id=2, name="idle")
        assert workflow_statistics([perfect, idle])["avg_success_rate"] == pytest.approx(50.0)

    def test_no_rules(self):
        assert workflow_statistics([])["avg_success_rate"] == 0.0
