"""
Threshold rule evaluator ("workflow engine").

Each evaluation cycle walks the active rules in priority order. A rule is
skipped while its frequency gate is closed; otherwise its conditions are
checked against a metric resolver (any one condition is enough to
trigger), and on trigger its actions run in order, each independently.

Per evaluated rule:
    idle -> conditions_evaluated -> actions_executing -> completed
                                 -> not_triggered

Result classification: success (all actions ok, vacuously so for a rule with
no actions), partial_success (some), failed (none, or an exception during
evaluation), no_trigger.
"""

import logging
import threading
import time
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Protocol, Sequence

from .analytics import detect_bottlenecks
from .config import (
    ACTION_ALIASES,
    FREQUENCY_INTERVALS,
    OPERATOR_ALIASES,
    PERCENT_OPERATOR_TOLERANCE,
    RESOURCE_OPTIMIZATION_TYPES,
)
from .formulas import mean, safe_div
from .loaders.sources import WriteSink
from .models import (
    Action,
    ActionResult,
    ComputedMetrics,
    Condition,
    ExecutionResult,
    OptimizationSuggestion,
    QualityMeasurement,
    WorkflowRule,
)

logger = logging.getLogger(__name__)


class RuleState(str, Enum):
    IDLE = "idle"
    CONDITIONS_EVALUATED = "conditions_evaluated"
    ACTIONS_EXECUTING = "actions_executing"
    COMPLETED = "completed"
    NOT_TRIGGERED = "not_triggered"


class WorkflowBusy(RuntimeError):
    """Another batch run already holds the engine's lock."""


# ---------------------------------------------------------------------------
# Metric resolution
# ---------------------------------------------------------------------------

class MetricResolver(Protocol):
    def resolve(self, metric: str, timeframe: str = "current") -> float: ...


class AggregateMetricResolver:
    """Resolve rule metrics from already-scored rows.

    Parameters
    ----------
    metrics : Scored rows for the evaluation window.
    quality : Checkpoint measurements for the same window.
    alert_count : Number of currently active alerts.
    """

    def __init__(
        self,
        metrics: Sequence[ComputedMetrics],
        quality: Sequence[QualityMeasurement] = (),
        alert_count: int = 0,
    ):
        self.metrics = list(metrics)
        self.quality = list(quality)
        self.alert_count = alert_count
        self._resolvers: dict[str, Callable[[], float]] = {
            "line_efficiency": lambda: mean(m.efficiency for m in self.metrics),
            "plan_completion_rate": lambda: mean(m.plan_completion for m in self.metrics),
            "quality_yield_rate": self._quality_yield,
            "machine_downtime": lambda: mean(m.record.downtime_minutes for m in self.metrics),
            "oee_score": lambda: mean(m.oee for m in self.metrics),
            "production_variance": lambda: mean(
                m.record.plan - m.record.actual_output for m in self.metrics
            ),
            "alert_count": lambda: float(self.alert_count),
            "bottleneck_count": lambda: float(
                detect_bottlenecks(self.metrics, self.quality)["total"]
            ),
        }

    def _quality_yield(self) -> float:
        if not self.quality:
            return 100.0
        conforming = sum(1 for q in self.quality if q.is_conforming)
        return safe_div(conforming, len(self.quality)) * 100

    def resolve(self, metric: str, timeframe: str = "current") -> float:
        resolver = self._resolvers.get(metric)
        if resolver is None:
            logger.warning("Unknown workflow metric %r resolved as 0", metric)
            return 0.0
        return float(resolver())


# ---------------------------------------------------------------------------
# Condition evaluation
# ---------------------------------------------------------------------------

def compare(value: float, operator: str, threshold: float,
            tolerance: float = PERCENT_OPERATOR_TOLERANCE) -> bool:
    """Apply one comparison operator.

    percent_below / percent_above trigger when value deviates from threshold
    by more than `tolerance` percent of the threshold; a zero threshold
    never triggers them.
    """
    op = OPERATOR_ALIASES.get(operator, operator)
    if op == ">":
        return value > threshold
    if op == "<":
        return value < threshold
    if op == "=":
        return value == threshold
    if op == ">=":
        return value >= threshold
    if op == "<=":
        return value <= threshold
    if op == "percent_below":
        return threshold != 0 and (threshold - value) / threshold * 100 > tolerance
    if op == "percent_above":
        return threshold != 0 and (value - threshold) / threshold * 100 > tolerance
    raise ValueError(f"Unsupported operator: {operator!r}")


def is_due(rule: WorkflowRule, now: datetime) -> bool:
    """Frequency gate: has enough time passed since the rule last ran?"""
    if rule.execution_frequency not in FREQUENCY_INTERVALS:
        logger.warning("Rule %s has unknown frequency %r; never due",
                       rule.id, rule.execution_frequency)
        return False
    interval = FREQUENCY_INTERVALS[rule.execution_frequency]
    if interval is None or rule.last_executed is None:
        return True
    return now - rule.last_executed >= timedelta(seconds=interval)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class WorkflowEngine:
    """Evaluate workflow rules and dispatch their actions to a write sink.

    Parameters
    ----------
    rules : Rule definitions; their run statistics are updated in place.
    resolver : Supplies current metric values for condition checks.
    sink : Receives every action's insert and each execution log entry.
    clock : Returns "now"; injectable for tests.
    run_by : Username recorded on generated report requests and escalations.
    """

    def __init__(
        self,
        rules: Iterable[WorkflowRule],
        resolver: MetricResolver,
        sink: WriteSink,
        clock: Callable[[], datetime] = datetime.now,
        run_by: str = "workflow",
    ):
        self.rules = list(rules)
        self.resolver = resolver
        self.sink = sink
        self.clock = clock
        self.run_by = run_by
        self._lock = threading.Lock()
        self._handlers: dict[str, Callable[[dict, dict], ActionResult]] = {
            "create_alert": self._create_alert,
            "adjust_parameters": self._adjust_parameters,
            "schedule_maintenance": self._schedule_maintenance,
            "notify_supervisor": self._notify_supervisor,
            "optimize_resource_allocation": self._optimize_resources,
            "generate_report": self._generate_report,
            "quality_control_checkpoint": self._quality_checkpoint,
            "escalate_issue": self._escalate_issue,
        }

    # -- batch --------------------------------------------------------------

    def run_scheduled(self) -> list[ExecutionResult]:
        """Evaluate every active, due rule; highest priority first.

        Raises WorkflowBusy if another run is in progress. Rule failures are
        recorded on the results, never raised.
        """
        if not self._lock.acquire(blocking=False):
            raise WorkflowBusy("A workflow run is already in progress")
        try:
            now = self.clock()
            active = [r for r in self.rules if r.is_active]
            ordered = sorted(active, key=lambda r: r.priority, reverse=True)

            results = []
            for rule in ordered:
                if not is_due(rule, now):
                    logger.debug("Rule %s (%s) not due", rule.id, rule.name)
                    continue
                results.append(self.evaluate_rule(rule))

            logger.info("Workflow run evaluated %d of %d active rules",
                        len(results), len(active))
            return results
        finally:
            self._lock.release()

    # -- single rule --------------------------------------------------------

    def evaluate_conditions(self, rule: WorkflowRule) -> tuple[bool, dict]:
        """Return (condition_met, trigger_data); OR across conditions."""
        checked = []
        met = False
        for condition in rule.conditions:
            value = self.resolver.resolve(condition.metric, condition.timeframe)
            hit = compare(value, condition.operator, condition.threshold)
            checked.append({
                "metric": condition.metric,
                "operator": condition.operator,
                "threshold": condition.threshold,
                "current_value": value,
                "condition_met": hit,
            })
            met = met or hit
        return met, {"conditions": checked, "evaluated_at": self.clock().isoformat()}

    def evaluate_rule(self, rule: WorkflowRule) -> ExecutionResult:
        """Run one rule past its gate, update its statistics and log it."""
        started = time.perf_counter()
        result = ExecutionResult(
            workflow_id=rule.id,
            workflow_name=rule.name,
            start_time=self.clock(),
            state=RuleState.IDLE.value,
        )

        try:
            met, trigger_data = self.evaluate_conditions(rule)
            result.state = RuleState.CONDITIONS_EVALUATED.value
            result.trigger_data = trigger_data

            if met:
                result.state = RuleState.ACTIONS_EXECUTING.value
                for action in rule.actions:
                    outcome = self.execute_action(action, trigger_data)
                    result.actions_executed.append(outcome)
                    result.affected_records += outcome.affected_records
                result.result = _classify(result.actions_executed)
                result.state = RuleState.COMPLETED.value
            else:
                result.result = "no_trigger"
                result.state = RuleState.NOT_TRIGGERED.value
        except Exception as exc:
            logger.exception("Workflow %s (%s) failed", rule.id, rule.name)
            result.result = "failed"
            result.error_message = str(exc)

        result.execution_time_ms = int((time.perf_counter() - started) * 1000)
        self._update_stats(rule, result)
        self._log_execution(result)
        return result

    def _update_stats(self, rule: WorkflowRule, result: ExecutionResult) -> None:
        rule.execution_count += 1
        if result.result == "success":
            rule.success_count += 1
        elif result.result in ("partial_success", "failed"):
            rule.failure_count += 1
        rule.last_executed = self.clock()
        rule.last_error = result.error_message

    def _log_execution(self, result: ExecutionResult) -> None:
        try:
            self.sink.insert_execution_log(result.to_dict())
        except Exception:
            logger.exception("Could not write execution log for workflow %s", result.workflow_id)

    # -- actions ------------------------------------------------------------

    def execute_action(self, action: Action, trigger_data: dict) -> ActionResult:
        """Dispatch one action; failures are captured on the ActionResult."""
        action_type = ACTION_ALIASES.get(action.type, action.type)
        handler = self._handlers.get(action_type)
        if handler is None:
            return ActionResult(action_type=action.type, error=f"Unknown action type: {action.type}")
        try:
            return handler(dict(action.parameters), trigger_data)
        except Exception as exc:
            logger.exception("Action %s failed", action_type)
            return ActionResult(action_type=action_type, error=str(exc))

    def _inserted(self, action_type: str, id_key: str, row_id: int) -> ActionResult:
        return ActionResult(
            action_type=action_type,
            success=True,
            affected_records=1,
            details={id_key: row_id},
        )

    def _create_alert(self, params: dict, trigger_data: dict) -> ActionResult:
        row_id = self.sink.insert_alert(
            params["alert_type"],
            params.get("severity", "medium"),
            params["title"],
            params.get("message", ""),
            params.get("line_shift"),
        )
        return self._inserted("create_alert", "alert_id", row_id)

    def _adjust_parameters(self, params: dict, trigger_data: dict) -> ActionResult:
        target = params["target_line_shift"]
        on_date = params.get("date") or self.clock().date()
        if isinstance(on_date, str):
            on_date = date.fromisoformat(on_date)

        affected = 0
        for adjustment in params.get("adjustments", []):
            change = float(adjustment["change"])
            if adjustment.get("type", "percentage") == "percentage":
                transform = lambda v, c=change: v * (1 + c / 100)
            else:
                transform = lambda v, c=change: v + c
            affected += self.sink.update_performance_field(
                target, on_date, adjustment["field"], transform
            )

        return ActionResult(
            action_type="adjust_parameters",
            success=affected > 0,
            error=None if affected > 0 else "No records updated",
            affected_records=affected,
            details={"target_line": target, "adjustments": params.get("adjustments", [])},
        )

    def _schedule_maintenance(self, params: dict, trigger_data: dict) -> ActionResult:
        scheduled = params.get("scheduled_date") or (self.clock().date() + timedelta(days=1))
        row_id = self.sink.insert_maintenance_schedule(
            line_shift=params.get("line_shift"),
            maintenance_type=params.get("maintenance_type", "preventive"),
            scheduled_date=scheduled,
            priority=params.get("priority", "medium"),
            description=params.get("description", ""),
        )
        return self._inserted("schedule_maintenance", "maintenance_id", row_id)

    def _notify_supervisor(self, params: dict, trigger_data: dict) -> ActionResult:
        row_id = self.sink.insert_notification(
            supervisor_id=params.get("supervisor_id"),
            notification_type=params.get("notification_type", "workflow"),
            title=params["title"],
            message=params.get("message", ""),
            priority=params.get("priority", "medium"),
        )
        return self._inserted("notify_supervisor", "notification_id", row_id)

    def _optimize_resources(self, params: dict, trigger_data: dict) -> ActionResult:
        optimization_type = params.get("optimization_type")
        if optimization_type not in RESOURCE_OPTIMIZATION_TYPES:
            return ActionResult(
                action_type="optimize_resource_allocation",
                error=f"No optimizations applied for type {optimization_type!r}",
            )
        suggestion = OptimizationSuggestion(
            suggestion_type="resource_optimization",
            title=f"Resource optimization: {optimization_type.replace('_', ' ')}",
            description=params.get("description", "Raised by workflow trigger"),
            priority=params.get("priority", "medium"),
            implementation_effort=params.get("implementation_effort", "medium"),
            target_line_shift=params.get("line_shift"),
            estimated_impact={"trigger": trigger_data.get("conditions", [])},
        )
        row_id = self.sink.insert_optimization_suggestion(suggestion)
        return self._inserted("optimize_resource_allocation", "suggestion_id", row_id)

    def _generate_report(self, params: dict, trigger_data: dict) -> ActionResult:
        row_id = self.sink.insert_report_request(
            report_type=params["report_type"],
            parameters=params.get("parameters") or {},
            created_by=self.run_by,
        )
        return self._inserted("generate_report", "report_id", row_id)

    def _quality_checkpoint(self, params: dict, trigger_data: dict) -> ActionResult:
        row_id = self.sink.insert_quality_measurement(
            checkpoint_id=params["checkpoint_id"],
            line_shift=params.get("line_shift"),
            date=self.clock().date(),
            shift=params.get("shift"),
            measure_value=params.get("measure_value"),
            is_conforming=bool(params.get("is_conforming", False)),
            operator_name=params.get("operator_name", self.run_by),
        )
        return self._inserted("quality_control_checkpoint", "measurement_id", row_id)

    def _escalate_issue(self, params: dict, trigger_data: dict) -> ActionResult:
        row_id = self.sink.insert_escalation(
            issue_id=params.get("issue_id"),
            escalated_to=params.get("escalated_to"),
            escalation_level=params.get("escalation_level", "supervisor"),
            reason=params.get("reason", ""),
            status="pending",
            escalated_by=self.run_by,
        )
        return self._inserted("escalate_issue", "escalation_id", row_id)


def _classify(outcomes: Sequence[ActionResult]) -> str:
    succeeded = sum(1 for o in outcomes if o.success)
    if succeeded == len(outcomes):
        return "success"
    if succeeded > 0:
        return "partial_success"
    return "failed"


def workflow_statistics(rules: Sequence[WorkflowRule]) -> dict:
    """Totals across rules plus the mean per-rule success rate (percent).

    A rule that has never executed counts as 0 % in the mean.
    """
    return {
        "total_workflows": len(rules),
        "active_workflows": sum(1 for r in rules if r.is_active),
        "total_executions": sum(r.execution_count for r in rules),
        "total_successes": sum(r.success_count for r in rules),
        "total_failures": sum(r.failure_count for r in rules),
        "avg_success_rate": mean(
            safe_div(r.success_count, r.execution_count) * 100 for r in rules
        ),
    }
