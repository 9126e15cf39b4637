"""
Typed records passed between the pipeline stages.

Records are plain dataclasses; dict conversion happens only at the
serialisation boundary via to_dict(), which preserves field order so that
exported column headers follow declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any


def _plain(value: Any) -> Any:
    """Make a value JSON-safe without losing numeric precision."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalars coming back from pandas aggregations
        return value.item()
    return value


@dataclass(frozen=True)
class PerformanceRecord:
    """One line/shift/date observation as entered on the floor."""

    line_shift: str
    date: date
    shift: str = ""
    leader: str = ""
    manpower: int = 0
    absent: int = 0
    separated: int = 0
    no_ot_manpower: int = 0
    ot_manpower: int = 0
    ot_hours: float = 0.0
    plan: float = 0.0
    actual_output: float = 0.0
    output_hours: float = 0.0
    circuit_output: float = 0.0
    downtime_minutes: float = 0.0
    utilization_pct: float | None = None
    maintenance_cost: float = 0.0
    material_cost: float = 0.0
    downtime_cost: float = 0.0

    def to_dict(self) -> dict:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class QualityMeasurement:
    checkpoint_id: str
    is_conforming: bool
    date: date | None = None
    checkpoint_name: str = ""
    process_category: str = ""
    line_shift: str = ""
    defect_description: str = ""
    corrective_action: str = ""
    measure_value: float | None = None

    def to_dict(self) -> dict:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class ComputedMetrics:
    """Metrics derived from a PerformanceRecord, computed fresh per request."""

    record: PerformanceRecord
    used_labor_hours: float
    efficiency: float
    plan_completion: float
    cph: float
    absent_rate: float
    separation_rate: float
    availability: float
    performance: float
    quality: float
    oee: float
    absent_rate_score: float = 0.0
    separation_rate_score: float = 0.0
    plan_completion_score: float = 0.0
    cph_score: float = 0.0
    total_score: float = 0.0
    performance_rating: str = ""

    @property
    def line_shift(self) -> str:
        return self.record.line_shift

    @property
    def date(self) -> date:
        return self.record.date

    def to_dict(self) -> dict:
        """Flatten identifiers, counters and derived metrics into one row."""
        row = {
            "line_shift": self.record.line_shift,
            "date": _plain(self.record.date),
            "shift": self.record.shift,
            "manpower": self.record.manpower,
            "absent": self.record.absent,
            "separated": self.record.separated,
            "plan": self.record.plan,
            "actual_output": self.record.actual_output,
            "downtime_minutes": self.record.downtime_minutes,
        }
        for f in fields(self):
            if f.name == "record":
                continue
            row[f.name] = _plain(getattr(self, f.name))
        return row


@dataclass
class RankedEntity:
    """A ComputedMetrics carrying one rank per ranking window."""

    metrics: ComputedMetrics
    ranks: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        row = self.metrics.to_dict()
        row.update(self.ranks)
        return row


@dataclass
class OptimizationSuggestion:
    suggestion_type: str
    title: str
    description: str
    priority: str
    implementation_effort: str
    target_line_shift: str | None = None
    estimated_impact: dict[str, Any] = field(default_factory=dict)
    required_resources: list[str] = field(default_factory=list)
    success_metrics: list[str] = field(default_factory=list)
    status: str = "pending"

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Condition:
    metric: str
    operator: str
    threshold: float
    timeframe: str = "current"


@dataclass(frozen=True)
class Action:
    type: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowRule:
    """A named automation definition plus its run statistics."""

    id: int
    name: str
    conditions: list[Condition] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    execution_frequency: str = "daily"
    workflow_type: str = "performance_monitoring"
    is_active: bool = True
    priority: int = 1
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_executed: datetime | None = None
    last_error: str | None = None

    @classmethod
    def from_dict(cls, definition: dict) -> "WorkflowRule":
        """Build a rule from a stored definition (see config.DEFAULT_WORKFLOWS)."""
        conditions = [
            Condition(
                metric=c["metric"],
                operator=c["operator"],
                threshold=c["threshold"],
                timeframe=c.get("timeframe", "current"),
            )
            for c in definition.get("trigger_conditions") or []
        ]
        actions = [
            Action(type=a["type"], parameters=dict(a.get("parameters") or {}))
            for a in definition.get("actions") or []
        ]
        return cls(
            id=definition["id"],
            name=definition["name"],
            conditions=conditions,
            actions=actions,
            execution_frequency=definition.get("execution_frequency", "daily"),
            workflow_type=definition.get("workflow_type", "performance_monitoring"),
            is_active=definition.get("is_active", True),
            priority=definition.get("priority", 1),
        )


@dataclass
class ActionResult:
    action_type: str
    success: bool = False
    error: str | None = None
    affected_records: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ExecutionResult:
    workflow_id: int
    workflow_name: str
    start_time: datetime
    state: str = "idle"
    result: str = "failed"
    trigger_data: dict[str, Any] | None = None
    actions_executed: list[ActionResult] = field(default_factory=list)
    error_message: str | None = None
    affected_records: int = 0
    execution_time_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "start_time": _plain(self.start_time),
            "state": self.state,
            "result": self.result,
            "trigger_data": self.trigger_data,
            "actions_executed": [a.to_dict() for a in self.actions_executed],
            "error_message": self.error_message,
            "affected_records": self.affected_records,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(frozen=True)
class Principal:
    username: str
    role: str
