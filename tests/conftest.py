"""Shared builders for line performance tests."""

from datetime import date

import pytest

from line_performance.models import PerformanceRecord, QualityMeasurement, WorkflowRule

DAY = date(2024, 3, 6)  # a Wednesday


def build_record(**overrides) -> PerformanceRecord:
    """40 regular heads (320 used hours), running exactly to plan."""
    fields = {
        "line_shift": "L1_DAY",
        "date": DAY,
        "shift": "DAY",
        "leader": "A. Moyo",
        "manpower": 40,
        "absent": 0,
        "separated": 0,
        "no_ot_manpower": 40,
        "ot_manpower": 0,
        "ot_hours": 0.0,
        "plan": 100.0,
        "actual_output": 100.0,
        "output_hours": 320.0,
        "circuit_output": 640.0,
        "downtime_minutes": 0.0,
    }
    fields.update(overrides)
    return PerformanceRecord(**fields)


def build_measurement(checkpoint_id="QC-01", conforming=True, **overrides) -> QualityMeasurement:
    fields = {
        "checkpoint_id": checkpoint_id,
        "is_conforming": conforming,
        "date": DAY,
        "checkpoint_name": f"Checkpoint {checkpoint_id}",
        "process_category": "Assembly",
        "line_shift": "L1_DAY",
    }
    fields.update(overrides)
    return QualityMeasurement(**fields)


def build_rule(conditions, actions, **overrides) -> WorkflowRule:
    definition = {
        "id": 1,
        "name": "Test rule",
        "execution_frequency": "real_time",
        "trigger_conditions": conditions,
        "actions": actions,
    }
    definition.update(overrides)
    return WorkflowRule.from_dict(definition)


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def make_measurement():
    return build_measurement


@pytest.fixture
def make_rule():
    return build_rule
