"""
Simulated data generator for the line performance pipeline.

Generates plausible line/shift records and checkpoint measurements from
typical assembly-line parameters. All values are synthetic.
"""

from datetime import date, timedelta

import numpy as np

from .formulas import used_labor_hours
from .models import PerformanceRecord, QualityMeasurement

DEFAULT_SEED = 42

# ---------------------------------------------------------------------------
# Typical line parameters (realistic ranges)
# ---------------------------------------------------------------------------
# line_shift: (leader, shift, manpower, plan, efficiency, completion, downtime)
_LINES = {
    "L1_DAY": ("A. Moyo", "DAY", 42, 1200, 0.92, 97, 20),
    "L1_NIGHT": ("T. Ncube", "NIGHT", 40, 1150, 0.85, 92, 35),
    "L2_DAY": ("R. Dube", "DAY", 38, 1000, 0.78, 86, 55),
    "L2_NIGHT": ("S. Banda", "NIGHT", 36, 950, 0.66, 78, 80),
    "L3_DAY": ("K. Phiri", "DAY", 30, 800, 0.88, 95, 25),
}

CIRCUITS_PER_UNIT = 2.4
MATERIAL_COST_PER_UNIT = 3.2
DOWNTIME_COST_PER_MINUTE = 18.0

# checkpoint_id: (name, process_category, defect_probability)
_CHECKPOINTS = {
    "QC-01": ("Incoming Inspection", "Receiving", 0.02),
    "QC-02": ("Solder Joint Check", "Assembly", 0.07),
    "QC-03": ("Torque Verification", "Assembly", 0.04),
    "QC-04": ("Functional Test", "Testing", 0.11),
    "QC-05": ("Final Visual", "Packing", 0.03),
}

_DEFECTS = {
    "Receiving": ["Damaged packaging", "Wrong part number"],
    "Assembly": ["Cold solder joint", "Missing screw", "Misaligned connector"],
    "Testing": ["Short circuit", "Open circuit", "Firmware mismatch"],
    "Packing": ["Label misprint", "Scratched housing"],
}

_CORRECTIVE_ACTIONS = [
    "Rework at station",
    "Operator retraining",
    "Fixture adjustment",
    "Supplier notified",
    "",
]


def generate_performance_records(
    start: date,
    days: int = 14,
    lines: list[str] | None = None,
    seed: int = DEFAULT_SEED,
) -> list[PerformanceRecord]:
    """Generate one record per line/shift per day.

    Parameters
    ----------
    start : First production date.
    days : Number of consecutive days.
    lines : Subset of line/shift names; all simulated lines if None.
    seed : RNG seed, for reproducible output.
    """
    rng = np.random.default_rng(seed)
    names = lines or list(_LINES)
    records = []

    for offset in range(days):
        day = start + timedelta(days=offset)
        for name in names:
            leader, shift, headcount, plan, eff_base, completion_base, downtime_base = _LINES[name]

            manpower = int(headcount + rng.integers(-2, 3))
            absent = int(rng.poisson(1.5))
            separated = int(rng.random() < 0.05)
            ot_manpower = int(rng.integers(0, 6))
            no_ot_manpower = max(manpower - absent - separated - ot_manpower, 0)
            ot_hours = float(rng.choice([2.0, 3.0, 4.0])) if ot_manpower else 0.0

            used = used_labor_hours(no_ot_manpower, ot_manpower, ot_hours)
            eff = float(np.clip(eff_base + rng.normal(0, 0.05), 0.3, 1.1))
            completion = float(np.clip(completion_base + rng.normal(0, 6), 40, 115))
            actual = round(plan * completion / 100)
            downtime = round(max(rng.normal(downtime_base, 15), 0.0), 1)

            records.append(PerformanceRecord(
                line_shift=name,
                date=day,
                shift=shift,
                leader=leader,
                manpower=manpower,
                absent=absent,
                separated=separated,
                no_ot_manpower=no_ot_manpower,
                ot_manpower=ot_manpower,
                ot_hours=ot_hours,
                plan=float(plan),
                actual_output=float(actual),
                output_hours=round(used * eff, 2),
                circuit_output=round(actual * CIRCUITS_PER_UNIT * rng.uniform(0.95, 1.05), 1),
                downtime_minutes=downtime,
                utilization_pct=round(float(np.clip(rng.normal(97, 2), 80, 100)), 1),
                maintenance_cost=round(float(rng.uniform(100, 400)), 2),
                material_cost=round(actual * MATERIAL_COST_PER_UNIT, 2),
                downtime_cost=round(downtime * DOWNTIME_COST_PER_MINUTE, 2),
            ))

    return records


def generate_quality_measurements(
    start: date,
    days: int = 14,
    per_checkpoint: int = 4,
    seed: int = DEFAULT_SEED,
) -> list[QualityMeasurement]:
    """Generate per_checkpoint measurements per checkpoint per day."""
    rng = np.random.default_rng(seed + 1)
    lines = list(_LINES)
    measurements = []

    for offset in range(days):
        day = start + timedelta(days=offset)
        for checkpoint_id, (name, category, defect_p) in _CHECKPOINTS.items():
            for _ in range(per_checkpoint):
                conforming = bool(rng.random() >= defect_p)
                measurements.append(QualityMeasurement(
                    checkpoint_id=checkpoint_id,
                    is_conforming=conforming,
                    date=day,
                    checkpoint_name=name,
                    process_category=category,
                    line_shift=str(rng.choice(lines)),
                    defect_description="" if conforming else str(rng.choice(_DEFECTS[category])),
                    corrective_action="" if conforming else str(rng.choice(_CORRECTIVE_ACTIONS)),
                    measure_value=round(float(rng.normal(100, 2)), 2),
                ))

    return measurements
