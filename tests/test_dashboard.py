"""
Unit tests for dashboard outputs and the simulated data generator.

Run: python -m pytest tests/test_dashboard.py -v
"""

from datetime import date

import pandas as pd
import pytest

from line_performance.config import PLANT_NAME
from line_performance.dashboard import (
    get_line_shift_averages,
    get_manager_overview,
    get_rating_distribution,
    get_ranking_overview,
    get_top_performers,
)
from line_performance.scoring import score_records
from line_performance.simulator import generate_performance_records, generate_quality_measurements

TODAY = date(2024, 3, 20)


@pytest.fixture
def metrics(make_record):
    # total scores: 100, 90, 80, 56 today; the February row scores 100
    return score_records([
        make_record(line_shift="L1_DAY", date=TODAY),
        make_record(line_shift="L2_DAY", date=TODAY, actual_output=50.0),
        make_record(line_shift="L3_DAY", date=TODAY, actual_output=0.0),
        make_record(line_shift="L1_NIGHT", date=TODAY, actual_output=0.0, absent=20),
        make_record(line_shift="L1_DAY", date=date(2024, 2, 1)),
    ])


# =====================================================================
# Ranking and averages
# =====================================================================

class TestRankingOverview:
    def test_rows_in_overall_rank_order(self, metrics):
        df = get_ranking_overview(metrics, today=TODAY)
        assert df["rank"].tolist() == [1, 2, 3, 4, 5]
        assert df["line_shift"].tolist() == ["L1_DAY", "L1_DAY", "L2_DAY", "L3_DAY", "L1_NIGHT"]
        assert df["total_score"].tolist() == pytest.approx([100.0, 100.0, 90.0, 80.0, 56.0])

    def test_rows_outside_window_have_no_rank(self, metrics):
        df = get_ranking_overview(metrics, today=TODAY)
        february = df[df["date"] == "2024-02-01"].iloc[0]
        assert pd.isna(february["monthly_rank"])
        assert pd.isna(february["daily_rank"])
        assert df.iloc[2]["monthly_rank"] == 2

    def test_empty(self):
        assert get_ranking_overview([], today=TODAY).empty


class TestLineShiftAverages:
    def test_best_average_first(self, metrics):
        df = get_line_shift_averages(metrics)
        assert df["group"].tolist() == ["L1_DAY", "L2_DAY", "L3_DAY", "L1_NIGHT"]
        assert df.iloc[0]["count"] == 2
        assert df.iloc[-1]["total_score_avg"] == pytest.approx(56.0)


# =====================================================================
# Cards
# =====================================================================

class TestCards:
    def test_top_three(self, metrics):
        top = get_top_performers(metrics)
        assert [t["rank"] for t in top] == [1, 2, 3]
        assert [t["line_shift"] for t in top] == ["L1_DAY", "L1_DAY", "L2_DAY"]

    def test_rating_distribution_lists_every_band(self, metrics):
        assert get_rating_distribution(metrics) == {
            "Excellent": 3, "Good": 1, "Needs Improvement": 1,
        }

    def test_rating_distribution_empty(self):
        assert get_rating_distribution([]) == {
            "Excellent": 0, "Good": 0, "Needs Improvement": 0,
        }

    def test_manager_overview(self, metrics, make_rule):
        busy = make_rule([], [])
        busy.execution_count, busy.success_count, busy.failure_count = 4, 3, 1
        idle = make_rule([], [], id=2, name="Idle")
        idle.is_active = False

        overview = get_manager_overview(metrics, [busy, idle], today=TODAY)
        assert overview["plant"] == PLANT_NAME
        assert overview["record_count"] == 5
        assert overview["averages"]["count"] == 5
        assert overview["averages"]["total_score_max"] == pytest.approx(100.0)
        assert [r["rank"] for r in overview["ranking"]] == [1, 2, 3, 4, 5]
        assert len(overview["top_performers"]) == 3
        assert overview["workflows"]["active_workflows"] == 1
        assert overview["workflows"]["total_executions"] == 4
        assert overview["workflows"]["avg_success_rate"] == pytest.approx(37.5)


# =====================================================================
# Simulator
# =====================================================================

class TestSimulator:
    def test_one_record_per_line_per_day(self):
        records = generate_performance_records(TODAY, days=3)
        assert len(records) == 15
        assert {r.date for r in records} == {TODAY, date(2024, 3, 21), date(2024, 3, 22)}

    def test_seed_is_reproducible(self):
        first = generate_performance_records(TODAY, days=2, seed=7)
        second = generate_performance_records(TODAY, days=2, seed=7)
        assert first == second

    def test_line_subset(self):
        records = generate_performance_records(TODAY, days=2, lines=["L3_DAY"])
        assert {r.line_shift for r in records} == {"L3_DAY"}

    def test_headcount_is_consistent(self):
        for r in generate_performance_records(TODAY, days=5):
            assert r.no_ot_manpower + r.ot_manpower <= r.manpower
            assert r.ot_hours == 0.0 or r.ot_manpower > 0

    def test_quality_measurements(self):
        measurements = generate_quality_measurements(TODAY, days=2, per_checkpoint=3)
        assert len(measurements) == 2 * 5 * 3
        for m in measurements:
            assert bool(m.defect_description) is (not m.is_conforming)
