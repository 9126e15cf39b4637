"""
Unit tests for grouped aggregation.

Run: python -m pytest tests/test_aggregation.py -v
"""

from datetime import date

import pytest

from line_performance.aggregation import (
    GROUP_COLUMN,
    aggregate,
    by_line_shift,
    records,
    summarize,
)
from line_performance.scoring import score_records


class TestAggregate:
    def _rows(self):
        return [
            {"line_shift": "L2_DAY", "efficiency": 0.6},
            {"line_shift": "L1_DAY", "efficiency": 0.8},
            {"line_shift": "L2_DAY", "efficiency": 1.0},
        ]

    def test_groups_in_first_seen_order(self):
        df = aggregate(self._rows(), by_line_shift, fields=["efficiency"])
        assert list(df[GROUP_COLUMN]) == ["L2_DAY", "L1_DAY"]

    def test_statistics(self):
        df = aggregate(self._rows(), by_line_shift, fields=["efficiency"])
        l2 = df[df[GROUP_COLUMN] == "L2_DAY"].iloc[0]
        assert l2["count"] == 2
        assert l2["efficiency_sum"] == pytest.approx(1.6)
        assert l2["efficiency_avg"] == pytest.approx(0.8)
        assert l2["efficiency_min"] == pytest.approx(0.6)
        assert l2["efficiency_max"] == pytest.approx(1.0)

    def test_single_row_group_has_zero_std(self):
        df = aggregate(self._rows(), by_line_shift, fields=["efficiency"])
        l1 = df[df[GROUP_COLUMN] == "L1_DAY"].iloc[0]
        assert l1["efficiency_std"] == 0.0

    def test_column_key(self):
        df = aggregate(self._rows(), "line_shift", fields=["efficiency"])
        assert list(df["line_shift"]) == ["L2_DAY", "L1_DAY"]

    def test_missing_field_treated_as_zero(self):
        df = aggregate(self._rows(), by_line_shift, fields=["efficiency", "oee"])
        assert (df["oee_avg"] == 0.0).all()

    def test_empty_input_keeps_columns(self):
        df = aggregate([], by_line_shift, fields=["efficiency"])
        assert df.empty
        assert list(df.columns) == [
            GROUP_COLUMN, "count", "efficiency_sum", "efficiency_avg",
            "efficiency_min", "efficiency_max", "efficiency_std",
        ]

    def test_scored_rows(self, make_record):
        scored = score_records([
            make_record(line_shift="A", actual_output=80.0),
            make_record(line_shift="A", actual_output=90.0),
            make_record(line_shift="B", actual_output=100.0),
        ])
        df = aggregate(scored, by_line_shift)
        a = df[df[GROUP_COLUMN] == "A"].iloc[0]
        assert a["plan_completion_avg"] == pytest.approx(85.0)


class TestSummarize:
    def test_plain_python_values(self):
        out = summarize([{"efficiency": 0.5}, {"efficiency": 1.0}], fields=["efficiency"])
        assert out["count"] == 2
        assert isinstance(out["count"], int)
        assert isinstance(out["efficiency_avg"], float)
        assert out["efficiency_avg"] == pytest.approx(0.75)

    def test_empty_is_zeroed(self):
        out = summarize([], fields=["efficiency"])
        assert out["count"] == 0
        assert out["efficiency_avg"] == 0.0


class TestRecords:
    def test_native_scalars_and_order(self):
        df = aggregate(
            [{"line_shift": "A", "efficiency": 1.0, "date": date(2024, 1, 1)}],
            by_line_shift, fields=["efficiency"],
        )
        rows = records(df)
        assert list(rows[0].keys())[:2] == [GROUP_COLUMN, "count"]
        assert type(rows[0]["count"]) is int
        assert type(rows[0]["efficiency_avg"]) is float
