"""
Unit tests for the typed records.

Run: python -m pytest tests/test_models.py -v
"""

from datetime import date

from line_performance.models import PerformanceRecord, QualityMeasurement


class TestQualityMeasurement:
    def test_date_is_optional(self):
        m = QualityMeasurement("QC-01", True)
        assert m.date is None
        assert m.to_dict()["date"] is None

    def test_date_serialises_as_iso(self):
        m = QualityMeasurement("QC-01", False, date=date(2024, 3, 6))
        assert m.to_dict()["date"] == "2024-03-06"


class TestPerformanceRecord:
    def test_field_order_preserved(self):
        row = PerformanceRecord("L1_DAY", date(2024, 3, 6)).to_dict()
        assert list(row)[:3] == ["line_shift", "date", "shift"]
        assert row["utilization_pct"] is None
