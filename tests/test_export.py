"""
Unit tests for report rendering.

Run: python -m pytest tests/test_export.py -v
"""

import json
from datetime import datetime

import pytest

from line_performance.export import UnsupportedFormat, render
from line_performance.reports import Report


def _report(**overrides):
    fields = {
        "report_type": "production_summary",
        "title": "Production Summary Report",
        "subtitle": "Date Range: 2024-03-14 to 2024-03-20",
        "generated_at": datetime(2024, 3, 20, 14, 5, 9),
        "generated_by": "mgr",
        "data": [
            {"line_shift": "L1_DAY", "date": "2024-03-20", "efficiency": 0.95},
            {"line_shift": "L2_DAY", "date": "2024-03-20", "efficiency": 0.7},
        ],
        "summary": {"total_lines": 2, "average_efficiency": 0.825},
        "recommendations": ["Review <night> staffing & training"],
    }
    fields.update(overrides)
    return Report(**fields)


class TestCSV:
    def test_header_block_then_table(self):
        out = render(_report(), "csv")
        lines = out.content.decode("utf-8").splitlines()
        assert lines[:5] == [
            "Production Summary Report",
            "Date Range: 2024-03-14 to 2024-03-20",
            "Generated: 2024-03-20 14:05:09 by mgr",
            "",
            "line_shift,date,efficiency",
        ]
        assert lines[5] == "L1_DAY,2024-03-20,0.95"
        assert out.content_type == "text/csv"
        assert out.filename == "report_2024-03-20_140509.csv"

    def test_error_report(self):
        out = render(_report(data=[], error="database unreachable"), "csv")
        assert "Error: database unreachable" in out.content.decode("utf-8")


class TestHTML:
    def test_excel_flavour(self):
        out = render(_report(), "html-excel", filename="weekly")
        html = out.content.decode("utf-8")
        assert out.content_type == "application/vnd.ms-excel"
        assert out.filename == "weekly.xls"
        assert out.content_disposition == 'attachment; filename="weekly.xls"'
        assert "<table" in html
        assert html.index("line_shift") < html.index("efficiency")

    def test_printable_includes_summary_and_escapes(self):
        html = render(_report(), "html-pdf").content.decode("utf-8")
        assert "Summary" in html
        assert "Average Efficiency" in html
        assert "Review &lt;night&gt; staffing &amp; training" in html

    def test_empty_data(self):
        html = render(_report(data=[]), "html-pdf").content.decode("utf-8")
        assert "No data for the selected range." in html


class TestJSON:
    def test_json_payload(self):
        out = render(_report(), "json")
        assert out.content_type == "application/json"
        decoded = json.loads(out.content)
        assert list(decoded["data"][0]) == ["line_shift", "date", "efficiency"]
        assert decoded["summary"]["average_efficiency"] == 0.825


class TestUnsupported:
    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormat):
            render(_report(), "docx")
