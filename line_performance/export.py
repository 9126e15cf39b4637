"""
Render a Report into a downloadable payload.

Formats: csv, html-excel (an HTML table served as .xls), html-pdf (a
printable HTML page) and json. Table columns follow the key order of the
first data row.
"""

import csv
import html
import io
import logging
from dataclasses import dataclass

import pandas as pd

from .config import EXPORT_FORMATS, PLANT_NAME
from .reports import Report

logger = logging.getLogger(__name__)


class UnsupportedFormat(ValueError):
    pass


@dataclass(frozen=True)
class ExportedReport:
    content: bytes
    content_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


def _frame(report: Report) -> pd.DataFrame:
    return pd.DataFrame(report.data, columns=report.columns)


def _generated_line(report: Report) -> str:
    return f"Generated: {report.generated_at:%Y-%m-%d %H:%M:%S} by {report.generated_by}"


def to_csv(report: Report) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([report.title])
    writer.writerow([report.subtitle])
    writer.writerow([_generated_line(report)])
    writer.writerow([])
    if report.error is not None:
        writer.writerow([f"Error: {report.error}"])
    elif report.data:
        buffer.write(_frame(report).to_csv(index=False, lineterminator="\n"))
    return buffer.getvalue()


def _table_html(report: Report) -> str:
    if report.error is not None:
        return f"<p class='error'>Error: {html.escape(report.error)}</p>"
    if not report.data:
        return "<p>No data for the selected range.</p>"
    return _frame(report).to_html(index=False, border=1, na_rep="")


def to_excel_html(report: Report) -> str:
    return (
        "<html><head><meta charset='utf-8'></head><body>"
        f"<h2>{html.escape(report.title)}</h2>"
        f"<p>{html.escape(report.subtitle)}</p>"
        f"<p>{html.escape(_generated_line(report))}</p>"
        f"{_table_html(report)}"
        "</body></html>"
    )


def _summary_html(report: Report) -> str:
    if not report.summary:
        return ""
    items = "".join(
        f"<li><strong>{html.escape(str(k).replace('_', ' ').title())}:</strong> "
        f"{html.escape(f'{v:,.2f}' if isinstance(v, float) else str(v))}</li>"
        for k, v in report.summary.items()
    )
    return f"<div class='summary'><h3>Summary</h3><ul>{items}</ul></div>"


def _recommendations_html(report: Report) -> str:
    if not report.recommendations:
        return ""
    items = "".join(f"<li>{html.escape(r)}</li>" for r in report.recommendations)
    return f"<div class='recommendations'><h3>Recommendations</h3><ul>{items}</ul></div>"


def to_printable_html(report: Report) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<title>{html.escape(report.title)}</title>"
        "<style>"
        "body{font-family:Arial,sans-serif;margin:20px}"
        "table{border-collapse:collapse;width:100%}"
        "th,td{border:1px solid #ddd;padding:6px;text-align:left}"
        "th{background:#f2f2f2}"
        ".summary,.recommendations{background:#f9f9f9;padding:12px;margin:16px 0}"
        "</style></head><body>"
        f"<h1>{html.escape(PLANT_NAME)}</h1>"
        f"<h2>{html.escape(report.title)}</h2>"
        f"<p>{html.escape(report.subtitle)}<br>{html.escape(_generated_line(report))}</p>"
        f"{_summary_html(report)}"
        f"{_table_html(report)}"
        f"{_recommendations_html(report)}"
        "</body></html>"
    )


_RENDERERS = {
    "csv": (to_csv, "text/csv", "csv"),
    "html-excel": (to_excel_html, "application/vnd.ms-excel", "xls"),
    "html-pdf": (to_printable_html, "text/html", "html"),
    "json": (lambda report: report.to_json(indent=2), "application/json", "json"),
}


def render(report: Report, fmt: str, filename: str | None = None) -> ExportedReport:
    """Render report as fmt (one of EXPORT_FORMATS).

    Parameters
    ----------
    report : Assembled report.
    fmt : Export format name.
    filename : Base name without extension; defaults to
        report_<YYYY-MM-DD_HHMMSS> from the generation time.
    """
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedFormat(f"Unsupported export format: {fmt!r}")
    renderer, content_type, extension = _RENDERERS[fmt]
    base = filename or f"report_{report.generated_at:%Y-%m-%d_%H%M%S}"
    content = renderer(report).encode("utf-8")
    logger.info("Exported %s as %s (%d bytes)", report.report_type, fmt, len(content))
    return ExportedReport(content, content_type, f"{base}.{extension}")
