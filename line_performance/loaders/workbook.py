"""
Row source reading an Excel workbook of line/shift observations.

Expected structure:
    Sheet "Performance": a header row (found by signature within the first
        20 rows) followed by one row per line/shift/date. Headers are
        matched in snake_case, so "Line Shift", "line_shift" and "LINE SHIFT"
        are equivalent; known aliases are listed in _PERFORMANCE_ALIASES.
    Sheet "Quality" (optional): checkpoint measurements, one per row.

Rows without a line/shift or a parseable date are skipped with a warning.
"""

import logging
from datetime import date
from pathlib import Path

import openpyxl

from ..models import PerformanceRecord, QualityMeasurement
from .sources import DataSourceError, RecordFilter, in_range
from .utils import find_header_row, normalise_date, parse_bool, safe_float, safe_int, to_snake_case

logger = logging.getLogger(__name__)

PERFORMANCE_SHEET = "Performance"
QUALITY_SHEET = "Quality"

_PERFORMANCE_SIGNATURE = {"line_shift", "date", "plan", "actual_output", "manpower"}
_QUALITY_SIGNATURE = {"checkpoint_id", "is_conforming", "defect_description"}

_PERFORMANCE_ALIASES = {
    "line": "line_shift",
    "line_per_shift": "line_shift",
    "actual": "actual_output",
    "output": "actual_output",
    "mp": "manpower",
    "no_ot_mp": "no_ot_manpower",
    "ot_mp": "ot_manpower",
    "downtime": "downtime_minutes",
    "line_utilization": "utilization_pct",
    "line_utilization_pct": "utilization_pct",
    "utilization": "utilization_pct",
}

_QUALITY_ALIASES = {
    "checkpoint": "checkpoint_id",
    "conforming": "is_conforming",
    "category": "process_category",
    "defect": "defect_description",
}

_INT_FIELDS = {"manpower", "absent", "separated", "no_ot_manpower", "ot_manpower"}
_FLOAT_FIELDS = {
    "ot_hours", "plan", "actual_output", "output_hours", "circuit_output",
    "downtime_minutes", "maintenance_cost", "material_cost", "downtime_cost",
}


def _read_table(wb, sheet_name: str, signature: set[str], aliases: dict[str, str]) -> list[dict]:
    """Return the sheet's data rows as dicts keyed by canonical column name."""
    ws = wb[sheet_name]
    header_row = find_header_row(ws, signature)
    if header_row is None:
        raise DataSourceError(f"No header row found in sheet {sheet_name!r}")

    header = next(ws.iter_rows(min_row=header_row, max_row=header_row, values_only=True))
    columns = []
    for cell in header:
        name = to_snake_case(cell) if cell is not None else None
        columns.append(aliases.get(name, name))

    rows = []
    for values in ws.iter_rows(min_row=header_row + 1, values_only=True):
        if all(v is None for v in values):
            continue
        rows.append({col: v for col, v in zip(columns, values) if col})
    return rows


def _to_performance(row: dict) -> PerformanceRecord | None:
    line_shift = row.get("line_shift")
    day = normalise_date(row.get("date"))
    if not line_shift or day is None:
        logger.warning("Skipping performance row without line/shift or date: %s", row)
        return None

    kwargs = {"line_shift": str(line_shift).strip(), "date": day}
    for name in ("shift", "leader"):
        if row.get(name) is not None:
            kwargs[name] = str(row[name]).strip()
    for name in _INT_FIELDS:
        kwargs[name] = safe_int(row.get(name))
    for name in _FLOAT_FIELDS:
        kwargs[name] = safe_float(row.get(name), 0.0)
    kwargs["utilization_pct"] = safe_float(row.get("utilization_pct"))
    return PerformanceRecord(**kwargs)


def _to_quality(row: dict) -> QualityMeasurement | None:
    checkpoint = row.get("checkpoint_id")
    if checkpoint is None:
        return None
    return QualityMeasurement(
        checkpoint_id=str(checkpoint).strip(),
        is_conforming=parse_bool(row.get("is_conforming")),
        date=normalise_date(row.get("date")),
        checkpoint_name=str(row.get("checkpoint_name") or ""),
        process_category=str(row.get("process_category") or ""),
        line_shift=str(row.get("line_shift") or ""),
        defect_description=str(row.get("defect_description") or ""),
        corrective_action=str(row.get("corrective_action") or ""),
        measure_value=safe_float(row.get("measure_value")),
    )


class WorkbookRowSource:
    """Row source over an .xlsx file, loaded once on first fetch."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._performance: list[PerformanceRecord] | None = None
        self._quality: list[QualityMeasurement] | None = None

    def _load(self) -> None:
        if self._performance is not None:
            return
        try:
            wb = openpyxl.load_workbook(self.path, read_only=True, data_only=True)
        except Exception as exc:
            logger.exception("Failed to open workbook: %s", self.path)
            raise DataSourceError(f"Cannot open workbook {self.path}: {exc}") from exc

        try:
            if PERFORMANCE_SHEET not in wb.sheetnames:
                raise DataSourceError(f"Sheet {PERFORMANCE_SHEET!r} missing from {self.path}")
            rows = _read_table(wb, PERFORMANCE_SHEET, _PERFORMANCE_SIGNATURE, _PERFORMANCE_ALIASES)
            performance = [r for r in map(_to_performance, rows) if r is not None]

            quality = []
            if QUALITY_SHEET in wb.sheetnames:
                rows = _read_table(wb, QUALITY_SHEET, _QUALITY_SIGNATURE, _QUALITY_ALIASES)
                quality = [m for m in map(_to_quality, rows) if m is not None]
        finally:
            wb.close()

        self._performance, self._quality = performance, quality

        logger.info(
            "Loaded %d performance rows and %d quality rows from %s",
            len(self._performance), len(self._quality), self.path.name,
        )

    def fetch_performance_records(
        self,
        date_from: date | None,
        date_to: date | None,
        filters: RecordFilter | None = None,
    ) -> list[PerformanceRecord]:
        self._load()
        filters = filters or RecordFilter()
        return [
            r for r in self._performance
            if in_range(r.date, date_from, date_to) and filters.matches_performance(r)
        ]

    def fetch_quality_measurements(
        self,
        date_from: date | None,
        date_to: date | None,
        filters: RecordFilter | None = None,
    ) -> list[QualityMeasurement]:
        self._load()
        filters = filters or RecordFilter()
        return [
            m for m in self._quality
            if (m.date is None or in_range(m.date, date_from, date_to))
            and filters.matches_quality(m)
        ]
