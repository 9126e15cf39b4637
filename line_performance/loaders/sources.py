"""
Row sources and write sinks consumed by the scoring pipeline.

A row source resolves a date range plus a RecordFilter into typed records;
how the rows are stored is its own concern. A write sink accepts the
fire-and-forget inserts produced by workflow actions and optimisation runs.
InMemoryStore implements both and is what tests and the demo pipeline use.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterable, Protocol

from ..models import OptimizationSuggestion, PerformanceRecord, QualityMeasurement

logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """Raised when a row source cannot produce rows."""


@dataclass(frozen=True)
class RecordFilter:
    """Parameterised predicate over records; empty tuples match everything."""

    lines: tuple[str, ...] = ()
    shifts: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()

    def matches_performance(self, record: PerformanceRecord) -> bool:
        if self.lines and record.line_shift not in self.lines:
            return False
        if self.shifts and record.shift not in self.shifts:
            return False
        return True

    def matches_quality(self, measurement: QualityMeasurement) -> bool:
        if self.categories and measurement.process_category not in self.categories:
            return False
        if self.lines and measurement.line_shift and measurement.line_shift not in self.lines:
            return False
        return True


def in_range(day: date | None, date_from: date | None, date_to: date | None) -> bool:
    if day is None:
        return date_from is None and date_to is None
    if date_from is not None and day < date_from:
        return False
    if date_to is not None and day > date_to:
        return False
    return True


class RowSource(Protocol):
    def fetch_performance_records(
        self,
        date_from: date | None,
        date_to: date | None,
        filters: RecordFilter | None = None,
    ) -> list[PerformanceRecord]: ...

    def fetch_quality_measurements(
        self,
        date_from: date | None,
        date_to: date | None,
        filters: RecordFilter | None = None,
    ) -> list[QualityMeasurement]: ...


class WriteSink(Protocol):
    def insert_alert(self, alert_type: str, severity: str, title: str, message: str,
                     target_line: str | None) -> int: ...

    def insert_maintenance_schedule(self, **fields: Any) -> int: ...

    def insert_optimization_suggestion(self, suggestion: OptimizationSuggestion) -> int: ...

    def insert_notification(self, **fields: Any) -> int: ...

    def insert_report_request(self, **fields: Any) -> int: ...

    def insert_quality_measurement(self, **fields: Any) -> int: ...

    def insert_escalation(self, **fields: Any) -> int: ...

    def insert_execution_log(self, entry: dict) -> int: ...

    def update_performance_field(
        self,
        line_shift: str,
        on_date: date,
        field_name: str,
        transform: Callable[[float], float],
    ) -> int: ...


class InMemoryStore:
    """Row source and write sink backed by plain lists.

    Every insert returns the new row's 1-based id within its table.
    """

    def __init__(
        self,
        performance: Iterable[PerformanceRecord] = (),
        quality: Iterable[QualityMeasurement] = (),
    ):
        self.performance: list[PerformanceRecord] = list(performance)
        self.quality: list[QualityMeasurement] = list(quality)
        self.tables: dict[str, list[dict]] = {
            "alerts": [],
            "maintenance_schedules": [],
            "optimization_suggestions": [],
            "notifications": [],
            "report_requests": [],
            "quality_measurements": [],
            "escalations": [],
            "execution_log": [],
        }

    # -- row source ---------------------------------------------------------

    def fetch_performance_records(self, date_from, date_to, filters=None):
        filters = filters or RecordFilter()
        rows = [
            r for r in self.performance
            if in_range(r.date, date_from, date_to) and filters.matches_performance(r)
        ]
        logger.info("Fetched %d performance records", len(rows))
        return rows

    def fetch_quality_measurements(self, date_from, date_to, filters=None):
        filters = filters or RecordFilter()
        rows = [
            m for m in self.quality
            if (m.date is None or in_range(m.date, date_from, date_to))
            and filters.matches_quality(m)
        ]
        logger.info("Fetched %d quality measurements", len(rows))
        return rows

    # -- write sink ---------------------------------------------------------

    def _insert(self, table: str, row: dict) -> int:
        rows = self.tables[table]
        rows.append({"id": len(rows) + 1, "created_at": datetime.now(), **row})
        return len(rows)

    def insert_alert(self, alert_type, severity, title, message, target_line):
        return self._insert("alerts", {
            "alert_type": alert_type,
            "severity": severity,
            "title": title,
            "message": message,
            "target_line": target_line,
        })

    def insert_maintenance_schedule(self, **fields):
        return self._insert("maintenance_schedules", {"status": "scheduled", **fields})

    def insert_optimization_suggestion(self, suggestion):
        return self._insert("optimization_suggestions", suggestion.to_dict())

    def insert_notification(self, **fields):
        return self._insert("notifications", {"is_read": False, **fields})

    def insert_report_request(self, **fields):
        return self._insert("report_requests", {"status": "pending", **fields})

    def insert_quality_measurement(self, **fields):
        return self._insert("quality_measurements", fields)

    def insert_escalation(self, **fields):
        return self._insert("escalations", fields)

    def insert_execution_log(self, entry):
        return self._insert("execution_log", entry)

    def update_performance_field(self, line_shift, on_date, field_name, transform):
        """Apply transform to one numeric field of the matching records."""
        changed = 0
        for idx, record in enumerate(self.performance):
            if record.line_shift != line_shift or record.date != on_date:
                continue
            current = getattr(record, field_name)
            updated = transform(current or 0.0)
            if updated != current:
                self.performance[idx] = dataclasses.replace(record, **{field_name: updated})
                changed += 1
        return changed


@dataclass
class CallableRowSource:
    """Row source wrapping two fetch callables (e.g. database queries).

    Any exception from a callable is re-raised as DataSourceError.
    """

    performance_query: Callable[..., Iterable[PerformanceRecord]]
    quality_query: Callable[..., Iterable[QualityMeasurement]] = field(default=lambda *a: [])

    def fetch_performance_records(self, date_from, date_to, filters=None):
        try:
            rows = list(self.performance_query(date_from, date_to, filters or RecordFilter()))
        except Exception as exc:
            raise DataSourceError(f"Performance query failed: {exc}") from exc
        return rows

    def fetch_quality_measurements(self, date_from, date_to, filters=None):
        try:
            rows = list(self.quality_query(date_from, date_to, filters or RecordFilter()))
        except Exception as exc:
            raise DataSourceError(f"Quality query failed: {exc}") from exc
        return rows
